"""
项目根目录定位

沿父目录向上查找版本控制标记目录（默认 .git）。
"""

import os
from typing import Optional, Sequence

DEFAULT_ROOT_MARKERS = (".git",)


def find_project_root(file_path: str, markers: Optional[Sequence[str]] = None) -> str:
    """
    查找包含 file_path 的项目根目录

    从文件所在目录开始逐级向上，返回第一个包含标记的祖先目录（git worktree 中 .git 是文件，同样识别）；
    直到文件系统根目录都没有找到时，返回文件的直接父目录。

    Args:
        file_path: 文件路径（相对路径按当前目录解析）
        markers: 标记目录名列表

    Returns:
        项目根目录的绝对路径
    """
    markers = tuple(markers) if markers else DEFAULT_ROOT_MARKERS
    path = os.path.abspath(file_path)
    parent = os.path.dirname(path)

    directory = parent
    while True:
        for marker in markers:
            if os.path.exists(os.path.join(directory, marker)):
                return directory
        next_directory = os.path.dirname(directory)
        if next_directory == directory:
            break
        directory = next_directory

    return parent
