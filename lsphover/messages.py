"""
LSP 消息构建 (handshake & hover)

构造 initialize / initialized / textDocument/hover 所需的 JSON-RPC 载荷，
并解析 hover 响应内容。
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

JSONRPC_VERSION = "2.0"

INITIALIZE = "initialize"
INITIALIZED = "initialized"
HOVER = "textDocument/hover"


@dataclass
class HoverInfo:
    """悬停信息"""
    content: str
    language: Optional[str] = None
    kind: Optional[str] = None


def request_envelope(request_id: int, method: str, params: Dict[str, Any]) -> Dict[str, Any]:
    """构造请求信封（需要响应）"""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "id": request_id,
        "method": method,
        "params": params,
    }


def notification_envelope(method: str, params: Dict[str, Any]) -> Dict[str, Any]:
    """构造通知信封（无 id，无需响应）"""
    return {
        "jsonrpc": JSONRPC_VERSION,
        "method": method,
        "params": params,
    }


def path_to_uri(path: str) -> str:
    """
    文件路径转换为 file:// URI

    Args:
        path: 文件路径（相对路径按当前目录解析）

    Returns:
        绝对 file URI
    """
    return Path(os.path.abspath(path)).as_uri()


def build_initialize(project_root: str) -> Dict[str, Any]:
    """
    initialize 请求参数

    Args:
        project_root: 项目根目录

    Returns:
        参数字典
    """
    root = os.path.abspath(project_root)
    root_uri = path_to_uri(root)
    return {
        "processId": None,
        "rootPath": root,
        "rootUri": root_uri,
        "workspaceFolders": [
            {"uri": root_uri, "name": os.path.basename(root) or "/"},
        ],
        "capabilities": {
            "textDocument": {
                "hover": {"contentFormat": ["markdown", "plaintext"]},
            },
        },
    }


def build_initialized() -> Dict[str, Any]:
    """initialized 通知参数（空）"""
    return {}


def build_hover(file_path: str, line: int, character: int) -> Dict[str, Any]:
    """
    textDocument/hover 请求参数

    Args:
        file_path: 文件路径
        line: 行号 (0-indexed)
        character: 列号 (0-indexed)

    Returns:
        参数字典
    """
    return {
        "textDocument": {"uri": path_to_uri(file_path)},
        "position": {"line": line, "character": character},
    }


def response_error(response: Dict[str, Any]) -> Optional[Any]:
    """
    提取响应中的错误载荷

    标准位置是与 result 并列的 error 字段；result.error 为旧格式，同样识别。
    """
    if response.get("error") is not None:
        return response["error"]
    result = response.get("result")
    if isinstance(result, dict) and result.get("error") is not None:
        return result["error"]
    return None


def parse_hover_contents(result: Any) -> Optional[HoverInfo]:
    """
    解析 hover 结果

    支持 MarkupContent、MarkedString（字符串或 {language, value}）以及它们的列表。
    """
    if not isinstance(result, dict) or "contents" not in result:
        return None

    contents = result["contents"]

    # 处理不同格式的内容
    if isinstance(contents, str):
        return HoverInfo(content=contents)
    elif isinstance(contents, dict):
        return HoverInfo(
            content=contents.get("value", ""),
            language=contents.get("language"),
            kind=contents.get("kind"),
        )
    elif isinstance(contents, list):
        parts: List[str] = []
        for item in contents:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict):
                parts.append(item.get("value", ""))
        return HoverInfo(content="\n\n".join(parts))

    return None
