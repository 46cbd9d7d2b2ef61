"""
错误类型

传输层、参数解析和配置加载共用的异常层级。
"""

from typing import Optional, Sequence


class LSPHoverError(Exception):
    """lsphover 基础异常"""
    pass


class MalformedFrame(LSPHoverError):
    """消息帧头缺失或无法解析"""
    pass


class ProcessSpawnError(LSPHoverError):
    """语言服务器进程无法启动"""

    def __init__(self, command: str, args: Optional[Sequence[str]] = None, reason: str = ""):
        self.command = command
        self.args_list = list(args or [])
        self.reason = reason
        message = f"Failed to launch language server '{command}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class TransportClosed(LSPHoverError):
    """在收到匹配响应之前流已关闭、出错或超时"""
    pass


class InvalidArgument(LSPHoverError):
    """命令行参数格式错误"""
    pass


class ConfigError(LSPHoverError):
    """配置文件无法读取或校验失败"""
    pass
