"""lsphover - minimal Language Server Protocol client for hover lookups."""
from .codec import FrameDecoder, decode, encode, read_message_body
from .errors import (
    LSPHoverError,
    MalformedFrame,
    ProcessSpawnError,
    TransportClosed,
    InvalidArgument,
    ConfigError,
)
from .config import HoverConfig, ServerConfig, load_config
from .transport import TransportSession
from .client import HoverClient, HoverResult, ExchangeState
from .project import find_project_root
from .cli import main, parse_file_with_cursor

__version__ = "0.1.0"
__all__ = [
    "FrameDecoder",
    "decode",
    "encode",
    "read_message_body",
    "LSPHoverError",
    "MalformedFrame",
    "ProcessSpawnError",
    "TransportClosed",
    "InvalidArgument",
    "ConfigError",
    "HoverConfig",
    "ServerConfig",
    "load_config",
    "TransportSession",
    "HoverClient",
    "HoverResult",
    "ExchangeState",
    "find_project_root",
    "main",
    "parse_file_with_cursor",
]
