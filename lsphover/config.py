"""
配置模型

语言服务器命令、超时、项目根标记等配置，从 .lsphoverrc (JSON) 加载。
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError

CONFIG_FILENAME = ".lsphoverrc"


class ServerConfig(BaseModel):
    """语言服务器启动配置"""
    command: str = "gopls"
    # gopls: 详细日志写入文件，通过 stdio 提供服务
    args: list[str] = Field(default_factory=lambda: ["--logfile", "./log.txt", "serve"])
    cwd: Optional[str] = None


class HoverConfig(BaseModel):
    """全局配置 (.lsphoverrc)"""
    server: ServerConfig = Field(default_factory=ServerConfig)
    request_timeout_seconds: Optional[float] = Field(default=30.0, gt=0)
    shutdown_timeout_seconds: float = Field(default=5.0, gt=0)
    root_markers: list[str] = Field(default_factory=lambda: [".git"], min_length=1)
    log_level: Literal["debug", "info", "warning", "error"] = "warning"
    output_format: Literal["plain", "markdown", "json"] = "plain"


def load_config(directory: Path, path: Optional[Path] = None) -> HoverConfig:
    """
    加载配置

    Args:
        directory: 查找 .lsphoverrc 的目录
        path: 显式指定的配置文件（必须存在）

    Returns:
        配置对象；没有配置文件时返回默认值
    """
    rc_file = path if path is not None else directory / CONFIG_FILENAME
    if not rc_file.exists():
        if path is not None:
            raise ConfigError(f"Config file not found: {rc_file}")
        return HoverConfig()

    try:
        data = json.loads(rc_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read {rc_file}: {e}") from e

    try:
        return HoverConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {rc_file}: {e}") from e
