"""
日志配置模块

提供可配置的日志系统，支持：
- stderr 彩色输出（stdout 留给 hover 结果）
- 日志级别配置
- 可选的轮转日志文件
- 结构化 JSON 日志（附带 request_id / method / server 字段）
"""

import logging
import logging.handlers
import json
import sys
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any

from rich.console import Console

EXTRA_FIELDS = ("request_id", "method", "server")


class LogLevel(Enum):
    """日志级别"""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"

    def to_logging_level(self) -> int:
        """转换为 logging 模块的级别"""
        return getattr(logging, self.name)


@dataclass
class LoggingConfig:
    """日志配置"""
    level: LogLevel = LogLevel.WARNING
    console_enabled: bool = True
    file_enabled: bool = False
    file_path: str = ".lsphover/lsphover.log"
    max_size_mb: int = 5
    backup_count: int = 2
    json_format: bool = False
    file_json_format: bool = False  # 仅文件使用 JSON，stderr 保持可读
    use_colors: bool = True


class JSONFormatter(logging.Formatter):
    """JSON 格式化器"""

    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)

        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_record[name] = getattr(record, name)

        return json.dumps(log_record, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """带颜色的控制台格式化器"""

    COLORS = {
        logging.DEBUG: "\033[36m",     # Cyan
        logging.INFO: "\033[32m",      # Green
        logging.WARNING: "\033[33m",   # Yellow
        logging.ERROR: "\033[31m",     # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, fmt: Optional[str] = None, use_colors: bool = True):
        super().__init__(fmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_colors:
            return super().format(record)

        # 其他 handler 共享同一个 record，格式化后恢复原值
        original = record.levelname
        color = self.COLORS.get(record.levelno, self.RESET)
        record.levelname = f"{color}{original}{self.RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class HoverLogger:
    """lsphover 日志管理器（单例）"""

    _instance: Optional["HoverLogger"] = None
    _logger: Optional[logging.Logger] = None

    def __new__(cls) -> "HoverLogger":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        if self._logger is None:
            self._logger = logging.getLogger("lsphover")
            self._logger.propagate = False
            self._config: Optional[LoggingConfig] = None

    def configure(self, config: Optional[LoggingConfig] = None) -> None:
        """
        配置日志系统。

        Args:
            config: 日志配置，None 时使用默认配置
        """
        self._config = config or LoggingConfig()

        for handler in self._logger.handlers:
            handler.close()
        self._logger.handlers.clear()
        self._logger.setLevel(self._config.level.to_logging_level())

        if self._config.console_enabled:
            self._add_console_handler()

        if self._config.file_enabled:
            self._add_file_handler()

    def _add_console_handler(self) -> None:
        """添加 stderr 处理器"""
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(self._config.level.to_logging_level())

        if self._config.json_format:
            handler.setFormatter(JSONFormatter())
        else:
            use_colors = self._config.use_colors and sys.stderr.isatty()
            handler.setFormatter(
                ColoredFormatter("%(levelname)s [%(module)s] %(message)s", use_colors=use_colors)
            )

        self._logger.addHandler(handler)

    def _add_file_handler(self) -> None:
        """添加文件处理器（带轮转）"""
        log_path = Path(self._config.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=self._config.max_size_mb * 1024 * 1024,
            backupCount=self._config.backup_count,
            encoding="utf-8",
        )
        handler.setLevel(self._config.level.to_logging_level())

        if self._config.json_format or self._config.file_json_format:
            handler.setFormatter(JSONFormatter())
        else:
            fmt = "%(asctime)s %(levelname)s [%(module)s] %(message)s"
            handler.setFormatter(logging.Formatter(fmt))

        self._logger.addHandler(handler)

    @property
    def config(self) -> Optional[LoggingConfig]:
        return self._config

    @property
    def logger(self) -> logging.Logger:
        """获取 logger 实例"""
        if self._config is None:
            self.configure()
        return self._logger

    def debug(self, message: str, **kwargs) -> None:
        """Debug 日志"""
        self.logger.debug(message, extra=kwargs, stacklevel=2)

    def info(self, message: str, **kwargs) -> None:
        """Info 日志"""
        self.logger.info(message, extra=kwargs, stacklevel=2)

    def warning(self, message: str, **kwargs) -> None:
        """Warning 日志"""
        self.logger.warning(message, extra=kwargs, stacklevel=2)

    def error(self, message: str, **kwargs) -> None:
        """Error 日志"""
        self.logger.error(message, extra=kwargs, stacklevel=2)


def get_logger() -> HoverLogger:
    """获取 lsphover 日志管理器实例"""
    return HoverLogger()


def configure_logging(
    level: str = "warning",
    console: bool = True,
    file: bool = False,
    file_path: str = ".lsphover/lsphover.log",
    json_format: bool = False,
) -> HoverLogger:
    """
    配置日志系统的便捷函数。

    Args:
        level: 日志级别 (debug, info, warning, error, critical)
        console: 是否输出到 stderr
        file: 是否输出到文件
        file_path: 日志文件路径
        json_format: 是否使用 JSON 格式

    Returns:
        配置好的 logger 实例
    """
    config = LoggingConfig(
        level=LogLevel(level.lower()),
        console_enabled=console,
        file_enabled=file,
        file_path=file_path,
        json_format=json_format,
    )

    logger = get_logger()
    logger.configure(config)
    return logger


def init_logging(level: str = "warning", log_file: Optional[Path] = None) -> HoverLogger:
    """CLI 入口使用：指定 log_file 时额外写入 JSON 格式的文件日志"""
    config = LoggingConfig(level=LogLevel(level.lower()))
    if log_file is not None:
        config.file_enabled = True
        config.file_path = str(log_file)
        config.file_json_format = True

    logger = get_logger()
    logger.configure(config)
    return logger


def get_console() -> Console:
    """stdout 控制台（hover 输出）"""
    return Console(highlight=False, soft_wrap=True)


def get_error_console() -> Console:
    """stderr 控制台（错误提示）"""
    return Console(stderr=True, highlight=False)
