"""
lsphover 测试共享 fixtures

为所有测试提供统一的 fixtures 和测试工具。
"""

import io
import json
import sys
import pytest
import tempfile
import shutil
from pathlib import Path
from typing import Optional

from click.testing import CliRunner

from lsphover.config import HoverConfig, ServerConfig

STUB_SERVER = Path(__file__).parent / "fixtures" / "stub_lsp_server.py"


# =============================================================================
# CLI Fixtures
# =============================================================================

@pytest.fixture
def runner():
    """Click CLI 测试运行器"""
    return CliRunner()


@pytest.fixture
def temp_dir():
    """临时目录 fixture"""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


# =============================================================================
# Stub Server Fixtures
# =============================================================================

@pytest.fixture
def stub_command():
    """启动 stub LSP 服务器的命令 (command, args)"""
    return sys.executable, [str(STUB_SERVER)]


@pytest.fixture
def stub_mode(monkeypatch):
    """设置 stub 服务器行为模式"""
    def _set(mode: str) -> None:
        monkeypatch.setenv("STUB_LSP_MODE", mode)

    _set("normal")
    return _set


@pytest.fixture
def stderr_sink():
    """收集服务器 stderr 输出"""
    return io.BytesIO()


@pytest.fixture
def project_factory(temp_dir):
    """创建带 .git 目录的项目，返回 (项目根, 源文件路径)"""
    def _factory(name: str = "main.go", with_git: bool = True) -> tuple:
        root = temp_dir / "project"
        (root / "pkg").mkdir(parents=True, exist_ok=True)
        if with_git:
            (root / ".git").mkdir(exist_ok=True)
        source = root / "pkg" / name
        source.write_text("package pkg\n\nfunc Hello() string { return \"hi\" }\n")
        return root, source

    return _factory


@pytest.fixture
def stub_config_factory(stub_command):
    """指向 stub 服务器的 HoverConfig 工厂"""
    def _factory(
        request_timeout_seconds: Optional[float] = 10.0,
        shutdown_timeout_seconds: float = 5.0,
    ) -> HoverConfig:
        command, args = stub_command
        return HoverConfig(
            server=ServerConfig(command=command, args=args),
            request_timeout_seconds=request_timeout_seconds,
            shutdown_timeout_seconds=shutdown_timeout_seconds,
        )

    return _factory


@pytest.fixture
def rc_file_factory(temp_dir, stub_command):
    """写入 .lsphoverrc 并返回路径"""
    def _factory(overrides: Optional[dict] = None, directory: Optional[Path] = None) -> Path:
        command, args = stub_command
        data = {
            "server": {"command": command, "args": args},
            "request_timeout_seconds": 10,
        }
        if overrides:
            data.update(overrides)
        rc_file = (directory or temp_dir) / ".lsphoverrc"
        rc_file.write_text(json.dumps(data, indent=2))
        return rc_file

    return _factory
