"""Hover lookup: handshake, one hover request, shutdown."""

from __future__ import annotations

import json
import os
from enum import Enum
from typing import IO, Any

from pydantic import BaseModel

from .config import HoverConfig
from .errors import LSPHoverError
from .logging import get_logger
from .messages import (
    HOVER,
    INITIALIZE,
    INITIALIZED,
    build_hover,
    build_initialize,
    build_initialized,
    parse_hover_contents,
    response_error,
)
from .project import find_project_root
from .transport import TransportSession

log = get_logger()


class ExchangeState(str, Enum):
    UNSTARTED = "unstarted"
    SPAWNED = "spawned"
    INITIALIZING = "initializing"      # initialize sent
    INITIALIZED = "initialized"        # initialized sent
    AWAITING_HOVER = "awaiting_hover"  # hover sent
    DONE = "done"                      # response received
    CLOSED = "closed"
    FAILED = "failed"


class HoverResult(BaseModel):
    """Outcome of one hover lookup."""

    request_id: int
    contents: str | None = None
    language: str | None = None
    error: Any = None
    response: dict[str, Any]

    @classmethod
    def from_response(cls, response: dict[str, Any]) -> HoverResult:
        error = response_error(response)
        info = None if error is not None else parse_hover_contents(response.get("result"))
        return cls(
            request_id=response.get("id", 0),
            contents=info.content if info else None,
            language=info.language if info else None,
            error=error,
            response=response,
        )

    @property
    def text(self) -> str:
        """Printable output: the error payload if the server reported one."""
        if self.error is not None:
            if isinstance(self.error, str):
                return self.error
            return json.dumps(self.error, indent=2, ensure_ascii=False)
        return self.contents or ""


class HoverClient:
    """Runs the initialize / initialized / hover exchange against one server."""

    def __init__(self, config: HoverConfig | None = None, stderr_sink: IO[bytes] | None = None):
        self.config = config or HoverConfig()
        self.stderr_sink = stderr_sink
        self.state = ExchangeState.UNSTARTED
        self.project_root: str | None = None

    async def hover(self, file_path: str, line: int, character: int) -> HoverResult:
        """Look up hover information at a zero-based position in ``file_path``."""
        file_path = os.path.abspath(file_path)
        self.project_root = find_project_root(file_path, self.config.root_markers)
        log.info(f"Project root: {self.project_root}")

        server = self.config.server
        timeout = self.config.request_timeout_seconds
        self.state = ExchangeState.UNSTARTED
        try:
            session = await TransportSession.spawn(
                server.command,
                server.args,
                cwd=server.cwd,
                stderr_sink=self.stderr_sink,
                shutdown_timeout=self.config.shutdown_timeout_seconds,
            )
        except LSPHoverError:
            self.state = ExchangeState.FAILED
            raise

        self.state = ExchangeState.SPAWNED
        try:
            async with session:
                response = await self._exchange(session, file_path, line, character, timeout)
        except LSPHoverError:
            self.state = ExchangeState.FAILED
            raise

        self.state = ExchangeState.CLOSED
        return HoverResult.from_response(response)

    async def _exchange(
        self,
        session: TransportSession,
        file_path: str,
        line: int,
        character: int,
        timeout: float | None,
    ) -> dict[str, Any]:
        request_id = await session.request(INITIALIZE, build_initialize(self.project_root))
        self.state = ExchangeState.INITIALIZING
        response = await session.await_response(request_id, timeout)
        if response_error(response) is not None:
            log.warning("Server rejected initialize", request_id=request_id, method=INITIALIZE)
            self.state = ExchangeState.DONE
            return response

        await session.notify(INITIALIZED, build_initialized())
        self.state = ExchangeState.INITIALIZED

        request_id = await session.request(HOVER, build_hover(file_path, line, character))
        self.state = ExchangeState.AWAITING_HOVER
        response = await session.await_response(request_id, timeout)
        self.state = ExchangeState.DONE
        return response
