"""Stdio transport: owns the language server process and its message traffic."""

from __future__ import annotations

import asyncio
import contextlib
import sys
from typing import IO, Any, Optional, Sequence

from .codec import FrameDecoder, encode
from .errors import LSPHoverError, MalformedFrame, ProcessSpawnError, TransportClosed
from .logging import get_logger
from .messages import notification_envelope, request_envelope

log = get_logger()

READ_CHUNK_SIZE = 10 * 1024


def _default_stderr_sink() -> Optional[IO[bytes]]:
    return getattr(sys.stderr, "buffer", None)


class TransportSession:
    """JSON-RPC session with a language server subprocess.

    A background reader task decodes the server's stdout and resolves the
    pending request whose id matches each response. Anything else
    (notifications, server-to-client requests, responses nobody waits for)
    is discarded. The server's stderr is copied byte-for-byte to the caller's
    stderr so the child never blocks on a full pipe.

    Use ``TransportSession.spawn`` to create one, and close it on every exit
    path (``async with`` does that).
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        command: str,
        stderr_sink: Optional[IO[bytes]] = None,
        shutdown_timeout: Optional[float] = None,
    ):
        self._process = process
        self.command = command
        self.shutdown_timeout = shutdown_timeout
        self._stderr_sink = stderr_sink if stderr_sink is not None else _default_stderr_sink()
        self._request_id = 0
        self._pending: dict[int, asyncio.Future] = {}
        self._decoder = FrameDecoder()
        self._closed = False
        self._failure: Optional[LSPHoverError] = None
        self._reader_task = asyncio.create_task(self._read_loop())
        self._stderr_task = asyncio.create_task(self._drain_stderr())

    @classmethod
    async def spawn(
        cls,
        command: str,
        args: Sequence[str] = (),
        cwd: Optional[str] = None,
        stderr_sink: Optional[IO[bytes]] = None,
        shutdown_timeout: Optional[float] = None,
    ) -> TransportSession:
        """Launch ``command`` with all three standard streams piped to us."""
        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
            )
        except OSError as e:
            log.info(f"Failed to launch language server: {e}", server=command)
            raise ProcessSpawnError(command, args, str(e)) from e

        log.info(f"Spawned language server (pid {process.pid})", server=command)
        return cls(process, command, stderr_sink=stderr_sink, shutdown_timeout=shutdown_timeout)

    async def __aenter__(self) -> TransportSession:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_ids(self) -> list[int]:
        return sorted(self._pending)

    def next_request_id(self) -> int:
        self._request_id += 1
        return self._request_id

    def _pending_slot(self, request_id: int) -> asyncio.Future:
        future = self._pending.get(request_id)
        if future is None:
            future = asyncio.get_running_loop().create_future()
            self._pending[request_id] = future
        return future

    async def send(self, envelope: dict[str, Any]) -> None:
        """Frame ``envelope`` and write it to the server's stdin.

        Requests get their pending slot before the bytes go out, so a reply
        that arrives before ``await_response`` is called is kept.
        """
        if self._closed:
            raise TransportClosed("Session is closed")
        if self._failure is not None:
            raise TransportClosed(f"Cannot send to server: {self._failure}")

        request_id = envelope.get("id")
        method = envelope.get("method")
        if request_id is not None:
            self._pending_slot(request_id)

        stdin = self._process.stdin
        try:
            stdin.write(encode(envelope))
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError) as e:
            if request_id is not None:
                self._pending.pop(request_id, None)
            raise TransportClosed(f"Server input stream closed: {e}") from e

        log.debug(f"--> {method}", request_id=request_id, method=method, server=self.command)

    async def request(self, method: str, params: dict[str, Any]) -> int:
        """Send a request with a fresh id and return that id."""
        request_id = self.next_request_id()
        await self.send(request_envelope(request_id, method, params))
        return request_id

    async def notify(self, method: str, params: dict[str, Any]) -> None:
        await self.send(notification_envelope(method, params))

    async def await_response(self, expected_id: int, timeout: Optional[float] = None) -> dict[str, Any]:
        """Wait for the response envelope carrying ``expected_id``.

        Raises TransportClosed when the stream ends first, and when
        ``timeout`` seconds pass; in the latter case the session is closed.
        """
        if self._closed:
            raise TransportClosed("Session is closed")

        future = self._pending.get(expected_id)
        if future is None:
            if self._failure is not None:
                raise TransportClosed(f"No response to request {expected_id}: {self._failure}")
            future = self._pending_slot(expected_id)

        try:
            return await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError:
            log.warning(
                f"No response to request {expected_id} within {timeout}s",
                request_id=expected_id,
                server=self.command,
            )
            await self.close()
            raise TransportClosed(
                f"Timed out after {timeout}s waiting for response to request {expected_id}"
            ) from None
        finally:
            self._pending.pop(expected_id, None)

    def _dispatch(self, message: Any) -> None:
        if not isinstance(message, dict):
            log.debug("<-- non-object message discarded", server=self.command)
            return

        if "method" in message:
            log.debug(
                f"<-- {message['method']} discarded",
                method=message["method"],
                server=self.command,
            )
            return

        message_id = message.get("id")
        future = self._pending.get(message_id) if isinstance(message_id, int) else None
        if future is None or future.done():
            log.debug(
                f"<-- response {message_id!r} has no pending request, discarded",
                request_id=message_id,
                server=self.command,
            )
            return

        log.debug(f"<-- response {message_id}", request_id=message_id, server=self.command)
        future.set_result(message)

    def _fail_pending(self, error: LSPHoverError) -> None:
        if self._failure is None:
            self._failure = error
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)

    async def _read_loop(self) -> None:
        stdout = self._process.stdout
        try:
            while True:
                chunk = await stdout.read(READ_CHUNK_SIZE)
                if not chunk:
                    self._fail_pending(TransportClosed("Server closed its output stream"))
                    return
                self._decoder.push(chunk)
                # Dispatch as we decode so a response ahead of a bad frame still lands.
                for message in self._decoder.messages():
                    self._dispatch(message)
        except MalformedFrame as e:
            log.error(f"Malformed frame from server: {e}", server=self.command)
            self._fail_pending(e)
        except OSError as e:
            self._fail_pending(TransportClosed(f"Error reading from server: {e}"))
        except Exception as e:
            log.error(f"Reader failed: {e!r}", server=self.command)
            self._fail_pending(TransportClosed(f"Reader failed: {e}"))

    async def _drain_stderr(self) -> None:
        stderr = self._process.stderr
        sink = self._stderr_sink
        while True:
            chunk = await stderr.read(READ_CHUNK_SIZE)
            if not chunk:
                return
            if sink is None:
                continue
            try:
                sink.write(chunk)
                sink.flush()
            except (OSError, ValueError) as e:
                # Keep draining so the server does not stall on a full pipe.
                log.warning(f"Stopped forwarding server stderr: {e}", server=self.command)
                sink = None

    async def close(self, timeout: Optional[float] = None) -> Optional[int]:
        """Close stdin, which tells the server to exit, and wait for its status.

        The process is killed if it has not exited after ``timeout`` seconds
        (default: ``shutdown_timeout``). Safe to call more than once.
        """
        if self._closed:
            return self._process.returncode
        self._closed = True
        if timeout is None:
            timeout = self.shutdown_timeout

        stdin = self._process.stdin
        if not stdin.is_closing():
            stdin.close()
        try:
            await stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError) as e:
            log.debug(f"Server stdin already gone: {e}", server=self.command)

        try:
            returncode = await asyncio.wait_for(self._process.wait(), timeout)
        except asyncio.TimeoutError:
            log.warning(f"Language server did not exit within {timeout}s, killing it", server=self.command)
            with contextlib.suppress(ProcessLookupError):
                self._process.kill()
            returncode = await self._process.wait()

        tasks = [self._reader_task, self._stderr_task]
        _, still_running = await asyncio.wait(tasks, timeout=1.0)
        for task in still_running:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._fail_pending(TransportClosed("Session closed"))
        self._pending.clear()

        log.info(f"Language server exited with status {returncode}", server=self.command)
        return returncode
