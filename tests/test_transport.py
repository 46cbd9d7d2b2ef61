"""Integration tests for lsphover.transport against the stub LSP server."""

from __future__ import annotations

import asyncio

import pytest

from lsphover.errors import MalformedFrame, ProcessSpawnError, TransportClosed
from lsphover.messages import (
    HOVER,
    INITIALIZE,
    INITIALIZED,
    build_hover,
    build_initialize,
    build_initialized,
)
from lsphover.transport import TransportSession


async def spawn_stub(stub_command, stderr_sink, **kwargs) -> TransportSession:
    command, args = stub_command
    return await TransportSession.spawn(command, args, stderr_sink=stderr_sink, **kwargs)


async def handshake(session: TransportSession, root: str) -> None:
    request_id = await session.request(INITIALIZE, build_initialize(root))
    response = await session.await_response(request_id, timeout=10)
    assert "result" in response
    await session.notify(INITIALIZED, build_initialized())


class TestSpawn:
    """Tests for TransportSession.spawn."""

    @pytest.mark.asyncio
    async def test_missing_executable(self):
        with pytest.raises(ProcessSpawnError) as exc_info:
            await TransportSession.spawn("lsphover-no-such-server-xyz", ["serve"])
        assert exc_info.value.command == "lsphover-no-such-server-xyz"
        assert "lsphover-no-such-server-xyz" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_not_executable(self, temp_dir):
        script = temp_dir / "server.sh"
        script.write_text("#!/bin/sh\n")
        script.chmod(0o644)
        with pytest.raises(ProcessSpawnError):
            await TransportSession.spawn(str(script))

    @pytest.mark.asyncio
    async def test_stderr_is_forwarded_unmodified(self, stub_command, stub_mode, stderr_sink, temp_dir):
        session = await spawn_stub(stub_command, stderr_sink)
        async with session:
            await handshake(session, str(temp_dir))
        assert stderr_sink.getvalue() == b"stub-lsp: ready\n"


class TestRequestIds:
    """Tests for per-session request ids."""

    @pytest.mark.asyncio
    async def test_ids_increase_per_session(self, stub_command, stub_mode, stderr_sink, temp_dir):
        first = await spawn_stub(stub_command, stderr_sink)
        second = await spawn_stub(stub_command, stderr_sink)
        try:
            assert first.next_request_id() == 1
            assert first.next_request_id() == 2
            # A second session does not share the counter.
            assert second.next_request_id() == 1
        finally:
            await first.close()
            await second.close()

    @pytest.mark.asyncio
    async def test_notification_registers_no_pending_slot(self, stub_command, stub_mode, stderr_sink):
        async with await spawn_stub(stub_command, stderr_sink) as session:
            await session.notify(INITIALIZED, build_initialized())
            assert session.pending_ids == []


class TestAwaitResponse:
    """Tests for response matching."""

    @pytest.mark.asyncio
    async def test_hover_skips_unrelated_traffic(self, stub_command, stub_mode, stderr_sink, project_factory):
        root, source = project_factory()
        async with await spawn_stub(stub_command, stderr_sink) as session:
            await handshake(session, str(root))
            request_id = await session.request(HOVER, build_hover(str(source), 2, 5))
            response = await session.await_response(request_id, timeout=10)

        assert request_id == 2
        assert response["id"] == request_id
        value = response["result"]["contents"]["value"]
        assert "héllo ✓" in value
        assert "2:5" in value
        assert f"root={root}" in value

    @pytest.mark.asyncio
    async def test_message_larger_than_read_chunk(self, stub_command, stub_mode, stderr_sink, project_factory):
        stub_mode("big")
        root, source = project_factory()
        async with await spawn_stub(stub_command, stderr_sink) as session:
            await handshake(session, str(root))
            request_id = await session.request(HOVER, build_hover(str(source), 0, 0))
            response = await session.await_response(request_id, timeout=10)

        assert response["result"]["contents"]["value"].endswith("x" * 25000)

    @pytest.mark.asyncio
    async def test_error_response_is_returned(self, stub_command, stub_mode, stderr_sink, project_factory):
        stub_mode("error")
        root, source = project_factory()
        async with await spawn_stub(stub_command, stderr_sink) as session:
            await handshake(session, str(root))
            request_id = await session.request(HOVER, build_hover(str(source), 0, 0))
            response = await session.await_response(request_id, timeout=10)

        assert response["error"]["message"] == "no package for file"

    @pytest.mark.asyncio
    async def test_stream_closed_before_response(self, stub_command, stub_mode, stderr_sink, project_factory):
        stub_mode("exit")
        root, source = project_factory()
        async with await spawn_stub(stub_command, stderr_sink) as session:
            await handshake(session, str(root))
            request_id = await session.request(HOVER, build_hover(str(source), 0, 0))
            with pytest.raises(TransportClosed):
                await session.await_response(request_id, timeout=10)

        assert session.returncode == 3

    @pytest.mark.asyncio
    async def test_malformed_frame(self, stub_command, stub_mode, stderr_sink, project_factory):
        stub_mode("garbage")
        root, source = project_factory()
        async with await spawn_stub(stub_command, stderr_sink) as session:
            await handshake(session, str(root))
            request_id = await session.request(HOVER, build_hover(str(source), 0, 0))
            with pytest.raises(MalformedFrame):
                await session.await_response(request_id, timeout=10)

    @pytest.mark.asyncio
    async def test_oversized_content_length(self, stub_command, stub_mode, stderr_sink, project_factory):
        stub_mode("huge_length")
        root, source = project_factory()
        async with await spawn_stub(stub_command, stderr_sink) as session:
            await handshake(session, str(root))
            request_id = await session.request(HOVER, build_hover(str(source), 0, 0))
            # No timeout: the failure has to arrive on its own.
            with pytest.raises(MalformedFrame):
                await asyncio.wait_for(session.await_response(request_id), timeout=10)

    @pytest.mark.asyncio
    async def test_response_before_bad_frame_is_delivered(
        self, stub_command, stub_mode, stderr_sink, project_factory
    ):
        stub_mode("trailing_junk")
        root, source = project_factory()
        async with await spawn_stub(stub_command, stderr_sink) as session:
            await handshake(session, str(root))
            request_id = await session.request(HOVER, build_hover(str(source), 0, 0))
            response = await session.await_response(request_id, timeout=10)

        assert response["id"] == request_id
        assert "stub hover" in response["result"]["contents"]["value"]

    @pytest.mark.asyncio
    async def test_reader_error_fails_pending(
        self, stub_command, stub_mode, stderr_sink, project_factory, monkeypatch
    ):
        root, source = project_factory()
        async with await spawn_stub(stub_command, stderr_sink) as session:
            await handshake(session, str(root))

            def boom(message):
                raise RuntimeError("dispatch exploded")

            monkeypatch.setattr(session, "_dispatch", boom)
            request_id = await session.request(HOVER, build_hover(str(source), 0, 0))
            with pytest.raises(TransportClosed, match="Reader failed"):
                await asyncio.wait_for(session.await_response(request_id), timeout=10)

    @pytest.mark.asyncio
    async def test_timeout_closes_session(self, stub_command, stub_mode, stderr_sink, project_factory):
        stub_mode("hang")
        root, source = project_factory()
        session = await spawn_stub(stub_command, stderr_sink)
        await handshake(session, str(root))
        request_id = await session.request(HOVER, build_hover(str(source), 0, 0))

        with pytest.raises(TransportClosed, match="Timed out"):
            await session.await_response(request_id, timeout=0.3)

        assert session.closed
        assert session.returncode == 0
        assert session.pending_ids == []

    @pytest.mark.asyncio
    async def test_send_after_close(self, stub_command, stub_mode, stderr_sink):
        session = await spawn_stub(stub_command, stderr_sink)
        await session.close()
        with pytest.raises(TransportClosed):
            await session.request(INITIALIZE, build_initialize("/"))
        with pytest.raises(TransportClosed):
            await session.await_response(1)


class TestClose:
    """Tests for TransportSession.close."""

    @pytest.mark.asyncio
    async def test_close_returns_exit_status(self, stub_command, stub_mode, stderr_sink):
        session = await spawn_stub(stub_command, stderr_sink)
        assert await session.close() == 0
        # Idempotent.
        assert await session.close() == 0

    @pytest.mark.asyncio
    async def test_close_kills_server_that_ignores_eof(self, stub_command, stub_mode, stderr_sink):
        stub_mode("stubborn")
        session = await spawn_stub(stub_command, stderr_sink, shutdown_timeout=0.5)
        returncode = await asyncio.wait_for(session.close(), timeout=10)
        assert returncode is not None
        assert returncode != 0

    @pytest.mark.asyncio
    async def test_close_fails_concurrent_waiter(self, stub_command, stub_mode, stderr_sink, project_factory):
        stub_mode("hang")
        root, source = project_factory()
        session = await spawn_stub(stub_command, stderr_sink)
        await handshake(session, str(root))
        # Without a reader, only close() can settle the pending slot.
        session._reader_task.cancel()
        await asyncio.sleep(0)
        request_id = await session.request(HOVER, build_hover(str(source), 0, 0))
        waiter = asyncio.create_task(session.await_response(request_id))
        await asyncio.sleep(0.1)

        await session.close()

        with pytest.raises(TransportClosed, match="Session closed"):
            await waiter
        assert session.pending_ids == []

    @pytest.mark.asyncio
    async def test_context_manager_closes_on_error(self, stub_command, stub_mode, stderr_sink):
        with pytest.raises(RuntimeError):
            async with await spawn_stub(stub_command, stderr_sink) as session:
                raise RuntimeError("boom")
        assert session.closed
        assert session.returncode == 0
