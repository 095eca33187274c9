"""
Web server for tickstream event streams.

Provides FastAPI-based HTTP serving of the per-connection event streams plus
a small test page and status endpoints. Every streaming route opens exactly
one Session for its recipe and closes it when the client goes away.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from queue import Empty
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, StreamingResponse

from ..infra.exceptions import SessionClosedError
from ..infra.logging import get_logger
from ..infra.settings import Settings, settings as default_settings
from ..runtime.recipes import load_recipes
from ..runtime.session import Session
from ..runtime.session_manager import SessionManager
from ..runtime.sink import QueueFrameSink

logger = get_logger(__name__)

EVENT_STREAM_MEDIA_TYPE = "text/event-stream"
STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering if present
}

# How long one blocking sink read may hold an executor thread.
SINK_POLL_TIMEOUT_S = 0.1

GRACEFUL_SHUTDOWN_TIMEOUT_S = 5

TEST_PAGE = """\
<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Test Page</title>
</head>
<body>
  <h1>Server sent events test page</h1>

  <p>Here's a server clock: </p>
  <server-clock></server-clock>
  <script type="module" src="/server-clock.js"></script>

  <p>Here's a server console: </p>
  <server-console></server-console>
  <script type="module" src="/server-console.js"></script>

  <p>Here's a server panel: </p>
  <server-panel></server-panel>
  <script type="module" src="/server-panel.js"></script>
</body>
</html>
"""


async def stream_session_frames(
    session: Session,
    sink: QueueFrameSink,
    *,
    limit: int | None = None,
) -> AsyncIterator[str]:
    """
    Async generator draining a session's sink for StreamingResponse.

    Ends when the session closes (sink returns None) or after ``limit``
    frames; either way the session is closed on exit.
    """
    loop = asyncio.get_running_loop()
    sent = 0
    reason = "stream-ended"
    try:
        while True:
            try:
                frame = await loop.run_in_executor(None, sink.get, SINK_POLL_TIMEOUT_S)
            except Empty:
                continue
            if frame is None:
                break
            yield frame
            sent += 1
            if limit is not None and sent >= limit:
                reason = "limit-reached"
                break
    except asyncio.CancelledError:
        reason = "client-disconnect"
        raise
    finally:
        session.close(reason=reason)


async def _wait_disconnect_then_close(request: Request, session: Session) -> None:
    """When the client disconnects, ASGI receive() returns http.disconnect; close the session."""
    try:
        while not session.closed:
            message = await request.receive()
            if message.get("type") == "http.disconnect":
                break
    except Exception as e:
        logger.debug("disconnect_watch_failed", session_id=session.session_id, error=str(e))
    session.close(reason="client-disconnect")


class RequestLogMiddleware:
    """
    ASGI middleware logging one line per request when its response starts.

    Written against the raw ASGI interface so event streams pass through
    untouched (no body buffering, disconnects reach the route).
    """

    def __init__(self, app) -> None:
        self.app = app

    async def __call__(self, scope, receive, send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = time.perf_counter()

        async def send_with_log(message) -> None:
            if message["type"] == "http.response.start":
                logger.info(
                    "http_request",
                    method=scope.get("method"),
                    path=scope.get("path"),
                    query=scope.get("query_string", b"").decode("latin-1"),
                    status=message["status"],
                    duration_ms=round((time.perf_counter() - started) * 1000.0, 1),
                )
            await send(message)

        await self.app(scope, receive, send_with_log)


def create_app(
    manager: SessionManager | None = None,
    app_settings: Settings | None = None,
) -> FastAPI:
    """Build the FastAPI app around ``manager`` (one is created from settings if omitted)."""
    cfg = app_settings or default_settings
    if manager is None:
        manager = SessionManager(
            load_recipes(cfg.recipes_file),
            pace_hz=cfg.pace_hz,
            sink_max_bytes=cfg.sink_max_bytes,
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        manager.start()
        logger.info("server_started", recipes=manager.recipes.names())
        try:
            yield
        finally:
            manager.shutdown()
            logger.info("server_stopped")

    app = FastAPI(title="tickstream event server", lifespan=lifespan)
    app.state.manager = manager

    app.add_middleware(RequestLogMiddleware)
    disconnect_watchers: set[asyncio.Task] = set()

    async def open_stream(request: Request, endpoint: str, limit: int | None) -> StreamingResponse:
        if endpoint not in manager.recipes:
            raise HTTPException(status_code=404, detail=f"Unknown stream endpoint: {endpoint}")
        sink = QueueFrameSink(manager.sink_max_bytes)
        try:
            session = manager.open_session(endpoint, sink)
        except SessionClosedError:
            raise HTTPException(status_code=503, detail="Server is shutting down")

        watcher = asyncio.create_task(_wait_disconnect_then_close(request, session))
        disconnect_watchers.add(watcher)
        watcher.add_done_callback(disconnect_watchers.discard)
        return StreamingResponse(
            stream_session_frames(session, sink, limit=limit),
            media_type=EVENT_STREAM_MEDIA_TYPE,
            headers=STREAM_HEADERS,
        )

    @app.get("/sse-{endpoint}")
    async def stream_named(
        request: Request,
        endpoint: str,
        limit: int | None = Query(default=None, ge=1),
    ) -> StreamingResponse:
        """Event stream for a recipe, e.g. /sse-timestamp or /sse-combined."""
        return await open_stream(request, endpoint, limit)

    @app.get("/sse/{endpoint}")
    async def stream_by_path(
        request: Request,
        endpoint: str,
        limit: int | None = Query(default=None, ge=1),
    ) -> StreamingResponse:
        return await open_stream(request, endpoint, limit)

    @app.get("/page", response_class=HTMLResponse)
    async def test_page() -> str:
        return TEST_PAGE

    @app.get("/recipes")
    async def list_recipes() -> dict:
        return manager.recipes.to_dict()

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "stopping" if manager.is_shutting_down else "ok",
            "live_sessions": len(manager.live_sessions()),
            "pace_running": manager.is_running,
        }

    @app.get("/")
    async def root():
        return {"message": "tickstream event server", "status": "ready"}

    return app


class _StreamingServer(uvicorn.Server):
    """uvicorn server that closes live sessions as soon as an exit signal arrives.

    Open event streams would otherwise hold graceful shutdown until the
    clients hang up.
    """

    def __init__(self, config: uvicorn.Config, manager: SessionManager) -> None:
        super().__init__(config)
        self._manager = manager

    def handle_exit(self, sig, frame) -> None:
        self._manager.shutdown()
        super().handle_exit(sig, frame)


def run_server(
    host: str | None = None,
    port: int | None = None,
    *,
    app_settings: Settings | None = None,
    manager: SessionManager | None = None,
) -> None:
    cfg = app_settings or default_settings
    if manager is None:
        manager = SessionManager(
            load_recipes(cfg.recipes_file),
            pace_hz=cfg.pace_hz,
            sink_max_bytes=cfg.sink_max_bytes,
        )
    app = create_app(manager, cfg)
    config = uvicorn.Config(
        app,
        host=host or cfg.host,
        port=port or cfg.port,
        log_level=cfg.log_level.lower(),
        timeout_graceful_shutdown=GRACEFUL_SHUTDOWN_TIMEOUT_S,
    )
    logger.info("server_listening", host=config.host, port=config.port)
    _StreamingServer(config, manager).run()
