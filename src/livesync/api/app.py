"""FastAPI application serving previews and the sync WebSockets."""

import asyncio
import json
import logging
import secrets
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable

from fastapi import Depends, FastAPI, HTTPException, Query, Security, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..core.ports import Transport
from ..errors import ProtocolError
from ..logging_utils import log_event
from ..sync.session import SyncSession
from ..sync.transport import TransportClosed, pump
from ..watch import DocumentWatcher
from .client import page_title, render_page

# WebSocket close codes
POLICY_VIOLATION = 1008
UNKNOWN_DOCUMENT = 4404

_STOP = object()


class WebSocketTransport(Transport):
    """
    Transport over one accepted WebSocket.

    ``send`` is synchronous so controllers can call it from timer callbacks;
    messages queue in ``outbox`` and ``run_writer`` delivers them in order.
    """

    def __init__(self, websocket: WebSocket):
        self.websocket = websocket
        self.outbox: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    def send(self, message: dict[str, Any]) -> None:
        if self.closed:
            raise ProtocolError("send on closed websocket")
        self.outbox.put_nowait(message)

    async def receive(self) -> Any:
        try:
            text = await self.websocket.receive_text()
        except WebSocketDisconnect as e:
            raise TransportClosed() from e
        try:
            return json.loads(text)
        except ValueError:
            # handed on as-is; the message parser rejects it
            return text

    async def run_writer(self) -> None:
        while True:
            message = await self.outbox.get()
            if message is _STOP:
                return
            try:
                await self.websocket.send_json(message)
            except (WebSocketDisconnect, RuntimeError, OSError):
                self.closed = True
                return

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.outbox.put_nowait(_STOP)


def create_app(
    runtime: Any,
    token: str | None = None,
    enable_cors: bool = False,
    watch: bool = False,
    on_ready: Callable[[], None] | None = None,
) -> FastAPI:
    """
    Create FastAPI application with runtime injected.

    Args:
        runtime: Runtime instance with config and open sessions
        token: Bearer token for authentication (None to disable auth)
        enable_cors: Enable CORS middleware
        watch: Re-render open documents when their files change
        on_ready: Called once on startup, off the event loop (opens browsers)

    Returns:
        FastAPI application instance
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        watcher = None
        if watch:
            watcher = DocumentWatcher(
                asyncio.get_running_loop(),
                runtime.reload,
                debounce_ms=runtime.config.watch.debounce_ms,
            )
            for path in runtime.sessions.paths():
                watcher.add(path)
            watcher.start()
        try:
            if on_ready is not None:
                await asyncio.to_thread(on_ready)
            yield
        finally:
            if watcher is not None:
                watcher.stop()
            runtime.sessions.close_all()

    app = FastAPI(
        title="livesync",
        description="Live Markdown preview with synchronized scrolling",
        version="0.1.0",
        docs_url="/docs" if token is None else None,
        redoc_url="/redoc" if token is None else None,
        lifespan=lifespan,
    )

    if enable_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Security setup
    if token:
        security_scheme = HTTPBearer(auto_error=False)

        async def verify_token(
            credentials: HTTPAuthorizationCredentials | None = Security(security_scheme),  # noqa: B008
        ) -> None:
            """Verify bearer token."""
            if credentials is None or credentials.credentials != token:
                raise HTTPException(status_code=401, detail="Invalid or missing token")
    else:

        async def verify_token() -> None:
            """No-op when auth is disabled."""
            return None

    def query_token_ok(supplied: str | None) -> bool:
        # browsers cannot set headers on page loads or WebSocket upgrades
        return token is None or supplied == token

    def session_or_404(path: str) -> SyncSession:
        session = runtime.sessions.get(path)
        if session is None:
            raise HTTPException(status_code=404, detail=f"Document {path} not open")
        return session

    @app.get("/health")
    async def health(auth: None = Depends(verify_token)) -> dict[str, Any]:
        """Health check endpoint."""
        return {"status": "ok", "documents": len(runtime.sessions.paths())}

    @app.get("/documents")
    async def documents(auth: None = Depends(verify_token)) -> list[dict[str, Any]]:
        """Open documents and their current generation."""
        output = []
        for path in runtime.sessions.paths():
            session = runtime.sessions.require(path)
            output.append(
                {
                    "path": str(path),
                    "title": page_title(session.document, path.name),
                    "generation": session.generation,
                    "blocks": len(session.document),
                }
            )
        return output

    @app.get("/documents/blocks")
    async def document_blocks(
        path: str = Query(..., description="Document path"),
        auth: None = Depends(verify_token),
    ) -> dict[str, Any]:
        """Annotated blocks of one open document."""
        session = session_or_404(path)
        return {
            "path": str(session.path),
            "generation": session.generation,
            "blocks": [block.to_dict() for block in session.document.blocks],
        }

    @app.get("/preview", response_class=HTMLResponse)
    async def preview(
        path: str = Query(..., description="Document path"),
        token_param: str | None = Query(None, alias="token"),
    ) -> HTMLResponse:
        """Preview page with the render-surface client."""
        if not query_token_ok(token_param):
            raise HTTPException(status_code=401, detail="Invalid or missing token")
        session = session_or_404(path)
        return HTMLResponse(
            render_page(session.document, str(session.path), token, runtime.config.sync)
        )

    async def serve_socket(websocket: WebSocket, path: str, supplied: str | None, side: str) -> None:
        if not query_token_ok(supplied):
            await websocket.close(code=POLICY_VIOLATION)
            return
        session = runtime.sessions.get(path)
        if session is None:
            await websocket.close(code=UNKNOWN_DOCUMENT)
            return

        await websocket.accept()
        transport = WebSocketTransport(websocket)
        writer = asyncio.create_task(transport.run_writer())

        if side == "render":
            attach, detach, handle = session.attach_render, session.detach_render, session.handle_render_message
        else:
            attach, detach, handle = session.attach_source, session.detach_source, session.handle_source_message

        log_event("client_connected", level=logging.DEBUG, side=side, path=str(session.path))
        attach(transport)
        try:
            await pump(transport, handle)
        finally:
            detach(transport)
            transport.close()
            await writer
            log_event("client_disconnected", level=logging.DEBUG, side=side, path=str(session.path))

    @app.websocket("/ws/render")
    async def render_socket(
        websocket: WebSocket,
        path: str = Query(...),
        token_param: str | None = Query(None, alias="token"),
    ) -> None:
        await serve_socket(websocket, path, token_param, "render")

    @app.websocket("/ws/source")
    async def source_socket(
        websocket: WebSocket,
        path: str = Query(...),
        token_param: str | None = Query(None, alias="token"),
    ) -> None:
        await serve_socket(websocket, path, token_param, "source")

    return app


def generate_token() -> str:
    """Generate a random bearer token."""
    return secrets.token_urlsafe(32)
