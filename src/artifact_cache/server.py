"""Starlette ASGI application serving an artifact store over HTTP.

Wire contract (vcpkg HTTP binary cache):

    GET  /                          200, liveness probe (store untouched)
    GET  /{name}/{version}/{hash}   200 + body | 404 | 405 if reads disabled
    HEAD /{name}/{version}/{hash}   200 + Content-Length | 404
    PUT  /{name}/{version}/{hash}   200 | 409 if present | 405 if writes disabled

Any other path shape is 404, any other verb on a valid path is 501, and
unexpected store failures are 500.

Usage:
    from artifact_cache.server import create_app

    app = create_app(store, readable=True, writable=False)
    uvicorn.run(app, host="0.0.0.0", port=15151)
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterator, Optional

import anyio.from_thread
from starlette.applications import Starlette
from starlette.concurrency import iterate_in_threadpool, run_in_threadpool
from starlette.requests import ClientDisconnect, Request
from starlette.responses import Response, StreamingResponse
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from .errors import InvalidPathError, StoreError, StoreErrorKind
from .identity import ArtifactId
from .storage.base import ArtifactStore

logger = logging.getLogger(__name__)

SUPPORTED_METHODS = frozenset({"GET", "HEAD", "PUT"})


def new_ticket() -> str:
    """Short correlation token attached to every log record of a request."""
    return uuid.uuid4().hex[:8]


def get_remote_addr(request: Request) -> str:
    """Best-effort client address: X-Real-Ip, then X-Forwarded-For, then peer."""
    addr = request.headers.get("x-real-ip") or request.headers.get("x-forwarded-for")
    if addr:
        return addr
    if request.client is None:
        return ""
    return f"{request.client.host}:{request.client.port}"


@dataclass
class RequestContext:
    """Per-request state passed explicitly through the handler chain."""

    ticket: str
    method: str
    url: str
    remote_addr: str
    started: float = field(default_factory=time.monotonic)

    def elapsed_ms(self) -> float:
        return round((time.monotonic() - self.started) * 1000, 3)

    def log_extra(self, **fields: Any) -> Dict[str, Any]:
        """Build the ``extra`` mapping understood by the log formatters."""
        data: Dict[str, Any] = {
            "_": self.ticket,
            "remote_addr": self.remote_addr,
            "url": self.url,
            "method": self.method,
        }
        data.update(fields)
        return {"fields": data}


async def _next_chunk(stream: AsyncIterator[bytes]) -> Optional[bytes]:
    try:
        return await stream.__anext__()
    except StopAsyncIteration:
        return None


def _body_chunks(request: Request) -> Iterator[bytes]:
    """Adapt the async request body to the store's blocking copy loop.

    Must be iterated from a worker thread started by anyio. Each chunk is
    pulled from the event loop on demand, so a client disconnect surfaces
    as ClientDisconnect inside the store's copy loop and aborts it.
    """
    stream = request.stream()
    while True:
        chunk = anyio.from_thread.run(_next_chunk, stream)
        if chunk is None:
            return
        if chunk:
            yield chunk


class CacheServer:
    """HTTP front end for an ArtifactStore.

    Stateless apart from the store and the two capability flags. Every verb
    is routed here so that unknown verbs get 501 rather than Starlette's 405.
    """

    def __init__(self, store: ArtifactStore, readable: bool = True, writable: bool = True) -> None:
        self.store = store
        self.readable = readable
        self.writable = writable
        self._app = Starlette(debug=False, routes=[Route("/{path:path}", self)])

    @property
    def app(self) -> Starlette:
        """Get the Starlette ASGI application."""
        return self._app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        response = await self.handle(request)
        await response(scope, receive, send)

    async def handle(self, request: Request) -> Response:
        """Parse, dispatch and log one request."""
        ctx = RequestContext(
            ticket=new_ticket(),
            method=request.method,
            url=request.url.path,
            remote_addr=get_remote_addr(request),
        )

        if request.url.path == "/" and request.method == "GET":
            logger.info("probe", extra={"fields": {"remote_addr": ctx.remote_addr}})
            return Response(status_code=200)

        # Path shape is checked before the verb
        try:
            identity = ArtifactId.from_path(request.url.path)
        except InvalidPathError:
            return self._reject(ctx, 404, "invalid path")
        if request.method not in SUPPORTED_METHODS:
            return self._reject(ctx, 501, "invalid method")

        logger.info("REQ %s", ctx.method, extra=ctx.log_extra(**self._identity_fields(identity)))

        try:
            if request.method == "GET":
                response = await self._handle_get(ctx, identity)
            elif request.method == "HEAD":
                response = await self._handle_head(identity)
            else:
                response = await self._handle_put(request, identity)
        except StoreError as e:
            logger.error(
                "RES %s",
                ctx.method,
                exc_info=e,
                extra=ctx.log_extra(**self._identity_fields(identity), dt=ctx.elapsed_ms(), status=500),
            )
            return Response(status_code=500)

        # Streamed bodies log their completion once the last byte is sent
        if not isinstance(response, StreamingResponse):
            self._log_completion(ctx, response.status_code, identity)
        return response

    def _reject(self, ctx: RequestContext, status: int, reason: str) -> Response:
        logger.warning("REQ %s", reason, extra=ctx.log_extra(status=status))
        return Response(status_code=status)

    def _log_completion(self, ctx: RequestContext, status: int, identity: ArtifactId) -> None:
        """Emit the completion record, elevated for client and server errors."""
        level = logging.WARNING if status >= 400 else logging.INFO
        logger.log(
            level,
            "RES %s",
            ctx.method,
            extra=ctx.log_extra(**self._identity_fields(identity), dt=ctx.elapsed_ms(), status=status),
        )

    @staticmethod
    def _identity_fields(identity: ArtifactId) -> Dict[str, str]:
        return {"name": identity.name, "version": identity.version, "hash": identity.hash}

    # === Verb handlers ===

    async def _handle_get(self, ctx: RequestContext, identity: ArtifactId) -> Response:
        if not self.readable:
            return Response(status_code=405)

        try:
            chunks = await run_in_threadpool(self.store.get, identity)
        except StoreError as e:
            if e.kind is StoreErrorKind.NOT_FOUND:
                return Response(status_code=404)
            raise

        return StreamingResponse(self._stream(ctx, identity, chunks), media_type="application/octet-stream")

    async def _stream(
        self, ctx: RequestContext, identity: ArtifactId, chunks: Iterator[bytes]
    ) -> AsyncIterator[bytes]:
        try:
            async for chunk in iterate_in_threadpool(chunks):
                yield chunk
        except StoreError:
            # Status is already on the wire; a read failure can only be logged
            logger.error(
                "RES %s body aborted",
                ctx.method,
                exc_info=True,
                extra=ctx.log_extra(**self._identity_fields(identity), dt=ctx.elapsed_ms(), status=200),
            )
            raise
        finally:
            # Releases the open file when the client goes away mid-body
            close = getattr(chunks, "close", None)
            if close is not None:
                close()

        self._log_completion(ctx, 200, identity)

    async def _handle_head(self, identity: ArtifactId) -> Response:
        try:
            size = await run_in_threadpool(self.store.head, identity)
        except StoreError as e:
            if e.kind is StoreErrorKind.NOT_FOUND:
                return Response(status_code=404)
            raise

        return Response(status_code=200, headers={"Content-Length": str(size)})

    async def _handle_put(self, request: Request, identity: ArtifactId) -> Response:
        if not self.writable:
            return Response(status_code=405)

        try:
            await run_in_threadpool(self.store.put, identity, _body_chunks(request))
        except StoreError as e:
            if e.kind is StoreErrorKind.ALREADY_EXISTS:
                return Response(status_code=409)
            raise
        except ClientDisconnect:
            return Response(status_code=400)

        return Response(status_code=200)


def create_app(store: ArtifactStore, readable: bool = True, writable: bool = True) -> Starlette:
    """Create the Starlette application for a store."""
    return CacheServer(store, readable=readable, writable=writable).app
