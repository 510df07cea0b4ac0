"""Application: the root router plus dispatch, static fallback and serving."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from arbor.http import Request, Response
from arbor.router import Router
from arbor.static import StaticFiles
from arbor.tree import find_handler, http_route, split_path

if TYPE_CHECKING:
    from arbor.http import RequestHandler
    from arbor.rsgi import HTTPProtocol, HTTPScope

logger = logging.getLogger(__name__)


async def _done() -> None:
    pass


async def run_chain(
    middlewares: Sequence[RequestHandler],
    handler: RequestHandler,
    request: Request,
    response: Response,
) -> bool:
    """Run middlewares in order, then the handler.

    Each middleware receives a continuation that runs the rest of the chain; if
    it never awaits it, nothing after it runs. Calling the continuation twice
    runs the rest of the chain once.

    Returns whether the handler was reached.
    """
    reached = False

    async def run(index: int) -> None:
        nonlocal reached
        if index == len(middlewares):
            reached = True
            await handler(request, response, _done)
            return

        called = False

        async def next_() -> None:
            nonlocal called
            if called:
                return
            called = True
            await run(index + 1)

        await middlewares[index](request, response, next_)

    await run(0)
    return reached


class App(Router):
    """Top-level router that serves requests.

    Requests that match no route fall back to the static directory (if one is
    set), then to a JSON 404.
    """

    __slots__ = ("_log", "_static")

    def __init__(
        self,
        *,
        log: bool = False,
        static_dir: str | Path | None = None,
    ) -> None:
        super().__init__()
        self._log = log
        self._static: StaticFiles | None = None
        if static_dir is not None:
            self.static(static_dir)

    def static(self, directory: str | Path) -> None:
        """Sets the folder to look for static files in, relative to the cwd."""
        self._check_open()
        self._static = StaticFiles(Path.cwd() / directory)

    async def __rsgi__(self, scope: HTTPScope, proto: HTTPProtocol) -> None:
        if scope.proto != "http":
            msg = f"unsupported protocol {scope.proto!r}"
            raise ValueError(msg)
        request = Request(scope, proto)
        response = Response(proto)
        await self.dispatch(request, response)

        if not response.sent:
            logger.warning(
                "[%d] %s %s: no response sent, middleware chain stalled "
                "or handler never responded",
                request.id,
                request.method.value,
                request.url,
            )
            response.status(500).end()
        if self._log:
            logger.info(
                "[%d] %s %s | done in: %.3fs | status: %d",
                request.id,
                request.method.value,
                request.url,
                time.perf_counter() - request.start,
                response.code,
            )

    def __rsgi_init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self.finalize()

    def __rsgi_del__(self, loop: asyncio.AbstractEventLoop) -> None:
        pass

    async def dispatch(self, request: Request, response: Response) -> None:
        """Resolve the route for a request and run it."""
        handler, middlewares, route = find_handler(
            split_path(request.path), request.method, self._root
        )
        if handler is not None:
            token = http_route.set(route)
            try:
                reached = await run_chain(middlewares, handler, request, response)
            finally:
                http_route.reset(token)
            if not reached:
                logger.debug(
                    "[%d] %s halted before its handler", request.id, route
                )
            return

        if self._static is not None and await self._static.try_serve(
            request.path, response
        ):
            return
        response.status(404).send(
            {"error": "NOT FOUND", "url": request.url}, content_type="application/json"
        )

    async def serve(
        self, address: str = "127.0.0.1", port: int = 8000, **options: object
    ) -> None:
        """Serve the app with granian until cancelled."""
        from arbor.server import serve

        await serve(self, address=address, port=port, **options)

    def listen(self, port: int, address: str = "127.0.0.1") -> None:
        """Listens on port for http requests, blocking until interrupted."""
        if self._log:
            logger.info("Listening on port %d", port)
        asyncio.run(self.serve(address, port))
