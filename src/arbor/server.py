"""Serve an app with granian's embedded server.

Install with: uv add "arbor[server]"
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from arbor.app import App

try:
    from granian.server.embed import Server
except ImportError as e:
    msg = (
        "Serving requires the 'server' extra. "
        "Install with: uv add 'arbor[server]'"
    )
    raise ImportError(msg) from e

logger = logging.getLogger(__name__)


async def serve(
    app: App,
    *,
    address: str = "127.0.0.1",
    port: int = 8000,
    **options: Any,
) -> None:
    """Run `app` until the task is cancelled.

    Extra keyword arguments are passed through to granian's Server
    (e.g. `log_access=True`).
    """
    app.finalize()
    server = Server(app, address=address, port=port, **options)
    logger.info("serving on http://%s:%d", address, port)
    try:
        await server.serve()
    except asyncio.CancelledError:
        await server.shutdown()
        raise
