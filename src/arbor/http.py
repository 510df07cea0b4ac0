"""Request and response wrappers over an RSGI HTTP scope/protocol pair."""

from __future__ import annotations

import itertools
import json
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from arbor.parsing import JSON, mime_type, parse_body, split_query
from arbor.tree import Method

if TYPE_CHECKING:
    from collections.abc import Mapping

    from arbor.rsgi import HTTPProtocol, HTTPScope

type Next = Callable[[], Awaitable[None]]
type RequestHandler = Callable[[Request, Response, Next], Awaitable[None]]

_request_ids = itertools.count(1)


class Request:
    """An incoming HTTP request.

    `url` is the path plus query string as received, `path` and `query` are
    its two halves. The body is read lazily with `await request.body()`.
    """

    __slots__ = (
        "_body",
        "_body_read",
        "headers",
        "id",
        "method",
        "path",
        "proto",
        "query",
        "scope",
        "start",
        "url",
    )

    def __init__(self, scope: HTTPScope, proto: HTTPProtocol) -> None:
        self.scope = scope
        self.proto = proto
        self.id = next(_request_ids)
        self.start = time.perf_counter()
        self.method = Method.from_request(scope.method)
        self.url = (
            f"{scope.path}?{scope.query_string}" if scope.query_string else scope.path
        )
        self.path, self.query = split_query(self.url)
        self.headers: Mapping[str, str] = scope.headers
        self._body: Any = None
        self._body_read = False

    async def body(self) -> Any:
        """Parsed request body, None for GET requests or unparseable bodies."""
        if not self._body_read:
            self._body_read = True
            if self.method is not Method.GET:
                raw = await self.proto()
                self._body = parse_body(raw, self.headers.get("content-type"))
        return self._body


class Response:
    """An outgoing HTTP response, written once through `proto`.

    Middleware may replace `proto` with a wrapper (compression, tracing) before
    calling the next step of the chain.
    """

    __slots__ = ("code", "headers", "proto", "sent")

    def __init__(self, proto: HTTPProtocol) -> None:
        self.proto = proto
        self.code = 200
        self.headers: dict[str, str] = {}
        self.sent = False

    def status(self, code: int) -> Response:
        self.code = code
        return self

    def set_header(self, name: str, value: str | int | list[str]) -> Response:
        if isinstance(value, list):
            value = ", ".join(value)
        self.headers[name.lower()] = str(value)
        return self

    def remove_header(self, name: str) -> Response:
        self.headers.pop(name.lower(), None)
        return self

    def send(self, data: Any, *, content_type: str | None = None) -> None:
        """Send `data` as the response body.

        Without a content type, str is sent as text/plain, bytes as
        application/octet-stream and anything else serialised as JSON.
        """
        if content_type is None:
            if isinstance(data, str):
                content_type = "text/plain"
            elif isinstance(data, bytes):
                content_type = "application/octet-stream"
            else:
                content_type = JSON
        if mime_type(content_type) == JSON:
            data = json.dumps(data)
        elif not isinstance(data, str | bytes):
            data = str(data)

        self._mark_sent()
        if isinstance(data, bytes):
            self.proto.response_bytes(
                self.code, self._headers(content_type), data
            )
        else:
            if "charset=" not in content_type.lower():
                content_type = f"{content_type}; charset=utf-8"
            self.proto.response_str(self.code, self._headers(content_type), data)

    def send_file(self, path: str, content_type: str) -> None:
        """Hand a file on disk to the server to send as the response body."""
        self._mark_sent()
        self.proto.response_file(self.code, self._headers(content_type), path)

    def end(self) -> None:
        """Send the response with no body."""
        self._mark_sent()
        self.proto.response_empty(self.code, list(self.headers.items()))

    def _mark_sent(self) -> None:
        if self.sent:
            msg = "response already sent"
            raise RuntimeError(msg)
        self.sent = True

    def _headers(self, content_type: str) -> list[tuple[str, str]]:
        headers = {"content-type": content_type, **self.headers}
        return list(headers.items())
