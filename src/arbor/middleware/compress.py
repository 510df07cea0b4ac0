"""Response compression middleware.

Negotiates Accept-Encoding and compresses textual responses with zstd, brotli
or gzip. File responses are passed through untouched.

Install with: uv add "arbor[compress]"
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from arbor.http import Next, Request, RequestHandler, Response
    from arbor.rsgi import HTTPProtocol

try:
    from cramjam import (
        brotli,  # ty: ignore[unresolved-import]  # fixed in cramjam >2.11
        gzip,  # ty: ignore[unresolved-import]  # fixed in cramjam >2.11
        zstd,  # ty: ignore[unresolved-import]  # fixed in cramjam >2.11
    )
except ImportError as e:
    msg = (
        "Compression middleware requires the 'compress' extra. "
        "Install with: uv add 'arbor[compress]'"
    )
    raise ImportError(msg) from e

from arbor.rsgi import HTTPProtocolProxy

type Encoding = Literal["zstd", "br", "gzip"]
type Compressor = Callable[[bytes], bytes]

# (encoding, level) in server priority order
DEFAULT_ENCODINGS: tuple[tuple[Encoding, int], ...] = (
    ("zstd", 3),
    ("br", 4),
    ("gzip", 6),
)
DEFAULT_MIN_SIZE = 500
DEFAULT_COMPRESSIBLE_TYPES: frozenset[str] = frozenset(
    {
        "text/html",
        "text/css",
        "text/plain",
        "text/javascript",
        "text/xml",
        "application/javascript",
        "application/json",
        "application/xml",
        "image/svg+xml",
    }
)

_MAX_LEVELS: dict[str, int] = {"zstd": 22, "br": 11, "gzip": 9}


def _compressor(encoding: str, level: int) -> Compressor:
    if encoding == "zstd":
        return lambda data: bytes(zstd.compress(data, level=level))
    elif encoding == "br":
        return lambda data: bytes(brotli.compress(data, level=level))
    else:  # gzip
        return lambda data: bytes(gzip.compress(data, level=level))


def _build_encoding_cache(
    encodings: Iterable[tuple[str, int]],
) -> tuple[dict[str, int], dict[str, tuple[str, Compressor]]]:
    """Validate encodings and precompute (priority, encoding -> compressor)."""
    priority: dict[str, int] = {}
    cache: dict[str, tuple[str, Compressor]] = {}
    for i, (encoding, level) in enumerate(encodings):
        if encoding not in _MAX_LEVELS:
            msg = f"unsupported encoding {encoding!r}"
            raise ValueError(msg)
        if not 0 <= level <= _MAX_LEVELS[encoding]:
            msg = f"{encoding} level must be between 0 and {_MAX_LEVELS[encoding]}, got {level}"
            raise ValueError(msg)
        priority[encoding] = i
        cache[encoding] = (encoding, _compressor(encoding, level))
    if not cache:
        msg = "at least one encoding is required"
        raise ValueError(msg)
    return priority, cache


def _parse_accept_encoding(header: str) -> list[tuple[str, float]]:
    """Parse Accept-Encoding header and return encodings with quality values."""
    encodings: list[tuple[str, float]] = []
    for part in header.split(","):
        part = part.strip()
        if not part:
            continue
        q_idx = part.find(";q=")
        if q_idx == -1:  # no quality value
            encodings.append((part.lower(), 1.0))
        else:
            try:
                quality = float(part[q_idx + 3 :])
            except ValueError:
                quality = 1.0
            encodings.append((part[:q_idx].strip().lower(), quality))
    return encodings


def _select_encoding(
    accept_encoding: str | None,
    priority: dict[str, int],
    cache: dict[str, tuple[str, Compressor]],
) -> tuple[str, Compressor] | None:
    """Select the best encoding the client accepts, or None.

    Higher client quality wins; equal qualities fall back to server priority.
    """
    if not accept_encoding:
        return None

    wildcard_quality = 0.0
    explicit: dict[str, float] = {}
    for name, quality in _parse_accept_encoding(accept_encoding):
        if name == "*":
            wildcard_quality = quality
        else:
            explicit[name] = quality

    supported: list[tuple[str, float, int]] = []
    for encoding in cache:
        quality = explicit.get(encoding, wildcard_quality)
        if quality > 0:
            supported.append((encoding, quality, priority[encoding]))

    if not supported:
        return None

    supported.sort(key=lambda x: (-x[1], x[2]))
    return cache[supported[0][0]]


class _CompressingHTTPProtocol(HTTPProtocolProxy):
    """Compresses str/bytes response bodies, everything else passes through."""

    __slots__ = ("_compressor", "_encoding", "_min_size", "_types")

    def __init__(
        self,
        proto: HTTPProtocol,
        encoding: str,
        compressor: Compressor,
        min_size: int,
        types: frozenset[str],
    ) -> None:
        super().__init__(proto)
        self._encoding = encoding
        self._compressor = compressor
        self._min_size = min_size
        self._types = types

    def response_str(
        self, status: int, headers: list[tuple[str, str]], body: str
    ) -> None:
        self.response_bytes(status, headers, body.encode("utf-8"))

    def response_bytes(
        self, status: int, headers: list[tuple[str, str]], body: bytes
    ) -> None:
        if self._should_compress(headers, body):
            body = self._compressor(body)
            headers = [
                (name, value)
                for name, value in headers
                if name.lower() != "content-length"
            ]
            headers.append(("content-encoding", self._encoding))
            headers.append(("vary", "accept-encoding"))
        super().response_bytes(status, headers, body)

    def _should_compress(self, headers: list[tuple[str, str]], body: bytes) -> bool:
        if len(body) < self._min_size:
            return False
        content_type = ""
        for name, value in headers:
            name = name.lower()
            if name == "content-encoding":  # already encoded
                return False
            if name == "content-type":
                content_type = value.split(";", 1)[0].strip().lower()
        return content_type in self._types


def compress(
    *,
    encodings: Iterable[tuple[Encoding, int]] = DEFAULT_ENCODINGS,
    min_size: int = DEFAULT_MIN_SIZE,
    compressible_types: Iterable[str] = DEFAULT_COMPRESSIBLE_TYPES,
) -> RequestHandler:
    """Create response compression middleware.

    Args:
        encodings: (encoding, level) pairs in server priority order.
            Default: zstd level 3, br level 4, gzip level 6.
        min_size: Bodies smaller than this many bytes are sent as is.
        compressible_types: MIME types eligible for compression.

    Example:
        app.use(compress())

        # gzip only
        app.use(compress(encodings=(("gzip", 9),)))
    """
    if min_size < 0:
        msg = f"min_size must be >= 0, got {min_size}"
        raise ValueError(msg)
    priority, cache = _build_encoding_cache(encodings)
    types = frozenset(t.lower() for t in compressible_types)

    async def middleware(request: Request, response: Response, next: Next) -> None:
        selected = _select_encoding(
            request.headers.get("accept-encoding"), priority, cache
        )
        if selected is not None:
            encoding, compressor = selected
            response.proto = _CompressingHTTPProtocol(
                response.proto, encoding, compressor, min_size, types
            )
        await next()

    return middleware
