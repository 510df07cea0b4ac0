"""Request body and query string parsing.

Both use stdlib `json` and `urllib.parse`; neither raises on bad input.
"""

import json
import logging
from typing import Any
from urllib.parse import parse_qsl

logger = logging.getLogger(__name__)

JSON = "application/json"
FORM_URLENCODED = "application/x-www-form-urlencoded"


def split_query(url: str) -> tuple[str, dict[str, str]]:
    """Split "path?query" at the first "?".

    The query is decoded into a mapping, last value wins on duplicate keys.
    The path is returned untouched.
    """
    path, _, query = url.partition("?")
    return path, dict(parse_qsl(query, keep_blank_values=True))


def mime_type(content_type: str | None) -> str:
    """Bare lowercased MIME type of a content-type header, "" when absent."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def parse_body(raw: bytes, content_type: str | None) -> Any:
    """Parse a request body according to its declared content type.

    Supports JSON and urlencoded forms. Returns None for an empty body, an
    unknown or absent content type, or a body that fails to parse.
    """
    if not raw:
        return None
    media_type = mime_type(content_type)
    if media_type == JSON:
        try:
            return json.loads(raw)
        except (ValueError, RecursionError):  # also UnicodeDecodeError, deep nesting
            logger.warning("could not parse request body as json", exc_info=True)
            return None
    if media_type == FORM_URLENCODED:
        try:
            return dict(parse_qsl(raw.decode("utf-8"), keep_blank_values=True))
        except UnicodeDecodeError:
            logger.warning("could not parse urlencoded request body", exc_info=True)
            return None
    return None
