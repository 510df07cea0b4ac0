"""Static files served from a directory on disk.

The file itself is sent by the server (RSGI `response_file`), so no file
content is read here.
"""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import TYPE_CHECKING

from arbor.tree import split_path

if TYPE_CHECKING:
    from arbor.http import Response

logger = logging.getLogger(__name__)


def _get_content_type(path: Path) -> str:
    """Guess MIME type for a file."""
    mime_type, _ = mimetypes.guess_type(str(path))
    return mime_type or "application/octet-stream"


class StaticFiles:
    """Serves the files under `directory`, nothing outside it."""

    __slots__ = ("directory",)

    def __init__(self, directory: Path) -> None:
        self.directory = directory.resolve()

    def resolve(self, path: str) -> Path | None:
        """Map a request path to a regular file inside the directory, or None."""
        segments = split_path(path)
        if not segments:
            return None
        candidate = self.directory.joinpath(*segments).resolve()
        if not candidate.is_relative_to(self.directory):
            logger.warning("static path escapes %s: %s", self.directory, path)
            return None
        if not candidate.is_file():
            return None
        return candidate

    async def try_serve(self, path: str, response: Response) -> bool:
        """Send the file at path. Returns False if there is no such file."""
        file = self.resolve(path)
        if file is None:
            return False
        response.set_header("cache-control", "public, max-age=0, must-revalidate")
        response.send_file(str(file), _get_content_type(file))
        return True
