from __future__ import annotations

import logging
import mimetypes
import os
import re
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType
from typing import Any, Mapping, Protocol
from urllib.parse import quote

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "pdfcmd_tmpfile_"
CHUNK_SIZE = 64 * 1024

# Content-Length makes iOS Safari abort downloads ("network connection was lost").
_IOS_USER_AGENT = re.compile(r"i(phone|pad|pod)", re.IGNORECASE)

_MAGIC_TYPES: tuple[tuple[bytes, str], ...] = (
    (b"%PDF-", "application/pdf"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"PK\x03\x04", "application/zip"),
)
_HTML_PREFIXES = (b"<!doctype html", b"<html")


class _Omit:
    def __repr__(self) -> str:
        return "OMIT"


OMIT: Any = _Omit()
"""Header value that suppresses an otherwise automatic header in ``TmpFile.send``."""


class ResponseWriter(Protocol):
    def set_header(self, name: str, value: str) -> None: ...

    def write(self, data: bytes) -> Any: ...


@dataclass
class BufferedResponse:
    """In-memory response target collecting headers and body bytes."""

    headers: list[tuple[str, str]] = field(default_factory=list)
    body: bytearray = field(default_factory=bytearray)

    def set_header(self, name: str, value: str) -> None:
        self.headers.append((name, value))

    def write(self, data: bytes) -> int:
        self.body.extend(data)
        return len(data)

    def header(self, name: str) -> str | None:
        values = self.header_values(name)
        return values[0] if values else None

    def header_values(self, name: str) -> list[str]:
        lowered = name.lower()
        return [value for key, value in self.headers if key.lower() == lowered]


class TmpFile:
    """
    Scratch file holding rendered output.

    Use it as a context manager: the backing file is deleted once on exit
    unless ``delete`` is False. ``str(tmp)`` is the full path, so the file
    can be handed to ``Command.add_args`` as an ``input`` value.
    """

    DEFAULT_CONTENT_TYPE = "application/octet-stream"

    default_headers: dict[str, Any] = {
        "Pragma": "public",
        "Expires": 0,
        "Cache-Control": "must-revalidate, post-check=0, pre-check=0",
        "Content-Transfer-Encoding": "binary",
    }

    def __init__(
        self,
        content: bytes | str = b"",
        suffix: str | None = None,
        prefix: str | None = None,
        directory: str | Path | None = None,
        *,
        delete: bool = True,
        ignore_user_abort: bool = True,
    ):
        if directory is None:
            directory = self.get_temp_dir()
        if prefix is None:
            prefix = DEFAULT_PREFIX

        fd, name = tempfile.mkstemp(suffix=suffix or "", prefix=prefix, dir=str(directory))
        data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)

        self._path = Path(name)
        self._closed = False
        self.delete = delete
        self.ignore_user_abort = ignore_user_abort
        logger.debug("Created temp file %s (%d bytes)", self._path, len(data))

    def __enter__(self) -> TmpFile:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __str__(self) -> str:
        return str(self._path)

    def __repr__(self) -> str:
        return f"TmpFile({str(self._path)!r}, delete={self.delete})"

    @property
    def path(self) -> Path:
        return self._path

    @property
    def file_name(self) -> str:
        return str(self._path)

    @property
    def closed(self) -> bool:
        return self._closed

    def as_command_input(self) -> str:
        return str(self._path)

    def read_bytes(self) -> bytes:
        return self._path.read_bytes()

    def write_bytes(self, data: bytes) -> None:
        """Replace the file contents."""
        self._path.write_bytes(data)

    def close(self) -> None:
        """Release the backing file; only the first call has an effect."""
        if self._closed:
            return
        self._closed = True
        if self.delete:
            self._path.unlink(missing_ok=True)
            logger.debug("Deleted temp file %s", self._path)

    def save_as(self, name: str | Path) -> bool:
        """Copy the file to a permanent location. Returns False when the copy fails."""
        try:
            shutil.copyfile(self._path, name)
        except OSError as exc:
            logger.warning("Could not save %s as %s: %s", self._path, name, exc)
            return False
        return True

    def detect_content_type(self) -> str:
        """Guess the MIME type from the leading bytes, then from the file name."""
        try:
            with self._path.open("rb") as fh:
                head = fh.read(512)
        except OSError:
            return self.DEFAULT_CONTENT_TYPE

        for magic, mime in _MAGIC_TYPES:
            if head.startswith(magic):
                return mime
        if head.lstrip().lower().startswith(_HTML_PREFIXES):
            return "text/html"

        guessed, _ = mimetypes.guess_type(self._path.name)
        return guessed or self.DEFAULT_CONTENT_TYPE

    def build_headers(
        self,
        filename: str | None = None,
        content_type: str | None = None,
        inline: bool = False,
        headers: Mapping[str, Any] | None = None,
        user_agent: str = "",
    ) -> dict[str, Any]:
        """Return the header set ``send`` would emit, ``OMIT`` markers included."""
        # Header names compare case-insensitively; the last spelling wins.
        merged: dict[str, tuple[str, Any]] = {}
        for source in (self.default_headers, headers or {}):
            for name, value in source.items():
                merged[name.lower()] = (name, value)

        if content_type is not None:
            merged["content-type"] = ("Content-Type", content_type)
        elif "content-type" not in merged:
            merged["content-type"] = ("Content-Type", self.detect_content_type())

        if "content-length" not in merged and not _IOS_USER_AGENT.search(user_agent or ""):
            merged["content-length"] = ("Content-Length", self._path.stat().st_size)

        if (filename is not None or inline) and "content-disposition" not in merged:
            disposition = "inline" if inline else "attachment"
            name = filename if filename is not None else self._path.name
            merged["content-disposition"] = (
                "Content-Disposition",
                f'{disposition}; filename="{name}"; ' f"filename*=UTF-8''{quote(name, safe='')}",
            )
        return dict(merged.values())

    def send(
        self,
        response: ResponseWriter,
        filename: str | None = None,
        content_type: str | None = None,
        inline: bool = False,
        headers: Mapping[str, Any] | None = None,
        user_agent: str = "",
    ) -> None:
        """
        Send the file to a client, inline or as a download.

        Args:
            response: target receiving headers and body chunks
            filename: download name; when omitted and ``inline`` is False no
                Content-Disposition is sent
            content_type: explicit Content-Type; detected when None
            inline: force inline display even when a filename is given
            headers: extra headers; they override the defaults, a list value
                repeats the header and ``OMIT`` suppresses it
            user_agent: requesting client's User-Agent, used to skip
                Content-Length for iOS devices
        """
        merged = self.build_headers(filename, content_type, inline, headers, user_agent)
        _send_headers(response, merged)

        try:
            with self._path.open("rb") as fh:
                for chunk in iter(lambda: fh.read(CHUNK_SIZE), b""):
                    response.write(chunk)
        except ConnectionError as exc:
            if not self.ignore_user_abort:
                raise
            logger.warning("Client disconnected while streaming %s: %s", self._path, exc)

    @staticmethod
    def get_temp_dir() -> str:
        return tempfile.gettempdir()


def _send_headers(response: ResponseWriter, headers: Mapping[str, Any]) -> None:
    for name, value in headers.items():
        if value is OMIT:
            continue
        if isinstance(value, (list, tuple)):
            for item in value:
                response.set_header(name, str(item))
        else:
            response.set_header(name, str(value))


__all__ = ["BufferedResponse", "OMIT", "ResponseWriter", "TmpFile"]
