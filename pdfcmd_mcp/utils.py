import logging
import os

from pydantic import AnyUrl, TypeAdapter, ValidationError

logger = logging.getLogger(__name__)
_PROGRESS_ENABLED = os.getenv("PDFCMD_PROGRESS", "0") not in {"", "0", "false", "False"}
_URL_ADAPTER: TypeAdapter[AnyUrl] = TypeAdapter(AnyUrl)


def report_progress(message: str) -> None:
    """Emit opt-in progress updates for long-running operations."""
    if _PROGRESS_ENABLED:
        logger.info("progress: %s", message)


def is_valid_url(value: object) -> bool:
    """
    Return True for an absolute URL with both a scheme and a host.

    Host-less URLs such as ``file:///tmp/a.html`` are rejected, as is any
    value containing whitespace (pydantic would otherwise percent-encode it).
    """
    if not isinstance(value, str) or not value.strip():
        return False
    if any(ch.isspace() for ch in value):
        return False
    try:
        url = _URL_ADAPTER.validate_python(value)
    except ValidationError:
        return False
    return bool(url.host)


def truncate_text(text: str, limit: int = 200) -> str:
    """Keep log lines bounded when echoing remote payloads."""
    if len(text) <= limit:
        return text
    return f"{text[:limit]}... (truncated {len(text) - limit} chars)"


__all__ = ["is_valid_url", "report_progress", "truncate_text"]
