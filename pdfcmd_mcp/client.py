import logging
from typing import Any

import httpx

from .utils import truncate_text

logger = logging.getLogger(__name__)


class ConversionClient:
    """
    Thin JSON-over-HTTP transport for the remote conversion service.

    One request per call, no retries. The timeout is handed to httpx as-is;
    enforcing it is the transport's job.
    """

    def __init__(
        self,
        timeout: float | None = 30.0,
        headers: dict[str, str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ):
        self.timeout = timeout
        self.headers = dict(headers or {})
        self._transport = transport

    def post_json(self, url: str, payload: dict[str, Any]) -> httpx.Response:
        """POST ``payload`` as JSON and return the fully read response."""
        logger.debug("POST %s options=%s", url, truncate_text(str(payload.get("options", ""))))
        with httpx.Client(timeout=self.timeout, headers=self.headers, transport=self._transport) as client:
            response = client.post(url, json=payload)
        logger.debug("POST %s -> %s (%d bytes)", url, response.status_code, len(response.content))
        return response


__all__ = ["ConversionClient"]
