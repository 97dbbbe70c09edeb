"""HTTP client for the primary anime aggregator API."""

from __future__ import annotations

import logging
from typing import Any, Mapping
from urllib.parse import quote

import httpx

from ..config import Settings

logger = logging.getLogger(__name__)


class AggregatorClient:
    """Thin wrapper returning decoded upstream payloads, or ``None`` on failure.

    Non-2xx responses are still decoded because the aggregator reports
    misses inside its JSON envelope (``{"statusCode": 404, ...}``).
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    async def fetch(
        self,
        source: str,
        *segments: str,
        params: Mapping[str, Any] | None = None,
        timeout: float | None = None,
        allow_text: bool = False,
    ) -> Any | None:
        """GET ``/{source}/{segments...}`` and return the decoded body.

        With ``allow_text`` a successful body that is not JSON is returned as
        a string, which is how some servers answer with raw embed markup.
        Error pages are never handed back as text.
        """

        if not self._settings.is_known_source(source):
            logger.warning("Ignoring request for unknown anime source %r", source)
            return None

        path = "/" + "/".join(
            [quote(source, safe="")] + [quote(segment, safe="") for segment in segments]
        )
        request_kwargs: dict[str, Any] = {}
        if params:
            request_kwargs["params"] = dict(params)
        if timeout is not None:
            request_kwargs["timeout"] = timeout

        try:
            response = await self._client.get(path, **request_kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Aggregator request %s failed: %s", path, exc)
            return None

        try:
            return response.json()
        except ValueError:
            body = response.text.strip()
            if allow_text and body and response.is_success:
                return body
            logger.warning(
                "Unexpected non-JSON aggregator response for %s (HTTP %s)",
                path,
                response.status_code,
            )
            return None
