"""Client for the Jikan (MyAnimeList) metadata API."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Mapping, TypeVar

import httpx

from ..config import Settings
from ..models import CatalogEntry, EnrichmentMetadata
from ..utils import as_text, clean_title, title_cache_key
from .enrichment_queue import EnrichmentQueue, PosterCache

logger = logging.getLogger(__name__)

T = TypeVar("T")

PROVIDER_POSTER_HOSTS = ("myanimelist",)


class EnrichmentRoute(str, Enum):
    """How a call reaches the rate-limited provider.

    ``QUEUED`` goes through the shared :class:`EnrichmentQueue` and suits
    bulk work such as poster upgrades for a whole catalog page. ``DIRECT``
    waits a short fixed delay and calls the provider immediately; it is meant
    for the single metadata lookup made per detail view.
    """

    QUEUED = "queued"
    DIRECT = "direct"


class RateLimited(Exception):
    """Raised internally when the provider answers with HTTP 429."""


def is_provider_poster(url: str | None) -> bool:
    """Return ``True`` for artwork already served by the provider's CDN."""

    return bool(url) and any(host in url for host in PROVIDER_POSTER_HOSTS)


def _poster_from(result: Mapping[str, Any]) -> str | None:
    images = result.get("images")
    if not isinstance(images, Mapping):
        return None
    jpg = images.get("jpg")
    if not isinstance(jpg, Mapping):
        return None
    return as_text(jpg.get("large_image_url")) or as_text(jpg.get("image_url"))


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return None


class JikanClient:
    """Wrapper around the Jikan search and top-list endpoints."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient,
        queue: EnrichmentQueue,
        cache: PosterCache,
    ) -> None:
        self._settings = settings
        self._client = http_client
        self._queue = queue
        self._cache = cache
        self._direct_delay = settings.detail_enrichment_delay

    @property
    def cache(self) -> PosterCache:
        return self._cache

    async def fetch_metadata(
        self,
        title: str,
        *,
        route: EnrichmentRoute = EnrichmentRoute.DIRECT,
        timeout: float | None = None,
    ) -> EnrichmentMetadata | None:
        """Return provider metadata for the best match of ``title``."""

        query = clean_title(title)
        if not query:
            return None

        async def _lookup() -> EnrichmentMetadata | None:
            result = await self._search_first(query, timeout=timeout)
            if result is None:
                return None
            metadata = self._metadata_from(result)
            if metadata.poster_url:
                self._cache.set(title_cache_key(title), metadata.poster_url)
            return metadata

        return await self._dispatch(route, _lookup)

    async def fetch_poster(
        self,
        title: str,
        *,
        route: EnrichmentRoute = EnrichmentRoute.QUEUED,
        timeout: float | None = None,
    ) -> str | None:
        """Return a high resolution poster URL for ``title``.

        Cached titles are answered without touching the queue.
        """

        query = clean_title(title, strip_episode=True)
        key = title_cache_key(title)
        if not query or not key:
            return None
        cached = self._cache.get(key)
        if cached:
            return cached

        async def _lookup() -> str | None:
            # Another queued task may have resolved the same title meanwhile.
            cached_inner = self._cache.get(key)
            if cached_inner:
                return cached_inner
            result = await self._search_first(query, timeout=timeout)
            poster = _poster_from(result) if result else None
            if not poster:
                return None
            return self._cache.set(key, poster)

        return await self._dispatch(route, _lookup)

    async def top_anime(
        self, limit: int | None = None, *, timeout: float | None = None
    ) -> list[CatalogEntry]:
        """Return the provider's most popular titles as catalog entries."""

        params = {
            "limit": limit or self._settings.top_anime_limit,
            "filter": "bypopularity",
        }
        try:
            payload = await self._get("/top/anime", params=params, timeout=timeout)
        except RateLimited:
            logger.info("Jikan throttled the top anime request")
            return []
        if payload is None:
            return []
        data = payload.get("data") if isinstance(payload, Mapping) else None
        if not isinstance(data, list):
            return []

        entries: list[CatalogEntry] = []
        for item in data:
            if not isinstance(item, Mapping):
                continue
            mal_id = as_text(item.get("mal_id"))
            if not mal_id:
                continue
            entries.append(
                CatalogEntry(
                    id=mal_id,
                    title=as_text(item.get("title")) or "Unknown Title",
                    poster_url=_poster_from(item) or "",
                    rating=as_text(item.get("score")),
                    episode_count=as_text(item.get("episodes")),
                    kind=as_text(item.get("type")) or "Anime",
                    status=as_text(item.get("status")),
                    url=as_text(item.get("url")),
                )
            )
        return entries

    async def _dispatch(
        self, route: EnrichmentRoute, task: Callable[[], Awaitable[T | None]]
    ) -> T | None:
        async def _guarded() -> T | None:
            try:
                return await task()
            except RateLimited as exc:
                logger.info("Jikan throttled %s lookup %s; skipping it", route.value, exc)
                return None

        if route is EnrichmentRoute.QUEUED:
            return await self._queue.submit(_guarded)
        await asyncio.sleep(self._direct_delay)
        return await _guarded()

    async def _search_first(
        self, query: str, *, timeout: float | None
    ) -> Mapping[str, Any] | None:
        payload = await self._get(
            "/anime", params={"q": query, "limit": 1}, timeout=timeout
        )
        data = payload.get("data") if isinstance(payload, Mapping) else None
        if not isinstance(data, list) or not data:
            logger.debug("Jikan returned no match for %s", query)
            return None
        first = data[0]
        return first if isinstance(first, Mapping) else None

    async def _get(
        self,
        path: str,
        *,
        params: Mapping[str, Any],
        timeout: float | None,
    ) -> Any | None:
        request_kwargs: dict[str, Any] = {}
        if timeout is not None:
            request_kwargs["timeout"] = timeout
        try:
            response = await self._client.get(path, params=params, **request_kwargs)
        except httpx.HTTPError as exc:
            logger.warning("Jikan request %s failed: %s", path, exc)
            return None
        if response.status_code == 429:
            raise RateLimited(path)
        if response.status_code >= 400:
            logger.warning(
                "Jikan request %s failed with %s", path, response.status_code
            )
            return None
        try:
            return response.json()
        except ValueError:
            logger.warning("Unexpected non-JSON Jikan response for %s", path)
            return None

    @staticmethod
    def _metadata_from(result: Mapping[str, Any]) -> EnrichmentMetadata:
        trailer = result.get("trailer")
        trailer_url = (
            as_text(trailer.get("embed_url")) if isinstance(trailer, Mapping) else None
        )
        return EnrichmentMetadata(
            score=as_text(result.get("score")) or "N/A",
            total_episodes=as_text(result.get("episodes")) or "?",
            duration=as_text(result.get("duration")),
            rating_system=as_text(result.get("rating")),
            trailer_url=trailer_url,
            mal_id=_as_int(result.get("mal_id")),
            popularity=_as_int(result.get("popularity")),
            rank=_as_int(result.get("rank")),
            synopsis=as_text(result.get("synopsis")),
            poster_url=_poster_from(result),
        )
