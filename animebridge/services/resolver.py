"""Resolution engine: list, search, detail, episode and server lookups.

Each public coroutine returns canonical records or an empty/absent value.
Transport and parse failures are logged by the upstream clients and never
propagate past this module.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal, Sequence

from ..config import Settings
from ..models import (
    CatalogEntry,
    CatalogPage,
    DetailRecord,
    Genre,
    HomeFeed,
    Playback,
    StreamResponse,
    StreamServer,
)
from ..normalizer import (
    is_not_found,
    normalize_detail,
    normalize_genre_list,
    normalize_list,
    normalize_server_url,
    normalize_stream,
)
from ..utils import (
    ensure_https_scheme,
    last_path_segment,
    playback_kind,
    slug_to_query,
)
from .aggregator import AggregatorClient
from .jikan import EnrichmentRoute, JikanClient, is_provider_poster

logger = logging.getLogger(__name__)

DetailEnrichment = Literal["background", "inline", "none"]

PAGED_CATEGORIES = {"ongoing", "completed"}
GENRE_CATEGORIES = {"movie", "ova"}


class ResolutionEngine:
    """Orchestrates the list → detail → episode → server lookup chain."""

    def __init__(
        self,
        settings: Settings,
        aggregator: AggregatorClient,
        jikan: JikanClient,
    ) -> None:
        self._settings = settings
        self._aggregator = aggregator
        self._jikan = jikan
        self._enrichment_jobs: set[asyncio.Task[None]] = set()

    async def list_catalog(
        self,
        source: str,
        category: str,
        page: int = 1,
        *,
        timeout: float | None = None,
    ) -> CatalogPage:
        """Return one page of a catalog.

        ``category`` is ``ongoing``, ``completed``, ``anime`` (the full
        list), ``movie``, ``ova`` or ``genre/<genre id>``.
        """

        segments, paged = self._catalog_path(category)
        if segments is None:
            logger.warning("Unknown catalog category %r for %s", category, source)
            return CatalogPage()
        params = {"page": page} if paged else None
        payload = await self._aggregator.fetch(
            source, *segments, params=params, timeout=timeout
        )
        return normalize_list(payload)

    async def ongoing(self, source: str, page: int = 1, **kwargs: Any) -> CatalogPage:
        return await self.list_catalog(source, "ongoing", page, **kwargs)

    async def completed(self, source: str, page: int = 1, **kwargs: Any) -> CatalogPage:
        return await self.list_catalog(source, "completed", page, **kwargs)

    async def category(
        self, source: str, kind: Literal["movie", "ova"], page: int = 1, **kwargs: Any
    ) -> CatalogPage:
        return await self.list_catalog(source, kind, page, **kwargs)

    async def genre_catalog(
        self, source: str, genre_id: str, page: int = 1, **kwargs: Any
    ) -> CatalogPage:
        return await self.list_catalog(source, f"genre/{genre_id}", page, **kwargs)

    async def full_list(self, source: str, **kwargs: Any) -> list[CatalogEntry]:
        page = await self.list_catalog(source, "anime", **kwargs)
        return page.entries

    async def list_genres(
        self, source: str, *, timeout: float | None = None
    ) -> list[Genre]:
        payload = await self._aggregator.fetch(source, "genre", timeout=timeout)
        return normalize_genre_list(payload)

    async def search(
        self, source: str, query: str, *, timeout: float | None = None
    ) -> list[CatalogEntry]:
        """Search by query parameter, retrying with the path-segment variant."""

        query = query.strip()
        if not query:
            return []
        payload = await self._aggregator.fetch(
            source, "search", params={"q": query}, timeout=timeout
        )
        entries = normalize_list(payload).entries
        if entries and not is_not_found(payload):
            return entries

        logger.info("Query search for %r on %s missed, trying path search", query, source)
        retry_payload = await self._aggregator.fetch(
            source, "search", query, timeout=timeout
        )
        retry_entries = normalize_list(retry_payload).entries
        return retry_entries or entries

    async def get_detail(
        self,
        source: str,
        anime_id: str,
        *,
        enrichment: DetailEnrichment = "background",
        timeout: float | None = None,
    ) -> DetailRecord | None:
        """Fetch a detail record, recovering stale ids through search.

        ``enrichment`` selects how provider metadata is merged: scheduled in
        the background after the record is returned, awaited before
        returning, or skipped.
        """

        record = await self._fetch_detail(source, anime_id, timeout=timeout)
        if record is None:
            record = await self._fallback_detail(source, anime_id, timeout=timeout)
        if record is None:
            logger.info("No detail found for %s on %s", anime_id, source)
            return None

        if enrichment == "inline":
            await self.enrich_detail(record, timeout=timeout)
        elif enrichment == "background":
            self._schedule_enrichment(record, timeout=timeout)
        return record

    async def get_episode_stream(
        self, source: str, episode_id: str, *, timeout: float | None = None
    ) -> StreamResponse | None:
        payload = await self._aggregator.fetch(
            source, "episode", episode_id, timeout=timeout
        )
        stream = normalize_stream(payload, episode_id=episode_id)
        if stream is None:
            logger.debug("No stream data for episode %s on %s", episode_id, source)
        return stream

    async def resolve_server_url(
        self, source: str, server_id: str, *, timeout: float | None = None
    ) -> str | None:
        payload = await self._aggregator.fetch(
            source, "server", server_id, timeout=timeout, allow_text=True
        )
        url = normalize_server_url(payload)
        if url is None:
            logger.debug("Server %s on %s did not resolve to a URL", server_id, source)
        return url

    @staticmethod
    def default_server(stream: StreamResponse | None) -> StreamServer | None:
        """Return the server a player should try first."""

        if stream is None or not stream.servers:
            return None
        return stream.servers[0]

    async def play(
        self,
        source: str,
        server: StreamServer,
        *,
        timeout: float | None = None,
    ) -> Playback | None:
        """Turn a stream server into a URL and player kind."""

        url = server.direct_url
        if not url and server.server_id:
            url = await self.resolve_server_url(source, server.server_id, timeout=timeout)
        if not url:
            return None
        url = ensure_https_scheme(url.replace("&amp;", "&"))
        return Playback(url=url, kind=playback_kind(url))

    async def top_anime(
        self, limit: int | None = None, *, timeout: float | None = None
    ) -> list[CatalogEntry]:
        return await self._jikan.top_anime(limit, timeout=timeout)

    async def home_feed(
        self, source: str, *, timeout: float | None = None
    ) -> HomeFeed:
        """Fetch the landing-page sections concurrently."""

        ongoing, movies, completed, popular = await asyncio.gather(
            self.ongoing(source, 1, timeout=timeout),
            self.category(source, "movie", 1, timeout=timeout),
            self.completed(source, 1, timeout=timeout),
            self.top_anime(timeout=timeout),
        )
        return HomeFeed(
            ongoing=ongoing.entries,
            movies=movies.entries,
            completed=completed.entries,
            popular=popular,
        )

    async def upgrade_posters(
        self,
        entries: Sequence[CatalogEntry],
        *,
        timeout: float | None = None,
    ) -> list[CatalogEntry]:
        """Swap in provider posters for a batch of entries via the queue."""

        async def _upgrade(entry: CatalogEntry) -> CatalogEntry:
            if is_provider_poster(entry.poster_url):
                return entry
            poster = await self.poster_for(entry.title, timeout=timeout)
            if not poster:
                return entry
            return entry.model_copy(update={"poster_url": poster})

        return list(await asyncio.gather(*(_upgrade(entry) for entry in entries)))

    async def poster_for(
        self, title: str, *, timeout: float | None = None
    ) -> str | None:
        """Return a provider poster for one title through the shared queue."""

        try:
            return await self._jikan.fetch_poster(
                title, route=EnrichmentRoute.QUEUED, timeout=timeout
            )
        except Exception as exc:
            logger.warning("Poster lookup for %s failed: %s", title, exc)
            return None

    async def enrich_detail(
        self, record: DetailRecord, *, timeout: float | None = None
    ) -> DetailRecord:
        """Merge provider metadata into ``record`` in place."""

        record.enrichment = "pending"
        try:
            metadata = await self._jikan.fetch_metadata(
                record.title, route=EnrichmentRoute.DIRECT, timeout=timeout
            )
        except Exception as exc:
            logger.warning("Metadata enrichment for %s failed: %s", record.title, exc)
            metadata = None
        if metadata is None:
            record.enrichment = "absent"
            return record
        record.merge_enrichment(metadata)
        return record

    async def wait_for_enrichment(self) -> None:
        """Wait until every background enrichment has finished."""

        while self._enrichment_jobs:
            await asyncio.gather(*list(self._enrichment_jobs), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel background enrichment still in flight."""

        jobs = list(self._enrichment_jobs)
        for job in jobs:
            job.cancel()
        await asyncio.gather(*jobs, return_exceptions=True)
        self._enrichment_jobs.clear()

    async def _fetch_detail(
        self, source: str, anime_id: str, *, timeout: float | None
    ) -> DetailRecord | None:
        payload = await self._aggregator.fetch(
            source, "anime", anime_id, timeout=timeout
        )
        return normalize_detail(payload, fallback_id=anime_id)

    async def _fallback_detail(
        self, source: str, anime_id: str, *, timeout: float | None
    ) -> DetailRecord | None:
        query = slug_to_query(anime_id)
        logger.info("Direct detail fetch for %s failed, searching for %r", anime_id, query)
        results = await self.search(source, query, timeout=timeout)
        if not results:
            return None
        # First result wins; the aggregator offers nothing to rank by.
        first = results[0]
        candidate_id = first.id or last_path_segment(first.url)
        if not candidate_id or candidate_id == anime_id:
            return None
        logger.info("Search matched %s to %s, retrying detail fetch", anime_id, candidate_id)
        return await self._fetch_detail(source, candidate_id, timeout=timeout)

    def _schedule_enrichment(
        self, record: DetailRecord, *, timeout: float | None
    ) -> None:
        record.enrichment = "pending"
        job = asyncio.create_task(self.enrich_detail(record, timeout=timeout))
        self._enrichment_jobs.add(job)
        job.add_done_callback(self._enrichment_jobs.discard)

    @staticmethod
    def _catalog_path(category: str) -> tuple[tuple[str, ...] | None, bool]:
        category = category.strip().strip("/")
        if category in PAGED_CATEGORIES:
            return (category,), True
        if category == "anime":
            return ("anime",), False
        if category in GENRE_CATEGORIES:
            return ("genre", category), True
        prefix, _, genre_id = category.partition("/")
        if prefix == "genre" and genre_id:
            return ("genre", genre_id), True
        return None, False
