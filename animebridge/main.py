"""FastAPI application exposing the resolution engine as JSON."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager

import httpx
from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from .config import settings
from .models import (
    CatalogEntry,
    CatalogPage,
    DetailRecord,
    Genre,
    HomeFeed,
    StreamResponse,
)
from .services.aggregator import AggregatorClient
from .services.enrichment_queue import EnrichmentQueue, PosterCache
from .services.jikan import JikanClient
from .services.resolver import DetailEnrichment, ResolutionEngine

logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(fastapi_app: FastAPI):
    exit_stack = AsyncExitStack()
    timeout = httpx.Timeout(settings.http_timeout, connect=settings.http_connect_timeout)
    aggregator_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(base_url=str(settings.aggregator_api_url), timeout=timeout)
    )
    jikan_http = await exit_stack.enter_async_context(
        httpx.AsyncClient(base_url=str(settings.jikan_api_url), timeout=timeout)
    )

    queue = EnrichmentQueue(delay_seconds=settings.enrichment_queue_delay)
    jikan = JikanClient(settings, jikan_http, queue, PosterCache())
    engine = ResolutionEngine(settings, AggregatorClient(settings, aggregator_http), jikan)
    fastapi_app.state.engine = engine

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await engine.aclose()
        await queue.aclose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Canonical anime catalog, detail and stream records",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_engine(fastapi_app: FastAPI) -> ResolutionEngine:
    engine = getattr(fastapi_app.state, "engine", None)
    if not isinstance(engine, ResolutionEngine):
        raise RuntimeError("Resolution engine not initialised")
    return engine


def register_routes(fastapi_app: FastAPI) -> None:
    def _engine_for(source: str) -> ResolutionEngine:
        if not settings.is_known_source(source):
            raise HTTPException(status_code=404, detail=f"Unknown source {source}")
        return get_engine(fastapi_app)

    @fastapi_app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/top", response_model=list[CatalogEntry])
    async def top_anime(limit: int | None = Query(default=None, ge=1, le=25)):
        return await get_engine(fastapi_app).top_anime(limit)

    @fastapi_app.get("/poster")
    async def poster(title: str = Query(min_length=1)) -> dict[str, str | None]:
        poster_url = await get_engine(fastapi_app).poster_for(title)
        return {"title": title, "posterUrl": poster_url}

    @fastapi_app.get("/{source}/home", response_model=HomeFeed)
    async def home(source: str):
        return await _engine_for(source).home_feed(source)

    @fastapi_app.get("/{source}/catalog/{category}", response_model=CatalogPage)
    async def catalog(source: str, category: str, page: int = Query(default=1, ge=1)):
        return await _engine_for(source).list_catalog(source, category, page)

    @fastapi_app.get("/{source}/genres", response_model=list[Genre])
    async def genres(source: str):
        return await _engine_for(source).list_genres(source)

    @fastapi_app.get("/{source}/genre/{genre_id}", response_model=CatalogPage)
    async def genre(source: str, genre_id: str, page: int = Query(default=1, ge=1)):
        return await _engine_for(source).genre_catalog(source, genre_id, page)

    @fastapi_app.get("/{source}/search", response_model=list[CatalogEntry])
    async def search(source: str, q: str = Query(default="")):
        return await _engine_for(source).search(source, q)

    @fastapi_app.get("/{source}/anime/{anime_id}", response_model=DetailRecord)
    async def detail(source: str, anime_id: str, enrich: bool = True):
        mode: DetailEnrichment = "inline" if enrich else "none"
        record = await _engine_for(source).get_detail(source, anime_id, enrichment=mode)
        if record is None:
            raise HTTPException(status_code=404, detail="Anime not found")
        return record

    @fastapi_app.get("/{source}/episode/{episode_id}", response_model=StreamResponse)
    async def episode(source: str, episode_id: str):
        stream = await _engine_for(source).get_episode_stream(source, episode_id)
        if stream is None:
            raise HTTPException(status_code=404, detail="Episode not found")
        return stream

    @fastapi_app.get("/{source}/server/{server_id}")
    async def server(source: str, server_id: str) -> dict[str, str]:
        url = await _engine_for(source).resolve_server_url(source, server_id)
        if url is None:
            raise HTTPException(status_code=404, detail="Server URL not found")
        return {"url": url}


app = create_app()
