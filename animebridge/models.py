"""Pydantic models describing the canonical anime records."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

EnrichmentState = Literal["skipped", "pending", "absent", "merged"]
PlaybackKind = Literal["video", "iframe"]

DEFAULT_TITLE = "Unknown Title"
DEFAULT_KIND = "Anime"


class CanonicalModel(BaseModel):
    """Base model serialising snake_case attributes with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Genre(CanonicalModel):
    """A genre usable both as a filter and as a navigation key."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    id: str = Field(min_length=1)


class PageInfo(CanonicalModel):
    """Pagination metadata; defaults describe a single page."""

    model_config = ConfigDict(frozen=True)

    current_page: int = 1
    total_pages: int = 1
    has_next: bool = False
    has_prev: bool = False


class _EntryFields(CanonicalModel):
    title: str = DEFAULT_TITLE
    id: str = Field(min_length=1)
    poster_url: str = ""
    episode_count: str | None = None
    kind: str = DEFAULT_KIND
    release_day: str | None = None
    latest_release_date: str | None = None
    status: str | None = None
    rating: str | None = None
    url: str | None = None


class CatalogEntry(_EntryFields):
    """Single card in a catalog listing or search result."""

    model_config = ConfigDict(frozen=True)


class CatalogPage(CanonicalModel):
    """Entries of one catalog page with its pagination metadata."""

    entries: list[CatalogEntry] = Field(default_factory=list)
    page_info: PageInfo = Field(default_factory=PageInfo)


class EpisodeRef(CanonicalModel):
    """Reference to a playable episode of a detail record."""

    model_config = ConfigDict(frozen=True)

    title: str = ""
    date: str = ""
    id: str = Field(min_length=1)
    url: str | None = None


class StreamServer(CanonicalModel):
    """A mirror that is either directly playable or resolvable by id."""

    model_config = ConfigDict(frozen=True)

    label: str = "Server"
    resolution: str = "Standard"
    direct_url: str | None = None
    server_id: str | None = None

    @model_validator(mode="after")
    def _require_locator(self) -> "StreamServer":
        if not (self.direct_url or self.server_id):
            raise ValueError("stream server needs a direct URL or a server id")
        return self


class StreamResponse(CanonicalModel):
    """Mirrors available for a single episode."""

    title: str
    servers: list[StreamServer] = Field(default_factory=list)


class Playback(CanonicalModel):
    """A URL ready to hand to a player, with the kind of player to use."""

    url: str
    kind: PlaybackKind


class EnrichmentMetadata(CanonicalModel):
    """Fields supplied by the secondary metadata provider."""

    score: str = "N/A"
    total_episodes: str = "?"
    duration: str | None = None
    rating_system: str | None = None
    trailer_url: str | None = None
    mal_id: int | None = None
    popularity: int | None = None
    rank: int | None = None
    synopsis: str | None = None
    poster_url: str | None = None


class DetailRecord(_EntryFields):
    """Full detail view of one anime.

    The record is mutable so that enrichment metadata can be merged into it
    after it has already been handed to a caller.
    """

    synopsis: str = ""
    japanese_title: str | None = None
    producer: str | None = None
    studio: str = ""
    duration: str = ""
    release_date: str = ""
    total_episodes: str = ""
    score: str | None = None
    rank: int | None = None
    trailer_url: str | None = None
    mal_id: int | None = None
    popularity: int | None = None
    rating_system: str | None = None
    genres: list[Genre] = Field(default_factory=list)
    episodes: list[EpisodeRef] = Field(default_factory=list)
    enrichment: EnrichmentState = "skipped"

    def merge_enrichment(self, metadata: EnrichmentMetadata) -> None:
        """Overwrite fields the provider returned, leaving the rest intact."""

        for name, value in metadata.model_dump(exclude_none=True).items():
            setattr(self, name, value)
        self.enrichment = "merged"


class HomeFeed(CanonicalModel):
    """Landing-page sections fetched together."""

    ongoing: list[CatalogEntry] = Field(default_factory=list)
    movies: list[CatalogEntry] = Field(default_factory=list)
    completed: list[CatalogEntry] = Field(default_factory=list)
    popular: list[CatalogEntry] = Field(default_factory=list)
