"""Map loosely-shaped upstream JSON onto the canonical records.

Every upstream field is read through a small declarative table: each
canonical field lists its candidate upstream keys (or accessor callables)
in priority order, and the first non-empty value wins. Shape drift in the
scraped APIs therefore only ever touches the tables below.

None of the functions here raise on malformed input. Unknown shapes
degrade to empty lists, default pagination or ``None``.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Sequence, Union

from pydantic import ValidationError

from .models import (
    DEFAULT_KIND,
    DEFAULT_TITLE,
    CatalogEntry,
    CatalogPage,
    DetailRecord,
    EpisodeRef,
    Genre,
    PageInfo,
    StreamResponse,
    StreamServer,
)
from .utils import as_text, ensure_https_scheme, extract_iframe_src, is_present, last_path_segment

logger = logging.getLogger(__name__)

Accessor = Callable[[Mapping[str, Any]], Any]
Candidate = Union[str, Accessor]
FieldTable = Mapping[str, Sequence[Candidate]]

OK_STATUS_CODES = frozenset({200})
OK_STATUS_TEXTS = frozenset({"ok", "success", "200"})

LIST_CONTAINER_KEYS: tuple[str, ...] = (
    "animeList",
    "completeAnimeList",
    "ongoingAnimeList",
    "searchList",
    "genreAnimeList",
)
DETAIL_CONTAINER_KEYS: tuple[str, ...] = ("animeDetail", "anime_detail")
EPISODE_LIST_KEYS: tuple[str, ...] = ("episode_list", "episodeList")
GENRE_LIST_KEYS: tuple[str, ...] = ("genreList", "genres", "genre_list")
SERVER_LIST_KEYS: tuple[str, ...] = ("mirror_list", "server_list", "stream_list", "url_list")
SERVER_URL_KEYS: tuple[str, ...] = ("url", "iframe", "link", "embed", "playerUrl")


def _url_segment(raw: Mapping[str, Any]) -> str | None:
    return last_path_segment(as_text(raw.get("url")))


ENTRY_FIELDS: FieldTable = {
    "id": ("animeId", "id", "slug"),
    "title": ("title", "name"),
    "poster_url": ("poster", "image", "thumb"),
    "episode_count": ("episodes", "episode", "current_episode"),
    "kind": ("type",),
    "status": ("status",),
    "release_day": ("releaseDay", "hari"),
    "latest_release_date": ("latestReleaseDate", "tanggal"),
    "rating": ("rating", "score"),
    "url": ("url",),
}

DETAIL_FIELDS: FieldTable = {
    **ENTRY_FIELDS,
    "synopsis": ("synopsis", "sinopsis", "description"),
    "japanese_title": ("japanese_title", "japaneseTitle", "japanese"),
    "producer": ("producer", "produser", "producers"),
    "studio": ("studio", "studios"),
    "duration": ("duration", "durasi"),
    "release_date": ("release_date", "releaseDate", "aired"),
    "total_episodes": ("total_episodes", "totalEpisodes", "total_episode", "episodes"),
    "score": ("score", "skor"),
    "trailer_url": ("trailer_url", "trailerUrl", "trailer"),
}

EPISODE_FIELDS: FieldTable = {
    "id": ("slug", "episodeId", "id"),
    "title": ("title", "episode"),
    "date": ("date", "releaseDate"),
    "url": ("url",),
}

GENRE_FIELDS: FieldTable = {
    "id": ("genreId", "slug", "id", _url_segment),
    "name": ("name", "title"),
}

SERVER_FIELDS: FieldTable = {
    "resolution": ("quality", "resolution"),
    "label": ("server", "driver", "host", "name"),
    "direct_url": ("url", "stream_url", "link"),
    "server_id": ("serverId", "id", "mirrorId", "hash", "server_id", "_id", "linkId"),
}

PAGE_FIELDS: FieldTable = {
    "current_page": ("currentPage", "current_page", "page"),
    "total_pages": ("totalPages", "total_pages", "lastPage"),
    "has_next": ("hasNextPage", "hasNext", "has_next_page"),
    "has_prev": ("hasPrevPage", "hasPrev", "has_prev_page"),
}

ENTRY_DEFAULTS: Mapping[str, str] = {
    "title": DEFAULT_TITLE,
    "poster_url": "",
    "kind": DEFAULT_KIND,
}
DETAIL_TEXT_DEFAULTS: Mapping[str, str] = {
    "synopsis": "",
    "studio": "",
    "duration": "",
    "release_date": "",
    "total_episodes": "",
}


def first_present(raw: Mapping[str, Any], candidates: Sequence[Candidate]) -> Any:
    """Return the first non-empty value produced by ``candidates``."""

    for candidate in candidates:
        value = candidate(raw) if callable(candidate) else raw.get(candidate)
        if is_present(value):
            return value
    return None


def extract_fields(
    raw: Mapping[str, Any],
    table: FieldTable,
    *,
    text: bool = True,
) -> dict[str, Any]:
    """Apply a field table to ``raw`` and drop fields that stayed empty."""

    fields: dict[str, Any] = {}
    for name, candidates in table.items():
        value = first_present(raw, candidates)
        if text:
            value = as_text(value)
        if value is not None:
            fields[name] = value
    return fields


def is_ok(payload: Any) -> bool:
    """Return ``True`` when the upstream envelope reports success."""

    if not isinstance(payload, Mapping):
        return False
    status_code = payload.get("statusCode")
    if isinstance(status_code, int) and status_code in OK_STATUS_CODES:
        return True
    status = payload.get("status")
    if isinstance(status, int) and not isinstance(status, bool):
        return status in OK_STATUS_CODES
    return isinstance(status, str) and status.strip().lower() in OK_STATUS_TEXTS


def is_not_found(payload: Any) -> bool:
    """Return ``True`` for envelopes that explicitly report a miss."""

    if not isinstance(payload, Mapping):
        return True
    if payload.get("statusCode") == 404 or payload.get("status") == 404:
        return True
    data = payload.get("data")
    if isinstance(data, list) and not data:
        return True
    return data is None and payload.get("result") is None


def _data(payload: Any) -> Any:
    if not isinstance(payload, Mapping):
        return None
    data = payload.get("data")
    return data if data is not None else payload.get("result")


def _first_list(container: Any, keys: Sequence[str]) -> list[Any] | None:
    if not isinstance(container, Mapping):
        return None
    for key in keys:
        value = container.get(key)
        if isinstance(value, list):
            return value
    return None


def _locate_items(payload: Any) -> list[Any]:
    if not is_ok(payload):
        return []
    data = payload.get("data")
    items = _first_list(data, LIST_CONTAINER_KEYS)
    if items is not None:
        return items
    if isinstance(data, list):
        return data
    result = payload.get("result")
    if isinstance(result, list):
        return result
    return []


def normalize_entry(raw: Any) -> CatalogEntry | None:
    """Map one upstream list item to a :class:`CatalogEntry`."""

    if not isinstance(raw, Mapping):
        return None
    fields = {**ENTRY_DEFAULTS, **extract_fields(raw, ENTRY_FIELDS)}
    if not fields.get("id"):
        return None
    try:
        return CatalogEntry(**fields)
    except ValidationError as exc:
        logger.debug("Discarding malformed catalog item %s: %s", fields.get("id"), exc)
        return None


def normalize_entries(items: Sequence[Any]) -> list[CatalogEntry]:
    entries = (normalize_entry(item) for item in items)
    return [entry for entry in entries if entry is not None]


def normalize_page_info(raw: Any) -> PageInfo:
    """Pass upstream pagination through, defaulting to a single page."""

    if not isinstance(raw, Mapping):
        return PageInfo()
    fields = extract_fields(raw, PAGE_FIELDS, text=False)
    try:
        return PageInfo(**fields)
    except ValidationError:
        logger.debug("Ignoring malformed pagination block: %s", raw)
        return PageInfo()


def normalize_list(payload: Any) -> CatalogPage:
    """Normalise any catalog/search/genre listing envelope."""

    items = _locate_items(payload)
    entries = normalize_entries(items)
    pagination = None
    if is_ok(payload):
        pagination = payload.get("pagination")
        if pagination is None and isinstance(payload.get("data"), Mapping):
            pagination = payload["data"].get("pagination")
    return CatalogPage(entries=entries, page_info=normalize_page_info(pagination))


def normalize_genre(raw: Any) -> Genre | None:
    if not isinstance(raw, Mapping):
        return None
    fields = extract_fields(raw, GENRE_FIELDS)
    if not (fields.get("id") and fields.get("name")):
        return None
    return Genre(**fields)


def normalize_genres(items: Any) -> list[Genre]:
    if not isinstance(items, list):
        return []
    genres = (normalize_genre(item) for item in items)
    return [genre for genre in genres if genre is not None]


def normalize_genre_list(payload: Any) -> list[Genre]:
    """Normalise the genre index envelope."""

    if not is_ok(payload):
        return []
    data = payload.get("data")
    items = _first_list(data, GENRE_LIST_KEYS)
    if items is None and isinstance(data, list):
        items = data
    return normalize_genres(items)


def normalize_episode(raw: Any) -> EpisodeRef | None:
    if not isinstance(raw, Mapping):
        return None
    fields = extract_fields(raw, EPISODE_FIELDS)
    if not fields.get("id"):
        return None
    return EpisodeRef(**fields)


def normalize_episodes(items: Any) -> list[EpisodeRef]:
    if not isinstance(items, list):
        return []
    episodes = (normalize_episode(item) for item in items)
    return [episode for episode in episodes if episode is not None]


def _locate_detail(payload: Any) -> Mapping[str, Any] | None:
    if not is_ok(payload):
        return None
    data = payload.get("data")
    if not isinstance(data, Mapping):
        return None
    for key in DETAIL_CONTAINER_KEYS:
        candidate = data.get(key)
        if isinstance(candidate, Mapping):
            return candidate
    if is_present(data.get("title")) and _first_list(data, EPISODE_LIST_KEYS) is not None:
        return data
    return None


def normalize_detail(payload: Any, *, fallback_id: str) -> DetailRecord | None:
    """Normalise a detail envelope, or return ``None`` if none is present.

    ``fallback_id`` is the identifier the detail was requested with; it is
    used when the detail object does not repeat its own id.
    """

    raw = _locate_detail(payload)
    if raw is None:
        return None
    fields = {
        **ENTRY_DEFAULTS,
        **DETAIL_TEXT_DEFAULTS,
        "id": fallback_id,
        **extract_fields(raw, DETAIL_FIELDS),
    }
    fields["genres"] = normalize_genres(first_present(raw, GENRE_LIST_KEYS))
    fields["episodes"] = normalize_episodes(_first_list(raw, EPISODE_LIST_KEYS))
    try:
        return DetailRecord(**fields)
    except ValidationError as exc:
        logger.warning("Malformed detail payload for %s: %s", fallback_id, exc)
        return None


def normalize_player_url(raw: Any) -> str | None:
    """Unwrap iframe markup and protocol-relative URLs into a plain URL."""

    url = as_text(raw)
    if not url:
        return None
    url = extract_iframe_src(url) or url
    return ensure_https_scheme(url)


def normalize_server(raw: Any) -> StreamServer | None:
    """Map one mirror entry; entries with nothing to play are dropped."""

    if not isinstance(raw, Mapping):
        return None
    fields = extract_fields(raw, SERVER_FIELDS)
    direct_url = normalize_player_url(fields.pop("direct_url", None))
    if direct_url and direct_url.startswith("http"):
        fields["direct_url"] = direct_url
    if not (fields.get("server_id") or fields.get("direct_url")):
        return None
    return StreamServer(**fields)


def normalize_stream(payload: Any, *, episode_id: str) -> StreamResponse | None:
    """Normalise an episode envelope into its list of stream servers."""

    if not is_ok(payload):
        return None
    data = payload.get("data")
    if not isinstance(data, Mapping):
        return None
    servers = (normalize_server(item) for item in _first_list(data, SERVER_LIST_KEYS) or [])
    title = as_text(data.get("title")) or episode_id
    return StreamResponse(
        title=title,
        servers=[server for server in servers if server is not None],
    )


def normalize_server_url(payload: Any) -> str | None:
    """Extract a playable URL from a server-resolution response.

    The body may be a bare string, an envelope whose ``data`` is a string,
    or an envelope whose ``data`` object names the URL under one of several
    keys.
    """

    if isinstance(payload, str):
        raw: Any = payload
    elif is_ok(payload):
        data = _data(payload)
        if isinstance(data, Mapping):
            raw = first_present(data, SERVER_URL_KEYS)
        else:
            raw = data
    else:
        return None
    url = normalize_player_url(raw)
    if not url or not url.startswith("http"):
        return None
    return url
