"""Tests for mapping upstream payloads onto canonical records."""

from __future__ import annotations

import pytest

from animebridge.models import CatalogEntry, PageInfo
from animebridge.normalizer import (
    first_present,
    is_not_found,
    is_ok,
    normalize_detail,
    normalize_genre_list,
    normalize_list,
    normalize_server_url,
    normalize_stream,
)

ITEMS = [
    {"title": "Frieren", "animeId": "frieren-sub-indo", "poster": "f.jpg", "episodes": 28},
    {"title": "Dandadan", "slug": "dandadan", "image": "d.jpg", "type": "TV"},
]


def test_ongoing_list_end_to_end():
    payload = {
        "status": "Ok",
        "data": {"ongoingAnimeList": [{"title": "X", "slug": "x-1", "poster": "p.jpg"}]},
    }

    page = normalize_list(payload)

    assert page.entries == [CatalogEntry(id="x-1", title="X", poster_url="p.jpg", kind="Anime")]
    assert page.page_info == PageInfo(
        current_page=1, total_pages=1, has_next=False, has_prev=False
    )


@pytest.mark.parametrize(
    "payload",
    [
        {"statusCode": 200, "data": {"animeList": ITEMS}},
        {"statusCode": 200, "data": {"completeAnimeList": ITEMS}},
        {"status": "Ok", "data": {"ongoingAnimeList": ITEMS}},
        {"status": "Success", "data": {"searchList": ITEMS}},
        {"status": "success", "data": {"genreAnimeList": ITEMS}},
        {"status": "Ok", "data": ITEMS},
        {"statusCode": 200, "result": ITEMS},
    ],
)
def test_container_variants_yield_identical_entries(payload):
    page = normalize_list(payload)

    assert [(entry.id, entry.title, entry.poster_url) for entry in page.entries] == [
        ("frieren-sub-indo", "Frieren", "f.jpg"),
        ("dandadan", "Dandadan", "d.jpg"),
    ]
    assert page.entries[0].episode_count == "28"
    assert page.entries[1].kind == "TV"


def test_first_container_key_wins():
    payload = {
        "status": "Ok",
        "data": {"animeList": [{"id": "first"}], "searchList": [{"id": "second"}]},
    }
    assert [entry.id for entry in normalize_list(payload).entries] == ["first"]


def test_items_without_identifier_are_discarded():
    payload = {
        "status": "Ok",
        "data": {
            "animeList": [
                {"title": "No id at all", "poster": "x.jpg"},
                {"title": "Blank ids", "animeId": "", "id": None, "slug": "  "},
                {"title": "Kept", "id": 42},
                "not-an-object",
            ]
        },
    }

    entries = normalize_list(payload).entries

    assert [entry.id for entry in entries] == ["42"]
    assert all(entry.id for entry in entries)


def test_url_alone_does_not_identify_a_listing_item():
    payload = {
        "status": "Ok",
        "data": {
            "searchList": [
                {"title": "Mashle", "url": "https://site.example/anime/mashle-s2/"},
                {"title": "Frieren", "slug": "frieren", "url": "https://site.example/anime/sousou/"},
            ]
        },
    }
    assert [entry.id for entry in normalize_list(payload).entries] == ["frieren"]


def test_missing_fields_use_defaults():
    entry = normalize_list({"status": "Ok", "data": [{"slug": "only-slug"}]}).entries[0]
    assert entry.title == "Unknown Title"
    assert entry.poster_url == ""
    assert entry.kind == "Anime"
    assert entry.status is None


def test_indonesian_field_names_are_mapped():
    payload = {
        "status": "Ok",
        "data": [{"slug": "one-piece", "hari": "Minggu", "tanggal": "05 Okt", "thumb": "op.jpg"}],
    }
    entry = normalize_list(payload).entries[0]
    assert entry.release_day == "Minggu"
    assert entry.latest_release_date == "05 Okt"
    assert entry.poster_url == "op.jpg"


def test_pagination_passes_through():
    payload = {
        "statusCode": 200,
        "data": {"animeList": ITEMS},
        "pagination": {"currentPage": 2, "totalPages": 9, "hasNextPage": True, "hasPrevPage": True},
    }
    assert normalize_list(payload).page_info == PageInfo(
        current_page=2, total_pages=9, has_next=True, has_prev=True
    )


def test_malformed_pagination_falls_back_to_default():
    payload = {"status": "Ok", "data": ITEMS, "pagination": {"currentPage": "soon"}}
    assert normalize_list(payload).page_info == PageInfo()


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "<html>Cloudflare</html>",
        [],
        {"status": "Error", "data": {"animeList": ITEMS}},
        {"status": "Ok"},
        {"status": "Ok", "data": {"somethingNew": ITEMS}},
        {"status": "Ok", "data": {"animeList": "not a list"}},
    ],
)
def test_unrecognised_payloads_degrade_to_empty(payload):
    page = normalize_list(payload)
    assert page.entries == []
    assert page.page_info == PageInfo()


def test_status_spellings():
    assert is_ok({"statusCode": 200})
    assert is_ok({"status": "Ok"})
    assert is_ok({"status": "OK"})
    assert is_ok({"status": "Success"})
    assert is_ok({"status": 200})
    assert not is_ok({"statusCode": 404, "status": "Error"})
    assert not is_ok({"status": True})
    assert not is_ok(None)


def test_not_found_detection():
    assert is_not_found({"statusCode": 404, "message": "Not found"})
    assert is_not_found({"status": "Ok", "data": []})
    assert is_not_found({"status": "Ok"})
    assert is_not_found(None)
    assert not is_not_found({"status": "Ok", "data": {"searchList": []}})


def test_first_present_accepts_accessors():
    raw = {"a": "", "b": None}
    assert first_present(raw, ("a", "b", lambda item: "computed")) == "computed"
    assert first_present(raw, ("a", "b")) is None


DETAIL = {
    "title": "Frieren",
    "poster": "frieren.jpg",
    "synopsis": "An elf mage outlives her party.",
    "japanese_title": "Sousou no Frieren",
    "skor": "9.1",
    "produser": "Aniplex",
    "studio": "Madhouse",
    "durasi": "24 min",
    "release_date": "Sep 29, 2023",
    "total_episodes": "28",
    "genres": [
        {"name": "Adventure", "slug": "adventure"},
        {"title": "Fantasy", "url": "https://site.example/genres/fantasy/"},
        {"name": "Nameless"},
    ],
    "episode_list": [
        {"title": "Episode 2", "episodeId": "frieren-episode-2", "releaseDate": "06 Oct"},
        {"title": "Episode 1", "slug": "frieren-episode-1", "date": "29 Sep", "url": "https://x/1"},
        {"title": "Broken episode"},
        {"title": "By id", "id": 3},
    ],
}


@pytest.mark.parametrize(
    "payload",
    [
        {"status": "Ok", "data": {"animeDetail": DETAIL}},
        {"statusCode": 200, "data": {"anime_detail": DETAIL}},
        {"statusCode": 200, "data": DETAIL},
    ],
)
def test_detail_container_variants(payload):
    record = normalize_detail(payload, fallback_id="frieren-sub-indo")

    assert record is not None
    assert record.id == "frieren-sub-indo"
    assert record.title == "Frieren"
    assert record.poster_url == "frieren.jpg"
    assert record.score == "9.1"
    assert record.producer == "Aniplex"
    assert record.duration == "24 min"
    assert record.total_episodes == "28"
    assert [(genre.name, genre.id) for genre in record.genres] == [
        ("Adventure", "adventure"),
        ("Fantasy", "fantasy"),
    ]
    assert [episode.id for episode in record.episodes] == [
        "frieren-episode-2",
        "frieren-episode-1",
        "3",
    ]
    assert record.episodes[0].date == "06 Oct"
    assert record.episodes[1].url == "https://x/1"
    assert record.enrichment == "skipped"


def test_detail_accepts_camel_case_episode_list():
    payload = {
        "status": "Ok",
        "data": {"title": "Mashle", "animeId": "mashle", "episodeList": [{"slug": "mashle-1"}]},
    }
    record = normalize_detail(payload, fallback_id="requested")
    assert record is not None
    assert record.id == "mashle"
    assert [episode.id for episode in record.episodes] == ["mashle-1"]


@pytest.mark.parametrize(
    "payload",
    [
        None,
        {"statusCode": 404, "message": "Anime not found"},
        {"status": "Ok", "data": {"title": "No episode list"}},
        {"status": "Ok", "data": {"episode_list": []}},
        {"status": "Ok", "data": ["unexpected"]},
    ],
)
def test_detail_misses_return_none(payload):
    assert normalize_detail(payload, fallback_id="anything") is None


def test_stream_servers_are_filtered_and_mapped():
    payload = {
        "statusCode": 200,
        "data": {
            "title": "Frieren Episode 1",
            "mirror_list": [
                {"quality": "720p", "server": "desu", "serverId": "s-1"},
                {"resolution": "480p", "driver": "mega", "id": 7},
                {"host": "pdrain", "mirrorId": "m-3"},
                {"hash": "h-4"},
                {"server_id": "s-5"},
                {"_id": "u-6"},
                {"linkId": "l-7"},
                {"server": "direct", "url": "https://cdn.example/ep1.mp4"},
                {"server": "relative", "stream_url": "//cdn.example/ep1-alt.mp4"},
                {"server": "embed", "link": "<iframe src='https://player.example/e/1'></iframe>"},
                {"server": "broken", "url": "javascript:void(0)"},
                {"server": "empty"},
            ],
            "server_list": [{"serverId": "ignored"}],
        },
    }

    stream = normalize_stream(payload, episode_id="frieren-episode-1")

    assert stream is not None
    assert stream.title == "Frieren Episode 1"
    assert [server.server_id for server in stream.servers[:7]] == [
        "s-1", "7", "m-3", "h-4", "s-5", "u-6", "l-7",
    ]
    assert stream.servers[0].resolution == "720p"
    assert stream.servers[0].label == "desu"
    assert stream.servers[1].label == "mega"
    assert stream.servers[3].label == "Server"
    assert stream.servers[3].resolution == "Standard"
    assert [server.direct_url for server in stream.servers[7:]] == [
        "https://cdn.example/ep1.mp4",
        "https://cdn.example/ep1-alt.mp4",
        "https://player.example/e/1",
    ]
    assert len(stream.servers) == 10


@pytest.mark.parametrize("key", ["server_list", "stream_list", "url_list"])
def test_stream_list_key_variants(key):
    payload = {"status": "Ok", "data": {key: [{"serverId": "abc"}]}}
    stream = normalize_stream(payload, episode_id="ep-1")
    assert stream is not None
    assert stream.title == "ep-1"
    assert [server.server_id for server in stream.servers] == ["abc"]


def test_stream_without_servers_is_empty_not_absent():
    stream = normalize_stream({"status": "Ok", "data": {"title": "T"}}, episode_id="ep")
    assert stream is not None
    assert stream.servers == []


def test_stream_miss_is_absent():
    assert normalize_stream({"statusCode": 500}, episode_id="ep") is None
    assert normalize_stream(None, episode_id="ep") is None


@pytest.mark.parametrize(
    ("payload", "expected"),
    [
        ("<iframe src='https://cdn.example/x.mp4'></iframe>", "https://cdn.example/x.mp4"),
        ("//cdn.example/y.mp4", "https://cdn.example/y.mp4"),
        ({"status": "Ok", "data": "https://cdn.example/z.mp4"}, "https://cdn.example/z.mp4"),
        ({"statusCode": 200, "data": {"iframe": '<iframe src="//p.example/e/9"></iframe>'}}, "https://p.example/e/9"),
        ({"statusCode": 200, "data": {"embed": "https://p.example/embed"}}, "https://p.example/embed"),
        ({"statusCode": 200, "data": {"playerUrl": "https://p.example/player"}}, "https://p.example/player"),
        (
            {"status": "Ok", "data": {"url": "&lt;iframe src=&quot;https://p.example/q&quot;&gt;"}},
            "https://p.example/q",
        ),
    ],
)
def test_server_url_variants(payload, expected):
    assert normalize_server_url(payload) == expected


@pytest.mark.parametrize(
    "payload",
    [
        None,
        "",
        "Bad Gateway",
        "<html><body>Just a moment...</body></html>",
        {"statusCode": 404},
        {"status": "Ok", "data": {}},
        {"status": "Ok", "data": {"url": ""}},
        {"status": "Ok", "data": "expired"},
    ],
)
def test_server_url_misses(payload):
    assert normalize_server_url(payload) is None


def test_genre_list_variants():
    wrapped = {"statusCode": 200, "data": {"genreList": [{"title": "Action", "genreId": "action"}]}}
    bare = {"status": "Ok", "data": [{"name": "Action", "slug": "action"}, {"slug": "no-name"}]}
    assert [(g.name, g.id) for g in normalize_genre_list(wrapped)] == [("Action", "action")]
    assert [(g.name, g.id) for g in normalize_genre_list(bare)] == [("Action", "action")]
    assert normalize_genre_list({"status": "Error"}) == []
