"""Utility helpers for the AnimeBridge service."""

from __future__ import annotations

import html
import re
from typing import Any
from urllib.parse import urlparse


IFRAME_SRC_RE = re.compile(r"src\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE)
TITLE_QUALIFIER_RE = re.compile(r"\(.*\)|Sub Indo|Batch", re.IGNORECASE)
EPISODE_SUFFIX_RE = re.compile(r"Episode.*", re.IGNORECASE)
PUNCTUATION_RE = re.compile(r"[^\w\s]", re.UNICODE)
VIDEO_FILE_RE = re.compile(r"\.(mp4|mkv|webm)$", re.IGNORECASE)


def is_present(value: Any) -> bool:
    """Return ``True`` for values that count as "non-empty" upstream data."""

    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (str, list, dict, tuple)):
        return bool(value.strip() if isinstance(value, str) else value)
    return True


def as_text(value: Any) -> str | None:
    """Coerce scalar upstream values into strings, dropping containers."""

    if not is_present(value):
        return None
    if isinstance(value, (dict, list, tuple)):
        return None
    return str(value).strip()


def clean_title(title: str, *, strip_episode: bool = False) -> str:
    """Remove release qualifiers (``(TV)``, ``Sub Indo``, ``Batch``) from a title."""

    cleaned = TITLE_QUALIFIER_RE.sub("", title or "")
    if strip_episode:
        cleaned = EPISODE_SUFFIX_RE.sub("", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip()


def title_cache_key(title: str) -> str:
    """Return the case-insensitive, punctuation-free key for a title."""

    cleaned = clean_title(title, strip_episode=True)
    cleaned = PUNCTUATION_RE.sub(" ", cleaned)
    return re.sub(r"\s+", " ", cleaned).strip().casefold()


def last_path_segment(url: str | None) -> str | None:
    """Return the final non-empty path segment of a URL."""

    if not url:
        return None
    path = urlparse(url).path or url
    segments = [segment for segment in path.split("/") if segment]
    return segments[-1] if segments else None


def slug_to_query(slug: str) -> str:
    """Turn an identifier such as ``one-piece_sub`` into a search query."""

    return re.sub(r"\s+", " ", re.sub(r"[-_]+", " ", slug)).strip()


def extract_iframe_src(markup: str) -> str | None:
    """Return the ``src`` of an embedded iframe, if the value contains one."""

    if "<iframe" not in markup.lower() and "&lt;iframe" not in markup.lower():
        return None
    match = IFRAME_SRC_RE.search(html.unescape(markup))
    if not match:
        return None
    return match.group(1).strip() or None


def ensure_https_scheme(url: str) -> str:
    """Rewrite protocol-relative URLs to explicit ``https://`` ones."""

    if url.startswith("//"):
        return f"https:{url}"
    return url


def playback_kind(url: str) -> str:
    """Return ``video`` for direct media files and ``iframe`` otherwise."""

    path = urlparse(url).path or url
    return "video" if VIDEO_FILE_RE.search(path) else "iframe"
