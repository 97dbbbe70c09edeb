"""AnimeBridge: canonical anime catalog, detail and stream aggregation."""

from __future__ import annotations

from importlib import import_module
from typing import Any

_EXPORTS = {
    "app": "animebridge.main",
    "create_app": "animebridge.main",
    "ResolutionEngine": "animebridge.services.resolver",
    "Settings": "animebridge.config",
    "get_settings": "animebridge.config",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    # The FastAPI app builds settings on import; defer it until requested.
    try:
        module_name = _EXPORTS[name]
    except KeyError:
        raise AttributeError(f"module 'animebridge' has no attribute {name}") from None
    return getattr(import_module(module_name), name)
