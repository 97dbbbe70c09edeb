"""Entry point for ``python -m animebridge``."""

from __future__ import annotations

import logging

import uvicorn

from .config import get_settings

logger = logging.getLogger("animebridge")


def main() -> None:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())
    logger.info(
        "Serving %s for sources %s (default %s)",
        settings.app_name,
        ", ".join(settings.anime_sources),
        settings.default_source,
    )
    uvicorn.run(
        "animebridge.main:app",
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
        reload=settings.environment == "development",
    )


if __name__ == "__main__":  # pragma: no cover - runtime entrypoint
    main()
