from __future__ import annotations

from collections.abc import Iterator

import httpx

from wiki_api.core.config import get_settings


def get_http_client() -> Iterator[httpx.Client]:
    """Outbound client for Discord; tests swap it via `dependency_overrides`."""
    settings = get_settings()
    with httpx.Client(
        timeout=httpx.Timeout(settings.DISCORD_HTTP_TIMEOUT_SECONDS),
        headers={"User-Agent": f"wiki-api ({settings.APP_URL}, {settings.VERSION})"},
    ) as client:
        yield client
