from __future__ import annotations

from typing import Dict

DEFAULT_REGION = "us"

AUDIBLE_DOMAINS: Dict[str, str] = {
    "us": "www.audible.com",
    "uk": "www.audible.co.uk",
    "ca": "www.audible.ca",
    "au": "www.audible.com.au",
    "de": "www.audible.de",
    "fr": "www.audible.fr",
    "it": "www.audible.it",
    "in": "www.audible.in",
    "jp": "www.audible.co.jp",
    "es": "www.audible.es",
    "br": "www.audible.com.br",
}


def resolve_domain(region: str) -> str:
    # Exact lookup only: unknown, empty and mixed-case codes get the US store.
    return AUDIBLE_DOMAINS.get(region, AUDIBLE_DOMAINS[DEFAULT_REGION])


def normalize_region(region: str) -> str:
    return (region or DEFAULT_REGION).strip().lower() or DEFAULT_REGION


def series_url(series_asin: str, region: str) -> str:
    return f"https://{resolve_domain(region)}/series/{series_asin}"
