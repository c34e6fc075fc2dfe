"""SerpAPI Google search helpers used to probe social media profiles."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from serpapi import GoogleSearch

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10


class SerpApiError(RuntimeError):
    """Raised when SerpAPI returns an error payload."""


def build_site_params(domain: str, username: str, api_key: str) -> Dict[str, Any]:
    if not username or not username.strip():
        raise ValueError("A username is required for a site search.")
    return {
        "engine": "google",
        "q": f"site:{domain}/{username.strip()}",
        "num": 1,
        "api_key": api_key,
    }


def site_search_snippet(domain: str, username: str, api_key: str) -> Optional[str]:
    """Return the snippet text of the first result for `site:{domain}/{username}`."""
    params = build_site_params(domain, username, api_key)
    search = GoogleSearch(params)
    search.timeout = REQUEST_TIMEOUT
    data = search.get_dict()
    if not data:
        raise SerpApiError("SerpAPI returned an empty payload.")
    if "error" in data:
        message = str(data.get("error") or "")
        # An empty result page is reported as an error string by SerpAPI.
        if "hasn't returned any results" in message:
            return None
        raise SerpApiError(f"SerpAPI returned an error response: {message}")

    results = data.get("organic_results") or []
    if not results or not isinstance(results[0], dict):
        return None
    first = results[0]
    text = " ".join(str(first.get(field) or "") for field in ("title", "snippet")).strip()
    return text or None
