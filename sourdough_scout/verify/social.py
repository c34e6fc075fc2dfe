"""Social media bio probing by derived usernames."""

from __future__ import annotations

import logging
import re
from functools import partial
from typing import Callable, List, Optional, Sequence, Tuple

import requests

from sourdough_scout.core.rate_limit import RateLimiter
from sourdough_scout.vendors.serpapi_search import SerpApiError, site_search_snippet

logger = logging.getLogger(__name__)

PLATFORMS: Tuple[Tuple[str, str], ...] = (
    ("instagram", "instagram.com"),
    ("facebook", "facebook.com"),
)
MAX_USERNAMES = 3
_TRADE_SUFFIXES = ("pizzeria", "pizza", "pie")

SiteSearcher = Callable[[str, str], Optional[str]]


def candidate_usernames(name: str, *, limit: int = MAX_USERNAMES) -> List[str]:
    """Derive likely social handles from a business name."""
    words = re.sub(r"[^a-z0-9\s]", "", (name or "").lower()).split()
    if not words:
        return []

    joined = "".join(words)
    variants = [joined, "_".join(words)]
    if words[-1] not in _TRADE_SUFFIXES:
        variants.append(f"{joined}pizza")
    trimmed = list(words)
    while len(trimmed) > 1 and trimmed[-1] in _TRADE_SUFFIXES:
        trimmed.pop()
    variants.append("".join(trimmed))

    usernames: List[str] = []
    for variant in variants:
        if len(variant) > 2 and variant not in usernames:
            usernames.append(variant)
    return usernames[:limit]


class SocialProbe:
    """Look up derived usernames on a few platforms and return any bio snippets found."""

    def __init__(
        self,
        searcher: SiteSearcher,
        *,
        limiter: Optional[RateLimiter] = None,
        platforms: Sequence[Tuple[str, str]] = PLATFORMS,
        max_usernames: int = MAX_USERNAMES,
    ) -> None:
        self.searcher = searcher
        self.limiter = limiter
        self.platforms = tuple(platforms)
        self.max_usernames = max_usernames

    @classmethod
    def from_api_key(cls, api_key: str, **kwargs) -> "SocialProbe":
        return cls(partial(_serpapi_searcher, api_key=api_key), **kwargs)

    def snippets(self, name: str) -> List[Tuple[str, str]]:
        """Return (platform, snippet) pairs; at most one platform hit per username."""
        found: List[Tuple[str, str]] = []
        for username in candidate_usernames(name, limit=self.max_usernames):
            for platform, domain in self.platforms:
                if self.limiter is not None:
                    self.limiter.acquire()
                try:
                    snippet = self.searcher(domain, username)
                except (requests.RequestException, SerpApiError, ValueError) as exc:
                    logger.warning("Social probe %s/%s failed: %s", domain, username, exc)
                    continue
                if snippet:
                    logger.debug("Social hit for %s on %s as %s", name, platform, username)
                    found.append((platform, snippet.lower()))
                    break
        return found


def _serpapi_searcher(domain: str, username: str, *, api_key: str) -> Optional[str]:
    return site_search_snippet(domain, username, api_key)
