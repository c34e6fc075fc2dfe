"""Website fetching and text extraction for claim verification."""

from __future__ import annotations

import logging
import re
from typing import Optional
from urllib.parse import urlparse, urlunparse

import requests
from bs4 import BeautifulSoup

from sourdough_scout.core.rate_limit import RateLimiter

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
REQUEST_TIMEOUT = 10
MAX_REDIRECTS = 3
STRIP_TAGS = ("script", "style", "noscript", "nav", "header", "footer")
STRIP_CLASSES = re.compile(r"(^|[\s_-])(nav|navigation|navbar|menu-toggle)([\s_-]|$)", re.IGNORECASE)

# Listing, social and ordering domains never count as the business's own site.
EXCLUDED_DOMAINS = (
    "facebook.com",
    "instagram.com",
    "twitter.com",
    "x.com",
    "tiktok.com",
    "yelp.com",
    "google.com",
    "goo.gl",
    "foursquare.com",
    "tripadvisor.com",
    "doordash.com",
    "ubereats.com",
    "grubhub.com",
    "postmates.com",
    "seamless.com",
    "slicelife.com",
    "order.toasttab.com",
)


def sanitize_website(raw_url: Optional[str]) -> Optional[str]:
    """Normalise raw website strings into absolute http(s) URLs."""

    if not raw_url:
        return None

    url = raw_url.strip()
    if not url:
        return None

    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        parsed = urlparse(f"https://{url.lstrip('/')}")

    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None

    normalized_path = parsed.path or "/"
    if not normalized_path.startswith("/"):
        normalized_path = f"/{normalized_path}"

    return urlunparse(parsed._replace(path=normalized_path, fragment=""))


def is_valid_website(raw_url: Optional[str]) -> bool:
    url = sanitize_website(raw_url)
    if not url:
        return False
    host = (urlparse(url).hostname or "").lower()
    if "." not in host:
        return False
    return not any(host == domain or host.endswith(f".{domain}") for domain in EXCLUDED_DOMAINS)


def extract_text(html: str) -> str:
    """Lowercased visible text with script, style and navigation regions removed."""
    soup = BeautifulSoup(html or "", "html.parser")

    meta = soup.find("meta", attrs={"name": "description"})
    meta_text = meta.get("content", "") if meta else ""
    title_text = soup.title.get_text(" ", strip=True) if soup.title else ""

    for tag in soup.find_all(list(STRIP_TAGS)) + soup.find_all(class_=STRIP_CLASSES):
        if not tag.decomposed:
            tag.decompose()

    body = soup.body or soup
    text = " ".join(part for part in (title_text, meta_text, body.get_text(" ", strip=True)) if part)
    return re.sub(r"\s+", " ", text).strip().lower()


def build_session() -> requests.Session:
    session = requests.Session()
    session.max_redirects = MAX_REDIRECTS
    session.headers.setdefault("User-Agent", USER_AGENT)
    session.headers.setdefault("Accept", "text/html,application/xhtml+xml")
    session.headers.setdefault("Accept-Language", "en-US,en;q=0.9")
    return session


class WebsiteScanner:
    """Fetch a business website and return its text, or None on any failure."""

    def __init__(
        self,
        *,
        session: Optional[requests.Session] = None,
        limiter: Optional[RateLimiter] = None,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self.session = session or build_session()
        self.limiter = limiter
        self.timeout = timeout

    def fetch_text(self, raw_url: Optional[str]) -> Optional[str]:
        if not is_valid_website(raw_url):
            logger.debug("Skipping unusable website %s", raw_url)
            return None
        url = sanitize_website(raw_url)

        if self.limiter is not None:
            self.limiter.acquire()
        try:
            response = self.session.get(url, timeout=self.timeout, allow_redirects=True)
            response.raise_for_status()
        except requests.RequestException as exc:  # noqa: BLE001
            logger.warning("Failed to fetch %s: %s", url, exc)
            return None

        content_type = response.headers.get("Content-Type", "").lower()
        if content_type and "html" not in content_type:
            logger.debug("Skipping non-HTML content at %s (content-type=%s)", url, content_type)
            return None
        return extract_text(response.text)

    def close(self) -> None:
        self.session.close()
