"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Tuple

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class ConfigError(RuntimeError):
    """Raised when mandatory configuration is missing."""


@dataclass(frozen=True)
class Settings:
    outscraper_api_key: str
    database_url: str
    serpapi_api_key: str = ""
    worker_port: int = 9000
    search_workers: int = 5
    verify_workers: int = 10
    search_rate_per_sec: float = 1.0
    website_rate_per_sec: float = 2.0
    social_rate_per_sec: float = 0.5
    search_budget: Optional[int] = None
    website_timeout_s: float = 10.0
    max_poll_attempts: int = 6
    run_deadline_s: float = 1800.0
    claim_keywords: Tuple[str, ...] = ()
    claim_vocabulary_version: str = "sourdough-v2"

    def require_search_credentials(self) -> None:
        if not self.outscraper_api_key:
            raise ConfigError("OUTSCRAPER_API_KEY must be set to run discovery.")


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _parse_keywords(raw: Optional[str]) -> Tuple[str, ...]:
    if not raw:
        return ()
    return tuple(term.strip().lower() for term in raw.split(",") if term.strip())


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    outscraper_api_key = os.getenv("OUTSCRAPER_API_KEY", "")
    serpapi_api_key = os.getenv("SERPAPI_API_KEY", "")
    database_url = os.getenv("DATABASE_URL", "")
    search_budget = _int_env("SEARCH_BUDGET", 0)

    if not outscraper_api_key:
        logger.warning("OUTSCRAPER_API_KEY is not configured; discovery runs will fail.")
    if not serpapi_api_key:
        logger.warning("SERPAPI_API_KEY is not configured; social media probing is disabled.")
    if not database_url:
        logger.warning("DATABASE_URL is not set; verified records will not be persisted.")

    return Settings(
        outscraper_api_key=outscraper_api_key,
        database_url=database_url,
        serpapi_api_key=serpapi_api_key,
        worker_port=_int_env("WORKER_PORT", 9000),
        search_workers=_int_env("SEARCH_WORKERS", 5),
        verify_workers=_int_env("VERIFY_WORKERS", 10),
        search_rate_per_sec=_float_env("SEARCH_RATE_PER_SEC", 1.0),
        website_rate_per_sec=_float_env("WEBSITE_RATE_PER_SEC", 2.0),
        social_rate_per_sec=_float_env("SOCIAL_RATE_PER_SEC", 0.5),
        search_budget=search_budget if search_budget > 0 else None,
        website_timeout_s=_float_env("WEBSITE_TIMEOUT_S", 10.0),
        max_poll_attempts=_int_env("MAX_POLL_ATTEMPTS", 6),
        run_deadline_s=_float_env("RUN_DEADLINE_S", 1800.0),
        claim_keywords=_parse_keywords(os.getenv("CLAIM_KEYWORDS")),
        claim_vocabulary_version=os.getenv("CLAIM_VOCABULARY_VERSION", "sourdough-v2"),
    )
