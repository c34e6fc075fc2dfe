"""Database helpers for persisting verified restaurants."""

import logging
import re
from contextlib import contextmanager
from typing import Any, Dict, Optional

from psycopg2 import extras, pool

from sourdough_scout.core.config import get_settings
from sourdough_scout.core.models import VerifiedRecord

logger = logging.getLogger(__name__)

_connection_pool: Optional[pool.ThreadedConnectionPool] = None

_ZIP_RE = re.compile(r"\b\d{5}\b")


def init_pool(minconn: int = 1, maxconn: int = 5) -> pool.ThreadedConnectionPool:
    """Initialise and return the shared connection pool."""
    global _connection_pool
    if _connection_pool is None:
        settings = get_settings()
        if not settings.database_url:
            raise RuntimeError("DATABASE_URL is required for database connections")
        _connection_pool = pool.ThreadedConnectionPool(
            minconn,
            maxconn,
            dsn=settings.database_url,
            connect_timeout=10,
        )
        logger.info("Database connection pool initialised")
    return _connection_pool


@contextmanager
def get_connection():
    """Context manager yielding a pooled connection."""
    pg_pool = init_pool()
    conn = pg_pool.getconn()
    try:
        yield conn
    finally:
        pg_pool.putconn(conn)


def record_to_row(record: VerifiedRecord, *, city: Optional[str] = None, state: Optional[str] = None) -> Dict[str, Any]:
    candidate = record.candidate
    address = candidate.address or ""
    zip_match = _ZIP_RE.search(address)
    keywords = sorted(record.keywords)
    sources = sorted(record.sources)
    return {
        "name": candidate.name,
        "address": address,
        "city": candidate.city or city or "",
        "state": candidate.state or state or "",
        "zip_code": zip_match.group(0) if zip_match else None,
        "phone": candidate.phone,
        "website": candidate.website,
        "description": f"Sourdough verified through: {', '.join(sources)}. Keywords found: {', '.join(keywords)}",
        "sourdough_verified": 1,
        "sourdough_keywords": keywords,
        "verification_sources": sources,
        "confidence": record.tier.value,
        "rating": candidate.rating or 0,
        "review_count": candidate.review_count or 0,
        "latitude": candidate.latitude,
        "longitude": candidate.longitude,
    }


def _prepare_params(row: Dict[str, Any]) -> Dict[str, Any]:
    params = dict(row)
    params["sourdough_keywords"] = extras.Json(row.get("sourdough_keywords") or [])
    params["verification_sources"] = extras.Json(row.get("verification_sources") or [])
    return params


_EXISTS = "SELECT 1 FROM restaurants WHERE name = %(name)s LIMIT 1;"

_UPSERT = """
INSERT INTO restaurants (
    name,
    address,
    city,
    state,
    zip_code,
    phone,
    website,
    description,
    sourdough_verified,
    sourdough_keywords,
    verification_sources,
    confidence,
    rating,
    review_count,
    latitude,
    longitude
) VALUES (
    %(name)s,
    %(address)s,
    %(city)s,
    %(state)s,
    %(zip_code)s,
    %(phone)s,
    %(website)s,
    %(description)s,
    %(sourdough_verified)s,
    %(sourdough_keywords)s,
    %(verification_sources)s,
    %(confidence)s,
    %(rating)s,
    %(review_count)s,
    %(latitude)s,
    %(longitude)s
)
ON CONFLICT (name) DO UPDATE SET
    address = COALESCE(NULLIF(EXCLUDED.address, ''), restaurants.address),
    phone = COALESCE(EXCLUDED.phone, restaurants.phone),
    website = COALESCE(EXCLUDED.website, restaurants.website),
    description = EXCLUDED.description,
    sourdough_keywords = EXCLUDED.sourdough_keywords,
    verification_sources = EXCLUDED.verification_sources,
    confidence = EXCLUDED.confidence,
    latitude = COALESCE(EXCLUDED.latitude, restaurants.latitude),
    longitude = COALESCE(EXCLUDED.longitude, restaurants.longitude);
"""


def restaurant_exists(name: str) -> bool:
    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_EXISTS, {"name": name})
            return cur.fetchone() is not None


def upsert_restaurant(row: Dict[str, Any]) -> None:
    """Persist a restaurant row, performing an idempotent upsert keyed by name."""
    params = _prepare_params(row)
    if not params.get("name"):
        raise ValueError("name is required for upsert")
    if not params.get("sourdough_keywords").adapted:
        raise ValueError("only evidenced restaurants may be persisted")

    with get_connection() as conn:
        with conn.cursor() as cur:
            cur.execute(_UPSERT, params)
        conn.commit()
        logger.debug("Upserted restaurant %s", params["name"])


class PostgresGateway:
    """Persistence gateway over the `restaurants` table."""

    def __init__(self, *, city: Optional[str] = None, state: Optional[str] = None) -> None:
        self.city = city
        self.state = state

    def exists(self, name: str) -> bool:
        return restaurant_exists(name)

    def upsert(self, record: VerifiedRecord) -> None:
        upsert_restaurant(record_to_row(record, city=self.city, state=self.state))
