"""Utilities for turning search provider payloads into Candidate records."""

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sourdough_scout.core.models import Candidate

logger = logging.getLogger(__name__)

_ADDRESS_FIELDS = ("full_address", "address", "street")
_WEBSITE_FIELDS = ("site", "website")


def flatten_once(data: Any) -> List[Any]:
    """Flatten a one-level nested result list; deeper nesting is left alone."""
    if not isinstance(data, list):
        return []

    items: List[Any] = []
    for entry in data:
        if isinstance(entry, list):
            items.extend(entry)
        else:
            items.append(entry)
    return items


def parse_search_payload(data: Any) -> List[Candidate]:
    """Extract provider results into Candidate objects, skipping malformed entries."""
    candidates: List[Candidate] = []
    for raw in flatten_once(data):
        candidate = to_candidate(raw)
        if candidate is None:
            logger.debug("Dropping malformed search result: %s", str(raw)[:200])
            continue
        candidates.append(candidate)
    return candidates


def to_candidate(raw: Any) -> Optional[Candidate]:
    if not isinstance(raw, dict):
        return None

    name = _strip_or_none(raw.get("name"))
    if not name:
        return None

    return Candidate(
        name=name,
        address=_first_present(raw, _ADDRESS_FIELDS),
        phone=_strip_or_none(raw.get("phone")),
        website=_first_present(raw, _WEBSITE_FIELDS),
        latitude=_coordinate(raw.get("latitude"), 90.0),
        longitude=_coordinate(raw.get("longitude"), 180.0),
        description=_strip_or_none(raw.get("description")),
        categories=_categories(raw),
        rating=_safe_float(raw.get("rating")),
        review_count=_safe_int(raw.get("reviews") if raw.get("reviews") is not None else raw.get("reviews_count")),
        city=_strip_or_none(raw.get("city")),
        state=_strip_or_none(raw.get("state") or raw.get("us_state")),
        raw_snapshot=raw,
    )


def _first_present(raw: Dict[str, Any], fields: Iterable[str]) -> Optional[str]:
    for field_name in fields:
        value = _strip_or_none(raw.get(field_name))
        if value:
            return value
    return None


def _categories(raw: Dict[str, Any]) -> Tuple[str, ...]:
    for field_name in ("categories", "subtypes", "category", "type"):
        value = raw.get(field_name)
        if isinstance(value, list):
            items = [_strip_or_none(item) for item in value]
        elif isinstance(value, str):
            items = [_strip_or_none(item) for item in value.split(",")]
        else:
            continue
        cleaned = tuple(item for item in items if item)
        if cleaned:
            return cleaned
    return ()


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    value_str = str(value).strip()
    return value_str or None


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None or isinstance(value, bool):
            return None
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _coordinate(value: Any, bound: float) -> Optional[float]:
    number = _safe_float(value)
    if number is None or abs(number) > bound:
        return None
    return number


def _safe_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, (int, float)):
        return int(value)

    if isinstance(value, str):
        digits = "".join(ch for ch in value if ch.isdigit())
        if digits:
            return int(digits)
    return None
