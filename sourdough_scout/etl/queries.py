"""Build overlapping search queries for one city."""

from typing import Iterable, List, Optional, Sequence

from sourdough_scout.core.models import SearchQuery

# (phrase, limit) pairs; overlapping phrasings raise recall against a provider
# whose ranking per query is unpredictable.
BASE_PHRASES = (
    ("pizza", 50),
    ("pizza restaurant", 50),
    ("pizzeria", 50),
    ("wood fired pizza", 30),
    ("neapolitan pizza", 30),
    ("artisan pizza", 30),
    ("italian restaurant", 50),
    ("sourdough pizza", 20),
    ("naturally leavened pizza", 20),
)
NEIGHBORHOOD_PHRASE = "pizza"
NEIGHBORHOOD_LIMIT = 20


def build_queries(
    city: str,
    state: Optional[str] = None,
    *,
    neighborhoods: Iterable[str] = (),
    phrases: Sequence = BASE_PHRASES,
) -> List[SearchQuery]:
    location = " ".join(part.strip() for part in (city, state or "") if part and part.strip())
    if not location:
        raise ValueError("A city is required to build search queries")

    queries: List[SearchQuery] = []
    seen = set()

    def _add(text: str, limit: int) -> None:
        key = text.lower()
        if key not in seen:
            seen.add(key)
            queries.append(SearchQuery(text=text, limit=limit))

    for phrase, limit in phrases:
        _add(f"{phrase} {location}", limit)
    for neighborhood in neighborhoods:
        neighborhood = neighborhood.strip()
        if neighborhood:
            _add(f"{NEIGHBORHOOD_PHRASE} {neighborhood} {location}", NEIGHBORHOOD_LIMIT)
    return queries
