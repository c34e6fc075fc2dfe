"""In-memory candidate store shared by the discovery workers."""

from __future__ import annotations

import logging
import re
import threading
from typing import Dict, FrozenSet, Iterable, Iterator, List, Optional, Set, Tuple

from sourdough_scout.core.models import Candidate, Evidence

logger = logging.getLogger(__name__)

# Three decimal places is roughly 100m of latitude.
GEO_BUCKET_DECIMALS = 3

IdentityKey = Tuple[str, Optional[Tuple[float, float]]]


def normalize_name(name: str) -> str:
    return re.sub(r"\s+", " ", (name or "").strip().lower())


def identity_key(candidate: Candidate) -> IdentityKey:
    """Normalized name plus a ~100m geo bucket; name only without coordinates."""
    bucket = None
    if candidate.has_coordinates:
        bucket = (
            round(candidate.latitude, GEO_BUCKET_DECIMALS),
            round(candidate.longitude, GEO_BUCKET_DECIMALS),
        )
    return normalize_name(candidate.name), bucket


class CandidateStore:
    """Insertion-ordered map of identity key -> candidate, safe for concurrent upserts.

    Base fields are first-seen-wins. Evidence is kept alongside each entry and
    only ever grows.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._candidates: Dict[IdentityKey, Candidate] = {}
        self._evidence: Dict[IdentityKey, Set[Evidence]] = {}

    def upsert(self, candidate: Candidate) -> bool:
        key = identity_key(candidate)
        with self._lock:
            if key in self._candidates:
                return False
            self._candidates[key] = candidate
            self._evidence[key] = set()
        logger.debug("Stored new candidate %s key=%s", candidate.name, key)
        return True

    def attach_evidence(self, key: IdentityKey, evidence: Iterable[Evidence]) -> None:
        with self._lock:
            if key not in self._candidates:
                raise KeyError(f"Unknown candidate key: {key}")
            self._evidence[key].update(evidence)

    def evidence_for(self, key: IdentityKey) -> FrozenSet[Evidence]:
        with self._lock:
            return frozenset(self._evidence.get(key, ()))

    def get(self, key: IdentityKey) -> Optional[Candidate]:
        with self._lock:
            return self._candidates.get(key)

    def items(self) -> List[Tuple[IdentityKey, Candidate, FrozenSet[Evidence]]]:
        with self._lock:
            return [(key, candidate, frozenset(self._evidence[key])) for key, candidate in self._candidates.items()]

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._candidates

    def __len__(self) -> int:
        with self._lock:
            return len(self._candidates)

    def __iter__(self) -> Iterator[Candidate]:
        with self._lock:
            snapshot = list(self._candidates.values())
        return iter(snapshot)
