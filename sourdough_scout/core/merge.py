"""Batch merge of duplicate sightings into verified records."""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from sourdough_scout.core.models import Candidate, Evidence, VerifiedRecord
from sourdough_scout.core.scoring import score

logger = logging.getLogger(__name__)

# Two decimal places is roughly 1km; adjacent cells are also considered close.
GEO_CELL_DECIMALS = 2

_COMPLETENESS_FIELDS = ("name", "address", "website", "phone")
_FILL_FIELDS = ("address", "phone", "website", "description", "rating", "review_count", "city", "state")


def merge_name_key(name: str) -> str:
    lowered = (name or "").lower().replace("&", " and ")
    lowered = re.sub(r"^\s*the\s+", "", lowered)
    return re.sub(r"[^a-z0-9]", "", lowered)


def geo_cell(candidate: Candidate) -> Optional[Tuple[int, int]]:
    if not candidate.has_coordinates:
        return None
    factor = 10 ** GEO_CELL_DECIMALS
    return int(round(candidate.latitude * factor)), int(round(candidate.longitude * factor))


def _adjacent(a: Tuple[int, int], b: Tuple[int, int]) -> bool:
    return abs(a[0] - b[0]) <= 1 and abs(a[1] - b[1]) <= 1


def _completeness(candidate: Candidate) -> int:
    return sum(1 for field_name in _COMPLETENESS_FIELDS if getattr(candidate, field_name))


class _DisjointSet:
    def __init__(self, size: int) -> None:
        self.parent = list(range(size))

    def find(self, index: int) -> int:
        while self.parent[index] != index:
            self.parent[index] = self.parent[self.parent[index]]
            index = self.parent[index]
        return index

    def union(self, a: int, b: int) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a != root_b:
            # Lower index wins so group order follows first appearance.
            if root_b < root_a:
                root_a, root_b = root_b, root_a
            self.parent[root_b] = root_a


class DuplicateMerger:
    """Group candidates by loose name key + nearby geo cell and merge their evidence."""

    def merge(self, items: Iterable[Tuple[Candidate, Iterable[Evidence]]]) -> List[VerifiedRecord]:
        entries: List[Tuple[Candidate, FrozenSet[Evidence]]] = []
        for candidate, evidence in items:
            evidence_set = frozenset(evidence)
            if evidence_set:
                entries.append((candidate, evidence_set))

        groups = self._group([candidate for candidate, _ in entries])
        records = [self._merge_group([entries[index] for index in group]) for group in groups]
        if len(records) < len(entries):
            logger.info("Merged %s duplicate sightings into %s records", len(entries), len(records))
        return records

    def _group(self, candidates: Sequence[Candidate]) -> List[List[int]]:
        sets = _DisjointSet(len(candidates))
        by_name: Dict[str, List[int]] = {}
        for index, candidate in enumerate(candidates):
            by_name.setdefault(merge_name_key(candidate.name), []).append(index)

        for indices in by_name.values():
            located = [index for index in indices if candidates[index].has_coordinates]
            unlocated = [index for index in indices if not candidates[index].has_coordinates]

            for pos, first in enumerate(located):
                for second in located[pos + 1:]:
                    if _adjacent(geo_cell(candidates[first]), geo_cell(candidates[second])):
                        sets.union(first, second)

            located_roots = {sets.find(index) for index in located}
            if len(located_roots) == 1:
                anchor = next(iter(located_roots))
                for index in unlocated:
                    sets.union(anchor, index)
            else:
                for index in unlocated[1:]:
                    sets.union(unlocated[0], index)

        grouped: Dict[int, List[int]] = {}
        for index in range(len(candidates)):
            grouped.setdefault(sets.find(index), []).append(index)
        return [grouped[root] for root in sorted(grouped)]

    @staticmethod
    def _merge_group(members: List[Tuple[Candidate, FrozenSet[Evidence]]]) -> VerifiedRecord:
        candidates = [candidate for candidate, _ in members]
        best = max(candidates, key=_completeness)  # max keeps the first of equals

        fills = {}
        for field_name in _FILL_FIELDS:
            if getattr(best, field_name) is None:
                for other in candidates:
                    value = getattr(other, field_name)
                    if value is not None:
                        fills[field_name] = value
                        break
        if not best.has_coordinates:
            for other in candidates:
                if other.has_coordinates:
                    fills["latitude"], fills["longitude"] = other.latitude, other.longitude
                    break
        if not best.categories:
            for other in candidates:
                if other.categories:
                    fills["categories"] = other.categories
                    break
        merged = replace(best, **fills) if fills else best

        evidence: FrozenSet[Evidence] = frozenset().union(*(member_evidence for _, member_evidence in members))
        return VerifiedRecord(
            candidate=merged,
            keywords=frozenset(item.keyword for item in evidence),
            sources=frozenset(item.source.value for item in evidence),
            tier=score(evidence),
            evidence=evidence,
            member_count=len(members),
        )
