"""Confidence tiers from accumulated evidence."""

from collections import defaultdict
from typing import Dict, Iterable, Set

from sourdough_scout.core.models import ConfidenceTier, Evidence, EvidenceSource


def score(evidence: Iterable[Evidence]) -> ConfidenceTier:
    """Deterministic tier for a non-empty evidence set.

    high: two or more distinct sources
    medium: a single source with two or more distinct keywords
    low: one source, one keyword
    """
    by_source: Dict[EvidenceSource, Set[str]] = defaultdict(set)
    for item in evidence:
        by_source[item.source].add(item.keyword)

    if not by_source:
        raise ValueError("Cannot score an empty evidence set")
    if len(by_source) >= 2:
        return ConfidenceTier.HIGH
    if any(len(keywords) >= 2 for keywords in by_source.values()):
        return ConfidenceTier.MEDIUM
    return ConfidenceTier.LOW
