"""Coarse domain filter applied before candidates enter the working set."""

import logging
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

from sourdough_scout.core.models import Candidate

logger = logging.getLogger(__name__)

# A tuple entry matches only when every term in it appears.
AllowTerm = Union[str, Tuple[str, ...]]

DEFAULT_ALLOW_TERMS: Tuple[AllowTerm, ...] = (
    "pizza",
    "pizzeria",
    "pizzas",
    "pie shop",
    "brick oven",
    "wood fired",
    "wood-fired",
    "neapolitan",
    ("italian", "restaurant"),
)

DEFAULT_DENY_TERMS: Tuple[str, ...] = (
    "grocery",
    "supermarket",
    "gas station",
    "convenience store",
    "delivery service",
    "uber eats",
    "ubereats",
    "doordash",
    "grubhub",
    "postmates",
)


@dataclass(frozen=True)
class CandidateFilter:
    allow_terms: Sequence[AllowTerm] = DEFAULT_ALLOW_TERMS
    deny_terms: Sequence[str] = DEFAULT_DENY_TERMS

    @staticmethod
    def _haystack(candidate: Candidate) -> str:
        parts = [candidate.name, candidate.description or "", " ".join(candidate.categories)]
        return " ".join(parts).lower()

    def rejection_reason(self, candidate: Candidate) -> str:
        """Return why a candidate is rejected, or an empty string when it is admitted."""
        haystack = self._haystack(candidate)

        for term in self.deny_terms:
            if term.lower() in haystack:
                return f"deny-list term '{term}'"

        for entry in self.allow_terms:
            terms = (entry,) if isinstance(entry, str) else entry
            if all(term.lower() in haystack for term in terms):
                return ""
        return "no allow-list term"

    def is_relevant(self, candidate: Candidate) -> bool:
        reason = self.rejection_reason(candidate)
        if reason:
            logger.debug("Filtered out %s: %s", candidate.name, reason)
            return False
        return True
