"""Closed, versioned claim-keyword vocabulary and matching."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from sourdough_scout.core.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_VOCABULARY_VERSION = "sourdough-v2"
DEFAULT_CLAIM_KEYWORDS = (
    "sourdough",
    "naturally leavened",
    "wild yeast",
    "naturally fermented",
)


@dataclass(frozen=True)
class ClaimVocabulary:
    version: str
    terms: Tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.terms:
            raise ValueError("A claim vocabulary needs at least one term")

    @classmethod
    def default(cls) -> "ClaimVocabulary":
        return cls(version=DEFAULT_VOCABULARY_VERSION, terms=DEFAULT_CLAIM_KEYWORDS)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClaimVocabulary":
        if settings.claim_keywords:
            logger.info(
                "Using configured claim vocabulary %s: %s",
                settings.claim_vocabulary_version,
                ", ".join(settings.claim_keywords),
            )
            return cls(version=settings.claim_vocabulary_version, terms=tuple(settings.claim_keywords))
        return cls.default()

    def find(self, text: Optional[str]) -> List[str]:
        """Return the vocabulary terms present in `text`, in vocabulary order."""
        return find_keywords(text, self.terms)


def _variants(term: str) -> Iterable[str]:
    yield term
    if " " in term:
        yield term.replace(" ", "-")


def find_keywords(text: Optional[str], terms: Iterable[str]) -> List[str]:
    """Case-insensitive substring match; hyphenated variants count as the term."""
    if not text:
        return []

    haystack = re.sub(r"\s+", " ", text.lower())
    found: List[str] = []
    for term in terms:
        canonical = term.lower()
        if canonical in found:
            continue
        if any(variant in haystack for variant in _variants(canonical)):
            found.append(canonical)
    return found
