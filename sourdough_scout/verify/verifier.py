"""Per-candidate claim verification across independent evidence sources."""

from __future__ import annotations

import logging
from typing import Optional, Set

from sourdough_scout.core.keywords import ClaimVocabulary
from sourdough_scout.core.models import Candidate, Evidence, EvidenceSource
from sourdough_scout.verify.social import SocialProbe
from sourdough_scout.verify.website import WebsiteScanner

logger = logging.getLogger(__name__)


class ClaimVerifier:
    """Scan profile text, the business website and social bios for claim keywords.

    Each source is best-effort: a failure in one yields no evidence from it and
    never stops the others.
    """

    def __init__(
        self,
        vocabulary: Optional[ClaimVocabulary] = None,
        *,
        website_scanner: Optional[WebsiteScanner] = None,
        social_probe: Optional[SocialProbe] = None,
    ) -> None:
        self.vocabulary = vocabulary or ClaimVocabulary.default()
        self.website_scanner = website_scanner
        self.social_probe = social_probe

    def verify(self, candidate: Candidate) -> Set[Evidence]:
        evidence: Set[Evidence] = set()
        evidence.update(self.check_profile(candidate))
        evidence.update(self.check_website(candidate))
        evidence.update(self.check_social(candidate))

        if evidence:
            logger.info(
                "Claim evidence for %s: %s",
                candidate.name,
                ", ".join(sorted(f"{item.source.value}:{item.keyword}" for item in evidence)),
            )
        else:
            logger.debug("No claim evidence for %s", candidate.name)
        return evidence

    def check_profile(self, candidate: Candidate) -> Set[Evidence]:
        return {
            Evidence.of(EvidenceSource.PROFILE_TEXT, keyword)
            for keyword in self.vocabulary.find(candidate.description)
        }

    def check_website(self, candidate: Candidate) -> Set[Evidence]:
        if self.website_scanner is None or not candidate.website:
            return set()
        try:
            text = self.website_scanner.fetch_text(candidate.website)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Website check failed for %s (%s): %s", candidate.name, candidate.website, exc)
            return set()
        return {Evidence.of(EvidenceSource.WEBSITE, keyword) for keyword in self.vocabulary.find(text)}

    def check_social(self, candidate: Candidate) -> Set[Evidence]:
        if self.social_probe is None:
            return set()
        try:
            hits = self.social_probe.snippets(candidate.name)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Social check failed for %s: %s", candidate.name, exc)
            return set()

        evidence: Set[Evidence] = set()
        for platform, snippet in hits:
            for keyword in self.vocabulary.find(snippet):
                logger.debug("%s bio for %s mentions %s", platform, candidate.name, keyword)
                evidence.add(Evidence.of(EvidenceSource.SOCIAL_MEDIA, keyword))
        return evidence
