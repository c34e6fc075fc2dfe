"""Core data models shared by the discovery pipeline."""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


class EvidenceSource(str, enum.Enum):
    PROFILE_TEXT = "ProfileText"
    WEBSITE = "Website"
    SOCIAL_MEDIA = "SocialMedia"


SOURCE_WEIGHTS = {
    EvidenceSource.PROFILE_TEXT: 1.0,
    EvidenceSource.WEBSITE: 1.0,
    EvidenceSource.SOCIAL_MEDIA: 0.8,
}


class ConfidenceTier(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class JobStatus(str, enum.Enum):
    SUBMITTED = "submitted"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class SearchQuery:
    text: str
    limit: int = 20


@dataclass(frozen=True)
class JobHandle:
    """Provider job reference; `inline` holds results returned synchronously."""

    job_id: Optional[str]
    query: SearchQuery
    inline: Optional[Any] = field(default=None, repr=False)


@dataclass(frozen=True)
class JobState:
    """Provider job state; `quota_exhausted` marks a job that saw a quota error while polling."""

    status: JobStatus
    results: Any = field(default=None, repr=False)
    error: Optional[str] = None
    quota_exhausted: bool = False

    @property
    def done(self) -> bool:
        return self.status in (JobStatus.SUCCEEDED, JobStatus.FAILED)


@dataclass(frozen=True)
class Candidate:
    """Normalized snapshot of a business returned by the places search provider."""

    name: str
    address: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    description: Optional[str] = None
    categories: Tuple[str, ...] = ()
    rating: Optional[float] = None
    review_count: Optional[int] = None
    city: Optional[str] = None
    state: Optional[str] = None
    raw_snapshot: Optional[Dict[str, Any]] = field(default=None, repr=False, compare=False, hash=False)

    @property
    def has_coordinates(self) -> bool:
        return (
            self.latitude is not None
            and self.longitude is not None
            and math.isfinite(self.latitude)
            and math.isfinite(self.longitude)
        )


@dataclass(frozen=True)
class Evidence:
    """A claim keyword found in one evidence source.

    Equality and hashing use only (source, keyword); weight rides along.
    """

    source: EvidenceSource
    keyword: str
    weight: float = field(default=1.0, compare=False)

    @classmethod
    def of(cls, source: EvidenceSource, keyword: str) -> "Evidence":
        return cls(source=source, keyword=keyword, weight=SOURCE_WEIGHTS[source])


@dataclass(frozen=True)
class VerifiedRecord:
    candidate: Candidate
    keywords: FrozenSet[str]
    sources: FrozenSet[str]
    tier: ConfidenceTier
    evidence: FrozenSet[Evidence] = frozenset()
    member_count: int = 1

    @property
    def name(self) -> str:
        return self.candidate.name

    def provenance(self) -> str:
        return "sources=%s keywords=%s" % (
            ", ".join(sorted(self.sources)),
            ", ".join(sorted(self.keywords)),
        )


@dataclass
class RunReport:
    """Result object for a single discovery run."""

    discovered: int = 0
    verified: int = 0
    rejected: int = 0
    duration_s: float = 0.0
    queries_submitted: int = 0
    failed_queries: Dict[str, str] = field(default_factory=dict)
    persisted: int = 0
    skipped_existing: int = 0
    quota_exhausted: bool = False
    deadline_hit: bool = False
    records: List[VerifiedRecord] = field(default_factory=list)

    def summary(self) -> Dict[str, Any]:
        return {
            "discovered": self.discovered,
            "verified": self.verified,
            "rejected": self.rejected,
            "duration_s": round(self.duration_s, 2),
            "queries_submitted": self.queries_submitted,
            "failed_queries": len(self.failed_queries),
            "persisted": self.persisted,
            "skipped_existing": self.skipped_existing,
            "quota_exhausted": self.quota_exhausted,
            "deadline_hit": self.deadline_hit,
        }
