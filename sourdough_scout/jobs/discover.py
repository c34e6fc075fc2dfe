"""Discover-and-verify pipeline: search, filter, verify, merge, persist."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Set, Tuple

from sourdough_scout.core.config import Settings
from sourdough_scout.core.keywords import ClaimVocabulary
from sourdough_scout.core.merge import DuplicateMerger
from sourdough_scout.core.models import Evidence, JobStatus, RunReport, SearchQuery, VerifiedRecord
from sourdough_scout.core.rate_limit import QuotaExhaustedError, RateLimiter
from sourdough_scout.core.store import CandidateStore
from sourdough_scout.etl.filters import CandidateFilter
from sourdough_scout.etl.normalize import parse_search_payload
from sourdough_scout.vendors.outscraper import OutscraperAuthError, OutscraperClient
from sourdough_scout.verify.social import SocialProbe
from sourdough_scout.verify.verifier import ClaimVerifier
from sourdough_scout.verify.website import WebsiteScanner

logger = logging.getLogger(__name__)


class PersistenceGateway(Protocol):
    def exists(self, name: str) -> bool:
        ...

    def upsert(self, record: VerifiedRecord) -> None:
        ...


class DeadlineExceeded(Exception):
    """Internal signal that the run-level deadline passed."""


class DiscoveryPipeline:
    """Run many overlapping queries, verify what they find and merge duplicates.

    Queries and verifications each run on a bounded thread pool. The candidate
    store is the only structure shared between workers; each verification
    worker hands its evidence back once, and the main thread attaches it.
    """

    def __init__(
        self,
        search_client: OutscraperClient,
        verifier: ClaimVerifier,
        *,
        candidate_filter: Optional[CandidateFilter] = None,
        merger: Optional[DuplicateMerger] = None,
        gateway: Optional[PersistenceGateway] = None,
        search_workers: int = 5,
        verify_workers: int = 10,
        run_deadline_s: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.search_client = search_client
        self.verifier = verifier
        self.candidate_filter = candidate_filter or CandidateFilter()
        self.merger = merger or DuplicateMerger()
        self.gateway = gateway
        self.search_workers = max(1, search_workers)
        self.verify_workers = max(1, verify_workers)
        self.run_deadline_s = run_deadline_s
        self._clock = clock

    def run(self, queries: Iterable[SearchQuery]) -> RunReport:
        started = self._clock()
        deadline = started + self.run_deadline_s if self.run_deadline_s else None
        report = RunReport()
        store = CandidateStore()

        query_list = list(queries)
        logger.info("Starting discovery run with %s queries", len(query_list))
        try:
            self._discover(query_list, store, report, deadline)
            report.discovered = len(store)
            self._verify(store, deadline)
        except DeadlineExceeded:
            report.deadline_hit = True
            report.discovered = len(store)
            logger.warning("Run deadline reached; continuing with partial results")

        evidenced = [(candidate, evidence) for _, candidate, evidence in store.items() if evidence]
        report.verified = len(evidenced)
        report.rejected = report.discovered - report.verified
        report.records = self.merger.merge(evidenced)

        if self.gateway is not None:
            self._persist(report)

        report.duration_s = self._clock() - started
        logger.info("Discovery run finished: %s", report.summary())
        for record in report.records:
            logger.info("Verified %s [%s] %s", record.name, record.tier.value, record.provenance())
        return report

    def _remaining(self, deadline: Optional[float]) -> Optional[float]:
        if deadline is None:
            return None
        return max(0.0, deadline - self._clock())

    def _drain(self, futures: Dict[Future, object], deadline: Optional[float], on_done) -> None:
        pending: Set[Future] = set(futures)
        while pending:
            remaining = self._remaining(deadline)
            if remaining == 0.0:
                raise DeadlineExceeded()
            done, pending = wait(pending, timeout=remaining, return_when=FIRST_COMPLETED)
            if not done:
                raise DeadlineExceeded()
            for future in done:
                on_done(futures[future], future)

    def _discover(
        self,
        queries: List[SearchQuery],
        store: CandidateStore,
        report: RunReport,
        deadline: Optional[float],
    ) -> None:
        stop_submitting = threading.Event()
        cancelled = threading.Event()

        def search_one(query: SearchQuery) -> Tuple[str, Optional[str], int, int, bool]:
            """Returns (outcome, error, found, new, quota_hit)."""
            if stop_submitting.is_set():
                return "skipped", None, 0, 0, False
            try:
                state = self.search_client.run(query, cancel=cancelled)
            except QuotaExhaustedError as exc:
                stop_submitting.set()
                return "quota", str(exc), 0, 0, True
            except OutscraperAuthError:
                stop_submitting.set()
                raise
            except Exception as exc:  # noqa: BLE001
                logger.exception("Query=%s raised unexpectedly", query.text)
                return "failed", str(exc), 0, 0, False

            if state.quota_exhausted:
                stop_submitting.set()
            if cancelled.is_set():
                return "skipped", None, 0, 0, state.quota_exhausted
            if state.status != JobStatus.SUCCEEDED:
                return "failed", state.error or "unknown error", 0, 0, state.quota_exhausted

            candidates = parse_search_payload(state.results)
            relevant = [candidate for candidate in candidates if self.candidate_filter.is_relevant(candidate)]
            new_count = sum(1 for candidate in relevant if store.upsert(candidate))
            return "ok", None, len(candidates), new_count, state.quota_exhausted

        def on_done(query: SearchQuery, future: Future) -> None:
            outcome, error, found, new_count, quota_hit = future.result()
            if quota_hit and not report.quota_exhausted:
                report.quota_exhausted = True
                logger.error("Search quota exhausted at query=%s; no further queries will be submitted", query.text)
            if outcome == "skipped":
                logger.info("Skipped query=%s", query.text)
                return
            report.queries_submitted += 1
            if outcome in ("quota", "failed"):
                report.failed_queries[query.text] = error
                logger.warning("Query=%s abandoned: %s", query.text, error)
            else:
                logger.info("Query=%s found %s, added %s, total %s", query.text, found, new_count, len(store))

        executor = ThreadPoolExecutor(max_workers=self.search_workers, thread_name_prefix="search")
        timed_out = False
        try:
            futures = {executor.submit(search_one, query): query for query in queries}
            self._drain(futures, deadline, on_done)
        except DeadlineExceeded:
            timed_out = True
            stop_submitting.set()
            cancelled.set()
            raise
        finally:
            executor.shutdown(wait=not timed_out, cancel_futures=True)

    def _verify(self, store: CandidateStore, deadline: Optional[float]) -> None:
        def on_done(key, future: Future) -> None:
            try:
                evidence: Set[Evidence] = future.result()
            except Exception:  # noqa: BLE001
                logger.exception("Verification failed for %s", key[0])
                return
            if evidence:
                store.attach_evidence(key, evidence)

        executor = ThreadPoolExecutor(max_workers=self.verify_workers, thread_name_prefix="verify")
        timed_out = False
        try:
            futures = {executor.submit(self.verifier.verify, candidate): key for key, candidate, _ in store.items()}
            logger.info("Verifying %s candidates", len(futures))
            self._drain(futures, deadline, on_done)
        except DeadlineExceeded:
            timed_out = True
            raise
        finally:
            executor.shutdown(wait=not timed_out, cancel_futures=True)

    def _persist(self, report: RunReport) -> None:
        written: Set[str] = set()
        for record in report.records:
            name_key = record.name.strip().lower()
            if name_key in written:
                logger.debug("%s already persisted in this run", record.name)
                continue
            written.add(name_key)
            try:
                if self.gateway.exists(record.name):
                    report.skipped_existing += 1
                    logger.info("%s already exists, skipping", record.name)
                    continue
                self.gateway.upsert(record)
            except Exception as exc:  # noqa: BLE001
                logger.error("Failed to persist %s: %s", record.name, exc)
                continue
            report.persisted += 1


def build_pipeline(
    settings: Settings,
    *,
    gateway: Optional[PersistenceGateway] = None,
    candidate_filter: Optional[CandidateFilter] = None,
) -> DiscoveryPipeline:
    """Wire the pipeline from settings: one rate limiter per external dependency."""
    settings.require_search_credentials()

    search_limiter = RateLimiter(
        settings.search_rate_per_sec, budget=settings.search_budget, name="outscraper"
    )
    website_limiter = RateLimiter(settings.website_rate_per_sec, burst=2, name="websites")

    search_client = OutscraperClient(
        settings.outscraper_api_key,
        limiter=search_limiter,
        max_poll_attempts=settings.max_poll_attempts,
    )
    social_probe = None
    if settings.serpapi_api_key:
        social_limiter = RateLimiter(settings.social_rate_per_sec, name="social")
        social_probe = SocialProbe.from_api_key(settings.serpapi_api_key, limiter=social_limiter)

    verifier = ClaimVerifier(
        ClaimVocabulary.from_settings(settings),
        website_scanner=WebsiteScanner(limiter=website_limiter, timeout=settings.website_timeout_s),
        social_probe=social_probe,
    )
    return DiscoveryPipeline(
        search_client,
        verifier,
        candidate_filter=candidate_filter,
        gateway=gateway,
        search_workers=settings.search_workers,
        verify_workers=settings.verify_workers,
        run_deadline_s=settings.run_deadline_s,
    )
