"""Client utilities for the Outscraper Maps search job API."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Any, Callable, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from sourdough_scout.core.models import JobHandle, JobState, JobStatus, SearchQuery
from sourdough_scout.core.rate_limit import QuotaExhaustedError, RateLimiter

logger = logging.getLogger(__name__)

_BASE_URL = "https://api.app.outscraper.com"
REQUEST_TIMEOUT = 20
POLL_TIMEOUT = 15
INITIAL_POLL_DELAY = 8.0
POLL_DELAY_STEP = 1.0
MAX_POLL_DELAY = 15.0


class OutscraperError(RuntimeError):
    """Raised when the search provider returns an unusable response."""


class OutscraperAuthError(OutscraperError):
    """Raised when the API key is rejected; fatal for the whole run."""


def poll_delay(attempt: int) -> float:
    """Delay before poll `attempt` (1-based): 8s growing by 1s, capped at 15s."""
    return min(INITIAL_POLL_DELAY + POLL_DELAY_STEP * (attempt - 1), MAX_POLL_DELAY)


def build_session() -> requests.Session:
    """Session that retries connection errors and 5xx responses on job polls only.

    Submissions go through the default adapter so a submit never outlives its
    own timeout; 429 is left to the caller.
    """
    session = requests.Session()
    retries = Retry(
        total=3,
        backoff_factor=1,
        status_forcelist=(500, 502, 503, 504),
        allowed_methods=("GET",),
    )
    session.mount(f"{_BASE_URL}/requests/", HTTPAdapter(max_retries=retries))
    return session


class OutscraperClient:
    """Submit Maps searches and poll their jobs until they resolve.

    - GET {base}/maps/search-v3  (submit; may answer inline or with a job id)
    - GET {base}/requests/{id}   (poll)

    Auth header: X-API-KEY
    """

    def __init__(
        self,
        api_key: str,
        *,
        session: Optional[requests.Session] = None,
        limiter: Optional[RateLimiter] = None,
        language: str = "en",
        region: str = "US",
        max_poll_attempts: int = 6,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not api_key:
            raise ValueError("An Outscraper API key is required")
        self.api_key = api_key
        self.session = session or build_session()
        self.limiter = limiter
        self.language = language
        self.region = region
        self.max_poll_attempts = max_poll_attempts
        self._sleep = sleep

    def _get(
        self, url: str, *, params: Optional[Dict[str, Any]] = None, timeout: int, charge: bool = True
    ) -> Dict[str, Any]:
        if self.limiter is not None:
            self.limiter.acquire(charge=charge)
        response = self.session.get(url, params=params, headers={"X-API-KEY": self.api_key}, timeout=timeout)
        if response.status_code in (401, 403):
            raise OutscraperAuthError(f"Outscraper rejected the API key (status {response.status_code})")
        if response.status_code in (402, 429):
            raise QuotaExhaustedError(f"Outscraper quota exhausted (status {response.status_code})")
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict):
            raise OutscraperError("Expected a JSON object from Outscraper")
        return payload

    def submit(self, query: SearchQuery) -> JobHandle:
        params = {
            "query": query.text,
            "limit": query.limit,
            "language": self.language,
            "region": self.region,
            "async": "true",
        }
        payload = self._get(f"{_BASE_URL}/maps/search-v3", params=params, timeout=REQUEST_TIMEOUT)
        state = _state_from_payload(payload)
        if state.status == JobStatus.SUCCEEDED:
            logger.debug("Outscraper answered inline for query=%s", query.text)
            return JobHandle(job_id=payload.get("id"), query=query, inline=state.results)
        if state.status == JobStatus.FAILED:
            raise OutscraperError(state.error or "search submission failed")

        job_id = payload.get("id")
        if not job_id:
            raise OutscraperError(f"Outscraper returned status={payload.get('status')} without a job id")
        logger.info("Submitted query=%s as job %s", query.text, job_id)
        return JobHandle(job_id=str(job_id), query=query)

    def poll(self, handle: JobHandle) -> JobState:
        """Check a submitted job; polls are paced by the limiter but never charged to its budget."""
        if handle.inline is not None:
            return JobState(JobStatus.SUCCEEDED, results=handle.inline)
        if not handle.job_id:
            return JobState(JobStatus.FAILED, error="missing job id")
        payload = self._get(f"{_BASE_URL}/requests/{handle.job_id}", timeout=POLL_TIMEOUT, charge=False)
        return _state_from_payload(payload)

    def _wait(self, seconds: float, cancel: Optional[threading.Event]) -> bool:
        """Sleep between polls; returns True when `cancel` was set meanwhile."""
        if cancel is None:
            self._sleep(seconds)
            return False
        return cancel.wait(seconds)

    def run(self, query: SearchQuery, *, cancel: Optional[threading.Event] = None) -> JobState:
        """Submit a query and poll until success, failure or the attempt ceiling.

        Auth errors and quota errors on submission propagate. A quota error
        while polling keeps the already submitted job alive: polling goes on
        and the final state carries `quota_exhausted=True`. Setting `cancel`
        abandons the job before its next poll. Every other failure is reported
        as a FAILED state so the caller can move on to its next query.
        """
        try:
            handle = self.submit(query)
        except (OutscraperAuthError, QuotaExhaustedError):
            raise
        except (requests.RequestException, ValueError, OutscraperError) as exc:
            logger.warning("Submitting query=%s failed: %s", query.text, exc)
            return JobState(JobStatus.FAILED, error=str(exc))

        if handle.inline is not None:
            return JobState(JobStatus.SUCCEEDED, results=handle.inline)

        quota_hit = False
        state = JobState(JobStatus.FAILED, error="timeout")
        for attempt in range(1, self.max_poll_attempts + 1):
            if self._wait(poll_delay(attempt), cancel):
                logger.info("Job %s for query=%s cancelled", handle.job_id, query.text)
                return JobState(JobStatus.FAILED, error="cancelled", quota_exhausted=quota_hit)
            try:
                polled = self.poll(handle)
            except OutscraperAuthError:
                raise
            except QuotaExhaustedError as exc:
                quota_hit = True
                logger.warning(
                    "Quota error while polling job %s (attempt %s/%s): %s",
                    handle.job_id,
                    attempt,
                    self.max_poll_attempts,
                    exc,
                )
                continue
            except (requests.RequestException, ValueError, OutscraperError) as exc:
                logger.warning(
                    "Polling job %s failed (attempt %s/%s): %s", handle.job_id, attempt, self.max_poll_attempts, exc
                )
                continue

            if polled.done:
                if polled.status == JobStatus.FAILED:
                    logger.error("Job %s for query=%s failed: %s", handle.job_id, query.text, polled.error)
                state = polled
                break
            logger.info("Job %s still pending (attempt %s/%s)", handle.job_id, attempt, self.max_poll_attempts)
        else:
            logger.warning(
                "Job %s for query=%s timed out after %s polls", handle.job_id, query.text, self.max_poll_attempts
            )

        return replace(state, quota_exhausted=quota_hit) if quota_hit else state

    def close(self) -> None:
        self.session.close()


def _state_from_payload(payload: Dict[str, Any]) -> JobState:
    status = str(payload.get("status") or "").lower()
    if status == "success":
        return JobState(JobStatus.SUCCEEDED, results=payload.get("data") or [])
    if status == "pending":
        return JobState(JobStatus.PENDING)
    if status == "error":
        return JobState(JobStatus.FAILED, error=str(payload.get("error") or payload.get("errorMessage") or "error"))
    if "data" in payload and not status:
        return JobState(JobStatus.SUCCEEDED, results=payload.get("data") or [])
    return JobState(JobStatus.FAILED, error=f"unexpected status: {payload.get('status')}")
