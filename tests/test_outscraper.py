import threading

import pytest
import requests

from sourdough_scout.core.models import JobHandle, JobStatus, SearchQuery
from sourdough_scout.core.rate_limit import QuotaExhaustedError, RateLimiter
from sourdough_scout.vendors import outscraper


class DummyResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload if payload is not None else {}

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"http error {self.status_code}")

    def json(self):
        return self._payload


class DummySession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, params, headers, timeout))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        pass


QUERY = SearchQuery(text="pizza San Francisco CA", limit=50)


def make_client(responses, **kwargs):
    sleeps = []
    session = DummySession(responses)
    client = outscraper.OutscraperClient("key", session=session, sleep=sleeps.append, **kwargs)
    return client, session, sleeps


def test_poll_delay_grows_and_caps():
    assert outscraper.poll_delay(1) == 8.0
    assert outscraper.poll_delay(2) == 9.0
    assert outscraper.poll_delay(20) == 15.0


def test_submit_sends_query_and_api_key():
    client, session, _ = make_client([DummyResponse(payload={"id": "job-1", "status": "Pending"})])

    handle = client.submit(QUERY)

    assert handle.job_id == "job-1"
    url, params, headers, timeout = session.calls[0]
    assert url.endswith("/maps/search-v3")
    assert params["query"] == "pizza San Francisco CA"
    assert params["limit"] == 50
    assert headers == {"X-API-KEY": "key"}
    assert timeout == outscraper.REQUEST_TIMEOUT


def test_submit_inline_success():
    client, _, _ = make_client([DummyResponse(payload={"status": "Success", "data": [[{"name": "A"}]]})])
    handle = client.submit(QUERY)
    assert handle.inline == [[{"name": "A"}]]
    assert client.poll(handle).results == [[{"name": "A"}]]


def test_submit_without_job_id_raises():
    client, _, _ = make_client([DummyResponse(payload={"status": "Pending"})])
    with pytest.raises(outscraper.OutscraperError):
        client.submit(QUERY)


def test_run_polls_until_success():
    client, session, sleeps = make_client(
        [
            DummyResponse(payload={"id": "job-1", "status": "Pending"}),
            DummyResponse(payload={"id": "job-1", "status": "Pending"}),
            DummyResponse(payload={"id": "job-1", "status": "Success", "data": [[{"name": "A"}]]}),
        ]
    )

    state = client.run(QUERY)

    assert state.status == JobStatus.SUCCEEDED
    assert state.results == [[{"name": "A"}]]
    assert sleeps == [8.0, 9.0]
    assert session.calls[1][0].endswith("/requests/job-1")


def test_run_times_out_after_attempt_ceiling():
    pending = {"id": "job-1", "status": "Pending"}
    client, session, sleeps = make_client(
        [DummyResponse(payload=pending) for _ in range(4)], max_poll_attempts=3
    )

    state = client.run(QUERY)

    assert state.status == JobStatus.FAILED
    assert state.error == "timeout"
    assert len(session.calls) == 4
    assert sleeps == [8.0, 9.0, 10.0]


def test_run_counts_poll_errors_as_attempts():
    client, _, _ = make_client(
        [
            DummyResponse(payload={"id": "job-1", "status": "Pending"}),
            requests.ConnectionError("boom"),
            DummyResponse(payload={"status": "Success", "data": []}),
        ]
    )
    state = client.run(QUERY)
    assert state.status == JobStatus.SUCCEEDED
    assert state.results == []


def test_run_reports_provider_failure():
    client, _, _ = make_client(
        [
            DummyResponse(payload={"id": "job-1", "status": "Pending"}),
            DummyResponse(payload={"status": "Error", "error": "bad query"}),
        ]
    )
    state = client.run(QUERY)
    assert state.status == JobStatus.FAILED
    assert state.error == "bad query"


def test_run_reports_submit_failure():
    client, _, sleeps = make_client([DummyResponse(status_code=500)])
    state = client.run(QUERY)
    assert state.status == JobStatus.FAILED
    assert sleeps == []


def test_auth_failure_propagates():
    client, _, _ = make_client([DummyResponse(status_code=401)])
    with pytest.raises(outscraper.OutscraperAuthError):
        client.run(QUERY)


def test_quota_failure_propagates():
    client, _, _ = make_client([DummyResponse(status_code=429)])
    with pytest.raises(QuotaExhaustedError):
        client.run(QUERY)


def test_limiter_budget_stops_submission():
    limiter = RateLimiter(100.0, budget=0)
    client, session, _ = make_client([], limiter=limiter)
    with pytest.raises(QuotaExhaustedError):
        client.submit(QUERY)
    assert session.calls == []


def test_poll_without_job_id():
    client, _, _ = make_client([])
    state = client.poll(JobHandle(job_id=None, query=QUERY))
    assert state.status == JobStatus.FAILED


def test_client_requires_api_key():
    with pytest.raises(ValueError):
        outscraper.OutscraperClient("")


def test_default_session_retries_polls_only():
    session = outscraper.build_session()
    assert session.get_adapter("https://api.app.outscraper.com/maps/search-v3").max_retries.total == 0
    retries = session.get_adapter("https://api.app.outscraper.com/requests/job-1").max_retries
    assert retries.total == 3
    assert 503 in retries.status_forcelist
    assert 429 not in retries.status_forcelist


def test_polls_do_not_spend_the_search_budget():
    limiter = RateLimiter(100.0, budget=1, sleep=lambda _: None)
    client, _, _ = make_client(
        [
            DummyResponse(payload={"id": "job-1", "status": "Pending"}),
            DummyResponse(payload={"id": "job-1", "status": "Pending"}),
            DummyResponse(payload={"id": "job-1", "status": "Success", "data": [[{"name": "A"}]]}),
        ],
        limiter=limiter,
    )

    state = client.run(QUERY)

    assert state.status == JobStatus.SUCCEEDED
    assert state.results == [[{"name": "A"}]]
    assert state.quota_exhausted is False
    assert limiter.calls == 1
    with pytest.raises(QuotaExhaustedError):
        client.submit(QUERY)


def test_quota_error_while_polling_keeps_the_job():
    client, _, _ = make_client(
        [
            DummyResponse(payload={"id": "job-1", "status": "Pending"}),
            DummyResponse(status_code=429),
            DummyResponse(payload={"id": "job-1", "status": "Success", "data": [[{"name": "A"}]]}),
        ]
    )

    state = client.run(QUERY)

    assert state.status == JobStatus.SUCCEEDED
    assert state.results == [[{"name": "A"}]]
    assert state.quota_exhausted is True


def test_cancelled_job_stops_polling():
    cancel = threading.Event()
    cancel.set()
    client, session, _ = make_client([DummyResponse(payload={"id": "job-1", "status": "Pending"})])

    state = client.run(QUERY, cancel=cancel)

    assert state.status == JobStatus.FAILED
    assert state.error == "cancelled"
    assert len(session.calls) == 1
