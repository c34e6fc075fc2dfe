from concurrent.futures import ThreadPoolExecutor

import pytest

from sourdough_scout.core import store
from sourdough_scout.core.models import Candidate, Evidence, EvidenceSource


def test_identity_key_normalizes_name_and_buckets_coordinates():
    candidate = Candidate(name="  Tony's   Pizza ", latitude=37.80012, longitude=-122.41049)
    assert store.identity_key(candidate) == ("tony's pizza", (37.8, -122.41))


def test_identity_key_without_coordinates():
    assert store.identity_key(Candidate(name="Tony's Pizza")) == ("tony's pizza", None)


def test_upsert_is_idempotent_and_first_seen_wins():
    candidates = store.CandidateStore()
    first = Candidate(name="Tony's Pizza", latitude=37.8, longitude=-122.41, phone="111")
    again = Candidate(name="TONY'S PIZZA", latitude=37.80001, longitude=-122.41001, phone="222")

    assert candidates.upsert(first) is True
    assert candidates.upsert(again) is False
    assert len(candidates) == 1
    assert candidates.get(store.identity_key(first)).phone == "111"


def test_same_name_far_apart_are_distinct():
    candidates = store.CandidateStore()
    candidates.upsert(Candidate(name="Pizza Place", latitude=37.7, longitude=-122.4))
    candidates.upsert(Candidate(name="Pizza Place", latitude=40.7, longitude=-74.0))
    assert len(candidates) == 2


def test_attach_evidence_accumulates():
    candidates = store.CandidateStore()
    candidate = Candidate(name="Del Popolo")
    candidates.upsert(candidate)
    key = store.identity_key(candidate)

    candidates.attach_evidence(key, {Evidence.of(EvidenceSource.WEBSITE, "sourdough")})
    candidates.attach_evidence(key, {Evidence.of(EvidenceSource.WEBSITE, "sourdough")})
    candidates.attach_evidence(key, {Evidence.of(EvidenceSource.PROFILE_TEXT, "wild yeast")})

    assert len(candidates.evidence_for(key)) == 2
    [(item_key, item_candidate, evidence)] = candidates.items()
    assert item_key == key
    assert item_candidate is candidate
    assert len(evidence) == 2


def test_attach_evidence_unknown_key():
    with pytest.raises(KeyError):
        store.CandidateStore().attach_evidence(("nobody", None), set())


def test_concurrent_upserts_store_each_identity_once():
    candidates = store.CandidateStore()
    batch = [Candidate(name=f"Pizza {index % 10}") for index in range(200)]

    with ThreadPoolExecutor(max_workers=8) as executor:
        results = list(executor.map(candidates.upsert, batch))

    assert sum(results) == 10
    assert len(candidates) == 10
    assert {candidate.name for candidate in candidates} == {f"Pizza {index}" for index in range(10)}
