from sourdough_scout.etl import normalize


def test_flatten_once_handles_nested_and_flat_lists():
    assert normalize.flatten_once([[{"name": "A"}, {"name": "B"}]]) == [{"name": "A"}, {"name": "B"}]
    assert normalize.flatten_once([{"name": "A"}, [{"name": "B"}]]) == [{"name": "A"}, {"name": "B"}]
    assert normalize.flatten_once({"name": "A"}) == []
    assert normalize.flatten_once(None) == []


def test_flatten_once_does_not_recurse():
    assert normalize.flatten_once([[[{"name": "deep"}]]]) == [[{"name": "deep"}]]


def test_parse_search_payload_skips_malformed_entries():
    candidates = normalize.parse_search_payload(
        [[{"name": "A"}, {"name": "  "}, "garbage", {"address": "no name"}, {"name": "B"}]]
    )
    assert [candidate.name for candidate in candidates] == ["A", "B"]


def test_to_candidate_maps_provider_fields():
    raw = {
        "name": " Tony's Pizza Napoletana ",
        "full_address": "1570 Stockton St, San Francisco, CA 94133",
        "phone": "+1 415-835-9888",
        "site": "http://tonyspizzanapoletana.com/",
        "latitude": "37.8003",
        "longitude": -122.4092,
        "description": "Wood-fired pizza",
        "subtypes": "Pizza restaurant, Italian restaurant",
        "rating": 4.5,
        "reviews": "5,102",
        "city": "San Francisco",
        "us_state": "CA",
    }

    candidate = normalize.to_candidate(raw)

    assert candidate.name == "Tony's Pizza Napoletana"
    assert candidate.address == "1570 Stockton St, San Francisco, CA 94133"
    assert candidate.website == "http://tonyspizzanapoletana.com/"
    assert candidate.latitude == 37.8003
    assert candidate.longitude == -122.4092
    assert candidate.categories == ("Pizza restaurant", "Italian restaurant")
    assert candidate.review_count == 5102
    assert candidate.state == "CA"
    assert candidate.raw_snapshot is raw


def test_to_candidate_field_fallbacks():
    candidate = normalize.to_candidate(
        {
            "name": "Slice House",
            "street": "123 Main St",
            "website": "slicehouse.example",
            "categories": ["Pizza", ""],
            "latitude": "not-a-number",
            "reviews_count": 12,
        }
    )
    assert candidate.address == "123 Main St"
    assert candidate.website == "slicehouse.example"
    assert candidate.categories == ("Pizza",)
    assert candidate.latitude is None
    assert candidate.has_coordinates is False
    assert candidate.review_count == 12


def test_to_candidate_rejects_non_dicts():
    assert normalize.to_candidate(["name", "A"]) is None
    assert normalize.to_candidate({"name": {"nested": True}}) is None


def test_to_candidate_drops_unusable_coordinates():
    for latitude, longitude in (("NaN", "inf"), ("1e400", "-122.4"), ("91.5", "-122.4"), ("37.8", "-181")):
        candidate = normalize.to_candidate({"name": "Tony's Pizza", "latitude": latitude, "longitude": longitude})
        assert candidate.has_coordinates is False

    candidate = normalize.to_candidate({"name": "Tony's Pizza", "latitude": "37.8", "longitude": "-181"})
    assert candidate.latitude == 37.8
    assert candidate.longitude is None


def test_to_candidate_drops_non_finite_numbers():
    candidate = normalize.to_candidate({"name": "Tony's Pizza", "rating": "nan", "reviews": float("inf")})
    assert candidate.rating is None
    assert candidate.review_count is None
