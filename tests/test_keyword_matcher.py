import pytest

from newsdesk.services.keyword_matcher import NO_MATCH, KeywordMatcher


@pytest.fixture
def matcher():
    return KeywordMatcher(
        variations={"ai": ["artificial intelligence"]},
        synonyms={"en-de": {"warehouse": ["lager", "lagerhaus"]}},
    )


def test_exact_match_is_case_insensitive(matcher):
    result = matcher.matches("Warehouse Robotics Raise Funds", "robotics", mode="exact")

    assert result.matched
    assert result.match_type == "exact"
    assert result.similarity == 1.0


def test_plural_variation(matcher):
    result = matcher.matches("Drone deliveries expand to suburbs", "delivery", mode="variations")

    assert result.matched
    assert result.match_type == "variation"
    assert result.similarity == 0.95
    assert result.matched_text == "deliveries"


def test_hyphen_variation(matcher):
    result = matcher.matches("Self-checkout lanes keep growing", "self checkout", mode="variations")

    assert result.matched_text == "self-checkout"


def test_manual_variation(matcher):
    result = matcher.matches("Artificial intelligence reshapes pricing", "AI", mode="variations")

    assert result.matched
    assert result.matched_text == "artificial intelligence"


def test_synonyms_work_in_both_directions(matcher):
    german = matcher.matches("Neues Lagerhaus in Leipzig eröffnet", "warehouse", language="de")
    english = matcher.matches("New warehouse opens near the port", "lager")

    assert german.matched and german.matched_text == "lager"
    assert english.matched and english.matched_text == "warehouse"


def test_fuzzy_match_tolerates_typos(matcher):
    result = matcher.matches("Robotcs firm raises money", "robotics", mode="fuzzy")

    assert result.matched
    assert result.match_type == "fuzzy"
    assert 0.8 <= result.similarity < 1.0
    assert result.matched_text == "robotcs"


def test_fuzzy_below_threshold_reports_best_candidate(matcher):
    result = matcher.matches("Robots everywhere", "banana", mode="fuzzy")

    assert not result.matched
    assert result.similarity < 0.8


def test_hybrid_falls_back_to_fuzzy(matcher):
    assert not matcher.matches("Robotcs firm raises money", "robotics", mode="exact").matched
    assert matcher.matches("Robotcs firm raises money", "robotics").match_type == "fuzzy"


def test_empty_inputs_never_match(matcher):
    assert matcher.matches("", "robotics") is NO_MATCH
    assert matcher.matches("Robotics", "") is NO_MATCH


def test_get_variations():
    matcher = KeywordMatcher()

    assert matcher.get_variations("supply chain")[:4] == [
        "supply chain", "supply chains", "supply-chain", "supplychain",
    ]
    assert "lieferant" in matcher.get_variations("lieferanten", language="de")
    assert "lieferant" not in matcher.get_variations("lieferanten", language="en")


def test_auto_rules_can_be_disabled():
    matcher = KeywordMatcher(auto_plural=False, auto_hyphen=False)

    assert matcher.get_variations("supply chain") == ["supply chain"]


def test_results_are_cached(matcher):
    matcher.matches("Warehouse robots", "robots")
    matcher.matches("Warehouse robots", "robots")

    stats = matcher.get_cache_stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["size"] == 1

    matcher.clear_cache()
    assert matcher.get_cache_stats()["size"] == 0


def test_cache_is_bounded():
    matcher = KeywordMatcher(max_cache_size=2)
    for word in ("alpha", "beta", "gamma"):
        matcher.matches("alpha beta gamma", word)

    assert matcher.get_cache_stats()["size"] == 2


def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        KeywordMatcher(mode="telepathic")
