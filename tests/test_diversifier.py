from collections import Counter

import pytest

from conftest import make_article
from newsdesk.pipeline.diversifier import DiversificationError, SourceDiversifier, source_key


def batch(sources, per_source):
    articles = []
    for i in range(sources):
        for j in range(per_source):
            articles.append(make_article(
                f"Story {j} from outlet {i}",
                source=f"Outlet {i}",
                score=round(0.9 - i * 0.01 - j * 0.1, 4),
            ))
    return articles


def test_relaxation_caps():
    assert SourceDiversifier.relaxation_caps(3, 10) == [3, 4, 5, 6, 10]
    assert SourceDiversifier.relaxation_caps(3, 4) == [3, 4, 5, 6]
    assert SourceDiversifier.relaxation_caps(5, 2) == [5, 6, 7, 8]


def test_many_sources_respect_the_cap():
    result = SourceDiversifier().diversify(batch(8, 4), target=10, max_per_source=3)

    counts = Counter(source_key(a) for a in result.articles)
    assert len(result.articles) == 10
    assert result.distinct_sources == 8
    assert max(counts.values()) <= 3
    assert result.cap_used == 3
    assert result.relaxed is False


def test_round_robin_takes_best_of_each_source_first():
    result = SourceDiversifier().diversify(batch(8, 4), target=10, max_per_source=3)

    titles = {a.title for a in result.articles}
    assert all(f"Story 0 from outlet {i}" in titles for i in range(8))
    assert "Story 1 from outlet 0" in titles
    assert "Story 1 from outlet 1" in titles


def test_output_is_ordered_by_score():
    result = SourceDiversifier().diversify(batch(8, 4), target=10, max_per_source=3)

    scores = [a.score for a in result.articles]
    assert scores == sorted(scores, reverse=True)


def test_few_sources_relax_the_cap():
    result = SourceDiversifier().diversify(batch(2, 10), target=10, max_per_source=3)

    assert len(result.articles) == 10
    assert result.cap_used == 5
    assert result.relaxed is True
    assert result.distribution == {"Outlet 0": 5, "Outlet 1": 5}


def test_short_supply_returns_everything_available():
    result = SourceDiversifier().diversify(batch(1, 4), target=10, max_per_source=3, min_sources=2)

    assert len(result.articles) == 4
    assert result.distinct_sources == 1
    assert result.meets_min_sources is False
    assert result.to_dict()["count"] == 4


def test_empty_input():
    result = SourceDiversifier().diversify([], target=5)

    assert result.articles == []
    assert result.distribution == {}


def test_grouping_falls_back_to_source_id():
    article = make_article("Unnamed outlet story", source="", source_id="feed-7")
    assert source_key(article) == "feed-7"


@pytest.mark.parametrize("target,cap", [(0, 3), (5, 0)])
def test_invalid_arguments_raise(target, cap):
    with pytest.raises(DiversificationError):
        SourceDiversifier().diversify(batch(2, 2), target=target, max_per_source=cap)
