import pytest

from conftest import make_article
from newsdesk.services.deduplication_service import Deduplicator

BERLIN = "Robots deliver groceries across Berlin"
BERLIN_UPDATE = "Robots deliver groceries across Berlin today"
PARIS = "Fashion retailer cuts jobs in Paris stores"
TOKYO = "Tokyo pharmacy chain adopts cashierless payments"


def test_similarity_is_symmetric_and_normalized():
    assert Deduplicator.similarity("Robots, Deliver!", "robots deliver") == 1.0
    assert Deduplicator.similarity(BERLIN, BERLIN_UPDATE) == Deduplicator.similarity(BERLIN_UPDATE, BERLIN)
    assert Deduplicator.similarity(BERLIN, PARIS) < 0.6
    assert Deduplicator.similarity("", "") == 1.0
    assert Deduplicator.similarity(BERLIN, "") == 0.0


def test_threshold_must_be_in_range():
    with pytest.raises(ValueError):
        Deduplicator(1.5)


def test_link_and_title_duplicates_are_removed():
    dedup = Deduplicator(0.8)
    articles = [
        make_article(BERLIN, link="https://a.example/1"),
        make_article(PARIS, link="https://a.example/2"),
        make_article("Completely different headline", link="https://a.example/1"),
        make_article(BERLIN_UPDATE, link="https://b.example/9"),
        make_article(TOKYO, link="https://a.example/3"),
    ]

    unique = dedup.deduplicate(articles)

    assert [a.link for a in unique] == ["https://a.example/1", "https://a.example/2", "https://a.example/3"]
    stats = dedup.get_statistics()
    assert stats["total_processed"] == 5
    assert stats["link_duplicates"] == 1
    assert stats["title_duplicates"] == 1


def test_better_version_replaces_in_place():
    dedup = Deduplicator(0.8)
    bare = make_article(BERLIN, link="https://a.example/1")
    detailed = make_article(BERLIN_UPDATE, link="https://b.example/1", description="Three districts now served.")

    unique = dedup.deduplicate([bare, make_article(PARIS), detailed])

    assert unique[0] is detailed
    assert unique[1].title == PARIS
    assert dedup.get_statistics()["replaced"] == 1


def test_is_better_version_rules():
    short = make_article(BERLIN, description="Short text.")
    long = make_article(BERLIN, description="A much longer description that clearly carries more detail.")
    older = make_article(BERLIN, description="Same length A", hours_ago=10)
    newer = make_article(BERLIN, description="Same length B", hours_ago=1)

    assert Deduplicator.is_better_version(long, short)
    assert not Deduplicator.is_better_version(short, long)
    assert Deduplicator.is_better_version(newer, older)
    assert not Deduplicator.is_better_version(older, newer)
    assert not Deduplicator.is_better_version(make_article(BERLIN), short)


def test_deduplicate_is_idempotent():
    dedup = Deduplicator(0.8)
    articles = [make_article(BERLIN), make_article(BERLIN_UPDATE), make_article(PARIS), make_article(TOKYO)]

    once = dedup.deduplicate(articles)
    twice = dedup.deduplicate(once)

    assert [a.link for a in twice] == [a.link for a in once]
    assert len(once) == 3


def test_replacement_is_merged_with_entries_it_now_duplicates():
    dedup = Deduplicator(0.8)
    first = make_article(BERLIN, link="https://x.example/1")
    second = make_article(PARIS, link="https://y.example/2")
    # same link as first, same title as second
    bridge = make_article(PARIS, link="https://x.example/1", description="Four hundred roles affected.")

    once = dedup.deduplicate([first, second, bridge])
    twice = dedup.deduplicate(once)

    assert [(a.title, a.link) for a in once] == [(PARIS, "https://x.example/1")]
    assert once[0].description == "Four hundred roles affected."
    assert [(a.title, a.link) for a in twice] == [(a.title, a.link) for a in once]


def test_merge_keeps_the_better_neighbour():
    dedup = Deduplicator(0.8)
    first = make_article(BERLIN, link="https://x.example/1")
    second = make_article(PARIS, link="https://y.example/2", description="A much longer summary of the Paris job cuts.")
    bridge = make_article(PARIS, link="https://x.example/1", description="Short.")

    once = dedup.deduplicate([first, second, bridge])

    assert [a.link for a in once] == ["https://y.example/2"]
    assert dedup.deduplicate(once) == once


def test_find_duplicate_groups_and_reset():
    dedup = Deduplicator(0.8)
    articles = [make_article(BERLIN), make_article(PARIS), make_article(BERLIN_UPDATE), make_article(TOKYO)]

    groups = dedup.find_duplicate_groups(articles)

    assert len(groups) == 1
    assert [a.title for a in groups[0]] == [BERLIN, BERLIN_UPDATE]

    dedup.deduplicate(articles)
    dedup.reset_statistics()
    assert set(dedup.get_statistics().values()) == {0}
