"""Tests for the deduplicator and the deletion guard."""

from datetime import UTC, datetime

from conftest import make_candidate

from concert_agent.core.keys import natural_key
from concert_agent.ingestion.dedup import completeness_score, deduplicate, merge_candidates
from concert_agent.ingestion.guard import exclude_deleted

WHEN = datetime(2026, 11, 20, 18, 0, tzinfo=UTC)


class TestCompletenessScore:
    """Tests for completeness scoring."""

    def test_empty(self) -> None:
        assert completeness_score(make_candidate()) == 0

    def test_weights(self) -> None:
        assert completeness_score(make_candidate(ticket_url="https://t.se/1")) == 2
        assert completeness_score(make_candidate(image_url="https://i.se/1.jpg")) == 1
        assert completeness_score(make_candidate(tickets_available=True)) == 1
        full = make_candidate(ticket_url="https://t.se/1", image_url="https://i.se/1.jpg", tickets_available=True)
        assert completeness_score(full) == 4


class TestMergeCandidates:
    """Tests for pairwise merging."""

    def test_higher_score_wins(self) -> None:
        poor = make_candidate(venue="Avicii Arena", source_name="A")
        rich = make_candidate(venue="Avicii Arena", source_name="B", ticket_url="https://t.se/1")
        assert merge_candidates(poor, rich).source_name == "B"

    def test_tie_keeps_existing(self) -> None:
        first = make_candidate(source_name="A", image_url="https://i.se/a.jpg")
        second = make_candidate(source_name="B", tickets_available=True)
        merged = merge_candidates(first, second)
        assert merged.source_name == "A"
        # Still additive
        assert merged.tickets_available is True
        assert merged.image_url == "https://i.se/a.jpg"

    def test_merge_is_additive(self) -> None:
        with_ticket = make_candidate(ticket_url="https://t.se/1", source_name="A")
        with_image = make_candidate(
            image_url="https://i.se/1.jpg",
            ticket_sale_date=datetime(2026, 3, 1, 9, 0, tzinfo=UTC),
            source_name="B",
        )
        merged = merge_candidates(with_image, with_ticket)
        assert merged.source_name == "A"
        assert merged.ticket_url == "https://t.se/1"
        assert merged.image_url == "https://i.se/1.jpg"
        assert merged.ticket_sale_date == datetime(2026, 3, 1, 9, 0, tzinfo=UTC)

    def test_winner_values_are_not_overwritten(self) -> None:
        a = make_candidate(ticket_url="https://t.se/a", image_url="https://i.se/a.jpg")
        b = make_candidate(ticket_url="https://t.se/b", image_url="https://i.se/b.jpg")
        merged = merge_candidates(a, b)
        assert merged.ticket_url == "https://t.se/a"
        assert merged.image_url == "https://i.se/a.jpg"


class TestDeduplicate:
    """Tests for deduplicate."""

    def test_variants_collapse_to_one(self) -> None:
        candidates = [
            make_candidate(artist="Robyn", venue="Avicii Arena", date=WHEN),
            make_candidate(artist="ROBYN - Honey Tour", venue="Avicii Arena, Stockholm", date=WHEN, ticket_url="https://t.se/1"),
        ]
        result = deduplicate(candidates)
        assert len(result) == 1
        assert result[0].ticket_url == "https://t.se/1"

    def test_preserves_first_seen_order(self) -> None:
        candidates = [
            make_candidate(artist="B"),
            make_candidate(artist="A"),
            make_candidate(artist="B", image_url="https://i.se/b.jpg"),
            make_candidate(artist="C"),
        ]
        result = deduplicate(candidates)
        assert [c.artist for c in result] == ["B", "A", "C"]
        assert result[0].image_url == "https://i.se/b.jpg"

    def test_different_days_kept(self) -> None:
        candidates = [
            make_candidate(date=WHEN),
            make_candidate(date=datetime(2026, 11, 21, 18, 0, tzinfo=UTC)),
        ]
        assert len(deduplicate(candidates)) == 2

    def test_three_way_merge_keeps_everything(self) -> None:
        candidates = [
            make_candidate(tickets_available=True),
            make_candidate(image_url="https://i.se/1.jpg"),
            make_candidate(ticket_url="https://t.se/1"),
        ]
        [merged] = deduplicate(candidates)
        assert merged.ticket_url == "https://t.se/1"
        assert merged.image_url == "https://i.se/1.jpg"
        assert merged.tickets_available is True

    def test_empty(self) -> None:
        assert deduplicate([]) == []


class TestExcludeDeleted:
    """Tests for the deletion guard."""

    def test_deleted_key_excluded(self) -> None:
        keep = make_candidate(artist="Kent")
        gone = make_candidate(artist="Robyn - Honey Tour", venue="Avicii Arena")
        deleted = {natural_key("robyn", "avicii arena, stockholm", WHEN)}
        assert exclude_deleted([keep, gone], deleted) == [keep]

    def test_same_artist_other_day_kept(self) -> None:
        candidate = make_candidate(date=datetime(2026, 11, 21, 18, 0, tzinfo=UTC))
        deleted = {natural_key(candidate.artist, candidate.venue, WHEN)}
        assert exclude_deleted([candidate], deleted) == [candidate]

    def test_empty_deletion_set(self) -> None:
        candidates = [make_candidate(artist="A"), make_candidate(artist="B")]
        assert exclude_deleted(candidates, set()) == candidates
