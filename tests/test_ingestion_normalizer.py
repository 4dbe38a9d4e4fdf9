"""Tests for the quality filter."""

import pytest
from conftest import make_candidate

from concert_agent.core.errors import ValidationDrop
from concert_agent.ingestion.context import RunCounters
from concert_agent.ingestion.normalizer import QualityFilter
from concert_agent.ingestion.registry import DEFAULT_SOURCES_PATH, SourceRegistry
from concert_agent.ingestion.rules import DEFAULT_RULES_PATH, QualityRules


@pytest.fixture
def quality_filter(rules: QualityRules) -> QualityFilter:
    return QualityFilter(rules, city_specific_sources={"local-venue"})


class TestNormalizeVenue:
    """Tests for venue normalization."""

    def test_alias_wins(self, quality_filter: QualityFilter) -> None:
        assert quality_filter.normalize_venue("Friends Arena, Solna") == "Strawberry Arena"

    def test_alias_for_sub_venue(self, quality_filter: QualityFilter) -> None:
        assert quality_filter.normalize_venue("Stora Scen") == "Gröna Lund"

    def test_trailing_suffix_stripped(self, quality_filter: QualityFilter) -> None:
        assert quality_filter.normalize_venue("Nalen, Stockholm") == "Nalen"
        assert quality_filter.normalize_venue("Nalen Stockholm") == "Nalen"

    def test_repeated_suffixes_stripped(self, quality_filter: QualityFilter) -> None:
        assert quality_filter.normalize_venue("Fasching, Stockholm, Sweden") == "Fasching"

    def test_suffix_alone_is_kept(self, quality_filter: QualityFilter) -> None:
        assert quality_filter.normalize_venue("Stockholm") == "Stockholm"

    def test_unknown_venue_unchanged(self, quality_filter: QualityFilter) -> None:
        assert quality_filter.normalize_venue("Debaser Strand") == "Debaser Strand"


class TestTicketUrl:
    """Tests for ticket URL validation."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.ticketmaster.se/event/123",
            "http://tickster.com/se/sv/events/abc",
        ],
    )
    def test_valid(self, quality_filter: QualityFilter, url: str) -> None:
        assert quality_filter.is_valid_ticket_url(url)

    @pytest.mark.parametrize(
        "url",
        [
            None,
            "",
            "http://a",
            "ftp://tickets.se/event/1",
            "/event/123/tickets",
            "https://example.com/tickets",
            "https://shop.local/tickets/1",
            "https://staging.tickets.se/event/1",
        ],
    )
    def test_invalid(self, quality_filter: QualityFilter, url) -> None:
        assert not quality_filter.is_valid_ticket_url(url)


class TestCheck:
    """Tests for the combined candidate check."""

    def test_local_venue_kept_and_normalized(self, quality_filter: QualityFilter) -> None:
        candidate = make_candidate(venue="Friends Arena", source_name="National")
        cleaned = quality_filter.check(candidate)
        assert cleaned.venue == "Strawberry Arena"

    def test_raw_venue_keyword_counts(self, quality_filter: QualityFilter) -> None:
        # Suffix stripping removes "Stockholm", but the raw form still qualifies
        candidate = make_candidate(venue="Kägelbanan, Stockholm", source_name="National")
        cleaned = quality_filter.check(candidate)
        assert cleaned.venue == "Kägelbanan"

    def test_non_local_dropped(self, quality_filter: QualityFilter) -> None:
        candidate = make_candidate(venue="Scandinavium, Göteborg", source_name="National")
        with pytest.raises(ValidationDrop) as exc_info:
            quality_filter.check(candidate)
        assert exc_info.value.reason == "outside_city"

    def test_city_specific_source_skips_geo_check(self, quality_filter: QualityFilter) -> None:
        candidate = make_candidate(venue="Pub Anchor", source_key="local-venue")
        assert quality_filter.check(candidate).venue == "Pub Anchor"

    def test_invalid_ticket_url_nulled_not_dropped(self, quality_filter: QualityFilter) -> None:
        candidate = make_candidate(ticket_url="https://example.com/x", source_key="local-venue")
        cleaned = quality_filter.check(candidate)
        assert cleaned.ticket_url is None
        assert cleaned.artist == candidate.artist

    def test_unchanged_candidate_is_same_object(self, quality_filter: QualityFilter) -> None:
        candidate = make_candidate(venue="Avicii Arena", ticket_url="https://www.axs.com/se/events/1")
        assert quality_filter.check(candidate) is candidate

    def test_filter_returns_none_on_drop(self, quality_filter: QualityFilter) -> None:
        assert quality_filter.filter(make_candidate(venue="Malmö Arena", source_name="X")) is None


class TestFilterAll:
    """Tests for batch filtering."""

    def test_counts_drops_and_nulled_urls(self, quality_filter: QualityFilter) -> None:
        counters = RunCounters()
        candidates = [
            make_candidate(artist="A", venue="Nalen", source_name="X"),
            make_candidate(artist="B", venue="Malmö Arena", source_name="X"),
            make_candidate(artist="C", venue="Pub", source_key="local-venue", ticket_url="http://a"),
        ]
        kept = quality_filter.filter_all(candidates, counters)
        assert [c.artist for c in kept] == ["A", "C"]
        assert counters.dropped["outside_city"] == 1
        assert counters.invalid_ticket_urls == 1
        assert counters.total_dropped == 1

    def test_without_counters(self, quality_filter: QualityFilter) -> None:
        kept = quality_filter.filter_all([make_candidate(venue="Globen")])
        assert kept[0].venue == "Avicii Arena"


class TestPackagedSources:
    """Geographic check against the shipped sources and rules."""

    @pytest.fixture
    def packaged_filter(self) -> QualityFilter:
        registry = SourceRegistry()
        registry.load_config(DEFAULT_SOURCES_PATH)
        return QualityFilter(QualityRules.load(DEFAULT_RULES_PATH), registry.city_specific_sources())

    def test_live_nation_keeps_unlisted_stockholm_venue(self, packaged_filter: QualityFilter) -> None:
        candidate = make_candidate(venue="Vasateatern", source_key="livenation", source_name="Live Nation")
        assert packaged_filter.check(candidate).venue == "Vasateatern"

    def test_live_nation_comedy_search_is_checked(self, packaged_filter: QualityFilter) -> None:
        candidate = make_candidate(
            venue="Lisebergshallen, Göteborg", source_key="livenation-comedy", source_name="Live Nation"
        )
        assert packaged_filter.filter(candidate) is None
