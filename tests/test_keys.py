"""Tests for natural key normalization."""

from datetime import UTC, date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from concert_agent.core.keys import (
    NaturalKey,
    date_key,
    natural_key,
    normalize_artist_key,
    normalize_text,
    normalize_venue_key,
)

STOCKHOLM = ZoneInfo("Europe/Stockholm")


class TestNormalizeText:
    """Tests for the character filter."""

    def test_lowercases_and_strips_punctuation(self) -> None:
        assert normalize_text("AC/DC!") == "acdc"

    def test_keeps_swedish_letters(self) -> None:
        assert normalize_text("Gröna Lund") == "grönalund"
        assert normalize_text("Kåre Ärlig") == "kåreärlig"

    def test_drops_other_accents(self) -> None:
        assert normalize_text("Beyoncé") == "beyonc"


class TestArtistKey:
    """Tests for the artist key component."""

    def test_cuts_tour_name(self) -> None:
        assert normalize_artist_key("Robyn - Honey Tour 2026") == "robyn"
        assert normalize_artist_key("Robyn: Honey Tour") == "robyn"
        assert normalize_artist_key("Robyn | Live") == "robyn"
        assert normalize_artist_key("Robyn – Live") == "robyn"

    def test_case_and_spacing_insensitive(self) -> None:
        assert normalize_artist_key("  The  Hives ") == normalize_artist_key("the hives")

    def test_comma_is_not_an_artist_separator(self) -> None:
        assert normalize_artist_key("Crosby, Stills & Nash") == "crosbystillsnash"

    def test_tour_title_after_colon(self) -> None:
        assert normalize_artist_key("5 Seconds of Summer: EVERYONE'S A STAR! WORLD TOUR") == "5secondsofsummer"


class TestVenueKey:
    """Tests for the venue key component."""

    def test_cuts_city_suffix_after_comma(self) -> None:
        assert normalize_venue_key("Nalen, Stockholm") == normalize_venue_key("Nalen")

    def test_cuts_sub_venue(self) -> None:
        assert normalize_venue_key("Gröna Lund - Stora Scen") == "grönalund"


class TestDateKey:
    """Tests for the date key component."""

    def test_aware_datetime_uses_utc_date(self) -> None:
        # 00:30 local on Nov 21 is still Nov 20 in UTC
        local = datetime(2026, 11, 21, 0, 30, tzinfo=STOCKHOLM)
        assert date_key(local) == "2026-11-20"

    def test_naive_datetime_is_taken_as_utc(self) -> None:
        assert date_key(datetime(2026, 11, 20, 23, 30)) == "2026-11-20"

    def test_date_value(self) -> None:
        assert date_key(date(2026, 5, 1)) == "2026-05-01"

    def test_iso_string(self) -> None:
        assert date_key("2026-05-01T19:00:00+02:00") == "2026-05-01"

    def test_unparseable_string_passes_through(self) -> None:
        assert date_key("  sometime in May ") == "sometime in May"

    def test_same_instant_same_key(self) -> None:
        a = datetime(2026, 6, 1, 19, 0, tzinfo=STOCKHOLM)
        b = datetime(2026, 6, 1, 17, 0, tzinfo=UTC)
        c = datetime(2026, 6, 1, 20, 0, tzinfo=timezone(timedelta(hours=3)))
        assert date_key(a) == date_key(b) == date_key(c)


class TestNaturalKey:
    """Tests for the full key."""

    def test_variants_collapse(self) -> None:
        when = datetime(2026, 6, 1, 19, 0, tzinfo=STOCKHOLM)
        a = natural_key("Robyn", "Avicii Arena", when)
        b = natural_key("ROBYN - Honey Tour", "Avicii Arena, Stockholm", when)
        assert a == b

    def test_is_a_named_tuple(self) -> None:
        key = natural_key("Robyn", "Nalen", date(2026, 6, 1))
        assert isinstance(key, NaturalKey)
        assert key.artist == "robyn"
        assert str(key) == "robyn|nalen|2026-06-01"

    def test_different_days_differ(self) -> None:
        assert natural_key("Robyn", "Nalen", date(2026, 6, 1)) != natural_key("Robyn", "Nalen", date(2026, 6, 2))


SAMPLES = [
    "5 Seconds of Summer: EVERYONE'S A STAR! WORLD TOUR",
    "Robyn - Honey Tour 2026",
    "Gröna Lund - Stora Scen",
    "Nalen, Stockholm",
    "  AC/DC | Power Up ",
    "Beyoncé",
    "",
]


class TestIdempotence:
    """Normalizing a normalized value changes nothing."""

    @pytest.mark.parametrize("value", SAMPLES)
    @pytest.mark.parametrize("normalize", [normalize_text, normalize_artist_key, normalize_venue_key])
    def test_normalize_twice(self, normalize, value: str) -> None:
        once = normalize(value)
        assert normalize(once) == once
