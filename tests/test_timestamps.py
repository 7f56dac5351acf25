from datetime import date, datetime, timedelta, timezone

from recallbot.session.timestamps import (
    canonical_day_key,
    day_key,
    format_timestamp,
    is_on_day,
    make_clock,
    parse_day,
    to_local,
)


def test_format_and_day_key() -> None:
    ts = format_timestamp(datetime(2025, 1, 5, 7, 3, 9))
    assert ts == "05.01.2025, 07:03:09"
    assert day_key(ts) == "05.01.2025"


def test_parse_day_accepts_unpadded_values() -> None:
    assert parse_day("5.1.2025") == date(2025, 1, 5)
    assert parse_day("05.01.2025") == date(2025, 1, 5)


def test_parse_day_rejects_garbage() -> None:
    assert parse_day("") is None
    assert parse_day("1/5/2025") is None
    assert parse_day("32.01.2025") is None


def test_is_on_day() -> None:
    assert is_on_day("15.01.2025, 23:59:59", date(2025, 1, 15))
    assert not is_on_day("14.01.2025, 23:59:59", date(2025, 1, 15))


def test_to_local_converts_aware_values() -> None:
    utc = datetime(2025, 1, 15, 22, 0, tzinfo=timezone.utc)
    plus_three = timezone(timedelta(hours=3))
    assert format_timestamp(to_local(utc, plus_three)) == "16.01.2025, 01:00:00"


def test_make_clock_honors_timezone() -> None:
    now = make_clock("UTC")()
    assert now.utcoffset() == timedelta(0)


def test_canonical_day_key_pads_and_keeps_unparseable() -> None:
    assert canonical_day_key("5.1.2025") == "05.01.2025"
    assert canonical_day_key("05.01.2025") == "05.01.2025"
    assert canonical_day_key(" soon ") == "soon"
