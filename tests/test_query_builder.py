from datetime import date, datetime, timezone
from xml.etree import ElementTree as ET

import pytest

from query_builder import (
    ALL_ACCOUNTS,
    MAX_PREDICATE_LENGTH,
    SetupError,
    TimeRange,
    build_query,
    load_account_file,
    make_account_filter,
    make_time_range,
    parse_kinds,
    xpath_literal,
)


def test_start_after_end_is_rejected():
    with pytest.raises(SetupError):
        make_time_range("2025-11-08", "2025-11-07")


def test_single_day_range_is_valid_and_covers_whole_day():
    tr = make_time_range("2025-10-01", "2025-10-01")
    lo, hi = tr.utc_bounds()
    assert lo == datetime(2025, 10, 1, tzinfo=timezone.utc)
    assert hi == datetime(2025, 10, 2, tzinfo=timezone.utc)


@pytest.mark.parametrize("bad", ["2025-13-01", "10/01/2025", "", "yesterday"])
def test_malformed_dates_are_setup_errors(bad):
    with pytest.raises(SetupError):
        make_time_range(bad, "2025-10-01")


def test_account_filter_trims_dedupes_and_drops_blanks():
    f = make_account_filter([" alice ", "", "bob", "alice", "Alice", "   "])
    assert f.accounts == ("alice", "bob", "Alice")
    assert not f.is_all


def test_account_filter_none_means_all():
    assert make_account_filter(None).is_all


def test_empty_account_list_is_setup_error():
    with pytest.raises(SetupError):
        make_account_filter(["", "  "])


def test_unreadable_account_file_is_setup_error(tmp_path):
    with pytest.raises(SetupError):
        load_account_file(str(tmp_path / "missing.txt"))


def test_account_file_skips_comments(tmp_path):
    p = tmp_path / "accounts.txt"
    p.write_text("# auditors\nalice\n\nbob\n", encoding="utf-8")
    assert make_account_filter(load_account_file(str(p))).accounts == ("alice", "bob")


def test_kinds_default_to_mode_and_reject_other_modes():
    assert parse_kinds(None, "auth") == (4768, 4771, 4776)
    assert parse_kinds("4726,4720", "lifecycle") == (4726, 4720)
    with pytest.raises(SetupError):
        parse_kinds("4768,4720", "auth")
    with pytest.raises(SetupError):
        parse_kinds("4624", "auth")


def test_query_without_accounts_has_no_account_clause():
    q = build_query((4768, 4771), TimeRange(date(2025, 10, 1), date(2025, 11, 7)), ALL_ACCOUNTS)
    assert q == (
        "*[System[(EventID=4768 or EventID=4771) and "
        "TimeCreated[@SystemTime&gt;='2025-10-01T00:00:00.000Z' "
        "and @SystemTime&lt;'2025-11-08T00:00:00.000Z']]]"
    )
    assert "EventData" not in q


def test_query_matches_accounts_on_primary_and_fallback_fields():
    q = build_query((4776,), TimeRange(date(2025, 10, 1), date(2025, 10, 1)), make_account_filter(["alice", "bob"]))
    assert "Data[@Name='TargetUserName']='alice'" in q
    assert "Data[@Name='AccountName']='alice'" in q
    assert "Data[@Name='TargetUserName']='bob'" in q
    assert "Data[@Name='AccountName']='bob'" in q


def test_single_quote_in_account_is_entity_escaped():
    lit = xpath_literal("o'brien")
    assert lit == '"o&apos;brien"'
    q = build_query((4768,), TimeRange(date(2025, 10, 1), date(2025, 10, 2)), make_account_filter(["o'brien"]))
    assert "Data[@Name='TargetUserName']=\"o&apos;brien\"" in q
    assert "'o'brien'" not in q


def test_escaped_predicate_decodes_back_to_the_literal_account():
    q = build_query((4768,), TimeRange(date(2025, 10, 1), date(2025, 10, 2)), make_account_filter(["o'brien&co"]))
    decoded = ET.fromstring(f"<Select>{q}</Select>").text
    assert "Data[@Name='TargetUserName']=\"o'brien&co\"" in decoded
    assert "@SystemTime>='2025-10-01T00:00:00.000Z'" in decoded


def test_double_quote_in_account_is_rejected():
    with pytest.raises(SetupError):
        make_account_filter(['bad"name'])


def test_account_list_that_cannot_fit_one_query_is_setup_error():
    tr = make_time_range("2025-10-01", "2025-10-31")
    ok = build_query([4768], tr, make_account_filter([f"user{i:03d}" for i in range(20)]))
    assert len(ok) <= MAX_PREDICATE_LENGTH
    with pytest.raises(SetupError, match="too long"):
        build_query([4768], tr, make_account_filter([f"user{i:03d}" for i in range(200)]))
