#!/usr/bin/env python3
# query_builder.py
#
# ODEA Krino - Query predicate builder for the Security event log
#
# Compiles (event kinds, inclusive date range, optional account list) into an
# event-log XPath Select expression. The returned string is already escaped for
# embedding inside a <QueryList> filter document, so it is passed unchanged to
# every source (live channel and archived .evtx files).
#
# Also owns the setup-time validation helpers: any problem here is fatal and
# happens before a single source is touched.

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

import event_kinds

DATE_FMT = "%Y-%m-%d"
XPATH_TIME_FMT = "%Y-%m-%dT%H:%M:%S.000Z"

# The query script travels base64 UTF-16 encoded on one powershell command
# line (32767 characters on Windows), template and QueryList wrapper included.
MAX_PREDICATE_LENGTH = 10000


class SetupError(ValueError):
    pass


# ---------------------------
# Time range
# ---------------------------

@dataclass(frozen=True)
class TimeRange:
    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise SetupError(f"start date {self.start} is after end date {self.end}")

    def utc_bounds(self) -> Tuple[datetime, datetime]:
        """Half-open [start 00:00Z, end+1 00:00Z) instant range."""
        lo = datetime.combine(self.start, time(0, 0), tzinfo=timezone.utc)
        hi = datetime.combine(self.end + timedelta(days=1), time(0, 0), tzinfo=timezone.utc)
        return lo, hi

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


def parse_date(text: str) -> date:
    s = (text or "").strip()
    try:
        return datetime.strptime(s, DATE_FMT).date()
    except ValueError:
        raise SetupError(f"invalid date (expected YYYY-MM-DD): {text!r}") from None


def make_time_range(start: str, end: str) -> TimeRange:
    return TimeRange(parse_date(start), parse_date(end))


# ---------------------------
# Account filter
# ---------------------------

@dataclass(frozen=True)
class AccountFilter:
    # None = all accounts
    accounts: Optional[Tuple[str, ...]] = None

    @property
    def is_all(self) -> bool:
        return self.accounts is None


ALL_ACCOUNTS = AccountFilter()


def make_account_filter(values: Optional[Iterable[str]]) -> AccountFilter:
    """
    None -> all accounts. A supplied list is trimmed, blank entries dropped,
    de-duplicated (case-sensitive, first-seen order) and must not end up empty.
    """
    if values is None:
        return ALL_ACCOUNTS
    seen: List[str] = []
    for v in values:
        name = (v or "").strip()
        if not name or name in seen:
            continue
        if '"' in name:
            raise SetupError(f"account name may not contain a double quote: {name!r}")
        seen.append(name)
    if not seen:
        raise SetupError("account list is empty")
    return AccountFilter(tuple(seen))


def load_account_file(path: str) -> List[str]:
    try:
        with open(path, "r", encoding="utf-8-sig") as f:
            lines = f.read().splitlines()
    except OSError as e:
        raise SetupError(f"cannot read account list {path}: {e}") from None
    return [ln for ln in lines if not ln.lstrip().startswith("#")]


def split_csv_arg(value: Optional[str]) -> Optional[List[str]]:
    if value is None:
        return None
    return value.split(",")


# ---------------------------
# Event kinds
# ---------------------------

def validate_kinds(ids: Sequence[int], mode: str) -> Tuple[int, ...]:
    if mode not in event_kinds.MODES:
        raise SetupError(f"unknown audit mode: {mode}")
    if not ids:
        raise SetupError("no event kinds selected")
    out: List[int] = []
    for i in ids:
        k = event_kinds.get_kind(i)
        if k is None:
            raise SetupError(f"unsupported event id: {i}")
        if k.mode != mode:
            raise SetupError(f"event id {i} belongs to {k.mode} mode, not {mode}")
        if i not in out:
            out.append(i)
    return tuple(out)


def parse_kinds(value: Optional[str], mode: str) -> Tuple[int, ...]:
    if not value:
        return validate_kinds(event_kinds.kinds_for_mode(mode), mode)
    ids: List[int] = []
    for tok in value.split(","):
        tok = tok.strip()
        if not tok:
            continue
        try:
            ids.append(int(tok))
        except ValueError:
            raise SetupError(f"invalid event id: {tok!r}") from None
    return validate_kinds(ids, mode)


# ---------------------------
# Predicate
# ---------------------------

def xpath_literal(value: str) -> str:
    """
    Quote an account name for the XPath clause, escaped for XML embedding.
    An embedded single quote becomes &apos; and the literal switches to double
    quote delimiters so the decoded expression still compares equal to value.
    """
    escaped = escape(value, {"'": "&apos;"})
    if "'" in value:
        return f'"{escaped}"'
    return f"'{escaped}'"


def _kind_clause(ids: Sequence[int]) -> str:
    return "(" + " or ".join(f"EventID={i}" for i in ids) + ")"


def _time_clause(time_range: TimeRange) -> str:
    lo, hi = time_range.utc_bounds()
    return (
        f"TimeCreated[@SystemTime&gt;='{lo.strftime(XPATH_TIME_FMT)}' "
        f"and @SystemTime&lt;'{hi.strftime(XPATH_TIME_FMT)}']"
    )


def _account_clause(accounts: Sequence[str]) -> str:
    terms = []
    for name in accounts:
        lit = xpath_literal(name)
        for field in event_kinds.PREDICATE_ACCOUNT_FIELDS:
            terms.append(f"Data[@Name='{field}']={lit}")
    return "*[EventData[(" + " or ".join(terms) + ")]]"


def build_query(ids: Sequence[int], time_range: TimeRange, account_filter: AccountFilter) -> str:
    if not ids:
        raise SetupError("no event kinds selected")
    q = f"*[System[{_kind_clause(ids)} and {_time_clause(time_range)}]]"
    if not account_filter.is_all:
        q += " and " + _account_clause(account_filter.accounts or ())
    if len(q) > MAX_PREDICATE_LENGTH:
        raise SetupError(
            f"account list too long for one event-log query ({len(account_filter.accounts or ())} "
            f"accounts, {len(q)} of {MAX_PREDICATE_LENGTH} characters), split it across runs"
        )
    return q
