#!/usr/bin/env python3
# normalizer.py
#
# ODEA Krino - Security event normalization layer
#
# Turns one raw Security log record into one fixed-shape row:
#
#   auth mode       TimestampUTC, EventID, EventName, Account, ClientAddress,
#                   Workstation, LogonType, Status, Source, SourceFile
#   lifecycle mode  Timestamp, EventID, Action, TargetAccount, ActorAccount,
#                   Source
#
# Rules:
# 1) Optional fields never raise; they resolve through candidate chains
#    (event_kinds.*_FIELDS) and fall back to None.
# 2) A missing/garbled timestamp or an unknown event id is a RecordError for
#    that record only.
# 3) Outcome/Action comes from the kind's OutcomeRule, nothing else.
# 4) Auth timestamps are UTC ISO-8601 with milliseconds; lifecycle timestamps
#    are local wall-clock. The two modes are never mixed in one run.

import re
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Sequence

import event_kinds
from event_kinds import AUTH_MODE, FAILED, SUCCESS, UNKNOWN

ISO_FMT = "%Y-%m-%dT%H:%M:%SZ"
# auth rows keep the millisecond precision Get-WinEvent reports
EVENT_TIME_FMT = "%Y-%m-%dT%H:%M:%S.{ms:03d}Z"
LOCAL_FMT = "%Y-%m-%d %H:%M:%S"

RE_EVENT_TIME = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[T ](\d{2}:\d{2}:\d{2})(?:\.(\d+))?\s*(Z|[+-]\d{2}:?\d{2})?$"
)

# values Windows writes into EventData when a field is "not applicable"
EMPTY_MARKERS = {"-", "::"}


class RecordError(ValueError):
    pass


# ---------------------------
# Helpers
# ---------------------------

def format_event_time(dt: datetime) -> str:
    return dt.strftime(EVENT_TIME_FMT).format(ms=dt.microsecond // 1000)


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).strftime(ISO_FMT)


def resolve_field(data: Mapping[str, Any], candidates: Sequence[str]) -> Optional[str]:
    """First candidate field that is present and non-empty, else None."""
    for name in candidates:
        v = data.get(name)
        if v is None:
            continue
        s = str(v).strip()
        if not s or s in EMPTY_MARKERS:
            continue
        return s
    return None


def clean_address(addr: Optional[str]) -> Optional[str]:
    if addr and addr.lower().startswith("::ffff:"):
        return addr[7:]
    return addr


def parse_event_time(value: Any) -> datetime:
    """Parse a record timestamp into an aware UTC datetime. Naive = UTC."""
    if isinstance(value, datetime):
        dt = value
    else:
        if not isinstance(value, str) or not value.strip():
            raise RecordError("missing timestamp")
        m = RE_EVENT_TIME.match(value.strip())
        if not m:
            raise RecordError(f"malformed timestamp: {value!r}")
        day, clock, frac, tz = m.groups()
        text = f"{day}T{clock}"
        if frac:
            text += "." + frac[:6].ljust(6, "0")
        if tz and tz != "Z":
            text += tz if ":" in tz else tz[:3] + ":" + tz[3:]
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            raise RecordError(f"malformed timestamp: {value!r}") from None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


# ---------------------------
# Outcome
# ---------------------------

def determine_outcome(kind: event_kinds.EventKind, data: Mapping[str, Any], readable_status: bool = False) -> str:
    rule = kind.rule
    if rule.kind == "success":
        return SUCCESS
    if rule.kind == "lifecycle":
        return rule.label

    code = resolve_field(data, event_kinds.STATUS_FIELDS)
    if rule.kind == "failure":
        if not code:
            return FAILED
        return event_kinds.status_text(code) if readable_status else code

    # status_field
    if not code:
        return UNKNOWN
    if event_kinds.is_success_code(code):
        return SUCCESS
    return event_kinds.status_text(code) if readable_status else code


def is_success(status: Optional[str]) -> bool:
    return status == SUCCESS


def is_failure(status: Optional[str]) -> bool:
    return bool(status) and status not in (SUCCESS, UNKNOWN)


# ---------------------------
# Row builders
# ---------------------------

def _kind_of(raw, mode: str) -> event_kinds.EventKind:
    kind = event_kinds.get_kind(raw.event_id)
    if kind is None:
        raise RecordError(f"unsupported or missing event id: {raw.event_id!r}")
    if kind.mode != mode:
        raise RecordError(f"event id {raw.event_id} is not a {mode} event")
    return kind


def normalize_auth(raw, source: str, source_file: str, readable_status: bool = False) -> Dict[str, Any]:
    kind = _kind_of(raw, AUTH_MODE)
    ts = parse_event_time(raw.time_created)
    data = raw.data or {}
    return {
        "TimestampUTC": format_event_time(ts),
        "EventID": kind.event_id,
        "EventName": kind.name,
        "Account": resolve_field(data, event_kinds.ACCOUNT_FIELDS),
        "ClientAddress": clean_address(resolve_field(data, event_kinds.CLIENT_ADDRESS_FIELDS)),
        "Workstation": resolve_field(data, event_kinds.WORKSTATION_FIELDS),
        "LogonType": resolve_field(data, event_kinds.LOGON_TYPE_FIELDS),
        "Status": determine_outcome(kind, data, readable_status),
        "Source": source,
        "SourceFile": source_file,
    }


def normalize_lifecycle(raw, source: str) -> Dict[str, Any]:
    kind = _kind_of(raw, event_kinds.LIFECYCLE_MODE)
    ts = parse_event_time(raw.time_created)
    data = raw.data or {}
    return {
        "Timestamp": ts.astimezone().strftime(LOCAL_FMT),
        "EventID": kind.event_id,
        "Action": kind.rule.label,
        "TargetAccount": resolve_field(data, event_kinds.TARGET_ACCOUNT_FIELDS),
        "ActorAccount": resolve_field(data, event_kinds.ACTOR_ACCOUNT_FIELDS),
        "Source": source,
    }


def normalize_record(raw, mode: str, source: str, source_file: str = "", readable_status: bool = False) -> Dict[str, Any]:
    if mode == AUTH_MODE:
        return normalize_auth(raw, source, source_file, readable_status)
    return normalize_lifecycle(raw, source)
