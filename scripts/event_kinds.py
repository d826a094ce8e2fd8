#!/usr/bin/env python3
# event_kinds.py
#
# ODEA Krino - Security event kinds audited by the auth audit pipeline
#
# Each kind carries:
#   - a display name
#   - the audit mode it belongs to ("auth" or "lifecycle")
#   - an outcome rule evaluated by normalizer.py
#
# Outcome rules:
#   success       -> always SUCCESS (ticket issued)
#   failure       -> always a failure (code if present, else FAILED)
#   status_field  -> read from the status field, 0x0 = SUCCESS
#   lifecycle     -> fixed action label, no success/failure

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

AUTH_MODE = "auth"
LIFECYCLE_MODE = "lifecycle"
MODES = (AUTH_MODE, LIFECYCLE_MODE)

SUCCESS = "SUCCESS"
FAILED = "FAILED"
UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class OutcomeRule:
    kind: str
    label: str = ""


ALWAYS_SUCCESS = OutcomeRule("success")
ALWAYS_FAILURE = OutcomeRule("failure")
FROM_STATUS = OutcomeRule("status_field")


@dataclass(frozen=True)
class EventKind:
    event_id: int
    name: str
    mode: str
    rule: OutcomeRule


EVENT_KINDS: Dict[int, EventKind] = {
    4768: EventKind(4768, "Kerberos TGT Requested", AUTH_MODE, ALWAYS_SUCCESS),
    4771: EventKind(4771, "Kerberos Pre-Auth Failed", AUTH_MODE, ALWAYS_FAILURE),
    4776: EventKind(4776, "NTLM Credential Validation", AUTH_MODE, FROM_STATUS),
    4720: EventKind(4720, "User Account Created", LIFECYCLE_MODE, OutcomeRule("lifecycle", "Created")),
    4722: EventKind(4722, "User Account Enabled", LIFECYCLE_MODE, OutcomeRule("lifecycle", "Enabled")),
    4725: EventKind(4725, "User Account Disabled", LIFECYCLE_MODE, OutcomeRule("lifecycle", "Disabled")),
    4726: EventKind(4726, "User Account Deleted", LIFECYCLE_MODE, OutcomeRule("lifecycle", "Deleted")),
}


# ---------------------------
# Field candidate chains (first present non-empty wins)
# ---------------------------

ACCOUNT_FIELDS: Tuple[str, ...] = ("TargetUserName", "AccountName", "TargetSid")
CLIENT_ADDRESS_FIELDS: Tuple[str, ...] = ("IpAddress", "ClientAddress")
WORKSTATION_FIELDS: Tuple[str, ...] = ("Workstation", "WorkstationName", "ClientName")
LOGON_TYPE_FIELDS: Tuple[str, ...] = ("LogonType",)
STATUS_FIELDS: Tuple[str, ...] = ("Status", "FailureCode")

TARGET_ACCOUNT_FIELDS: Tuple[str, ...] = ("TargetUserName", "TargetSid")
ACTOR_ACCOUNT_FIELDS: Tuple[str, ...] = ("SubjectUserName", "SubjectUserSid")

# Account field names the query predicate matches against (primary, fallback)
PREDICATE_ACCOUNT_FIELDS: Tuple[str, ...] = ACCOUNT_FIELDS[:2]


# ---------------------------
# Output column order per mode
# ---------------------------

AUTH_COLUMNS: List[str] = [
    "TimestampUTC",
    "EventID",
    "EventName",
    "Account",
    "ClientAddress",
    "Workstation",
    "LogonType",
    "Status",
    "Source",
    "SourceFile",
]

LIFECYCLE_COLUMNS: List[str] = [
    "Timestamp",
    "EventID",
    "Action",
    "TargetAccount",
    "ActorAccount",
    "Source",
]

SUMMARY_COLUMNS: List[str] = [
    "Account",
    "SuccessCount",
    "FailCount",
    "LastSeenTimestampUTC",
    "LastSeenEventID",
    "LastSeenStatus",
]


# Kerberos (4771) and NTSTATUS (4776) failure codes
STATUS_TEXT: Dict[str, str] = {
    "0x6": "Client not found in Kerberos database",
    "0x7": "Server not found in Kerberos database",
    "0xC": "Requested start time is later than end time / KDC policy rejects request",
    "0x12": "Client credentials revoked (disabled, expired or locked out)",
    "0x17": "Password has expired",
    "0x18": "Pre-authentication failed (bad password)",
    "0x25": "Clock skew too great",
    "0xC0000064": "User name does not exist",
    "0xC000006A": "Bad password",
    "0xC000006D": "Bad user name or authentication information",
    "0xC000006F": "Logon outside authorized hours",
    "0xC0000070": "Logon from unauthorized workstation",
    "0xC0000071": "Password expired",
    "0xC0000072": "Account disabled",
    "0xC0000193": "Account expired",
    "0xC0000224": "Password must change at next logon",
    "0xC0000234": "Account locked out",
}


def canonical_code(code: str) -> str:
    """'0XC000006a ' -> '0xC000006A'"""
    s = code.strip()
    if s[:2].lower() == "0x":
        return "0x" + s[2:].upper()
    return s.upper()


def status_text(code: str) -> str:
    return STATUS_TEXT.get(canonical_code(code), f"Unknown({code.strip()})")


def is_success_code(code: str) -> bool:
    return code.strip().lower() == "0x0"


def get_kind(event_id: Optional[int]) -> Optional[EventKind]:
    if event_id is None:
        return None
    return EVENT_KINDS.get(event_id)


def kinds_for_mode(mode: str) -> List[int]:
    return [k.event_id for k in EVENT_KINDS.values() if k.mode == mode]


def columns_for_mode(mode: str) -> List[str]:
    return AUTH_COLUMNS if mode == AUTH_MODE else LIFECYCLE_COLUMNS


def describe_kinds(ids: Iterable[int]) -> List[str]:
    out = []
    for i in ids:
        k = EVENT_KINDS.get(i)
        out.append(f"{i} ({k.name})" if k else str(i))
    return out
