#!/usr/bin/env python3
# aggregator.py
#
# ODEA Krino - Per-account rollup over the consolidated auth rows
#
# - one row per distinct non-empty Account, sorted by Account (ordinal)
# - success/failure counted from each row's Status
# - last seen = strictly greatest TimestampUTC; ties keep the earlier row
# - accounts named in a concrete filter but never seen still get a zero row

from typing import Any, Dict, List, Optional, Sequence

from normalizer import is_failure, is_success


def _empty(account: str) -> Dict[str, Any]:
    return {
        "Account": account,
        "SuccessCount": 0,
        "FailCount": 0,
        "LastSeenTimestampUTC": None,
        "LastSeenEventID": None,
        "LastSeenStatus": None,
    }


def summarize_accounts(
    rows: Sequence[Dict[str, Any]],
    accounts: Optional[Sequence[str]] = None,
) -> List[Dict[str, Any]]:
    """
    rows: consolidated auth rows in processing order.
    accounts: the concrete account filter, or None for "all accounts".
    """
    agg: Dict[str, Dict[str, Any]] = {}

    for r in rows:
        acct = r.get("Account")
        if not acct:
            continue
        a = agg.get(acct)
        if a is None:
            a = agg[acct] = _empty(acct)

        status = r.get("Status")
        if is_success(status):
            a["SuccessCount"] += 1
        elif is_failure(status):
            a["FailCount"] += 1

        ts = r.get("TimestampUTC")
        if ts and (a["LastSeenTimestampUTC"] is None or ts > a["LastSeenTimestampUTC"]):
            a["LastSeenTimestampUTC"] = ts
            a["LastSeenEventID"] = r.get("EventID")
            a["LastSeenStatus"] = status

    for acct in accounts or ():
        if acct not in agg:
            agg[acct] = _empty(acct)

    return [agg[k] for k in sorted(agg)]
