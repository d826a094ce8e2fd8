#!/usr/bin/env python3
# source_scheduler.py
#
# ODEA Krino - Source discovery and ordering
#
# - Archived segments are only accepted under the strict Windows auto-backup
#   name: Archive-Security-YYYY-MM-DD-HH-MM-SS-fff.<ext>
# - An archive is relevant when its probed [min, max] window overlaps the
#   requested range (boundary equality counts).
# - oldest-first: ascending by window.min, live channel last
#   newest-first: descending by window.max, live channel first

import ntpath
import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Tuple

from evtx_source import LIVE_CHANNEL, SourceReadError

LIVE = "live"
ARCHIVED = "archived"

OLDEST_FIRST = "oldest"
NEWEST_FIRST = "newest"
ORDERS = (OLDEST_FIRST, NEWEST_FIRST)

ARCHIVE_NAME_RE = re.compile(
    r"^Archive-Security-(\d{4})-(\d{2})-(\d{2})-(\d{2})-(\d{2})-(\d{2})-(\d{3})\.([A-Za-z0-9]+)$"
)


@dataclass(frozen=True)
class SourceDescriptor:
    path: str
    kind: str
    stamp: str = ""
    window: Optional[Tuple[date, date]] = None

    @property
    def is_live(self) -> bool:
        return self.kind == LIVE


LIVE_SOURCE = SourceDescriptor(path=LIVE_CHANNEL, kind=LIVE)


def archive_descriptor(directory: str, name: str) -> Optional[SourceDescriptor]:
    m = ARCHIVE_NAME_RE.match(name)
    if not m:
        return None
    stamp = "-".join(m.groups()[:7])
    return SourceDescriptor(path=ntpath.join(directory, name), kind=ARCHIVED, stamp=stamp)


def discover_archives(event_log, directory: str) -> List[SourceDescriptor]:
    """
    Enumerate candidate archive names and keep the strictly-named ones.
    An enumeration failure is reported and treated as "no archives".
    """
    try:
        names = event_log.list_archives(directory)
    except SourceReadError as e:
        print(f"[!] Archive enumeration failed, archived phase skipped: {e}")
        return []

    out: List[SourceDescriptor] = []
    for name in sorted(names):
        d = archive_descriptor(directory, name)
        if d is None:
            print(f"[!] Ignoring non-archive file name: {name}")
            continue
        out.append(d)
    return out


def overlaps(window: Tuple[date, date], start: date, end: date) -> bool:
    return window[0] <= end and window[1] >= start


def order_archives(archives: Iterable[SourceDescriptor], order: str) -> List[SourceDescriptor]:
    probed = [a for a in archives if a.window is not None]
    if order == NEWEST_FIRST:
        return sorted(probed, key=lambda a: a.window[1], reverse=True)
    return sorted(probed, key=lambda a: a.window[0])


def schedule_sources(
    archives: Iterable[SourceDescriptor],
    time_range,
    order: str = OLDEST_FIRST,
    include_live: bool = True,
) -> List[SourceDescriptor]:
    if order not in ORDERS:
        raise ValueError(f"unknown order: {order}")

    relevant = [
        a for a in archives
        if a.window is not None and overlaps(a.window, time_range.start, time_range.end)
    ]
    plan = order_archives(relevant, order)

    if include_live:
        if order == NEWEST_FIRST:
            plan.insert(0, LIVE_SOURCE)
        else:
            plan.append(LIVE_SOURCE)
    return plan
