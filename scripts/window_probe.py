#!/usr/bin/env python3
# window_probe.py
#
# ODEA Krino - Archived segment window probe
#
# Reads only the oldest and newest record of an archive and keeps their UTC
# dates as the segment's window. Unreadable or empty segments are reported and
# dropped from scheduling; the run goes on.

import dataclasses
from typing import Iterable, List, Optional

from evtx_source import SourceReadError
from normalizer import RecordError, parse_event_time
from source_scheduler import SourceDescriptor


def probe_window(event_log, source: SourceDescriptor) -> Optional[SourceDescriptor]:
    try:
        first, last = event_log.probe(source.path)
        d1 = parse_event_time(first).date()
        d2 = parse_event_time(last).date()
    except (SourceReadError, RecordError) as e:
        print(f"[!] Unusable archive {source.path}: {e}")
        return None
    return dataclasses.replace(source, window=(min(d1, d2), max(d1, d2)))


def probe_windows(event_log, sources: Iterable[SourceDescriptor]) -> List[SourceDescriptor]:
    out: List[SourceDescriptor] = []
    for s in sources:
        p = probe_window(event_log, s)
        if p is not None:
            print(f"    - {s.path}: {p.window[0]} .. {p.window[1]}")
            out.append(p)
    return out
