#!/usr/bin/env python3
# processor.py
#
# ODEA Krino - Per-source processing
#
# For one source: run the compiled predicate, normalize every match in delivery
# order, write the source's artifact right away, then append the rows to the
# run's consolidated list.
#
#   NoMatchingEvents  -> zero rows, artifact still written
#   SourceReadError   -> reported, source skipped, partial rows discarded
#   RecordError       -> that record skipped and counted
#   OSError on export -> reported, rows still consolidated

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from event_kinds import AUTH_MODE, UNKNOWN
from evtx_source import NoMatchingEvents, SourceReadError
from normalizer import RecordError, is_failure, is_success, normalize_record
from source_scheduler import SourceDescriptor

SCOPE_ALL = "all"
SCOPE_SUCCESS = "success"
SCOPE_FAILURE = "failure"
OUTCOME_SCOPES = (SCOPE_ALL, SCOPE_SUCCESS, SCOPE_FAILURE)

MISSING_INCLUDE = "include"
MISSING_EXCLUDE = "exclude"
MISSING_STATUS_POLICIES = (MISSING_INCLUDE, MISSING_EXCLUDE)


@dataclass(frozen=True)
class RowOptions:
    mode: str = AUTH_MODE
    readable_status: bool = False
    scope: str = SCOPE_ALL
    missing_status: str = MISSING_INCLUDE


@dataclass
class SourceResult:
    source: SourceDescriptor
    tag: str
    rows: int = 0
    skipped_records: int = 0
    artifact: Optional[str] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error


def source_tag(source: SourceDescriptor, position: int, run_stamp: str) -> str:
    """archive-<NN>-<stamp> (NN = 1-based archive position), live-<run stamp>"""
    if source.is_live:
        return f"live-{run_stamp}"
    return f"archive-{position:02d}-{source.stamp}"


def keep_row(row: Dict[str, Any], options: RowOptions) -> bool:
    if options.mode != AUTH_MODE or options.scope == SCOPE_ALL:
        return True
    status = row.get("Status")
    if status == UNKNOWN:
        return options.missing_status == MISSING_INCLUDE
    if options.scope == SCOPE_SUCCESS:
        return is_success(status)
    return is_failure(status)


def process_source(
    source: SourceDescriptor,
    tag: str,
    predicate: str,
    event_log,
    writer,
    consolidated: List[Dict[str, Any]],
    options: RowOptions = RowOptions(),
) -> SourceResult:
    result = SourceResult(source=source, tag=tag)
    rows: List[Dict[str, Any]] = []

    try:
        for raw in event_log.query(source.path, predicate):
            try:
                row = normalize_record(
                    raw,
                    options.mode,
                    source=tag,
                    source_file=source.path,
                    readable_status=options.readable_status,
                )
            except RecordError as e:
                result.skipped_records += 1
                print(f"[!] {tag}: record skipped ({e})")
                continue
            if keep_row(row, options):
                rows.append(row)
    except NoMatchingEvents:
        rows = []
    except SourceReadError as e:
        result.error = str(e)
        print(f"[!] {tag}: source unreadable, skipped ({e})")
        return result

    result.rows = len(rows)
    try:
        result.artifact = writer.write(tag, rows)
    except OSError as e:
        print(f"[!] {tag}: export failed ({e})")

    consolidated.extend(rows)
    print(f"[+] {tag}: {len(rows)} row(s) -> {result.artifact or '(not written)'}")
    return result
