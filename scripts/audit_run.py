#!/usr/bin/env python3
# audit_run.py
#
# ODEA Krino - Auth audit run driver
#
# One run, strictly sequential:
#   1) compile the predicate (setup errors abort here)
#   2) enumerate + probe archived segments, keep the overlapping ones
#   3) order sources (archives by window, live first or last)
#   4) process each source -> per-source artifact + consolidated rows
#   5) optional consolidated artifact and per-account rollup
#   6) summary.json
#
# Output layout:
#   <output_root>/auth_audit_<YYYYMMDD_HHMMSS>/
#       archive-01-<stamp>.csv ... live-<stamp>.csv
#       consolidated.csv
#       account_summary.csv
#       summary.json

import os
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import event_kinds
from aggregator import summarize_accounts
from audit_config import AuditConfig
from exporter import ArtifactWriter, ensure_dir, write_json
from normalizer import utc_now_iso
from processor import SCOPE_ALL, RowOptions, SourceResult, process_source, source_tag
from query_builder import ALL_ACCOUNTS, AccountFilter, SetupError, TimeRange, build_query, validate_kinds
from source_scheduler import OLDEST_FIRST, ORDERS, discover_archives, schedule_sources
from window_probe import probe_windows

RUN_STAMP_FMT = "%Y%m%d_%H%M%S"


@dataclass(frozen=True)
class AuditRequest:
    time_range: TimeRange
    kinds: Tuple[int, ...]
    mode: str = event_kinds.AUTH_MODE
    accounts: AccountFilter = ALL_ACCOUNTS
    order: str = OLDEST_FIRST
    include_live: bool = True
    include_archives: bool = True
    scope: str = SCOPE_ALL
    export_consolidated: bool = False
    export_rollup: bool = False


def prepare_run_dir(output_root: str, run_stamp: str) -> str:
    base = os.path.expanduser(output_root)
    root = os.path.join(base, f"auth_audit_{run_stamp}")
    try:
        ensure_dir(root)
    except OSError as e:
        raise SetupError(f"cannot create output folder {root}: {e}") from None
    return root


def _source_entry(r: SourceResult) -> Dict[str, Any]:
    w = r.source.window
    return {
        "tag": r.tag,
        "kind": r.source.kind,
        "path": r.source.path,
        "window": [w[0].isoformat(), w[1].isoformat()] if w else None,
        "rows": r.rows,
        "skipped_records": r.skipped_records,
        "artifact": os.path.basename(r.artifact) if r.artifact else None,
        "error": r.error,
    }


def run_audit(
    request: AuditRequest,
    event_log,
    config: AuditConfig,
    *,
    run_stamp: Optional[str] = None,
    out_dir: Optional[str] = None,
) -> Dict[str, Any]:
    # ---------- setup ----------
    if not request.include_live and not request.include_archives:
        raise SetupError("no sources selected")
    if request.order not in ORDERS:
        raise SetupError(f"unknown order: {request.order}")
    kinds = validate_kinds(request.kinds, request.mode)
    predicate = build_query(kinds, request.time_range, request.accounts)

    run_stamp = run_stamp or time.strftime(RUN_STAMP_FMT)
    out_dir = out_dir or prepare_run_dir(config.output_root, run_stamp)
    columns = event_kinds.columns_for_mode(request.mode)
    writer = ArtifactWriter(out_dir, columns, config.export_format)
    options = RowOptions(
        mode=request.mode,
        readable_status=config.readable_status,
        scope=request.scope,
        missing_status=config.missing_status,
    )

    print("[+] Audit settings:")
    print(f"    - Range:    {request.time_range} (UTC days)")
    print(f"    - Kinds:    {', '.join(event_kinds.describe_kinds(kinds))}")
    print(f"    - Accounts: {'ALL' if request.accounts.is_all else ', '.join(request.accounts.accounts)}")
    print(f"    - Order:    {request.order}-first")
    print(f"    - Output:   {out_dir}\n")

    # ---------- archives ----------
    discovered: List = []
    probed: List = []
    if request.include_archives:
        print(f"[+] Enumerating archives in {config.archive_dir}")
        discovered = discover_archives(event_log, config.archive_dir)
        print(f"[+] {len(discovered)} archive(s) found, probing windows...")
        probed = probe_windows(event_log, discovered)

    plan = schedule_sources(
        probed,
        request.time_range,
        order=request.order,
        include_live=request.include_live,
    )
    in_range = sum(1 for s in plan if not s.is_live)
    if request.include_archives and not in_range:
        print("[+] No archive overlaps the requested range, archived phase skipped")

    # ---------- sources ----------
    consolidated: List[Dict[str, Any]] = []
    results: List[SourceResult] = []
    archive_pos = 0
    for i, src in enumerate(plan, 1):
        if not src.is_live:
            archive_pos += 1
        tag = source_tag(src, archive_pos, run_stamp)
        print(f"\n[{i}/{len(plan)}] {tag} ({src.path})")
        results.append(process_source(src, tag, predicate, event_log, writer, consolidated, options))

    # ---------- run-level exports ----------
    outputs: Dict[str, Optional[str]] = {}
    if request.export_consolidated:
        try:
            outputs["consolidated"] = os.path.basename(writer.write("consolidated", consolidated))
        except OSError as e:
            print(f"[!] Consolidated export failed: {e}")

    rollup: List[Dict[str, Any]] = []
    if request.export_rollup:
        if request.mode != event_kinds.AUTH_MODE:
            print("[!] Account rollup is only available in auth mode, skipped")
        else:
            rollup = summarize_accounts(consolidated, request.accounts.accounts)
            try:
                outputs["account_summary"] = os.path.basename(
                    writer.write("account_summary", rollup, columns=event_kinds.SUMMARY_COLUMNS)
                )
            except OSError as e:
                print(f"[!] Account summary export failed: {e}")

    summary = {
        "case_id": os.path.basename(out_dir),
        "created_at": utc_now_iso(),
        "mode": request.mode,
        "range": [request.time_range.start.isoformat(), request.time_range.end.isoformat()],
        "kinds": list(kinds),
        "accounts": list(request.accounts.accounts) if not request.accounts.is_all else None,
        "order": request.order,
        "scope": request.scope,
        "predicate": predicate,
        "sources": [_source_entry(r) for r in results],
        "counts": {
            "archives_discovered": len(discovered),
            "archives_usable": len(probed),
            "archives_in_range": in_range,
            "sources_processed": sum(1 for r in results if r.ok),
            "sources_failed": sum(1 for r in results if not r.ok),
            "rows": len(consolidated),
            "accounts": len(rollup),
        },
        "outputs": outputs,
    }
    try:
        write_json(os.path.join(out_dir, "summary.json"), summary)
    except OSError as e:
        print(f"[!] Summary export failed: {e}")

    print(f"\n[✓] Audit complete: {len(consolidated)} row(s) from {summary['counts']['sources_processed']} source(s)")
    return summary
