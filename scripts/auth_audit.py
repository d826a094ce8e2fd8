#!/usr/bin/env python3
# auth_audit.py
#
# ODEA Krino - Security log authentication / account-lifecycle audit
#
# Usage:
#   python3 scripts/auth_audit.py --host 10.0.0.5 --username CORP\\auditor \
#       --start 2025-10-01 --end 2025-11-07 --accounts alice,bob --rollup
#
#   python3 scripts/auth_audit.py --local --mode lifecycle \
#       --start 2025-10-01 --end 2025-10-31 --sources archive --order newest
#
# Exit codes: 0 done, 1 setup/connection error, 130 interrupted

import argparse
import getpass
import sys
from typing import List, Optional

import event_kinds
from audit_config import apply_overrides, load_config
from audit_run import AuditRequest, run_audit
from evtx_source import open_event_log
from processor import OUTCOME_SCOPES, SCOPE_ALL
from query_builder import (
    SetupError,
    load_account_file,
    make_account_filter,
    make_time_range,
    parse_kinds,
    split_csv_arg,
)
from source_scheduler import OLDEST_FIRST, ORDERS

SOURCE_CHOICES = ("live", "archive", "both")


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="ODEA Krino Security log auth/lifecycle audit")
    ap.add_argument("--start", required=True, help="First day, YYYY-MM-DD (inclusive)")
    ap.add_argument("--end", required=True, help="Last day, YYYY-MM-DD (inclusive)")
    ap.add_argument("--mode", choices=event_kinds.MODES, default=event_kinds.AUTH_MODE)
    ap.add_argument("--kinds", help="Comma-separated event ids (default: all kinds of the mode)")

    acct = ap.add_mutually_exclusive_group()
    acct.add_argument("--accounts", help="Comma-separated account names (default: all)")
    acct.add_argument("--accounts-file", help="File with one account name per line")

    ap.add_argument("--sources", choices=SOURCE_CHOICES, default="both")
    ap.add_argument("--order", choices=ORDERS, default=OLDEST_FIRST)
    ap.add_argument("--scope", choices=OUTCOME_SCOPES, default=SCOPE_ALL, help="Auth outcome filter")
    ap.add_argument("--consolidated", action="store_true", help="Also write all rows into one artifact")
    ap.add_argument("--rollup", action="store_true", help="Write the per-account summary (auth mode)")

    ap.add_argument("--config", help="JSON config file")
    ap.add_argument("--host", default=None)
    ap.add_argument("--port", type=int, default=None)
    ap.add_argument("--transport", default=None)
    ap.add_argument("--username", default=None)
    ap.add_argument("--local", action="store_true", default=None, help="Run PowerShell on this machine")
    ap.add_argument("--archive-dir", default=None)
    ap.add_argument("--out", dest="output_root", default=None, help="Output root folder")
    ap.add_argument("--format", dest="export_format", default=None, choices=("csv", "jsonl"))
    ap.add_argument("--readable-status", action="store_true", default=None)
    ap.add_argument("--missing-status", default=None, choices=("include", "exclude"))
    return ap


def build_request(args: argparse.Namespace) -> AuditRequest:
    time_range = make_time_range(args.start, args.end)
    kinds = parse_kinds(args.kinds, args.mode)

    names: Optional[List[str]] = None
    if args.accounts_file:
        names = load_account_file(args.accounts_file)
    elif args.accounts is not None:
        names = split_csv_arg(args.accounts)

    return AuditRequest(
        time_range=time_range,
        kinds=kinds,
        mode=args.mode,
        accounts=make_account_filter(names),
        order=args.order,
        include_live=args.sources in ("live", "both"),
        include_archives=args.sources in ("archive", "both"),
        scope=args.scope,
        export_consolidated=args.consolidated,
        export_rollup=args.rollup,
    )


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    print("\n===== ODEA Krino Auth Audit =====\n")

    try:
        config = apply_overrides(
            load_config(args.config),
            host=args.host,
            port=args.port,
            transport=args.transport,
            username=args.username,
            local=args.local,
            archive_dir=args.archive_dir,
            output_root=args.output_root,
            export_format=args.export_format,
            readable_status=args.readable_status,
            missing_status=args.missing_status,
        ).validate()
        request = build_request(args)
    except SetupError as e:
        print(f"[!] {e}")
        return 1

    password = ""
    if not config.local:
        username = config.username or input("Username: ").strip()
        config = apply_overrides(config, username=username)
        password = getpass.getpass("Password: ")
        print(f"\n[+] WinRM connection → {config.host}:{config.port}")

    try:
        event_log = open_event_log(config, password)
        target = event_log.check_connection()
    except Exception as e:
        where = "Local PowerShell" if config.local else "WinRM connection"
        print(f"[!] {where} failed: {e}")
        return 1
    print(f"[+] Connected to {target}")

    try:
        summary = run_audit(request, event_log, config)
    except SetupError as e:
        print(f"[!] {e}")
        return 1

    print("\n===== Result =====")
    for s in summary["sources"]:
        status = f"ERROR: {s['error']}" if s["error"] else f"{s['rows']} row(s)"
        print(f"  {s['tag']:<40} {status}")
    print(f"  {'TOTAL':<40} {summary['counts']['rows']} row(s)")
    for name, fn in summary["outputs"].items():
        print(f"  {name:<40} {fn}")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n[!] Interrupted")
        sys.exit(130)
