#!/usr/bin/env python3
# evtx_source.py
#
# ODEA Krino - Security event log access (live channel + archived .evtx)
#
# Everything runs as PowerShell on the Windows host, either remotely through
# WinRM (pywinrm) or locally through powershell.exe. The scripts print one
# marker-prefixed line per result so the Python side never parses free text:
#
#   FILE:<name>            archive enumeration
#   EVENT:<json>           one matching record
#   NO_MATCH               Get-WinEvent found nothing for the filter
#   FIRST:<iso> / LAST:<iso>  boundary probe
#   HOST:<name>            connectivity check
#   READ_ERROR:<message>   anything else that went wrong
#
# query() is a generator: the "no matches" / read errors surface on the first
# next(), which is where the per-source processor catches them.

import base64
import json
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple
from xml.sax.saxutils import quoteattr

import winrm

LIVE_CHANNEL = "Security"
DEFAULT_ARCHIVE_DIR = r"C:\Windows\System32\winevt\Logs"


class NoMatchingEvents(Exception):
    pass


class SourceReadError(Exception):
    pass


@dataclass(frozen=True)
class RawEvent:
    event_id: Optional[int]
    time_created: Optional[str]
    data: Dict[str, Any] = field(default_factory=dict)
    record_id: Optional[int] = None


@dataclass
class PSResult:
    status_code: int
    std_out: str
    std_err: str


# ------------------------------
# PowerShell Script Templates
# ------------------------------
PS_PRELUDE = r'''
$ErrorActionPreference = 'Stop'
[Console]::OutputEncoding = [Text.Encoding]::UTF8
'''

PS_LIST_ARCHIVES = PS_PRELUDE + r'''
try {
    Get-ChildItem -LiteralPath '__DIR__' -File -Filter 'Archive-Security-*' |
        ForEach-Object { Write-Output ('FILE:' + $_.Name) }
} catch {
    Write-Output ('READ_ERROR:' + $_.Exception.Message)
    exit 1
}
'''

PS_QUERY = PS_PRELUDE + r'''
$filter = @'
__FILTER__
'@
try {
    $events = Get-WinEvent -FilterXml ([xml]$filter)
} catch {
    if ($_.FullyQualifiedErrorId -like 'NoMatchingEventsFound*') {
        Write-Output 'NO_MATCH'
        exit 0
    }
    Write-Output ('READ_ERROR:' + $_.Exception.Message)
    exit 1
}
$inv = [Globalization.CultureInfo]::InvariantCulture
foreach ($e in $events) {
    $x = [xml]$e.ToXml()
    $data = [ordered]@{}
    foreach ($d in $x.Event.EventData.Data) {
        if ($d.Name) { $data[$d.Name] = $d.InnerText }
    }
    $rec = [ordered]@{
        Id = $e.Id
        RecordId = $e.RecordId
        TimeCreated = $e.TimeCreated.ToUniversalTime().ToString("yyyy-MM-dd'T'HH:mm:ss.fff'Z'", $inv)
        Data = $data
    }
    Write-Output ('EVENT:' + ($rec | ConvertTo-Json -Compress -Depth 3))
}
'''

PS_PROBE = PS_PRELUDE + r'''
$inv = [Globalization.CultureInfo]::InvariantCulture
try {
    $first = Get-WinEvent -Path '__PATH__' -Oldest -MaxEvents 1
    $last = Get-WinEvent -Path '__PATH__' -MaxEvents 1
} catch {
    Write-Output ('READ_ERROR:' + $_.Exception.Message)
    exit 1
}
Write-Output ('FIRST:' + $first.TimeCreated.ToUniversalTime().ToString("yyyy-MM-dd'T'HH:mm:ss.fff'Z'", $inv))
Write-Output ('LAST:' + $last.TimeCreated.ToUniversalTime().ToString("yyyy-MM-dd'T'HH:mm:ss.fff'Z'", $inv))
'''

PS_PING = PS_PRELUDE + r'''
Write-Output ('HOST:' + $env:COMPUTERNAME)
'''


def ps_quote(value: str) -> str:
    # body of a single-quoted PowerShell string
    return value.replace("'", "''")


def build_filter_xml(path: str, predicate: str) -> str:
    """
    Wrap the compiled predicate in a QueryList. The live channel is addressed
    by name, archived segments by file:// path.
    """
    target = path if path == LIVE_CHANNEL else f"file://{path}"
    attr = quoteattr(target)
    return (
        f'<QueryList><Query Id="0" Path={attr}>'
        f"<Select Path={attr}>{predicate}</Select>"
        f"</Query></QueryList>"
    )


def _lines(text: str) -> List[str]:
    return [ln.strip() for ln in (text or "").splitlines() if ln.strip()]


def _read_error(result: PSResult, lines: List[str]) -> Optional[str]:
    for ln in lines:
        if ln.startswith("READ_ERROR:"):
            return ln[len("READ_ERROR:"):].strip() or "unknown error"
    if result.status_code != 0:
        return result.std_err.strip() or f"PowerShell exit code {result.status_code}"
    return None


def parse_event_line(payload: str) -> RawEvent:
    obj = json.loads(payload)
    if not isinstance(obj, dict):
        raise ValueError("event payload is not an object")
    eid = obj.get("Id")
    data = obj.get("Data") or {}
    if not isinstance(data, dict):
        data = {}
    rid = obj.get("RecordId")
    return RawEvent(
        event_id=int(eid) if eid is not None else None,
        time_created=obj.get("TimeCreated"),
        data=data,
        record_id=int(rid) if rid is not None else None,
    )


# ------------------------------
# Runners
# ------------------------------

class WinRMRunner:
    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        *,
        port: int = 5985,
        transport: str = "ntlm",
        server_cert_validation: str = "ignore",
    ):
        scheme = "https" if port == 5986 else "http"
        self.endpoint = f"{scheme}://{host}:{port}/wsman"
        self.session = winrm.Session(
            self.endpoint,
            auth=(username, password),
            transport=transport,
            server_cert_validation=server_cert_validation,
        )

    def run_ps(self, script: str) -> PSResult:
        try:
            r = self.session.run_ps(script)
        except Exception as e:
            raise SourceReadError(f"WinRM execution failed: {e}") from e
        return PSResult(
            r.status_code,
            r.std_out.decode(errors="ignore"),
            r.std_err.decode(errors="ignore"),
        )


class LocalRunner:
    def __init__(self, executable: str = "powershell"):
        self.executable = executable

    def run_ps(self, script: str) -> PSResult:
        encoded = base64.b64encode(script.encode("utf-16-le")).decode("ascii")
        cmd = [
            self.executable,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy", "Bypass",
            "-EncodedCommand", encoded,
        ]
        try:
            cp = subprocess.run(cmd, capture_output=True)
        except OSError as e:
            raise SourceReadError(f"cannot start {self.executable}: {e}") from e
        return PSResult(
            cp.returncode,
            cp.stdout.decode("utf-8", errors="ignore"),
            cp.stderr.decode("utf-8", errors="ignore"),
        )


# ------------------------------
# Event log facade
# ------------------------------

class PowerShellEventLog:
    def __init__(self, runner):
        self.runner = runner

    def check_connection(self) -> str:
        """
        Run a trivial script once. A Session does not connect until its first
        command, so bad credentials or an unreachable host surface here.
        """
        result = self.runner.run_ps(PS_PING)
        lines = _lines(result.std_out)
        err = _read_error(result, lines)
        if err:
            raise SourceReadError(err)
        for ln in lines:
            if ln.startswith("HOST:"):
                return ln[len("HOST:"):]
        raise SourceReadError("PowerShell returned no output")

    def list_archives(self, directory: str) -> List[str]:
        result = self.runner.run_ps(PS_LIST_ARCHIVES.replace("__DIR__", ps_quote(directory)))
        lines = _lines(result.std_out)
        err = _read_error(result, lines)
        if err:
            raise SourceReadError(f"cannot list {directory}: {err}")
        return [ln[len("FILE:"):] for ln in lines if ln.startswith("FILE:")]

    def query(self, path: str, predicate: str) -> Iterator[RawEvent]:
        script = PS_QUERY.replace("__FILTER__", build_filter_xml(path, predicate))
        result = self.runner.run_ps(script)
        lines = _lines(result.std_out)

        if "NO_MATCH" in lines:
            raise NoMatchingEvents(path)
        err = _read_error(result, lines)
        if err:
            raise SourceReadError(f"{path}: {err}")

        for ln in lines:
            if not ln.startswith("EVENT:"):
                continue
            try:
                yield parse_event_line(ln[len("EVENT:"):])
            except (ValueError, TypeError) as e:
                print(f"[!] {path}: malformed event line skipped ({e})")

    def probe(self, path: str) -> Tuple[str, str]:
        result = self.runner.run_ps(PS_PROBE.replace("__PATH__", ps_quote(path)))
        lines = _lines(result.std_out)
        err = _read_error(result, lines)
        if err:
            raise SourceReadError(f"{path}: {err}")
        first = last = None
        for ln in lines:
            if ln.startswith("FIRST:"):
                first = ln[len("FIRST:"):]
            elif ln.startswith("LAST:"):
                last = ln[len("LAST:"):]
        if not first or not last:
            raise SourceReadError(f"{path}: probe returned no boundary records")
        return first, last


def open_event_log(config, password: str = "") -> PowerShellEventLog:
    if config.local:
        return PowerShellEventLog(LocalRunner())
    return PowerShellEventLog(
        WinRMRunner(
            config.host,
            config.username,
            password,
            port=config.port,
            transport=config.transport,
            server_cert_validation=config.server_cert_validation,
        )
    )
