import json
from datetime import date

import auth_audit
from conftest import FakeEventLog, ev
from evtx_source import LIVE_CHANNEL, PowerShellEventLog, SourceReadError


def test_build_request_from_flags(tmp_path):
    accounts = tmp_path / "accounts.txt"
    accounts.write_text("alice\nbob\nalice\n", encoding="utf-8")
    args = auth_audit.build_parser().parse_args([
        "--start", "2025-10-01", "--end", "2025-11-07",
        "--kinds", "4771,4776", "--accounts-file", str(accounts),
        "--sources", "archive", "--order", "newest", "--scope", "failure", "--rollup",
    ])
    req = auth_audit.build_request(args)
    assert req.time_range.start == date(2025, 10, 1)
    assert req.kinds == (4771, 4776)
    assert req.accounts.accounts == ("alice", "bob")
    assert (req.include_live, req.include_archives) == (False, True)
    assert req.order == "newest" and req.scope == "failure"
    assert req.export_rollup and not req.export_consolidated


def test_main_reports_setup_error_and_exits_1(capsys):
    rc = auth_audit.main(["--local", "--start", "2025-11-08", "--end", "2025-11-07"])
    assert rc == 1
    assert "after end date" in capsys.readouterr().out


def test_main_runs_locally(tmp_path, monkeypatch, capsys):
    log = FakeEventLog(events={LIVE_CHANNEL: [ev(4768, "2025-10-02T00:00:00Z", TargetUserName="alice")]})
    monkeypatch.setattr(auth_audit, "open_event_log", lambda config, password="": log)

    rc = auth_audit.main([
        "--local", "--start", "2025-10-01", "--end", "2025-10-31",
        "--sources", "live", "--out", str(tmp_path), "--consolidated",
    ])
    assert rc == 0
    (run_dir,) = tmp_path.iterdir()
    summary = json.loads((run_dir / "summary.json").read_text(encoding="utf-8"))
    assert summary["counts"]["rows"] == 1
    assert summary["outputs"]["consolidated"] == "consolidated.csv"
    assert "TOTAL" in capsys.readouterr().out


class RejectingRunner:
    def __init__(self):
        self.calls = 0

    def run_ps(self, script):
        self.calls += 1
        raise SourceReadError("WinRM execution failed: 401 unauthorized")


def test_main_exits_1_when_the_host_rejects_the_session(tmp_path, monkeypatch, capsys):
    runner = RejectingRunner()
    monkeypatch.setattr(auth_audit, "open_event_log", lambda config, password="": PowerShellEventLog(runner))

    rc = auth_audit.main(["--local", "--start", "2025-10-01", "--end", "2025-10-31", "--out", str(tmp_path)])
    assert rc == 1
    assert runner.calls == 1
    assert "401 unauthorized" in capsys.readouterr().out
    assert list(tmp_path.iterdir()) == []


def test_main_exits_1_when_output_folder_cannot_be_created(tmp_path, monkeypatch, capsys):
    blocker = tmp_path / "afile"
    blocker.write_text("", encoding="utf-8")
    monkeypatch.setattr(auth_audit, "open_event_log", lambda config, password="": FakeEventLog())

    rc = auth_audit.main(["--local", "--start", "2025-10-01", "--end", "2025-10-31", "--out", str(blocker)])
    assert rc == 1
    assert "cannot create output folder" in capsys.readouterr().out
