import json

import pytest

from event_kinds import LIFECYCLE_COLUMNS, SUMMARY_COLUMNS
from exporter import ArtifactWriter

ROW = {"Timestamp": "2025-10-01 02:00:00", "EventID": 4720, "Action": "Created",
       "TargetAccount": "new", "ActorAccount": None, "Source": "live-x"}


def test_csv_uses_fixed_column_order_and_blank_for_none(tmp_path):
    path = ArtifactWriter(str(tmp_path), LIFECYCLE_COLUMNS).write("live-x", [dict(reversed(list(ROW.items())))])
    lines = open(path, encoding="utf-8").read().splitlines()
    assert lines == [",".join(LIFECYCLE_COLUMNS), "2025-10-01 02:00:00,4720,Created,new,,live-x"]


def test_empty_csv_has_header_and_empty_jsonl_is_empty(tmp_path):
    csv_path = ArtifactWriter(str(tmp_path), SUMMARY_COLUMNS).write("account_summary", [])
    assert open(csv_path, encoding="utf-8").read().splitlines() == [",".join(SUMMARY_COLUMNS)]
    jsonl_path = ArtifactWriter(str(tmp_path), SUMMARY_COLUMNS, "jsonl").write("account_summary", [])
    assert open(jsonl_path, encoding="utf-8").read() == ""


def test_jsonl_rewrites_file_and_keeps_column_order(tmp_path):
    w = ArtifactWriter(str(tmp_path), LIFECYCLE_COLUMNS, "jsonl")
    w.write("live-x", [ROW, ROW])
    path = w.write("live-x", [ROW])
    lines = open(path, encoding="utf-8").read().splitlines()
    assert len(lines) == 1
    assert list(json.loads(lines[0])) == LIFECYCLE_COLUMNS


def test_unknown_format_is_rejected(tmp_path):
    with pytest.raises(ValueError):
        ArtifactWriter(str(tmp_path), LIFECYCLE_COLUMNS, "xml")
