#!/usr/bin/env python3
# exporter.py
#
# ODEA Krino - Row artifact writers
#
# One artifact per processed source, written as soon as the source finishes.
# Column order is fixed per mode; an empty row set still gets a header (csv)
# or an empty file (jsonl).

import csv
import json
import os
from typing import Any, Dict, Iterable, List, Sequence

FORMATS = ("csv", "jsonl")


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def write_json(path: str, obj: Any) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, ensure_ascii=False)


def append_jsonl(path: str, items: Iterable[Dict[str, Any]]) -> int:
    count = 0
    with open(path, "a", encoding="utf-8") as f:
        for it in items:
            f.write(json.dumps(it, ensure_ascii=False) + "\n")
            count += 1
    return count


def write_csv(path: str, columns: Sequence[str], rows: Iterable[Dict[str, Any]]) -> int:
    count = 0
    with open(path, "w", encoding="utf-8", newline="") as f:
        w = csv.writer(f)
        w.writerow(columns)
        for r in rows:
            w.writerow(["" if r.get(c) is None else r.get(c) for c in columns])
            count += 1
    return count


class ArtifactWriter:
    def __init__(self, out_dir: str, columns: Sequence[str], fmt: str = "csv"):
        if fmt not in FORMATS:
            raise ValueError(f"unknown export format: {fmt}")
        self.out_dir = out_dir
        self.columns: List[str] = list(columns)
        self.fmt = fmt

    def path_for(self, name: str) -> str:
        return os.path.join(self.out_dir, f"{name}.{self.fmt}")

    def write(self, name: str, rows: Sequence[Dict[str, Any]], columns: Sequence[str] = ()) -> str:
        cols = list(columns) or self.columns
        path = self.path_for(name)
        ensure_dir(self.out_dir)
        if self.fmt == "csv":
            write_csv(path, cols, rows)
        else:
            # reset file each write
            open(path, "w", encoding="utf-8").close()
            append_jsonl(path, ({c: r.get(c) for c in cols} for r in rows))
        return path
