from __future__ import annotations

import csv
import json
from pathlib import Path
from typing import Protocol, Sequence

from .exceptions import StorageError
from .models import Record

CSV_HEADER = ["handle", "displayName", "id", "verified", "followersCount", "followingCount"]


class RecordWriter(Protocol):
    def write(self, records: Sequence[Record]) -> None: ...


class RecordSink:
    """Append-only JSONL file, one provider user object per line."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def write(self, records: Sequence[Record]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                for rec in records:
                    f.write(json.dumps(dict(rec.raw), ensure_ascii=False, separators=(",", ":")) + "\n")
        except OSError as e:
            raise StorageError(f"cannot append to {self.path}: {e}") from e


class TabularSink:
    """Append-only CSV file.

    The header goes in only when the file is missing or empty, so reruns
    against an existing export keep appending rows under the existing header.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def _needs_header(self) -> bool:
        return not self.path.exists() or self.path.stat().st_size == 0

    def write(self, records: Sequence[Record]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            needs_header = self._needs_header()
            with self.path.open("a", encoding="utf-8", newline="") as f:
                w = csv.writer(f)
                if needs_header:
                    w.writerow(CSV_HEADER)
                for rec in records:
                    w.writerow(_row(rec))
        except OSError as e:
            raise StorageError(f"cannot append to {self.path}: {e}") from e


def _row(rec: Record) -> list:
    return [
        rec.handle,
        rec.display_name,
        rec.id,
        "true" if rec.verified else "false",
        rec.followers_count,
        rec.following_count,
    ]
