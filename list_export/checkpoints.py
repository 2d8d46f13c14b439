from __future__ import annotations

import json
import os
from pathlib import Path

from .exceptions import StorageError
from .models import Checkpoint


class CheckpointStore:
    """Single-file JSON checkpoint, replaced atomically on every commit."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    @property
    def tmp_path(self) -> Path:
        return self.path.with_name(self.path.name + ".tmp")

    def load(self) -> Checkpoint | None:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return Checkpoint.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise StorageError(f"cannot read checkpoint {self.path}: {e}") from e

    def commit(self, cp: Checkpoint) -> None:
        tmp = self.tmp_path
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(cp.to_dict(), f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as e:
            try:
                tmp.unlink()
            except OSError:
                pass
            raise StorageError(f"cannot write checkpoint {self.path}: {e}") from e
