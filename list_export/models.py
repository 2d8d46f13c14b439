from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from .utils import as_iso, now_utc, parse_iso


class CheckpointEvent(str, Enum):
    PAGE_WRITTEN = "page_written"
    RATE_LIMITED = "rate_limited"
    RATE_LIMITED_NO_HEADER = "rate_limited_no_header"


@dataclass(frozen=True)
class Record:
    """One list member.

    `raw` keeps the provider object exactly as received; the typed fields
    carry the defaults used for tabular output.
    """

    handle: str
    id: str
    display_name: str = ""
    verified: bool = False
    followers_count: int = 0
    following_count: int = 0
    raw: Mapping[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @classmethod
    def from_api(cls, obj: Mapping[str, Any]) -> "Record":
        """Build a Record from an X API user object.

        Raises KeyError/TypeError/ValueError when required fields are missing
        or unusable; the caller turns those into MalformedResponse.
        """
        handle = obj["username"]
        user_id = obj["id"]
        if handle is None or user_id is None:
            raise ValueError("username and id are required")
        metrics = obj.get("public_metrics")
        if not isinstance(metrics, Mapping):
            metrics = {}
        return cls(
            handle=str(handle),
            id=str(user_id),
            display_name=str(obj.get("name") or ""),
            verified=obj.get("verified") is True,
            followers_count=int(metrics.get("followers_count") or 0),
            following_count=int(metrics.get("following_count") or 0),
            raw=dict(obj),
        )


@dataclass(frozen=True)
class Page:
    records: Tuple[Record, ...] = ()
    next_token: Optional[str] = None


@dataclass(frozen=True)
class Checkpoint:
    collection_id: str
    page: int = 1
    total_written: int = 0
    resume_token: Optional[str] = None
    last_event: CheckpointEvent = CheckpointEvent.PAGE_WRITTEN
    last_reset_epoch: int = 0
    last_wait_seconds: int = 0
    updated_at: datetime = field(default_factory=now_utc)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collection_id": self.collection_id,
            "page": self.page,
            "total_written": self.total_written,
            "resume_token": self.resume_token,
            "last_event": self.last_event.value,
            "last_reset_epoch": self.last_reset_epoch,
            "last_wait_seconds": self.last_wait_seconds,
            "updated_at": as_iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "Checkpoint":
        token = d.get("resume_token")
        return cls(
            collection_id=str(d["collection_id"]),
            page=int(d.get("page") or 1),
            total_written=int(d.get("total_written") or 0),
            resume_token=str(token) if token else None,
            last_event=CheckpointEvent(d.get("last_event") or CheckpointEvent.PAGE_WRITTEN.value),
            last_reset_epoch=int(d.get("last_reset_epoch") or 0),
            last_wait_seconds=int(d.get("last_wait_seconds") or 0),
            updated_at=parse_iso(d.get("updated_at")) or now_utc(),
        )
