from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

from .backoff import rate_limited
from .client import ApiResponse
from .exceptions import ConfigurationError, TransportError
from .logging_utils import get_logger, log_json
from .utils import now_epoch, try_json

_LIST_URL_RE = re.compile(r"^https?://[^/]+/i/lists/([0-9]+)$")
_LIST_ID_RE = re.compile(r"^[0-9]+$")
_UNSAFE_RE = re.compile(r"[^A-Za-z0-9._-]")

logger = get_logger(__name__)


class MetadataSource(Protocol):
    def fetch_metadata(self, list_id: str) -> ApiResponse: ...


@dataclass(frozen=True)
class OutputPaths:
    jsonl: Path
    csv: Path
    state: Path


def resolve_list_id(arg: str) -> str:
    """Accept `https://x.com/i/lists/<id>` or a bare numeric id."""
    s = (arg or "").strip()
    if not s:
        raise ConfigurationError("no URL/ID provided. expected: https://x.com/i/lists/<ID> or <ID>")
    m = _LIST_URL_RE.match(s)
    if m:
        return m.group(1)
    if _LIST_ID_RE.match(s):
        return s
    raise ConfigurationError(f"could not extract numeric list id from {s!r}")


def sanitize_name(name: str) -> str:
    return _UNSAFE_RE.sub("_", name)


def default_basename(list_id: str, name: Optional[str]) -> str:
    if name:
        return sanitize_name(name)
    return f"list_{list_id}"


def output_paths(out_dir: str | Path, basename: str) -> OutputPaths:
    d = Path(out_dir)
    return OutputPaths(
        jsonl=d / f"{basename}_members.jsonl",
        csv=d / f"{basename}_members.csv",
        state=d / f"{basename}.state.json",
    )


def resolve_list_name(
    client: MetadataSource,
    list_id: str,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], int] = now_epoch,
) -> Optional[str]:
    """Best-effort list name lookup.

    Waits out 429s the same way page fetches do; any other failure just
    means there is no name.
    """
    while True:
        try:
            resp = client.fetch_metadata(list_id)
        except TransportError as e:
            log_json(logger, logging.INFO, "list_name_unavailable", list_id=list_id, error=str(e))
            return None
        if resp.status != 429:
            break
        rl = rate_limited(resp.headers, clock())
        log_json(logger, logging.INFO, "rate_limited", context="list metadata", wait_seconds=rl.wait_seconds)
        sleep(rl.wait_seconds)

    if resp.status == 200:
        data = try_json(resp.body)
        if isinstance(data, dict) and not data.get("errors"):
            info = data.get("data")
            name = info.get("name") if isinstance(info, dict) else None
            if name:
                log_json(logger, logging.INFO, "list_name_resolved", list_id=list_id, name=name)
                return str(name)

    log_json(logger, logging.INFO, "list_name_unavailable", list_id=list_id, http_status=resp.status)
    return None
