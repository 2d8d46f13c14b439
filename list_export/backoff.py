"""Response classification and rate-limit backoff.

Everything here is pure: callers pass the observation time in and do the
sleeping themselves.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from .exceptions import MalformedResponse
from .models import CheckpointEvent, Page, Record
from .utils import excerpt, try_json

RESET_HEADER = "x-rate-limit-reset"

MIN_WAIT_SEC = 5
CLOCK_SKEW_SEC = 2
NO_HEADER_WAIT_SEC = 60


@dataclass(frozen=True)
class Success:
    page: Page


@dataclass(frozen=True)
class RateLimited:
    reset_epoch: int
    wait_seconds: int
    event: CheckpointEvent


@dataclass(frozen=True)
class Fatal:
    status: int
    body: str


@dataclass(frozen=True)
class Malformed:
    reason: str
    body: str


Outcome = Union[Success, RateLimited, Fatal, Malformed]


def parse_reset_epoch(headers: Optional[Mapping[str, Any]]) -> Optional[int]:
    if not headers:
        return None
    value = None
    for k, v in headers.items():
        if str(k).lower() == RESET_HEADER:
            value = v
    if value is None:
        return None
    s = str(value).strip()
    if not s.isascii() or not s.isdigit():
        return None
    return int(s)


def compute_wait(reset_epoch: Optional[int], now: int) -> int:
    if reset_epoch is None:
        return NO_HEADER_WAIT_SEC
    return max(MIN_WAIT_SEC, reset_epoch - now + CLOCK_SKEW_SEC)


def rate_limited(headers: Optional[Mapping[str, Any]], now: int) -> RateLimited:
    reset = parse_reset_epoch(headers)
    wait = compute_wait(reset, now)
    if reset is None:
        return RateLimited(reset_epoch=0, wait_seconds=wait, event=CheckpointEvent.RATE_LIMITED_NO_HEADER)
    return RateLimited(reset_epoch=reset, wait_seconds=wait, event=CheckpointEvent.RATE_LIMITED)


def parse_page(body: str) -> Page:
    data = try_json(body)
    if not isinstance(data, dict):
        raise MalformedResponse("response body is not a JSON object")

    items = data.get("data")
    if items is None:
        items = []
    if not isinstance(items, list):
        raise MalformedResponse("'data' is not a list")

    records = []
    for i, obj in enumerate(items):
        if not isinstance(obj, dict):
            raise MalformedResponse(f"member {i} is not an object")
        try:
            records.append(Record.from_api(obj))
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedResponse(f"member {i} is unusable: {e!r}") from e

    meta = data.get("meta") or {}
    token = meta.get("next_token") if isinstance(meta, dict) else None
    return Page(records=tuple(records), next_token=str(token) if token else None)


def classify_response(status: int, headers: Optional[Mapping[str, Any]], body: str, now: int) -> Outcome:
    if status == 429:
        return rate_limited(headers, now)
    if status != 200:
        return Fatal(status=status, body=body)
    try:
        return Success(page=parse_page(body))
    except MalformedResponse as e:
        return Malformed(reason=str(e), body=body)


def error_detail(body: str, limit: int = 300) -> str:
    """Human-readable reason for a failed response: title/detail when the
    provider sent a JSON problem document, otherwise a raw excerpt."""
    data = try_json(body)
    if isinstance(data, dict):
        title = str(data.get("title") or "")
        detail = str(data.get("detail") or "")
        if title or detail:
            return f"{title}: {detail}" if title and detail else (title or detail)
    return excerpt(body, limit)
