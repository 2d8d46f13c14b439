from __future__ import annotations

import logging
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional, Protocol, Sequence

from .backoff import Fatal, Malformed, RateLimited, Success, classify_response, error_detail
from .checkpoints import CheckpointStore
from .client import ApiResponse
from .exceptions import FatalHttpError, MalformedResponse
from .logging_utils import get_logger, log_json
from .models import Checkpoint, CheckpointEvent, Page
from .sinks import RecordWriter
from .utils import now_epoch, now_utc


class PageSource(Protocol):
    def fetch_page(self, list_id: str, resume_token: Optional[str] = None) -> ApiResponse: ...


@dataclass(frozen=True)
class LoopState:
    collection_id: str
    page: int = 1
    total_written: int = 0
    resume_token: Optional[str] = None

    @property
    def exhausted(self) -> bool:
        # No token after at least one written page: the provider said "no more".
        return self.page > 1 and self.resume_token is None

    def after_page(self, page: Page) -> "LoopState":
        return replace(
            self,
            page=self.page + 1,
            total_written=self.total_written + len(page.records),
            resume_token=page.next_token,
        )

    @classmethod
    def from_checkpoint(cls, cp: Checkpoint) -> "LoopState":
        return cls(
            collection_id=cp.collection_id,
            page=max(cp.page, 1),
            total_written=max(cp.total_written, 0),
            resume_token=cp.resume_token,
        )

    def to_checkpoint(self, event: CheckpointEvent, reset_epoch: int = 0, wait_seconds: int = 0) -> Checkpoint:
        return Checkpoint(
            collection_id=self.collection_id,
            page=self.page,
            total_written=self.total_written,
            resume_token=self.resume_token,
            last_event=event,
            last_reset_epoch=reset_epoch,
            last_wait_seconds=wait_seconds,
            updated_at=now_utc(),
        )


@dataclass
class RunResult:
    collection_id: str
    total_written: int
    final_page: int
    pages_fetched: int = 0
    records_written: int = 0
    rate_limit_waits: int = 0


class PaginationDriver:
    """Fetches a list page by page until the provider stops returning a
    continuation token.

    Per page: fetch, classify, then either wait out a 429 and retry the same
    request, or write the records to every sink and commit the checkpoint.
    Any other outcome raises and leaves the last checkpoint as it was.
    """

    def __init__(
        self,
        *,
        client: PageSource,
        store: CheckpointStore,
        sinks: Sequence[RecordWriter],
        collection_id: str,
        page_delay: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], int] = now_epoch,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.store = store
        self.sinks = list(sinks)
        self.collection_id = str(collection_id)
        self.page_delay = page_delay
        self.sleep = sleep
        self.clock = clock
        self.logger = logger or get_logger(__name__)
        self._result: Optional[RunResult] = None

    def resume(self) -> LoopState:
        fresh = LoopState(collection_id=self.collection_id)
        cp = self.store.load()
        if cp is None:
            return fresh
        if cp.collection_id != self.collection_id:
            log_json(
                self.logger,
                logging.WARNING,
                "checkpoint_ignored",
                path=str(self.store.path),
                checkpoint_collection=cp.collection_id,
                collection=self.collection_id,
            )
            return fresh
        state = LoopState.from_checkpoint(cp)
        log_json(
            self.logger,
            logging.INFO,
            "checkpoint_loaded",
            collection=self.collection_id,
            page=state.page,
            total_written=state.total_written,
            resume_token=state.resume_token,
        )
        return state

    def run(self) -> RunResult:
        state = self.resume()
        result = RunResult(collection_id=self.collection_id, total_written=state.total_written, final_page=state.page)
        self._result = result

        if state.exhausted:
            log_json(self.logger, logging.INFO, "already_complete", collection=self.collection_id, total_written=state.total_written)
            return result

        while True:
            page = self._fetch(state)

            for sink in self.sinks:
                sink.write(page.records)

            state = state.after_page(page)
            self.store.commit(state.to_checkpoint(CheckpointEvent.PAGE_WRITTEN))

            result.pages_fetched += 1
            result.records_written += len(page.records)
            result.total_written = state.total_written
            result.final_page = state.page
            log_json(
                self.logger,
                logging.INFO,
                "page_written",
                collection=self.collection_id,
                page=state.page - 1,
                added=len(page.records),
                total=state.total_written,
            )

            if state.resume_token is None:
                break
            self.sleep(self.page_delay)

        log_json(self.logger, logging.INFO, "run_complete", collection=self.collection_id, total_written=state.total_written, pages=result.pages_fetched)
        return result

    def _fetch(self, state: LoopState) -> Page:
        while True:
            resp = self.client.fetch_page(self.collection_id, state.resume_token)
            outcome = classify_response(resp.status, resp.headers, resp.body, now=self.clock())

            if isinstance(outcome, Success):
                return outcome.page

            if isinstance(outcome, RateLimited):
                self.store.commit(state.to_checkpoint(outcome.event, outcome.reset_epoch, outcome.wait_seconds))
                if self._result is not None:
                    self._result.rate_limit_waits += 1
                log_json(
                    self.logger,
                    logging.INFO,
                    "rate_limited",
                    collection=self.collection_id,
                    page=state.page,
                    wait_seconds=outcome.wait_seconds,
                    reset_epoch=outcome.reset_epoch or None,
                )
                self.sleep(outcome.wait_seconds)
                continue

            if isinstance(outcome, Fatal):
                raise FatalHttpError(outcome.status, error_detail(outcome.body))

            if isinstance(outcome, Malformed):
                raise MalformedResponse(f"page {state.page}: {outcome.reason}")

            raise TypeError(f"unexpected outcome {outcome!r}")
