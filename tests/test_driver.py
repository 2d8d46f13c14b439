import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from list_export.checkpoints import CheckpointStore
from list_export.client import ApiResponse
from list_export.driver import LoopState, PaginationDriver
from list_export.exceptions import FatalHttpError, MalformedResponse, StorageError
from list_export.models import Checkpoint, CheckpointEvent, Page, Record
from list_export.sinks import RecordSink, TabularSink

from tests.helpers import FakeListsClient, SleepRecorder, members, ok

NOW = 1_700_000_000


class ListSink:
    def __init__(self, log=None, name="sink"):
        self.pages = []
        self.log = log
        self.name = name

    def write(self, records):
        self.pages.append(list(records))
        if self.log is not None:
            self.log.append(self.name)


class FailingSink:
    def write(self, records):
        raise StorageError("disk full")


class TestLoopState(unittest.TestCase):
    def test_after_page_replaces_state(self):
        s0 = LoopState(collection_id="1", page=3, total_written=200, resume_token="xyz")
        page = Page(records=(Record(handle="a", id="1"), Record(handle="b", id="2")), next_token="next")
        s1 = s0.after_page(page)
        self.assertEqual(s1, LoopState(collection_id="1", page=4, total_written=202, resume_token="next"))
        self.assertEqual(s0.page, 3)

    def test_exhausted(self):
        self.assertFalse(LoopState("1").exhausted)
        self.assertFalse(LoopState("1", page=2, resume_token="t").exhausted)
        self.assertTrue(LoopState("1", page=2).exhausted)


class DriverTestCase(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.dir = Path(self._td.name)
        self.store = CheckpointStore(self.dir / "list.state.json")
        self.sleep = SleepRecorder()

    def tearDown(self):
        self._td.cleanup()

    def make_driver(self, client, collection_id="42", sinks=None, store=None):
        if sinks is None:
            sinks = [RecordSink(self.dir / "m.jsonl"), TabularSink(self.dir / "m.csv")]
        return PaginationDriver(
            client=client,
            store=store or self.store,
            sinks=sinks,
            collection_id=collection_id,
            page_delay=5,
            sleep=self.sleep,
            clock=lambda: NOW,
        )

    def seed(self, **kw):
        cp = Checkpoint(updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc), **kw)
        self.store.commit(cp)
        return cp


class TestPaginationDriver(DriverTestCase):
    def test_fresh_single_page(self):
        client = FakeListsClient([ok(members("u", 2))])
        result = self.make_driver(client).run()

        self.assertEqual(client.page_calls, [("42", None)])
        self.assertEqual(result.total_written, 2)
        cp = self.store.load()
        self.assertEqual(cp.collection_id, "42")
        self.assertEqual(cp.page, 2)
        self.assertEqual(cp.total_written, 2)
        self.assertIsNone(cp.resume_token)
        self.assertEqual(cp.last_event, CheckpointEvent.PAGE_WRITTEN)
        self.assertEqual(len((self.dir / "m.jsonl").read_text(encoding="utf-8").splitlines()), 2)
        self.assertEqual(self.sleep.calls, [])

    def test_rate_limited_then_retry_same_page(self):
        client = FakeListsClient(
            [
                ok(members("a", 100), "abc"),
                ApiResponse(status=429, body="", headers={"x-rate-limit-reset": str(NOW + 30)}),
                ok(members("b", 50)),
            ]
        )
        commits = []
        store = self.store
        real_commit = store.commit

        def spy(cp):
            commits.append(cp)
            real_commit(cp)

        store.commit = spy

        result = self.make_driver(client).run()

        self.assertEqual(client.page_calls, [("42", None), ("42", "abc"), ("42", "abc")])
        self.assertEqual(self.sleep.calls, [5, 32])
        self.assertEqual(result.total_written, 150)
        self.assertEqual(result.rate_limit_waits, 1)

        rl = commits[1]
        self.assertEqual(rl.last_event, CheckpointEvent.RATE_LIMITED)
        self.assertEqual((rl.page, rl.total_written, rl.resume_token), (2, 100, "abc"))
        self.assertEqual((rl.last_reset_epoch, rl.last_wait_seconds), (NOW + 30, 32))

        final = self.store.load()
        self.assertEqual((final.page, final.total_written, final.resume_token), (3, 150, None))
        self.assertEqual(final.last_event, CheckpointEvent.PAGE_WRITTEN)

    def test_rate_limited_without_header(self):
        client = FakeListsClient([ApiResponse(status=429, body=""), ApiResponse(status=429, body=""), ok(members("a", 1))])
        seen = []
        real_commit = self.store.commit
        self.store.commit = lambda cp: (seen.append(cp), real_commit(cp))

        self.make_driver(client).run()

        self.assertEqual(self.sleep.calls, [60, 60])
        self.assertEqual([c.last_event for c in seen[:2]], [CheckpointEvent.RATE_LIMITED_NO_HEADER] * 2)
        self.assertEqual(seen[0].page, 1)
        self.assertEqual(seen[0].last_reset_epoch, 0)

    def test_resume_from_matching_checkpoint(self):
        self.seed(collection_id="111", page=3, total_written=200, resume_token="xyz")
        client = FakeListsClient([ok(members("c", 7), "next"), ok(members("d", 3))])
        result = self.make_driver(client, collection_id="111").run()

        self.assertEqual(client.page_calls[0], ("111", "xyz"))
        self.assertEqual(result.total_written, 210)
        self.assertEqual(result.records_written, 10)
        cp = self.store.load()
        self.assertEqual((cp.page, cp.total_written), (5, 210))

    def test_resume_first_page_total(self):
        self.seed(collection_id="111", page=3, total_written=200, resume_token="xyz")
        client = FakeListsClient([ok(members("c", 4), "more"), ApiResponse(status=500, body="")])
        with self.assertRaises(FatalHttpError):
            self.make_driver(client, collection_id="111").run()
        self.assertEqual(self.store.load().total_written, 204)

    def test_checkpoint_for_other_collection_is_ignored(self):
        self.seed(collection_id="222", page=5, total_written=400, resume_token="zzz")
        client = FakeListsClient([ok(members("a", 1))])
        with self.assertLogs("list_export", level="WARNING") as logs:
            result = self.make_driver(client, collection_id="333").run()

        self.assertTrue(any("checkpoint_ignored" in line for line in logs.output))
        self.assertEqual(client.page_calls, [("333", None)])
        self.assertEqual(result.total_written, 1)
        cp = self.store.load()
        self.assertEqual((cp.collection_id, cp.page, cp.total_written), ("333", 2, 1))

    def test_fatal_status_preserves_checkpoint(self):
        client = FakeListsClient(
            [
                ok(members("a", 3), "t1"),
                ApiResponse(status=500, body=json.dumps({"title": "Internal Error", "detail": "try later"})),
            ]
        )
        with self.assertRaises(FatalHttpError) as ctx:
            self.make_driver(client).run()

        self.assertEqual(ctx.exception.status, 500)
        self.assertEqual(ctx.exception.detail, "Internal Error: try later")
        cp = self.store.load()
        self.assertEqual((cp.page, cp.total_written, cp.resume_token), (2, 3, "t1"))
        self.assertEqual(cp.last_event, CheckpointEvent.PAGE_WRITTEN)

    def test_fatal_after_rate_limit_keeps_rate_limit_checkpoint(self):
        client = FakeListsClient([ApiResponse(status=429, body=""), ApiResponse(status=403, body="nope")])
        with self.assertRaises(FatalHttpError):
            self.make_driver(client).run()
        cp = self.store.load()
        self.assertEqual(cp.last_event, CheckpointEvent.RATE_LIMITED_NO_HEADER)
        self.assertEqual(cp.page, 1)

    def test_malformed_body_preserves_checkpoint(self):
        before = self.seed(collection_id="42", page=2, total_written=10, resume_token="t")
        client = FakeListsClient([ApiResponse(status=200, body="not json")])
        sink = ListSink()
        with self.assertRaises(MalformedResponse):
            self.make_driver(client, sinks=[sink]).run()
        self.assertEqual(self.store.load(), before)
        self.assertEqual(sink.pages, [])

    def test_fatal_on_first_request_writes_no_checkpoint(self):
        client = FakeListsClient([ApiResponse(status=401, body="unauthorized")])
        with self.assertRaises(FatalHttpError):
            self.make_driver(client).run()
        self.assertIsNone(self.store.load())

    def test_empty_page_with_token_advances(self):
        client = FakeListsClient([ok([], "t1"), ok(members("a", 2))])
        result = self.make_driver(client).run()
        self.assertEqual(client.page_calls, [("42", None), ("42", "t1")])
        self.assertEqual(result.total_written, 2)
        self.assertEqual(result.pages_fetched, 2)
        self.assertEqual(self.store.load().page, 3)

    def test_sinks_written_before_checkpoint(self):
        log = []
        real_commit = self.store.commit

        def commit(cp):
            log.append(("commit", cp.last_event.value))
            real_commit(cp)

        self.store.commit = commit
        sinks = [ListSink(log, "records"), ListSink(log, "table")]
        client = FakeListsClient([ok(members("a", 1), "t"), ok(members("b", 1))])
        self.make_driver(client, sinks=sinks).run()
        self.assertEqual(
            log,
            ["records", "table", ("commit", "page_written"), "records", "table", ("commit", "page_written")],
        )

    def test_sink_failure_leaves_checkpoint(self):
        before = self.seed(collection_id="42", page=2, total_written=10, resume_token="t")
        client = FakeListsClient([ok(members("a", 1))])
        with self.assertRaises(StorageError):
            self.make_driver(client, sinks=[FailingSink()]).run()
        self.assertEqual(self.store.load(), before)

    def test_exhausted_checkpoint_does_not_refetch(self):
        self.seed(collection_id="42", page=4, total_written=300, resume_token=None)
        client = FakeListsClient([])
        result = self.make_driver(client).run()
        self.assertEqual(client.page_calls, [])
        self.assertEqual(result.total_written, 300)
        self.assertEqual(result.pages_fetched, 0)


if __name__ == "__main__":
    unittest.main()
