from __future__ import annotations

import argparse
import json
import logging
import time
from dataclasses import replace

from dotenv import load_dotenv

from .checkpoints import CheckpointStore
from .client import ListsClient
from .config import clamp_page_size, env, load_settings
from .driver import PaginationDriver
from .exceptions import ConfigurationError, ListExportError
from .logging_utils import configure_logging, get_logger, level_from_name, log_json
from .resolve import default_basename, output_paths, resolve_list_id, resolve_list_name
from .sinks import RecordSink, TabularSink


def cmd_dump(args: argparse.Namespace) -> int:
    logger = get_logger()
    settings = load_settings()
    logger.setLevel(level_from_name(settings.log_level))
    if args.out_dir:
        settings = replace(settings, out_dir=args.out_dir)
    if args.page_size is not None:
        settings = replace(settings, page_size=clamp_page_size(args.page_size))
    if args.page_delay is not None:
        settings = replace(settings, page_delay_sec=max(args.page_delay, 0.0))

    list_id = resolve_list_id(args.target)
    log_json(logger, logging.INFO, "list_resolved", list_id=list_id)

    client = ListsClient.from_settings(settings)
    paths = None

    try:
        name = args.name
        if not name:
            # small pause to avoid bursting
            time.sleep(settings.metadata_delay_sec)
            name = resolve_list_name(client, list_id)
        paths = output_paths(settings.out_dir, default_basename(list_id, name))

        driver = PaginationDriver(
            client=client,
            store=CheckpointStore(paths.state),
            sinks=[RecordSink(paths.jsonl), TabularSink(paths.csv)],
            collection_id=list_id,
            page_delay=settings.page_delay_sec,
        )
        result = driver.run()
    except KeyboardInterrupt:
        state = str(paths.state) if paths else None
        log_json(logger, logging.WARNING, "run_interrupted", list_id=list_id, state=state)
        if paths:
            print(f"interrupted; rerun to resume from {paths.state}")
        else:
            print("interrupted before the export started")
        return 0
    except ListExportError as e:
        log_json(logger, logging.ERROR, "run_failed", list_id=list_id, error=str(e), error_type=type(e).__name__)
        print(f"[error] {e}. stopping.")
        return 1

    print(f"[done] wrote {result.total_written} members")
    print(f"[done] jsonl -> {paths.jsonl}")
    print(f"[done] csv   -> {paths.csv}")
    print(f"[done] state -> {paths.state}")
    return 0


def cmd_status(args: argparse.Namespace) -> int:
    store = CheckpointStore(args.state_file)
    try:
        cp = store.load()
    except ListExportError as e:
        print(f"[error] {e}")
        return 1
    if cp is None:
        print(f"no checkpoint at {args.state_file}")
        return 1
    print(json.dumps(cp.to_dict(), indent=2, ensure_ascii=False))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="list_export", description="Resumable export of X list members to JSONL + CSV")
    sub = parser.add_subparsers(dest="cmd", required=True)

    dump = sub.add_parser("dump", help="Export (or resume exporting) a list's members")
    dump.add_argument("target", help="https://x.com/i/lists/<ID> or the numeric ID")
    dump.add_argument("--out-dir", default=None, help="Directory for outputs and the state file")
    dump.add_argument("--page-size", type=int, default=None, help="Members per request (1-100)")
    dump.add_argument("--page-delay", type=float, default=None, help="Seconds to pause between pages")
    dump.add_argument("--name", default=None, help="Use this name for output files instead of looking it up")

    status = sub.add_parser("status", help="Show a stored checkpoint")
    status.add_argument("state_file")

    return parser


def main(argv=None) -> int:
    load_dotenv(override=False)
    configure_logging(env("LIST_EXPORT_LOG_LEVEL", "INFO") or "INFO")

    args = build_parser().parse_args(argv)

    if args.cmd == "status":
        return cmd_status(args)

    try:
        return cmd_dump(args)
    except ConfigurationError as e:
        log_json(get_logger(), logging.ERROR, "configuration_error", error=str(e))
        print(f"[error] {e}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
