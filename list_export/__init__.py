"""Resumable export of list members from the X API to JSONL and CSV."""

__version__ = "0.1.0"
