from __future__ import annotations


class ListExportError(RuntimeError):
    """Base class for errors that stop an export."""


class ConfigurationError(ListExportError):
    """Missing credential or an input that cannot be resolved to a list id."""


class FatalHttpError(ListExportError):
    """Provider answered with a status that is neither 200 nor 429."""

    def __init__(self, status: int, detail: str = "") -> None:
        self.status = status
        self.detail = detail
        msg = f"http {status}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class MalformedResponse(ListExportError):
    """A 200 response whose body is not the expected page structure."""


class StorageError(ListExportError):
    """Checkpoint or output file could not be read or written."""


class TransportError(ListExportError):
    """Request never produced an HTTP response (connection failure, timeout)."""
