"""Record writer -- sequence ids and durable, unbuffered JSONL output.

Usage::

    writer = RecordWriter("run.trace")
    writer.open()
    try:
        record_id = writer.write({"event": "line", ...})
    finally:
        writer.close()
"""

from __future__ import annotations

import fcntl
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any

from chronotrace.errors import SessionStateError, TraceResourceError
from chronotrace.logger import get_logger
from chronotrace.tracing.types import SUMMARY_EVENT, TraceRecord

logger = get_logger(__name__)


class RecordWriter:
    """Append-only JSONL writer owning its destination exclusively.

    Every :meth:`write` assigns the next id (starting at 1), writes one line,
    flushes and ``fsync``s before returning. There is no buffering: a crash
    of the traced program loses at most the event being processed.

    Parameters:
        path: Destination file. Parent directories are created.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._file: IO[str] | None = None
        self._next_id: int = 1
        self._broken: bool = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._path

    @property
    def next_id(self) -> int:
        """The id the next successful :meth:`write` will receive."""
        return self._next_id

    @property
    def is_open(self) -> bool:
        return self._file is not None

    @property
    def broken(self) -> bool:
        """Whether a write or sync has failed on this destination."""
        return self._broken

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self) -> Path:
        """Open and exclusively lock the destination, truncating it.

        Raises:
            TraceResourceError: the file cannot be created or is locked by
                another writer.
        """
        if self._file is not None:
            raise SessionStateError(f"{self._path} is already open", state="open")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            handle = open(self._path, "a", encoding="utf-8")  # noqa: SIM115
        except OSError as exc:
            logger.error("trace_open_failed", path=str(self._path), error=str(exc))
            raise TraceResourceError(
                f"cannot open trace destination {self._path}: {exc}", path=str(self._path)
            ) from exc

        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            handle.close()
            logger.error("trace_lock_failed", path=str(self._path), error=str(exc))
            raise TraceResourceError(
                f"trace destination {self._path} is in use by another tracer",
                path=str(self._path),
            ) from exc

        handle.truncate(0)
        self._file = handle
        self._next_id = 1
        self._broken = False
        return self._path

    def close(self) -> None:
        """Release the lock and close the file. Safe to call repeatedly."""
        if self._file is None:
            return
        handle, self._file = self._file, None
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        except OSError:
            logger.debug("trace_unlock_failed", path=str(self._path), exc_info=True)
        finally:
            handle.close()

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def write(self, fields: dict[str, Any]) -> int:
        """Write one record and return its id.

        Any ``id`` already present in *fields* is replaced.

        Raises:
            TraceResourceError: the line could not be written or synced.
        """
        if self._file is None:
            raise SessionStateError(f"{self._path} is not open", state="closed")
        if self._broken:
            raise TraceResourceError(
                f"trace destination {self._path} failed earlier", path=str(self._path)
            )

        record_id = self._next_id
        payload: dict[str, Any] = {"id": record_id}
        payload.update((k, v) for k, v in fields.items() if k != "id")
        line = json.dumps(payload, default=str)

        try:
            self._file.write(line + "\n")
            self._file.flush()
            os.fsync(self._file.fileno())
        except OSError as exc:
            self._broken = True
            logger.error("trace_write_failed", path=str(self._path), error=str(exc))
            raise TraceResourceError(
                f"cannot write trace record {record_id} to {self._path}: {exc}",
                path=str(self._path),
            ) from exc

        self._next_id = record_id + 1
        return record_id

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> RecordWriter:
        self.open()
        return self

    def __exit__(self, *_exc: Any) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class TraceLog:
    """A parsed trace file."""

    records: list[TraceRecord] = field(default_factory=list)
    summary: dict[str, Any] | None = None

    def by_id(self, record_id: int) -> TraceRecord | None:
        # Ids start at 1 with no gaps.
        index = record_id - 1
        if 0 <= index < len(self.records) and self.records[index].id == record_id:
            return self.records[index]
        return next((r for r in self.records if r.id == record_id), None)


def load_trace(path: str | Path) -> TraceLog:
    """Parse a trace file written by :class:`RecordWriter`.

    Raises:
        ValueError: a line is not a well-formed record.
    """
    log = TraceLog()
    with open(path, encoding="utf-8") as fh:
        for number, line in enumerate(fh, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                raw = json.loads(line)
                if raw.get("event") == SUMMARY_EVENT:
                    log.summary = raw
                else:
                    log.records.append(TraceRecord.from_dict(raw))
            except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as exc:
                raise ValueError(f"{path}:{number}: malformed trace record: {exc}") from exc
    return log
