"""
TaskTrack Logging — Structured JSON event log with an async flush queue.

Every task mutation, rollup walk and access denial becomes one JSON line in
{log_dir}/{object_type}/{category}/{YYYY-MM-DD}.jsonl. Services push events
with log(); a daemon thread owned by AsyncLogQueue appends them, so a
request never waits on disk.

Plain diagnostic messages still go through stdlib loggers named
"tasktrack.<module>"; this module only handles the structured event trail.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import date, datetime, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger("tasktrack.engine.logging")

# Valid object types and their permitted categories
OBJECT_TYPE_CATEGORIES = {
    "tasks": ["execution", "security"],
    "projects": ["execution", "security"],
    "users": ["execution", "security"],
    "rollup": ["execution"],
    "system": ["execution", "security"],
}


class LogEntry:
    """A structured log entry destined for a specific file."""

    __slots__ = ("object_type", "category", "data")

    def __init__(self, object_type: str, category: str, data: Dict[str, Any]):
        self.object_type = object_type
        self.category = category
        self.data = data

    def to_json(self) -> str:
        return json.dumps(self.data, default=str, separators=(",", ":"))


def _route(entry: LogEntry) -> LogEntry:
    """Entries for an unknown stream are filed under system/execution."""
    if entry.category in OBJECT_TYPE_CATEGORIES.get(entry.object_type, ()):
        return entry
    data = dict(entry.data, routed_from=f"{entry.object_type}/{entry.category}")
    return LogEntry("system", "execution", data)


class FileLogger:
    """Appends events to, and reads them back from, the daily JSONL files."""

    def __init__(self, log_dir: str = "logs"):
        self._log_dir = Path(log_dir)
        self._lock = threading.Lock()
        for obj_type, categories in OBJECT_TYPE_CATEGORIES.items():
            for cat in categories:
                (self._log_dir / obj_type / cat).mkdir(parents=True, exist_ok=True)

    @property
    def log_dir(self) -> Path:
        return self._log_dir

    def path_for(self, object_type: str, category: str, day: Optional[date] = None) -> Path:
        day = day or date.today()
        return self._log_dir / object_type / category / f"{day.isoformat()}.jsonl"

    def append(self, entries: Iterable[LogEntry]) -> int:
        """Append entries, opening each stream file once. Returns how many were written."""
        lines: Dict[Path, List[str]] = {}
        for entry in entries:
            entry = _route(entry)
            lines.setdefault(self.path_for(entry.object_type, entry.category), []).append(entry.to_json())

        with self._lock:
            for path, batch in lines.items():
                with open(path, "a", encoding="utf-8") as f:
                    f.write("\n".join(batch) + "\n")
        return sum(len(batch) for batch in lines.values())

    def read(self, object_type: str, category: str, day: Optional[date] = None) -> List[Dict[str, Any]]:
        """Events of one stream for ``day`` (default today), oldest first."""
        path = self.path_for(object_type, category, day)
        if not path.exists():
            return []
        events: List[Dict[str, Any]] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                events.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug("Skipping malformed event line in %s", path)
        return events

    def read_today(self, object_type: str, category: str) -> List[Dict[str, Any]]:
        return self.read(object_type, category)


class AsyncLogQueue:
    """
    Buffers events and hands them to a FileLogger from a daemon thread.

    The thread wakes every ``flush_interval_ms``, or as soon as
    ``flush_batch_size`` events are waiting. push() never blocks: when the
    buffer holds ``max_queue_size`` events, new ones are dropped and counted.
    """

    def __init__(
        self,
        file_logger: FileLogger,
        flush_interval_ms: int = 100,
        flush_batch_size: int = 50,
        max_queue_size: int = 10000,
    ):
        self._file_logger = file_logger
        self._interval = flush_interval_ms / 1000.0
        self._batch_size = max(1, flush_batch_size)
        self._queue: Queue[LogEntry] = Queue(maxsize=max_queue_size)
        self._wake = threading.Event()
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._written = 0
        self._dropped = 0

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, name="tasktrack-log-flush", daemon=True)
        self._thread.start()
        logger.debug("Event log flush thread started (interval %.3fs)", self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the thread, then write whatever is still buffered."""
        self._stopping.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        self.flush()
        logger.debug("Event log stopped: %d written, %d dropped", self._written, self._dropped)

    def push(self, entry: LogEntry) -> bool:
        """Queue an event. Returns False if it was dropped."""
        try:
            self._queue.put_nowait(entry)
        except Full:
            self._dropped += 1
            return False
        if self._queue.qsize() >= self._batch_size:
            self._wake.set()
        return True

    def flush(self) -> int:
        """Write everything currently buffered. Returns how many events were written."""
        written = 0
        while True:
            batch = self._take(self._batch_size)
            if not batch:
                break
            try:
                written += self._file_logger.append(batch)
            except OSError as e:
                self._dropped += len(batch)
                logger.error("Event log write failed, %d events lost: %s", len(batch), e)
        self._written += written
        return written

    def _take(self, limit: int) -> List[LogEntry]:
        batch: List[LogEntry] = []
        while len(batch) < limit:
            try:
                batch.append(self._queue.get_nowait())
            except Empty:
                break
        return batch

    def _run(self) -> None:
        while not self._stopping.is_set():
            self._wake.wait(self._interval)
            self._wake.clear()
            self.flush()

    @property
    def pending_count(self) -> int:
        return self._queue.qsize()

    @property
    def written_count(self) -> int:
        return self._written

    @property
    def dropped_count(self) -> int:
        return self._dropped


# ---------------------------------------------------------------------------
# Log Entry Builders
# ---------------------------------------------------------------------------

def _base_entry(
    event: str,
    level: str,
    execution_id: Optional[str] = None,
    user_id: Optional[Any] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Build a base log entry with common fields."""
    entry: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": level,
        "event": event,
    }
    if execution_id:
        entry["execution_id"] = execution_id
    if user_id is not None:
        entry["user_id"] = user_id
    entry.update(extra)
    return entry


def log_progress_event(
    event: str,
    task_id: int,
    progress: int,
    note: str,
    execution_id: Optional[str] = None,
    user_id: Optional[Any] = None,
    previous: Optional[int] = None,
) -> LogEntry:
    """Build a leaf progress event (progress_updated / task_completed)."""
    data = _base_entry(
        event=event,
        level="INFO",
        execution_id=execution_id,
        user_id=user_id,
        task_id=task_id,
        progress=progress,
        note=note,
    )
    if previous is not None:
        data["previous"] = previous
    return LogEntry("tasks", "execution", data)


def log_rollup_event(
    origin_task_id: Optional[int],
    updates: List[Dict[str, Any]],
    warnings: List[str],
    duration_ms: float,
    execution_id: Optional[str] = None,
) -> LogEntry:
    """Build a rollup walk log entry (rollup_applied / rollup_failed)."""
    data = _base_entry(
        event="rollup_failed" if warnings else "rollup_applied",
        level="ERROR" if warnings else "INFO",
        execution_id=execution_id,
        origin_task_id=origin_task_id,
        updates=updates,
        duration_ms=duration_ms,
    )
    if warnings:
        data["warnings"] = warnings
    return LogEntry("rollup", "execution", data)


def log_record_operation(
    operation: str,
    object_type: str,
    record_id: Optional[Any],
    execution_id: Optional[str] = None,
    user_id: Optional[Any] = None,
    fields_changed: Optional[List[str]] = None,
) -> LogEntry:
    """Build a create/update/delete log entry for tasks, projects or users."""
    data = _base_entry(
        event=f"record_{operation}",
        level="INFO",
        execution_id=execution_id,
        user_id=user_id,
        operation=operation,
    )
    if record_id is not None:
        data["record_id"] = record_id
    if fields_changed:
        data["fields_changed"] = fields_changed
    return LogEntry(object_type if object_type in OBJECT_TYPE_CATEGORIES else "system", "execution", data)


def log_security_event(
    event: str,
    action: str,
    user_id: Any,
    user_type: Optional[str] = None,
    execution_id: Optional[str] = None,
    resource_id: Optional[Any] = None,
    level: str = "WARNING",
) -> LogEntry:
    """Build a security event log entry (access denied)."""
    data = _base_entry(
        event=event,
        level=level,
        execution_id=execution_id,
        user_id=user_id,
        action=action,
        user_type=user_type,
    )
    if resource_id is not None:
        data["resource_id"] = resource_id
    object_type = action.split(".", 1)[0]
    return LogEntry(object_type if object_type in OBJECT_TYPE_CATEGORIES else "system", "security", data)


def log_system_event(
    event: str,
    level: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
) -> LogEntry:
    """Build a system event log entry (startup, shutdown, schema creation)."""
    data = _base_entry(event=event, level=level)
    if details:
        data["details"] = details
    return LogEntry("system", "execution", data)


# ---------------------------------------------------------------------------
# Convenience: Global Log Queue Singleton
# ---------------------------------------------------------------------------

_global_queue: Optional[AsyncLogQueue] = None


def init_logging(
    log_dir: str = "logs",
    flush_interval_ms: int = 100,
    flush_batch_size: int = 50,
    max_queue_size: int = 10000,
    level: str = "INFO",
) -> AsyncLogQueue:
    """Initialize the global async log queue and the stdlib logger level."""
    global _global_queue
    logging.getLogger("tasktrack").setLevel(level)
    file_logger = FileLogger(log_dir=log_dir)
    _global_queue = AsyncLogQueue(
        file_logger=file_logger,
        flush_interval_ms=flush_interval_ms,
        flush_batch_size=flush_batch_size,
        max_queue_size=max_queue_size,
    )
    _global_queue.start()
    return _global_queue


def get_log_queue() -> Optional[AsyncLogQueue]:
    """Get the global async log queue."""
    return _global_queue


def log(entry: LogEntry) -> bool:
    """Push a log entry to the global queue. Non-blocking."""
    if _global_queue is None:
        logger.warning("Log queue not initialized — entry dropped")
        return False
    return _global_queue.push(entry)


def shutdown_logging() -> None:
    """Flush and stop the global log queue."""
    global _global_queue
    if _global_queue:
        _global_queue.stop()
        _global_queue = None
