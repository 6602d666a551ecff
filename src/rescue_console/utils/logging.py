"""Structured event log for the rescue console.

Connection transitions, dropped frames, action outcomes and advisory
decisions are recorded as categorized entries with free-form context, so
a session can be reconstructed afterwards.

- LogCategory / LogLevel: filtering keys
- StructuredLogger: bounded in-memory history plus optional sinks
- SessionLogger: writes ``session.log`` and ``session.jsonl`` under a run directory
"""

from __future__ import annotations

import json
import logging
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, TextIO


class LogCategory(str, Enum):
    """Console component an entry belongs to."""
    CHANNEL = "CHANNEL"        # Telemetry connection lifecycle
    DECODE = "DECODE"          # Inbound frame decoding
    ACTION = "ACTION"          # Place-item actions and their outcomes
    TRIGGER = "TRIGGER"        # Advisory trigger policy decisions
    ADVISORY = "ADVISORY"      # Advisory requests and responses
    RUNTIME = "RUNTIME"        # Rendering runtime commands
    PROXY = "PROXY"            # Forwarding proxy traffic
    SYSTEM = "SYSTEM"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @property
    def stdlib(self) -> int:
        """Matching ``logging`` module level."""
        return logging.getLevelName(self.value)


@dataclass
class LogEntry:
    """One categorized event with context fields."""

    category: LogCategory
    level: LogLevel
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def state(self) -> str | None:
        return self.context.get("state")

    @property
    def reason(self) -> str | None:
        return self.context.get("reason")

    @property
    def request_id(self) -> str | None:
        return self.context.get("request_id")

    def to_dict(self) -> dict[str, Any]:
        record: dict[str, Any] = {
            "timestamp": self.timestamp.isoformat(),
            "category": self.category.value,
            "level": self.level.value,
            "message": self.message,
        }
        if self.context:
            record["context"] = self.context
        return record

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), default=str)

    def format_console(self) -> str:
        """Single line: time, ``[CATEGORY]``, message and key context."""
        clock = self.timestamp.strftime("%H:%M:%S.%f")[:-3]
        tags = [
            f"{key}={str(self.context[key])[:12] if key == 'request_id' else self.context[key]}"
            for key in ("state", "reason", "request_id")
            if self.context.get(key) is not None
        ]
        suffix = f" ({', '.join(tags)})" if tags else ""
        return f"{clock} {'[' + self.category.value + ']':11} {self.message}{suffix}"


Sink = Callable[[LogEntry], None]


def _category_method(category: LogCategory, default_level: LogLevel, doc: str):
    def method(self: StructuredLogger, message: str, level: LogLevel = default_level, **context: Any) -> LogEntry:
        return self.log(category, level, message, **context)

    method.__name__ = category.value.lower()
    method.__doc__ = doc
    return method


class StructuredLogger:
    """Categorized event log.

    Accepted entries are kept in a bounded history and passed to every sink.
    Entries below the minimum level or in a disabled category are returned
    to the caller but not recorded.
    """

    def __init__(
        self,
        name: str = "rescue_console",
        level: LogLevel = LogLevel.INFO,
        console_output: bool = False,
        file_output: TextIO | None = None,
        json_output: bool = False,
        max_history: int = 10000,
    ):
        """Initialize the event log.

        Args:
            name: Name of the stdlib logger used for console output
            level: Minimum recorded level
            console_output: Forward entries to the stdlib ``logging`` tree
            file_output: Optional open text stream receiving every entry
            json_output: Write JSON lines instead of console lines to ``file_output``
            max_history: Entries retained in memory
        """
        self._name = name
        self._level = level
        self._history: deque[LogEntry] = deque(maxlen=max_history)
        self._counts: Counter[LogCategory] = Counter()
        self._severity: Counter[str] = Counter()
        self._muted: set[LogCategory] = set()
        self._sinks: list[Sink] = []

        if console_output:
            self.add_sink(self._forward_to_logging)
        if file_output is not None:
            self.add_sink(_stream_sink(file_output, json_output))

    def add_sink(self, sink: Sink) -> None:
        self._sinks.append(sink)

    def log(self, category: LogCategory, level: LogLevel, message: str, **context: Any) -> LogEntry:
        """Record an entry and hand it to the sinks."""
        entry = LogEntry(category, level, message, context)
        if level.stdlib < self._level.stdlib or category in self._muted:
            return entry

        self._history.append(entry)
        self._counts[category] += 1
        if level in (LogLevel.ERROR, LogLevel.CRITICAL):
            self._severity["errors"] += 1
        elif level is LogLevel.WARNING:
            self._severity["warnings"] += 1

        for sink in self._sinks:
            sink(entry)
        return entry

    def _forward_to_logging(self, entry: LogEntry) -> None:
        logging.getLogger(self._name).log(
            entry.level.stdlib, "[%s] %s", entry.category.value, entry.message,
        )

    channel = _category_method(LogCategory.CHANNEL, LogLevel.INFO, "Log telemetry connection lifecycle.")
    decode = _category_method(LogCategory.DECODE, LogLevel.WARNING, "Log dropped or malformed frames.")
    action = _category_method(LogCategory.ACTION, LogLevel.INFO, "Log place-item actions.")
    trigger = _category_method(LogCategory.TRIGGER, LogLevel.DEBUG, "Log trigger policy decisions.")
    advisory = _category_method(LogCategory.ADVISORY, LogLevel.INFO, "Log advisory requests and outcomes.")
    runtime = _category_method(LogCategory.RUNTIME, LogLevel.DEBUG, "Log rendering runtime commands.")
    proxy = _category_method(LogCategory.PROXY, LogLevel.INFO, "Log forwarding proxy traffic.")
    system = _category_method(LogCategory.SYSTEM, LogLevel.INFO, "Log session lifecycle.")

    def set_level(self, level: LogLevel) -> None:
        self._level = level

    def disable_categories(self, categories: list[LogCategory]) -> None:
        self._muted.update(categories)

    def enable_all_categories(self) -> None:
        self._muted.clear()

    def get_statistics(self) -> dict[str, Any]:
        return {
            "total": sum(self._counts.values()),
            "by_category": {cat.value: self._counts[cat] for cat in LogCategory},
            "errors": self._severity["errors"],
            "warnings": self._severity["warnings"],
        }

    def get_recent_entries(self, count: int = 100) -> list[LogEntry]:
        return list(self._history)[-count:]

    def filter_by_category(self, category: LogCategory) -> list[LogEntry]:
        return [e for e in self._history if e.category == category]


def _stream_sink(stream: TextIO, as_json: bool) -> Sink:
    def write(entry: LogEntry) -> None:
        stream.write((entry.to_json() if as_json else entry.format_console()) + "\n")
        stream.flush()

    return write


class SessionLogger(StructuredLogger):
    """Event log persisted to ``<runs_dir>/<session_id>/logs/``."""

    def __init__(
        self,
        session_id: str,
        runs_dir: str | Path = "runs",
        console_output: bool = False,
        level: LogLevel = LogLevel.INFO,
    ):
        super().__init__(name=f"session_{session_id}", level=level, console_output=console_output)
        self._session_id = session_id
        self._logs_dir = Path(runs_dir) / session_id / "logs"
        self._logs_dir.mkdir(parents=True, exist_ok=True)

        self._streams = [
            open(self._logs_dir / "session.log", "a", encoding="utf-8"),
            open(self._logs_dir / "session.jsonl", "a", encoding="utf-8"),
        ]
        self.add_sink(_stream_sink(self._streams[0], as_json=False))
        self.add_sink(_stream_sink(self._streams[1], as_json=True))
        self.system(f"Session started: {session_id}")

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def logs_dir(self) -> Path:
        return self._logs_dir

    def close(self) -> None:
        """Write the end marker and close both files."""
        if self._streams[0].closed:
            return
        self.system(f"Session ended: {self._session_id}")
        for stream in self._streams:
            stream.close()
        self._sinks = [s for s in self._sinks if s == self._forward_to_logging]


_global_logger: StructuredLogger | None = None


def get_logger() -> StructuredLogger:
    """Process-wide event log, created on first use."""
    global _global_logger
    if _global_logger is None:
        _global_logger = StructuredLogger()
    return _global_logger


def set_logger(logger: StructuredLogger) -> None:
    global _global_logger
    _global_logger = logger


def create_session_logger(
    session_id: str | None = None,
    runs_dir: str | Path = "runs",
    console_output: bool = False,
    level: LogLevel = LogLevel.INFO,
) -> SessionLogger:
    """Create a session logger and install it as the process-wide log.

    Args:
        session_id: Directory name for the session (timestamp when omitted)
        runs_dir: Parent directory of all sessions
        console_output: Also forward entries to the stdlib ``logging`` tree
        level: Minimum recorded level
    """
    logger = SessionLogger(
        session_id=session_id or datetime.now().strftime("%Y%m%d_%H%M%S"),
        runs_dir=runs_dir,
        console_output=console_output,
        level=level,
    )
    set_logger(logger)
    return logger


__all__ = [
    "LogCategory",
    "LogLevel",
    "LogEntry",
    "StructuredLogger",
    "SessionLogger",
    "get_logger",
    "set_logger",
    "create_session_logger",
]
