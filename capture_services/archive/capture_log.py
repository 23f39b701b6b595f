"""In-memory log of a capture session, written to ``capture/capture.log``."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List


class CaptureLog(logging.Handler):
    """Logging handler buffering one formatted line per record.

    The writer records its own events through :meth:`note`; collectors can
    route their loggers here with ``ArchiveWriter.capture_logs``.
    """

    def __init__(self, level: int = logging.INFO, logger_name: str = "capture_services.archive"):
        super().__init__(level=level)
        self.logger_name = logger_name
        self._lines: List[str] = []

    def filter(self, record: logging.LogRecord) -> bool:
        # Writer events arrive through note(); drop their propagated copies.
        if record.name == self.logger_name and not getattr(record, "capture_note", False):
            return False
        return super().filter(record)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
            line = f"{timestamp} {record.levelname} [{record.name}] {record.getMessage()}"
        except (TypeError, ValueError):  # pragma: no cover - malformed format args
            self.handleError(record)
            return
        self._lines.append(line)

    def note(self, level: int, message: str, *args) -> None:
        if level < self.level:
            return
        record = logging.LogRecord(self.logger_name, level, __file__, 0, message, args, None)
        record.capture_note = True
        self.handle(record)

    def lines(self) -> List[str]:
        self.acquire()
        try:
            return list(self._lines)
        finally:
            self.release()

    def text(self) -> str:
        lines = self.lines()
        return "\n".join(lines) + ("\n" if lines else "")
