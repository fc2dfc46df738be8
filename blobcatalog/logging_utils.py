"""Logging setup for blobcatalog: console, daily files and context tags."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import IO, Any, List, MutableMapping, Optional, Tuple

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class DailyLogFileHandler(logging.Handler):
    """Append records to ``<prefix>-YYYY-MM-DD.log`` and keep ``keep_days`` files.

    The file is chosen from each record's own timestamp, so a long-running
    ``sync`` rolls over at midnight. Only files carrying ``prefix`` are pruned.
    """

    def __init__(self, log_dir: Path, *, keep_days: int = 7, prefix: str = "blobcatalog") -> None:
        super().__init__()
        self.log_dir = Path(log_dir)
        self.keep_days = max(keep_days, 1)
        self.prefix = prefix
        self._pattern = re.compile(rf"^{re.escape(prefix)}-(\d{{4}}-\d{{2}}-\d{{2}})\.log$")
        self._day: Optional[date] = None
        self._stream: Optional[IO[str]] = None

    def path_for(self, day: date) -> Path:
        return self.log_dir / f"{self.prefix}-{day.isoformat()}.log"

    def emit(self, record: logging.LogRecord) -> None:
        try:
            stream = self._stream_for(datetime.fromtimestamp(record.created).date())
            stream.write(self.format(record) + "\n")
            stream.flush()
        except Exception:  # noqa: BLE001 - logging handlers report through handleError
            self.handleError(record)

    def close(self) -> None:
        self.acquire()
        try:
            self._close_stream()
        finally:
            self.release()
        super().close()

    def log_files(self) -> List[Tuple[date, Path]]:
        """Return ``(day, path)`` for every log file this handler owns, oldest first."""

        if not self.log_dir.is_dir():
            return []
        found = []
        for path in self.log_dir.iterdir():
            match = self._pattern.match(path.name)
            if not match:
                continue
            try:
                found.append((date.fromisoformat(match.group(1)), path))
            except ValueError:
                continue
        return sorted(found)

    def _stream_for(self, day: date) -> IO[str]:
        if self._stream is None or self._day != day:
            self._close_stream()
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self._prune(day)
            self._stream = self.path_for(day).open("a", encoding="utf-8")
            self._day = day
        return self._stream

    def _close_stream(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def _prune(self, today: date) -> None:
        oldest_kept = today - timedelta(days=self.keep_days - 1)
        for day, path in self.log_files():
            if day < oldest_kept:
                path.unlink(missing_ok=True)


class ContextLoggerAdapter(logging.LoggerAdapter):
    """Prefix every message with ``key=value`` pairs describing its origin."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        context = " ".join(f"{key}={value}" for key, value in self.extra.items())
        if not context:
            return msg, kwargs
        return f"[{context}] {msg}", kwargs

    def child(self, **context: Any) -> "ContextLoggerAdapter":
        merged = dict(self.extra)
        merged.update(context)
        return ContextLoggerAdapter(self.logger, merged)


def context_logger(logger: logging.Logger | ContextLoggerAdapter, **context: Any) -> ContextLoggerAdapter:
    """Return an adapter that tags messages from ``logger`` with ``context``."""

    if isinstance(logger, ContextLoggerAdapter):
        return logger.child(**context)
    return ContextLoggerAdapter(logger, context)


def configure_logging(verbose: bool, log_dir: Path | None = None, *, keep_days: int = 7) -> None:
    """Replace the root handlers with a console handler and a daily file handler.

    The ``azure`` and ``apscheduler`` loggers stay at WARNING unless ``verbose``
    is set, since they log every HTTP request and every job run at INFO.
    """

    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers: List[logging.Handler] = [
        logging.StreamHandler(),
        DailyLogFileHandler(log_dir or Path.cwd() / "log", keep_days=keep_days),
    ]
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        root.addHandler(handler)

    for noisy in ("azure", "apscheduler"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.captureWarnings(True)


__all__ = [
    "ContextLoggerAdapter",
    "DailyLogFileHandler",
    "LOG_DATE_FORMAT",
    "LOG_FORMAT",
    "configure_logging",
    "context_logger",
]
