"""Logging setup for the bridge and the per-turn log context.

Lines are plain text with ``key=value`` pairs appended, e.g.::

    2026-01-01 12:00:00,000 INFO cascade_bridge.reconciler turn.complete cascade_id=c1 thread_id=t9 flushes=4

Every turn runs in its own task, so ``cascade_id`` and ``thread_id`` travel in
a context variable instead of being passed to each log call.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
from dataclasses import dataclass, field, replace
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping

from cascade_bridge.paths import log_dir
from cascade_bridge.settings import BridgeSettings

LOG_FILE_NAME = "bridge.log"
LOG_MAX_BYTES = 5_000_000
LOG_BACKUPS = 3
LINE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# discord.py logs every gateway heartbeat and resume at INFO, httpx every request.
QUIET_LOGGERS: Dict[str, int] = {
    "discord": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
}


@dataclass(frozen=True)
class TurnContext:
    """Identifiers of the turn a log record belongs to."""

    cascade_id: str | None = None
    thread_id: str | None = None

    def merged(self, *, cascade_id: str | None, thread_id: str | None) -> "TurnContext":
        return replace(
            self,
            cascade_id=cascade_id or self.cascade_id,
            thread_id=thread_id or self.thread_id,
        )

    def pairs(self) -> List[tuple[str, Any]]:
        return [(key, value) for key, value in (("cascade_id", self.cascade_id), ("thread_id", self.thread_id)) if value]


_TURN: contextvars.ContextVar[TurnContext] = contextvars.ContextVar("cascade_bridge_turn", default=TurnContext())


def current_turn() -> TurnContext:
    return _TURN.get()


@contextlib.contextmanager
def log_context(*, cascade_id: str | None = None, thread_id: str | None = None) -> Iterator[TurnContext]:
    """Tag records logged inside the block with the given turn identifiers.

    Identifiers not passed keep the value of the enclosing block.
    """
    turn = _TURN.get().merged(cascade_id=cascade_id, thread_id=thread_id)
    token = _TURN.set(turn)
    try:
        yield turn
    finally:
        _TURN.reset(token)


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Log a dotted event name (``session.recreated``) with ``key=value`` fields."""
    logger.log(level, event, extra={"event_fields": fields})


def parse_level(value: str | None, default: int) -> int:
    if not value:
        return default
    if value.isdigit():
        return int(value)
    level = logging.getLevelName(value.upper())
    return level if isinstance(level, int) else default


@dataclass(frozen=True)
class LogConfig:
    log_file: Path
    level: int = logging.INFO
    stderr: bool = True
    logger_levels: Mapping[str, int] = field(default_factory=lambda: dict(QUIET_LOGGERS))


def build_log_config(settings: BridgeSettings) -> LogConfig:
    directory = Path(settings.log_dir) if settings.log_dir else log_dir()
    directory.mkdir(parents=True, exist_ok=True)
    return LogConfig(
        log_file=directory / LOG_FILE_NAME,
        level=parse_level(settings.log_level, logging.INFO),
        stderr=settings.log_stderr,
    )


def _render(value: Any) -> str:
    text = value if isinstance(value, str) else str(value)
    if not text or any(ch.isspace() or ch in '="' for ch in text):
        return json.dumps(text, ensure_ascii=False)
    return text


class TurnFilter(logging.Filter):
    """Stamp records with the current ``TurnContext``."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003 - logging API name
        record.turn = current_turn()
        return True


class EventFormatter(logging.Formatter):
    """Append turn identifiers, then event fields in sorted order."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        turn: TurnContext = getattr(record, "turn", None) or current_turn()
        fields: Dict[str, Any] = getattr(record, "event_fields", {})
        pairs = turn.pairs() + [(key, fields[key]) for key in sorted(fields) if fields[key] is not None]
        if not pairs:
            return line
        return line + " " + " ".join(f"{key}={_render(value)}" for key, value in pairs)


def configure_logging(config: LogConfig) -> None:
    """Install the bridge's handlers on the root logger, replacing any present."""
    handlers: List[logging.Handler] = [
        RotatingFileHandler(config.log_file, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8")
    ]
    if config.stderr:
        handlers.append(logging.StreamHandler())
    formatter = EventFormatter(LINE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(TurnFilter())

    logging.basicConfig(level=config.level, handlers=handlers, force=True)
    for name, level in config.logger_levels.items():
        logging.getLogger(name).setLevel(level)
