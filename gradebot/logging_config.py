"""Structured logging configuration.

JSON formatter + TimedRotatingFileHandler for engine logs.
Per-event context travels on the record via ``extra={"event_id": ...}``;
the run_id is attached by a filter on the root handlers.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import os
import uuid
from pathlib import Path

LOG_DIR = Path(__file__).resolve().parent.parent / "data" / "logs"

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class JSONFormatter(logging.Formatter):
    """JSON structured log formatter with event_id / run_id support."""

    def format(self, record: logging.LogRecord) -> str:
        return json.dumps(
            {
                "ts": self.formatTime(record),
                "level": record.levelname,
                "logger": record.name,
                "msg": record.getMessage(),
                "event_id": getattr(record, "event_id", ""),
                "run_id": getattr(record, "run_id", ""),
            },
            ensure_ascii=False,
        )


class RunIdFilter(logging.Filter):
    """Stamp every record with the run_id of this process."""

    def __init__(self, run_id: str) -> None:
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        if not getattr(record, "run_id", ""):
            record.run_id = self.run_id
        return True


def setup_logging(
    structured: bool = False,
    log_dir: Path | str | None = None,
    level: int = logging.INFO,
) -> str:
    """Configure root logger. Returns the run_id for this process.

    Args:
        structured: If True, use JSON format. Controlled by STRUCTURED_LOGGING env var.
        log_dir: Override log directory. Defaults to data/logs/.
        level: Root log level.
    """
    run_id = uuid.uuid4().hex[:12]
    log_path = Path(log_dir) if log_dir else LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)

    # 既存ハンドラをクリア (重複防止)
    root.handlers.clear()
    run_filter = RunIdFilter(run_id)

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(_FORMAT))
    console.addFilter(run_filter)
    root.addHandler(console)

    # File handler (daily rotation, 30 days retention)
    use_structured = structured or os.environ.get("STRUCTURED_LOGGING", "").lower() in ("true", "1")
    file_handler = logging.handlers.TimedRotatingFileHandler(
        log_path / "gradebot.log",
        when="midnight",
        backupCount=30,
        encoding="utf-8",
    )
    if use_structured:
        file_handler.setFormatter(JSONFormatter())
    else:
        file_handler.setFormatter(logging.Formatter(_FORMAT))
    file_handler.addFilter(run_filter)
    root.addHandler(file_handler)

    return run_id
