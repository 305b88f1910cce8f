"""JSONL log file for the importmap CLI.

Modules log with a "[importmap:<stage>]" prefix (match, target, fetch,
resolve, load, plugin, cli). The sink lifts the stage into the record's
"event" field and drops it from the message, so one stage of a build can be
pulled out of the log:

    jq 'select(.event == "fetch") | .message' importmap.log.jsonl
"""

import json
import logging
import os
import re
from datetime import UTC
from datetime import datetime
from pathlib import Path
from typing import Any

DEFAULT_PATH = os.environ.get("IMPORTMAP_LOG_PATH", "./importmap.log.jsonl")
DEFAULT_LEVEL = os.environ.get("IMPORTMAP_LOG_LEVEL", "INFO").upper()

STAGE_PREFIX = re.compile(r"^\[importmap:(?P<stage>[\w-]+)\]\s*")

# Everything a bare LogRecord carries; anything else arrived through extra=
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))) | {"message"}


def split_stage(message: str) -> tuple[str | None, str]:
    """Split "[importmap:fetch] GET https://x" into ("fetch", "GET https://x")."""
    match = STAGE_PREFIX.match(message)
    if match is None:
        return None, message
    return match.group("stage"), message[match.end() :]


def record_to_dict(record: logging.LogRecord) -> dict[str, Any]:
    """One log line: timestamp, level, logger, event, message and extras.

    An explicit extra={"event": ...} wins over the stage prefix. A dict
    passed as the message is merged into the line.
    """
    stage, message = split_stage(record.getMessage())
    line: dict[str, Any] = {
        "ts": datetime.fromtimestamp(record.created, UTC).isoformat(timespec="milliseconds"),
        "lvl": record.levelname,
        "logger": record.name,
        "event": getattr(record, "event", None) or stage,
        "message": message,
    }
    if isinstance(record.msg, dict):
        line.update(record.msg)
    line.update({k: v for k, v in vars(record).items() if k not in _STANDARD_ATTRS and k not in line})
    if record.exc_info:
        line["exc"] = logging.Formatter().formatException(record.exc_info)
    return line


class JsonlHandler(logging.Handler):
    """Appends one JSON object per record to a file."""

    def __init__(self, path: str):
        super().__init__()
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = json.dumps(record_to_dict(record), ensure_ascii=False, default=str)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        except Exception:
            self.handleError(record)


def init_json_logging(path: str | None = None, level: str | None = None) -> JsonlHandler:
    """Attach the JSONL sink to the root logger, replacing an earlier one."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, (level or DEFAULT_LEVEL).upper(), logging.INFO))
    for existing in [h for h in root.handlers if isinstance(h, JsonlHandler)]:
        root.removeHandler(existing)
        existing.close()
    handler = JsonlHandler(path or DEFAULT_PATH)
    root.addHandler(handler)
    return handler
