"""
Logging setup for the workbench.

Production writes one JSON object per line; development writes a short
coloured line with the module / step / document ids appended, so a
generation run can be followed without switching to JSON.

Environment:
    LOG_LEVEL   DEBUG | INFO | ... (default DEBUG in dev, INFO in prod)
    LOG_FORMAT  json | readable    (default follows the environment)
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

SERVICE_NAME = "ventureplan"

# ``extra=`` keys copied into JSON log lines
EXTRA_FIELDS = (
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
    "request_id",
    "actor",
    "project_id",
    "module_id",
    "module_type",
    "step_id",
    "document_id",
    "version",
    "error_kind",
    "event_type",
)

# short tags shown by ReadableFormatter
CONTEXT_TAGS = (
    ("module_type", "type"),
    ("module_id", "module"),
    ("step_id", "step"),
    ("document_id", "doc"),
)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, workbench ids at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = self.formatException(record.exc_info)
        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                log_entry[key] = val
        return json.dumps(log_entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """Development formatter: level colour, message, then [type=… step=…] tags."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, use_color=True):
        super().__init__()
        self.use_color = use_color

    @staticmethod
    def context_tags(record) -> str:
        tags = [
            f"{label}={getattr(record, key)}"
            for key, label in CONTEXT_TAGS
            if getattr(record, key, None) is not None
        ]
        return f" [{' '.join(tags)}]" if tags else ""

    def format(self, record: logging.LogRecord) -> str:
        color, reset = (self.COLORS.get(record.levelname, ""), self.RESET) if self.use_color else ("", "")
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        duration = getattr(record, "duration_ms", None)
        dur_str = f" [{duration:.0f}ms]" if duration is not None else ""
        base = (
            f"{color}{ts} {record.levelname:<8}{reset} {record.name}: "
            f"{record.getMessage()}{self.context_tags(record)}{dur_str}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            base += "\n" + self.formatException(record.exc_info)
        return base


def build_formatter(is_prod: bool) -> logging.Formatter:
    """LOG_FORMAT wins; otherwise JSON in production, readable elsewhere."""
    fmt = os.getenv("LOG_FORMAT", "").strip().lower()
    if fmt == "json" or (not fmt and is_prod):
        return JSONFormatter()
    return ReadableFormatter(use_color=sys.stderr.isatty())


def configure_logging(app):
    """
    Install a single stderr handler on the root logger for the Flask app.

    Reads LOG_LEVEL from env (default: DEBUG in dev, INFO in prod).
    Document rendering libraries are held at WARNING.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing

    level_name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")
    level = getattr(logging, level_name.upper(), logging.INFO)

    formatter = build_formatter(is_prod)

    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(level)
    root.addHandler(handler)
    root.setLevel(level)

    for noisy in ("urllib3", "werkzeug", "sqlalchemy.engine", "weasyprint", "fontTools", "markdown"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, type(formatter).__name__)
