"""
Logging configuration.

Two formats, selected by LOG_FORMAT:
- "text": plain lines through Flask's default handler (development)
- "json": one structured JSON object per line (ELK / CloudWatch friendly)

Service modules log through logging.getLogger(__name__); custom fields are
passed as extra={"extra_fields": {...}} and land under "custom" in JSON output.
"""

import json
import logging
import sys
import traceback
from datetime import datetime, timezone


class StructuredFormatter(logging.Formatter):
    """JSON structured logging formatter"""

    def __init__(self, service_name: str = "restops"):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "@timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "location": {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName,
                "module": record.module,
            },
        }

        if record.exc_info:
            log_obj["error"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "stacktrace": traceback.format_exception(*record.exc_info),
            }

        if hasattr(record, "extra_fields"):
            log_obj["custom"] = record.extra_fields

        return json.dumps(log_obj, default=str)


def configure_logging(app) -> None:
    """
    Setup logging for the application.

    The level applies to the app logger and the restops package logger, so
    service modules inherit it.
    """
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    package_logger = logging.getLogger("restops")
    package_logger.setLevel(level)
    app.logger.setLevel(level)

    if app.config.get("LOG_FORMAT", "text") == "json":
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter(service_name=app.name))
        app.logger.handlers = [handler]
        package_logger.handlers = [handler]
        package_logger.propagate = False

    # Keep SQL echo out of application logs
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
