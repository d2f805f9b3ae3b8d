import logging
import os
import sys
from contextvars import ContextVar
from logging.handlers import TimedRotatingFileHandler

from pythonjsonlogger.json import JsonFormatter

from rsvp.core.config import Settings, settings as default_settings

CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s [%(request_id)s]: %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(name)s %(request_id)s %(message)s"

# Set per request by RequestLoggerMiddleware
request_id_var: ContextVar[str] = ContextVar("request_id", default="-")


class RequestIdFilter(logging.Filter):
    """Stamps the current request id on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get()
        return True


def setup_logging(app_settings: Settings | None = None) -> None:
    app_settings = app_settings or default_settings

    level_name = app_settings.log_level.upper()
    level = getattr(logging, level_name, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear existing handlers to avoid duplication
    root_logger.handlers = []

    if app_settings.log_format.lower() == "json":
        formatter = JsonFormatter(JSON_FORMAT, json_ensure_ascii=False)
    else:
        formatter = logging.Formatter(CONSOLE_FORMAT)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    root_logger.addHandler(handler)

    # Daily log files, rolled over at midnight
    if app_settings.log_dir:
        os.makedirs(app_settings.log_dir, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            os.path.join(app_settings.log_dir, "server.log"),
            when="midnight",
            backupCount=30,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        file_handler.addFilter(RequestIdFilter())
        root_logger.addHandler(file_handler)

    # Adjust external loggers
    logging.getLogger("uvicorn").setLevel(level)
    logging.getLogger("uvicorn.error").setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(level)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
