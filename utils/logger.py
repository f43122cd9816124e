"""Rotating file + console logging; ``extra={...}`` context is rendered after the message."""
import logging
import os
from logging.handlers import RotatingFileHandler

# Attributes every LogRecord carries; anything else on a record came in through ``extra``.
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class ContextFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = {k: v for k, v in vars(record).items() if k not in _RECORD_ATTRS and not k.startswith("_")}
        if not context:
            return line
        rendered = " ".join(f"{key}={value!r}" for key, value in sorted(context.items()))
        return f"{line} | {rendered}"


def init_logging(app) -> logging.Logger:
    log_dir = app.config.get("LOG_DIR") or os.path.join(app.instance_path, "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "aquaguard.log")
    level = getattr(logging, (app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO)

    formatter = ContextFormatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(module)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    handlers = [
        RotatingFileHandler(log_path, maxBytes=5_000_000, backupCount=5, encoding="utf-8"),
        logging.StreamHandler(),
    ]

    logger = logging.getLogger(app.name)
    logger.setLevel(level)
    # The factory runs once per test; close handlers left by a previous app.
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False

    logger.info("Logging initialized", extra={"log_path": log_path, "level": logging.getLevelName(level)})
    return logger
