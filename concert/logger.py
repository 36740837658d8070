import logging, json, sys, time, os

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class JsonFormatter(logging.Formatter):
    """One JSON object per line: ts (UTC), level, name, msg and exc when present."""

    converter = time.gmtime

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%SZ")

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def resolve_level(level=None) -> str:
    """Normalize a level name; unknown or empty names fall back to INFO."""
    name = str(level or os.getenv("CONCERT_LOG_LEVEL") or "INFO").upper()
    return name if name in LEVELS else "INFO"


def get_logger(name="concert", level=None, to_file=None):
    """Unified structured logger for all Concert components."""
    logger = logging.getLogger(name)
    logger.setLevel(resolve_level(level))

    if not logger.handlers:
        formatter = JsonFormatter()
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

        if to_file:
            os.makedirs(os.path.dirname(to_file) or ".", exist_ok=True)
            file_handler = logging.FileHandler(to_file)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


def set_level(level: str) -> None:
    """Re-level every concert.* logger already created."""
    level = resolve_level(level)
    for name, obj in logging.Logger.manager.loggerDict.items():
        if name == "concert" or name.startswith("concert."):
            if isinstance(obj, logging.Logger):
                obj.setLevel(level)
