import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from datetime import datetime

from .config import Settings

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _level(name: str | int, fallback: int = logging.INFO) -> int:
    if isinstance(name, int):
        return name
    return getattr(logging, str(name).upper(), fallback)


def _file_handler(log_cfg: dict, formatter: logging.Formatter) -> RotatingFileHandler:
    logs_dir = Path(log_cfg.get("dir", "logs"))
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_cfg["file"]
    target = logs_dir / log_file

    # keep the previous run's log under a timestamped name
    if target.exists():
        ts = datetime.now().strftime("%Y.%m.%d.%H.%M.%S")
        target.rename(logs_dir / f"{ts}-{log_file}")

    handler = RotatingFileHandler(
        target,
        maxBytes=log_cfg["file_max_bytes"],
        backupCount=log_cfg["file_backup_count"],
        encoding="utf-8",
    )
    handler.setFormatter(formatter)
    return handler


def setup_logging(settings: Settings) -> list[logging.Handler]:
    """Configure the root logger from the [logging] section.

    Replaces any handlers already attached to the root logger, so calling it
    twice (CLI re-entry, tests) does not duplicate output.
    """
    log_cfg = settings.section("logging")
    log_level = _level(log_cfg["level"])
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    handlers: list[logging.Handler] = []

    if log_cfg["console"]:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    if log_cfg.get("file"):
        handlers.append(_file_handler(log_cfg, formatter))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        root_logger.addHandler(handler)

    # chatty third-party loggers (httpx logs every request at INFO)
    for name, level in (log_cfg.get("loggers") or {}).items():
        logging.getLogger(name).setLevel(_level(level))

    logger.info(f"Logging configured: level={logging.getLevelName(log_level)}, handlers={len(handlers)}")
    return handlers
