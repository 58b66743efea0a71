import asyncio
import logging
import logging.handlers
import weakref
from pathlib import Path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"
LOG_FILE_NAME = "firstlybot.log"
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 5

logger = logging.getLogger("firstlybot")

_guarded_loops: "weakref.WeakSet[asyncio.AbstractEventLoop]" = weakref.WeakSet()


def configure_logging(level_name: str = "INFO", log_dir: Path | str = "logs") -> logging.Logger:
    """Send every record to stdout and to a rotating file under ``log_dir``.

    Replaces whatever handlers the root logger already had, so calling this
    twice (once with defaults, once with the loaded config) is safe.
    """
    level = logging.getLevelName((level_name or "INFO").upper())
    if not isinstance(level, int):
        level = logging.INFO
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)
    handlers = [
        logging.StreamHandler(),
        logging.handlers.RotatingFileHandler(
            log_dir / LOG_FILE_NAME,
            maxBytes=LOG_MAX_BYTES,
            backupCount=LOG_BACKUPS,
            encoding="utf-8",
        ),
    ]
    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    root.setLevel(level)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    logger.info("logging_configured level=%s log_dir=%s", logging.getLevelName(level), log_dir)
    return logger


def guard_event_loop(loop: asyncio.AbstractEventLoop) -> bool:
    """Log exceptions from orphaned tasks and callbacks before the loop's own handler runs.

    Returns False when the loop was already guarded.
    """
    if loop in _guarded_loops:
        return False
    previous = loop.get_exception_handler()

    def handle(active_loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        logger.error(
            "loop_exception message=%s task=%r",
            context.get("message", "unhandled loop exception"),
            context.get("task") or context.get("future"),
            exc_info=exc,
        )
        if previous is not None:
            previous(active_loop, context)
        else:
            active_loop.default_exception_handler(context)

    loop.set_exception_handler(handle)
    _guarded_loops.add(loop)
    logger.info("loop_exception_handler_registered")
    return True
