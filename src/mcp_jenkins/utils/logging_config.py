"""Logging setup and perf timing for Butlercraft.

Two log files live side by side:
- butlercraft.log: every ``butlercraft.*`` and ``mcp_jenkins.*`` record
- butlercraft-perf.log: one line per CLI round-trip, probe, or pass

Environment Variables:
    BUTLERCRAFT_LOG_LEVEL: Console level (default: INFO)
    BUTLERCRAFT_LOG_FILE: Main log path (default: ~/.butlercraft/butlercraft.log)
    BUTLERCRAFT_LOG_MAX_SIZE: Rotation size in MB (default: 10)
    BUTLERCRAFT_LOG_BACKUPS: Rotated files kept (default: 5)
"""
import functools
import logging
import os
import time
from contextlib import asynccontextmanager, contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

perf_logger = logging.getLogger("butlercraft.perf")
main_logger = logging.getLogger("butlercraft")

PACKAGE_LOGGERS = ("butlercraft", "mcp_jenkins")

LOG_FORMAT = "%(asctime)s.%(msecs)03d | %(name)-25s | %(levelname)-7s | %(message)s"
PERF_FORMAT = "%(asctime)s.%(msecs)03d | PERF | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _rotating(path: Path, formatter: logging.Formatter) -> RotatingFileHandler:
    max_mb = int(os.environ.get("BUTLERCRAFT_LOG_MAX_SIZE", "10"))
    handler = RotatingFileHandler(
        path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=int(os.environ.get("BUTLERCRAFT_LOG_BACKUPS", "5")),
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(formatter)
    return handler


def setup_logging(console: bool = True) -> None:
    """Attach console and rotating file handlers to the package loggers.

    Args:
        console: Attach a stderr handler at BUTLERCRAFT_LOG_LEVEL
    """
    level_name = os.environ.get("BUTLERCRAFT_LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    log_file = Path(os.environ.get(
        "BUTLERCRAFT_LOG_FILE", str(Path.home() / ".butlercraft" / "butlercraft.log")
    )).expanduser()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    handlers: list[logging.Handler] = [_rotating(log_file, formatter)]
    if console:
        stream = logging.StreamHandler()
        stream.setLevel(level)
        stream.setFormatter(formatter)
        handlers.append(stream)

    for name in PACKAGE_LOGGERS:
        logger = logging.getLogger(name)
        logger.setLevel(logging.DEBUG)
        for handler in handlers:
            logger.addHandler(handler)

    perf_file = log_file.parent / "butlercraft-perf.log"
    perf_logger.setLevel(logging.DEBUG)
    perf_logger.addHandler(_rotating(perf_file, logging.Formatter(PERF_FORMAT, datefmt=DATE_FORMAT)))
    perf_logger.propagate = False

    main_logger.info(f"Logging initialized: level={logging.getLevelName(level)}, file={log_file}")


def _report(operation: str, target: Optional[str], start: float, error: Optional[BaseException], extra: dict) -> None:
    elapsed = (time.perf_counter() - start) * 1000
    status = "OK" if error is None else f"FAIL: {error!r}"
    line = f"{operation:20s} | {target or 'N/A':30s} | {elapsed:8.2f}ms | {status}"
    if extra:
        line += " | " + " | ".join(f"{k}={v}" for k, v in extra.items())
    if error is None:
        perf_logger.info(line)
    else:
        perf_logger.warning(line)


def timed(operation: str):
    """Time an async method; the target is taken from ``self.target``."""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs) -> Any:
            target = str(getattr(self, "target", "")) or None
            start = time.perf_counter()
            try:
                result = await func(self, *args, **kwargs)
            except BaseException as e:
                _report(operation, target, start, e, {})
                raise
            _report(operation, target, start, None, {})
            return result
        return wrapper
    return decorator


@asynccontextmanager
async def timed_section(operation: str, target: Optional[str] = None, **extra):
    """Time an async block, e.g. one reconcile pass.

    Cancellation is recorded as a failure before it propagates.
    """
    start = time.perf_counter()
    try:
        yield
    except BaseException as e:
        _report(operation, target, start, e, extra)
        raise
    _report(operation, target, start, None, extra)


@contextmanager
def timed_section_sync(operation: str, target: Optional[str] = None, **extra) -> Iterator[None]:
    """Time a blocking block, e.g. loading the manifest."""
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        _report(operation, target, start, e, extra)
        raise
    _report(operation, target, start, None, extra)
