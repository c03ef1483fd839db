"""Logging setup and per-operation timings for avisos.

``configure_logging`` attaches a rotating log file to the ``avisos`` logger,
so every module logger underneath it ends up in ``avisos.log``. Store
operations wrapped in ``timed_operation`` (or decorated with ``traced``)
are counted in the process-wide ``metrics`` collector.
"""
import functools
import logging
import time
import uuid
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from threading import Lock
from typing import Any, Callable, Dict, Optional, TypeVar, Union

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = Path.home() / ".avisos" / "logs"
LOG_FILE_NAME = "avisos.log"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

F = TypeVar('F', bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Send ``avisos.*`` records to a rotating file (and optionally stderr).

    Calling it again only updates the level; handlers are never duplicated.

    Returns:
        The directory holding ``avisos.log``.
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    avisos_logger = logging.getLogger("avisos")
    avisos_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    handlers = avisos_logger.handlers

    if not any(isinstance(h, RotatingFileHandler) for h in handlers):
        file_handler = RotatingFileHandler(
            log_path / LOG_FILE_NAME,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        avisos_logger.addHandler(file_handler)

    has_console = any(
        type(h) is logging.StreamHandler for h in handlers
    )
    if console and not has_console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        avisos_logger.addHandler(console_handler)

    for handler in avisos_logger.handlers:
        handler.setLevel(level)

    avisos_logger.info(f"Logging to {log_path / LOG_FILE_NAME}")
    return log_path


@dataclass
class OperationStats:
    """Running totals for one operation name."""
    count: int = 0
    failures: int = 0
    total_ms: float = 0.0
    slowest_ms: float = 0.0
    last_error: Optional[str] = None


class MetricsCollector:
    """Thread-safe counters keyed by operation (save_note, purge_expired, ...)."""

    def __init__(self):
        self._stats: Dict[str, OperationStats] = defaultdict(OperationStats)
        self._lock = Lock()
        self._started = datetime.now(timezone.utc)

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        with self._lock:
            stats = self._stats[operation]
            stats.count += 1
            stats.total_ms += duration_ms
            stats.slowest_ms = max(stats.slowest_ms, duration_ms)
            if not success:
                stats.failures += 1
                stats.last_error = error

    def get_operation(self, operation: str) -> Optional[Dict[str, Any]]:
        """Totals for ``operation``, or None if it never ran."""
        with self._lock:
            if operation not in self._stats:
                return None
            stats = self._stats[operation]
            return {
                'count': stats.count,
                'failures': stats.failures,
                'avg_ms': round(stats.total_ms / stats.count, 2),
                'slowest_ms': round(stats.slowest_ms, 2),
                'last_error': stats.last_error,
            }

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'uptime_seconds': (
                    datetime.now(timezone.utc) - self._started
                ).total_seconds(),
                'total_operations': sum(s.count for s in self._stats.values()),
                'total_errors': sum(s.failures for s in self._stats.values()),
                'operations_tracked': sorted(self._stats),
            }


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context):
    """Time a block, log START/END at debug level and record the outcome.

    Yields a dict the block can fill with result details; they are appended
    to the END line. ``correlation_id`` ties the two lines together.
    """
    correlation_id = uuid.uuid4().hex[:8]
    started = time.perf_counter()
    info: Dict[str, Any] = {'correlation_id': correlation_id}

    params = ', '.join(f'{k}={v}' for k, v in context.items())
    logger.debug(f"[{correlation_id}] START {operation} ({params})")

    error = None
    try:
        yield info
    except Exception as e:
        error = str(e)
        raise
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, elapsed_ms, error is None, error)
        details = ', '.join(
            f'{k}={v}' for k, v in info.items() if k != 'correlation_id'
        )
        status = 'OK' if error is None else f'ERROR: {error}'
        logger.debug(
            f"[{correlation_id}] END {operation} "
            f"({elapsed_ms:.2f}ms) [{status}] {details}"
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Run the decorated function inside ``timed_operation``."""
    def decorator(func: F) -> F:
        name = operation_name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with timed_operation(name) as op:
                result = func(*args, **kwargs)
                if isinstance(result, (list, tuple)):
                    op['result_count'] = len(result)
                return result

        return wrapper  # type: ignore
    return decorator
