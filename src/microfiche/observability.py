"""Logging and operation metrics for Microfiche.

Every store load/save, search tier lookup and analytics recompute runs
inside ``timed_operation``, which tags it with a short correlation id,
logs start and end at DEBUG, and feeds the process-wide ``metrics``
collector. The collector is written to ``~/.microfiche/metrics.json``
when the command line exits.
"""
import functools
import inspect
import json
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

DEFAULT_LOG_DIR = Path.home() / ".microfiche" / "logs"
DEFAULT_METRICS_FILE = Path.home() / ".microfiche" / "metrics.json"
LOG_FILE_NAME = "microfiche.log"

# Module loggers (microfiche.storage.csv_adapter, ...) propagate to this one
ROOT_LOGGER_NAME = "microfiche"

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

# Arguments of traced functions worth echoing in the START line
TRACED_ARGUMENTS = ("query", "path", "category", "subcategory", "content")
TRACED_VALUE_WIDTH = 50

F = TypeVar('F', bound=Callable[..., Any])


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
    console: bool = True,
) -> Path:
    """Send the ``microfiche`` logger tree to a rotating log file.

    The MCP server speaks over stdout, so it passes ``console=False``;
    the shell also logs to stderr.

    Args:
        log_dir: Directory for ``microfiche.log``. Defaults to ~/.microfiche/logs/
        level: Level for the package logger and its handlers
        max_bytes: Size at which the log file is rotated
        backup_count: Number of rotated files to keep
        console: Also log to stderr

    Returns:
        The log directory in use
    """
    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    file_handler = RotatingFileHandler(
        log_path / LOG_FILE_NAME,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    package_logger.addHandler(file_handler)

    has_console = any(
        type(handler) is logging.StreamHandler for handler in package_logger.handlers
    )
    if console and not has_console:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    package_logger.info(f"Logging to {log_path / LOG_FILE_NAME}")
    return log_path


@dataclass
class OperationMetrics:
    """Running totals for one operation name."""
    count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float = float('inf')
    max_duration_ms: float = 0.0
    last_error: Optional[str] = None

    def add(self, duration_ms: float, success: bool, error: Optional[str]) -> None:
        self.count += 1
        self.total_duration_ms += duration_ms
        self.min_duration_ms = min(self.min_duration_ms, duration_ms)
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if success:
            self.success_count += 1
        else:
            self.error_count += 1
            self.last_error = error

    def summary(self) -> Dict[str, Any]:
        return {
            'count': self.count,
            'success_count': self.success_count,
            'error_count': self.error_count,
            'avg_duration_ms': round(self.total_duration_ms / self.count, 2) if self.count else 0,
            'min_duration_ms': round(self.min_duration_ms, 2) if self.count else 0,
            'max_duration_ms': round(self.max_duration_ms, 2),
            'last_error': self.last_error,
        }


class MetricsCollector:
    """Per-operation timing and failure counts for one process.

    Operation names are the ones passed to ``timed_operation``: ``load``,
    ``save``, ``search``, ``advanced_search``, ``analytics_recompute`` and
    the ``fiche_*`` MCP tools.
    """

    def __init__(self, metrics_file: Optional[Union[str, Path]] = None):
        self._metrics: Dict[str, OperationMetrics] = defaultdict(OperationMetrics)
        self._lock = Lock()
        self._start_time = datetime.now(timezone.utc)
        self.metrics_file = Path(metrics_file) if metrics_file else DEFAULT_METRICS_FILE

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ) -> None:
        """Add one timed run of ``operation`` to its totals."""
        with self._lock:
            self._metrics[operation].add(duration_ms, success, error)

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Snapshot of every operation's totals, keyed by operation name."""
        with self._lock:
            return {op: m.summary() for op, m in self._metrics.items()}

    def save_metrics(self) -> bool:
        """Write the snapshot to ``metrics_file`` through a temporary file.

        Returns:
            True if the file was written, False if it could not be.
        """
        data = {
            "start_time": self._start_time.isoformat(),
            "saved_at": datetime.now(timezone.utc).isoformat(),
            "operations": self.get_metrics(),
        }
        temp_file = self.metrics_file.with_suffix(".tmp")
        try:
            self.metrics_file.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            temp_file.replace(self.metrics_file)
        except (OSError, TypeError) as e:
            logger.error(f"Failed to save metrics to {self.metrics_file}: {e}")
            return False
        return True


metrics = MetricsCollector()


def _describe(values: Dict[str, Any]) -> str:
    return ', '.join(f'{k}={v}' for k, v in values.items())


@contextmanager
def timed_operation(operation: str, **context):
    """Time the enclosed block and record it under ``operation``.

    Args:
        operation: Metrics key, e.g. ``load`` or ``fiche_search``
        **context: Values echoed in the START log line

    Yields:
        A dict for result details (``result_count``, ``tier`` ...) that are
        echoed in the END log line. Setting ``op["success"] = False``, with
        an optional ``op["error"]``, records a failure that was handled
        without raising.

    Example:
        with timed_operation('load', path='notes.csv') as op:
            rows = adapter.read_rows(path)
            op['result_count'] = len(rows)
    """
    correlation_id = uuid.uuid4().hex[:8]
    op: Dict[str, Any] = {}
    logger.debug(f"[{correlation_id}] START {operation} ({_describe(context)})")

    error_msg = None
    success = True
    started = time.perf_counter()
    try:
        yield op
    except Exception as e:
        success = False
        error_msg = str(e)
        raise
    finally:
        if success and op.get("success") is False:
            success = False
            error_msg = op.get("error")
        duration_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, duration_ms, success, error_msg)

        status = 'OK' if success else f'ERROR: {error_msg}'
        details = _describe({k: v for k, v in op.items() if k not in ("success", "error")})
        logger.debug(
            f"[{correlation_id}] END {operation} "
            f"({duration_ms:.2f}ms) [{status}] {details}"
        )


def traced(operation_name: Optional[str] = None) -> Callable[[F], F]:
    """Run every call of the decorated function inside ``timed_operation``.

    Arguments named in ``TRACED_ARGUMENTS`` are echoed in the START line
    whether they were passed by position or keyword. Results with a length
    (lists, ``SearchResult``) are recorded as ``result_count``.

    Args:
        operation_name: Metrics key. Defaults to the function name.
    """
    def decorator(func: F) -> F:
        op_name = operation_name or func.__name__
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            bound = signature.bind_partial(*args, **kwargs).arguments
            context = {
                name: str(bound[name])[:TRACED_VALUE_WIDTH]
                for name in TRACED_ARGUMENTS
                if bound.get(name) is not None
            }
            with timed_operation(op_name, **context) as op:
                result = func(*args, **kwargs)
                if hasattr(result, '__len__'):
                    op['result_count'] = len(result)
                return result

        return wrapper  # type: ignore
    return decorator


class StructuredLogger:
    """Component logger that prefixes messages and appends key=value extras.

    ``get_logger("shell").debug("Command received", command="list")`` logs
    ``[shell] Command received | command=list`` on ``microfiche.shell``.
    """

    def __init__(self, component: str):
        self._logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")
        self._component = component

    def _format_message(self, msg: str, **extra) -> str:
        if extra:
            return f"[{self._component}] {msg} | {_describe(extra)}"
        return f"[{self._component}] {msg}"

    def debug(self, msg: str, **extra) -> None:
        self._logger.debug(self._format_message(msg, **extra))

    def info(self, msg: str, **extra) -> None:
        self._logger.info(self._format_message(msg, **extra))

    def warning(self, msg: str, **extra) -> None:
        self._logger.warning(self._format_message(msg, **extra))

    def error(self, msg: str, exc_info: bool = False, **extra) -> None:
        self._logger.error(self._format_message(msg, **extra), exc_info=exc_info)


def get_logger(component: str) -> StructuredLogger:
    """Structured logger for a component such as ``shell`` or ``mcp_server``."""
    return StructuredLogger(component)
