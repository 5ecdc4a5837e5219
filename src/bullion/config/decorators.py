"""Logging decorators for engine, storage and service calls.

Every decorator re-raises whatever the wrapped call raises after logging it.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
import functools
import logging
import time
from typing import Any, ParamSpec, TypeVar

from .logger import get_logger

P = ParamSpec("P")
T = TypeVar("T")


@contextmanager
def _timed(logger: logging.Logger, failure: str) -> Iterator[Callable[[], float]]:
    """Yield a clock reading seconds since entry; log ``failure`` if the body raises."""
    start = time.perf_counter()

    def elapsed() -> float:
        return time.perf_counter() - start

    try:
        yield elapsed
    except Exception as e:
        logger.error(f"{failure} after {elapsed():.3f}s: {type(e).__name__}: {e}")
        raise


def _preview(args: tuple, kwargs: dict[str, Any], limit: int = 100) -> str:
    parts = [str(arg)[:limit] for arg in args]
    parts += [f"{key}={str(value)[:limit]}" for key, value in kwargs.items()]
    return ", ".join(parts)


def log_calls(
    logger_name: str | None = None,
    log_args: bool = True,
    log_result: bool = True,
    log_timing: bool = True,
    level: str = "DEBUG",
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Log entry and exit of a function.

    Args:
        logger_name: Logger to use, defaults to the function's module
        log_args: Include (truncated) arguments in the entry line
        log_result: Include the (truncated) return value in the exit line
        log_timing: Include the duration in the exit line
        level: Level of the entry and exit lines

    Example:
        @log_calls(log_result=False)
        def write_backup(ledger, path):
            ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        logger = get_logger(logger_name or func.__module__)
        levelno = logging.getLevelName(level.upper())

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            name = func.__qualname__
            shown = _preview(args, kwargs) if log_args else "..."
            logger.log(levelno, f"Calling {name}({shown})")

            with _timed(logger, f"{name} failed") as elapsed:
                result = func(*args, **kwargs)

            line = f"{name} done"
            if log_timing:
                line += f" in {elapsed():.3f}s"
            if log_result:
                line += f" -> {str(result)[:200]}"
            logger.log(levelno, line)
            return result

        return wrapper

    return decorator


def log_database_operations(
    operation_type: str = "DATABASE",
    log_results: bool = False,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Time a repository call and log it under its operation type.

    Args:
        operation_type: READ, UPDATE, DELETE...
        log_results: Also log how many rows came back

    Example:
        @log_database_operations("UPDATE")
        def upsert_many(self, rows):
            ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        logger = get_logger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            label = f"{operation_type} {func.__qualname__}"
            with _timed(logger, f"{label} failed") as elapsed:
                result = func(*args, **kwargs)

            rows = ""
            if log_results and hasattr(result, "__len__"):
                rows = f", {len(result)} rows"
            logger.debug(f"{label} ok ({elapsed():.3f}s{rows})")
            return result

        return wrapper

    return decorator


def log_dataframe_operations(
    log_memory: bool = True,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Log the shape (and optionally memory) of a pandas result.

    Example:
        @log_dataframe_operations()
        def customer_stats(self):
            ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        logger = get_logger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            name = func.__qualname__
            with _timed(logger, f"DataFrame {name} failed") as elapsed:
                result = func(*args, **kwargs)

            detail = f" shape={result.shape}" if hasattr(result, "shape") else ""
            if detail and log_memory and hasattr(result, "memory_usage"):
                usage = result.memory_usage(deep=True)
                total = usage.sum() if hasattr(usage, "sum") else usage
                detail += f" {total / 1024 / 1024:.2f}MB"
            logger.debug(f"DataFrame {name} ({elapsed():.3f}s){detail}")
            return result

        return wrapper

    return decorator


def log_performance(
    warn_threshold: float = 1.0,
    error_threshold: float = 5.0,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Escalate the log level of slow calls.

    Args:
        warn_threshold: Seconds from which the duration is logged as WARNING
        error_threshold: Seconds from which it is logged as ERROR

    Example:
        @log_performance(warn_threshold=0.5)
        def recompute(transactions):
            ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        logger = get_logger(func.__module__)

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            name = func.__qualname__
            with _timed(logger, f"{name} failed") as elapsed:
                result = func(*args, **kwargs)

            seconds = elapsed()
            if seconds >= error_threshold:
                logger.error(f"SLOW: {name} took {seconds:.3f}s")
            elif seconds >= warn_threshold:
                logger.warning(f"Slow: {name} took {seconds:.3f}s")
            else:
                logger.debug(f"{name} took {seconds:.3f}s")
            return result

        return wrapper

    return decorator


class LoggerMixin:
    """Gives instances a ``logger`` named after their class."""

    def __init__(self, *args, **kwargs):
        """Initialize the mixin and set up the logger."""
        super().__init__(*args, **kwargs)
        cls = type(self)
        self.logger = get_logger(f"{cls.__module__}.{cls.__name__}")


def _operator(args: tuple, kwargs: dict[str, Any]) -> str:
    if args and getattr(args[0], "operator", None):
        return str(args[0].operator)
    return str(kwargs.get("user_id", "UNKNOWN"))


def audit_log(
    action: str,
    audit_logger_name: str = "bullion.audit",
    include_user: bool = True,
    include_timestamp: bool = True,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Write an audit line for a history-altering operation.

    The operator is read from an ``operator`` attribute on the first
    positional argument (usually ``self``), else from a ``user_id`` keyword.

    Args:
        action: Name of the audited action
        audit_logger_name: Logger receiving the audit lines
        include_user: Add the operator
        include_timestamp: Add a UTC timestamp

    Example:
        @audit_log("DELETE_TRANSACTIONS")
        def delete_transactions(self, ids):
            ...
    """

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        audit_logger = get_logger(audit_logger_name)

        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            fields: dict[str, Any] = {"ACTION": action}
            if include_timestamp:
                fields["TIMESTAMP"] = datetime.now(tz=timezone.utc).isoformat()
            if include_user:
                fields["USER"] = _operator(args, kwargs)
            if args[1:]:
                fields["ARGS"] = args[1:]
            if kwargs:
                fields["KWARGS"] = kwargs
            entry = " | ".join(f"{key}={value}" for key, value in fields.items())

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                audit_logger.error(f"AUDIT FAILURE: {entry} | ERROR={e}")
                raise
            audit_logger.info(f"AUDIT SUCCESS: {entry}")
            return result

        return wrapper

    return decorator
