"""Timing and retry decorators for maintenance runs and object store calls."""
import functools
import logging
import time
from typing import Any, Callable, Optional, Tuple, Type, TypeVar, cast

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def log_execution_time(func: F) -> F:
    """Log how long a maintenance run took, with its status when it reports one.

    Failures are logged with the elapsed time and re-raised unchanged.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(f"{func.__name__} failed after {time.perf_counter() - started:.2f}s: {e}")
            raise
        status = getattr(result, "status", None)
        suffix = f" ({status})" if status else ""
        logger.info(f"{func.__name__} finished in {time.perf_counter() - started:.2f}s{suffix}")
        return result
    return cast(F, wrapper)


def retry(
    max_attempts: int = 3,
    delay: float = 0.2,
    backoff: float = 2.0,
    exceptions: Tuple[Type[BaseException], ...] = (Exception,),
    logger_name: Optional[str] = None,
):
    """Retry transient failures with exponential backoff.

    Only ``exceptions`` are retried; the last one propagates once
    ``max_attempts`` calls have failed.
    """
    retry_logger = logging.getLogger(logger_name) if logger_name else logger

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            wait = delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_attempts:
                        retry_logger.error(f"{func.__name__} gave up after {attempt} attempts: {e}")
                        raise
                    retry_logger.warning(
                        f"{func.__name__} attempt {attempt}/{max_attempts} failed ({e}), retrying in {wait:.2f}s"
                    )
                    time.sleep(wait)
                    wait *= backoff
        return cast(F, wrapper)

    return decorator
