"""Utility functions for the email triage pipeline."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from datetime import datetime, timezone
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, TypeVar

import structlog

if TYPE_CHECKING:
    from email_triage.config import Settings

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    """Serialize a datetime as ISO-8601 UTC text for storage."""

    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: Any) -> datetime | None:
    """Parse a stored timestamp back into an aware UTC datetime."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def configure_logging(settings: Settings) -> None:
    """Configure structlog filtering from the configured log level."""

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
    )


def retry_on_failure(
    max_retries: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[F], F]:
    """Decorator to retry a function on failure with exponential backoff.

    Works on plain functions and coroutine functions; coroutines sleep with
    `asyncio.sleep` so the event loop is never blocked.

    Args:
        max_retries: Maximum number of retry attempts.
        delay: Initial delay between retries in seconds.
        backoff: Multiplier for delay after each retry.
        exceptions: Exception types that trigger a retry. Others propagate immediately.

    Returns:
        Decorated function with retry logic.
    """

    def _log_failure(func: Callable[..., Any], attempt: int, current_delay: float, e: BaseException) -> None:
        if attempt < max_retries:
            logger.warning(
                "function_retry",
                function=func.__name__,
                attempt=attempt + 1,
                max_retries=max_retries,
                delay=current_delay,
                error=str(e),
            )
        else:
            logger.error(
                "function_retry_exhausted",
                function=func.__name__,
                attempts=max_retries + 1,
                error=str(e),
            )

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                current_delay = delay
                last_exception: BaseException | None = None

                for attempt in range(max_retries + 1):
                    try:
                        return await func(*args, **kwargs)
                    except exceptions as e:
                        last_exception = e
                        _log_failure(func, attempt, current_delay, e)
                        if attempt < max_retries:
                            await asyncio.sleep(current_delay)
                            current_delay *= backoff

                raise last_exception  # type: ignore[misc]

            return async_wrapper  # type: ignore[return-value]

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            current_delay = delay
            last_exception: BaseException | None = None

            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e
                    _log_failure(func, attempt, current_delay, e)
                    if attempt < max_retries:
                        time.sleep(current_delay)
                        current_delay *= backoff

            raise last_exception  # type: ignore[misc]

        return wrapper  # type: ignore[return-value]

    return decorator
