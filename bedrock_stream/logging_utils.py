"""
Centralized logging and error handling utilities for bedrock-stream.

This module provides decorators and helper functions to standardize logging
and error classification across the codebase.

Features:
- Structured logging with contextual information
- Error category detection for log events
- Performance timing for async operations
- Cancellation logged apart from failures
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog

from .llm.exceptions import (
    CancellationError,
    ConfigurationError,
    DecodeError,
    TransportError,
)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(colors=True),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Route structlog output through the stdlib root logger at `level`."""
    logging.basicConfig(level=level.upper(), format="%(message)s")
    logging.getLogger().setLevel(level.upper())


class BedrockErrorHandler:
    """Maps exceptions to stable categories for log events."""

    @staticmethod
    def classify_error(error: BaseException) -> str:
        """
        Classify an error into a logging category.

        Args:
            error: The exception to classify

        Returns:
            Category name
        """
        if isinstance(error, CancellationError | asyncio.CancelledError):
            return "cancelled"
        if isinstance(error, ConfigurationError):
            return "configuration_error"
        if isinstance(error, TransportError):
            return "transport_error"
        if isinstance(error, DecodeError):
            return "decode_error"
        if isinstance(error, TimeoutError | httpx.TimeoutException):
            return "timeout_error"
        if isinstance(error, ConnectionError | OSError | httpx.TransportError):
            return "connection_error"
        return "unknown_error"


def log_operation(
    operation: str,
    *,
    log_result: bool = False,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator for logging async operations with structured context.

    Args:
        operation: Description of the operation being performed
        log_result: Whether to log function result
        log_timing: Whether to log execution timing
        context: Additional context to include in logs

    Returns:
        Decorated function with logging
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            operation_logger = logger.bind(
                operation=operation,
                function=func.__name__,
                **(context or {}),
            )

            operation_logger.info("Operation started")

            start_time = time.perf_counter() if log_timing else None

            try:
                result = await func(*args, **kwargs)

                end_log_data: dict[str, Any] = {}
                if log_timing and start_time is not None:
                    duration = round((time.perf_counter() - start_time) * 1000, 2)
                    end_log_data["duration_ms"] = duration
                if log_result:
                    end_log_data["result"] = result

                operation_logger.info(
                    "Operation completed successfully", **end_log_data
                )
                return result

            except Exception as e:
                _log_failure(operation_logger, e, start_time)
                raise

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    log_timing: bool = True,
):
    """
    Async context manager for operation logging.

    Args:
        operation: Description of the operation
        context: Additional context for logging
        log_timing: Whether to log operation timing

    Yields:
        Bound logger for the operation
    """
    operation_logger = logger.bind(
        operation=operation,
        **(context or {}),
    )

    operation_logger.info("Operation started")
    start_time = time.perf_counter() if log_timing else None

    try:
        yield operation_logger

        log_data: dict[str, Any] = {}
        if log_timing and start_time is not None:
            log_data["duration_ms"] = _elapsed_ms(start_time)

        operation_logger.info("Operation completed successfully", **log_data)

    except (Exception, asyncio.CancelledError) as e:
        _log_failure(operation_logger, e, start_time)
        raise


def _elapsed_ms(start_time: float) -> float:
    return round((time.perf_counter() - start_time) * 1000, 2)


def _log_failure(
    operation_logger: Any, error: BaseException, start_time: float | None
) -> None:
    error_category = BedrockErrorHandler.classify_error(error)
    error_log_data: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_category": error_category,
        "error_message": str(error),
    }
    if start_time is not None:
        error_log_data["duration_ms"] = _elapsed_ms(start_time)

    if error_category == "cancelled":
        operation_logger.info("Operation cancelled", **error_log_data)
    else:
        operation_logger.error("Operation failed", **error_log_data)
