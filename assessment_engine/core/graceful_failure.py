"""
Graceful failure utilities.

Reusable context manager and decorator for non-critical operations that must
not block the main flow: event delivery, percentile lookup and metric
recording. The pattern is:
1. Attempt the operation
2. Log any exception with context
3. Continue without raising

Critical failures (invalid state, malformed blueprints, scoring errors) are
never wrapped in this helper; they propagate to the caller.

Usage:
    from assessment_engine.core.graceful_failure import graceful_failure

    with graceful_failure("publish scoring event", logger):
        publisher.publish(event)

    with graceful_failure("compute percentile", logger, context={"goal": goal}):
        percentile = population.percentile_for(goal, score)
"""

import logging
from contextlib import contextmanager
from functools import wraps
from typing import Any, Callable, Generator, Optional, TypeVar

from assessment_engine.observability import metrics


T = TypeVar("T")


@contextmanager
def graceful_failure(
    operation_name: str,
    logger: logging.Logger,
    *,
    log_level: int = logging.WARNING,
    exc_info: bool = False,
    context: Optional[dict[str, Any]] = None,
) -> Generator[None, None, None]:
    """Context manager for non-critical operations that should not block execution.

    Args:
        operation_name: Human-readable name of the operation for logging
            (e.g., "publish scoring event", "compute percentile").
        logger: The logger instance to use for logging errors.
        log_level: Logging level for error messages. Defaults to WARNING.
        exc_info: Whether to include exception traceback in log. Defaults to False.
        context: Optional dictionary of additional context to include in log message
            (e.g., {"session_id": "s-1", "goal": "OVERVIEW"}).

    Yields:
        None - the context manager is used for its side effects only.

    Example:
        >>> with graceful_failure("publish event", logger, context={"session_id": "s-1"}):
        ...     bus.publish(event)
    """
    try:
        yield
    except Exception as e:
        if context:
            context_str = ", ".join(f"{k}={v}" for k, v in context.items())
            message = f"Failed to {operation_name} ({context_str}): {e}"
        else:
            message = f"Failed to {operation_name}: {e}"

        logger.log(log_level, message, exc_info=exc_info)

        # record_error guards itself; a metrics failure is logged at DEBUG there
        metrics.record_error(error_type="GracefulFailure")


class GracefulFailureDecorator:
    """Decorator class for handling non-critical operations in functions.

    Returns ``default`` when the wrapped function raises.

    Usage:
        @graceful_failure_decorator("record simulation metrics")
        def record(result) -> None:
            ...

        @graceful_failure_decorator("look up norms", default={})
        def load_norms(goal) -> dict:
            ...
    """

    def __init__(
        self,
        operation_name: str,
        *,
        logger: Optional[logging.Logger] = None,
        log_level: int = logging.WARNING,
        exc_info: bool = False,
        default: Any = None,
    ):
        """Initialize the decorator.

        Args:
            operation_name: Human-readable name of the operation.
            logger: Logger to use. If None, uses the module's logger of the
                decorated function.
            log_level: Logging level for errors. Defaults to WARNING.
            exc_info: Whether to include stack trace. Defaults to False.
            default: Default value to return on failure. Defaults to None.
        """
        self.operation_name = operation_name
        self._logger = logger
        self.log_level = log_level
        self.exc_info = exc_info
        self.default = default

    def __call__(self, func: Callable[..., T]) -> Callable[..., Optional[T]]:
        """Decorate the function with graceful failure handling."""

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Optional[T]:
            logger = self._logger or logging.getLogger(func.__module__)

            with graceful_failure(
                self.operation_name,
                logger,
                log_level=self.log_level,
                exc_info=self.exc_info,
            ):
                return func(*args, **kwargs)

            # Reached only when the wrapped call raised
            return self.default

        return wrapper


graceful_failure_decorator = GracefulFailureDecorator
