"""Error handling utilities for image-pinner."""

from __future__ import annotations

import functools
import time
from typing import Any, Callable, TypeVar

from image_pinner.models.common import ErrorInfo

T = TypeVar("T")


class ExitCode:
    """Process exit codes, one per failure kind."""

    SUCCESS = 0
    FAILURE = 1
    CHANGED = 2
    MALFORMED_REFERENCE = 3
    REGISTRY_PERMANENT = 4
    REGISTRY_TRANSIENT = 5
    NOT_FOUND_IN_RESOURCE = 6
    CONFLICT_EXHAUSTED = 7
    STORE_ERROR = 8
    DEADLINE_EXCEEDED = 9
    CONFIG_ERROR = 10


class PinError(Exception):
    """Base exception for image-pinner."""

    phase = "pin"
    exit_code = ExitCode.FAILURE

    def __init__(self, message: str, code: str = "UNKNOWN_ERROR", details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_error_info(self) -> ErrorInfo:
        """Convert to ErrorInfo model."""
        return ErrorInfo(
            code=self.code,
            message=self.message,
            phase=self.phase,
            exit_code=self.exit_code,
            details=self.details,
        )


class MalformedReferenceError(PinError):
    """Image reference could not be parsed."""

    phase = "parse"
    exit_code = ExitCode.MALFORMED_REFERENCE

    def __init__(self, reference: str, reason: str):
        super().__init__(
            f"Malformed image reference {reference!r}: {reason}",
            code="MALFORMED_REFERENCE",
            details={"reference": reference, "reason": reason},
        )
        self.reference = reference
        self.reason = reason


class NotFoundInResourceError(PinError):
    """No container in the workload uses the requested image."""

    phase = "reconcile"
    exit_code = ExitCode.NOT_FOUND_IN_RESOURCE

    def __init__(self, image: str, workload: str):
        super().__init__(
            f"No container using image {image} found in {workload}",
            code="NOT_FOUND_IN_RESOURCE",
            details={"image": image, "workload": workload},
        )


class ConflictExhaustedError(PinError):
    """Every attempt lost the race against a concurrent writer."""

    phase = "reconcile"
    exit_code = ExitCode.CONFLICT_EXHAUSTED

    def __init__(self, workload: str, attempts: int):
        super().__init__(
            f"Gave up updating {workload} after {attempts} conflicting attempts; re-run to try again",
            code="CONFLICT_EXHAUSTED",
            details={"workload": workload, "attempts": attempts},
        )
        self.attempts = attempts


class DeadlineExceededError(PinError):
    """Operation ran past its deadline."""

    exit_code = ExitCode.DEADLINE_EXCEEDED

    def __init__(self, message: str = "Operation timed out", timeout: float | None = None, phase: str = "reconcile"):
        details = {"timeout": timeout} if timeout else {}
        super().__init__(message, code="DEADLINE_EXCEEDED", details=details)
        self.phase = phase


class ConfigurationError(PinError):
    """Configuration error."""

    phase = "config"
    exit_code = ExitCode.CONFIG_ERROR

    def __init__(self, message: str, config_key: str | None = None):
        details = {"config_key": config_key} if config_key else {}
        super().__init__(message, code="CONFIG_ERROR", details=details)


def retry(
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    exceptions: tuple[type[Exception], ...] = (Exception,),
    retry_if: Callable[[Exception], bool] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator to retry a function on failure.

    Args:
        max_attempts: Maximum number of attempts
        delay: Initial delay between retries in seconds
        backoff: Multiplier for delay after each retry
        exceptions: Tuple of exceptions to catch and retry
        retry_if: Optional predicate; exceptions it rejects are raised at once
        sleep: Function used to wait between attempts

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            last_exception: Exception | None = None
            current_delay = delay

            for attempt in range(max_attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if retry_if is not None and not retry_if(e):
                        raise
                    last_exception = e
                    if attempt < max_attempts - 1:
                        sleep(current_delay)
                        current_delay *= backoff

            if last_exception:
                raise last_exception
            raise RuntimeError("Retry failed without exception")

        return wrapper

    return decorator


def safe_get(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Safely get a nested value from a dictionary.

    Args:
        data: Dictionary to get value from
        *keys: Keys to traverse
        default: Default value if key not found

    Returns:
        Value at the nested key path, or default
    """
    current = data
    for key in keys:
        if isinstance(current, dict):
            current = current.get(key)
            if current is None:
                return default
        else:
            return default
    return current
