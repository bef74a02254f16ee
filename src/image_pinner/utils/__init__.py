"""Utility functions for image-pinner."""

from image_pinner.utils.logging import configure_logging, get_logger, get_logger_with_context
from image_pinner.utils.errors import (
    ExitCode,
    PinError,
    MalformedReferenceError,
    NotFoundInResourceError,
    ConflictExhaustedError,
    DeadlineExceededError,
    ConfigurationError,
    retry,
    safe_get,
)
from image_pinner.utils.config import (
    PinnerConfig,
    KubernetesConfig,
    RegistryConfig,
    RetryPolicy,
    OutputConfig,
    load_config,
)

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "get_logger_with_context",
    # Errors
    "ExitCode",
    "PinError",
    "MalformedReferenceError",
    "NotFoundInResourceError",
    "ConflictExhaustedError",
    "DeadlineExceededError",
    "ConfigurationError",
    "retry",
    "safe_get",
    # Config
    "PinnerConfig",
    "KubernetesConfig",
    "RegistryConfig",
    "RetryPolicy",
    "OutputConfig",
    "load_config",
]
