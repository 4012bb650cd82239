"""Standardized Error Handling Utilities

Provides the avmetrics exception hierarchy and consistent error handling
patterns so that the first fatal error of a run carries enough context
(metric, frame index, mismatching attribute) to diagnose it directly.
"""

from __future__ import annotations

import logging
import traceback
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from typing import Any


class ErrorLevel(Enum):
    """Error severity levels for consistent logging."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AvMetricsError(Exception):
    """Base exception class for all avmetrics errors."""

    def __init__(
        self, message: str, cause: Exception | None = None, context: dict | None = None
    ):
        super().__init__(message)
        self.cause = cause
        self.context = context or {}

    def __str__(self) -> str:
        base_msg = super().__str__()
        if self.cause:
            return f"{base_msg} (caused by: {self.cause})"
        return base_msg


class ValidationError(AvMetricsError):
    """Raised when input validation fails."""

    pass


class FormatMismatch(ValidationError):
    """Reference and distorted frames use incompatible formats.

    Covers bit depth, colour family, chroma subsampling and plane count.
    """

    def __init__(
        self,
        attribute: str,
        reference: Any,
        distorted: Any,
        context: dict | None = None,
    ):
        self.attribute = attribute
        self.reference = reference
        self.distorted = distorted
        error_context = {"attribute": attribute, "reference": reference, "distorted": distorted}
        error_context.update(context or {})
        super().__init__(
            f"Input videos must have matching formats: {attribute} differs "
            f"(reference={reference}, distorted={distorted})",
            context=error_context,
        )


class DimensionMismatch(ValidationError):
    """Reference and distorted planes have different resolutions."""

    def __init__(
        self,
        plane: str,
        reference: tuple[int, int],
        distorted: tuple[int, int],
        context: dict | None = None,
    ):
        self.attribute = f"{plane} plane dimensions"
        self.plane = plane
        self.reference = reference
        self.distorted = distorted
        error_context = {"plane": plane, "reference": reference, "distorted": distorted}
        error_context.update(context or {})
        super().__init__(
            f"Video resolution does not match on plane {plane}: "
            f"reference={reference[0]}x{reference[1]}, "
            f"distorted={distorted[0]}x{distorted[1]}",
            context=error_context,
        )


class FrameCountMismatch(ValidationError):
    """The two sources report (or deliver) different numbers of frames."""

    pass


class UnsupportedInput(ValidationError):
    """Input can be read but is not supported by the requested metric."""

    pass


class DecodeError(AvMetricsError):
    """Raised by frame sources when a frame cannot be decoded."""

    pass


class ConfigurationError(AvMetricsError, ValueError):
    """Raised when configuration is invalid or missing."""

    pass


class MetricsError(AvMetricsError):
    """Raised when a metric kernel fails on a frame pair."""

    def __init__(
        self,
        message: str,
        metric: str | None = None,
        frame_index: int | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.metric = metric
        self.frame_index = frame_index
        error_context = dict(context or {})
        if metric is not None:
            error_context["metric"] = metric
        if frame_index is not None:
            error_context["frame_index"] = frame_index
        super().__init__(message, cause=cause, context=error_context)


def handle_error(
    error: Exception,
    operation: str,
    error_type: type[AvMetricsError] = MetricsError,
    level: ErrorLevel = ErrorLevel.ERROR,
    context: dict | None = None,
    logger: logging.Logger | None = None,
    reraise: bool = True,
) -> AvMetricsError | None:
    """Standardized error handling with consistent logging and error transformation.

    Args:
        error: Original exception that occurred
        operation: Description of operation that failed
        error_type: Type of AvMetricsError to raise
        level: Logging level for the error
        context: Additional context information
        logger: Logger to use (defaults to module logger)
        reraise: Whether to reraise the transformed exception

    Returns:
        The transformed error if reraise=False, otherwise None

    Raises:
        AvMetricsError: Transformed error if reraise=True
    """
    if logger is None:
        logger = logging.getLogger(__name__)

    message = f"Failed to {operation}: {error}"

    error_context = dict(context or {})
    error_context.update(
        {
            "operation": operation,
            "original_error_type": type(error).__name__,
        }
    )

    if error_type is MetricsError:
        transformed_error: AvMetricsError = MetricsError(
            message,
            metric=error_context.get("metric"),
            frame_index=error_context.get("frame_index"),
            cause=error,
            context=error_context,
        )
    else:
        transformed_error = error_type(message, cause=error, context=error_context)

    context_str = ", ".join(f"{k}={v}" for k, v in error_context.items())
    log_func = getattr(logger, level.value)
    log_func(f"{operation.capitalize()} failed: {error} (context: {context_str})")

    if level in [ErrorLevel.ERROR, ErrorLevel.CRITICAL]:
        logger.debug(f"Traceback for {operation}: {traceback.format_exc()}")

    if reraise:
        raise transformed_error from error
    return transformed_error


@contextmanager
def error_context(
    operation: str,
    error_type: type[AvMetricsError] = MetricsError,
    level: ErrorLevel = ErrorLevel.ERROR,
    context: dict | None = None,
    logger: logging.Logger | None = None,
) -> Iterator[None]:
    """Context manager for standardized error handling.

    Usage:
        with error_context("compute ssim", MetricsError, context={"frame_index": 3}):
            risky_operation()

    avmetrics errors pass through unchanged; anything else is wrapped in
    ``error_type`` with the supplied context.
    """
    try:
        yield
    except AvMetricsError:
        raise
    except Exception as e:
        handle_error(e, operation, error_type, level, context, logger, reraise=True)


def log_warning_with_context(
    message: str, context: dict | None = None, logger: logging.Logger | None = None
) -> None:
    """Log a warning with standardized context formatting."""
    if logger is None:
        logger = logging.getLogger(__name__)

    warning_msg = message
    if context:
        context_str = ", ".join(f"{k}={v}" for k, v in context.items())
        warning_msg += f" (context: {context_str})"

    logger.warning(warning_msg)


def describe_error(error: BaseException) -> str:
    """Render an error and its context on one line for user-facing reports."""
    text = " ".join(str(error).split())
    context = getattr(error, "context", None)
    if context:
        extra = ", ".join(
            f"{k}={v}" for k, v in context.items() if k not in ("original_error_type",)
        )
        if extra and extra not in text:
            text = f"{text} [{extra}]"
    return text
