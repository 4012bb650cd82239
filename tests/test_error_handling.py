"""Tests for avmetrics.error_handling module."""

import logging

import pytest

from avmetrics.error_handling import (
    AvMetricsError,
    DecodeError,
    DimensionMismatch,
    ErrorLevel,
    FormatMismatch,
    FrameCountMismatch,
    MetricsError,
    UnsupportedInput,
    ValidationError,
    describe_error,
    error_context,
    handle_error,
    log_warning_with_context,
)


class TestExceptionHierarchy:
    """Tests for the exception types."""

    def test_validation_errors(self):
        for error_type in (FormatMismatch, DimensionMismatch, FrameCountMismatch, UnsupportedInput):
            assert issubclass(error_type, ValidationError)
            assert issubclass(error_type, AvMetricsError)
        assert not issubclass(DecodeError, ValidationError)

    def test_cause_in_message(self):
        error = DecodeError("Bad frame", cause=OSError("disk"))
        assert str(error) == "Bad frame (caused by: disk)"

    def test_format_mismatch_fields(self):
        error = FormatMismatch("bit depth", 8, 10)
        assert error.attribute == "bit depth"
        assert error.context == {"attribute": "bit depth", "reference": 8, "distorted": 10}
        assert "reference=8, distorted=10" in str(error)

    def test_dimension_mismatch_fields(self):
        error = DimensionMismatch("u", (960, 540), (1920, 1080))
        assert error.attribute == "u plane dimensions"
        assert "960x540" in str(error)
        assert "1920x1080" in str(error)

    def test_metrics_error_context(self):
        error = MetricsError("boom", metric="ssim", frame_index=3)
        assert error.context == {"metric": "ssim", "frame_index": 3}


class TestHandleError:
    """Tests for handle_error and error_context."""

    def test_wraps_and_reraises(self, caplog):
        original = RuntimeError("overflow")
        with caplog.at_level(logging.ERROR):
            with pytest.raises(MetricsError) as exc_info:
                handle_error(original, "compute psnr", context={"metric": "psnr", "frame_index": 2})

        error = exc_info.value
        assert error.metric == "psnr"
        assert error.frame_index == 2
        assert error.cause is original
        assert error.__cause__ is original
        assert error.context["original_error_type"] == "RuntimeError"
        assert "Compute psnr failed" in caplog.text

    def test_returns_without_reraise(self):
        error = handle_error(
            ValueError("bad"),
            "parse header",
            error_type=DecodeError,
            level=ErrorLevel.WARNING,
            reraise=False,
        )
        assert isinstance(error, DecodeError)
        assert str(error) == "Failed to parse header: bad (caused by: bad)"

    def test_context_manager_wraps_foreign_errors(self):
        with pytest.raises(MetricsError) as exc_info:
            with error_context("compute ssim", context={"metric": "ssim", "frame_index": 0}):
                raise ZeroDivisionError("division by zero")
        assert exc_info.value.metric == "ssim"
        assert isinstance(exc_info.value.cause, ZeroDivisionError)

    def test_context_manager_passes_own_errors(self):
        original = UnsupportedInput("no chroma")
        with pytest.raises(UnsupportedInput) as exc_info:
            with error_context("compute ciede2000"):
                raise original
        assert exc_info.value is original

    def test_context_manager_without_error(self):
        with error_context("noop"):
            value = 1
        assert value == 1


class TestReporting:
    """Tests for warning and user-facing helpers."""

    def test_log_warning_with_context(self, caplog):
        with caplog.at_level(logging.WARNING):
            log_warning_with_context("Frame counts differ", {"reference_frames": 3})
        assert "Frame counts differ (context: reference_frames=3)" in caplog.text

    def test_describe_error_appends_context(self):
        error = FrameCountMismatch("Counts differ", context={"reference_frames": 3})
        assert describe_error(error) == "Counts differ [reference_frames=3]"

    def test_describe_error_plain_exception(self):
        assert describe_error(ValueError("multi\n  line")) == "multi line"
