"""avmetrics - objective video and image quality metrics."""

__version__: str = "0.1.0"

from .api import (  # noqa: E402
    CiedeResult,
    calculate_frame_apsnr,
    calculate_frame_ciede,
    calculate_frame_msssim,
    calculate_frame_psnr,
    calculate_frame_psnr_hvs,
    calculate_frame_ssim,
    calculate_video_apsnr,
    calculate_video_ciede,
    calculate_video_msssim,
    calculate_video_psnr,
    calculate_video_psnr_hvs,
    calculate_video_ssim,
    compare_sources,
    compare_videos,
)
from .config import DEFAULT_METRICS_CONFIG, MetricsConfig  # noqa: E402
from .dispatcher import FrameDispatcher, Metric, dispatch  # noqa: E402
from .error_handling import (  # noqa: E402
    AvMetricsError,
    ConfigurationError,
    DecodeError,
    DimensionMismatch,
    FormatMismatch,
    FrameCountMismatch,
    MetricsError,
    UnsupportedInput,
    ValidationError,
)
from .frame import (  # noqa: E402
    ChromaSamplePosition,
    ChromaSampling,
    ColorFamily,
    Frame,
    PixelDepth,
    Plane,
    validate_frame_pair,
)
from .frame_source import FrameSource, InMemoryFrameSource  # noqa: E402
from .io import ImageFrameSource, Y4MFrameSource, open_frame_source  # noqa: E402
from .parallel_metrics import ParallelConfig, SequenceAggregator  # noqa: E402
from .results import (  # noqa: E402
    FrameMetricResult,
    FramePairResult,
    PlanarMetrics,
    PlaneMetricResult,
    SequenceMetricSummary,
    SequenceReport,
)

__all__ = [
    "AvMetricsError",
    "ConfigurationError",
    "ChromaSamplePosition",
    "ChromaSampling",
    "CiedeResult",
    "ColorFamily",
    "DEFAULT_METRICS_CONFIG",
    "DecodeError",
    "DimensionMismatch",
    "FormatMismatch",
    "Frame",
    "FrameCountMismatch",
    "FrameDispatcher",
    "FrameMetricResult",
    "FramePairResult",
    "FrameSource",
    "ImageFrameSource",
    "InMemoryFrameSource",
    "Metric",
    "MetricsConfig",
    "MetricsError",
    "ParallelConfig",
    "PixelDepth",
    "PlanarMetrics",
    "Plane",
    "PlaneMetricResult",
    "SequenceAggregator",
    "SequenceMetricSummary",
    "SequenceReport",
    "UnsupportedInput",
    "ValidationError",
    "Y4MFrameSource",
    "calculate_frame_apsnr",
    "calculate_frame_ciede",
    "calculate_frame_msssim",
    "calculate_frame_psnr",
    "calculate_frame_psnr_hvs",
    "calculate_frame_ssim",
    "calculate_video_apsnr",
    "calculate_video_ciede",
    "calculate_video_msssim",
    "calculate_video_psnr",
    "calculate_video_psnr_hvs",
    "calculate_video_ssim",
    "compare_sources",
    "compare_videos",
    "dispatch",
    "validate_frame_pair",
]
