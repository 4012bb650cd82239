"""High-level functions returning immutable, fully owned results.

``calculate_video_<metric>`` compares two files (Y4M or images) and returns
the sequence-level value; ``calculate_frame_<metric>`` compares two
in-memory frames.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass

from .ciede import delta_e_score
from .config import DEFAULT_METRICS_CONFIG, MetricsConfig
from .dispatcher import FrameDispatcher, Metric
from .error_handling import UnsupportedInput, ValidationError
from .frame import Frame, validate_frame_pair
from .frame_source import FrameSource
from .io import open_frame_source
from .parallel_metrics import FrameCallback, ParallelConfig, SequenceAggregator
from .results import PlanarMetrics, SequenceReport

logger = logging.getLogger(__name__)

PathLike = str | os.PathLike


@dataclass(frozen=True)
class CiedeResult:
    """Mean CIEDE2000 difference and its log-scaled companion score."""

    mean_delta_e: float
    delta_e_score: float

    @classmethod
    def from_mean(cls, mean_delta_e: float, cap: float) -> CiedeResult:
        return cls(mean_delta_e=mean_delta_e, delta_e_score=delta_e_score(mean_delta_e, cap))


def compare_sources(
    reference: FrameSource,
    distorted: FrameSource,
    metrics: Iterable[Metric | str] | None = None,
    frame_limit: int | None = None,
    config: MetricsConfig | None = None,
    parallel_config: ParallelConfig | None = None,
    reconcile_frame_counts: bool = False,
    on_frame: FrameCallback | None = None,
) -> SequenceReport:
    """Run the sequence aggregator over two already opened sources."""
    aggregator = SequenceAggregator(
        metrics,
        metrics_config=config,
        parallel_config=parallel_config,
        reconcile_frame_counts=reconcile_frame_counts,
    )
    return aggregator.run(reference, distorted, frame_limit=frame_limit, on_frame=on_frame)


def compare_videos(
    path_a: PathLike,
    path_b: PathLike,
    metrics: Iterable[Metric | str] | None = None,
    frame_limit: int | None = None,
    config: MetricsConfig | None = None,
    parallel_config: ParallelConfig | None = None,
    reconcile_frame_counts: bool = False,
    on_frame: FrameCallback | None = None,
) -> SequenceReport:
    """Open two files and compare them frame by frame.

    Args:
        path_a: Reference video (Y4M) or image(s)
        path_b: Distorted video or image(s)
        metrics: Metrics to compute (defaults to all)
        frame_limit: Stop after this many frames
        config: Kernel configuration
        parallel_config: Worker pool configuration
        reconcile_frame_counts: Fail instead of truncating on differing lengths
        on_frame: Receives each frame's results in order

    Returns:
        SequenceReport with one MetricSummary per computed metric
    """
    with open_frame_source(path_a) as reference, open_frame_source(path_b) as distorted:
        logger.info(f"Comparing {path_a} against {path_b}")
        return compare_sources(
            reference,
            distorted,
            metrics,
            frame_limit,
            config,
            parallel_config,
            reconcile_frame_counts,
            on_frame,
        )


def _video_metric(
    metric: Metric,
    path_a: PathLike,
    path_b: PathLike,
    frame_limit: int | None,
    config: MetricsConfig | None,
) -> PlanarMetrics:
    report = compare_videos(path_a, path_b, [metric], frame_limit, config)
    if metric.value not in report:
        raise ValidationError(f"No frames were compared for {metric.value}")
    return report[metric.value].to_planar()


def calculate_video_psnr(
    path_a: PathLike,
    path_b: PathLike,
    frame_limit: int | None = None,
    config: MetricsConfig | None = None,
) -> PlanarMetrics:
    """Mean of the per-frame PSNR values, per plane and on average."""
    return _video_metric(Metric.PSNR, path_a, path_b, frame_limit, config)


def calculate_video_apsnr(
    path_a: PathLike,
    path_b: PathLike,
    frame_limit: int | None = None,
    config: MetricsConfig | None = None,
) -> PlanarMetrics:
    """PSNR of the squared error accumulated over every frame."""
    return _video_metric(Metric.APSNR, path_a, path_b, frame_limit, config)


def calculate_video_psnr_hvs(
    path_a: PathLike,
    path_b: PathLike,
    frame_limit: int | None = None,
    config: MetricsConfig | None = None,
) -> PlanarMetrics:
    return _video_metric(Metric.PSNR_HVS, path_a, path_b, frame_limit, config)


def calculate_video_ssim(
    path_a: PathLike,
    path_b: PathLike,
    frame_limit: int | None = None,
    config: MetricsConfig | None = None,
) -> PlanarMetrics:
    return _video_metric(Metric.SSIM, path_a, path_b, frame_limit, config)


def calculate_video_msssim(
    path_a: PathLike,
    path_b: PathLike,
    frame_limit: int | None = None,
    config: MetricsConfig | None = None,
) -> PlanarMetrics:
    return _video_metric(Metric.MSSSIM, path_a, path_b, frame_limit, config)


def calculate_video_ciede(
    path_a: PathLike,
    path_b: PathLike,
    frame_limit: int | None = None,
    config: MetricsConfig | None = None,
) -> CiedeResult:
    """Mean CIEDE2000 difference over every frame.

    Raises:
        UnsupportedInput: The inputs carry no chroma
    """
    report = compare_videos(path_a, path_b, [Metric.CIEDE2000], frame_limit, config)
    if Metric.CIEDE2000.value not in report:
        raise UnsupportedInput("CIEDE2000 requires inputs with chroma planes")
    cap = (config or DEFAULT_METRICS_CONFIG).PSNR_MAX_DB
    return CiedeResult.from_mean(report[Metric.CIEDE2000.value].average, cap)


def _frame_metric(
    metric: Metric, frame_a: Frame, frame_b: Frame, config: MetricsConfig | None
) -> PlanarMetrics:
    with FrameDispatcher([metric], config) as dispatcher:
        result = dispatcher.dispatch(0, frame_a, frame_b)
    return result[metric.value].to_planar()


def calculate_frame_psnr(
    frame_a: Frame, frame_b: Frame, config: MetricsConfig | None = None
) -> PlanarMetrics:
    return _frame_metric(Metric.PSNR, frame_a, frame_b, config)


def calculate_frame_apsnr(
    frame_a: Frame, frame_b: Frame, config: MetricsConfig | None = None
) -> PlanarMetrics:
    """For a single frame pair APSNR equals PSNR."""
    return _frame_metric(Metric.APSNR, frame_a, frame_b, config)


def calculate_frame_psnr_hvs(
    frame_a: Frame, frame_b: Frame, config: MetricsConfig | None = None
) -> PlanarMetrics:
    return _frame_metric(Metric.PSNR_HVS, frame_a, frame_b, config)


def calculate_frame_ssim(
    frame_a: Frame, frame_b: Frame, config: MetricsConfig | None = None
) -> PlanarMetrics:
    return _frame_metric(Metric.SSIM, frame_a, frame_b, config)


def calculate_frame_msssim(
    frame_a: Frame, frame_b: Frame, config: MetricsConfig | None = None
) -> PlanarMetrics:
    return _frame_metric(Metric.MSSSIM, frame_a, frame_b, config)


def calculate_frame_ciede(
    frame_a: Frame, frame_b: Frame, config: MetricsConfig | None = None
) -> CiedeResult:
    """Raises UnsupportedInput when the frames carry no chroma."""
    validate_frame_pair(frame_a, frame_b)
    if not frame_a.has_chroma:
        raise UnsupportedInput(
            "CIEDE2000 requires frames with chroma planes",
            context={"chroma_sampling": frame_a.chroma_sampling.value},
        )
    config = config or DEFAULT_METRICS_CONFIG
    with FrameDispatcher([Metric.CIEDE2000], config) as dispatcher:
        result = dispatcher.dispatch(0, frame_a, frame_b)
    return CiedeResult.from_mean(result[Metric.CIEDE2000.value].average, config.PSNR_MAX_DB)
