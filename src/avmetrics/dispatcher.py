"""Frame-pair dispatcher.

Validates a reference/distorted frame pair, resolves its pixel depth once and
runs every requested metric kernel over the pair's planes, wrapping the raw
kernel outputs in :class:`~avmetrics.results.FrameMetricResult` objects.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from functools import partial
from typing import Any

from . import ciede, psnr, psnr_hvs, ssim
from .config import DEFAULT_METRICS_CONFIG, MetricsConfig
from .error_handling import (
    ConfigurationError,
    UnsupportedInput,
    error_context,
    log_warning_with_context,
)
from .frame import Frame, PixelDepth, Plane, validate_frame_pair
from .results import FrameMetricResult, FramePairResult, PlaneMetricResult

logger = logging.getLogger(__name__)


class Metric(Enum):
    """Metrics the engine can compute."""

    PSNR = "psnr"
    APSNR = "apsnr"
    PSNR_HVS = "psnr_hvs"
    SSIM = "ssim"
    MSSSIM = "msssim"
    CIEDE2000 = "ciede2000"

    @classmethod
    def parse(cls, value: Metric | str) -> Metric:
        if isinstance(value, Metric):
            return value
        key = value.strip().lower().replace("-", "_")
        aliases = {"ms_ssim": "msssim", "ciede": "ciede2000", "psnrhvs": "psnr_hvs"}
        key = aliases.get(key, key)
        try:
            return cls(key)
        except ValueError as e:
            valid = ", ".join(m.value for m in cls)
            raise ConfigurationError(f"Unknown metric {value!r}; expected one of: {valid}") from e


ALL_METRICS: tuple[Metric, ...] = tuple(Metric)


def normalize_metrics(metrics: Iterable[Metric | str] | None) -> tuple[Metric, ...]:
    """Parse and de-duplicate requested metrics, keeping their enum order."""
    if metrics is None:
        return ALL_METRICS
    requested = {Metric.parse(m) for m in metrics}
    if not requested:
        raise ConfigurationError("At least one metric must be requested")
    return tuple(m for m in Metric if m in requested)


# Kernels keyed by (kernel name, storage depth). PSNR and APSNR share the
# "psnr" kernel.
KERNEL_REGISTRY: dict[tuple[str, PixelDepth], Callable[..., Any]] = {
    ("psnr", PixelDepth.DEPTH8): psnr.calculate_plane_psnr_metrics_depth8,
    ("psnr", PixelDepth.DEPTH16): psnr.calculate_plane_psnr_metrics_depth16,
    ("psnr_hvs", PixelDepth.DEPTH8): psnr_hvs.calculate_plane_psnr_hvs_mse,
    ("psnr_hvs", PixelDepth.DEPTH16): psnr_hvs.calculate_plane_psnr_hvs_mse,
    ("ssim", PixelDepth.DEPTH8): ssim.calculate_plane_ssim,
    ("ssim", PixelDepth.DEPTH16): ssim.calculate_plane_ssim,
    ("msssim", PixelDepth.DEPTH8): ssim.calculate_plane_msssim,
    ("msssim", PixelDepth.DEPTH16): ssim.calculate_plane_msssim,
    ("ciede2000", PixelDepth.DEPTH8): ciede.calculate_frame_delta_e,
    ("ciede2000", PixelDepth.DEPTH16): ciede.calculate_frame_delta_e,
}


def get_kernel(kernel: str, depth: PixelDepth) -> Callable[..., Any]:
    try:
        return KERNEL_REGISTRY[(kernel, depth)]
    except KeyError:
        raise UnsupportedInput(
            f"No {kernel} kernel registered for {depth.value} samples",
            context={"kernel": kernel, "depth": depth.value},
        ) from None


def chroma_weighted_average(values: Sequence[float], chroma_weight: float) -> float:
    """``(y + cw*(u + v)) / (1 + 2*cw)``; a single plane is returned as is."""
    if len(values) == 1:
        return float(values[0])
    y, u, v = values
    return (y + chroma_weight * (u + v)) / (1.0 + 2.0 * chroma_weight)


class FrameDispatcher:
    """Runs the requested metric kernels on validated frame pairs.

    A dispatcher may be shared by several threads; when plane parallelism is
    enabled the planes of one pair are evaluated on a small internal pool.
    Use it as a context manager (or call :meth:`close`) to release that pool.
    """

    def __init__(
        self,
        metrics: Iterable[Metric | str] | None = None,
        config: MetricsConfig | None = None,
    ):
        self.metrics = normalize_metrics(metrics)
        self.config = config or DEFAULT_METRICS_CONFIG
        self.use_simd = bool(self.config.USE_SIMD)
        self._plane_executor: ThreadPoolExecutor | None = None
        if self.config.PARALLEL_PLANES:
            self._plane_executor = ThreadPoolExecutor(
                max_workers=3, thread_name_prefix="avmetrics-plane"
            )
        self._warned_no_chroma = False

    def __enter__(self) -> FrameDispatcher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._plane_executor is not None:
            self._plane_executor.shutdown(wait=True)
            self._plane_executor = None

    def _map_planes(self, fn: Callable[[int], Any], count: int) -> list[Any]:
        if self._plane_executor is None or count == 1:
            return [fn(i) for i in range(count)]
        return list(self._plane_executor.map(fn, range(count)))

    def dispatch(self, index: int, reference: Frame, distorted: Frame) -> FramePairResult:
        """Compute every requested metric for one frame pair.

        Raises:
            FormatMismatch: The frames' formats differ
            DimensionMismatch: A plane's size differs
            UnsupportedInput: Bit depth outside 1-16
            MetricsError: A kernel failed; names the metric and frame index
        """
        depth = validate_frame_pair(reference, distorted)
        names = reference.plane_names
        results: dict[str, FrameMetricResult] = {}

        if Metric.PSNR in self.metrics or Metric.APSNR in self.metrics:
            for result in self._run_psnr(index, depth, reference, distorted, names):
                results[result.metric] = result
        if Metric.PSNR_HVS in self.metrics:
            results[Metric.PSNR_HVS.value] = self._run_psnr_hvs(
                index, depth, reference, distorted, names
            )
        for metric in (Metric.SSIM, Metric.MSSSIM):
            if metric in self.metrics:
                results[metric.value] = self._run_ssim(
                    metric, index, depth, reference, distorted, names
                )
        if Metric.CIEDE2000 in self.metrics:
            if reference.has_chroma:
                results[Metric.CIEDE2000.value] = self._run_ciede(
                    index, depth, reference, distorted
                )
            elif not self._warned_no_chroma:
                self._warned_no_chroma = True
                log_warning_with_context(
                    "Skipping ciede2000 for frames without chroma",
                    {"chroma_sampling": reference.chroma_sampling.value},
                    logger,
                )

        return FramePairResult(frame_index=index, metrics=results)

    def _run_psnr(
        self,
        index: int,
        depth: PixelDepth,
        reference: Frame,
        distorted: Frame,
        names: tuple[str, ...],
    ) -> list[FrameMetricResult]:
        kernel = get_kernel("psnr", depth)
        cap = self.config.PSNR_MAX_DB

        def plane_job(i: int) -> psnr.PsnrMetrics:
            return kernel(reference.planes[i], distorted.planes[i], self.use_simd)

        with error_context(
            "compute psnr", context={"metric": "psnr", "frame_index": index}, logger=logger
        ):
            plane_metrics = self._map_planes(plane_job, len(names))

        planes = tuple(
            PlaneMetricResult(
                plane_index=i,
                plane=names[i],
                value=psnr.calculate_psnr(m, cap),
                components=(m.sq_err, m.n_pixels, m.sample_max),
            )
            for i, m in enumerate(plane_metrics)
        )
        average = psnr.calculate_summed_psnr(plane_metrics, cap)
        return [
            FrameMetricResult(metric=metric.value, planes=planes, average=average)
            for metric in (Metric.PSNR, Metric.APSNR)
            if metric in self.metrics
        ]

    def _run_psnr_hvs(
        self,
        index: int,
        depth: PixelDepth,
        reference: Frame,
        distorted: Frame,
        names: tuple[str, ...],
    ) -> FrameMetricResult:
        kernel = get_kernel("psnr_hvs", depth)
        cap = self.config.PSNR_MAX_DB

        def plane_job(i: int) -> float:
            csf = psnr_hvs.csf_table(i, reference.color_family)
            return kernel(reference.planes[i], distorted.planes[i], csf, self.use_simd)

        with error_context(
            "compute psnr_hvs",
            context={"metric": "psnr_hvs", "frame_index": index},
            logger=logger,
        ):
            mses = self._map_planes(plane_job, len(names))

        planes = tuple(
            PlaneMetricResult(
                plane_index=i,
                plane=names[i],
                value=psnr_hvs.weighted_mse_to_db(mse, cap),
                components=(mse,),
            )
            for i, mse in enumerate(mses)
        )
        measured = [psnr_hvs.holds_full_block(p) for p in reference.planes]
        if all(measured):
            average_mse = chroma_weighted_average(mses, reference.chroma_weight)
        elif any(measured):
            # Planes without a full block carry no error estimate
            weights = [1.0] + [reference.chroma_weight] * (len(mses) - 1)
            used = [(w, mse) for w, mse, ok in zip(weights, mses, measured) if ok]
            average_mse = sum(w * mse for w, mse in used) / sum(w for w, _ in used)
        else:
            average_mse = 0.0
        average = psnr_hvs.weighted_mse_to_db(average_mse, cap)
        return FrameMetricResult(metric=Metric.PSNR_HVS.value, planes=planes, average=average)

    def _run_ssim(
        self,
        metric: Metric,
        index: int,
        depth: PixelDepth,
        reference: Frame,
        distorted: Frame,
        names: tuple[str, ...],
    ) -> FrameMetricResult:
        kernel = get_kernel(metric.value, depth)
        plane_fn = partial(kernel, config=self.config, use_simd=self.use_simd)

        def plane_job(i: int) -> float:
            ref_plane: Plane = reference.planes[i]
            return plane_fn(ref_plane, distorted.planes[i])

        with error_context(
            f"compute {metric.value}",
            context={"metric": metric.value, "frame_index": index},
            logger=logger,
        ):
            values = self._map_planes(plane_job, len(names))

        planes = tuple(
            PlaneMetricResult(plane_index=i, plane=names[i], value=value)
            for i, value in enumerate(values)
        )
        average = chroma_weighted_average(values, reference.chroma_weight)
        return FrameMetricResult(metric=metric.value, planes=planes, average=average)

    def _run_ciede(
        self, index: int, depth: PixelDepth, reference: Frame, distorted: Frame
    ) -> FrameMetricResult:
        kernel = get_kernel(Metric.CIEDE2000.value, depth)
        with error_context(
            "compute ciede2000",
            context={"metric": Metric.CIEDE2000.value, "frame_index": index},
            logger=logger,
        ):
            mean_delta_e = kernel(reference, distorted, self.config, self.use_simd)
        return FrameMetricResult(metric=Metric.CIEDE2000.value, planes=(), average=mean_delta_e)


def dispatch(
    index: int,
    reference: Frame,
    distorted: Frame,
    metrics: Iterable[Metric | str] | None = None,
    config: MetricsConfig | None = None,
) -> FramePairResult:
    """One-shot helper: compute ``metrics`` for a single frame pair."""
    with FrameDispatcher(metrics, config) as dispatcher:
        return dispatcher.dispatch(index, reference, distorted)
