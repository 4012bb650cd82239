"""Per-plane, per-frame and per-sequence metric results.

Kernels return plain numbers; the dispatcher wraps them in the frozen result
types below, and the sequence aggregator folds them into a
:class:`SequenceMetricSummary`. Every result object owns its data (plain
floats, tuples and dicts) so it can be handed to callers without keeping any
frame buffer alive.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from .psnr import psnr_from_error


@dataclass(frozen=True)
class PlaneMetricResult:
    """Metric value for one plane of one frame pair.

    ``components`` carries the intermediates some metrics need for sequence
    aggregation; PSNR stores ``(squared_error, pixel_count, sample_max)``.
    """

    plane_index: int
    plane: str
    value: float
    components: tuple[float, ...] = ()


@dataclass(frozen=True)
class FrameMetricResult:
    """One metric's per-plane values for a frame pair plus the frame average."""

    metric: str
    planes: tuple[PlaneMetricResult, ...]
    average: float

    def plane_value(self, plane: str) -> float:
        for result in self.planes:
            if result.plane == plane:
                return result.value
        raise KeyError(f"{self.metric} has no value for plane {plane!r}")

    def to_planar(self) -> PlanarMetrics:
        return PlanarMetrics(planes={p.plane: p.value for p in self.planes}, avg=self.average)


@dataclass(frozen=True)
class FramePairResult:
    """All requested metrics for the frame pair at ``frame_index``."""

    frame_index: int
    metrics: dict[str, FrameMetricResult] = field(default_factory=dict)

    def __getitem__(self, metric: str) -> FrameMetricResult:
        return self.metrics[metric]

    def __contains__(self, metric: object) -> bool:
        return metric in self.metrics


@dataclass(frozen=True)
class PlanarMetrics:
    """Metric value per plane plus the weighted average across planes."""

    planes: dict[str, float]
    avg: float

    @property
    def y(self) -> float | None:
        return self.planes.get("y")

    @property
    def u(self) -> float | None:
        return self.planes.get("u")

    @property
    def v(self) -> float | None:
        return self.planes.get("v")

    def __getitem__(self, plane: str) -> float:
        if plane == "avg":
            return self.avg
        return self.planes[plane]

    def to_dict(self) -> dict[str, float]:
        data = dict(self.planes)
        data["avg"] = self.avg
        return data


@dataclass
class RunningStats:
    """Streaming sum, sum of squares and extrema of a scalar series."""

    count: int = 0
    total: float = 0.0
    total_sq: float = 0.0
    minimum: float = math.inf
    maximum: float = -math.inf

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        self.total_sq += value * value
        self.minimum = min(self.minimum, value)
        self.maximum = max(self.maximum, value)

    def merge(self, other: RunningStats) -> None:
        self.count += other.count
        self.total += other.total
        self.total_sq += other.total_sq
        self.minimum = min(self.minimum, other.minimum)
        self.maximum = max(self.maximum, other.maximum)

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0

    @property
    def std(self) -> float:
        if self.count < 2:
            return 0.0
        variance = self.total_sq / self.count - self.mean**2
        return math.sqrt(max(variance, 0.0))


@dataclass
class ErrorTotals:
    """Accumulated squared error of one plane across frames (exact integers)."""

    squared_error: int = 0
    pixel_count: int = 0
    sample_max: int = 0

    def add(self, squared_error: float, pixel_count: float, sample_max: float) -> None:
        self.squared_error += int(squared_error)
        self.pixel_count += int(pixel_count)
        self.sample_max = int(sample_max)

    def merge(self, other: ErrorTotals) -> None:
        self.squared_error += other.squared_error
        self.pixel_count += other.pixel_count
        self.sample_max = other.sample_max or self.sample_max


@dataclass(frozen=True)
class PlaneSummary:
    mean: float
    std: float
    minimum: float
    maximum: float


@dataclass(frozen=True)
class MetricSummary:
    """Finalized sequence-level values for one metric."""

    metric: str
    frame_count: int
    planes: dict[str, PlaneSummary]
    average: float
    plane_values: dict[str, float]

    def to_planar(self) -> PlanarMetrics:
        return PlanarMetrics(planes=dict(self.plane_values), avg=self.average)

    def to_dict(self) -> dict[str, Any]:
        return {
            "frames": self.frame_count,
            "planes": dict(self.plane_values),
            "avg": self.average,
            "stats": {
                name: {
                    "mean": s.mean,
                    "std": s.std,
                    "min": s.minimum,
                    "max": s.maximum,
                }
                for name, s in self.planes.items()
            },
        }


class MetricAccumulator:
    """Running per-plane aggregate for one metric.

    APSNR uses the squared-error totals so that the sequence value is the
    PSNR of the mean MSE; every other metric reports the arithmetic mean of
    its per-frame values.
    """

    def __init__(self, metric: str, log_domain: bool = False, psnr_cap: float = 100.0):
        self.metric = metric
        self.log_domain = log_domain
        self.psnr_cap = psnr_cap
        self.planes: dict[str, RunningStats] = {}
        self.average = RunningStats()
        self.error_totals: dict[str, ErrorTotals] = {}

    def add(self, result: FrameMetricResult) -> None:
        for plane in result.planes:
            self.planes.setdefault(plane.plane, RunningStats()).add(plane.value)
            if self.log_domain:
                sq_err, n_pixels, sample_max = plane.components
                self.error_totals.setdefault(plane.plane, ErrorTotals()).add(
                    sq_err, n_pixels, sample_max
                )
        self.average.add(result.average)

    def merge(self, other: MetricAccumulator) -> None:
        for name, stats in other.planes.items():
            self.planes.setdefault(name, RunningStats()).merge(stats)
        for name, totals in other.error_totals.items():
            self.error_totals.setdefault(name, ErrorTotals()).merge(totals)
        self.average.merge(other.average)

    def finalize(self) -> MetricSummary:
        planes = {
            name: PlaneSummary(
                mean=stats.mean,
                std=stats.std,
                minimum=stats.minimum,
                maximum=stats.maximum,
            )
            for name, stats in self.planes.items()
        }

        if self.log_domain:
            plane_values = {
                name: psnr_from_error(
                    t.squared_error, t.pixel_count, t.sample_max, self.psnr_cap
                )
                for name, t in self.error_totals.items()
            }
            all_error = sum(t.squared_error for t in self.error_totals.values())
            all_pixels = sum(t.pixel_count for t in self.error_totals.values())
            sample_max = max((t.sample_max for t in self.error_totals.values()), default=0)
            average = psnr_from_error(all_error, all_pixels, sample_max, self.psnr_cap)
        else:
            plane_values = {name: s.mean for name, s in planes.items()}
            average = self.average.mean

        return MetricSummary(
            metric=self.metric,
            frame_count=self.average.count,
            planes=planes,
            average=average,
            plane_values=plane_values,
        )


@dataclass(frozen=True)
class SequenceReport:
    """Finalized results of a whole sequence comparison."""

    frame_count: int
    metrics: dict[str, MetricSummary]

    def __getitem__(self, metric: str) -> MetricSummary:
        return self.metrics[metric]

    def __contains__(self, metric: object) -> bool:
        return metric in self.metrics

    def to_dict(self) -> dict[str, Any]:
        return {
            "frames": self.frame_count,
            "metrics": {name: summary.to_dict() for name, summary in self.metrics.items()},
        }


class SequenceMetricSummary:
    """Running aggregate of every requested metric over a sequence.

    Owned and mutated by a single thread; partial summaries built elsewhere
    are combined with :meth:`merge`.
    """

    def __init__(self, metrics: list[str] | tuple[str, ...], psnr_cap: float = 100.0):
        self.frame_count = 0
        self.accumulators = {
            name: MetricAccumulator(name, log_domain=(name == "apsnr"), psnr_cap=psnr_cap)
            for name in metrics
        }

    def add(self, pair_result: FramePairResult) -> None:
        self.frame_count += 1
        for name, result in pair_result.metrics.items():
            self.accumulators[name].add(result)

    def merge(self, other: SequenceMetricSummary) -> None:
        self.frame_count += other.frame_count
        for name, accumulator in other.accumulators.items():
            if name in self.accumulators:
                self.accumulators[name].merge(accumulator)
            else:
                self.accumulators[name] = accumulator

    def finalize(self) -> SequenceReport:
        return SequenceReport(
            frame_count=self.frame_count,
            metrics={
                name: acc.finalize()
                for name, acc in self.accumulators.items()
                if acc.average.count
            },
        )
