"""Parallel sequence aggregation for frame-pair metrics.

Frame pairs are pulled from two :class:`~avmetrics.frame_source.FrameSource`
objects on the calling thread, evaluated on a bounded thread pool, and folded
into a :class:`~avmetrics.results.SequenceMetricSummary` strictly in frame
order. The numeric kernels spend their time in numpy and OpenCV, which
release the GIL, so threads scale without pickling frames across processes.
"""

from __future__ import annotations

import logging
import multiprocessing as mp
import os
import time
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from typing import Any

from .config import DEFAULT_METRICS_CONFIG, MetricsConfig
from .dispatcher import FrameDispatcher, Metric
from .error_handling import FrameCountMismatch, log_warning_with_context
from .frame import Frame
from .frame_source import FrameSource
from .results import FramePairResult, SequenceMetricSummary, SequenceReport

logger = logging.getLogger(__name__)


@dataclass
class ParallelConfig:
    """Configuration for parallel processing."""

    max_workers: int | None = None
    # Frame pairs decoded but not yet evaluated; bounds memory use
    max_in_flight: int | None = None
    enable_profiling: bool = False

    def __post_init__(self) -> None:
        """Initialize configuration from environment variables."""
        if self.max_workers is None:
            env_workers = os.environ.get("AVMETRICS_MAX_WORKERS")
            if env_workers:
                try:
                    self.max_workers = int(env_workers)
                except ValueError:
                    logger.warning(f"Invalid AVMETRICS_MAX_WORKERS: {env_workers}")
                    self.max_workers = mp.cpu_count()
            else:
                self.max_workers = mp.cpu_count()

        # Ensure reasonable bounds
        self.max_workers = max(1, min(self.max_workers, mp.cpu_count() * 2))

        if self.max_in_flight is None:
            self.max_in_flight = self.max_workers * 2
        self.max_in_flight = max(1, self.max_in_flight)

        if not self.enable_profiling:
            self.enable_profiling = (
                os.environ.get("AVMETRICS_ENABLE_PROFILING", "false").lower() == "true"
            )


FrameCallback = Callable[[FramePairResult], None]


class SequenceAggregator:
    """Computes metrics over two frame sequences in parallel.

    Args:
        metrics: Metrics to compute (defaults to all)
        metrics_config: Kernel configuration
        parallel_config: Worker pool configuration
        reconcile_frame_counts: Abort with FrameCountMismatch when the sources
            disagree on their length instead of truncating to the shorter one
    """

    def __init__(
        self,
        metrics: Iterable[Metric | str] | None = None,
        metrics_config: MetricsConfig | None = None,
        parallel_config: ParallelConfig | None = None,
        reconcile_frame_counts: bool = False,
    ):
        self.metrics_config = metrics_config or DEFAULT_METRICS_CONFIG
        self.config = parallel_config or ParallelConfig()
        self.reconcile_frame_counts = reconcile_frame_counts
        self._metrics = metrics
        self._profiling_data: dict[str, Any] = {}

    def _check_reported_counts(self, reference: FrameSource, distorted: FrameSource) -> None:
        ref_count = reference.frame_count
        dist_count = distorted.frame_count
        if ref_count is None or dist_count is None or ref_count == dist_count:
            return
        context = {"reference_frames": ref_count, "distorted_frames": dist_count}
        if self.reconcile_frame_counts:
            raise FrameCountMismatch(
                f"Frame counts differ: reference has {ref_count}, distorted has {dist_count}",
                context=context,
            )
        log_warning_with_context(
            "Frame counts differ; comparing the shorter sequence only", context, logger
        )

    def _read_pair(
        self, reference: FrameSource, distorted: FrameSource, index: int
    ) -> tuple[Frame, Frame] | None:
        ref_frame = reference.next_frame()
        dist_frame = distorted.next_frame()
        if ref_frame is None and dist_frame is None:
            return None
        if ref_frame is None or dist_frame is None:
            ended = "reference" if ref_frame is None else "distorted"
            if self.reconcile_frame_counts:
                raise FrameCountMismatch(
                    f"The {ended} sequence ended after {index} frames",
                    context={"ended": ended, "frames_read": index},
                )
            logger.info(f"The {ended} sequence ended after {index} frames; stopping")
            return None
        return ref_frame, dist_frame

    def run(
        self,
        reference: FrameSource,
        distorted: FrameSource,
        frame_limit: int | None = None,
        on_frame: FrameCallback | None = None,
    ) -> SequenceReport:
        """Compare two sequences and return the finalized report.

        Args:
            reference: Source of reference frames
            distorted: Source of distorted frames
            frame_limit: Stop after this many frame pairs
            on_frame: Called with each FramePairResult, in frame order, on
                the calling thread

        Returns:
            The finalized SequenceReport

        Raises:
            AvMetricsError: The first validation, decode or kernel error.
                Outstanding work is cancelled and no partial report is
                returned.
        """
        if frame_limit is not None and frame_limit < 0:
            raise ValueError(f"frame_limit must be non-negative, got {frame_limit}")

        self._check_reported_counts(reference, distorted)

        start_time = time.perf_counter()
        dispatcher_config = self.metrics_config
        if self.config.max_workers > 1 and dispatcher_config.PARALLEL_PLANES:
            # Frame workers run planes inline; a shared plane pool would cap
            # kernel concurrency at its own size
            dispatcher_config = replace(dispatcher_config, PARALLEL_PLANES=False)
        dispatcher = FrameDispatcher(self._metrics, dispatcher_config)
        summary = SequenceMetricSummary(
            [m.value for m in dispatcher.metrics], psnr_cap=self.metrics_config.PSNR_MAX_DB
        )

        in_flight: dict[Future[FramePairResult], int] = {}
        ready: dict[int, FramePairResult] = {}
        next_index = 0
        next_to_fold = 0
        exhausted = False

        if self.config.enable_profiling:
            logger.info(
                f"Sequence aggregation: {self.config.max_workers} workers, "
                f"{self.config.max_in_flight} pairs in flight"
            )

        with dispatcher, ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="avmetrics-frame"
        ) as executor:
            try:
                while True:
                    while not exhausted and len(in_flight) < self.config.max_in_flight:
                        if frame_limit is not None and next_index >= frame_limit:
                            exhausted = True
                            break
                        pair = self._read_pair(reference, distorted, next_index)
                        if pair is None:
                            exhausted = True
                            break
                        future = executor.submit(dispatcher.dispatch, next_index, *pair)
                        in_flight[future] = next_index
                        next_index += 1

                    if not in_flight:
                        break

                    done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                    for future in sorted(done, key=in_flight.__getitem__):
                        index = in_flight.pop(future)
                        ready[index] = future.result()

                    # Fold in frame order
                    while next_to_fold in ready:
                        result = ready.pop(next_to_fold)
                        summary.add(result)
                        if on_frame is not None:
                            on_frame(result)
                        next_to_fold += 1
            except BaseException:
                for future in in_flight:
                    future.cancel()
                raise

        elapsed = time.perf_counter() - start_time
        self._profiling_data = {
            "frames_processed": summary.frame_count,
            "elapsed": elapsed,
        }
        if self.config.enable_profiling:
            logger.info(f"Processed {summary.frame_count} frame pairs in {elapsed:.3f}s")

        return summary.finalize()

    def get_profiling_data(self) -> dict:
        """Get profiling data from the last run."""
        return self._profiling_data.copy()
