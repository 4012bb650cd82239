"""Tests for avmetrics.results module."""

import math

import pytest

from avmetrics.psnr import psnr_from_error
from avmetrics.results import (
    FrameMetricResult,
    FramePairResult,
    MetricAccumulator,
    PlanarMetrics,
    PlaneMetricResult,
    RunningStats,
    SequenceMetricSummary,
)


def _psnr_result(metric, errors, n_pixels=100, sample_max=255):
    """FrameMetricResult for a luma-only frame with squared error ``errors``."""
    value = psnr_from_error(errors, n_pixels, sample_max)
    plane = PlaneMetricResult(0, "y", value, components=(errors, n_pixels, sample_max))
    return FrameMetricResult(metric=metric, planes=(plane,), average=value)


def _plain_result(metric, values, average):
    planes = tuple(PlaneMetricResult(i, name, v) for i, (name, v) in enumerate(zip("yuv", values)))
    return FrameMetricResult(metric=metric, planes=planes, average=average)


class TestRunningStats:
    """Tests for RunningStats."""

    def test_mean_std_extrema(self):
        stats = RunningStats()
        for value in (2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0):
            stats.add(value)
        assert stats.count == 8
        assert stats.mean == pytest.approx(5.0)
        assert stats.std == pytest.approx(2.0)
        assert stats.minimum == 2.0
        assert stats.maximum == 9.0

    def test_empty(self):
        stats = RunningStats()
        assert stats.mean == 0.0
        assert stats.std == 0.0

    def test_merge_equals_sequential(self):
        left, right, whole = RunningStats(), RunningStats(), RunningStats()
        for value in (1.0, 3.0):
            left.add(value)
            whole.add(value)
        for value in (10.0, -2.0, 6.0):
            right.add(value)
            whole.add(value)
        left.merge(right)
        assert left.count == whole.count
        assert left.mean == pytest.approx(whole.mean)
        assert left.std == pytest.approx(whole.std)
        assert (left.minimum, left.maximum) == (-2.0, 10.0)


class TestFrameResults:
    """Tests for per-frame result containers."""

    def test_plane_value_lookup(self):
        result = _plain_result("ssim", (0.9, 0.8, 0.7), 0.85)
        assert result.plane_value("u") == 0.8
        with pytest.raises(KeyError):
            result.plane_value("r")

    def test_to_planar(self):
        planar = _plain_result("ssim", (0.9, 0.8, 0.7), 0.85).to_planar()
        assert (planar.y, planar.u, planar.v, planar.avg) == (0.9, 0.8, 0.7, 0.85)
        assert planar["avg"] == 0.85
        assert planar.to_dict() == {"y": 0.9, "u": 0.8, "v": 0.7, "avg": 0.85}

    def test_rgb_planar_has_no_yuv_properties(self):
        planar = PlanarMetrics(planes={"r": 1.0, "g": 2.0, "b": 3.0}, avg=2.0)
        assert planar.y is None
        assert planar["g"] == 2.0

    def test_pair_result_mapping(self):
        pair = FramePairResult(frame_index=3, metrics={"ssim": _plain_result("ssim", (1.0,), 1.0)})
        assert "ssim" in pair
        assert "psnr" not in pair
        assert pair["ssim"].average == 1.0


class TestMetricAccumulator:
    """Tests for sequence aggregation."""

    def test_apsnr_differs_from_mean_psnr(self):
        psnr = MetricAccumulator("psnr")
        apsnr = MetricAccumulator("apsnr", log_domain=True)
        # Frame MSEs of 1 and 100
        for errors in (100, 10000):
            psnr.add(_psnr_result("psnr", errors))
            apsnr.add(_psnr_result("apsnr", errors))

        mean_psnr = psnr.finalize()
        pooled = apsnr.finalize()

        expected_mean = (10 * math.log10(255**2) + 10 * math.log10(255**2 / 100)) / 2
        expected_pooled = 10 * math.log10(255**2 / 50.5)
        assert mean_psnr.average == pytest.approx(expected_mean)
        assert mean_psnr.plane_values["y"] == pytest.approx(expected_mean)
        assert pooled.average == pytest.approx(expected_pooled)
        assert pooled.plane_values["y"] == pytest.approx(expected_pooled)
        assert pooled.average < mean_psnr.average

    def test_identical_sequence_hits_cap(self):
        apsnr = MetricAccumulator("apsnr", log_domain=True)
        apsnr.add(_psnr_result("apsnr", 0))
        apsnr.add(_psnr_result("apsnr", 0))
        assert apsnr.finalize().average == 100.0

    def test_plane_statistics(self):
        acc = MetricAccumulator("ssim")
        acc.add(_plain_result("ssim", (0.9, 0.8, 0.7), 0.85))
        acc.add(_plain_result("ssim", (0.7, 0.6, 0.5), 0.65))
        summary = acc.finalize()

        assert summary.frame_count == 2
        assert summary.plane_values == pytest.approx({"y": 0.8, "u": 0.7, "v": 0.6})
        assert summary.average == pytest.approx(0.75)
        assert summary.planes["y"].minimum == 0.7
        assert summary.planes["y"].maximum == 0.9
        assert summary.planes["y"].std == pytest.approx(0.1)
        assert summary.to_planar().u == pytest.approx(0.7)

    def test_merge_matches_single_pass(self):
        whole = MetricAccumulator("apsnr", log_domain=True)
        left = MetricAccumulator("apsnr", log_domain=True)
        right = MetricAccumulator("apsnr", log_domain=True)
        for i, errors in enumerate((10, 250, 4000, 0)):
            whole.add(_psnr_result("apsnr", errors))
            (left if i < 2 else right).add(_psnr_result("apsnr", errors))
        left.merge(right)
        assert left.finalize().average == pytest.approx(whole.finalize().average)
        assert left.finalize().frame_count == 4

    def test_summary_to_dict(self):
        acc = MetricAccumulator("ssim")
        acc.add(_plain_result("ssim", (0.9,), 0.9))
        data = acc.finalize().to_dict()
        assert data["frames"] == 1
        assert data["avg"] == 0.9
        assert data["planes"] == {"y": 0.9}
        assert data["stats"]["y"]["min"] == 0.9


class TestSequenceMetricSummary:
    """Tests for the multi-metric sequence summary."""

    def test_finalize_collects_every_metric(self):
        summary = SequenceMetricSummary(["psnr", "apsnr", "ssim"])
        for index, errors in enumerate((100, 400)):
            summary.add(
                FramePairResult(
                    frame_index=index,
                    metrics={
                        "psnr": _psnr_result("psnr", errors),
                        "apsnr": _psnr_result("apsnr", errors),
                        "ssim": _plain_result("ssim", (0.9,), 0.9),
                    },
                )
            )

        report = summary.finalize()
        assert report.frame_count == 2
        assert set(report.metrics) == {"psnr", "apsnr", "ssim"}
        assert report["apsnr"].average == pytest.approx(10 * math.log10(255**2 / 2.5))
        assert report.to_dict()["frames"] == 2

    def test_metrics_without_frames_are_omitted(self):
        summary = SequenceMetricSummary(["psnr", "ciede2000"])
        summary.add(FramePairResult(frame_index=0, metrics={"psnr": _psnr_result("psnr", 10)}))
        report = summary.finalize()
        assert "psnr" in report
        assert "ciede2000" not in report

    def test_merge(self):
        first = SequenceMetricSummary(["psnr"])
        second = SequenceMetricSummary(["psnr"])
        first.add(FramePairResult(frame_index=0, metrics={"psnr": _psnr_result("psnr", 100)}))
        second.add(FramePairResult(frame_index=1, metrics={"psnr": _psnr_result("psnr", 100)}))
        first.merge(second)
        report = first.finalize()
        assert report.frame_count == 2
        assert report["psnr"].frame_count == 2
