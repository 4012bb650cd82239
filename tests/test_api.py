"""End-to-end tests for the high-level avmetrics API."""

import math

import numpy as np
import pytest

from avmetrics import api
from avmetrics.ciede import calculate_frame_delta_e
from avmetrics.config import MS_SSIM_WEIGHTS, MetricsConfig
from avmetrics.error_handling import (
    FormatMismatch,
    FrameCountMismatch,
    UnsupportedInput,
)
from avmetrics.frame import ChromaSampling, Frame
from avmetrics.frame_source import InMemoryFrameSource
from conftest import constant_planes, make_yuv_frame, noisy, shifted, write_y4m

UNIT_MSE_PSNR = 10 * math.log10(255**2)
SHIFT_SSIM = 1 - 1 / 33031.5025
# Lab (54.5284, -0.0015, 0.0028) vs (54.9852, 1.4076, -1.3834), kL=0.65 kC=1 kH=4
SHIFT_DELTA_E = 2.4772125


class TestShiftedSequence:
    """Two 2-frame 32x32 4:4:4 sequences at a constant 128 and 129."""

    def test_psnr(self, shift_sequence_files):
        result = api.calculate_video_psnr(*shift_sequence_files)
        for plane in ("y", "u", "v"):
            assert result[plane] == pytest.approx(UNIT_MSE_PSNR, abs=1e-6)
        assert result.avg == pytest.approx(48.1308036, abs=1e-6)

    def test_apsnr_equals_psnr_for_uniform_error(self, shift_sequence_files):
        apsnr = api.calculate_video_apsnr(*shift_sequence_files)
        assert apsnr.avg == pytest.approx(UNIT_MSE_PSNR, abs=1e-6)
        assert apsnr.y == pytest.approx(UNIT_MSE_PSNR, abs=1e-6)

    def test_ssim(self, shift_sequence_files):
        result = api.calculate_video_ssim(*shift_sequence_files)
        assert result.y == pytest.approx(SHIFT_SSIM, abs=1e-9)
        assert result.avg == pytest.approx(SHIFT_SSIM, abs=1e-9)

    def test_msssim_uses_two_renormalized_scales(self, shift_sequence_files):
        # 32x32 -> 16x16 still fits the 11x11 window, 8x8 does not
        w0, w1 = MS_SSIM_WEIGHTS[:2]
        expected = SHIFT_SSIM ** (w1 / (w0 + w1))
        result = api.calculate_video_msssim(*shift_sequence_files)
        assert result.avg == pytest.approx(expected, abs=1e-9)

    def test_psnr_hvs(self, shift_sequence_files):
        result = api.calculate_video_psnr_hvs(*shift_sequence_files)
        expected = 20 * math.log10(255 / 1.6193873005)
        assert result.y == pytest.approx(expected, rel=1e-9)
        assert result.avg < 100.0

    def test_ciede(self, shift_sequence_files):
        result = api.calculate_video_ciede(*shift_sequence_files)
        assert result.mean_delta_e == pytest.approx(SHIFT_DELTA_E, abs=1e-3)
        assert result.delta_e_score == pytest.approx(45 - 20 * math.log10(result.mean_delta_e))

        frame_a = make_grey_frame(128)
        frame_b = make_grey_frame(129)
        scalar = calculate_frame_delta_e(frame_a, frame_b, MetricsConfig(USE_SIMD=False))
        assert result.mean_delta_e == pytest.approx(scalar, abs=1e-6)

    def test_compare_videos_report(self, shift_sequence_files):
        seen = []
        report = api.compare_videos(
            *shift_sequence_files, on_frame=lambda r: seen.append(r.frame_index)
        )
        assert report.frame_count == 2
        assert seen == [0, 1]
        assert set(report.metrics) == {"psnr", "apsnr", "psnr_hvs", "ssim", "msssim", "ciede2000"}
        assert report.to_dict()["metrics"]["psnr"]["frames"] == 2

    def test_frame_limit(self, shift_sequence_files):
        report = api.compare_videos(*shift_sequence_files, metrics=["psnr"], frame_limit=1)
        assert report.frame_count == 1


def make_grey_frame(value, size=32):
    return Frame.from_arrays(
        constant_planes(size, size, value), bit_depth=8, chroma_sampling=ChromaSampling.CS444
    )


class TestVideoErrors:
    """Error handling of the file-level API."""

    def test_420_vs_444_is_format_mismatch(self, tmp_path):
        a = write_y4m(
            tmp_path / "a.y4m",
            [[np.zeros((16, 16), np.uint8), np.zeros((8, 8), np.uint8), np.zeros((8, 8), np.uint8)]],
            16,
            16,
            "420jpeg",
        )
        b = write_y4m(tmp_path / "b.y4m", [constant_planes(16, 16, 0)], 16, 16, "444")
        with pytest.raises(FormatMismatch) as exc_info:
            api.calculate_video_psnr(a, b)
        assert exc_info.value.attribute == "chroma subsampling"

    def test_strict_frame_count(self, tmp_path):
        a = write_y4m(tmp_path / "a.y4m", [constant_planes(16, 16, 0)] * 3, 16, 16, "444")
        b = write_y4m(tmp_path / "b.y4m", [constant_planes(16, 16, 0)] * 2, 16, 16, "444")

        with pytest.raises(FrameCountMismatch):
            api.compare_videos(a, b, ["psnr"], reconcile_frame_counts=True)
        assert api.compare_videos(a, b, ["psnr"]).frame_count == 2

    def test_ciede_on_monochrome(self, tmp_path):
        a = write_y4m(tmp_path / "a.y4m", [constant_planes(16, 16, 30, planes=1)], 16, 16, "mono")
        b = write_y4m(tmp_path / "b.y4m", [constant_planes(16, 16, 40, planes=1)], 16, 16, "mono")
        with pytest.raises(UnsupportedInput):
            api.calculate_video_ciede(a, b)
        assert api.calculate_video_psnr(a, b).y == pytest.approx(10 * math.log10(255**2 / 100))


class TestFrameApi:
    """Tests for the single frame-pair helpers."""

    def test_identical_frames(self, yuv420_frame):
        assert api.calculate_frame_psnr(yuv420_frame, yuv420_frame).avg == 100.0
        assert api.calculate_frame_psnr_hvs(yuv420_frame, yuv420_frame).avg == 100.0
        assert api.calculate_frame_ssim(yuv420_frame, yuv420_frame).avg == pytest.approx(1.0)
        assert api.calculate_frame_msssim(yuv420_frame, yuv420_frame).avg == pytest.approx(1.0)
        ciede = api.calculate_frame_ciede(yuv420_frame, yuv420_frame)
        assert ciede.mean_delta_e == 0.0
        assert ciede.delta_e_score == 100.0

    def test_apsnr_equals_psnr_for_one_frame(self, yuv420_frame):
        distorted = noisy(yuv420_frame, 5.0)
        assert api.calculate_frame_apsnr(yuv420_frame, distorted) == api.calculate_frame_psnr(
            yuv420_frame, distorted
        )

    def test_uniform_shift(self):
        reference = make_yuv_frame(32, 32, ChromaSampling.CS420, seed=1)
        result = api.calculate_frame_psnr(reference, shifted(reference, 1))
        assert result.to_dict() == pytest.approx(
            {"y": UNIT_MSE_PSNR, "u": UNIT_MSE_PSNR, "v": UNIT_MSE_PSNR, "avg": UNIT_MSE_PSNR}
        )

    def test_ciede_requires_chroma(self):
        frame = make_yuv_frame(16, 16, ChromaSampling.CS400)
        with pytest.raises(UnsupportedInput):
            api.calculate_frame_ciede(frame, frame)

    def test_ciede_validates_formats_first(self):
        with pytest.raises(FormatMismatch):
            api.calculate_frame_ciede(
                make_yuv_frame(16, 16, ChromaSampling.CS400),
                make_yuv_frame(16, 16, ChromaSampling.CS420),
            )

    def test_compare_sources(self):
        frames = [make_yuv_frame(16, 16, seed=i) for i in range(3)]
        report = api.compare_sources(
            InMemoryFrameSource(frames),
            InMemoryFrameSource([noisy(f, 3.0) for f in frames]),
            metrics=["ssim", "psnr"],
        )
        assert report.frame_count == 3
        assert set(report.metrics) == {"psnr", "ssim"}
