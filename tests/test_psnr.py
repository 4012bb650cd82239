"""Tests for avmetrics.psnr module."""

import math

import numpy as np
import pytest
from skimage.metrics import peak_signal_noise_ratio

from avmetrics.frame import Plane
from avmetrics.psnr import (
    PsnrMetrics,
    calculate_plane_psnr_metrics_depth8,
    calculate_plane_psnr_metrics_depth16,
    calculate_psnr,
    calculate_summed_psnr,
    psnr_from_error,
    squared_error_depth8,
    squared_error_reference,
)
from conftest import textured_plane


def _plane(array, bit_depth=8):
    return Plane.from_array(array, bit_depth=bit_depth)


class TestPsnrFromError:
    """Tests for the dB conversion."""

    def test_zero_error_is_sentinel(self):
        assert psnr_from_error(0, 100, 255) == 100.0

    def test_custom_cap(self):
        assert psnr_from_error(0, 100, 255, cap=60.0) == 60.0

    def test_unit_mse(self):
        assert psnr_from_error(100, 100, 255) == pytest.approx(10 * math.log10(255**2))
        assert psnr_from_error(100, 100, 255) == pytest.approx(48.1308036, abs=1e-6)

    def test_values_never_exceed_cap(self):
        # One wrong sample in a huge plane would otherwise exceed 100 dB
        assert psnr_from_error(1, 10**12, 255) == 100.0


class TestPlaneKernels:
    """Tests for the per-plane PSNR kernels."""

    def test_identical_planes(self):
        data = textured_plane(32, 32)
        metrics = calculate_plane_psnr_metrics_depth8(_plane(data), _plane(data))
        assert metrics == PsnrMetrics(sq_err=0, n_pixels=1024, sample_max=255)
        assert calculate_psnr(metrics) == 100.0

    def test_matches_skimage(self):
        a = textured_plane(40, 56, seed=1)
        b = textured_plane(40, 56, seed=2)
        metrics = calculate_plane_psnr_metrics_depth8(_plane(a), _plane(b))
        expected = peak_signal_noise_ratio(a, b, data_range=255)
        assert calculate_psnr(metrics) == pytest.approx(expected, rel=1e-9)

    def test_vectorized_and_reference_paths_agree(self):
        a = textured_plane(33, 47, seed=4)
        b = textured_plane(33, 47, seed=5)
        assert squared_error_depth8(a, b, use_simd=True) == squared_error_reference(a, b)
        assert squared_error_depth8(a, b, use_simd=False) == squared_error_reference(a, b)

    def test_monotonic_in_error(self):
        base = textured_plane(32, 32, seed=7).astype(np.int64)
        values = []
        for delta in (1, 2, 4, 8):
            distorted = (base + delta).clip(0, 255).astype(np.uint8)
            metrics = calculate_plane_psnr_metrics_depth8(_plane(base.astype(np.uint8)), _plane(distorted))
            values.append(calculate_psnr(metrics))
        assert values == sorted(values, reverse=True)
        assert len(set(values)) == 4

    def test_sixteen_bit_error_is_exact(self):
        a = np.zeros((64, 64), dtype=np.uint16)
        b = np.full((64, 64), 65535, dtype=np.uint16)
        metrics = calculate_plane_psnr_metrics_depth16(_plane(a, 16), _plane(b, 16))
        assert metrics.sq_err == 65535**2 * 64 * 64
        assert calculate_psnr(metrics) == pytest.approx(0.0, abs=1e-12)

    def test_bit_depth_scaling_invariance(self):
        a8 = textured_plane(32, 32, seed=10)
        b8 = textured_plane(32, 32, seed=11)
        a10 = a8.astype(np.uint16) << 2
        b10 = b8.astype(np.uint16) << 2

        psnr8 = calculate_psnr(calculate_plane_psnr_metrics_depth8(_plane(a8), _plane(b8)))
        psnr10 = calculate_psnr(calculate_plane_psnr_metrics_depth16(_plane(a10, 10), _plane(b10, 10)))

        # The peak scales by 1023/255 rather than exactly 4
        assert psnr10 - psnr8 == pytest.approx(20 * math.log10(1023 / 1020), abs=1e-9)
        assert psnr10 == pytest.approx(psnr8, abs=0.03)


class TestSummedPsnr:
    """Tests for pixel-weighted pooling."""

    def test_pools_errors_not_decibels(self):
        luma = PsnrMetrics(sq_err=400, n_pixels=400, sample_max=255)
        chroma = PsnrMetrics(sq_err=0, n_pixels=100, sample_max=255)

        pooled = calculate_summed_psnr([luma, chroma, chroma])

        assert pooled == pytest.approx(10 * math.log10(255**2 * 600 / 400))
        mean_of_db = (calculate_psnr(luma) + 2 * calculate_psnr(chroma)) / 3
        assert pooled != pytest.approx(mean_of_db)

    def test_all_identical(self):
        zero = PsnrMetrics(sq_err=0, n_pixels=10, sample_max=255)
        assert calculate_summed_psnr([zero, zero]) == 100.0
