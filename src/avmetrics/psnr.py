"""Peak Signal-to-Noise Ratio kernels.

PSNR and APSNR share one per-plane kernel: the exact squared error of the
plane, its pixel count and its sample maximum. The two metrics only differ
in how those components are aggregated over a sequence (see
:mod:`avmetrics.results`).
"""

import logging
import math
from collections.abc import Sequence
from typing import NamedTuple

import cv2
import numpy as np

from .config import PSNR_IDENTICAL_DB
from .frame import Plane

logger = logging.getLogger(__name__)

# cv2.norm accumulates in float64, which stays exact for 8-bit planes up to
# 2**53 / 255**2 pixels.
_CV_EXACT_PIXELS_DEPTH8 = (1 << 53) // (255 * 255)


class PsnrMetrics(NamedTuple):
    """Intermediate PSNR components of one plane."""

    sq_err: int
    n_pixels: int
    sample_max: int


def psnr_from_error(
    sq_err: float, n_pixels: int, sample_max: int, cap: float = PSNR_IDENTICAL_DB
) -> float:
    """Convert a squared error total into dB.

    Args:
        sq_err: Sum of squared sample differences
        n_pixels: Number of samples the error was summed over
        sample_max: Largest representable sample value
        cap: Value reported for identical planes; no result exceeds it

    Returns:
        ``10 * log10(sample_max**2 * n_pixels / sq_err)``, saturated at ``cap``
    """
    if sq_err <= 0 or n_pixels <= 0:
        return cap
    value = 10.0 * math.log10(float(sample_max) ** 2 * n_pixels / float(sq_err))
    return min(value, cap)


def squared_error_reference(samples1: np.ndarray, samples2: np.ndarray) -> int:
    """Sum of squared differences accumulated in int64."""
    diff = samples1.astype(np.int64) - samples2.astype(np.int64)
    return int(np.einsum("ij,ij->", diff, diff))


def squared_error_depth8(samples1: np.ndarray, samples2: np.ndarray, use_simd: bool = True) -> int:
    if use_simd and samples1.size <= _CV_EXACT_PIXELS_DEPTH8:
        return int(cv2.norm(samples1, samples2, cv2.NORM_L2SQR))
    return squared_error_reference(samples1, samples2)


def squared_error_depth16(samples1: np.ndarray, samples2: np.ndarray, use_simd: bool = True) -> int:
    # 16-bit differences overflow the float64 mantissa on large planes, so
    # both paths accumulate in integers.
    return squared_error_reference(samples1, samples2)


def _plane_metrics(plane1: Plane, plane2: Plane, squared_error, use_simd: bool) -> PsnrMetrics:
    sq_err = squared_error(plane1.samples, plane2.samples, use_simd)
    return PsnrMetrics(sq_err=sq_err, n_pixels=plane1.pixel_count, sample_max=plane1.sample_max)


def calculate_plane_psnr_metrics_depth8(
    plane1: Plane, plane2: Plane, use_simd: bool = True
) -> PsnrMetrics:
    """PSNR components of an 8-bit (or shallower) plane pair."""
    return _plane_metrics(plane1, plane2, squared_error_depth8, use_simd)


def calculate_plane_psnr_metrics_depth16(
    plane1: Plane, plane2: Plane, use_simd: bool = True
) -> PsnrMetrics:
    """PSNR components of a 9- to 16-bit plane pair."""
    return _plane_metrics(plane1, plane2, squared_error_depth16, use_simd)


def calculate_psnr(metrics: PsnrMetrics, cap: float = PSNR_IDENTICAL_DB) -> float:
    return psnr_from_error(metrics.sq_err, metrics.n_pixels, metrics.sample_max, cap)


def calculate_summed_psnr(
    metrics: Sequence[PsnrMetrics], cap: float = PSNR_IDENTICAL_DB
) -> float:
    """PSNR of several planes (or frames) pooled by pixel count.

    Errors and pixel counts are summed before the conversion to dB, so the
    result is the PSNR of the mean squared error, not the mean of PSNRs.
    """
    if not metrics:
        return cap
    return psnr_from_error(
        sum(m.sq_err for m in metrics),
        sum(m.n_pixels for m in metrics),
        max(m.sample_max for m in metrics),
        cap,
    )
