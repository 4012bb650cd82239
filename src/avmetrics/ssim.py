"""Structural Similarity (SSIM) and Multi-Scale SSIM kernels.

Both metrics use a normalized Gaussian window (11x11, sigma 1.5 by default)
evaluated only where the window fits entirely inside the plane. The
vectorized path filters with OpenCV; the reference path convolves with
numpy sliding windows. Both accumulate in float64 and agree to rounding.
"""

import logging
from functools import lru_cache

import cv2
import numpy as np

from .config import DEFAULT_METRICS_CONFIG, MetricsConfig
from .frame import Plane

logger = logging.getLogger(__name__)


@lru_cache(maxsize=16)
def gaussian_kernel(size: int, sigma: float) -> np.ndarray:
    """1-D Gaussian taps of odd length ``size``, normalized to sum to 1."""
    radius = size // 2
    taps = np.exp(-(np.arange(-radius, radius + 1, dtype=np.float64) ** 2) / (2.0 * sigma**2))
    taps /= taps.sum()
    taps.flags.writeable = False
    return taps


def effective_window_size(width: int, height: int, window_size: int) -> int:
    """Largest odd window no larger than ``window_size`` that fits the plane."""
    size = min(window_size, width, height)
    if size % 2 == 0:
        size -= 1
    return max(size, 1)


def _filter_valid_simd(image: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    radius = len(kernel) // 2
    filtered = cv2.sepFilter2D(
        image, cv2.CV_64F, kernel, kernel, borderType=cv2.BORDER_REFLECT
    )
    h, w = image.shape
    return filtered[radius : h - radius, radius : w - radius]


def _filter_valid_reference(image: np.ndarray, kernel: np.ndarray) -> np.ndarray:
    size = len(kernel)
    rows = np.lib.stride_tricks.sliding_window_view(image, size, axis=1) @ kernel
    return np.lib.stride_tricks.sliding_window_view(rows, size, axis=0) @ kernel


def ssim_terms(
    x: np.ndarray,
    y: np.ndarray,
    sample_max: int,
    window_size: int,
    config: MetricsConfig = DEFAULT_METRICS_CONFIG,
    use_simd: bool = True,
) -> tuple[float, float]:
    """Mean SSIM and mean contrast-structure term of two float64 planes.

    Args:
        x: Reference samples as float64
        y: Distorted samples, same shape as ``x``
        sample_max: Largest representable sample value
        window_size: Odd window side, no larger than either plane dimension
        config: Supplies sigma and the K1/K2 constants
        use_simd: Select the OpenCV filter instead of the numpy reference

    Returns:
        ``(ssim, cs)`` averaged over every valid window position. The SSIM
        map is clipped to [-1, 1] before averaging.
    """
    kernel = gaussian_kernel(window_size, config.SSIM_SIGMA)
    filt = _filter_valid_simd if use_simd else _filter_valid_reference

    c1 = (config.SSIM_K1 * sample_max) ** 2
    c2 = (config.SSIM_K2 * sample_max) ** 2

    mu_x = filt(x, kernel)
    mu_y = filt(y, kernel)
    mu_xx = mu_x * mu_x
    mu_yy = mu_y * mu_y
    mu_xy = mu_x * mu_y

    sigma_xx = filt(x * x, kernel) - mu_xx
    sigma_yy = filt(y * y, kernel) - mu_yy
    sigma_xy = filt(x * y, kernel) - mu_xy

    cs_map = (2.0 * sigma_xy + c2) / (sigma_xx + sigma_yy + c2)
    ssim_map = (2.0 * mu_xy + c1) / (mu_xx + mu_yy + c1) * cs_map
    np.clip(ssim_map, -1.0, 1.0, out=ssim_map)

    return float(ssim_map.mean()), float(cs_map.mean())


def calculate_plane_ssim(
    plane1: Plane,
    plane2: Plane,
    config: MetricsConfig = DEFAULT_METRICS_CONFIG,
    use_simd: bool | None = None,
) -> float:
    """SSIM of one plane pair, in [-1, 1] with 1 for identical planes."""
    if use_simd is None:
        use_simd = bool(config.USE_SIMD)
    window = effective_window_size(plane1.width, plane1.height, config.SSIM_WINDOW_SIZE)
    x = plane1.samples.astype(np.float64)
    y = plane2.samples.astype(np.float64)
    value, _ = ssim_terms(x, y, plane1.sample_max, window, config, use_simd)
    return value


def downsample_box2(image: np.ndarray, use_simd: bool = True) -> np.ndarray:
    """Halve both dimensions with a 2x2 box average, dropping an odd last row/column."""
    h, w = image.shape[0] // 2, image.shape[1] // 2
    cropped = image[: h * 2, : w * 2]
    if use_simd:
        return cv2.resize(cropped, (w, h), interpolation=cv2.INTER_AREA)
    return cropped.reshape(h, 2, w, 2).mean(axis=(1, 3))


def calculate_plane_msssim(
    plane1: Plane,
    plane2: Plane,
    config: MetricsConfig = DEFAULT_METRICS_CONFIG,
    use_simd: bool | None = None,
) -> float:
    """Multi-Scale SSIM of one plane pair, in [0, 1].

    The pyramid stops early when a downscaled plane no longer fits the
    window; the weights of the scales actually used are then renormalized to
    sum to 1.
    """
    if use_simd is None:
        use_simd = bool(config.USE_SIMD)

    weights = np.asarray(config.MS_SSIM_WEIGHTS, dtype=np.float64)
    window = effective_window_size(plane1.width, plane1.height, config.SSIM_WINDOW_SIZE)
    sample_max = plane1.sample_max

    x = plane1.samples.astype(np.float64)
    y = plane2.samples.astype(np.float64)

    cs_values: list[float] = []
    last_ssim = 1.0
    for scale in range(len(weights)):
        if scale > 0:
            if x.shape[0] // 2 < window or x.shape[1] // 2 < window:
                break
            x = downsample_box2(x, use_simd)
            y = downsample_box2(y, use_simd)
        ssim_value, cs_value = ssim_terms(x, y, sample_max, window, config, use_simd)
        cs_values.append(min(max(cs_value, 0.0), 1.0))
        last_ssim = min(max(ssim_value, 0.0), 1.0)

    used = len(cs_values)
    if used < len(weights):
        logger.debug(
            f"MS-SSIM pyramid stopped after {used} of {len(weights)} scales "
            f"for a {plane1.width}x{plane1.height} plane"
        )
        weights = weights[:used] / weights[:used].sum()

    result = 1.0
    for cs_value, weight in zip(cs_values[:-1], weights[: used - 1]):
        result *= cs_value**weight
    result *= last_ssim ** weights[used - 1]
    return float(result)
