"""Configuration settings for avmetrics."""

import os
from dataclasses import dataclass

# Saturating value reported for PSNR-style metrics when two planes match exactly.
PSNR_IDENTICAL_DB = 100.0

# MS-SSIM scale weights from Wang, Simoncelli and Bovik (2003). They do not
# sum exactly to 1 because of rounding in the paper.
MS_SSIM_WEIGHTS: tuple[float, ...] = (0.0448, 0.2856, 0.3001, 0.2363, 0.1333)


def simd_enabled_from_env() -> bool:
    """Return ``False`` when ``AVMETRICS_NOSIMD`` requests the reference paths."""
    flag = os.environ.get("AVMETRICS_NOSIMD", "").strip().lower()
    return flag not in {"1", "true", "yes", "on"}


@dataclass
class MetricsConfig:
    """Configuration for quality metrics calculation."""

    # Gaussian SSIM window (side length in samples, must be odd)
    SSIM_WINDOW_SIZE: int = 11
    SSIM_SIGMA: float = 1.5

    # SSIM stabilizing constants are (K * sample_max) ** 2
    SSIM_K1: float = 0.01
    SSIM_K2: float = 0.03

    # MS-SSIM pyramid depth and weights (one weight per scale)
    MS_SSIM_SCALES: int = 5
    MS_SSIM_WEIGHTS: tuple[float, ...] | None = None

    # Reported PSNR / PSNR-HVS value for identical planes, also the upper cap
    PSNR_MAX_DB: float = PSNR_IDENTICAL_DB

    # CIEDE2000 parametric factors ("Color Image Quality Assessment Based on
    # CIEDE2000", Yang, Ming and Yu, 2012)
    CIEDE_KL: float = 0.65
    CIEDE_KC: float = 1.0
    CIEDE_KH: float = 4.0

    # Vectorized (OpenCV / batched numpy) kernels vs portable reference kernels
    USE_SIMD: bool | None = None

    # Run the planes of one frame pair concurrently
    PARALLEL_PLANES: bool = True

    def __post_init__(self) -> None:
        if self.USE_SIMD is None:
            self.USE_SIMD = simd_enabled_from_env()

        if self.MS_SSIM_WEIGHTS is None:
            self.MS_SSIM_WEIGHTS = MS_SSIM_WEIGHTS[: self.MS_SSIM_SCALES]

        if self.SSIM_WINDOW_SIZE < 1 or self.SSIM_WINDOW_SIZE % 2 == 0:
            raise ValueError(
                f"SSIM_WINDOW_SIZE must be a positive odd number, got {self.SSIM_WINDOW_SIZE}"
            )

        if self.SSIM_SIGMA <= 0:
            raise ValueError("SSIM_SIGMA must be positive")

        if self.SSIM_K1 <= 0 or self.SSIM_K2 <= 0:
            raise ValueError("SSIM constants K1 and K2 must be positive")

        if self.MS_SSIM_SCALES < 1 or self.MS_SSIM_SCALES > len(MS_SSIM_WEIGHTS):
            raise ValueError(
                f"MS_SSIM_SCALES must be between 1 and {len(MS_SSIM_WEIGHTS)}, "
                f"got {self.MS_SSIM_SCALES}"
            )

        if len(self.MS_SSIM_WEIGHTS) != self.MS_SSIM_SCALES:
            raise ValueError(
                f"Expected {self.MS_SSIM_SCALES} MS-SSIM weights, "
                f"got {len(self.MS_SSIM_WEIGHTS)}"
            )

        if any(w < 0 for w in self.MS_SSIM_WEIGHTS) or sum(self.MS_SSIM_WEIGHTS) <= 0:
            raise ValueError(
                f"MS-SSIM weights must be non-negative with a positive sum, got {self.MS_SSIM_WEIGHTS}"
            )

        if self.PSNR_MAX_DB <= 0:
            raise ValueError("PSNR_MAX_DB must be positive")

        if min(self.CIEDE_KL, self.CIEDE_KC, self.CIEDE_KH) <= 0:
            raise ValueError("CIEDE2000 parametric factors must be positive")


DEFAULT_METRICS_CONFIG = MetricsConfig()
