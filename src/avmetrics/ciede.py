"""CIEDE2000 colour difference between two frames.

Frames are converted to non-linear RGB (BT.709 limited range for YUV input),
then to CIE L*a*b* under a D65 white point, and compared pixel by pixel with
the CIEDE2000 formula using the parametric factors of Yang, Ming and Yu
(2012). The per-frame value is the mean colour difference over the luma grid.

The vectorized path relies on scikit-image; the reference path evaluates the
same formulas one pixel at a time.
"""

import logging
import math

import numpy as np
from skimage.color import deltaE_ciede2000, rgb2lab

from .config import DEFAULT_METRICS_CONFIG, PSNR_IDENTICAL_DB, MetricsConfig
from .error_handling import UnsupportedInput
from .frame import ColorFamily, Frame

logger = logging.getLogger(__name__)

# sRGB (D65) to XYZ and the D65 reference white, as used by skimage.color
XYZ_FROM_RGB = (
    (0.412453, 0.357580, 0.180423),
    (0.212671, 0.715160, 0.072169),
    (0.019334, 0.119193, 0.950227),
)
D65_WHITE = (0.95047, 1.0, 1.08883)

SRGB_LINEAR_THRESHOLD = 0.04045
LAB_EPSILON = 0.008856
LAB_LINEAR_SLOPE = 7.787

_DEG = math.pi / 180.0


def upsample_chroma(plane: np.ndarray, decimation: tuple[int, int], width: int, height: int) -> np.ndarray:
    """Nearest-neighbour upsampling of a chroma plane to the luma grid."""
    ss_x, ss_y = decimation
    if ss_x:
        plane = np.repeat(plane, 1 << ss_x, axis=1)
    if ss_y:
        plane = np.repeat(plane, 1 << ss_y, axis=0)
    return plane[:height, :width]


def yuv_to_rgb(
    y: np.ndarray, u: np.ndarray, v: np.ndarray, bit_depth: int
) -> np.ndarray:
    """BT.709 limited-range YUV samples to non-linear RGB in nominal [0, 1].

    Returns an array of shape ``(height, width, 3)``; values outside the
    nominal range are kept.
    """
    scale = float(1 << bit_depth) / 256.0
    yf = (y.astype(np.float64) - 16.0 * scale) / (219.0 * scale)
    uf = (u.astype(np.float64) - 128.0 * scale) / (224.0 * scale)
    vf = (v.astype(np.float64) - 128.0 * scale) / (224.0 * scale)

    r = yf + 1.28033 * vf
    g = yf - 0.21482 * uf - 0.38059 * vf
    b = yf + 2.12798 * uf
    return np.stack([r, g, b], axis=-1)


def frame_to_rgb(frame: Frame) -> np.ndarray:
    """Full-resolution non-linear RGB image of a frame with chroma."""
    if not frame.has_chroma:
        raise UnsupportedInput(
            "CIEDE2000 requires chroma planes",
            context={"chroma_sampling": frame.chroma_sampling.value},
        )

    if frame.color_family is ColorFamily.RGB:
        sample_max = float(frame.planes[0].sample_max)
        return np.stack([p.samples.astype(np.float64) / sample_max for p in frame.planes], axis=-1)

    decimation = frame.chroma_sampling.decimation
    luma = frame.planes[0]
    u = upsample_chroma(frame.planes[1].samples, decimation, luma.width, luma.height)
    v = upsample_chroma(frame.planes[2].samples, decimation, luma.width, luma.height)
    return yuv_to_rgb(luma.samples, u, v, frame.bit_depth)


def _srgb_to_linear(c: float) -> float:
    if c > SRGB_LINEAR_THRESHOLD:
        return ((c + 0.055) / 1.055) ** 2.4
    return c / 12.92


def _lab_map(t: float) -> float:
    if t > LAB_EPSILON:
        return t ** (1.0 / 3.0)
    return LAB_LINEAR_SLOPE * t + 16.0 / 116.0


def rgb_to_lab(r: float, g: float, b: float) -> tuple[float, float, float]:
    """Convert one non-linear sRGB triple to CIE L*a*b* (D65)."""
    lin = (_srgb_to_linear(r), _srgb_to_linear(g), _srgb_to_linear(b))
    x, y, z = (sum(m * c for m, c in zip(row, lin)) for row in XYZ_FROM_RGB)
    fx = _lab_map(x / D65_WHITE[0])
    fy = _lab_map(y / D65_WHITE[1])
    fz = _lab_map(z / D65_WHITE[2])
    return (116.0 * fy - 16.0, 500.0 * (fx - fy), 200.0 * (fy - fz))


def _hue_angle(b: float, a: float) -> float:
    h = math.atan2(b, a)
    return h + 2.0 * math.pi if h < 0.0 else h


def delta_e_2000(
    lab1: tuple[float, float, float],
    lab2: tuple[float, float, float],
    k_l: float = 1.0,
    k_c: float = 1.0,
    k_h: float = 1.0,
) -> float:
    """CIEDE2000 difference of two L*a*b* colours (Sharma, Wu and Dalal, 2005).

    Zero chroma on either side gives a zero hue difference, and the final
    radicand is clamped at zero.
    """
    l1, a1, b1 = lab1
    l2, a2, b2 = lab2

    c_bar = 0.5 * (math.hypot(a1, b1) + math.hypot(a2, b2))
    c7 = c_bar**7
    g = 0.5 * (1.0 - math.sqrt(c7 / (c7 + 25.0**7)))
    c1p = math.hypot(a1 * (1.0 + g), b1)
    c2p = math.hypot(a2 * (1.0 + g), b2)
    h1p = _hue_angle(b1, a1 * (1.0 + g))
    h2p = _hue_angle(b2, a2 * (1.0 + g))

    l_bar = 0.5 * (l1 + l2)
    tmp = (l_bar - 50.0) ** 2
    s_l = 1.0 + 0.015 * tmp / math.sqrt(20.0 + tmp)
    l_term = (l2 - l1) / (k_l * s_l)

    cp_bar = 0.5 * (c1p + c2p)
    s_c = 1.0 + 0.045 * cp_bar
    c_term = (c2p - c1p) / (k_c * s_c)

    h_diff = h2p - h1p
    h_sum = h1p + h2p
    cc = c1p * c2p
    if cc == 0.0:
        dh = 0.0
        h_bar = h_sum
    else:
        dh = h_diff
        if h_diff > math.pi:
            dh -= 2.0 * math.pi
        elif h_diff < -math.pi:
            dh += 2.0 * math.pi
        h_bar = h_sum
        if abs(h_diff) > math.pi:
            h_bar += 2.0 * math.pi if h_sum < 2.0 * math.pi else -2.0 * math.pi
        h_bar *= 0.5

    dh_term = 2.0 * math.sqrt(cc) * math.sin(dh / 2.0)
    t = (
        1.0
        - 0.17 * math.cos(h_bar - 30.0 * _DEG)
        + 0.24 * math.cos(2.0 * h_bar)
        + 0.32 * math.cos(3.0 * h_bar + 6.0 * _DEG)
        - 0.20 * math.cos(4.0 * h_bar - 63.0 * _DEG)
    )
    s_h = 1.0 + 0.015 * cp_bar * t
    h_term = dh_term / (k_h * s_h)

    cp7 = cp_bar**7
    r_c = 2.0 * math.sqrt(cp7 / (cp7 + 25.0**7))
    d_theta = 30.0 * _DEG * math.exp(-(((h_bar / _DEG - 275.0) / 25.0) ** 2))
    r_term = -math.sin(2.0 * d_theta) * r_c * c_term * h_term

    return math.sqrt(max(l_term**2 + c_term**2 + h_term**2 + r_term, 0.0))


def _delta_e_map_vectorized(rgb1: np.ndarray, rgb2: np.ndarray, config: MetricsConfig) -> np.ndarray:
    return deltaE_ciede2000(
        rgb2lab(rgb1),
        rgb2lab(rgb2),
        kL=config.CIEDE_KL,
        kC=config.CIEDE_KC,
        kH=config.CIEDE_KH,
    )


def _delta_e_map_reference(rgb1: np.ndarray, rgb2: np.ndarray, config: MetricsConfig) -> np.ndarray:
    h, w, _ = rgb1.shape
    out = np.empty((h, w), dtype=np.float64)
    for row in range(h):
        for col in range(w):
            out[row, col] = delta_e_2000(
                rgb_to_lab(*rgb1[row, col]),
                rgb_to_lab(*rgb2[row, col]),
                config.CIEDE_KL,
                config.CIEDE_KC,
                config.CIEDE_KH,
            )
    return out


def calculate_frame_delta_e(
    frame1: Frame,
    frame2: Frame,
    config: MetricsConfig = DEFAULT_METRICS_CONFIG,
    use_simd: bool | None = None,
) -> float:
    """Mean CIEDE2000 difference over every luma position of a frame pair.

    Raises:
        UnsupportedInput: The frames carry no chroma
        ValueError: The colour difference map is not finite
    """
    if use_simd is None:
        use_simd = bool(config.USE_SIMD)

    rgb1 = frame_to_rgb(frame1)
    rgb2 = frame_to_rgb(frame2)
    compute = _delta_e_map_vectorized if use_simd else _delta_e_map_reference
    delta_e = compute(rgb1, rgb2, config)

    mean = float(delta_e.mean())
    if not math.isfinite(mean):
        raise ValueError("CIEDE2000 produced a non-finite colour difference")
    return mean


def delta_e_score(mean_delta_e: float, cap: float = PSNR_IDENTICAL_DB) -> float:
    """Log-scaled companion score ``45 - 20*log10(mean ΔE)``, capped at ``cap`` dB."""
    if mean_delta_e <= 0.0:
        return cap
    return min(45.0 - 20.0 * math.log10(mean_delta_e), cap)
