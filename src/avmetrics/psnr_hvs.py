"""PSNR-HVS: PSNR weighted by a model of the human visual system.

The plane is split into 8x8 blocks stepped by 7 samples. Each block pair is
transformed with an orthonormal DCT, coefficient errors below a contrast
masking threshold (derived from the blocks' quadrant variances) are
discarded, and the remainder is weighted by a contrast sensitivity function
(CSF) table before being squared and summed.

Partial blocks at the right and bottom edges are not evaluated.
"""

import logging
import math

import numpy as np

from .config import PSNR_IDENTICAL_DB
from .frame import ColorFamily, Plane

logger = logging.getLogger(__name__)

BLOCK_SIZE = 8
BLOCK_STEP = 7

# Normalized inverse quantization matrices for the 8x8 DCT at the point of
# transparency. They give slightly better MOS agreement than the JPEG based
# matrices of the original paper.
CSF_Y = np.array(
    [
        [1.6193873005, 2.2901594831, 2.08509755623, 1.48366094411, 1.00227514334, 0.678296995242, 0.466224900598, 0.3265091542],
        [2.2901594831, 1.94321815382, 2.04793073064, 1.68731108984, 1.2305666963, 0.868920337363, 0.61280991668, 0.436405793551],
        [2.08509755623, 2.04793073064, 1.34329019223, 1.09205635862, 0.875748795257, 0.670882927016, 0.501731932449, 0.372504254596],
        [1.48366094411, 1.68731108984, 1.09205635862, 0.772819797575, 0.605636379554, 0.48309405692, 0.380429446972, 0.295774038565],
        [1.00227514334, 1.2305666963, 0.875748795257, 0.605636379554, 0.448996256676, 0.352889268808, 0.283006984131, 0.226951348204],
        [0.678296995242, 0.868920337363, 0.670882927016, 0.48309405692, 0.352889268808, 0.27032073436, 0.215017739696, 0.17408067321],
        [0.466224900598, 0.61280991668, 0.501731932449, 0.380429446972, 0.283006984131, 0.215017739696, 0.168869545842, 0.136153931001],
        [0.3265091542, 0.436405793551, 0.372504254596, 0.295774038565, 0.226951348204, 0.17408067321, 0.136153931001, 0.109083846276],
    ]
)

CSF_CB420 = np.array(
    [
        [1.91113096927, 2.46074210438, 1.18284184739, 1.14982565193, 1.05017074788, 0.898018824055, 0.74725392039, 0.615105596242],
        [2.46074210438, 1.58529308355, 1.21363250036, 1.38190029285, 1.33100189972, 1.17428548929, 0.996404342439, 0.830890433625],
        [1.18284184739, 1.21363250036, 0.978712413627, 1.02624506078, 1.03145147362, 0.960060382087, 0.849823426169, 0.731221236837],
        [1.14982565193, 1.38190029285, 1.02624506078, 0.861317501629, 0.801821139099, 0.751437590932, 0.685398513368, 0.608694761374],
        [1.05017074788, 1.33100189972, 1.03145147362, 0.801821139099, 0.676555426187, 0.605503172737, 0.55002013668, 0.495804539034],
        [0.898018824055, 1.17428548929, 0.960060382087, 0.751437590932, 0.605503172737, 0.514674450957, 0.454353482512, 0.407050308965],
        [0.74725392039, 0.996404342439, 0.849823426169, 0.685398513368, 0.55002013668, 0.454353482512, 0.389234902883, 0.342353999733],
        [0.615105596242, 0.830890433625, 0.731221236837, 0.608694761374, 0.495804539034, 0.407050308965, 0.342353999733, 0.295530605237],
    ]
)

CSF_CR420 = np.array(
    [
        [2.03871978502, 2.62502345193, 1.26180942886, 1.11019789803, 1.01397751469, 0.867069376285, 0.721500455585, 0.593906509971],
        [2.62502345193, 1.69112867013, 1.17180569821, 1.3342742857, 1.28513006198, 1.13381474809, 0.962064122248, 0.802254508198],
        [1.26180942886, 1.17180569821, 0.944981930573, 0.990876405848, 0.995903384143, 0.926972725286, 0.820534991409, 0.706020324706],
        [1.11019789803, 1.3342742857, 0.990876405848, 0.831632933426, 0.77418706195, 0.725539939514, 0.661776842059, 0.587716619023],
        [1.01397751469, 1.28513006198, 0.995903384143, 0.77418706195, 0.653238524286, 0.584635025748, 0.531064164893, 0.478717061273],
        [0.867069376285, 1.13381474809, 0.926972725286, 0.725539939514, 0.584635025748, 0.496936637883, 0.438694579826, 0.393021669543],
        [0.721500455585, 0.962064122248, 0.820534991409, 0.661776842059, 0.531064164893, 0.438694579826, 0.375820256136, 0.330555063063],
        [0.593906509971, 0.802254508198, 0.706020324706, 0.587716619023, 0.478717061273, 0.393021669543, 0.330555063063, 0.285345396658],
    ]
)

# Scaling the CSF by this constant and squaring it reproduces the masking
# table of the PSNR-HVS-M paper (Ponomarenko et al., VPQM-07).
CSF_MULTIPLIER = 0.3885746225901003

for _table in (CSF_Y, CSF_CB420, CSF_CR420):
    _table.flags.writeable = False


def _dct_matrix(n: int = BLOCK_SIZE) -> np.ndarray:
    k = np.arange(n)[:, None]
    i = np.arange(n)[None, :]
    matrix = np.sqrt(2.0 / n) * np.cos(np.pi * (2 * i + 1) * k / (2 * n))
    matrix[0, :] = np.sqrt(1.0 / n)
    matrix.flags.writeable = False
    return matrix


DCT_MATRIX = _dct_matrix()


def csf_table(plane_index: int, color_family: ColorFamily = ColorFamily.YUV) -> np.ndarray:
    """CSF table for a plane; RGB planes all use the luma table."""
    if color_family is ColorFamily.RGB or plane_index == 0:
        return CSF_Y
    return CSF_CB420 if plane_index == 1 else CSF_CR420


def masking_table(csf: np.ndarray) -> np.ndarray:
    return (csf * CSF_MULTIPLIER) ** 2


def block_origins(length: int) -> range:
    """Start offsets of the full 8x8 blocks along one dimension."""
    return range(0, length - BLOCK_STEP, BLOCK_STEP)


def weighted_mse_to_db(weighted_mse: float, cap: float = PSNR_IDENTICAL_DB) -> float:
    """``10 * log10(1 / weighted_mse)``, saturated at ``cap``."""
    if weighted_mse <= 0.0:
        return cap
    return min(-10.0 * math.log10(weighted_mse), cap)


def _masking_variance(blocks: np.ndarray) -> np.ndarray:
    """Ratio of summed quadrant variances to the whole-block variance.

    ``blocks`` has shape ``(n, 8, 8)``; blocks with zero variance keep 0.
    """
    n = blocks.shape[0]
    gmean = blocks.mean(axis=(1, 2), keepdims=True)
    gvar = ((blocks - gmean) ** 2).sum(axis=(1, 2)) * (64.0 / 63.0)

    quads = blocks.reshape(n, 2, 4, 2, 4)
    qmean = quads.mean(axis=(2, 4), keepdims=True)
    qvars = ((quads - qmean) ** 2).sum(axis=(2, 4)) * (16.0 / 15.0)
    qsum = qvars.sum(axis=(1, 2))

    ratio = np.zeros_like(gvar)
    np.divide(qsum, gvar, out=ratio, where=gvar > 0.0)
    return ratio


def _blocks_error_vectorized(
    blocks1: np.ndarray, blocks2: np.ndarray, csf: np.ndarray
) -> float:
    mask = masking_table(csf)
    ac_mask = mask.copy()
    ac_mask[0, 0] = 0.0

    dct1 = DCT_MATRIX @ blocks1 @ DCT_MATRIX.T
    dct2 = DCT_MATRIX @ blocks2 @ DCT_MATRIX.T

    energy1 = (dct1**2 * ac_mask).sum(axis=(1, 2))
    energy2 = (dct2**2 * ac_mask).sum(axis=(1, 2))
    mask1 = np.sqrt(energy1 * _masking_variance(blocks1)) / 32.0
    mask2 = np.sqrt(energy2 * _masking_variance(blocks2)) / 32.0
    block_mask = np.maximum(mask1, mask2)

    err = np.abs(dct1 - dct2)
    threshold = block_mask[:, None, None] / mask
    masked = np.maximum(err - threshold, 0.0)
    masked[:, 0, 0] = err[:, 0, 0]

    return float(((masked * csf) ** 2).sum())


def _plane_blocks(samples: np.ndarray) -> np.ndarray:
    windows = np.lib.stride_tricks.sliding_window_view(samples, (BLOCK_SIZE, BLOCK_SIZE))
    picked = windows[::BLOCK_STEP, ::BLOCK_STEP]
    return picked.reshape(-1, BLOCK_SIZE, BLOCK_SIZE).astype(np.float64)


def _plane_error_vectorized(x: np.ndarray, y: np.ndarray, csf: np.ndarray) -> tuple[float, int]:
    h, w = x.shape
    if h < BLOCK_SIZE or w < BLOCK_SIZE:
        return 0.0, 0
    blocks1 = _plane_blocks(x)
    blocks2 = _plane_blocks(y)
    return _blocks_error_vectorized(blocks1, blocks2, csf), blocks1.shape[0] * 64


def _plane_error_reference(x: np.ndarray, y: np.ndarray, csf: np.ndarray) -> tuple[float, int]:
    mask = masking_table(csf)
    h, w = x.shape
    total = 0.0
    coefficients = 0

    for by in block_origins(h):
        for bx in block_origins(w):
            b1 = x[by : by + BLOCK_SIZE, bx : bx + BLOCK_SIZE].astype(np.float64)
            b2 = y[by : by + BLOCK_SIZE, bx : bx + BLOCK_SIZE].astype(np.float64)
            var1 = float(_masking_variance(b1[None])[0])
            var2 = float(_masking_variance(b2[None])[0])

            d1 = DCT_MATRIX @ b1 @ DCT_MATRIX.T
            d2 = DCT_MATRIX @ b2 @ DCT_MATRIX.T

            energy1 = 0.0
            energy2 = 0.0
            for i in range(BLOCK_SIZE):
                for j in range(BLOCK_SIZE):
                    if i == 0 and j == 0:
                        continue
                    energy1 += d1[i, j] ** 2 * mask[i, j]
                    energy2 += d2[i, j] ** 2 * mask[i, j]
            block_mask = max(math.sqrt(energy1 * var1), math.sqrt(energy2 * var2)) / 32.0

            for i in range(BLOCK_SIZE):
                for j in range(BLOCK_SIZE):
                    err = abs(d1[i, j] - d2[i, j])
                    if i != 0 or j != 0:
                        threshold = block_mask / mask[i, j]
                        err = 0.0 if err < threshold else err - threshold
                    total += (err * csf[i, j]) ** 2
                    coefficients += 1

    return total, coefficients


def holds_full_block(plane: Plane) -> bool:
    return plane.width >= BLOCK_SIZE and plane.height >= BLOCK_SIZE


def calculate_plane_psnr_hvs_mse(
    plane1: Plane, plane2: Plane, csf: np.ndarray = CSF_Y, use_simd: bool = True
) -> float:
    """CSF-weighted, masked MSE of one plane pair, normalized by ``sample_max**2``.

    Args:
        plane1: Reference plane
        plane2: Distorted plane with the same dimensions
        csf: 8x8 contrast sensitivity table for this plane
        use_simd: Batch every block through numpy instead of looping

    Returns:
        The normalized weighted MSE; 0.0 for identical planes or planes too
        small to hold a single 8x8 block.
    """
    compute = _plane_error_vectorized if use_simd else _plane_error_reference
    total, coefficients = compute(plane1.samples, plane2.samples, csf)
    if coefficients == 0:
        logger.debug(
            f"No full 8x8 block fits a {plane1.width}x{plane1.height} plane; "
            "it is left out of the frame average"
        )
        return 0.0
    return total / coefficients / float(plane1.sample_max) ** 2
