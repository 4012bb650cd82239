"""Shared fixtures and frame builders for the avmetrics test-suite."""

import logging
from pathlib import Path

import numpy as np
import pytest

from avmetrics.frame import ChromaSampling, ColorFamily, Frame


def textured_plane(height: int, width: int, seed: int = 0, low: int = 16, high: int = 235) -> np.ndarray:
    """Random 8-bit plane kept away from the range limits so +1 shifts never clip."""
    rng = np.random.default_rng(seed)
    return rng.integers(low, high, size=(height, width), dtype=np.uint8)


def make_yuv_frame(
    width: int,
    height: int,
    sampling: ChromaSampling = ChromaSampling.CS420,
    seed: int = 0,
    bit_depth: int = 8,
) -> Frame:
    """Textured YUV frame with correctly sized chroma planes."""
    arrays = [textured_plane(height, width, seed)]
    if sampling is not ChromaSampling.CS400:
        cw, ch = sampling.chroma_dimensions(width, height)
        arrays += [textured_plane(ch, cw, seed + 1), textured_plane(ch, cw, seed + 2)]
    if bit_depth > 8:
        arrays = [a.astype(np.uint16) << (bit_depth - 8) for a in arrays]
    return Frame.from_arrays(arrays, bit_depth=bit_depth, chroma_sampling=sampling)


def make_rgb_frame(width: int, height: int, seed: int = 0) -> Frame:
    arrays = [textured_plane(height, width, seed + i) for i in range(3)]
    return Frame.from_arrays(
        arrays, bit_depth=8, chroma_sampling=ChromaSampling.CS444, color_family=ColorFamily.RGB
    )


def shifted(frame: Frame, delta: int) -> Frame:
    """Copy of ``frame`` with every sample offset by ``delta``."""
    arrays = [p.samples.astype(np.int64) + delta for p in frame.planes]
    dtype = frame.pixel_depth.dtype
    return Frame.from_arrays(
        [a.astype(dtype) for a in arrays],
        bit_depth=frame.bit_depth,
        chroma_sampling=frame.chroma_sampling,
        color_family=frame.color_family,
    )


def noisy(frame: Frame, sigma: float, seed: int = 1) -> Frame:
    """Copy of ``frame`` with clipped Gaussian noise added to every plane."""
    rng = np.random.default_rng(seed)
    sample_max = frame.planes[0].sample_max
    arrays = []
    for plane in frame.planes:
        noise = rng.normal(0.0, sigma, size=plane.samples.shape)
        arrays.append(
            np.clip(np.rint(plane.samples + noise), 0, sample_max).astype(frame.pixel_depth.dtype)
        )
    return Frame.from_arrays(
        arrays,
        bit_depth=frame.bit_depth,
        chroma_sampling=frame.chroma_sampling,
        color_family=frame.color_family,
    )


def write_y4m(
    path: Path,
    frames: list[list[np.ndarray]],
    width: int,
    height: int,
    colorspace: str = "420jpeg",
) -> Path:
    """Write raw planes as a YUV4MPEG2 file (little-endian for deep samples)."""
    with open(path, "wb") as f:
        f.write(f"YUV4MPEG2 W{width} H{height} F25:1 Ip A1:1 C{colorspace}\n".encode("ascii"))
        for planes in frames:
            f.write(b"FRAME\n")
            for plane in planes:
                if plane.dtype == np.uint16:
                    f.write(plane.astype("<u2").tobytes())
                else:
                    f.write(plane.astype(np.uint8).tobytes())
    return path


def constant_planes(width: int, height: int, value: int, planes: int = 3) -> list[np.ndarray]:
    return [np.full((height, width), value, dtype=np.uint8) for _ in range(planes)]


@pytest.fixture
def yuv420_frame():
    """A textured 48x40 4:2:0 frame."""
    return make_yuv_frame(48, 40, ChromaSampling.CS420, seed=3)


@pytest.fixture
def rgb_frame():
    return make_rgb_frame(32, 24, seed=5)


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Undo handler changes made by setup_logging (which forces a new config)."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def shift_sequence_files(tmp_path):
    """Two 2-frame 8-bit 4:4:4 Y4M files differing by a uniform +1 shift."""
    width, height = 32, 32
    reference = write_y4m(
        tmp_path / "reference.y4m",
        [constant_planes(width, height, 128), constant_planes(width, height, 128)],
        width,
        height,
        colorspace="444",
    )
    distorted = write_y4m(
        tmp_path / "distorted.y4m",
        [constant_planes(width, height, 129), constant_planes(width, height, 129)],
        width,
        height,
        colorspace="444",
    )
    return reference, distorted
