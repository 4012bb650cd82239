"""Plane and frame containers shared by every metric kernel.

A :class:`Plane` wraps one colour channel as a read-only 2-D numpy array of
shape ``(height, stride)``; only the first ``width`` columns are visible
samples. A :class:`Frame` groups the planes of one picture together with its
chroma subsampling, colour family and bit depth.

Samples of up to 8 bits are stored as ``uint8``, deeper samples (up to 16
bits) as ``uint16``. The storage type of a frame pair is resolved once, as a
:class:`PixelDepth`, by :func:`validate_frame_pair`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from .error_handling import DimensionMismatch, FormatMismatch, UnsupportedInput

logger = logging.getLogger(__name__)

MAX_BIT_DEPTH = 16


class PixelDepth(Enum):
    """Storage class of a sample buffer, selected once per frame pair."""

    DEPTH8 = "depth8"
    DEPTH16 = "depth16"

    @classmethod
    def for_bit_depth(cls, bit_depth: int) -> PixelDepth:
        if bit_depth < 1 or bit_depth > MAX_BIT_DEPTH:
            raise UnsupportedInput(
                f"Bit depths above {MAX_BIT_DEPTH} (or below 1) are not supported, got {bit_depth}",
                context={"bit_depth": bit_depth},
            )
        return cls.DEPTH8 if bit_depth <= 8 else cls.DEPTH16

    @property
    def dtype(self) -> np.dtype:
        return np.dtype(np.uint8) if self is PixelDepth.DEPTH8 else np.dtype(np.uint16)


class ChromaSampling(Enum):
    """Available chroma sampling formats."""

    CS420 = "420"
    CS422 = "422"
    CS444 = "444"
    CS400 = "400"

    @property
    def decimation(self) -> tuple[int, int] | None:
        """Right shifts turning luma dimensions into chroma dimensions (x, y).

        Monochrome returns None since it has no chroma planes.
        """
        return {
            ChromaSampling.CS420: (1, 1),
            ChromaSampling.CS422: (1, 0),
            ChromaSampling.CS444: (0, 0),
            ChromaSampling.CS400: None,
        }[self]

    def chroma_dimensions(self, luma_width: int, luma_height: int) -> tuple[int, int]:
        """Size of a chroma plane for the given luma size, rounding odd sizes up."""
        dec = self.decimation
        if dec is None:
            return (0, 0)
        ss_x, ss_y = dec
        return ((luma_width + ss_x) >> ss_x, (luma_height + ss_y) >> ss_y)

    @property
    def chroma_weight(self) -> float:
        """The relative impact of each chroma plane compared to luma."""
        return {
            ChromaSampling.CS420: 0.25,
            ChromaSampling.CS422: 0.5,
            ChromaSampling.CS444: 1.0,
            ChromaSampling.CS400: 0.0,
        }[self]

    @property
    def plane_count(self) -> int:
        return 1 if self is ChromaSampling.CS400 else 3


class ChromaSamplePosition(Enum):
    """Sample position for subsampled chroma."""

    UNKNOWN = "unknown"
    # Horizontally co-located with luma (0, 0), vertically between two luma rows
    VERTICAL = "vertical"
    COLOCATED = "colocated"
    BILATERAL = "bilateral"
    INTERPOLATED = "interpolated"


class ColorFamily(Enum):
    """Colour encoding of a frame's planes."""

    YUV = "yuv"
    RGB = "rgb"

    @property
    def plane_names(self) -> tuple[str, str, str]:
        return ("y", "u", "v") if self is ColorFamily.YUV else ("r", "g", "b")


@dataclass(frozen=True, eq=False)
class Plane:
    """One colour channel's sample grid.

    Attributes:
        width: Visible samples per row
        height: Number of rows
        bit_depth: Bits per sample (1-16)
        data: Sample buffer of shape ``(height, stride)``
        stride: Samples per stored row; defaults to ``data.shape[1]``
    """

    width: int
    height: int
    bit_depth: int
    data: np.ndarray = field(repr=False)
    stride: int = 0

    def __post_init__(self) -> None:
        depth = PixelDepth.for_bit_depth(self.bit_depth)

        data = np.asarray(self.data)
        if data.ndim != 2:
            raise ValueError(f"Plane data must be 2-D, got shape {data.shape}")
        if data.dtype.kind not in "ui":
            raise ValueError(f"Plane data must hold integers, got {data.dtype}")
        if self.width < 1 or self.height < 1:
            raise ValueError(f"Plane dimensions must be positive, got {self.width}x{self.height}")

        stride = self.stride or data.shape[1]
        if stride < self.width:
            raise ValueError(f"Stride {stride} is smaller than width {self.width}")
        if data.shape[0] < self.height or data.shape[1] < stride:
            raise ValueError(
                f"Buffer of shape {data.shape} cannot hold {self.height} rows of stride {stride}"
            )

        visible = data[: self.height, : self.width]
        if visible.size and (int(visible.min()) < 0 or int(visible.max()) >= (1 << self.bit_depth)):
            raise ValueError(
                f"Samples must lie in [0, {(1 << self.bit_depth) - 1}] for {self.bit_depth}-bit planes"
            )

        if data.dtype != depth.dtype:
            data = data.astype(depth.dtype)
        else:
            data = data.view()
        data.flags.writeable = False

        object.__setattr__(self, "data", data[: self.height, :stride])
        object.__setattr__(self, "stride", stride)

    @classmethod
    def from_array(cls, array: np.ndarray, bit_depth: int) -> Plane:
        """Build a plane whose width and height follow the array's shape."""
        arr = np.asarray(array)
        if arr.ndim != 2:
            raise ValueError(f"Plane data must be 2-D, got shape {arr.shape}")
        return cls(width=arr.shape[1], height=arr.shape[0], bit_depth=bit_depth, data=arr)

    @property
    def samples(self) -> np.ndarray:
        """Read-only ``(height, width)`` view of the visible samples."""
        return self.data[:, : self.width]

    @property
    def sample_max(self) -> int:
        return (1 << self.bit_depth) - 1

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


@dataclass(frozen=True, eq=False)
class Frame:
    """All planes of one picture.

    YUV frames carry one plane (4:0:0) or three planes (Y, U, V); RGB frames
    carry three full-resolution planes and always use 4:4:4 sampling.
    """

    planes: tuple[Plane, ...]
    bit_depth: int
    chroma_sampling: ChromaSampling = ChromaSampling.CS420
    color_family: ColorFamily = ColorFamily.YUV
    chroma_sample_position: ChromaSamplePosition = ChromaSamplePosition.UNKNOWN

    def __post_init__(self) -> None:
        planes = tuple(self.planes)
        object.__setattr__(self, "planes", planes)
        PixelDepth.for_bit_depth(self.bit_depth)

        if self.color_family is ColorFamily.RGB and self.chroma_sampling is not ChromaSampling.CS444:
            raise ValueError("RGB frames must use 4:4:4 sampling")

        expected = self.chroma_sampling.plane_count
        if len(planes) != expected:
            raise ValueError(
                f"{self.chroma_sampling.value} frames need {expected} planes, got {len(planes)}"
            )

        for plane in planes:
            if plane.bit_depth != self.bit_depth:
                raise ValueError(
                    f"Plane bit depth {plane.bit_depth} differs from frame bit depth {self.bit_depth}"
                )

        if len(planes) == 3:
            luma = planes[0]
            expected_dims = self.chroma_sampling.chroma_dimensions(luma.width, luma.height)
            for plane in planes[1:]:
                if (plane.width, plane.height) != expected_dims:
                    raise ValueError(
                        f"Chroma plane is {plane.width}x{plane.height}, expected "
                        f"{expected_dims[0]}x{expected_dims[1]} for {self.chroma_sampling.value} "
                        f"sampling of a {luma.width}x{luma.height} luma plane"
                    )

    @classmethod
    def from_arrays(
        cls,
        arrays: list[np.ndarray] | tuple[np.ndarray, ...],
        bit_depth: int,
        chroma_sampling: ChromaSampling = ChromaSampling.CS420,
        color_family: ColorFamily = ColorFamily.YUV,
        chroma_sample_position: ChromaSamplePosition = ChromaSamplePosition.UNKNOWN,
    ) -> Frame:
        """Build a frame from one 2-D array per plane."""
        return cls(
            planes=tuple(Plane.from_array(a, bit_depth) for a in arrays),
            bit_depth=bit_depth,
            chroma_sampling=chroma_sampling,
            color_family=color_family,
            chroma_sample_position=chroma_sample_position,
        )

    @property
    def width(self) -> int:
        return self.planes[0].width

    @property
    def height(self) -> int:
        return self.planes[0].height

    @property
    def has_chroma(self) -> bool:
        return len(self.planes) == 3

    @property
    def plane_names(self) -> tuple[str, ...]:
        return self.color_family.plane_names[: len(self.planes)]

    @property
    def chroma_weight(self) -> float:
        if self.color_family is ColorFamily.RGB:
            return 1.0
        return self.chroma_sampling.chroma_weight

    @property
    def pixel_depth(self) -> PixelDepth:
        return PixelDepth.for_bit_depth(self.bit_depth)


def validate_frame_pair(reference: Frame, distorted: Frame) -> PixelDepth:
    """Check that two frames can be compared and resolve their storage depth.

    Raises:
        UnsupportedInput: Bit depth outside 1-16
        FormatMismatch: Bit depth, colour family, subsampling or plane count differ
        DimensionMismatch: A plane's width or height differs
    """
    if reference.bit_depth != distorted.bit_depth:
        raise FormatMismatch("bit depth", reference.bit_depth, distorted.bit_depth)
    depth = PixelDepth.for_bit_depth(reference.bit_depth)

    if reference.color_family is not distorted.color_family:
        raise FormatMismatch(
            "colour family", reference.color_family.value, distorted.color_family.value
        )
    if reference.chroma_sampling is not distorted.chroma_sampling:
        raise FormatMismatch(
            "chroma subsampling",
            reference.chroma_sampling.value,
            distorted.chroma_sampling.value,
        )
    if len(reference.planes) != len(distorted.planes):
        raise FormatMismatch("plane count", len(reference.planes), len(distorted.planes))

    for name, ref_plane, dist_plane in zip(
        reference.plane_names, reference.planes, distorted.planes
    ):
        if (ref_plane.width, ref_plane.height) != (dist_plane.width, dist_plane.height):
            raise DimensionMismatch(
                name,
                (ref_plane.width, ref_plane.height),
                (dist_plane.width, dist_plane.height),
            )

    return depth
