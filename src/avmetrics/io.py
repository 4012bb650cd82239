"""Frame source adapters for files on disk, and logging set-up.

* :class:`Y4MFrameSource` reads uncompressed YUV4MPEG2 streams.
* :class:`ImageFrameSource` turns still or animated images (anything Pillow
  opens) into 8-bit RGB frames.
* :func:`open_frame_source` picks the right adapter from a path.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable
from pathlib import Path
from typing import BinaryIO

import numpy as np
from PIL import Image, ImageSequence, UnidentifiedImageError

from .error_handling import DecodeError, UnsupportedInput
from .frame import ChromaSamplePosition, ChromaSampling, ColorFamily, Frame
from .frame_source import FrameSource

logger = logging.getLogger(__name__)

Y4M_MAGIC = b"YUV4MPEG2"
Y4M_FRAME_MAGIC = b"FRAME"
MAX_HEADER_LENGTH = 1024

IMAGE_EXTENSIONS = {".png", ".bmp", ".gif", ".jpg", ".jpeg", ".tif", ".tiff", ".webp", ".ppm", ".pgm"}

_COLORSPACE_RE = re.compile(
    r"^(?:(?P<mono>mono)(?P<mono_depth>\d+)?"
    r"|(?P<sampling>420|422|444)(?P<variant>jpeg|paldv|mpeg2|p(?P<depth>\d+))?)$"
)


def setup_logging(log_level: str = "INFO", log_file: Path | None = None) -> logging.Logger:
    """Set up logging configuration for avmetrics.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file receiving a copy of every record

    Returns:
        Configured logger instance
    """
    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )

    return logging.getLogger("avmetrics")


def parse_y4m_colorspace(tag: str) -> tuple[ChromaSampling, ChromaSamplePosition, int]:
    """Map a Y4M ``C`` tag to (sampling, chroma position, bit depth)."""
    match = _COLORSPACE_RE.match(tag)
    if match is None:
        raise UnsupportedInput(f"Unsupported Y4M colorspace: C{tag}", context={"colorspace": tag})

    if match.group("mono"):
        depth = match.group("mono_depth")
        return ChromaSampling.CS400, ChromaSamplePosition.UNKNOWN, int(depth) if depth else 8

    sampling = {
        "420": ChromaSampling.CS420,
        "422": ChromaSampling.CS422,
        "444": ChromaSampling.CS444,
    }[match.group("sampling")]
    bit_depth = int(match.group("depth")) if match.group("depth") else 8

    variant = match.group("variant")
    if variant == "jpeg":
        position = ChromaSamplePosition.BILATERAL
    elif variant == "paldv":
        position = ChromaSamplePosition.INTERPOLATED
    elif variant == "mpeg2" or sampling is ChromaSampling.CS422:
        position = ChromaSamplePosition.VERTICAL
    else:
        position = ChromaSamplePosition.COLOCATED
    return sampling, position, bit_depth


class Y4MFrameSource(FrameSource):
    """Reads frames from a YUV4MPEG2 file or binary stream."""

    def __init__(self, source: str | os.PathLike | BinaryIO):
        if isinstance(source, (str, os.PathLike)):
            self.path: Path | None = Path(source)
            try:
                self._stream: BinaryIO = open(self.path, "rb")
            except OSError as e:
                raise DecodeError(f"Cannot open {self.path}", cause=e) from e
            self._owns_stream = True
        else:
            self.path = None
            self._stream = source
            self._owns_stream = False

        self._frames_read = 0
        self._finished = False
        try:
            self._parse_header()
        except Exception:
            self.close()
            raise

    def _parse_header(self) -> None:
        try:
            line = self._stream.readline(MAX_HEADER_LENGTH)
        except OSError as e:
            raise DecodeError("Cannot read Y4M header", cause=e) from e
        if not line.startswith(Y4M_MAGIC) or not line.endswith(b"\n"):
            raise DecodeError(
                "Not a YUV4MPEG2 stream", context={"path": str(self.path) if self.path else None}
            )
        self._header_length = len(line)

        params = {}
        for token in line[len(Y4M_MAGIC) :].decode("ascii", errors="replace").split():
            params[token[0]] = token[1:]

        try:
            self.width = int(params["W"])
            self.height = int(params["H"])
        except (KeyError, ValueError) as e:
            raise DecodeError("Y4M header lacks a valid width and height", cause=e) from e
        if self.width < 1 or self.height < 1:
            raise DecodeError(f"Invalid Y4M dimensions {self.width}x{self.height}")

        self.chroma_sampling, self.chroma_sample_position, self._bit_depth = parse_y4m_colorspace(
            params.get("C", "420jpeg")
        )
        self.framerate = params.get("F")

        self._bytes_per_sample = 2 if self._bit_depth > 8 else 1
        self._dtype = np.dtype("<u2") if self._bytes_per_sample == 2 else np.dtype(np.uint8)
        chroma_w, chroma_h = self.chroma_sampling.chroma_dimensions(self.width, self.height)
        self._plane_shapes = [(self.height, self.width)]
        if self.chroma_sampling is not ChromaSampling.CS400:
            self._plane_shapes += [(chroma_h, chroma_w)] * 2
        self._frame_bytes = sum(h * w for h, w in self._plane_shapes) * self._bytes_per_sample

        logger.debug(
            f"Y4M stream {self.width}x{self.height} C{params.get('C', '420jpeg')} "
            f"({self._bit_depth}-bit)"
        )

    @property
    def bit_depth(self) -> int:
        return self._bit_depth

    @property
    def frame_count(self) -> int | None:
        """Frame total derived from the file size, if every frame header is bare."""
        if self.path is None:
            return None
        payload = self.path.stat().st_size - self._header_length
        per_frame = len(Y4M_FRAME_MAGIC) + 1 + self._frame_bytes
        if payload < 0 or payload % per_frame:
            return None
        return payload // per_frame

    def _read(self, read: Callable[[int], bytes], size: int) -> bytes:
        try:
            return read(size)
        except OSError as e:
            raise DecodeError(
                f"Cannot read Y4M frame {self._frames_read}",
                cause=e,
                context={"frame_index": self._frames_read},
            ) from e

    def next_frame(self) -> Frame | None:
        if self._finished:
            return None

        marker = self._read(self._stream.readline, MAX_HEADER_LENGTH)
        if not marker:
            self._finished = True
            return None
        if not marker.startswith(Y4M_FRAME_MAGIC) or not marker.endswith(b"\n"):
            raise DecodeError(
                f"Malformed frame header in Y4M stream at frame {self._frames_read}",
                context={"frame_index": self._frames_read},
            )

        data = self._read(self._stream.read, self._frame_bytes)
        if len(data) != self._frame_bytes:
            raise DecodeError(
                f"Truncated Y4M frame {self._frames_read}: expected {self._frame_bytes} bytes, "
                f"got {len(data)}",
                context={"frame_index": self._frames_read},
            )

        samples = np.frombuffer(data, dtype=self._dtype)
        arrays = []
        offset = 0
        for h, w in self._plane_shapes:
            arrays.append(samples[offset : offset + h * w].reshape(h, w))
            offset += h * w

        try:
            frame = Frame.from_arrays(
                arrays,
                bit_depth=self._bit_depth,
                chroma_sampling=self.chroma_sampling,
                chroma_sample_position=self.chroma_sample_position,
            )
        except ValueError as e:
            raise DecodeError(
                f"Invalid samples in Y4M frame {self._frames_read}",
                cause=e,
                context={"frame_index": self._frames_read},
            ) from e

        self._frames_read += 1
        return frame

    def close(self) -> None:
        if self._owns_stream:
            self._stream.close()


def _image_paths(path: Path) -> list[Path]:
    if path.is_dir():
        paths = sorted(p for p in path.iterdir() if p.suffix.lower() in IMAGE_EXTENSIONS)
        if not paths:
            raise DecodeError(f"No images found in {path}")
        return paths
    return [path]


class ImageFrameSource(FrameSource):
    """Serves 8-bit RGB frames from still or animated images.

    ``path`` may be a single image (every frame of an animated image is
    used) or a directory whose images are read in sorted order.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._paths = _image_paths(self.path)
        self._frame_count: int | None = None
        self._iterator = self._frames()

    @property
    def bit_depth(self) -> int:
        return 8

    @property
    def frame_count(self) -> int | None:
        if self._frame_count is None:
            total = 0
            for image_path in self._paths:
                with self._open(image_path) as img:
                    total += getattr(img, "n_frames", 1)
            self._frame_count = total
        return self._frame_count

    @staticmethod
    def _open(image_path: Path) -> Image.Image:
        try:
            return Image.open(image_path)
        except (OSError, UnidentifiedImageError) as e:
            raise DecodeError(f"Failed to open image {image_path}", cause=e) from e

    def _frames(self):
        for image_path in self._paths:
            with self._open(image_path) as img:
                for index, page in enumerate(ImageSequence.Iterator(img)):
                    try:
                        rgb = np.array(page.convert("RGB"))
                    except OSError as e:
                        raise DecodeError(
                            f"Failed to decode frame {index} of {image_path}", cause=e
                        ) from e
                    yield Frame.from_arrays(
                        [rgb[:, :, c] for c in range(3)],
                        bit_depth=8,
                        chroma_sampling=ChromaSampling.CS444,
                        color_family=ColorFamily.RGB,
                    )

    def next_frame(self) -> Frame | None:
        return next(self._iterator, None)

    def close(self) -> None:
        self._iterator.close()


def open_frame_source(path: str | os.PathLike) -> FrameSource:
    """Open ``path`` with the adapter matching its contents.

    Y4M files are recognised by their signature; directories and other files
    are handed to Pillow.
    """
    path = Path(path)
    if not path.exists():
        raise DecodeError(f"Input not found: {path}")
    if path.is_file():
        with open(path, "rb") as f:
            if f.read(len(Y4M_MAGIC)) == Y4M_MAGIC:
                return Y4MFrameSource(path)
    return ImageFrameSource(path)
