"""Frame source contract.

The aggregation engine only ever sees :class:`FrameSource` objects; file
readers live in :mod:`avmetrics.io`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator

from .frame import Frame


class FrameSource(ABC):
    """Sequential supplier of decoded frames.

    ``next_frame`` returns ``None`` once the sequence is exhausted and keeps
    returning ``None`` afterwards. Decoding problems raise
    :class:`~avmetrics.error_handling.DecodeError`.
    """

    @property
    @abstractmethod
    def bit_depth(self) -> int:
        """Bit depth shared by every frame of the sequence."""

    @abstractmethod
    def next_frame(self) -> Frame | None:
        """Return the next frame, or ``None`` at the end of the sequence."""

    @property
    def frame_count(self) -> int | None:
        """Total number of frames, when the source knows it up front."""
        return None

    def close(self) -> None:
        """Release any underlying resources."""

    def __enter__(self) -> FrameSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __iter__(self) -> Iterator[Frame]:
        while True:
            frame = self.next_frame()
            if frame is None:
                return
            yield frame


class InMemoryFrameSource(FrameSource):
    """Serves frames from a list already held in memory."""

    def __init__(self, frames: Iterable[Frame], bit_depth: int | None = None):
        self._frames = list(frames)
        if bit_depth is None:
            if not self._frames:
                raise ValueError("bit_depth is required for an empty frame list")
            bit_depth = self._frames[0].bit_depth
        self._bit_depth = bit_depth
        self._position = 0

    @property
    def bit_depth(self) -> int:
        return self._bit_depth

    @property
    def frame_count(self) -> int | None:
        return len(self._frames)

    def next_frame(self) -> Frame | None:
        if self._position >= len(self._frames):
            return None
        frame = self._frames[self._position]
        self._position += 1
        return frame
