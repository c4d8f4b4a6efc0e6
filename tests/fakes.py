"""
Test doubles for the camera and embedder capabilities.
"""

import asyncio
import time
import numpy as np
from typing import List, Optional, Sequence

from face_registry.camera import Camera, VideoStream
from face_registry.embedding_generator import Detection, Embedder


def make_vector(*values, dim: int = 4) -> np.ndarray:
    """Build a ``dim``-long vector starting with ``values``."""
    vector = np.zeros(dim, dtype=np.float64)
    vector[:len(values)] = values
    return vector


def make_frame(height: int = 120, width: int = 160) -> np.ndarray:
    return np.full((height, width, 3), 90, dtype=np.uint8)


class FakeStream(VideoStream):
    """Stream returning a fixed frame and counting reads."""

    def __init__(self, frame: Optional[np.ndarray] = None):
        self.frame = make_frame() if frame is None else frame
        self._active = True
        self.reads = 0
        self.reads_after_stop = 0

    @property
    def active(self) -> bool:
        return self._active

    async def read(self) -> Optional[np.ndarray]:
        if not self._active:
            self.reads_after_stop += 1
            raise RuntimeError("read from a released stream")
        self.reads += 1
        return self.frame

    def stop(self):
        self._active = False


class FakeCamera(Camera):
    """
    Camera handing out FakeStreams, or raising ``error`` on acquire.

    A non-zero ``delay`` makes acquisition yield to the event loop first.
    """

    def __init__(self, error: Optional[Exception] = None, delay: float = 0):
        self.error = error
        self.delay = delay
        self.streams: List[FakeStream] = []

    async def acquire(self) -> VideoStream:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        stream = FakeStream()
        self.streams.append(stream)
        return stream

    @property
    def active_streams(self) -> List[FakeStream]:
        return [stream for stream in self.streams if stream.active]


class SlowCapture:
    """Stand-in for ``cv2.VideoCapture`` whose read blocks its thread."""

    def __init__(self, delay: float = 0.2):
        self.delay = delay
        self.reading = False
        self.released = False
        self.released_during_read = False

    def read(self):
        self.reading = True
        time.sleep(self.delay)
        self.reading = False
        return True, make_frame()

    def release(self):
        if self.reading:
            self.released_during_read = True
        self.released = True


class FakeEmbedder(Embedder):
    """
    Embedder replaying scripted results.

    Each entry of ``results`` answers one detection call: ``None`` means no
    face, an exception instance is raised, a vector becomes one detection and
    a list is used as the detections themselves. Once exhausted, ``default``
    answers every call.
    """

    embedding_size = 4

    def __init__(self, results: Sequence = (), default=None,
                 load_error: Optional[Exception] = None):
        super().__init__({'embedding': {'normalization': False}})
        self.results = list(results)
        self.default = default
        self.load_error = load_error
        self.calls = 0

    def _load_model(self):
        if self.load_error is not None:
            raise self.load_error

    def _detect_faces(self, rgb_image: np.ndarray) -> List[Detection]:
        self.calls += 1
        result = self.results.pop(0) if self.results else self.default

        if isinstance(result, Exception):
            raise result
        if result is None:
            return []
        if isinstance(result, list):
            return result
        return [Detection(box=(10, 60, 60, 10), embedding=np.asarray(result, dtype=np.float64))]


class GatedEmbedder(FakeEmbedder):
    """Embedder whose ``detect`` waits until ``gate`` is set."""

    def __init__(self, embedding: np.ndarray):
        super().__init__()
        self.embedding = embedding
        self.gate: Optional[asyncio.Event] = None
        self.is_loaded = True

    async def detect(self, frame: np.ndarray) -> Optional[np.ndarray]:
        await self.gate.wait()
        return self.embedding
