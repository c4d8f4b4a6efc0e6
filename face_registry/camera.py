"""
Camera Module

Camera capability used by capture sessions, with an OpenCV implementation.
A stream is acquired once per session and must be released on every exit
path; ``acquired()`` scopes that for callers.
"""

import asyncio
import cv2
import numpy as np
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Dict, Any, Optional

from .errors import CameraUnavailable

logger = logging.getLogger(__name__)


class VideoStream(ABC):
    """An acquired camera stream."""

    @property
    @abstractmethod
    def active(self) -> bool:
        """True until the stream is stopped."""

    @abstractmethod
    async def read(self) -> Optional[np.ndarray]:
        """Grab the current frame (BGR), or None if no frame is available."""

    @abstractmethod
    def stop(self):
        """Stop all tracks of the stream."""


class Camera(ABC):
    """Camera capability."""

    @abstractmethod
    async def acquire(self) -> VideoStream:
        """
        Open the camera.

        Raises:
            CameraUnavailable: Permission denied or no device
        """

    async def release(self, stream: Optional[VideoStream]):
        """Release a stream obtained from ``acquire``. Safe to call twice."""
        if stream is not None and stream.active:
            stream.stop()


@asynccontextmanager
async def acquired(camera: Camera):
    """Acquire a stream and release it however the block exits."""
    stream = await camera.acquire()
    try:
        yield stream
    finally:
        await camera.release(stream)


class OpenCVStream(VideoStream):
    """
    Stream backed by ``cv2.VideoCapture``.

    Reads run on a worker thread that outlives a cancelled awaiter, so reads
    and ``stop`` share a lock and the capture is never released mid-read.
    """

    def __init__(self, capture: cv2.VideoCapture, device: Any):
        self.capture = capture
        self.device = device
        self._active = True
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self._active

    def _grab(self):
        with self._lock:
            if not self._active:
                return False, None
            return self.capture.read()

    async def read(self) -> Optional[np.ndarray]:
        if not self._active:
            return None
        ret, frame = await asyncio.to_thread(self._grab)
        if not ret:
            logger.warning("Failed to read frame")
            return None
        return frame

    def stop(self):
        with self._lock:
            if not self._active:
                return
            self._active = False
            self.capture.release()
        logger.info(f"Camera {self.device} released")


class OpenCVCamera(Camera):
    """Local webcam or video file opened through OpenCV."""

    def __init__(self, config: Dict[str, Any]):
        """
        Initialize camera settings.

        Args:
            config: Configuration dictionary with camera settings
        """
        self.config = config.get('camera', {})
        self.device = self.config.get('device', 0)
        self.width = self.config.get('width', 640)
        self.height = self.config.get('height', 480)
        self.fps = self.config.get('fps', 30)

    def _open(self) -> cv2.VideoCapture:
        capture = cv2.VideoCapture(self.device)

        if not capture.isOpened():
            capture.release()
            raise CameraUnavailable(CameraUnavailable.NOT_FOUND)

        # Set camera properties
        capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        capture.set(cv2.CAP_PROP_FPS, self.fps)
        return capture

    async def acquire(self) -> VideoStream:
        try:
            capture = await asyncio.to_thread(self._open)
        except CameraUnavailable:
            logger.error(f"Failed to open camera {self.device}")
            raise
        except PermissionError as e:
            logger.error(f"Camera {self.device} access denied: {e}")
            raise CameraUnavailable(CameraUnavailable.PERMISSION_DENIED) from e
        except (cv2.error, OSError) as e:
            logger.error(f"Camera initialization error: {e}")
            raise CameraUnavailable(CameraUnavailable.UNAVAILABLE) from e

        logger.info(f"Camera {self.device} initialized successfully")
        return OpenCVStream(capture, self.device)

    async def release(self, stream: Optional[VideoStream]):
        # stop() waits for an in-flight read, so keep it off the event loop
        if stream is not None and stream.active:
            await asyncio.to_thread(stream.stop)
