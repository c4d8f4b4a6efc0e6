"""
Capture Session Module

State machine that sequences camera acquisition and single-face embedding
for registration and identification, plus the optional live overlay probe
that re-detects faces on a fixed interval while the camera is on.

    IDLE --start--> CAPTURING --capture (face)--> CAPTURED --consume--> IDLE
                     |     ^                          |
                     +-----+ capture (no face)        |
                           ^                          |
                           +---------- retry ---------+
    any state --cancel--> IDLE (pending embedding dropped, camera released)
"""

import asyncio
import numpy as np
import logging
from contextlib import AsyncExitStack
from enum import Enum
from typing import Callable, List, Optional, Any

from .camera import Camera, VideoStream, acquired
from .embedding_generator import Detection, Embedder
from .enrollment_store import EnrollmentStore, as_embedding
from .errors import CameraUnavailable, NoFaceDetected, SessionStateError
from .matcher import IdentityMatcher, MatchResult

logger = logging.getLogger(__name__)

OverlaySink = Callable[[np.ndarray, List[Detection], List[MatchResult]], Any]


class SessionStatus(Enum):
    IDLE = 'idle'
    CAPTURING = 'capturing'
    CAPTURED = 'captured'
    FAILED = 'failed'


class LiveOverlay:
    """
    Periodic best-effort face probe used to draw the live preview.

    Each tick reads a frame, detects every face, optionally matches them
    against the gallery and hands the result to ``sink``. A failing tick is
    logged and skipped; it never affects the owning session.
    """

    def __init__(self, read_frame: Callable, embedder: Embedder, sink: OverlaySink,
                 interval: float = 0.1, matcher: Optional[IdentityMatcher] = None,
                 store: Optional[EnrollmentStore] = None):
        self.read_frame = read_frame
        self.embedder = embedder
        self.sink = sink
        self.interval = interval
        self.matcher = matcher
        self.store = store
        self.ticks = 0
        self.failures = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Schedule the probe on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.debug(f"Live overlay started ({self.interval * 1000:.0f} ms interval)")

    async def stop(self):
        """Cancel the probe and wait until it has fully stopped."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug(f"Live overlay stopped after {self.ticks} ticks ({self.failures} failed)")

    async def _run(self):
        while True:
            try:
                await self.tick()
            except Exception as e:
                self.failures += 1
                logger.debug(f"Overlay detection failed: {e}")
            await asyncio.sleep(self.interval)

    async def tick(self):
        """Run a single detect-and-draw pass."""
        self.ticks += 1
        frame = await self.read_frame()
        if frame is None:
            return

        detections = await self.embedder.detect_all(frame)
        matches = []
        if self.matcher is not None and self.store is not None:
            matches = self.matcher.match_all(
                [detection.embedding for detection in detections],
                self.store.all_records()
            )
        self.sink(frame, detections, matches)


class CaptureSession:
    """Capture/retry/cancel cycle around a single face embedding."""

    def __init__(self, camera: Camera, embedder: Embedder, overlay_interval: float = 0.1):
        """
        Initialize capture session.

        Args:
            camera: Camera capability
            embedder: Face embedding capability
            overlay_interval: Seconds between live overlay probes
        """
        self.camera = camera
        self.embedder = embedder
        self.overlay_interval = overlay_interval

        self.status = SessionStatus.IDLE
        self.pending_embedding: Optional[np.ndarray] = None
        self.last_error: Optional[str] = None

        self._stream: Optional[VideoStream] = None
        self._resources: Optional[AsyncExitStack] = None
        self._overlay: Optional[LiveOverlay] = None
        self._read_lock: Optional[asyncio.Lock] = None
        self._in_flight = False
        self._starting = False
        self._generation = 0

    @property
    def camera_active(self) -> bool:
        return self._stream is not None and self._stream.active

    @property
    def overlay_running(self) -> bool:
        return self._overlay is not None and self._overlay.running

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.cancel()

    async def start(self):
        """
        Acquire the camera and begin capturing.

        Raises:
            SessionStateError: If a capture cycle is already running or
                starting, or the session was cancelled while acquiring
            CameraUnavailable: If the camera cannot be acquired
        """
        if self._starting or self.status not in (SessionStatus.IDLE, SessionStatus.FAILED):
            state = 'starting' if self._starting else self.status.value
            raise SessionStateError(f"Cannot start a session that is {state}")

        self.status = SessionStatus.IDLE
        self.last_error = None
        self._read_lock = asyncio.Lock()
        self._starting = True
        generation = self._generation

        resources = AsyncExitStack()
        try:
            stream = await resources.enter_async_context(acquired(self.camera))
        except CameraUnavailable as e:
            self.last_error = e.message
            logger.warning(f"Camera unavailable: {e.message}")
            raise
        finally:
            self._starting = False

        if generation != self._generation:
            await resources.aclose()
            raise SessionStateError("Session was cancelled while starting")

        self._resources = resources
        self._stream = stream
        self.status = SessionStatus.CAPTURING
        logger.info("Capture session started")

    async def capture(self) -> np.ndarray:
        """
        Grab one frame and embed the face in it.

        Returns:
            The captured embedding (also held as ``pending_embedding``)

        Raises:
            NoFaceDetected: No face in the frame; the session stays capturing
            SessionStateError: Not capturing, or another capture is in flight
        """
        if self._in_flight:
            raise SessionStateError("A capture is already in progress")
        if self.status is not SessionStatus.CAPTURING:
            raise SessionStateError(f"Cannot capture while {self.status.value}")

        self._in_flight = True
        try:
            frame = await self._read_frame()
            embedding = await self.embedder.detect(frame) if frame is not None else None
            if embedding is not None:
                embedding = as_embedding(embedding)
        except Exception as e:
            logger.error(f"Capture failed: {e}")
            await self._release()
            self.pending_embedding = None
            self.status = SessionStatus.FAILED
            self.last_error = str(e)
            raise
        finally:
            self._in_flight = False

        if self.status is not SessionStatus.CAPTURING:
            # Cancelled while the detector was running
            raise SessionStateError("Capture was cancelled")

        if embedding is None:
            self.last_error = NoFaceDetected.user_message
            logger.warning("No face detected in captured frame")
            raise NoFaceDetected()

        self.pending_embedding = embedding
        self.last_error = None
        self.status = SessionStatus.CAPTURED
        logger.info("Face captured")
        return embedding

    def retry(self):
        """Discard a captured embedding and go back to capturing."""
        if self.status is SessionStatus.CAPTURED:
            self.pending_embedding = None
            self.status = SessionStatus.CAPTURING
        elif self.status is not SessionStatus.CAPTURING:
            raise SessionStateError(f"Cannot retry while {self.status.value}")

    async def consume(self) -> np.ndarray:
        """
        Hand the captured embedding to a workflow and end the cycle.

        The camera is released and the session returns to idle.
        """
        if self.status is not SessionStatus.CAPTURED:
            raise SessionStateError(f"Nothing to consume while {self.status.value}")

        embedding = self.pending_embedding
        await self._release()
        self.pending_embedding = None
        self.status = SessionStatus.IDLE
        return embedding

    async def cancel(self):
        """Abort from any state; safe to call when already idle."""
        was = self.status
        self._generation += 1
        await self._release()
        self.pending_embedding = None
        self.last_error = None
        self.status = SessionStatus.IDLE
        if was is not SessionStatus.IDLE:
            logger.info(f"Capture session cancelled (was {was.value})")

    async def start_overlay(self, sink: OverlaySink,
                            matcher: Optional[IdentityMatcher] = None,
                            store: Optional[EnrollmentStore] = None) -> LiveOverlay:
        """Start the live overlay probe on the session's camera stream."""
        if not self.camera_active:
            raise SessionStateError("Live overlay needs an active camera")

        await self.stop_overlay()
        self._overlay = LiveOverlay(
            self._read_frame, self.embedder, sink,
            interval=self.overlay_interval, matcher=matcher, store=store
        )
        self._overlay.start()
        return self._overlay

    async def stop_overlay(self):
        overlay, self._overlay = self._overlay, None
        if overlay is not None:
            await overlay.stop()

    async def _read_frame(self) -> Optional[np.ndarray]:
        stream = self._stream
        if stream is None or not stream.active:
            return None
        async with self._read_lock:
            return await stream.read()

    async def _release(self):
        # Overlay first so no tick touches a released stream
        await self.stop_overlay()
        resources, self._resources = self._resources, None
        self._stream = None
        if resources is not None:
            await resources.aclose()
