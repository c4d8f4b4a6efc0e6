"""
Test cases for the camera capability
"""

import asyncio
import pytest
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from face_registry.camera import OpenCVCamera, acquired
from face_registry.errors import CameraUnavailable, SessionStateError
from face_registry.session import CaptureSession, SessionStatus
from fakes import FakeCamera, FakeEmbedder, SlowCapture, make_vector


class SlowCamera(OpenCVCamera):
    """OpenCV camera whose device blocks on every read."""

    def __init__(self):
        super().__init__({'camera': {'device': 'slow'}})
        self.capture = SlowCapture()

    def _open(self):
        return self.capture


class TestCamera:
    """Test cases for scoped acquisition and the OpenCV camera."""

    def test_acquired_releases_on_exit(self):
        camera = FakeCamera()

        async def scenario():
            async with acquired(camera) as stream:
                assert stream.active
                await stream.read()

        asyncio.run(scenario())
        assert camera.active_streams == []

    def test_acquired_releases_on_error(self):
        camera = FakeCamera()

        async def scenario():
            async with acquired(camera):
                raise ValueError("boom")

        with pytest.raises(ValueError):
            asyncio.run(scenario())
        assert len(camera.streams) == 1
        assert camera.active_streams == []

    def test_release_twice_is_safe(self):
        camera = FakeCamera()

        async def scenario():
            stream = await camera.acquire()
            await camera.release(stream)
            await camera.release(stream)
            await camera.release(None)

        asyncio.run(scenario())

    def test_missing_device_is_not_found(self, tmp_path):
        camera = OpenCVCamera({'camera': {'device': str(tmp_path / 'missing.mp4')}})

        with pytest.raises(CameraUnavailable) as exc_info:
            asyncio.run(camera.acquire())
        assert exc_info.value.reason == CameraUnavailable.NOT_FOUND
        assert "No webcam found" in exc_info.value.message

    def test_unknown_reason_maps_to_unavailable(self):
        error = CameraUnavailable('exploded')
        assert error.reason == CameraUnavailable.UNAVAILABLE


class TestOpenCVRelease:
    """Releasing a stream while a threaded read is still running."""

    def test_release_waits_for_in_flight_read(self):
        camera = SlowCamera()

        async def scenario():
            stream = await camera.acquire()
            pending = asyncio.create_task(stream.read())
            await asyncio.sleep(0.05)
            pending.cancel()
            await camera.release(stream)
            await asyncio.gather(pending, return_exceptions=True)
            return stream

        stream = asyncio.run(scenario())
        assert camera.capture.released
        assert not camera.capture.released_during_read
        assert not stream.active

    def test_read_after_stop_returns_none(self):
        camera = SlowCamera()

        async def scenario():
            stream = await camera.acquire()
            await camera.release(stream)
            return await stream.read()

        assert asyncio.run(scenario()) is None

    def test_session_cancel_during_capture_read(self):
        camera = SlowCamera()
        embedder = FakeEmbedder(default=make_vector(0.1))
        embedder.is_loaded = True
        session = CaptureSession(camera, embedder)

        async def scenario():
            await session.start()
            pending = asyncio.create_task(session.capture())
            await asyncio.sleep(0.05)
            await session.cancel()
            return (await asyncio.gather(pending, return_exceptions=True))[0]

        result = asyncio.run(scenario())
        assert not isinstance(result, Exception) or isinstance(result, SessionStateError)
        assert camera.capture.released
        assert not camera.capture.released_during_read
        assert session.status is SessionStatus.IDLE
        assert not session.camera_active
