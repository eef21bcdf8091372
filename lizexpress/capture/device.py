# lizexpress/capture/device.py
import logging
from typing import Optional, Protocol

from lizexpress.workflow.errors import CaptureDeviceError

logger = logging.getLogger(__name__)


class VideoStream(Protocol):
    def snapshot(self) -> bytes:
        """Huidig frame als JPEG, op de native resolutie van de stream."""
        ...

    def stop(self) -> None: ...


class CaptureDevice(Protocol):
    def request_video_stream(self) -> VideoStream:
        """Video-only stream; ``CaptureDeviceError`` bij weigering of geen camera."""
        ...


class CameraSession:
    """
    Exclusieve eigenaar van een camera-stream.

    ``acquire`` opent de stream, ``release`` stopt hem (idempotent). Als
    context manager wordt de stream op elk exit-pad vrijgegeven.
    """

    def __init__(self, device: CaptureDevice):
        self._device = device
        self._stream: Optional[VideoStream] = None

    @property
    def active(self) -> bool:
        return self._stream is not None

    def acquire(self) -> None:
        if self._stream is not None:
            return
        try:
            stream = self._device.request_video_stream()
        except CaptureDeviceError:
            raise
        except Exception as e:
            logger.warning("camera unavailable: %r", e)
            raise CaptureDeviceError() from e
        if stream is None:
            raise CaptureDeviceError()
        self._stream = stream
        logger.info("camera session acquired")

    def release(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        except Exception as e:
            logger.warning("camera stop failed: %r", e)
        logger.info("camera session released")

    def snapshot(self) -> bytes:
        if self._stream is None:
            raise CaptureDeviceError("Camera is not active")
        return self._stream.snapshot()

    def __enter__(self) -> "CameraSession":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
