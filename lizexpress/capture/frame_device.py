# lizexpress/capture/frame_device.py
import threading
from typing import Optional

from lizexpress.workflow.errors import CaptureDeviceError


class PushedFrameStream:
    def __init__(self, device: "PushedFrameDevice"):
        self._device = device
        self.stopped = False

    def snapshot(self) -> bytes:
        if self.stopped:
            raise CaptureDeviceError("Camera is not active")
        frame = self._device.latest_frame
        if frame is None:
            raise CaptureDeviceError("No camera frame received yet")
        return frame

    def stop(self) -> None:
        self.stopped = True
        self._device.clear()


class PushedFrameDevice:
    """
    Camera die in de browser draait: de client pusht JPEG-frames,
    ``snapshot`` geeft het laatst ontvangen frame terug.
    """

    def __init__(self, permission_granted: bool = True):
        self.permission_granted = permission_granted
        self._lock = threading.Lock()
        self._frame: Optional[bytes] = None

    @property
    def latest_frame(self) -> Optional[bytes]:
        with self._lock:
            return self._frame

    def push_frame(self, data: bytes) -> None:
        with self._lock:
            self._frame = data

    def clear(self) -> None:
        with self._lock:
            self._frame = None

    def request_video_stream(self) -> PushedFrameStream:
        if not self.permission_granted:
            raise CaptureDeviceError()
        return PushedFrameStream(self)
