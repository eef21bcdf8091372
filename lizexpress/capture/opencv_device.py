# lizexpress/capture/opencv_device.py
import logging
from typing import Optional

import cv2

from lizexpress.core.settings import settings
from lizexpress.workflow.errors import CaptureDeviceError

logger = logging.getLogger(__name__)


class OpenCVVideoStream:
    def __init__(self, cap: "cv2.VideoCapture"):
        self._cap = cap

    def snapshot(self) -> bytes:
        ret, frame = self._cap.read()
        if not ret or frame is None:
            raise CaptureDeviceError("Failed to grab frame")
        # frame heeft al de native resolutie van de camera
        ok, buf = cv2.imencode(".jpg", frame)
        if not ok:
            raise CaptureDeviceError("Failed to encode selfie")
        return buf.tobytes()

    def stop(self) -> None:
        self._cap.release()


class OpenCVCaptureDevice:
    """Lokale webcam via OpenCV."""

    def __init__(self, index: Optional[int] = None):
        self.index = settings.camera_index if index is None else index

    def request_video_stream(self) -> OpenCVVideoStream:
        cap = cv2.VideoCapture(self.index)
        if not cap.isOpened():
            cap.release()
            logger.warning("Cannot access webcam index=%d", self.index)
            raise CaptureDeviceError()
        logger.info("Webcam opened index=%d", self.index)
        return OpenCVVideoStream(cap)
