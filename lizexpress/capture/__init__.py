from .device import CameraSession, CaptureDevice, VideoStream
from .frame_device import PushedFrameDevice

__all__ = ["CameraSession", "CaptureDevice", "PushedFrameDevice", "VideoStream"]
