"""
Camera device handle.

A session owns exactly one capture device. It is opened when scanning
starts and released on every way out of the loop; release() is idempotent.
"""

from pathlib import Path
from typing import Optional, Union
import os
import logging

import numpy as np
import cv2

from livescan.config import ScannerConfig, DEFAULT_CONFIG
from livescan.errors import (
    DeviceError,
    CameraPermissionDenied,
    CameraNotFound,
    CameraUnsupported,
    CameraBusy,
)

logger = logging.getLogger(__name__)


class CameraSource:
    """
    Frames from a cv2.VideoCapture device (or a video file for replays).

    read() returns None when a video file runs out; a live camera that stops
    delivering frames raises CameraBusy.
    """

    def __init__(self, device: Union[int, str] = 0, config: ScannerConfig = DEFAULT_CONFIG):
        self.device = device
        self.config = config
        self.capture: Optional[cv2.VideoCapture] = None

    @property
    def is_live(self) -> bool:
        return isinstance(self.device, int)

    @property
    def is_open(self) -> bool:
        return self.capture is not None

    def open(self):
        if self.capture is not None:
            return

        self.check_permissions()

        capture = cv2.VideoCapture(self.device)
        if not capture.isOpened():
            capture.release()
            raise CameraNotFound(
                f"No camera found at {self.device!r}. Connect a camera or pick another device."
            )

        if self.is_live:
            # Requested, not guaranteed: drivers pick the closest mode they support
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.config.camera_width)
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.config.camera_height)
            capture.set(cv2.CAP_PROP_FPS, self.config.camera_fps)

        ok, frame = capture.read()
        if not ok or frame is None:
            capture.release()
            raise CameraBusy()

        height, width = frame.shape[:2]
        if width < self.config.min_camera_width or height < self.config.min_camera_height:
            capture.release()
            raise CameraUnsupported(
                f"Camera delivers {width}x{height}, below the minimum "
                f"{self.config.min_camera_width}x{self.config.min_camera_height}. "
                f"Use a higher resolution camera."
            )

        self.capture = capture
        fps = capture.get(cv2.CAP_PROP_FPS)
        logger.info(f"Camera {self.device!r} acquired at {width}x{height}, {fps:.0f} fps")

    def check_permissions(self):
        """Fail early on device nodes this process may not read"""
        if self.is_live:
            node = Path(f"/dev/video{self.device}")
        else:
            node = Path(self.device)

        if node.exists() and not os.access(node, os.R_OK):
            raise CameraPermissionDenied(
                f"Permission denied for {node}. Grant this user access to the camera "
                f"(e.g. add it to the 'video' group) and start the scan again."
            )

    def read(self) -> Optional[np.ndarray]:
        if self.capture is None:
            raise DeviceError("Camera is not open")

        ok, frame = self.capture.read()
        if ok and frame is not None:
            return frame

        if self.is_live:
            raise CameraBusy("Camera stopped delivering frames. Check the connection and start again.")
        return None

    def release(self):
        if self.capture is not None:
            self.capture.release()
            self.capture = None
            logger.info(f"Camera {self.device!r} released")

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
