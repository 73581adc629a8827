"""
Exceptions raised by the scanner.

Only DeviceError stops a running session. Losing sight of the anchors is not
an error at all: detection returns None and the next tick tries again.
"""


class ScanError(Exception):
    """Base class for scanner errors"""


class ConfigError(ScanError, ValueError):
    """Invalid configuration value"""


class LayoutError(ScanError):
    """Layout descriptor cannot be used to grade a sheet"""


class SessionStateError(ScanError):
    """Operation not allowed in the current session phase"""


class DeviceError(ScanError):
    """Camera could not be used; the session has to be restarted"""

    default_message = "Could not access the camera."

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message)


class CameraPermissionDenied(DeviceError):
    default_message = (
        "Camera permission denied. Grant this program access to the camera "
        "and start the scan again."
    )


class CameraNotFound(DeviceError):
    default_message = "No camera found. Connect a camera or pick another device index."


class CameraUnsupported(DeviceError):
    default_message = (
        "Camera not supported: it cannot deliver frames at the minimum "
        "resolution. Use a different camera."
    )


class CameraBusy(DeviceError):
    default_message = (
        "Camera is being used by another application. Close it and try again."
    )
