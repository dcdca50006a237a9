from .api import SessionApi, SessionNotFound, SubmissionConflict
from .camera import CameraUnavailable, OpenCVCamera
from .clock import SystemClock
from .machine import Phase, SessionMachine
from .runner import SessionClient

__all__ = [
    "SessionApi",
    "SessionNotFound",
    "SubmissionConflict",
    "CameraUnavailable",
    "OpenCVCamera",
    "SystemClock",
    "Phase",
    "SessionMachine",
    "SessionClient",
]
