import asyncio
import logging
from typing import Optional

logger = logging.getLogger(__name__)


class CameraUnavailable(Exception):
    """Camera access was denied or no device could be opened."""


class OpenCVCamera:
    """Webcam still capture through OpenCV, encoded as JPEG."""

    def __init__(self, device: int = 0, quality: int = 70) -> None:
        self.device = device
        self.quality = quality
        self._capture = None

    @property
    def active(self) -> bool:
        return self._capture is not None

    async def acquire(self) -> None:
        import cv2

        capture = await asyncio.to_thread(cv2.VideoCapture, self.device)
        if not capture.isOpened():
            capture.release()
            raise CameraUnavailable(f"Could not open camera device {self.device}")
        self._capture = capture

    def _grab_jpeg(self) -> bytes:
        import cv2

        if self._capture is None:
            raise CameraUnavailable("Camera has not been acquired")
        ok, frame = self._capture.read()
        if not ok or frame is None:
            raise CameraUnavailable("Camera returned no frame")
        ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), self.quality])
        if not ok:
            raise RuntimeError("JPEG encoding failed")
        return buf.tobytes()

    async def capture(self) -> bytes:
        return await asyncio.to_thread(self._grab_jpeg)

    def release(self) -> None:
        capture: Optional[object] = self._capture
        self._capture = None
        if capture is not None:
            capture.release()  # type: ignore[attr-defined]
            logger.debug("Camera device %s released", self.device)
