# kavach/camera.py
# ------------------------------------------------------------
# Frame sources for the detection monitor.
#
# - OpenCVFrameSource: webcam index or RTSP/HTTP stream via cv2
# - DirectoryFrameSource: replays still images from a folder
#
# capture() blocks; callers run it with asyncio.to_thread.
# release() must be idempotent: the polling controller calls it
# from stop().
# ------------------------------------------------------------

from __future__ import annotations

import base64
import logging
import threading
from pathlib import Path
from typing import List, Optional, Protocol, Union

import cv2

logger = logging.getLogger(__name__)

JPEG_QUALITY = 70
FRAME_SUFFIXES = {".png", ".jpg", ".jpeg"}


class FrameSource(Protocol):
    def capture(self) -> bytes: ...

    def release(self) -> None: ...


def to_data_url(jpeg: bytes) -> str:
    return "data:image/jpeg;base64," + base64.b64encode(jpeg).decode("ascii")


class OpenCVFrameSource:
    def __init__(self, source: Union[int, str], width: int = 1280, height: int = 720) -> None:
        self.source = source
        self._lock = threading.Lock()
        self.cap: Optional[cv2.VideoCapture] = cv2.VideoCapture(source)
        self.cap.set(cv2.CAP_PROP_FRAME_WIDTH, width)
        self.cap.set(cv2.CAP_PROP_FRAME_HEIGHT, height)

        if not self.cap.isOpened():
            self.cap.release()
            self.cap = None
            raise OSError(f"could not open camera source {source!r}")

    def capture(self) -> bytes:
        with self._lock:
            if self.cap is None:
                raise OSError("camera released")
            ret, frame = self.cap.read()
        if not ret:
            raise OSError(f"failed to read frame from {self.source!r}")

        ok, buffer = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), JPEG_QUALITY])
        if not ok:
            raise OSError("jpeg encoding failed")
        return buffer.tobytes()

    def release(self) -> None:
        with self._lock:
            if self.cap is not None:
                self.cap.release()
                self.cap = None
                logger.info("camera %r released", self.source)


class DirectoryFrameSource:
    """
    Cycles through the images of a directory in name order.
    """

    def __init__(self, frames_dir: Union[str, Path]) -> None:
        path = Path(frames_dir)
        if not path.is_dir():
            raise ValueError(f"frames dir not found: {path}")

        self.frame_files: List[Path] = sorted(
            p for p in path.iterdir() if p.suffix.lower() in FRAME_SUFFIXES
        )
        if not self.frame_files:
            raise ValueError("no frames found")
        self._idx = 0
        self.released = False

    def capture(self) -> bytes:
        if self.released:
            raise OSError("frame source released")
        frame_path = self.frame_files[self._idx % len(self.frame_files)]
        self._idx += 1
        if frame_path.suffix.lower() == ".png":
            # inference expects JPEG
            image = cv2.imread(str(frame_path))
            if image is None:
                raise OSError(f"unreadable frame: {frame_path}")
            ok, buffer = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), JPEG_QUALITY])
            if not ok:
                raise OSError("jpeg encoding failed")
            return buffer.tobytes()
        return frame_path.read_bytes()

    def release(self) -> None:
        self.released = True


def open_frame_source(source: str) -> FrameSource:
    """
    "0"/"1"... -> local device, existing directory -> replay,
    anything else -> stream URL handed to OpenCV.
    """
    if source.isdigit():
        return OpenCVFrameSource(int(source))
    if Path(source).is_dir():
        return DirectoryFrameSource(source)
    return OpenCVFrameSource(source)
