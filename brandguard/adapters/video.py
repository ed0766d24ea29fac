from __future__ import annotations

import concurrent.futures
import logging
import threading
from pathlib import Path
from typing import Any, Protocol

import cv2
import numpy as np

from brandguard.errors import FrameCaptureError


logger = logging.getLogger(__name__)


class DecodeSurface(Protocol):
    """The single stateful video-playback resource frames are captured from.

    ``seek_and_wait`` must block until the decoder has completed the seek and
    the frame at the new position is ready, raising ``FrameCaptureError`` when
    the frame cannot be read or ``timeout`` (seconds) elapses first.
    """

    def current_position(self) -> float: ...

    def is_playing(self) -> bool: ...

    def pause(self) -> None: ...

    def play(self) -> None: ...

    def seek_and_wait(self, seconds: float, timeout: float | None) -> np.ndarray: ...

    def set_position(self, seconds: float) -> None: ...


def encode_jpeg(frame: np.ndarray, *, quality: int = 80) -> bytes:
    if frame is None or getattr(frame, 'size', 0) == 0:
        raise FrameCaptureError('decoded frame is empty')
    ok, encoded = cv2.imencode('.jpg', frame, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise FrameCaptureError('frame could not be encoded as JPEG')
    return encoded.tobytes()


class OpenCVDecodeSurface:
    """DecodeSurface over ``cv2.VideoCapture``.

    Every decoder call runs on one private worker thread. A seek that outlives
    its timeout leaves the surface stalled: further seeks fail fast and
    repositioning is only recorded until the stuck read returns, so no caller
    ever queues behind it.
    """

    def __init__(self, source: str | Path):
        self.source = str(source)
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix='brandguard-decode',
        )
        self._lock = threading.Lock()
        self._capture: Any = None
        self._position = 0.0
        self._playing = False
        self._closed = False
        self._stuck: concurrent.futures.Future | None = None

    def _ensure_capture(self):
        if self._capture is None:
            self._capture = cv2.VideoCapture(self.source)
        if not self._capture.isOpened():
            raise FrameCaptureError(f'video source cannot be opened for readback: {self.source}', forbidden=True)
        return self._capture

    def _seek_and_read(self, seconds: float) -> np.ndarray:
        capture = self._ensure_capture()
        capture.set(cv2.CAP_PROP_POS_MSEC, max(0.0, float(seconds)) * 1000.0)
        ok, frame = capture.read()
        if not ok or frame is None:
            raise FrameCaptureError(f'no frame decoded at {seconds:.3f}s')
        return frame

    def _reposition(self, seconds: float) -> None:
        if self._capture is not None and self._capture.isOpened():
            self._capture.set(cv2.CAP_PROP_POS_MSEC, max(0.0, float(seconds)) * 1000.0)

    @property
    def stalled(self) -> bool:
        with self._lock:
            return self._stalled_locked()

    def _stalled_locked(self) -> bool:
        if self._stuck is not None and self._stuck.done():
            self._stuck = None
        return self._stuck is not None

    def current_position(self) -> float:
        return self._position

    def is_playing(self) -> bool:
        return self._playing

    def pause(self) -> None:
        self._playing = False

    def play(self) -> None:
        self._playing = True

    def seek_and_wait(self, seconds: float, timeout: float | None) -> np.ndarray:
        with self._lock:
            if self._closed:
                raise FrameCaptureError('decode surface is closed')
            if self._stalled_locked():
                raise FrameCaptureError('decoder is still busy with a timed-out seek', timed_out=True)
            future = self._executor.submit(self._seek_and_read, seconds)
        try:
            frame = future.result(timeout=timeout)
        except concurrent.futures.TimeoutError as exc:
            with self._lock:
                self._stuck = future
            logger.warning('Seek to %.3fs on %s exceeded %ss; surface stalled', seconds, self.source, timeout)
            raise FrameCaptureError(
                f'seek to {seconds:.3f}s did not complete within {timeout}s',
                timed_out=True,
            ) from exc
        self._position = float(seconds)
        return frame

    def set_position(self, seconds: float) -> None:
        self._position = float(seconds)
        with self._lock:
            if self._closed or self._stalled_locked():
                # Every read seeks explicitly, so the recorded position is enough.
                return
            future = self._executor.submit(self._reposition, seconds)
        future.result()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            stalled = self._stalled_locked()

        def release() -> None:
            if self._capture is not None:
                self._capture.release()
                self._capture = None

        # Release is queued after any stuck read; only wait for it when nothing is stuck.
        pending = self._executor.submit(release)
        self._executor.shutdown(wait=not stalled)
        if not stalled:
            pending.result()

    def __enter__(self) -> 'OpenCVDecodeSurface':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
