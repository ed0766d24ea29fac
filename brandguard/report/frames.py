from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from brandguard.adapters.video import DecodeSurface, encode_jpeg
from brandguard.errors import FrameCaptureError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapturedFrame:
    data: bytes
    width: int
    height: int
    seconds: float
    mime_type: str = 'image/jpeg'


@dataclass(frozen=True)
class PlaybackState:
    position: float
    playing: bool


class VideoFrameSource:
    """Seek-and-capture over one shared decode surface.

    Playback position and play/pause state are recorded before every capture
    and restored on every exit path. Captures are serialized because they
    share the one surface.
    """

    def __init__(
        self,
        surface: DecodeSurface,
        *,
        timeout_seconds: float | None = None,
        jpeg_quality: int = 80,
    ):
        self.surface = surface
        self.timeout_seconds = timeout_seconds
        self.jpeg_quality = jpeg_quality
        self._lock = threading.Lock()
        self.capture_count = 0

    @contextmanager
    def _held_playback(self) -> Iterator[PlaybackState]:
        saved = PlaybackState(
            position=self.surface.current_position(),
            playing=self.surface.is_playing(),
        )
        try:
            self.surface.pause()
            yield saved
        finally:
            try:
                self.surface.set_position(saved.position)
            finally:
                if saved.playing:
                    self.surface.play()

    def capture_frame(self, seconds: float) -> CapturedFrame:
        with self._lock:
            self.capture_count += 1
            try:
                with self._held_playback():
                    frame = self.surface.seek_and_wait(float(seconds), self.timeout_seconds)
                    data = encode_jpeg(frame, quality=self.jpeg_quality)
            except FrameCaptureError:
                raise
            except Exception as exc:
                # Readback or playback control denied by the surface (e.g. protected content).
                raise FrameCaptureError(
                    f'frame readback failed at {seconds:.3f}s: {type(exc).__name__}: {exc}',
                    forbidden=True,
                ) from exc
        height, width = frame.shape[:2]
        logger.debug('Captured %dx%d frame at %.3fs', width, height, seconds)
        return CapturedFrame(data=data, width=int(width), height=int(height), seconds=float(seconds))
