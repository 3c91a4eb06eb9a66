from __future__ import annotations
import logging
import threading
import time
import weakref
from typing import Any, Dict, Optional, Tuple

import cv2
import numpy as np

from .frame import Frame

logger = logging.getLogger(__name__)

_ROTATIONS = {90: cv2.ROTATE_90_CLOCKWISE, 180: cv2.ROTATE_180, 270: cv2.ROTATE_90_COUNTERCLOCKWISE}


class FrameSource:
    """Capture thread that pushes frames into an attached pipeline.

    The pipeline is referenced weakly; if it goes away, frames are still
    captured (for ``capture_photo``) but delivered nowhere.
    """

    name = "FrameSource"

    def __init__(self, cam_cfg: Optional[Dict[str, Any]] = None):
        self._lock = threading.RLock()
        self._thread: Optional[threading.Thread] = None
        self._run = False
        self._latest: Optional[Frame] = None
        self._tag = 0
        self._on_frame: Optional[weakref.WeakMethod] = None
        self._on_state: Optional[weakref.WeakMethod] = None
        self._on_auth: Optional[weakref.WeakMethod] = None
        self._cam_tuple = self._read_cam_tuple(cam_cfg or {})

    # ---------- public API ----------
    def attach(self, pipeline):
        self._on_frame = weakref.WeakMethod(pipeline.on_frame)
        self._on_state = weakref.WeakMethod(pipeline.on_session_state_changed)
        self._on_auth = weakref.WeakMethod(pipeline.on_authorization_changed)

    def start(self):
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._run = True
            self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
            self._thread.start()

    def stop(self):
        with self._lock:
            self._run = False
        t = self._thread
        if t:
            t.join(timeout=2.0)
        self._thread = None

    @property
    def running(self) -> bool:
        with self._lock:
            return self._run

    @property
    def size(self) -> Tuple[int, int]:
        w, h, _, rot = self._cam_tuple
        return (h, w) if rot in (90, 270) else (w, h)

    def latest_frame(self) -> Optional[Frame]:
        with self._lock:
            return self._latest

    def capture_photo(self) -> Optional[Frame]:
        """Most recent raw frame; the still itself is whatever the sensor last delivered."""
        return self.latest_frame()

    def emit(self, arr: np.ndarray) -> Frame:
        rot = self._cam_tuple[3]
        if rot in _ROTATIONS:
            arr = cv2.rotate(arr, _ROTATIONS[rot])
        with self._lock:
            self._tag += 1
            frame = Frame.from_array(arr, tag=self._tag)
            self._latest = frame
        self._deliver(self._on_frame, frame)
        return frame

    # ---------- hooks ----------
    def _open(self):
        pass

    def _grab(self) -> Optional[np.ndarray]:
        raise NotImplementedError

    def _close(self):
        pass

    # ---------- internal ----------
    def _read_cam_tuple(self, cam: Dict[str, Any]) -> Tuple[int, int, int, int]:
        w = int(cam.get("width", 640))
        h = int(cam.get("height", 480))
        fps = max(1, min(60, int(cam.get("fps", 20))))
        rot = int(cam.get("rotation", 0)) % 360
        if rot not in (0, 90, 180, 270):
            rot = 0
        return (w, h, fps, rot)

    def _deliver(self, ref: Optional[weakref.WeakMethod], *args):
        fn = ref() if ref is not None else None
        if fn is not None:
            fn(*args)

    def _loop(self):
        try:
            self._open()
        except Exception as e:
            logger.error("[%s] open failed: %s", self.name, e)
            with self._lock:
                self._run = False
            return
        self._deliver(self._on_auth, True)
        self._deliver(self._on_state, True)
        logger.info("[%s] started at %s", self.name, self._cam_tuple)

        last_error_log = 0.0
        try:
            while True:
                with self._lock:
                    if not self._run:
                        break
                try:
                    arr = self._grab()
                except Exception as e:
                    now = time.monotonic()
                    if now - last_error_log > 2.0:
                        logger.warning("[%s] capture error: %s", self.name, e)
                        last_error_log = now
                    time.sleep(0.1)
                    continue
                if arr is not None:
                    self.emit(arr)
        finally:
            self._deliver(self._on_state, False)
            try:
                self._close()
            finally:
                logger.info("[%s] stopped", self.name)


class CameraStream(FrameSource):
    """Picamera2 backed source. picamera2 is only needed once the stream starts."""

    name = "CameraStream"

    def __init__(self, cam_cfg: Optional[Dict[str, Any]] = None):
        super().__init__(cam_cfg)
        self._picam = None

    def _open(self):
        from picamera2 import Picamera2

        w, h, fps, _ = self._cam_tuple
        last_exc = None
        for attempt in range(1, 4):  # 3 attempts with backoff
            pc = None
            try:
                pc = Picamera2()
                # XBGR8888 arrives as R,G,B,X bytes
                conf = pc.create_preview_configuration(main={"size": (w, h), "format": "XBGR8888"})
                pc.configure(conf)
                frame_time_us = int(1_000_000 / fps)
                pc.set_controls({"FrameDurationLimits": (frame_time_us, frame_time_us)})
                pc.start()
                self._picam = pc
                return
            except Exception as e:
                last_exc = e
                logger.warning("[%s] open retry %d/3: %s", self.name, attempt, e)
                if pc is not None:
                    pc.close()
                time.sleep(0.4 * attempt)
        raise RuntimeError(f"camera init failed after retries: {last_exc}")

    def _grab(self) -> Optional[np.ndarray]:
        arr = self._picam.capture_array("main")
        rgba = np.array(arr[..., :4], dtype=np.uint8)
        rgba[..., 3] = 255
        return rgba

    def _close(self):
        if self._picam is None:
            return
        try:
            self._picam.stop()
        finally:
            self._picam.close()
            self._picam = None


class PatternSource(FrameSource):
    """Synthetic color bars with a moving stripe, paced at the configured fps."""

    name = "PatternSource"

    def __init__(self, cam_cfg: Optional[Dict[str, Any]] = None):
        super().__init__(cam_cfg)
        self._base: Optional[np.ndarray] = None
        self._next_t = 0.0

    def _open(self):
        w, h, _, _ = self._cam_tuple
        bars = np.array([
            [255, 255, 255], [255, 255, 0], [0, 255, 255], [0, 255, 0],
            [255, 0, 255], [255, 0, 0], [0, 0, 255], [0, 0, 0],
        ], dtype=np.uint8)
        cols = (np.arange(w) * len(bars)) // w
        self._base = np.broadcast_to(bars[cols], (h, w, 3)).copy()
        self._next_t = time.monotonic()

    def _grab(self) -> Optional[np.ndarray]:
        w, h, fps, _ = self._cam_tuple
        delay = self._next_t - time.monotonic()
        if delay > 0:
            time.sleep(delay)
        self._next_t = max(self._next_t + 1.0 / fps, time.monotonic())
        return self.pattern(self._tag + 1)

    def pattern(self, n: int) -> np.ndarray:
        if self._base is None:
            self._open()
        img = self._base.copy()
        h, w = img.shape[:2]
        band = max(1, h // 12)
        y = (n * 4) % h
        img[y:y + band] = (128, 128, 128)
        return img


def make_source(cam_cfg: Dict[str, Any]) -> FrameSource:
    kind = str(cam_cfg.get("source", "pattern")).lower()
    if kind == "picamera2":
        return CameraStream(cam_cfg)
    if kind == "pattern":
        return PatternSource(cam_cfg)
    raise ValueError(f"unknown camera source {kind!r}")
