from __future__ import annotations
import logging
import threading
import weakref
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from .color_transform import TransformFailure
from .filters import FilterSelection, FilterVariant
from .frame import Frame
from .processor import FrameProcessor

logger = logging.getLogger(__name__)


class SurfaceUnavailable(RuntimeError):
    pass


@dataclass(frozen=True)
class Bounds:
    width: int
    height: int
    x: int = 0
    y: int = 0

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"bounds must be positive, got {self.width}x{self.height}")

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)


@dataclass(frozen=True, eq=False)
class OverlayLayer:
    """Filtered pixels scaled to the bounds of the surface they sit on."""
    image: np.ndarray = field(repr=False)
    bounds: Bounds
    tag: Optional[int] = None

    @classmethod
    def fit(cls, frame: Frame, bounds: Bounds) -> "OverlayLayer":
        if frame.size == bounds.size:
            img = frame.pixels
        else:
            img = cv2.resize(frame.pixels, bounds.size, interpolation=cv2.INTER_LINEAR)
            img.setflags(write=False)
        return cls(img, bounds, frame.tag)


class PreviewSurface:
    """Host surface with the two compositing primitives the controller uses.

    ``transaction()`` is the synchronization point: readers compositing the
    surface take the same lock, so a detach+attach inside it is seen as one
    swap.
    """

    def __init__(self, bounds: Bounds):
        self._lock = threading.RLock()
        self._bounds = bounds
        self._overlays: list = []

    @property
    def bounds(self) -> Bounds:
        with self._lock:
            return self._bounds

    def resize(self, bounds: Bounds):
        with self._lock:
            self._bounds = bounds

    def transaction(self):
        return self._lock

    def attach_overlay(self, layer: OverlayLayer):
        with self._lock:
            self._overlays.append(layer)

    def detach_overlay(self, layer: OverlayLayer):
        with self._lock:
            if layer in self._overlays:
                self._overlays.remove(layer)

    @property
    def overlays(self) -> Tuple[OverlayLayer, ...]:
        with self._lock:
            return tuple(self._overlays)


Submit = Callable[[Frame, FilterVariant, int, int], None]


class OverlayController:
    """Owns the one live overlay and the last raw frame of a preview session.

    All methods must be called on the UI thread. The surface is held weakly;
    the host owns it.
    """

    def __init__(self, selection: FilterSelection, processor: Optional[FrameProcessor] = None,
                 surface: Optional[PreviewSurface] = None, submit: Optional[Submit] = None):
        self._selection = selection
        self._processor = processor or FrameProcessor()
        self._submit = submit
        self._surface_ref: Optional[weakref.ReferenceType] = None
        self._overlay: Optional[OverlayLayer] = None
        self._overlay_host: Optional[weakref.ReferenceType] = None
        self._last_raw: Optional[Frame] = None
        self._last_seq = 0
        self._applied: Tuple[int, int] = (-1, -1)
        if surface is not None:
            self.bind_surface(surface)

    # ---------- state ----------
    @property
    def active(self) -> Optional[OverlayLayer]:
        return self._overlay

    @property
    def is_showing(self) -> bool:
        return self._overlay is not None

    @property
    def last_frame(self) -> Optional[Frame]:
        return self._last_raw

    def bind_surface(self, surface: PreviewSurface):
        self._surface_ref = weakref.ref(surface)

    def surface(self) -> PreviewSurface:
        s = self._surface_ref() if self._surface_ref is not None else None
        if s is None:
            raise SurfaceUnavailable("no preview surface bound")
        return s

    def cache_frame(self, frame: Optional[Frame], seq: Optional[int] = None):
        """Remember the raw frame (and its arrival sequence) for later resyncs."""
        self._last_raw = frame
        self._last_seq = 0 if frame is None or seq is None else seq

    # ---------- operations ----------
    def render(self, frame: Frame, surface: Optional[PreviewSurface] = None) -> bool:
        try:
            target = surface if surface is not None else self.surface()
        except SurfaceUnavailable as e:
            logger.debug("render of frame %s skipped: %s", frame.tag, e)
            return False
        layer = OverlayLayer.fit(frame, target.bounds)
        old, old_host = self._overlay, self._host()
        with target.transaction():
            if old is not None and old_host is target:
                target.detach_overlay(old)
            target.attach_overlay(layer)
            self._overlay = layer
            self._overlay_host = weakref.ref(target)
        if old is not None and old_host is not None and old_host is not target:
            old_host.detach_overlay(old)
        return True

    def clear(self):
        old, host = self._overlay, self._host()
        self._overlay = None
        self._overlay_host = None
        if old is not None and host is not None:
            host.detach_overlay(old)

    def resync(self, last_known_frame: Optional[Frame] = None, seq: Optional[int] = None):
        """Rebuild the overlay from the cached frame under the current filter."""
        if last_known_frame is not None:
            self.cache_frame(last_known_frame, seq)
        frame, frame_seq = self._last_raw, self._last_seq
        variant, generation = self._selection.snapshot()
        if frame is None or variant is FilterVariant.NONE:
            self.clear()
            return
        if self._submit is not None:
            self._submit(frame, variant, generation, frame_seq)
            return
        try:
            out = self._processor.process(frame, variant)
        except TransformFailure as e:
            logger.warning("resync of frame %s dropped: %s", frame.tag, e)
            return
        self._applied = (generation, frame_seq)
        self.render(out)

    def surface_resized(self, bounds: Bounds):
        try:
            s = self.surface()
        except SurfaceUnavailable:
            return
        if s.bounds != bounds:
            s.resize(bounds)
        self.resync()

    def apply_result(self, seq: int, generation: int, frame: Frame) -> bool:
        """Render a worker result unless a later frame already landed.

        ``seq`` is the arrival order of the source frame. Within one filter
        generation an older frame never replaces a newer one; the same frame
        may be rendered again (resize).
        """
        if generation != self._selection.generation:
            logger.debug("result %s discarded: filter generation %s is stale", seq, generation)
            return False
        applied_gen, applied_seq = self._applied
        if generation == applied_gen and seq < applied_seq:
            logger.debug("result %s discarded: %s already applied", seq, applied_seq)
            return False
        self._applied = (generation, seq)
        return self.render(frame)

    def teardown(self):
        self.clear()
        self._surface_ref = None
        self.cache_frame(None)

    def _host(self) -> Optional[PreviewSurface]:
        return self._overlay_host() if self._overlay_host is not None else None
