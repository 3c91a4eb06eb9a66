from __future__ import annotations
import enum
import logging
import threading
from typing import Optional

from .dispatch import UiDispatcher
from .filters import FilterSelection, FilterVariant
from .frame import Frame
from .overlay import Bounds, OverlayController, PreviewSurface
from .processor import FrameProcessor, Job, LatestFrameWorker

logger = logging.getLogger(__name__)


class SessionLifecycleState(enum.Enum):
    NOT_REQUESTED = "not_requested"
    AUTHORIZED = "authorized"
    DENIED = "denied"
    RUNNING = "running"
    STOPPED = "stopped"


class PreviewPipeline:
    """Filtered preview of one camera session on one surface.

    Camera sources call ``on_frame``/``on_session_state_changed`` from their
    own thread; UI hosts call the ``on_filter_*``/``on_surface_*`` events.
    Pixel work runs on ``worker``; every overlay mutation is posted to
    ``dispatcher``.
    """

    def __init__(self, surface: Optional[PreviewSurface] = None,
                 dispatcher: Optional[UiDispatcher] = None,
                 initial: FilterVariant = FilterVariant.NONE,
                 processor: Optional[FrameProcessor] = None):
        self.selection = FilterSelection(initial)
        self.processor = processor or FrameProcessor()
        self.dispatcher = dispatcher or UiDispatcher()
        self.worker = LatestFrameWorker(self._run_job)
        self.overlay = OverlayController(self.selection, self.processor, surface, submit=self._submit)
        self._lock = threading.Lock()
        self._state = SessionLifecycleState.NOT_REQUESTED
        self._seq = 0
        self._surface_live = surface is not None
        self.frames_received = 0
        self.frames_ignored = 0

    # ---------- lifecycle ----------
    def start(self):
        """Start the worker and, unless the host drives it, the UI thread."""
        self.worker.start()
        self.dispatcher.start()

    def close(self):
        self.on_session_state_changed(False)
        self.worker.stop()
        self.dispatcher.stop()

    @property
    def state(self) -> SessionLifecycleState:
        with self._lock:
            return self._state

    @property
    def filter(self) -> FilterVariant:
        return self.selection.current

    # ---------- inbound: session bridge ----------
    def on_authorization_changed(self, granted: bool):
        with self._lock:
            if granted and self._state is SessionLifecycleState.RUNNING:
                return
            if self._state is SessionLifecycleState.RUNNING:
                self._halt_locked()
            self._state = SessionLifecycleState.AUTHORIZED if granted else SessionLifecycleState.DENIED
        logger.info("camera authorization %s", "granted" if granted else "denied")

    def on_session_state_changed(self, running: bool):
        with self._lock:
            prev = self._state
            if running:
                if prev is SessionLifecycleState.DENIED:
                    logger.warning("session start ignored: camera access denied")
                    return
                self._state = SessionLifecycleState.RUNNING
            elif prev is SessionLifecycleState.RUNNING:
                self._state = SessionLifecycleState.STOPPED
                self._halt_locked()
            else:
                return
        logger.info("session %s -> %s", prev.value, self._state.value)

    def on_frame(self, raw: Frame):
        with self._lock:
            if self._state is not SessionLifecycleState.RUNNING or not self._surface_live:
                self.frames_ignored += 1
                return
            self.frames_received += 1
            self._seq += 1
            seq = self._seq
            self.dispatcher.post(self.overlay.cache_frame, raw, seq)
            variant, generation = self.selection.snapshot()
        if variant is FilterVariant.NONE:
            return
        self._submit(raw, variant, generation, seq)

    # ---------- inbound: UI ----------
    def on_filter_cycle_requested(self) -> FilterVariant:
        variant = self.selection.cycle()
        logger.info("filter -> %s", variant.label)
        self.worker.cancel_pending()
        self.dispatcher.post(self.overlay.resync)
        return variant

    def select_filter(self, variant: FilterVariant) -> FilterVariant:
        if not self.selection.select(variant):
            return variant
        logger.info("filter -> %s", variant.label)
        self.worker.cancel_pending()
        self.dispatcher.post(self.overlay.resync)
        return variant

    def on_surface_geometry_changed(self, bounds: Bounds):
        self.dispatcher.post(self.overlay.surface_resized, bounds)

    def on_surface_attached(self, surface: PreviewSurface):
        """Bind a new surface; frames are processed again from the next one."""
        with self._lock:
            self._surface_live = True
        self.dispatcher.post(self.overlay.bind_surface, surface)
        self.dispatcher.post(self.overlay.resync)

    def on_surface_torn_down(self):
        with self._lock:
            self._surface_live = False
            self.worker.cancel_pending()
            self.selection.invalidate()
            self.dispatcher.post(self.overlay.teardown)

    # ---------- internal ----------
    def _halt_locked(self):
        # runs under self._lock so no frame can slip in with the new generation
        self.worker.cancel_pending()
        self.selection.invalidate()
        self.dispatcher.post(self._clear_on_stop)

    def _clear_on_stop(self):
        self.overlay.clear()
        self.overlay.cache_frame(None)

    def _submit(self, frame: Frame, variant: FilterVariant, generation: int, seq: int):
        self.worker.submit(Job(seq, frame, variant, generation))

    def _run_job(self, job: Job):
        out = self.processor.process(job.frame, job.variant)
        if out is None:
            return
        self.dispatcher.post(self.overlay.apply_result, job.seq, job.generation, out)
