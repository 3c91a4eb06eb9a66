from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from PIL import Image

from .color_transform import TransformFailure, apply_adjustments, apply_matrix
from .filters import FilterVariant, matrix_for
from .frame import Frame

logger = logging.getLogger(__name__)


class FrameProcessor:
    def process(self, raw: Frame, variant: FilterVariant) -> Optional[Frame]:
        """Filtered copy of ``raw``, or None for the identity variant.

        The identity check happens before any pixel work. Raises
        TransformFailure if either pass fails; the caller keeps ``raw``.
        """
        if variant is FilterVariant.NONE:
            return None
        cfg = matrix_for(variant)
        out = apply_matrix(raw, cfg.matrix)
        if cfg.adjustments is not None:
            out = apply_adjustments(out, cfg.adjustments)
        return out

    def render_image(self, frame: Frame) -> Image.Image:
        return frame.to_image()


@dataclass(frozen=True)
class Job:
    seq: int
    frame: Frame
    variant: FilterVariant
    generation: int


class LatestFrameWorker:
    """Single-slot worker: a new submission replaces the pending one.

    Jobs run on one background thread once ``start()`` is called; without a
    thread, ``run_pending()`` runs the pending job on the caller's thread.
    """

    def __init__(self, handler: Callable[[Job], None], name: str = "FrameWorker"):
        self._handler = handler
        self._name = name
        self._cond = threading.Condition()
        self._pending: Optional[Job] = None
        self._busy = False
        self._run = False
        self._thread: Optional[threading.Thread] = None
        self._last_error_log = 0.0
        self.dropped = 0
        self.failed = 0
        self.completed = 0

    # ---------- public API ----------
    def start(self):
        with self._cond:
            if self._thread and self._thread.is_alive():
                return
            self._run = True
            self._thread = threading.Thread(target=self._loop, name=self._name, daemon=True)
            self._thread.start()

    def stop(self, timeout: float = 2.0):
        with self._cond:
            self._run = False
            self._pending = None
            self._cond.notify_all()
        t = self._thread
        if t and t is not threading.current_thread():
            t.join(timeout=timeout)
        self._thread = None

    def submit(self, job: Job) -> bool:
        """Queue ``job`` in place of the pending one; False if the pending one is newer.

        Jobs order by filter generation, then by frame sequence, so a resync
        of an older cached frame never displaces a frame that arrived later.
        """
        with self._cond:
            pending = self._pending
            if pending is not None:
                self.dropped += 1
                if (pending.generation, pending.seq) > (job.generation, job.seq):
                    return False
            self._pending = job
            self._cond.notify_all()
            return True

    def cancel_pending(self) -> Optional[Job]:
        with self._cond:
            job, self._pending = self._pending, None
            self._cond.notify_all()
            return job

    @property
    def has_pending(self) -> bool:
        with self._cond:
            return self._pending is not None

    def run_pending(self) -> bool:
        job = self._take(block=False)
        if job is None:
            return False
        self._execute(job)
        return True

    def wait_idle(self, timeout: float = 2.0) -> bool:
        deadline = time.monotonic() + timeout
        with self._cond:
            while self._pending is not None or self._busy:
                left = deadline - time.monotonic()
                if left <= 0:
                    return False
                self._cond.wait(left)
            return True

    # ---------- internal ----------
    def _take(self, block: bool) -> Optional[Job]:
        with self._cond:
            while block and self._run and self._pending is None:
                self._cond.wait()
            job, self._pending = self._pending, None
            if job is not None:
                self._busy = True
            return job

    def _execute(self, job: Job):
        try:
            self._handler(job)
            self.completed += 1
        except TransformFailure as e:
            self.failed += 1
            now = time.monotonic()
            if now - self._last_error_log > 2.0:
                logger.warning("[%s] frame %s dropped: %s", self._name, job.frame.tag, e)
                self._last_error_log = now
        except Exception:
            self.failed += 1
            logger.exception("[%s] frame %s handler error", self._name, job.frame.tag)
        finally:
            with self._cond:
                self._busy = False
                self._cond.notify_all()

    def _loop(self):
        logger.debug("[%s] started", self._name)
        while True:
            job = self._take(block=True)
            if job is None:
                with self._cond:
                    if not self._run:
                        break
                continue
            self._execute(job)
        logger.debug("[%s] stopped", self._name)
