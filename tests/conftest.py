"""Shared fixtures for the EyeSee test suite."""

import numpy as np
import pytest

from eyesee.dispatch import UiDispatcher
from eyesee.filters import FilterSelection
from eyesee.frame import Frame
from eyesee.overlay import Bounds, OverlayController, PreviewSurface
from eyesee.session import PreviewPipeline


class RecordingSurface(PreviewSurface):
    """Surface that logs compositing calls and the overlay count after each one."""

    def __init__(self, bounds=Bounds(8, 6)):
        super().__init__(bounds)
        self.events = []
        self.max_visible = 0

    def attach_overlay(self, layer):
        super().attach_overlay(layer)
        self.events.append(("attach", layer.tag))
        self.max_visible = max(self.max_visible, len(self.overlays))

    def detach_overlay(self, layer):
        super().detach_overlay(layer)
        self.events.append(("detach", layer.tag))


def solid_frame(rgba=(200, 100, 50, 255), width=8, height=6, tag=None):
    arr = np.empty((height, width, 4), dtype=np.uint8)
    arr[...] = rgba
    return Frame(arr, tag=tag)


def random_frame(width=7, height=5, tag=None, seed=0):
    rng = np.random.default_rng(seed)
    return Frame(rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8), tag=tag)


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def selection():
    return FilterSelection()


@pytest.fixture
def controller(selection, surface):
    return OverlayController(selection, surface=surface)


@pytest.fixture
def pipeline(surface):
    """Pipeline whose worker and UI queue are pumped by hand."""
    p = PreviewPipeline(surface, dispatcher=UiDispatcher())
    yield p
    p.worker.stop()
    p.dispatcher.stop()


def pump(p):
    """Run the UI queue, then the worker, then the UI queue again."""
    p.dispatcher.run_pending()
    p.worker.run_pending()
    p.dispatcher.run_pending()
