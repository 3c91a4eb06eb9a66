import sys

import numpy as np
import pytest

from eyesee.camera import CameraStream, PatternSource, make_source


def test_make_source_kinds():
    assert isinstance(make_source({"source": "pattern"}), PatternSource)
    assert isinstance(make_source({"source": "picamera2"}), CameraStream)
    with pytest.raises(ValueError):
        make_source({"source": "webcam"})


def test_camera_stream_defers_picamera2_import(monkeypatch):
    # a None entry makes any import of picamera2 fail
    monkeypatch.setitem(sys.modules, "picamera2", None)
    src = CameraStream({"width": 8, "height": 6})
    assert src.size == (8, 6)
    assert src.latest_frame() is None


def test_emit_tags_frames_monotonically():
    src = PatternSource({"width": 8, "height": 6})
    tags = [src.emit(src.pattern(n)).tag for n in range(1, 4)]
    assert tags == [1, 2, 3]
    assert src.capture_photo().tag == 3


def test_pattern_frames_are_opaque_rgba():
    src = PatternSource({"width": 16, "height": 8})
    f = src.emit(src.pattern(1))
    assert (f.width, f.height) == (16, 8)
    assert (f.pixels[..., 3] == 255).all()
    assert not np.array_equal(src.pattern(1), src.pattern(2))


@pytest.mark.parametrize("rotation,size", [(0, (16, 8)), (90, (8, 16)), (180, (16, 8)), (45, (16, 8))])
def test_rotation(rotation, size):
    src = PatternSource({"width": 16, "height": 8, "rotation": rotation})
    f = src.emit(src.pattern(1))
    assert (f.width, f.height) == size
    assert src.size == size


def test_fps_is_clamped():
    src = PatternSource({"fps": 500})
    assert src._cam_tuple[2] == 60


def test_no_photo_before_first_frame():
    assert PatternSource({}).capture_photo() is None


def test_camera_open_failure_leaves_session_untouched(monkeypatch, pipeline):
    monkeypatch.setitem(sys.modules, "picamera2", None)
    src = CameraStream({"width": 8, "height": 6})
    src.attach(pipeline)
    src.start()
    src._thread.join(timeout=2.0)
    assert not src.running
    assert pipeline.state.value == "not_requested"
    src.stop()
