import dataclasses

import numpy as np
import pytest

from eyesee import color_transform
from eyesee.color_transform import (
    Adjustments, ColorMatrix, TransformFailure, apply_adjustments, apply_matrix, identity,
)
from eyesee.filters import BIRD, CAT, DOG

from conftest import random_frame, solid_frame


def pixel(frame):
    return tuple(int(v) for v in frame.pixels[0, 0])


def test_dog_matrix_exact_pixel():
    out = apply_matrix(solid_frame((200, 100, 50, 255)), DOG.matrix)
    # 0.625*200 + 0.375*100 = 162.5, rounded half to even
    assert pixel(out) == (162, 162, 50, 255)


def test_cat_matrix_exact_pixel_before_contrast():
    out = apply_matrix(solid_frame((200, 100, 50, 255)), CAT.matrix)
    assert pixel(out) == (140, 80, 65, 255)


def test_bird_matrix_clamps_to_8_bit():
    out = apply_matrix(solid_frame((250, 10, 200, 255)), BIRD.matrix)
    assert pixel(out) == (255, 10, 255, 255)


def test_bias_is_added_after_multiplication_and_clamped():
    m = ColorMatrix(bias=(10.0, -20.0, 0.0, -300.0))
    out = apply_matrix(solid_frame((200, 10, 50, 255)), m)
    assert pixel(out) == (210, 0, 50, 0)


def test_identity_matrix_reproduces_pixels():
    f = random_frame(seed=3)
    out = apply_matrix(f, identity())
    assert identity().is_identity
    assert np.array_equal(out.pixels, f.pixels)


@pytest.mark.parametrize("cfg", [DOG, CAT, BIRD])
def test_matrix_preserves_dimensions_and_format(cfg):
    f = random_frame(width=13, height=9, tag=4)
    out = apply_matrix(f, cfg.matrix)
    assert (out.width, out.height, out.format, out.tag) == (13, 9, f.format, 4)
    assert out.stride == f.stride


def test_transform_returns_new_read_only_buffer():
    f = random_frame(seed=1)
    before = f.pixels.copy()
    out = apply_matrix(f, DOG.matrix)
    assert out.pixels is not f.pixels
    assert not out.pixels.flags.writeable
    assert np.array_equal(f.pixels, before)


def test_identity_adjustments_return_input():
    f = random_frame()
    assert Adjustments().is_identity
    assert apply_adjustments(f, Adjustments()) is f


def test_zero_saturation_gives_gray_and_keeps_alpha():
    out = apply_adjustments(solid_frame((200, 100, 50, 77)), Adjustments(saturation=0.0))
    r, g, b, a = pixel(out)
    assert r == g == b
    assert a == 77


def test_contrast_keeps_mid_gray_and_stretches_extremes():
    out = apply_adjustments(solid_frame((128, 20, 235, 255)), Adjustments(contrast=1.1))
    r, g, b, _ = pixel(out)
    assert r == 128
    assert g < 20
    assert b > 235


def test_brightness_offset_is_normalized():
    out = apply_adjustments(solid_frame((0, 100, 250, 255)), Adjustments(brightness=0.2))
    assert pixel(out)[:3] == (51, 151, 255)


def test_coefficients_are_not_mutable():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DOG.matrix.r = (1.0, 0.0, 0.0, 0.0)


def test_non_finite_result_raises_transform_failure():
    m = ColorMatrix(r=(float("inf"), 0.0, 0.0, 0.0))
    with pytest.raises(TransformFailure):
        apply_matrix(solid_frame((200, 100, 50, 255)), m)


def test_allocation_failure_raises_transform_failure(monkeypatch):
    def boom(values):
        raise MemoryError("no room")

    monkeypatch.setattr(color_transform, "_to_uint8", boom)
    with pytest.raises(TransformFailure):
        apply_matrix(random_frame(), DOG.matrix)
    with pytest.raises(TransformFailure):
        apply_adjustments(random_frame(), Adjustments(contrast=1.1))
