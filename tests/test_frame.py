import numpy as np
import pytest

from eyesee.frame import Frame


def test_rgb_input_gets_opaque_alpha():
    rgb = np.zeros((2, 3, 3), dtype=np.uint8)
    f = Frame.from_array(rgb, tag=7)
    assert f.pixels.shape == (2, 3, 4)
    assert (f.pixels[..., 3] == 255).all()
    assert (f.width, f.height, f.stride, f.tag) == (3, 2, 12, 7)


def test_frame_is_read_only_and_detached_from_caller():
    arr = np.zeros((2, 2, 4), dtype=np.uint8)
    f = Frame(arr)
    arr[0, 0, 0] = 9
    assert f.pixels[0, 0, 0] == 0
    with pytest.raises(ValueError):
        f.pixels[0, 0, 0] = 1


def test_from_buffer_strips_stride_padding():
    width, height, stride = 2, 3, 12  # 8 bytes of pixels + 4 of padding per row
    data = bytearray()
    for row in range(height):
        data += bytes([row * 10 + i for i in range(8)]) + b"\xee" * 4
    f = Frame.from_buffer(bytes(data), width, height, stride)
    assert f.stride == width * 4
    assert f.pixels.shape == (3, 2, 4)
    assert 0xEE not in f.pixels
    assert list(f.pixels[2, 1]) == [24, 25, 26, 27]


def test_from_buffer_rejects_short_stride_and_small_buffer():
    with pytest.raises(ValueError):
        Frame.from_buffer(bytes(64), 4, 2, stride=8)
    with pytest.raises(ValueError):
        Frame.from_buffer(bytes(10), 4, 2)


@pytest.mark.parametrize("shape,dtype", [((2, 2, 3), np.uint8), ((2, 2, 4), np.float32), ((4, 4), np.uint8)])
def test_malformed_arrays_are_rejected(shape, dtype):
    with pytest.raises(ValueError):
        Frame(np.zeros(shape, dtype=dtype))


def test_to_image_is_rgba():
    f = Frame.from_array(np.full((3, 5, 3), 40, dtype=np.uint8))
    img = f.to_image()
    assert img.mode == "RGBA"
    assert img.size == (5, 3)


def test_read_only_view_is_detached_from_writable_owner():
    owner = np.zeros((2, 2, 4), dtype=np.uint8)
    view = owner.view()
    view.setflags(write=False)
    f = Frame(view)
    owner[0, 0, 0] = 9
    assert f.pixels[0, 0, 0] == 0


def test_from_buffer_copies_mutable_bytes():
    data = bytearray(2 * 2 * 4)
    f = Frame.from_buffer(data, 2, 2)
    data[0] = 7
    assert f.pixels[0, 0, 0] == 0
