from __future__ import annotations
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from PIL import Image

PIXEL_FORMAT = "RGBA8888"
CHANNELS = 4


@dataclass(frozen=True)
class Frame:
    """One captured image: HxWx4 uint8, RGBA interleaved, read-only."""
    pixels: np.ndarray = field(repr=False)
    tag: Optional[int] = None

    def __post_init__(self):
        arr = self.pixels
        if arr.dtype != np.uint8:
            raise ValueError(f"frame must be uint8, got {arr.dtype}")
        if arr.ndim != 3 or arr.shape[2] != CHANNELS:
            raise ValueError(f"frame must be HxWx{CHANNELS}, got shape {arr.shape}")
        # only a read-only buffer we own outright is safe to keep; a view can
        # still change underneath us through its base
        if arr.flags.writeable or not arr.flags.owndata or not arr.flags.c_contiguous:
            arr = np.array(arr, dtype=np.uint8, order="C", copy=True)
        arr.setflags(write=False)
        object.__setattr__(self, "pixels", arr)

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    @property
    def stride(self) -> int:
        return self.pixels.strides[0]

    @property
    def format(self) -> str:
        return PIXEL_FORMAT

    @property
    def size(self):
        return (self.width, self.height)

    @classmethod
    def from_array(cls, arr: np.ndarray, tag: Optional[int] = None) -> "Frame":
        """Wrap an HxWx3 (RGB) or HxWx4 (RGBA) uint8 array; RGB gets opaque alpha."""
        arr = np.asarray(arr)
        if arr.ndim == 3 and arr.shape[2] == 3:
            alpha = np.full(arr.shape[:2] + (1,), 255, dtype=np.uint8)
            arr = np.concatenate([arr.astype(np.uint8, copy=False), alpha], axis=2)
        return cls(arr, tag=tag)

    @classmethod
    def from_buffer(cls, data, width: int, height: int, stride: Optional[int] = None,
                    tag: Optional[int] = None) -> "Frame":
        """Build a frame from raw RGBA bytes whose rows may carry stride padding."""
        row = width * CHANNELS
        stride = row if stride is None else int(stride)
        if stride < row:
            raise ValueError(f"stride {stride} shorter than row of {row} bytes")
        buf = np.frombuffer(data, dtype=np.uint8)
        if buf.size < stride * (height - 1) + row:
            raise ValueError(f"buffer of {buf.size} bytes too small for {width}x{height} stride {stride}")
        if buf.size < stride * height:
            buf = np.concatenate([buf, np.zeros(stride * height - buf.size, dtype=np.uint8)])
        rows = buf[: stride * height].reshape(height, stride)
        return cls(rows[:, :row].reshape(height, width, CHANNELS), tag=tag)

    def to_image(self) -> Image.Image:
        return Image.fromarray(self.pixels)

    def with_pixels(self, pixels: np.ndarray) -> "Frame":
        # takes ownership of a freshly computed buffer, keeps the source tag
        pixels.setflags(write=False)
        return Frame(pixels, tag=self.tag)
