"""Channel-mixing color transforms over RGBA8888 frames.

Both passes are pure: they read the input frame and return a new one. A
failure to allocate or compute the output raises TransformFailure and no
partial buffer escapes.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .frame import Frame

Row = Tuple[float, float, float, float]

# Rec. 709 weights, as used by the platform color-controls filter
LUMA = np.array([0.2125, 0.7154, 0.0721], dtype=np.float32)


class TransformFailure(RuntimeError):
    pass


@dataclass(frozen=True)
class ColorMatrix:
    r: Row = (1.0, 0.0, 0.0, 0.0)
    g: Row = (0.0, 1.0, 0.0, 0.0)
    b: Row = (0.0, 0.0, 1.0, 0.0)
    a: Row = (0.0, 0.0, 0.0, 1.0)
    bias: Row = (0.0, 0.0, 0.0, 0.0)

    @property
    def rows(self) -> Tuple[Row, Row, Row, Row]:
        return (self.r, self.g, self.b, self.a)

    @property
    def is_identity(self) -> bool:
        return self == IDENTITY

    def as_array(self) -> np.ndarray:
        return np.array(self.rows, dtype=np.float32)


IDENTITY = ColorMatrix()


def identity() -> ColorMatrix:
    return IDENTITY


@dataclass(frozen=True)
class Adjustments:
    saturation: float = 1.0
    contrast: float = 1.0
    brightness: float = 0.0

    @property
    def is_identity(self) -> bool:
        return self.saturation == 1.0 and self.contrast == 1.0 and self.brightness == 0.0


def _to_uint8(values: np.ndarray) -> np.ndarray:
    return np.clip(np.rint(values), 0, 255).astype(np.uint8)


def apply_matrix(frame: Frame, matrix: ColorMatrix) -> Frame:
    """out[c] = sum_k(rows[c][k] * in[k]) + bias[c], rounded and clamped to 0..255."""
    try:
        src = frame.pixels.astype(np.float32)
        mixed = src @ matrix.as_array().T
        mixed += np.array(matrix.bias, dtype=np.float32)
        if not np.all(np.isfinite(mixed)):
            raise FloatingPointError("non-finite channel value")
        out = _to_uint8(mixed)
    except (MemoryError, ValueError, FloatingPointError) as e:
        raise TransformFailure(f"color matrix on {frame.width}x{frame.height} frame failed: {e}") from e
    return frame.with_pixels(out)


def apply_adjustments(frame: Frame, adj: Adjustments) -> Frame:
    """Saturation, brightness, then contrast on normalized RGB; alpha passes through."""
    if adj.is_identity:
        return frame
    try:
        rgb = frame.pixels[..., :3].astype(np.float32) / 255.0
        if adj.saturation != 1.0:
            y = (rgb @ LUMA)[..., None]
            rgb = y + adj.saturation * (rgb - y)
        if adj.brightness != 0.0:
            rgb += adj.brightness
        if adj.contrast != 1.0:
            rgb = (rgb - 0.5) * adj.contrast + 0.5
        rgb *= 255.0
        if not np.all(np.isfinite(rgb)):
            raise FloatingPointError("non-finite channel value")
        out = np.empty(frame.pixels.shape, dtype=np.uint8)
        out[..., :3] = _to_uint8(rgb)
        out[..., 3] = frame.pixels[..., 3]
    except (MemoryError, ValueError, FloatingPointError) as e:
        raise TransformFailure(f"color adjustments on {frame.width}x{frame.height} frame failed: {e}") from e
    return frame.with_pixels(out)
