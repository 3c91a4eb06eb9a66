from __future__ import annotations
import enum
import threading
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .color_transform import Adjustments, ColorMatrix


class FilterVariant(enum.Enum):
    NONE = "none"
    DOG = "dog"
    CAT = "cat"
    BIRD = "bird"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @classmethod
    def parse(cls, name: str) -> "FilterVariant":
        key = (name or "").strip().lower()
        for v in cls:
            if key in (v.value, v.name.lower()):
                return v
        raise ValueError(f"unknown filter {name!r}; expected one of {[v.value for v in cls]}")


_LABELS = {
    FilterVariant.NONE: "No filter",
    FilterVariant.DOG: "Dog vision",
    FilterVariant.CAT: "Cat vision",
    FilterVariant.BIRD: "Bird vision",
}

ORDER: Tuple[FilterVariant, ...] = (
    FilterVariant.NONE,
    FilterVariant.DOG,
    FilterVariant.CAT,
    FilterVariant.BIRD,
)


@dataclass(frozen=True)
class FilterConfig:
    matrix: ColorMatrix
    adjustments: Optional[Adjustments] = None


# red/green collapse into one channel (dichromacy)
DOG = FilterConfig(ColorMatrix(
    r=(0.625, 0.375, 0.0, 0.0),
    g=(0.625, 0.375, 0.0, 0.0),
    b=(0.0, 0.0, 1.0, 0.0),
    a=(0.0, 0.0, 0.0, 1.0),
))

# blue-shifted, contrast boosted low-light vision
CAT = FilterConfig(ColorMatrix(
    r=(0.7, 0.0, 0.0, 0.0),
    g=(0.0, 0.8, 0.0, 0.0),
    b=(0.0, 0.0, 1.3, 0.0),
    a=(0.0, 0.0, 0.0, 1.0),
), Adjustments(contrast=1.1))

# wider, blue/UV leaning gamut
BIRD = FilterConfig(ColorMatrix(
    r=(1.1, 0.0, 0.0, 0.0),
    g=(0.0, 1.0, 0.0, 0.0),
    b=(0.0, 0.0, 1.4, 0.0),
    a=(0.0, 0.0, 0.0, 1.0),
), Adjustments(saturation=1.3))

CATALOG: Dict[FilterVariant, FilterConfig] = {
    FilterVariant.DOG: DOG,
    FilterVariant.CAT: CAT,
    FilterVariant.BIRD: BIRD,
}


def next_variant(current: FilterVariant) -> FilterVariant:
    i = ORDER.index(current)
    return ORDER[(i + 1) % len(ORDER)]


def matrix_for(variant: FilterVariant) -> Optional[FilterConfig]:
    """None for the identity variant, the fixed configuration otherwise."""
    if variant is FilterVariant.NONE:
        return None
    return CATALOG[variant]


class FilterSelection:
    """Active filter of one preview session.

    Every change bumps ``generation`` so results computed under an older
    selection can be recognized and discarded. Read from the frame producer
    thread, written from the UI thread.
    """

    def __init__(self, initial: FilterVariant = FilterVariant.NONE):
        self._lock = threading.Lock()
        self._variant = initial
        self._generation = 0

    @property
    def current(self) -> FilterVariant:
        with self._lock:
            return self._variant

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def snapshot(self) -> Tuple[FilterVariant, int]:
        with self._lock:
            return self._variant, self._generation

    def cycle(self) -> FilterVariant:
        with self._lock:
            self._variant = next_variant(self._variant)
            self._generation += 1
            return self._variant

    def select(self, variant: FilterVariant) -> bool:
        """Switch to ``variant``; True if that changed the selection."""
        with self._lock:
            if variant is self._variant:
                return False
            self._variant = variant
            self._generation += 1
            return True

    def invalidate(self) -> int:
        """Bump the generation without changing the variant (session stop)."""
        with self._lock:
            self._generation += 1
            return self._generation
