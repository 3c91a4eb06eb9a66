from __future__ import annotations
import logging
import os
import time
from typing import Optional

from PIL import Image

logger = logging.getLogger(__name__)


class GallerySaveError(RuntimeError):
    pass


def save_photo(image: Image.Image, directory: str, quality: int = 92,
               now: Optional[float] = None) -> str:
    """Write ``image`` as a timestamped JPEG under ``directory`` and return its path."""
    ts = time.time() if now is None else now
    stamp = time.strftime("%Y%m%d-%H%M%S", time.localtime(ts))
    ms = int((ts % 1) * 1000)
    path = os.path.join(directory, f"IMG_{stamp}_{ms:03d}.jpg")
    tmp = path + ".tmp"
    try:
        os.makedirs(directory, exist_ok=True)
        image.convert("RGB").save(tmp, format="JPEG", quality=quality)
        os.replace(tmp, path)
    except OSError as e:
        raise GallerySaveError(f"saving photo to {directory} failed: {e}") from e
    logger.info("photo saved to %s", path)
    return path
