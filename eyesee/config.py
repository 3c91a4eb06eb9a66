from __future__ import annotations
import copy
import json
import logging
import os
import tempfile
from typing import Any, Dict

logger = logging.getLogger(__name__)

DEFAULT: Dict[str, Any] = {
    "camera": {"source": "pattern", "width": 640, "height": 480, "fps": 20, "rotation": 0},
    "preview": {"surface_width": 640, "surface_height": 480, "jpeg_quality": 85},
    # remember: write the filter picked in the UI back as the next start's initial
    "filters": {"initial": "none", "remember": False},
    "gallery": {"directory": os.path.expanduser("~/Pictures/eyesee")},
    "logging": {"level": "INFO"},
}

CONF_ENV = "EYESEE_CONFIG"
CONF_NAME = "config.json"
USER_CONF = os.path.expanduser("~/.config/eyesee/" + CONF_NAME)


def _search_paths():
    return [
        os.environ.get(CONF_ENV) or "",
        "/etc/eyesee/" + CONF_NAME,
        USER_CONF,
        os.path.join(os.path.dirname(__file__), CONF_NAME),
    ]


def config_path() -> str:
    """Where settings changed at runtime are written back."""
    return os.environ.get(CONF_ENV) or USER_CONF


def load_config(path: str | None = None) -> Dict[str, Any]:
    paths = [path] if path else _search_paths()
    for p in paths:
        if not p:
            continue
        try:
            with open(p, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            continue
        except (OSError, ValueError) as e:
            logger.warning("ignoring config %s: %s", p, e)
            continue
        if not isinstance(data, dict):
            logger.warning("ignoring config %s: top level is not an object", p)
            continue
        logger.debug("config loaded from %s", p)
        return _merge(DEFAULT, data)
    return copy.deepcopy(DEFAULT)


def save_config(cfg: Dict[str, Any], path: str | None = None) -> str:
    """Atomically write ``cfg`` as JSON; returns the path written."""
    path = path or config_path()
    d = os.path.dirname(path) or "."
    os.makedirs(d, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=".config-", suffix=".json", dir=d)
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(cfg, f, indent=2, sort_keys=True)
        os.replace(tmp, path)
    except OSError:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise
    logger.debug("config saved to %s", path)
    return path


def _merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """Deep copy of ``base`` with ``patch`` laid over it, section by section."""
    out = copy.deepcopy(base)
    for key, value in patch.items():
        current = out.get(key)
        out[key] = _merge(current, value) if isinstance(current, dict) and isinstance(value, dict) \
            else copy.deepcopy(value)
    return out
