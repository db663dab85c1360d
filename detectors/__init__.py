"""
Detector loader: discover detectors by scanning the detectors/ folder and importing
modules that define a 'plugin' instance (or a 'Plugin' class we instantiate).
"""

from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from detectors.base import DetectorPluginBase

logger = logging.getLogger(__name__)

_DETECTORS_DIR = Path(__file__).resolve().parent

# Built-in detector modules; loaded first and in this order
_BUILTIN_DETECTORS = (
    "face_quality",
    "document_boundary",
)


def _load_detector_from_module(module_name: str) -> DetectorPluginBase | None:
    """Load a single detector from a module in detectors/."""
    if not (_DETECTORS_DIR / f"{module_name}.py").is_file():
        return None
    try:
        module = importlib.import_module(f"detectors.{module_name}")
    except ImportError as e:
        logger.warning("Detector module %s unavailable: %s", module_name, e)
        return None
    if hasattr(module, "plugin"):
        return getattr(module, "plugin")
    if hasattr(module, "Plugin"):
        return getattr(module, "Plugin")()
    return None


def discover_detectors() -> list[DetectorPluginBase]:
    """
    Discover all detectors: first the built-in list, then any extra .py files in
    detectors/ (excluding private modules and base.py) that define 'plugin'.
    """
    loaded: list[DetectorPluginBase] = []
    seen_ids: set[str] = set()

    names = list(_BUILTIN_DETECTORS)
    for path in sorted(_DETECTORS_DIR.glob("*.py")):
        if path.name.startswith("_") or path.name == "base.py" or path.stem in names:
            continue
        names.append(path.stem)

    for name in names:
        p = _load_detector_from_module(name)
        if p is not None and p.plugin_id and p.plugin_id not in seen_ids:
            loaded.append(p)
            seen_ids.add(p.plugin_id)
    return loaded


def get_detector(kind: str, settings: dict | None = None) -> DetectorPluginBase:
    """New detector instance for a kind ('face', 'document'), initialised with settings."""
    for p in discover_detectors():
        if p.kind == kind:
            detector = type(p)()
            detector.init(settings)
            return detector
    raise KeyError(f"No detector for kind {kind!r}")
