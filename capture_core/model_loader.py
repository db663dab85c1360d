"""
Model files and process-wide shared model instances.

get_model_path() ensures MediaPipe Tasks model files exist, downloading them if missing.
SharedResource wraps an expensive initialisation (e.g. creating a landmarker) so that
any number of concurrent acquire() calls trigger exactly one load.
"""

from __future__ import annotations

import asyncio
import logging
import urllib.request
from pathlib import Path
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Directory for cached models (next to project root)
_MODELS_DIR = Path(__file__).resolve().parent.parent / "models"

# Official MediaPipe model URLs (Google storage)
_MODEL_URLS = {
    "face_landmarker.task": "https://storage.googleapis.com/mediapipe-models/face_landmarker/face_landmarker/float16/latest/face_landmarker.task",
}


class ModelLoadError(RuntimeError):
    pass


def get_model_path(filename: str, models_dir: Path | None = None) -> Path:
    """Return path to the model file; download if not present."""
    directory = models_dir or _MODELS_DIR
    path = directory / filename
    if path.is_file():
        return path
    url = _MODEL_URLS.get(filename)
    if not url:
        raise FileNotFoundError(f"Unknown model: {filename}. Known: {list(_MODEL_URLS)}")
    directory.mkdir(parents=True, exist_ok=True)
    logger.info("Downloading %s", url)
    urllib.request.urlretrieve(url, path)
    return path


class SharedResource(Generic[T]):
    """One-shot shared initialisation. The factory runs in a worker thread."""

    def __init__(self, name: str, factory: Callable[[], T]) -> None:
        self.name = name
        self._factory = factory
        self._value: T | None = None
        self._loaded = False
        self._future: asyncio.Task[T] | None = None

    @property
    def loaded(self) -> bool:
        return self._loaded

    def get(self) -> T:
        """Loaded value. Raises ModelLoadError if acquire() has not completed."""
        if not self._loaded:
            raise ModelLoadError(f"{self.name} is not loaded")
        return self._value  # type: ignore[return-value]

    async def acquire(self) -> T:
        if self._loaded:
            return self._value  # type: ignore[return-value]
        loop = asyncio.get_running_loop()
        future = self._future
        # A load started on another event loop cannot be awaited from this one.
        if future is None or future.get_loop() is not loop:
            future = loop.create_task(self._load(), name=f"load-{self.name}")
            self._future = future
        return await asyncio.shield(future)

    async def _load(self) -> T:
        logger.info("Loading %s", self.name)
        try:
            value = await asyncio.to_thread(self._factory)
        except Exception as e:
            logger.warning("Failed to load %s: %s", self.name, e)
            raise ModelLoadError(f"Failed to load {self.name}: {e}") from e
        finally:
            self._future = None
        self._value = value
        self._loaded = True
        logger.info("%s loaded", self.name)
        return value

    def reset(self) -> None:
        """Forget the loaded value; the next acquire() loads again."""
        self._value = None
        self._loaded = False
        self._future = None
