"""FastAPI dependency injection."""

from __future__ import annotations

from sketchgroup.config import settings
from sketchgroup.engine.config import ClustererConfig


def get_clusterer_config() -> ClustererConfig:
    return ClustererConfig.from_settings(settings)
