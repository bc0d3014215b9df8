"""Leaf-node geometry helpers. No engine imports."""

from __future__ import annotations

from collections.abc import Iterable

import numpy as np
from numpy.typing import NDArray
from scipy.spatial import cKDTree

Bounds = tuple[float, float, float, float]

EMPTY_BOUNDS: Bounds = (0.0, 0.0, 0.0, 0.0)


def as_points(points: Iterable[Iterable[float]] | NDArray[np.float64]) -> NDArray[np.float64]:
    """Coerce a point sequence to an Nx2 float array."""
    arr = np.asarray(points, dtype=np.float64)
    if arr.size == 0:
        return np.empty((0, 2))
    return arr.reshape(-1, 2)


def bbox(points: NDArray[np.float64]) -> Bounds:
    """Compute (xmin, ymin, xmax, ymax) bounding box."""
    if len(points) == 0:
        return EMPTY_BOUNDS
    return (
        float(np.min(points[:, 0])),
        float(np.min(points[:, 1])),
        float(np.max(points[:, 0])),
        float(np.max(points[:, 1])),
    )


def union_bounds(boxes: Iterable[Bounds]) -> Bounds:
    """Smallest box covering every input box. Degenerate boxes still count."""
    boxes = list(boxes)
    if not boxes:
        return EMPTY_BOUNDS
    return (
        min(b[0] for b in boxes),
        min(b[1] for b in boxes),
        max(b[2] for b in boxes),
        max(b[3] for b in boxes),
    )


def min_distance(a: NDArray[np.float64], b: NDArray[np.float64]) -> float:
    """Minimum point-to-point distance between two point clouds.

    Returns inf when either cloud is empty.
    """
    if len(a) == 0 or len(b) == 0:
        return float("inf")
    dists, _ = cKDTree(b).query(a, k=1)
    return float(np.min(dists))
