"""Sketch data model: strokes, shapes and the live sketch that owns them.

Strokes are the atomic input unit. Each stroke keeps a back-reference list
of the shapes it belongs to; index 0 is the primary shape and is the one
merge decisions look at.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from functools import cached_property

import numpy as np
from numpy.typing import NDArray

from sketchgroup.utils.geometry import Bounds, as_points, bbox, union_bounds

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"


def _new_id() -> str:
    return uuid.uuid4().hex


@dataclass(eq=False)
class Stroke:
    """A single pen substroke."""

    id: str
    # Sampled pen points: Nx2 array of (x, y)
    points: NDArray[np.float64] = field(default_factory=lambda: np.empty((0, 2)))
    classification: str = UNKNOWN
    parent_shapes: list[Shape] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        self.points = as_points(self.points)

    @cached_property
    def bbox(self) -> Bounds:
        return bbox(self.points)

    @property
    def primary_shape(self) -> Shape | None:
        return self.parent_shapes[0] if self.parent_shapes else None


@dataclass(eq=False)
class Shape:
    """A labeled group of strokes that stands for one diagram symbol."""

    strokes: list[Stroke] = field(default_factory=list)
    type: str = UNKNOWN
    probability: float = 0.0
    # Set by verification when template errors remain after repair
    unresolved: bool = False
    id: str = field(default_factory=_new_id)

    def __len__(self) -> int:
        return len(self.strokes)

    def __contains__(self, stroke: Stroke) -> bool:
        return any(s is stroke for s in self.strokes)

    @property
    def stroke_ids(self) -> list[str]:
        return [s.id for s in self.strokes]

    @property
    def bbox(self) -> Bounds:
        return union_bounds(s.bbox for s in self.strokes)

    def add_stroke(self, stroke: Stroke) -> None:
        if stroke in self:
            return
        self.strokes.append(stroke)
        if not any(p is self for p in stroke.parent_shapes):
            stroke.parent_shapes.append(self)

    def remove_stroke(self, stroke: Stroke) -> bool:
        """Detach ``stroke``. Returns False if it was not a member."""
        if stroke not in self:
            return False
        self.strokes = [s for s in self.strokes if s is not stroke]
        stroke.parent_shapes[:] = [p for p in stroke.parent_shapes if p is not self]
        return True


class Sketch:
    """Strokes plus the shape set built over them.

    ``revision`` increases on every stroke add/remove so that pipeline
    results computed for an older stroke set can be recognized as stale.
    """

    def __init__(self, strokes: list[Stroke] | None = None) -> None:
        self.strokes: list[Stroke] = []
        self.shapes: list[Shape] = []
        self.revision = 0
        self._by_id: dict[str, Stroke] = {}
        for stroke in strokes or []:
            self._register(stroke)

    # --- strokes ---

    def _register(self, stroke: Stroke) -> None:
        if stroke.id in self._by_id:
            raise ValueError(f"Duplicate stroke ID: {stroke.id}")
        self.strokes.append(stroke)
        self._by_id[stroke.id] = stroke

    def add_stroke(self, stroke: Stroke) -> int:
        self._register(stroke)
        self.revision += 1
        return self.revision

    def remove_stroke(self, stroke: Stroke) -> int:
        if self._by_id.get(stroke.id) is not stroke:
            raise KeyError(stroke.id)
        for shape in list(stroke.parent_shapes):
            shape.remove_stroke(stroke)
            if len(shape) == 0:
                self.remove_shape(shape)
        self.strokes = [s for s in self.strokes if s is not stroke]
        del self._by_id[stroke.id]
        self.revision += 1
        return self.revision

    def touch(self) -> int:
        """Bump the revision without changing the strokes."""
        self.revision += 1
        return self.revision

    def get_stroke(self, stroke_id: str) -> Stroke:
        return self._by_id[stroke_id]

    def __contains__(self, stroke: Stroke) -> bool:
        return self._by_id.get(stroke.id) is stroke

    # --- shapes ---

    def add_shape(self, shape: Shape) -> Shape:
        if not any(s is shape for s in self.shapes):
            self.shapes.append(shape)
        for stroke in shape.strokes:
            if not any(p is shape for p in stroke.parent_shapes):
                stroke.parent_shapes.append(shape)
        return shape

    def remove_shape(self, shape: Shape) -> None:
        self.shapes = [s for s in self.shapes if s is not shape]
        for stroke in shape.strokes:
            stroke.parent_shapes[:] = [p for p in stroke.parent_shapes if p is not shape]

    def merge_shapes(self, target: Shape, other: Shape) -> Shape:
        """Move every stroke of ``other`` into ``target`` and drop ``other``.

        A moved stroke keeps its position in its parent list, so a stroke
        whose primary shape was ``other`` now has ``target`` as primary.
        """
        if other is target:
            return target
        for stroke in list(other.strokes):
            if stroke not in target:
                target.strokes.append(stroke)
            parents: list[Shape] = []
            for parent in stroke.parent_shapes:
                replacement = target if parent is other else parent
                if not any(p is replacement for p in parents):
                    parents.append(replacement)
            stroke.parent_shapes[:] = parents
        other.strokes = []
        self.shapes = [s for s in self.shapes if s is not other]
        return target

    def remove_groups(self) -> None:
        """Reset to one singleton shape per stroke.

        Multi-stroke and empty shapes are dropped; strokes left without a
        shape get a fresh singleton labeled with their classification.
        Singletons that already exist are kept as they are.
        """
        dropped = 0
        for shape in list(self.shapes):
            if len(shape) != 1:
                self.remove_shape(shape)
                dropped += 1
        for stroke in self.strokes:
            if not stroke.parent_shapes:
                self.add_shape(Shape([stroke], type=stroke.classification))
        if dropped:
            logger.debug("remove_groups: dropped %d grouped shapes", dropped)

    def shape_of(self, stroke: Stroke) -> Shape | None:
        return stroke.primary_shape
