"""Cluster: a candidate stroke grouping explored during hypothesis search.

A cluster is fixed once built: its strokes, class name and nearest
unclustered strokes never change. Alternative hypotheses are produced by
applying one ``ClusterModification`` (add or remove a stroke) to a copy of
the stroke list, which yields a child cluster.

Two clusters with the same stroke membership and class name are the same
hypothesis; ``content_hash`` is the dedup key used by expansion and by the
search cache.
"""

from __future__ import annotations

import enum
import logging
import math
import time
import uuid
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from functools import cached_property
from typing import TYPE_CHECKING

from shapely.geometry import Point, box
from shapely.geometry.base import BaseGeometry

from sketchgroup.sketch.distances import DistanceIndex
from sketchgroup.sketch.model import Stroke
from sketchgroup.utils.geometry import union_bounds

if TYPE_CHECKING:
    from sketchgroup.engine.clusters.arena import ClusterArena
    from sketchgroup.engine.clusters.score import ClusterScore

logger = logging.getLogger(__name__)

# Added to a colliding distance key until it is unique
NEIGHBOR_EPSILON = 1e-11


class ModKind(enum.Enum):
    ADD = "add"
    REMOVE = "remove"


@dataclass(frozen=True)
class ClusterModification:
    stroke: Stroke
    kind: ModKind

    def __repr__(self) -> str:
        return f"{self.kind.name.title()}({self.stroke.id})"


def content_hash(strokes: Iterable[Stroke], class_name: str) -> int:
    """Order-independent hash of stroke membership combined with the label."""
    return hash(frozenset(s.id for s in strokes)) ^ hash(class_name)


def _bump(key: float) -> float:
    bumped = key + NEIGHBOR_EPSILON
    if bumped == key:
        # epsilon is below float resolution at this magnitude
        bumped = math.nextafter(key, math.inf)
    return bumped


def nearest_strokes(strokes: Iterable[Stroke], distances: DistanceIndex) -> list[tuple[float, Stroke]]:
    """Strokes outside ``strokes`` sorted by ascending distance to the group.

    Colliding distances are nudged upward so no entry is lost, then each
    outside stroke is kept once, at its smallest distance.
    """
    strokes = list(strokes)
    member_ids = {s.id for s in strokes}
    close: dict[float, Stroke] = {}

    for stroke in strokes:
        try:
            for d in distances[stroke]:
                other = d.other(stroke)
                if other.id in member_ids:
                    continue
                key = d.min
                while key in close:
                    key = _bump(key)
                close[key] = other
        except Exception as e:
            logger.warning("nearest_strokes: skipping stroke %s: %r", stroke.id, e)

    seen: set[str] = set()
    result: list[tuple[float, Stroke]] = []
    for key in sorted(close):
        other = close[key]
        if other.id in seen:
            continue
        seen.add(other.id)
        result.append((key, other))
    return result


class Cluster:
    """A candidate grouping of strokes with a class label."""

    def __init__(
        self,
        strokes: Iterable[Stroke],
        class_name: str,
        distances: DistanceIndex,
        modifications: Iterable[ClusterModification] = (),
        parent: int | None = None,
    ) -> None:
        self.id = uuid.uuid4()
        self.strokes: tuple[Stroke, ...] = tuple(strokes)
        self.class_name = class_name
        self.distances = distances
        self.nearest = nearest_strokes(self.strokes, distances)
        self.modifications: list[ClusterModification] = list(modifications)
        # Arena index of the top-level cluster this one was derived from
        self.parent = parent
        self.score: ClusterScore | None = None

    @classmethod
    def from_stroke(cls, stroke: Stroke, class_name: str, distances: DistanceIndex) -> Cluster:
        return cls([stroke], class_name, distances)

    @classmethod
    def from_pair(cls, a: Stroke, b: Stroke, class_name: str, distances: DistanceIndex) -> Cluster:
        return cls([a, b], class_name, distances)

    def __repr__(self) -> str:
        ids = ",".join(s.id for s in self.strokes)
        return f"Cluster({self.class_name!r}, [{ids}])"

    def __len__(self) -> int:
        return len(self.strokes)

    def contains(self, stroke: Stroke) -> bool:
        return any(s is stroke for s in self.strokes)

    @property
    def is_parent(self) -> bool:
        return self.parent is None

    @property
    def has_been_scored(self) -> bool:
        return self.score is not None

    @property
    def stroke_ids(self) -> list[str]:
        return [s.id for s in self.strokes]

    @cached_property
    def content_hash(self) -> int:
        return content_hash(self.strokes, self.class_name)

    @cached_property
    def bounding_box(self) -> BaseGeometry:
        return box(*union_bounds(s.bbox for s in self.strokes))

    def covers(self, x: float, y: float) -> bool:
        return bool(self.bounding_box.covers(Point(x, y)))

    # --- modifications ---

    def generate_modifications(self, count: int) -> list[ClusterModification]:
        """Remove each member, then add up to ``count`` nearest outside strokes."""
        mods = [ClusterModification(s, ModKind.REMOVE) for s in self.strokes]
        for _, stroke in self.nearest[:count]:
            if not self.contains(stroke):
                mods.append(ClusterModification(stroke, ModKind.ADD))
        self.modifications = mods
        return mods

    def generate_modifications_within(self, radius: float) -> list[ClusterModification]:
        """Remove each member, then add every outside stroke closer than ``radius``."""
        mods = [ClusterModification(s, ModKind.REMOVE) for s in self.strokes]
        for dist, stroke in self.nearest:
            if dist < radius and not self.contains(stroke):
                mods.append(ClusterModification(stroke, ModKind.ADD))
        self.modifications = mods
        return mods

    def child(self, mod: ClusterModification, parent: int | None) -> Cluster:
        """Apply ``mod`` to a copy of this cluster.

        The applied modification leaves the child's pending list; one that
        does not change the stroke set stays pending.
        """
        strokes = list(self.strokes)
        mods = list(self.modifications)
        if mod.kind is ModKind.ADD and not self.contains(mod.stroke):
            strokes.append(mod.stroke)
            mods.remove(mod)
        elif mod.kind is ModKind.REMOVE and self.contains(mod.stroke):
            strokes = [s for s in strokes if s is not mod.stroke]
            mods.remove(mod)
        return Cluster(strokes, self.class_name, self.distances, mods, parent=parent)

    def _expansion_key(self) -> tuple[int, frozenset[ClusterModification]]:
        return (self.content_hash, frozenset(self.modifications))

    def expand(self, arena: ClusterArena, max_depth: int, current_depth: int = 0) -> dict[int, Cluster]:
        """Collect every distinct hypothesis reachable within ``max_depth`` edits.

        Breadth-first over the pending modifications. The result maps
        content hash to the first cluster seen with that hash; empty
        clusters are dropped and not expanded further. Accepted children are
        added to ``arena`` and point at the top-level cluster's index.
        """
        accumulator: dict[int, Cluster] = {}
        if current_depth >= max_depth:
            return accumulator

        t0 = time.perf_counter()
        root = self.parent if self.parent is not None else arena.add(self)
        queue: deque[tuple[Cluster, int]] = deque([(self, current_depth)])
        expanded = {self._expansion_key()}
        materialized = 0

        while queue:
            cluster, depth = queue.popleft()
            if depth >= max_depth:
                continue
            for mod in cluster.modifications:
                child = cluster.child(mod, root)
                materialized += 1
                if not child.strokes:
                    continue
                if child.content_hash not in accumulator:
                    accumulator[child.content_hash] = child
                    arena.add(child)
                key = child._expansion_key()
                if key in expanded:
                    continue
                expanded.add(key)
                queue.append((child, depth + 1))

        logger.debug(
            "expand %r: %d children materialized, %d distinct in %.1fms",
            self,
            materialized,
            len(accumulator),
            (time.perf_counter() - t0) * 1000,
        )
        return accumulator


def merge_clusters(c1: Cluster, c2: Cluster) -> Cluster:
    """Union of both stroke sets (``c1`` order first) under ``c1``'s label."""
    strokes = list(c1.strokes)
    for s in c2.strokes:
        if not any(s is t for t in strokes):
            strokes.append(s)
    return Cluster(strokes, c1.class_name, c1.distances)
