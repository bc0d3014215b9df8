"""Distance index: precomputed pairwise stroke distances.

For every stroke the index holds the list of ``StrokeDistance`` entries it
takes part in. The index is built once per featurization and is read-only
afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from sketchgroup.sketch.model import Stroke
from sketchgroup.utils.geometry import min_distance

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class StrokeDistance:
    """Minimum point distance between two strokes."""

    stroke_a: Stroke
    stroke_b: Stroke
    min: float

    def other(self, stroke: Stroke) -> Stroke:
        if stroke is self.stroke_a:
            return self.stroke_b
        if stroke is self.stroke_b:
            return self.stroke_a
        raise ValueError(f"Stroke {stroke.id} is not part of this distance entry")


class DistanceIndex:
    """Read-only stroke id → distance entries table."""

    def __init__(self, entries: dict[str, list[StrokeDistance]] | None = None) -> None:
        self._entries: dict[str, list[StrokeDistance]] = entries or {}

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[tuple[Stroke, Stroke, float]],
        strokes: Iterable[Stroke] = (),
    ) -> DistanceIndex:
        entries: dict[str, list[StrokeDistance]] = {s.id: [] for s in strokes}
        for a, b, dist in pairs:
            d = StrokeDistance(a, b, float(dist))
            entries.setdefault(a.id, []).append(d)
            entries.setdefault(b.id, []).append(d)
        return cls(entries)

    def __getitem__(self, stroke: Stroke) -> list[StrokeDistance]:
        return self._entries[stroke.id]

    def __contains__(self, stroke: Stroke) -> bool:
        return stroke.id in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def distance(self, a: Stroke, b: Stroke) -> float:
        """Stored distance between ``a`` and ``b`` (inf when not indexed)."""
        for d in self._entries.get(a.id, []):
            if d.stroke_a is b or d.stroke_b is b:
                return d.min
        return float("inf")


def build_distance_index(strokes: list[Stroke]) -> DistanceIndex:
    """Compute pairwise minimum distances between all stroke point clouds."""
    n = len(strokes)
    pairs: list[tuple[Stroke, Stroke, float]] = []
    for i in range(n):
        for j in range(i + 1, n):
            dist = min_distance(strokes[i].points, strokes[j].points)
            if dist < float("inf"):
                pairs.append((strokes[i], strokes[j], dist))
    index = DistanceIndex.from_pairs(pairs, strokes)
    logger.debug("Distance index: %d strokes, %d pairs", n, len(pairs))
    return index
