"""In-process collaborators: geometry featurizer, static classifier and groupers.

All of them complete synchronously, calling ``done`` before returning.
"""

from __future__ import annotations

import logging
import time

from sketchgroup.engine.contracts import (
    ClassificationResult,
    ClassifiedCallback,
    FeaturizedCallback,
    GroupedCallback,
    GroupingResult,
    StrokePair,
)
from sketchgroup.sketch.distances import DistanceIndex, build_distance_index
from sketchgroup.sketch.model import Sketch

logger = logging.getLogger(__name__)


class GeometryFeaturizer:
    """Builds the pairwise distance index for the sketch's strokes."""

    def __init__(self) -> None:
        self._index = DistanceIndex()

    def featurize(self, sketch: Sketch, revision: int, done: FeaturizedCallback) -> None:
        t0 = time.perf_counter()
        self._index = build_distance_index(list(sketch.strokes))
        logger.debug(
            "  featurize revision %d: %d strokes in %.1fms",
            revision,
            len(sketch.strokes),
            (time.perf_counter() - t0) * 1000,
        )
        done(revision)

    def distance_index(self) -> DistanceIndex:
        return self._index


class StaticClassifier:
    """Labels strokes from a fixed stroke id → label mapping."""

    def __init__(self, labels: dict[str, str]) -> None:
        self.labels = dict(labels)

    def classify(self, sketch: Sketch, revision: int, done: ClassifiedCallback) -> None:
        labels = {s.id: self.labels[s.id] for s in sketch.strokes if s.id in self.labels}
        done(revision, ClassificationResult(labels))


class StaticGrouper:
    """Joins a fixed list of stroke id pairs, in the order given."""

    def __init__(self, pairs: list[tuple[str, str, str]]) -> None:
        # (stroke_a id, stroke_b id, label)
        self.pairs = list(pairs)

    def group(
        self,
        sketch: Sketch,
        classification: ClassificationResult,
        revision: int,
        done: GroupedCallback,
    ) -> None:
        done(revision, self.group_now(sketch, classification))

    def group_now(self, sketch: Sketch, classification: ClassificationResult) -> GroupingResult:
        result = GroupingResult()
        for a_id, b_id, label in self.pairs:
            try:
                a, b = sketch.get_stroke(a_id), sketch.get_stroke(b_id)
            except KeyError as e:
                logger.warning("StaticGrouper: unknown stroke %s, pair skipped", e)
                continue
            result.pairs.append(StrokePair(a, b, joined=True, label=label))
        return result


class ProximityGrouper:
    """Joins same-labeled strokes that lie closer than ``join_distance``.

    Pairs come out nearest first, so the closest strokes are merged before
    anything further away.
    """

    def __init__(self, featurizer: GeometryFeaturizer, join_distance: float = 20.0) -> None:
        self.featurizer = featurizer
        self.join_distance = join_distance

    def group(
        self,
        sketch: Sketch,
        classification: ClassificationResult,
        revision: int,
        done: GroupedCallback,
    ) -> None:
        done(revision, self.group_now(sketch, classification))

    def group_now(self, sketch: Sketch, classification: ClassificationResult) -> GroupingResult:
        index = self.featurizer.distance_index()
        candidates: list[tuple[float, int, StrokePair]] = []
        seen: set[int] = set()

        for stroke in sketch.strokes:
            if stroke not in index or stroke not in classification:
                continue
            label = classification.label_for(stroke)
            for d in index[stroke]:
                if id(d) in seen:
                    continue
                seen.add(id(d))
                other = d.other(stroke)
                if other not in classification or classification.label_for(other) != label:
                    continue
                pair = StrokePair(d.stroke_a, d.stroke_b, joined=d.min < self.join_distance, label=label)
                candidates.append((d.min, len(candidates), pair))

        candidates.sort(key=lambda c: (c[0], c[1]))
        result = GroupingResult([pair for _, _, pair in candidates])
        logger.debug(
            "ProximityGrouper: %d same-label pairs, %d joined",
            len(result.pairs),
            len(result.joined_pairs),
        )
        return result
