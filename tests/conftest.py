"""Shared test fixtures."""

from __future__ import annotations

import pytest

from sketchgroup.engine.collaborators import StaticGrouper
from sketchgroup.engine.contracts import (
    ClassificationResult,
    ClassifiedCallback,
    GroupedCallback,
    RecognitionResult,
    TemplateMatch,
)
from sketchgroup.sketch.distances import DistanceIndex
from sketchgroup.sketch.model import Sketch, Stroke


# Three short horizontal strokes: A and B nearly touch, C is far away
STROKE_A_POINTS = [(0.0, 0.0), (5.0, 0.0), (10.0, 0.0)]
STROKE_B_POINTS = [(12.0, 0.0), (16.0, 0.0), (20.0, 0.0)]
STROKE_C_POINTS = [(100.0, 100.0), (110.0, 100.0)]

# Gate scenario: S2 is 10 away from S1, S3 is 25 away
GATE_DISTANCES = (("S1", "S2", 10.0), ("S1", "S3", 25.0), ("S2", "S3", 30.0))


def make_stroke(stroke_id: str, points=None) -> Stroke:
    if points is None:
        points = [(0.0, 0.0), (10.0, 10.0)]
    return Stroke(stroke_id, points)


def make_index(strokes: list[Stroke], triples) -> DistanceIndex:
    """Distance index from (id, id, distance) triples."""
    by_id = {s.id: s for s in strokes}
    return DistanceIndex.from_pairs(
        ((by_id[a], by_id[b], d) for a, b, d in triples),
        strokes,
    )


class DeferredClassifier:
    """Classifier whose requests are completed by the test."""

    def __init__(self, labels: dict[str, str]) -> None:
        self.labels = labels
        self.requests: list[tuple[int, ClassifiedCallback]] = []

    def classify(self, sketch, revision, done) -> None:
        self.requests.append((revision, done))

    def complete(self, index: int = -1) -> None:
        revision, done = self.requests[index]
        done(revision, ClassificationResult(dict(self.labels)))


class DeferredGrouper(StaticGrouper):
    """StaticGrouper whose requests are completed by the test."""

    def __init__(self, pairs) -> None:
        super().__init__(pairs)
        self.requests: list[tuple[int, Sketch, ClassificationResult, GroupedCallback]] = []

    def group(self, sketch, classification, revision, done) -> None:
        self.requests.append((revision, sketch, classification, done))

    def complete(self, index: int = -1) -> None:
        revision, sketch, classification, done = self.requests[index]
        done(revision, self.group_now(sketch, classification))


class FakeTemplateRecognizer:
    """Returns a prepared match per shape id; counts calls."""

    def __init__(self, matches=None, default: TemplateMatch | None = None) -> None:
        self.matches = matches or {}
        self.default = default
        self.calls: list[str] = []

    def recognize(self, shape):
        self.calls.append(shape.id)
        return self.matches.get(shape.id, self.default)


class FakeClusterRecognizer:
    """Scores a cluster by size, with a bonus for containing S3."""

    def __init__(self) -> None:
        self.calls = 0
        # stroke ids of every cluster scored
        self.recognized: list[list[str]] = []

    def recognize(self, cluster) -> list[RecognitionResult]:
        self.calls += 1
        self.recognized.append(cluster.stroke_ids)
        score = 0.1 * len(cluster)
        if "S3" in cluster.stroke_ids:
            score += 0.5
        return [
            RecognitionResult(cluster.class_name, score),
            RecognitionResult("Other", score / 2),
        ]


@pytest.fixture
def gate_strokes() -> list[Stroke]:
    return [
        make_stroke("S1", [(0.0, 0.0), (10.0, 10.0)]),
        make_stroke("S2", [(20.0, 0.0), (25.0, 5.0)]),
        make_stroke("S3", [(35.0, 0.0), (40.0, 5.0)]),
    ]


@pytest.fixture
def gate_index(gate_strokes) -> DistanceIndex:
    return make_index(gate_strokes, GATE_DISTANCES)


@pytest.fixture
def abc_sketch() -> Sketch:
    return Sketch(
        [
            make_stroke("a", STROKE_A_POINTS),
            make_stroke("b", STROKE_B_POINTS),
            make_stroke("c", STROKE_C_POINTS),
        ]
    )
