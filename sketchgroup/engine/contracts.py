"""Contracts for the external collaborators of the grouping engine.

Featurizer, classifier and grouper are asynchronous: each request carries
the sketch revision it was issued for and completes by calling ``done``
with that revision, possibly from another thread. The recognizers are
called synchronously.
"""

from __future__ import annotations

import enum
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from sketchgroup.sketch.model import UNKNOWN, Shape, Sketch, Stroke

if TYPE_CHECKING:
    from sketchgroup.engine.clusters.cluster import Cluster
    from sketchgroup.sketch.distances import DistanceIndex


# --- Result records ---


@dataclass
class ClassificationResult:
    """Stroke id → class label."""

    labels: dict[str, str] = field(default_factory=dict)

    def __contains__(self, stroke: Stroke) -> bool:
        return stroke.id in self.labels

    def label_for(self, stroke: Stroke) -> str:
        return self.labels.get(stroke.id, UNKNOWN)


@dataclass(eq=False)
class StrokePair:
    """Unordered stroke pair with the grouper's decision and label."""

    stroke_a: Stroke
    stroke_b: Stroke
    joined: bool = True
    label: str = UNKNOWN


@dataclass
class GroupingResult:
    """Ordered stroke pairs from the grouper. Order matters for merging."""

    pairs: list[StrokePair] = field(default_factory=list)

    @property
    def joined_pairs(self) -> list[StrokePair]:
        return [p for p in self.pairs if p.joined]

    def label_for(self, pair: StrokePair) -> str:
        return pair.label

    def pairs_in_class(self, class_name: str) -> list[StrokePair]:
        return [p for p in self.pairs if p.label == class_name]


@dataclass
class RecognitionResult:
    """One ranked answer from the cluster recognizer."""

    symbol_name: str
    fusion_score: float
    complete: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)


class MatchErrorKind(str, enum.Enum):
    EXTRA = "extra"
    MISSING = "missing"
    MISALIGNED = "misaligned"


@dataclass(eq=False)
class MatchError:
    """Structural error reported by a template match."""

    kind: MatchErrorKind
    stroke: Stroke | None = None


@dataclass
class TemplateMatch:
    """Best template for a shape plus any structural errors."""

    name: str
    score: float
    errors: list[MatchError] = field(default_factory=list)

    def resolve(self, error: MatchError) -> None:
        self.errors = [e for e in self.errors if e is not error]


# --- Collaborators ---

FeaturizedCallback = Callable[[int], None]
ClassifiedCallback = Callable[[int, "ClassificationResult | None"], None]
GroupedCallback = Callable[[int, "GroupingResult | None"], None]


class Featurizer(Protocol):
    def featurize(self, sketch: Sketch, revision: int, done: FeaturizedCallback) -> None:
        ...

    def distance_index(self) -> DistanceIndex:
        ...


class Classifier(Protocol):
    def classify(self, sketch: Sketch, revision: int, done: ClassifiedCallback) -> None:
        ...


class Grouper(Protocol):
    def group(
        self,
        sketch: Sketch,
        classification: ClassificationResult,
        revision: int,
        done: GroupedCallback,
    ) -> None:
        ...

    def group_now(self, sketch: Sketch, classification: ClassificationResult) -> GroupingResult:
        ...


class TemplateRecognizer(Protocol):
    def recognize(self, shape: Shape) -> TemplateMatch | None:
        ...


class ClusterRecognizer(Protocol):
    def recognize(self, cluster: Cluster) -> list[RecognitionResult]:
        ...
