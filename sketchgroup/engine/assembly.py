"""Shape assembly: stroke labels, singleton shapes, and joined-pair merging."""

from __future__ import annotations

import logging

from sketchgroup.engine.contracts import ClassificationResult, Grouper, GroupingResult, StrokePair
from sketchgroup.engine.errors import MissingResult, StructuralMismatch
from sketchgroup.sketch.model import UNKNOWN, Shape, Sketch

logger = logging.getLogger(__name__)


class ShapeAssembler:
    """Builds the committed shape set of a sketch from stage results."""

    def __init__(self, sketch: Sketch, grouper: Grouper | None = None) -> None:
        self.sketch = sketch
        self.grouper = grouper

    def apply_classifications(self, result: ClassificationResult | None) -> int:
        """Label every stroke; give shapeless strokes a singleton shape.

        Returns the number of singleton shapes created.
        """
        if result is None:
            raise MissingResult("classification")

        created = 0
        for stroke in self.sketch.strokes:
            stroke.classification = result.label_for(stroke)
            if not stroke.parent_shapes:
                self.sketch.add_shape(Shape([stroke], type=stroke.classification))
                created += 1

        logger.debug("apply_classifications: %d strokes, %d new shapes", len(self.sketch.strokes), created)
        return created

    def group_sketch(
        self,
        result: GroupingResult | None,
        classification: ClassificationResult | None = None,
    ) -> GroupingResult:
        """Merge the shapes of every joined pair, in the grouper's order.

        Without a grouping result one is derived from ``classification``
        through the grouper. Returns the grouping result that was applied.
        """
        if result is None:
            if classification is None or self.grouper is None:
                raise MissingResult("grouping")
            result = self.grouper.group_now(self.sketch, classification)

        sketch = self.sketch
        sketch.remove_groups()

        for stroke in sketch.strokes:
            shape = stroke.primary_shape
            if shape is not None and shape.type.lower() == UNKNOWN:
                shape.type = stroke.classification

        merges = 0
        for pair in result.joined_pairs:
            try:
                if self._merge_pair(pair, result.label_for(pair)):
                    merges += 1
            except StructuralMismatch as e:
                logger.warning("group_sketch: skipping pair: %s", e)

        logger.info(
            "group_sketch: %d joined pairs, %d merges, %d shapes",
            len(result.joined_pairs),
            merges,
            len(sketch.shapes),
        )
        return result

    def _merge_pair(self, pair: StrokePair, label: str) -> bool:
        try:
            stroke_a = self.sketch.get_stroke(pair.stroke_a.id)
            stroke_b = self.sketch.get_stroke(pair.stroke_b.id)
        except KeyError as e:
            raise StructuralMismatch(f"stroke {e} is not in the sketch") from None
        stroke_a.classification = label
        stroke_b.classification = label

        shape_a = stroke_a.primary_shape
        shape_b = stroke_b.primary_shape
        if shape_a is None or shape_b is None:
            raise StructuralMismatch(f"stroke pair ({stroke_a.id}, {stroke_b.id}) has no parent shape")
        if shape_a is shape_b:
            return False
        if len(shape_a) == 0 or len(shape_b) == 0:
            raise StructuralMismatch(f"stroke pair ({stroke_a.id}, {stroke_b.id}) references an empty shape")

        shape_a.type = label
        shape_b.type = label
        merged = self.sketch.merge_shapes(shape_a, shape_b)
        # Any earlier recognition confidence no longer applies
        merged.probability = 0.0
        return True
