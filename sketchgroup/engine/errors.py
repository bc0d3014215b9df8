"""Error taxonomy for the grouping engine.

None of these reach the orchestrator's caller: they are caught where they
are detected, logged, and recorded.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sketchgroup.engine.contracts import MatchError


class SketchGroupError(Exception):
    """Base class for engine faults."""


class MissingResult(SketchGroupError):
    """A required upstream stage result is absent."""

    def __init__(self, stage: str) -> None:
        super().__init__(f"{stage} result is missing")
        self.stage = stage


class StructuralMismatch(SketchGroupError):
    """A joined pair references a shape that has no strokes left."""


class RecognitionError(SketchGroupError):
    """Template match reported structural errors for a shape."""

    def __init__(self, shape_id: str, errors: list[MatchError]) -> None:
        kinds = ", ".join(e.kind.value for e in errors) or "none"
        super().__init__(f"shape {shape_id}: {kinds}")
        self.shape_id = shape_id
        self.errors = list(errors)


class RecoverableRecognitionError(RecognitionError):
    """Extra-stroke errors, resolved by dropping the offending strokes."""


class UnresolvedRecognitionError(RecognitionError):
    """Errors that remain after automatic repair."""
