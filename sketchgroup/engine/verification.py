"""Verification & repair: template-match composite shapes and drop extra strokes.

Runs on demand after a merge pass. Shapes that match cleanly keep their
membership and only get the recognizer's label and score; shapes with
extra-stroke errors lose exactly the offending strokes. Strokes are never
added back: a detached stroke stays without a shape until the next merge
pass rebuilds the shape set. A shape that loses every stroke is dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sketchgroup.engine.config import ClustererConfig
from sketchgroup.engine.contracts import MatchError, MatchErrorKind, TemplateMatch, TemplateRecognizer
from sketchgroup.engine.errors import RecoverableRecognitionError, UnresolvedRecognitionError
from sketchgroup.sketch.model import Shape, Sketch

logger = logging.getLogger(__name__)


@dataclass
class VerificationReport:
    recognized: list[str] = field(default_factory=list)
    removed_empty: list[str] = field(default_factory=list)
    resolved: list[RecoverableRecognitionError] = field(default_factory=list)
    unresolved: dict[str, list[MatchError]] = field(default_factory=dict)
    # Ids of strokes removed as extra
    detached: list[str] = field(default_factory=list)


class ShapeVerifier:
    def __init__(
        self,
        sketch: Sketch,
        recognizer: TemplateRecognizer,
        config: ClustererConfig | None = None,
    ) -> None:
        self.sketch = sketch
        self.recognizer = recognizer
        self.config = config or ClustererConfig()

    def is_recognizable(self, shape: Shape) -> bool:
        """Explicit template type, or a type that names a gate symbol."""
        if shape.type in self.config.template_types:
            return True
        return shape.type.upper() in self.config.gate_symbols

    def verify_and_repair(self) -> VerificationReport:
        report = VerificationReport()

        for shape in list(self.sketch.shapes):
            if len(shape) == 0:
                self.sketch.remove_shape(shape)
                report.removed_empty.append(shape.id)
                continue
            if not self.is_recognizable(shape):
                continue

            match = self.recognizer.recognize(shape)
            if match is None:
                continue
            report.recognized.append(shape.id)
            try:
                self._repair(shape, match, report)
            except UnresolvedRecognitionError as e:
                shape.unresolved = True
                report.unresolved[shape.id] = e.errors
                logger.warning("verify: shape left unresolved: %s", e)

        logger.info(
            "verify: %d recognized, %d extra strokes removed, %d unresolved, %d empty shapes dropped",
            len(report.recognized),
            len(report.detached),
            len(report.unresolved),
            len(report.removed_empty),
        )
        return report

    def _repair(self, shape: Shape, match: TemplateMatch, report: VerificationReport) -> None:
        extras = [e for e in match.errors if e.kind is MatchErrorKind.EXTRA]
        removed: list[MatchError] = []
        for error in extras:
            if error.stroke is not None and shape.remove_stroke(error.stroke):
                report.detached.append(error.stroke.id)
            match.resolve(error)
            removed.append(error)
        if removed:
            report.resolved.append(RecoverableRecognitionError(shape.id, removed))
            logger.debug("verify: removed %d extra strokes from shape %s", len(removed), shape.id)

        if len(shape) == 0:
            self.sketch.remove_shape(shape)
            report.removed_empty.append(shape.id)
            logger.debug("verify: shape %s emptied by repair, dropped", shape.id)
            return

        # Best guess is committed even when errors remain
        shape.type = match.name
        shape.probability = float(match.score)
        shape.unresolved = False

        if match.errors:
            raise UnresolvedRecognitionError(shape.id, match.errors)
