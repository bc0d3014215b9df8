"""Sketch grouping engine: stroke classification to committed shapes and candidate clusters."""

from sketchgroup.engine.assembly import ShapeAssembler
from sketchgroup.engine.config import ClustererConfig
from sketchgroup.engine.pipeline import ClustererPipeline
from sketchgroup.engine.state import Completion, PipelineEvent, PipelineState, Stage
from sketchgroup.engine.verification import ShapeVerifier, VerificationReport

__all__ = [
    "ShapeAssembler",
    "ClustererConfig",
    "ClustererPipeline",
    "Completion",
    "PipelineEvent",
    "PipelineState",
    "Stage",
    "ShapeVerifier",
    "VerificationReport",
]
