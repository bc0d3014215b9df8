"""API request models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class StrokeIn(BaseModel):
    id: str = Field(..., description="Stroke identifier, unique within the sketch")
    points: list[tuple[float, float]] = Field(default_factory=list, description="Sampled (x, y) pen points")


class StrokePairIn(BaseModel):
    stroke_a: str
    stroke_b: str
    label: str = Field(..., description="Class label the joined pair is merged under")


class ClusterRequest(BaseModel):
    strokes: list[StrokeIn] = Field(..., description="Strokes in drawing order")
    labels: dict[str, str] = Field(default_factory=dict, description="Stroke id → class label")
    pairs: list[StrokePairIn] | None = Field(
        default=None,
        description="Joined pairs in merge order; proximity grouping is used when omitted",
    )
    join_distance: float | None = Field(default=None, description="Proximity grouping threshold")


class CandidatesRequest(ClusterRequest):
    neighborhood_count: int | None = Field(default=None, description="Add-modifications per expansion step")
    depth: int | None = Field(default=None, description="Expansion depth")
