"""API response models."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    stages: list[str] = Field(default_factory=list)


class ShapeOut(BaseModel):
    id: str
    type: str
    probability: float = 0.0
    strokes: list[str] = Field(default_factory=list)
    unresolved: bool = False


class ClusterResponse(BaseModel):
    shapes: list[ShapeOut] = Field(default_factory=list)
    stage: str
    revision: int = 0
    initial_clusters: int = 0
    processing_time_ms: float = 0.0
    errors: dict[str, str] = Field(default_factory=dict)


class ClusterOut(BaseModel):
    hash: str
    class_name: str
    strokes: list[str] = Field(default_factory=list)
    parent_hash: str | None = None


class CandidatesResponse(BaseModel):
    initial_clusters: list[ClusterOut] = Field(default_factory=list)
    candidates: list[ClusterOut] = Field(default_factory=list)
    processing_time_ms: float = 0.0
    errors: dict[str, str] = Field(default_factory=dict)
