"""POST /api/cluster and /api/candidates: run the grouping engine on submitted strokes."""

from __future__ import annotations

import dataclasses
import time

from fastapi import APIRouter, Depends, HTTPException

from sketchgroup.dependencies import get_clusterer_config
from sketchgroup.engine.clusters.cluster import Cluster
from sketchgroup.engine.collaborators import GeometryFeaturizer, ProximityGrouper, StaticClassifier, StaticGrouper
from sketchgroup.engine.config import ClustererConfig
from sketchgroup.engine.pipeline import ClustererPipeline
from sketchgroup.models.requests import CandidatesRequest, ClusterRequest
from sketchgroup.models.responses import CandidatesResponse, ClusterOut, ClusterResponse, ShapeOut
from sketchgroup.sketch.model import Sketch, Stroke

router = APIRouter()


def _hash_hex(h: int) -> str:
    return format(h & 0xFFFFFFFFFFFFFFFF, "016x")


def _cluster_out(cluster: Cluster, parent: Cluster | None = None) -> ClusterOut:
    return ClusterOut(
        hash=_hash_hex(cluster.content_hash),
        class_name=cluster.class_name,
        strokes=cluster.stroke_ids,
        parent_hash=_hash_hex(parent.content_hash) if parent is not None else None,
    )


def _run_pipeline(req: ClusterRequest, config: ClustererConfig) -> ClustererPipeline:
    try:
        sketch = Sketch([Stroke(s.id, s.points) for s in req.strokes])
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    if req.join_distance is not None:
        config = dataclasses.replace(config, join_distance=req.join_distance)

    featurizer = GeometryFeaturizer()
    if req.pairs is None:
        grouper = ProximityGrouper(featurizer, config.join_distance)
    else:
        grouper = StaticGrouper([(p.stroke_a, p.stroke_b, p.label) for p in req.pairs])

    pipeline = ClustererPipeline(
        sketch,
        featurizer,
        StaticClassifier(req.labels),
        grouper,
        config=config,
    )
    # In-process collaborators finish before start() returns
    pipeline.start()
    return pipeline


@router.post("/cluster", response_model=ClusterResponse)
async def cluster(
    req: ClusterRequest,
    config: ClustererConfig = Depends(get_clusterer_config),
) -> ClusterResponse:
    start = time.perf_counter()
    pipeline = _run_pipeline(req, config)
    elapsed = (time.perf_counter() - start) * 1000

    return ClusterResponse(
        shapes=[
            ShapeOut(
                id=shape.id,
                type=shape.type,
                probability=shape.probability,
                strokes=shape.stroke_ids,
                unresolved=shape.unresolved,
            )
            for shape in pipeline.shapes
        ],
        stage=pipeline.stage.value,
        revision=pipeline.revision,
        initial_clusters=len(pipeline.initial_clusters),
        processing_time_ms=round(elapsed, 1),
        errors=pipeline.errors,
    )


@router.post("/candidates", response_model=CandidatesResponse)
async def candidates(
    req: CandidatesRequest,
    config: ClustererConfig = Depends(get_clusterer_config),
) -> CandidatesResponse:
    start = time.perf_counter()

    overrides = {}
    if req.neighborhood_count is not None:
        overrides["search_neighborhood_count"] = req.neighborhood_count
    if req.depth is not None:
        overrides["search_depth"] = req.depth
    config = dataclasses.replace(config, **overrides)

    pipeline = _run_pipeline(req, config)
    pipeline.search_clusters()

    arena = pipeline.search.arena
    out = [
        _cluster_out(c, arena.parent_of(c))
        for c in arena
        if not c.is_parent
    ]
    elapsed = (time.perf_counter() - start) * 1000

    return CandidatesResponse(
        initial_clusters=[_cluster_out(c) for c in pipeline.initial_clusters],
        candidates=out,
        processing_time_ms=round(elapsed, 1),
        errors=pipeline.errors,
    )
