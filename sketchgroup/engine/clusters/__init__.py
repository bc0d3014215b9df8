"""Candidate clusters -- hypothesis generation, scoring and cached search.

  cluster -- Cluster, one-edit modifications, content hash, expansion, merge
  arena   -- index-keyed cluster store (parents referenced by index)
  score   -- ranked recognition results per cluster
  search  -- initial clusters from grouping + cached local search
"""

from sketchgroup.engine.clusters.arena import ClusterArena
from sketchgroup.engine.clusters.cluster import (
    Cluster,
    ClusterModification,
    ModKind,
    content_hash,
    merge_clusters,
    nearest_strokes,
)
from sketchgroup.engine.clusters.score import ClusterScore
from sketchgroup.engine.clusters.search import ClusterSearch, build_initial_clusters, merge_overlapping

__all__ = [
    "Cluster",
    "ClusterArena",
    "ClusterModification",
    "ClusterScore",
    "ClusterSearch",
    "ModKind",
    "build_initial_clusters",
    "content_hash",
    "merge_clusters",
    "merge_overlapping",
    "nearest_strokes",
]
