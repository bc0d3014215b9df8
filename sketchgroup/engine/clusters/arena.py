"""Index-keyed store of clusters.

Child clusters refer to the top-level cluster they came from by arena
index instead of holding a reference to it.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator

from sketchgroup.engine.clusters.cluster import Cluster


class ClusterArena:
    def __init__(self) -> None:
        self._clusters: list[Cluster] = []
        self._index: dict[uuid.UUID, int] = {}

    def add(self, cluster: Cluster) -> int:
        """Store ``cluster`` (once) and return its index."""
        existing = self._index.get(cluster.id)
        if existing is not None:
            return existing
        self._clusters.append(cluster)
        self._index[cluster.id] = len(self._clusters) - 1
        return self._index[cluster.id]

    def __getitem__(self, index: int) -> Cluster:
        return self._clusters[index]

    def __len__(self) -> int:
        return len(self._clusters)

    def __iter__(self) -> Iterator[Cluster]:
        return iter(self._clusters)

    def __contains__(self, cluster: Cluster) -> bool:
        return cluster.id in self._index

    def index_of(self, cluster: Cluster) -> int:
        return self._index[cluster.id]

    def parent_of(self, cluster: Cluster) -> Cluster | None:
        if cluster.parent is None:
            return None
        return self._clusters[cluster.parent]

    def children_of(self, index: int) -> list[Cluster]:
        return [c for c in self._clusters if c.parent == index]

    def roots(self) -> list[Cluster]:
        return [c for c in self._clusters if c.is_parent]
