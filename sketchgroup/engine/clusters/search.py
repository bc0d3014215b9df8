"""Candidate search: initial clusters and cached local search around them.

Initial clusters come from the grouper's joined pairs plus one singleton per
remaining classified stroke; clusters sharing a stroke are merged until no
two overlap. The search then expands every top-level cluster into its
one-edit (or deeper) neighbours and asks the recognizer to score each
distinct hypothesis once. Scores are cached by content hash across runs so
re-searching an unchanged region costs nothing.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field

from sketchgroup.engine.clusters.arena import ClusterArena
from sketchgroup.engine.clusters.cluster import Cluster, merge_clusters
from sketchgroup.engine.clusters.score import ClusterScore
from sketchgroup.engine.config import ClustererConfig
from sketchgroup.engine.contracts import ClassificationResult, ClusterRecognizer, GroupingResult
from sketchgroup.sketch.distances import DistanceIndex
from sketchgroup.sketch.model import Stroke

logger = logging.getLogger(__name__)


def _union_find_root(parent: list[int], x: int) -> int:
    while parent[x] != x:
        parent[x] = parent[parent[x]]
        x = parent[x]
    return x


def merge_overlapping(clusters: list[Cluster]) -> list[Cluster]:
    """Merge clusters that share strokes, transitively.

    Each merged cluster keeps the label and stroke order of its earliest
    member cluster.
    """
    n = len(clusters)
    parent = list(range(n))
    owner: dict[str, int] = {}

    for i, cluster in enumerate(clusters):
        for stroke in cluster.strokes:
            j = owner.setdefault(stroke.id, i)
            if j == i:
                continue
            ri, rj = _union_find_root(parent, i), _union_find_root(parent, j)
            if ri != rj:
                # Lower index stays root so the earliest cluster leads
                parent[max(ri, rj)] = min(ri, rj)

    groups: dict[int, list[int]] = {}
    for i in range(n):
        groups.setdefault(_union_find_root(parent, i), []).append(i)

    merged: list[Cluster] = []
    for root in sorted(groups):
        members = groups[root]
        result = clusters[members[0]]
        for i in members[1:]:
            result = merge_clusters(result, clusters[i])
        merged.append(result)
    return merged


def build_initial_clusters(
    strokes: list[Stroke],
    classification: ClassificationResult,
    grouping: GroupingResult,
    distances: DistanceIndex,
) -> list[Cluster]:
    """Top-level clusters for the current grouping hypothesis."""
    clusters = [
        Cluster.from_pair(p.stroke_a, p.stroke_b, grouping.label_for(p), distances)
        for p in grouping.joined_pairs
    ]
    claimed = {s.id for c in clusters for s in c.strokes}
    for stroke in strokes:
        if stroke.id not in claimed and stroke in classification:
            clusters.append(Cluster.from_stroke(stroke, classification.label_for(stroke), distances))

    merged = merge_overlapping(clusters)
    logger.info("Initial clusters: %d seeds merged into %d", len(clusters), len(merged))
    return merged


@dataclass
class SearchStats:
    parents: int = 0
    candidates: int = 0
    cache_hits: int = 0
    recognized: int = 0
    failed: int = 0
    elapsed_ms: float = 0.0
    errors: dict[int, str] = field(default_factory=dict)


class ClusterSearch:
    """Cached candidate search over top-level clusters.

    ``seen`` maps content hash to the cluster that currently represents that
    hypothesis. A hypothesis already scored in an earlier run hands its
    score to the new cluster instead of being recognized again. ``arena``
    and ``rankings`` only describe the latest run.
    """

    def __init__(self, recognizer: ClusterRecognizer | None, config: ClustererConfig | None = None) -> None:
        self.recognizer = recognizer
        self.config = config or ClustererConfig()
        self.arena = ClusterArena()
        self.seen: dict[int, Cluster] = {}
        # parent arena index → candidate hashes, best first
        self.rankings: dict[int, list[int]] = {}

    def _fill_modifications(self, cluster: Cluster) -> None:
        if self.config.use_radius_neighborhood:
            cluster.generate_modifications_within(self.config.search_neighborhood_radius)
        else:
            cluster.generate_modifications(self.config.search_neighborhood_count)

    def _track(self, cluster: Cluster, pending: dict[int, list[Cluster]], stats: SearchStats) -> None:
        h = cluster.content_hash
        known = self.seen.get(h)
        if known is not None and known.has_been_scored:
            cluster.score = known.score
            stats.cache_hits += 1
        else:
            pending.setdefault(h, []).append(cluster)
        self.seen[h] = cluster

    def _prune(self, strokes: Iterable[Stroke]) -> int:
        """Drop cached hypotheses that use a stroke no longer in ``strokes``."""
        live = {s.id: s for s in strokes}
        dead = [
            h
            for h, cluster in self.seen.items()
            if any(live.get(s.id) is not s for s in cluster.strokes)
        ]
        for h in dead:
            del self.seen[h]
        return len(dead)

    def run(self, parents: list[Cluster], strokes: Iterable[Stroke] | None = None) -> SearchStats:
        """Expand, score and rank candidates for every searchable parent.

        With ``strokes`` given, cached hypotheses over any other stroke are
        forgotten first.
        """
        stats = SearchStats()
        t0 = time.perf_counter()
        self.arena = ClusterArena()
        self.rankings = {}
        if strokes is not None:
            pruned = self._prune(strokes)
            if pruned:
                logger.debug("Search: forgot %d cached hypotheses over removed strokes", pruned)
        # content hash -> clusters waiting on that hypothesis's score
        pending: dict[int, list[Cluster]] = {}
        searched: list[int] = []

        for parent in parents:
            if parent.class_name in self.config.search_excluded_classes:
                continue
            stats.parents += 1
            index = self.arena.add(parent)
            searched.append(index)
            self._fill_modifications(parent)
            self._track(parent, pending, stats)

            children = parent.expand(self.arena, self.config.search_depth)
            stats.candidates += len(children)
            for child in children.values():
                self._track(child, pending, stats)

        # Hypotheses seen before but never scored get another chance
        for h, cluster in self.seen.items():
            if not cluster.has_been_scored and h not in pending:
                pending[h] = [cluster]

        self._recognize(pending, stats)
        for index in searched:
            self.rankings[index] = self._rank(index)

        stats.elapsed_ms = (time.perf_counter() - t0) * 1000
        logger.info(
            "Search: %d parents, %d candidates, %d cache hits, %d recognized, %d failed in %.0fms",
            stats.parents,
            stats.candidates,
            stats.cache_hits,
            stats.recognized,
            stats.failed,
            stats.elapsed_ms,
        )
        return stats

    def _recognize(self, pending: dict[int, list[Cluster]], stats: SearchStats) -> None:
        if self.recognizer is None:
            logger.debug("Search: no recognizer, %d candidates left unscored", len(pending))
            return
        for h, clusters in pending.items():
            try:
                score = ClusterScore(self.recognizer.recognize(clusters[0]))
            except Exception as e:
                stats.errors[h] = str(e)
                stats.failed += 1
                logger.warning("  recognition of %r FAILED: %s", clusters[0], e)
                continue
            for cluster in clusters:
                cluster.score = score
            stats.recognized += 1

    def _rank(self, index: int) -> list[int]:
        parent = self.arena[index]
        candidates = [parent, *self.arena.children_of(index)]
        scored: dict[int, float] = {}
        for c in candidates:
            current = self.seen.get(c.content_hash, c)
            if current.score is None or current.score.top_match is None:
                continue
            scored.setdefault(c.content_hash, current.score.top_match.fusion_score)
        return sorted(scored, key=lambda h: scored[h], reverse=True)

    def ranked_candidates(self, parent: Cluster) -> list[Cluster]:
        if parent not in self.arena:
            return []
        hashes = self.rankings.get(self.arena.index_of(parent), [])
        return [self.seen[h] for h in hashes if h in self.seen]

    def best(self, parent: Cluster) -> Cluster | None:
        ranked = self.ranked_candidates(parent)
        return ranked[0] if ranked else None

    def clusters_at(self, x: float, y: float) -> list[Cluster]:
        """Ranked candidates of the first searched parent whose box covers (x, y)."""
        for index in self.rankings:
            parent = self.arena[index]
            if parent.covers(x, y):
                return self.ranked_candidates(parent)
        return []
