"""Pipeline orchestrator: featurize → classify → group → merge, plus on-demand verify/search.

Collaborators complete asynchronously by calling back with the sketch
revision their request was stamped with. A completion for an older revision
is discarded. Classification and grouping each have at most one request in
flight; a request needed while one is outstanding is deferred and issued
for the current revision once the outstanding one comes back.

Stage handlers never raise to the caller: a fault is logged, recorded in
``errors`` and the pipeline stays where it was. Consumers watch the
per-event completion channels and read fresh state from the accessors.
"""

from __future__ import annotations

import logging
import queue
import threading
import time

from sketchgroup.engine.assembly import ShapeAssembler
from sketchgroup.engine.clusters.cluster import Cluster
from sketchgroup.engine.clusters.search import ClusterSearch, SearchStats, build_initial_clusters
from sketchgroup.engine.config import ClustererConfig
from sketchgroup.engine.contracts import (
    ClassificationResult,
    Classifier,
    ClusterRecognizer,
    Featurizer,
    Grouper,
    GroupingResult,
    TemplateRecognizer,
)
from sketchgroup.engine.state import Completion, PipelineEvent, PipelineState, Stage
from sketchgroup.engine.verification import ShapeVerifier, VerificationReport
from sketchgroup.sketch.model import Shape, Sketch, Stroke

logger = logging.getLogger(__name__)


class ClustererPipeline:
    """Owns one sketch and drives it through the grouping stages."""

    def __init__(
        self,
        sketch: Sketch,
        featurizer: Featurizer,
        classifier: Classifier,
        grouper: Grouper,
        template_recognizer: TemplateRecognizer | None = None,
        cluster_recognizer: ClusterRecognizer | None = None,
        config: ClustererConfig | None = None,
    ) -> None:
        self.sketch = sketch
        self.featurizer = featurizer
        self.classifier = classifier
        self.grouper = grouper
        self.template_recognizer = template_recognizer
        self.config = config or ClustererConfig()

        self.state = PipelineState()
        self.assembler = ShapeAssembler(sketch, grouper)
        self.search = ClusterSearch(cluster_recognizer, self.config)

        self.classification: ClassificationResult | None = None
        self.grouping: GroupingResult | None = None
        self.initial_clusters: list[Cluster] = []
        self.verification: VerificationReport | None = None
        self.errors: dict[str, str] = {}

        self._lock = threading.RLock()
        self._featurized_revision: int | None = None
        # stage → revision of the request in flight
        self._outstanding: dict[Stage, int] = {}
        self._deferred: set[Stage] = set()

    # --- accessors ---

    @property
    def stage(self) -> Stage:
        return self.state.stage

    @property
    def revision(self) -> int:
        return self.sketch.revision

    @property
    def shapes(self) -> list[Shape]:
        with self._lock:
            return list(self.sketch.shapes)

    def channel(self, event: PipelineEvent) -> queue.Queue[Completion]:
        return self.state.channel(event)

    def wait_for(self, event: PipelineEvent, timeout: float | None = None) -> Completion | None:
        """Block until the next ``event`` completion (None on timeout)."""
        try:
            return self.state.channel(event).get(timeout=timeout)
        except queue.Empty:
            return None

    # --- input mutation ---

    def start(self) -> int:
        """Run the pipeline over the strokes already in the sketch.

        A restart gets a fresh revision so requests from the previous pass
        are treated as stale.
        """
        with self._lock:
            if self.state.stage is Stage.IDLE:
                revision = self.sketch.revision
            else:
                revision = self.sketch.touch()
            self._invalidate()
        self._request_featurization(revision)
        return revision

    def add_stroke(self, stroke: Stroke) -> int:
        with self._lock:
            revision = self.sketch.add_stroke(stroke)
            self._invalidate()
        self._request_featurization(revision)
        return revision

    def remove_stroke(self, stroke: Stroke) -> int:
        with self._lock:
            revision = self.sketch.remove_stroke(stroke)
            self._invalidate()
        self._request_featurization(revision)
        return revision

    def _invalidate(self) -> None:
        self.classification = None
        self.grouping = None
        self._featurized_revision = None
        self.state.advance(Stage.FEATURIZING)

    # --- stage requests ---

    def _request_featurization(self, revision: int) -> None:
        try:
            self.featurizer.featurize(self.sketch, revision, self._on_featurized)
        except Exception as e:
            self._record(Stage.FEATURIZING, e)

    def _request(self, stage: Stage) -> None:
        with self._lock:
            revision = self.sketch.revision
            if stage in self._outstanding:
                self._deferred.add(stage)
                logger.debug(
                    "%s request for revision %d deferred (revision %d in flight)",
                    stage.value,
                    revision,
                    self._outstanding[stage],
                )
                return
            if self._featurized_revision != revision:
                return
            if stage is Stage.GROUPING and self.classification is None:
                return
            if not self.state.can_advance(stage):
                logger.warning("%s request ignored in stage %s", stage.value, self.state.stage.value)
                return
            self.state.advance(stage)
            self._outstanding[stage] = revision
            classification = self.classification

        try:
            if stage is Stage.CLASSIFYING:
                self.classifier.classify(self.sketch, revision, self._on_classified)
            else:
                self.grouper.group(self.sketch, classification, revision, self._on_grouped)
        except Exception as e:
            with self._lock:
                if self._outstanding.get(stage) == revision:
                    del self._outstanding[stage]
            self._record(stage, e)

    def _complete(self, stage: Stage, revision: int) -> tuple[bool, bool] | None:
        """Clear the in-flight marker. Returns (stale, reissue).

        Returns None for a completion that matches no request in flight.
        """
        if self._outstanding.get(stage) != revision:
            logger.warning("Ignoring unexpected %s completion for revision %d", stage.value, revision)
            return None
        del self._outstanding[stage]
        reissue = stage in self._deferred
        self._deferred.discard(stage)
        stale = revision != self.sketch.revision
        if stale:
            logger.info(
                "Discarding %s result for revision %d (current %d)",
                stage.value,
                revision,
                self.sketch.revision,
            )
        return stale, reissue

    # --- completion handlers ---

    def _on_featurized(self, revision: int) -> None:
        with self._lock:
            if revision != self.sketch.revision:
                logger.info("Discarding featurization for revision %d (current %d)", revision, self.sketch.revision)
                return
            self._featurized_revision = revision
            self.state.publish(PipelineEvent.FEATURIZATION_DONE, revision)
        self._request(Stage.CLASSIFYING)

    def _on_classified(self, revision: int, result: ClassificationResult | None) -> None:
        with self._lock:
            outcome = self._complete(Stage.CLASSIFYING, revision)
            if outcome is None:
                return
            stale, reissue = outcome
            if not stale:
                t0 = time.perf_counter()
                try:
                    self.assembler.apply_classifications(result)
                except Exception as e:
                    self._record(Stage.CLASSIFYING, e)
                    return
                self.classification = result
                self.errors.pop(Stage.CLASSIFYING.value, None)
                logger.debug("  classification applied in %.1fms", (time.perf_counter() - t0) * 1000)
                self.state.publish(PipelineEvent.CLASSIFICATION_DONE, revision)
        if stale:
            if reissue:
                self._request(Stage.CLASSIFYING)
            return
        self._request(Stage.GROUPING)

    def _on_grouped(self, revision: int, result: GroupingResult | None) -> None:
        with self._lock:
            outcome = self._complete(Stage.GROUPING, revision)
            if outcome is None:
                return
            stale, reissue = outcome
            if not stale:
                t0 = time.perf_counter()
                try:
                    applied = self.assembler.group_sketch(result, self.classification)
                    self.initial_clusters = build_initial_clusters(
                        self.sketch.strokes,
                        self.classification,
                        applied,
                        self.featurizer.distance_index(),
                    )
                    self.state.advance(Stage.MERGED)
                except Exception as e:
                    self._record(Stage.GROUPING, e)
                    return
                self.grouping = applied
                self.errors.pop(Stage.GROUPING.value, None)
                logger.info(
                    "Merged: %d shapes, %d initial clusters in %.1fms",
                    len(self.sketch.shapes),
                    len(self.initial_clusters),
                    (time.perf_counter() - t0) * 1000,
                )
                self.state.publish(PipelineEvent.INITIAL_CLUSTERS_DONE, revision)
        if stale and reissue:
            self._request(Stage.GROUPING)

    # --- on-demand stages ---

    def verify(self) -> VerificationReport | None:
        """Template-match and repair the committed shapes.

        Runs under the pipeline lock: repair edits the committed shapes
        between recognizer calls.
        """
        if self.template_recognizer is None:
            logger.warning("verify: no template recognizer configured")
            return None
        with self._lock:
            if not self.state.can_advance(Stage.VERIFYING):
                logger.warning("verify: pipeline is %s, not merged", self.state.stage.value)
                return None
            self.state.advance(Stage.VERIFYING)
            report = None
            try:
                verifier = ShapeVerifier(self.sketch, self.template_recognizer, self.config)
                report = verifier.verify_and_repair()
            except Exception as e:
                self._record(Stage.VERIFYING, e)
            finally:
                self.state.advance(Stage.MERGED)
            if report is not None:
                self.verification = report
                self.state.publish(PipelineEvent.FINAL_CLUSTERS_DONE, self.sketch.revision)
            return report

    def search_clusters(self) -> SearchStats | None:
        """Explore and score alternative groupings around the initial clusters.

        The recognizer is called outside the pipeline lock. Results for a
        revision that changed meanwhile are returned but not published.
        """
        with self._lock:
            if not self.state.can_advance(Stage.SEARCHING):
                logger.warning("search: pipeline is %s, not merged", self.state.stage.value)
                return None
            self.state.advance(Stage.SEARCHING)
            revision = self.sketch.revision
            parents = list(self.initial_clusters)
            strokes = list(self.sketch.strokes)

        stats = None
        try:
            stats = self.search.run(parents, strokes)
        except Exception as e:
            self._record(Stage.SEARCHING, e)

        with self._lock:
            # A stroke edit meanwhile has already moved the pipeline on
            if self.state.stage is Stage.SEARCHING:
                self.state.advance(Stage.MERGED)
            if stats is None:
                return None
            if revision != self.sketch.revision:
                logger.info("search: results for revision %d are stale (current %d)", revision, self.sketch.revision)
            else:
                self.state.publish(PipelineEvent.FINAL_CLUSTERS_DONE, revision)
            return stats

    def _record(self, stage: Stage, error: Exception) -> None:
        with self._lock:
            self.errors[stage.value] = str(error)
        logger.warning("  %s FAILED: %s", stage.value, error)
