"""Tests for the pipeline orchestrator."""

from __future__ import annotations

import threading

from sketchgroup.engine.collaborators import GeometryFeaturizer, StaticClassifier, StaticGrouper
from sketchgroup.engine.config import ClustererConfig
from sketchgroup.engine.contracts import GroupingResult, MatchError, MatchErrorKind, TemplateMatch
from sketchgroup.engine.pipeline import ClustererPipeline
from sketchgroup.engine.state import PipelineEvent, Stage
from sketchgroup.sketch.model import UNKNOWN, Sketch
from tests.conftest import (
    DeferredClassifier,
    DeferredGrouper,
    FakeClusterRecognizer,
    FakeTemplateRecognizer,
    make_stroke,
)

WIRE_LABELS = {"a": "Wire", "b": "Wire", "c": "Wire", "d": "Wire"}


def _pipeline(sketch, classifier=None, pairs=(("a", "b", "Wire"),), **kwargs) -> ClustererPipeline:
    return ClustererPipeline(
        sketch,
        GeometryFeaturizer(),
        classifier or StaticClassifier(WIRE_LABELS),
        StaticGrouper(list(pairs)),
        **kwargs,
    )


def _events(pipeline, event):
    return [c.revision for c in pipeline.state.drain(event)]


class TestSynchronousRun:
    def test_start_reaches_merged(self, abc_sketch):
        pipeline = _pipeline(abc_sketch)

        pipeline.start()

        assert pipeline.stage is Stage.MERGED
        assert pipeline.errors == {}
        assert len(pipeline.shapes) == 2
        assert _events(pipeline, PipelineEvent.FEATURIZATION_DONE) == [0]
        assert _events(pipeline, PipelineEvent.CLASSIFICATION_DONE) == [0]
        assert _events(pipeline, PipelineEvent.INITIAL_CLUSTERS_DONE) == [0]
        assert [c.stroke_ids for c in pipeline.initial_clusters] == [["a", "b"], ["c"]]

    def test_add_stroke_reruns_pipeline(self, abc_sketch):
        pipeline = _pipeline(abc_sketch, pairs=(("a", "b", "Wire"), ("c", "d", "Wire")))
        pipeline.start()

        revision = pipeline.add_stroke(make_stroke("d", [(111.0, 100.0), (120.0, 100.0)]))

        assert revision == 1
        assert pipeline.stage is Stage.MERGED
        assert sorted(len(s) for s in pipeline.shapes) == [2, 2]
        assert _events(pipeline, PipelineEvent.INITIAL_CLUSTERS_DONE) == [0, 1]

    def test_remove_stroke_reruns_pipeline(self, abc_sketch):
        pipeline = _pipeline(abc_sketch)
        pipeline.start()

        pipeline.remove_stroke(abc_sketch.get_stroke("b"))

        assert pipeline.revision == 1
        assert sorted(s.stroke_ids[0] for s in pipeline.shapes) == ["a", "c"]
        assert "grouping" not in pipeline.errors


class TestStaleResults:
    def test_stale_classification_discarded_and_reissued(self, abc_sketch):
        classifier = DeferredClassifier(WIRE_LABELS)
        pipeline = _pipeline(abc_sketch, classifier=classifier)
        pipeline.start()
        assert pipeline.stage is Stage.CLASSIFYING
        assert [r for r, _ in classifier.requests] == [0]

        pipeline.add_stroke(make_stroke("d", [(200.0, 0.0)]))
        # Request for revision 1 waits behind the one in flight
        assert [r for r, _ in classifier.requests] == [0]

        classifier.complete(0)

        assert [r for r, _ in classifier.requests] == [0, 1]
        assert _events(pipeline, PipelineEvent.CLASSIFICATION_DONE) == []
        assert all(s.classification == UNKNOWN for s in abc_sketch.strokes)
        assert pipeline.stage is Stage.CLASSIFYING

        classifier.complete(1)

        assert _events(pipeline, PipelineEvent.CLASSIFICATION_DONE) == [1]
        assert _events(pipeline, PipelineEvent.INITIAL_CLUSTERS_DONE) == [1]
        assert pipeline.stage is Stage.MERGED
        assert len(pipeline.shapes) == 3

    def test_stale_grouping_discarded_and_reissued(self, abc_sketch):
        grouper = DeferredGrouper([("a", "b", "Wire")])
        pipeline = ClustererPipeline(abc_sketch, GeometryFeaturizer(), StaticClassifier(WIRE_LABELS), grouper)
        pipeline.start()
        assert pipeline.stage is Stage.GROUPING
        assert [r for r, *_ in grouper.requests] == [0]

        pipeline.add_stroke(make_stroke("d", [(200.0, 0.0)]))
        assert [r for r, *_ in grouper.requests] == [0]

        grouper.complete(0)

        assert [r for r, *_ in grouper.requests] == [0, 1]
        assert _events(pipeline, PipelineEvent.INITIAL_CLUSTERS_DONE) == []
        assert len(pipeline.shapes) == 4
        assert pipeline.stage is Stage.GROUPING

        grouper.complete(1)

        assert _events(pipeline, PipelineEvent.INITIAL_CLUSTERS_DONE) == [1]
        assert pipeline.stage is Stage.MERGED
        assert len(pipeline.shapes) == 3

    def test_restart_while_classifying(self, abc_sketch):
        classifier = DeferredClassifier(WIRE_LABELS)
        pipeline = _pipeline(abc_sketch, classifier=classifier)
        pipeline.start()

        assert pipeline.start() == 1
        classifier.complete(0)

        assert [r for r, _ in classifier.requests] == [0, 1]
        assert pipeline.stage is Stage.CLASSIFYING

        classifier.complete(1)

        assert pipeline.stage is Stage.MERGED
        assert _events(pipeline, PipelineEvent.INITIAL_CLUSTERS_DONE) == [1]

    def test_duplicate_grouping_completion_ignored(self, abc_sketch):
        class EchoingGrouper(StaticGrouper):
            def group(self, sketch, classification, revision, done):
                super().group(sketch, classification, revision, done)
                done(revision, GroupingResult())

        pipeline = ClustererPipeline(
            abc_sketch,
            GeometryFeaturizer(),
            StaticClassifier(WIRE_LABELS),
            EchoingGrouper([("a", "b", "Wire")]),
        )
        pipeline.start()

        assert pipeline.stage is Stage.MERGED
        assert pipeline.errors == {}
        assert len(pipeline.shapes) == 2
        assert _events(pipeline, PipelineEvent.INITIAL_CLUSTERS_DONE) == [0]

    def test_completion_from_worker_thread(self, abc_sketch):
        classifier = DeferredClassifier(WIRE_LABELS)
        pipeline = _pipeline(abc_sketch, classifier=classifier)
        pipeline.start()

        worker = threading.Thread(target=classifier.complete)
        worker.start()
        done = pipeline.wait_for(PipelineEvent.INITIAL_CLUSTERS_DONE, timeout=5.0)
        worker.join()

        assert done is not None
        assert done.revision == 0
        assert pipeline.stage is Stage.MERGED

    def test_wait_for_times_out(self, abc_sketch):
        pipeline = _pipeline(abc_sketch, classifier=DeferredClassifier(WIRE_LABELS))
        pipeline.start()
        assert pipeline.wait_for(PipelineEvent.CLASSIFICATION_DONE, timeout=0.01) is None


class TestFaults:
    def test_missing_classification_recorded(self, abc_sketch):
        class NoResult:
            def classify(self, sketch, revision, done):
                done(revision, None)

        pipeline = _pipeline(abc_sketch, classifier=NoResult())
        pipeline.start()

        assert "classifying" in pipeline.errors
        assert pipeline.stage is Stage.CLASSIFYING
        assert _events(pipeline, PipelineEvent.CLASSIFICATION_DONE) == []

    def test_collaborator_exception_recorded(self, abc_sketch):
        class Crashing:
            def classify(self, sketch, revision, done):
                raise RuntimeError("model not loaded")

        pipeline = _pipeline(abc_sketch, classifier=Crashing())
        pipeline.start()

        assert "model not loaded" in pipeline.errors["classifying"]

    def test_next_revision_recovers(self, abc_sketch):
        class FlakyClassifier(StaticClassifier):
            calls = 0

            def classify(self, sketch, revision, done):
                self.calls += 1
                if self.calls == 1:
                    raise RuntimeError("first call fails")
                super().classify(sketch, revision, done)

        pipeline = _pipeline(abc_sketch, classifier=FlakyClassifier(WIRE_LABELS))
        pipeline.start()
        pipeline.add_stroke(make_stroke("d", [(300.0, 0.0)]))

        assert pipeline.stage is Stage.MERGED
        assert "classifying" not in pipeline.errors


class TestOnDemandStages:
    def test_verify(self, abc_sketch):
        a = abc_sketch.get_stroke("a")
        b = abc_sketch.get_stroke("b")
        labels = {"a": "Gate", "b": "Gate", "c": "Wire"}
        recognizer = FakeTemplateRecognizer(
            default=TemplateMatch("AND", 0.9, [MatchError(MatchErrorKind.EXTRA, b)]),
        )
        pipeline = _pipeline(
            abc_sketch,
            classifier=StaticClassifier(labels),
            pairs=(("a", "b", "Gate"),),
            template_recognizer=recognizer,
        )
        pipeline.start()

        report = pipeline.verify()

        assert report is not None
        assert pipeline.stage is Stage.MERGED
        assert a.primary_shape.type == "AND"
        assert a.primary_shape.stroke_ids == ["a"]
        assert _events(pipeline, PipelineEvent.FINAL_CLUSTERS_DONE) == [0]

    def test_verify_before_merge_refused(self, abc_sketch):
        pipeline = _pipeline(
            abc_sketch,
            classifier=DeferredClassifier(WIRE_LABELS),
            template_recognizer=FakeTemplateRecognizer(),
        )
        pipeline.start()

        assert pipeline.verify() is None
        assert pipeline.stage is Stage.CLASSIFYING

    def test_verify_without_recognizer(self, abc_sketch):
        pipeline = _pipeline(abc_sketch)
        pipeline.start()
        assert pipeline.verify() is None

    def test_search_clusters(self, abc_sketch):
        recognizer = FakeClusterRecognizer()
        labels = {"a": "Gate", "b": "Gate", "c": "Gate"}
        pipeline = _pipeline(
            abc_sketch,
            classifier=StaticClassifier(labels),
            pairs=(),
            cluster_recognizer=recognizer,
            config=ClustererConfig(search_neighborhood_count=2),
        )
        pipeline.start()

        stats = pipeline.search_clusters()

        assert stats.parents == 3
        assert stats.candidates == 6
        assert recognizer.calls > 0
        assert pipeline.stage is Stage.MERGED
        assert _events(pipeline, PipelineEvent.FINAL_CLUSTERS_DONE) == [0]
        best = pipeline.search.best(pipeline.initial_clusters[0])
        assert best is not None

    def test_search_after_stroke_removal(self, abc_sketch):
        recognizer = FakeClusterRecognizer()
        labels = {"a": "Gate", "b": "Gate", "c": "Gate"}
        pipeline = _pipeline(
            abc_sketch,
            classifier=StaticClassifier(labels),
            pairs=(),
            cluster_recognizer=recognizer,
            config=ClustererConfig(search_neighborhood_count=2),
        )
        pipeline.start()
        pipeline.search_clusters()

        pipeline.remove_stroke(abc_sketch.get_stroke("b"))
        recognizer.recognized.clear()
        pipeline.search_clusters()
        size = len(pipeline.search.arena)
        stats = pipeline.search_clusters()

        assert stats.parents == 2
        assert len(pipeline.search.arena) == size
        assert all("b" not in c.stroke_ids for c in pipeline.search.arena)
        assert all("b" not in c.stroke_ids for c in pipeline.search.seen.values())
        assert all("b" not in ids for ids in recognizer.recognized)

    def test_search_recognizer_runs_outside_lock(self, abc_sketch):
        class ThreadedRecognizer(FakeClusterRecognizer):
            def __init__(self):
                super().__init__()
                self.snapshots = []

            def recognize(self, cluster):
                # Reads pipeline state from another thread mid-search
                reader = threading.Thread(target=lambda: self.snapshots.append(pipeline.shapes))
                reader.start()
                reader.join(timeout=5.0)
                return super().recognize(cluster)

        recognizer = ThreadedRecognizer()
        pipeline = _pipeline(
            abc_sketch,
            classifier=StaticClassifier({"a": "Gate", "b": "Gate", "c": "Gate"}),
            pairs=(),
            cluster_recognizer=recognizer,
        )
        pipeline.start()

        stats = pipeline.search_clusters()

        assert stats is not None
        assert len(recognizer.snapshots) == recognizer.calls
