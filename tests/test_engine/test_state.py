"""Tests for the pipeline state machine."""

from __future__ import annotations

import pytest

from sketchgroup.engine.state import Completion, PipelineEvent, PipelineState, Stage


def test_happy_path():
    state = PipelineState()
    for stage in (Stage.FEATURIZING, Stage.CLASSIFYING, Stage.GROUPING, Stage.MERGED, Stage.VERIFYING, Stage.MERGED):
        state.advance(stage)
    assert state.stage is Stage.MERGED


def test_illegal_transition_rejected():
    state = PipelineState()
    with pytest.raises(ValueError):
        state.advance(Stage.GROUPING)
    assert state.stage is Stage.IDLE


def test_featurizing_reachable_from_any_stage():
    state = PipelineState()
    state.advance(Stage.FEATURIZING)
    state.advance(Stage.CLASSIFYING)
    assert state.can_advance(Stage.FEATURIZING)
    state.advance(Stage.FEATURIZING)
    assert state.stage is Stage.FEATURIZING


def test_verify_requires_merged():
    state = PipelineState()
    state.advance(Stage.FEATURIZING)
    assert not state.can_advance(Stage.VERIFYING)
    assert not state.can_advance(Stage.SEARCHING)


def test_publish_and_drain():
    state = PipelineState()
    state.publish(PipelineEvent.CLASSIFICATION_DONE, 3)
    state.publish(PipelineEvent.CLASSIFICATION_DONE, 4)

    items = state.drain(PipelineEvent.CLASSIFICATION_DONE)

    assert items == [
        Completion(PipelineEvent.CLASSIFICATION_DONE, 3),
        Completion(PipelineEvent.CLASSIFICATION_DONE, 4),
    ]
    assert state.drain(PipelineEvent.CLASSIFICATION_DONE) == []
    assert state.channel(PipelineEvent.INITIAL_CLUSTERS_DONE).empty()
