"""Pipeline state machine: stages, their legal transitions and the completion channels."""

from __future__ import annotations

import enum
import logging
import queue
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class Stage(enum.Enum):
    IDLE = "idle"
    FEATURIZING = "featurizing"
    CLASSIFYING = "classifying"
    GROUPING = "grouping"
    MERGED = "merged"
    VERIFYING = "verifying"
    SEARCHING = "searching"


class PipelineEvent(enum.Enum):
    FEATURIZATION_DONE = "featurization_done"
    CLASSIFICATION_DONE = "classification_done"
    INITIAL_CLUSTERS_DONE = "initial_clusters_done"
    FINAL_CLUSTERS_DONE = "final_clusters_done"


@dataclass(frozen=True)
class Completion:
    """Completion marker. Subscribers read fresh state from the pipeline."""

    event: PipelineEvent
    revision: int


# Any stage may also go back to FEATURIZING when the strokes change
_TRANSITIONS: dict[Stage, set[Stage]] = {
    Stage.IDLE: set(),
    Stage.FEATURIZING: {Stage.CLASSIFYING},
    Stage.CLASSIFYING: {Stage.GROUPING},
    Stage.GROUPING: {Stage.MERGED},
    Stage.MERGED: {Stage.VERIFYING, Stage.SEARCHING},
    Stage.VERIFYING: {Stage.MERGED},
    Stage.SEARCHING: {Stage.MERGED},
}


class PipelineState:
    """Current stage plus one queue per completion event."""

    def __init__(self) -> None:
        self.stage = Stage.IDLE
        self.channels: dict[PipelineEvent, queue.Queue[Completion]] = {
            event: queue.Queue() for event in PipelineEvent
        }

    def can_advance(self, to: Stage) -> bool:
        return to is Stage.FEATURIZING or to in _TRANSITIONS[self.stage]

    def advance(self, to: Stage) -> Stage:
        if not self.can_advance(to):
            raise ValueError(f"Illegal stage transition: {self.stage.value} -> {to.value}")
        logger.debug("stage %s -> %s", self.stage.value, to.value)
        self.stage = to
        return to

    def publish(self, event: PipelineEvent, revision: int) -> None:
        self.channels[event].put(Completion(event, revision))

    def channel(self, event: PipelineEvent) -> queue.Queue[Completion]:
        return self.channels[event]

    def drain(self, event: PipelineEvent) -> list[Completion]:
        """Pop every pending completion of ``event`` without blocking."""
        items: list[Completion] = []
        q = self.channels[event]
        while True:
            try:
                items.append(q.get_nowait())
            except queue.Empty:
                return items
