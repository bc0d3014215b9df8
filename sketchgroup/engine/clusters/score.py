"""ClusterScore: ranked recognition results for one cluster."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from sketchgroup.engine.contracts import RecognitionResult

FUSION_METHOD = "fusion"


class ClusterScore:
    """Rank → result in the order the recognizer returned them.

    No re-sorting happens here; ranking is the recognizer's job. The
    overall score is the fused score of rank 0 (0.0 when empty).
    """

    def __init__(self, results: Sequence[RecognitionResult]) -> None:
        self.results: dict[int, RecognitionResult] = dict(enumerate(results))
        self.score = results[0].fusion_score if results else 0.0

    @classmethod
    def from_method_rankings(
        cls,
        rankings: Mapping[str, Sequence[RecognitionResult]],
        method: str = FUSION_METHOD,
    ) -> ClusterScore:
        """Score from the ranked list one recognition method produced."""
        return cls(rankings.get(method, []))

    def __len__(self) -> int:
        return len(self.results)

    @property
    def top_match(self) -> RecognitionResult | None:
        return self.results.get(0)

    def result_at(self, rank: int) -> RecognitionResult | None:
        return self.results.get(rank)
