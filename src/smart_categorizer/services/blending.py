from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from smart_categorizer.classifiers.base import StrategyOutcome
from smart_categorizer.logger import get_logger
from smart_categorizer.models import Prediction, PredictionSource

logger = get_logger(__name__)

MAX_CONFIDENCE = 100.0


@dataclass
class _Accumulator:
    first: Prediction
    total: float = 0.0
    count: int = 0
    reasons: list[str] = field(default_factory=list)
    sources: list[PredictionSource] = field(default_factory=list)

    def add(self, prediction: Prediction) -> None:
        self.total += prediction.confidence
        self.count += 1
        if prediction.reasoning:
            self.reasons.append(prediction.reasoning)
        for source in prediction.sources:
            if source not in self.sources:
                self.sources.append(source)


class PredictionBlender:
    def __init__(
        self,
        agreement_boost: float = 0.1,
        confidence_ceiling: float = 95.0,
        top_n: int = 3,
        high_confidence_threshold: float = 80.0,
    ):
        self.agreement_boost = agreement_boost
        self.confidence_ceiling = confidence_ceiling
        self.top_n = top_n
        self.high_confidence_threshold = high_confidence_threshold

    def combine(self, prediction_lists: Iterable[Sequence[Prediction]]) -> list[Prediction]:
        """Merge per-strategy predictions into one ranked list.

        Predictions for the same category are averaged, then boosted for every
        extra distinct source that agrees on it.
        """
        merged: dict[str, _Accumulator] = {}
        for predictions in prediction_lists:
            for prediction in predictions:
                acc = merged.get(prediction.category_id)
                if acc is None:
                    acc = merged[prediction.category_id] = _Accumulator(first=prediction)
                acc.add(prediction)

        blended: list[Prediction] = []
        for acc in merged.values():
            average = acc.total / acc.count
            boost = 1 + max(len(acc.sources) - 1, 0) * self.agreement_boost
            confidence = max(0.0, min(MAX_CONFIDENCE, self.confidence_ceiling, average * boost))
            blended.append(acc.first.model_copy(update={
                "confidence": confidence,
                "reasoning": "; ".join(acc.reasons),
                "sources": list(acc.sources),
            }))

        blended.sort(key=lambda p: p.confidence, reverse=True)
        return blended[:self.top_n]

    def combine_outcomes(self, outcomes: Iterable[StrategyOutcome]) -> list[Prediction]:
        usable = []
        for outcome in outcomes:
            if outcome.ok:
                usable.append(outcome.predictions)
            else:
                logger.debug("[PREDICT] Strategy '%s' contributed nothing: %s", outcome.source, outcome.error)
        return self.combine(usable)

    def is_high_confidence(self, predictions: Sequence[Prediction]) -> bool:
        return bool(predictions) and predictions[0].confidence >= self.high_confidence_threshold
