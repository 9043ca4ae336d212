from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from smart_categorizer.models import Prediction, PredictionSource, Transaction


@dataclass(frozen=True)
class StrategyError:
    source: PredictionSource
    message: str


@dataclass(frozen=True)
class StrategyOutcome:
    """Result of running one prediction strategy: predictions or an error."""
    source: PredictionSource
    predictions: list[Prediction] = field(default_factory=list)
    error: StrategyError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, source: PredictionSource, predictions: list[Prediction]) -> StrategyOutcome:
        return cls(source=source, predictions=predictions)

    @classmethod
    def failure(cls, source: PredictionSource, message: str) -> StrategyOutcome:
        return cls(source=source, error=StrategyError(source=source, message=message))


class Classifier(ABC):
    source: PredictionSource

    @abstractmethod
    async def classify(self, transaction: Transaction) -> StrategyOutcome:
        """Run this strategy against the transaction."""
        pass
