from __future__ import annotations

from datetime import datetime, timedelta

from smart_categorizer.logger import get_logger
from smart_categorizer.models import (
    FeedbackStats,
    PerformanceMetrics,
    Prediction,
    PredictionFeedback,
    TrendPoint,
)

logger = get_logger(__name__)

HIGH_CONFIDENCE = 80.0
TREND_WINDOW = timedelta(days=30)


class FeedbackLog:
    """In-memory record of how predictions compared to the user's final choice."""

    def __init__(self, high_confidence: float = HIGH_CONFIDENCE):
        self.high_confidence = high_confidence
        self.records: list[PredictionFeedback] = []

    def record(
        self,
        prediction: Prediction,
        actual_category_id: str,
        created_at: datetime | None = None,
    ) -> PredictionFeedback:
        entry = PredictionFeedback(
            predicted_category_id=prediction.category_id,
            actual_category_id=actual_category_id,
            confidence=prediction.confidence,
            sources=list(prediction.sources),
            model_version=prediction.model_version,
            created_at=created_at or datetime.now(),
        )
        self.records.append(entry)
        logger.debug(
            "[FEEDBACK] predicted=%s actual=%s correct=%s",
            entry.predicted_category_id,
            entry.actual_category_id,
            entry.was_correct,
        )
        return entry

    def clear(self) -> None:
        self.records = []

    def accuracy_stats(self) -> FeedbackStats:
        total = len(self.records)
        if total == 0:
            return FeedbackStats()

        correct = sum(1 for r in self.records if r.was_correct)
        confident = [r for r in self.records if r.confidence >= self.high_confidence]
        confident_correct = sum(1 for r in confident if r.was_correct)

        return FeedbackStats(
            total_predictions=total,
            correct_predictions=correct,
            accuracy=correct / total * 100,
            high_confidence_predictions=len(confident),
            high_confidence_correct=confident_correct,
            high_confidence_accuracy=(
                confident_correct / len(confident) * 100 if confident else 0.0
            ),
        )

    def performance_metrics(self, now: datetime | None = None) -> PerformanceMetrics:
        if not self.records:
            return PerformanceMetrics()

        total = len(self.records)
        average_confidence = sum(r.confidence for r in self.records) / total
        confident = sum(1 for r in self.records if r.confidence >= self.high_confidence)

        distribution: dict[str, int] = {}
        for record in self.records:
            for source in record.sources:
                distribution[source] = distribution.get(source, 0) + 1

        cutoff = (now or datetime.now()) - TREND_WINDOW
        recent = [r for r in self.records if r.created_at >= cutoff]

        return PerformanceMetrics(
            average_confidence=round(average_confidence, 2),
            high_confidence_rate=round(confident / total * 100, 2),
            source_distribution=distribution,
            accuracy_trend=[
                TrendPoint(date=r.created_at, confidence=r.confidence, was_correct=r.was_correct)
                for r in recent
            ],
            total_predictions=total,
            recent_predictions=len(recent),
        )
