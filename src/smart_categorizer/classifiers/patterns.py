from __future__ import annotations

from collections.abc import Mapping

from smart_categorizer.core.settings import MODEL_VERSION
from smart_categorizer.models import CategoryPattern, Prediction, Transaction

from .base import Classifier, StrategyOutcome

KEYWORD_WEIGHT = 30.0
AMOUNT_WEIGHT = 20.0
MERCHANT_WEIGHT = 25.0
MAX_PATTERN_CONFIDENCE = 95.0


def _format_amount(value: float) -> str:
    return f"{value:g}"


class PatternMatcher(Classifier):
    """Scores transactions against per-category patterns learned from history."""

    source = "patterns"

    def __init__(
        self,
        patterns: Mapping[str, CategoryPattern] | None = None,
        threshold: float = 10.0,
        model_version: str = MODEL_VERSION,
    ):
        self.patterns: Mapping[str, CategoryPattern] = patterns or {}
        self.threshold = threshold
        self.model_version = model_version

    def use(self, patterns: Mapping[str, CategoryPattern]) -> None:
        # Replaced, never mutated, so readers see one consistent map
        self.patterns = patterns

    def score(self, transaction: Transaction, pattern: CategoryPattern) -> tuple[float, list[str]]:
        description = transaction.description.lower()
        amount = abs(transaction.amount)
        score = 0.0
        reasons: list[str] = []

        keyword_matches = [keyword for keyword in pattern.keywords if keyword in description]
        if keyword_matches:
            score += len(keyword_matches) * KEYWORD_WEIGHT
            reasons.append(f"Keywords: {', '.join(keyword_matches)}")

        amount_match = next(
            (r for r in pattern.amount_ranges if r.min <= amount <= r.max),
            None,
        )
        if amount_match is not None and pattern.frequency > 0:
            score += (amount_match.frequency / pattern.frequency) * AMOUNT_WEIGHT
            reasons.append(
                f"Amount range: ${_format_amount(amount_match.min)}-${_format_amount(amount_match.max)}"
            )

        if transaction.merchant:
            merchant = transaction.merchant.lower()
            merchant_match = next((m for m in pattern.merchant_patterns if m in merchant), None)
            if merchant_match is not None:
                score += MERCHANT_WEIGHT
                reasons.append(f"Merchant: {merchant_match}")

        # Discount patterns that are inconsistent or built from few examples
        score = (score * pattern.confidence / 100) * min(pattern.frequency / 10, 1)
        return score, reasons

    def match_patterns(self, transaction: Transaction) -> list[Prediction]:
        predictions: list[Prediction] = []
        for category_id, pattern in self.patterns.items():
            score, reasons = self.score(transaction, pattern)
            if score > self.threshold:
                predictions.append(Prediction(
                    category_id=category_id,
                    category_name=pattern.category_name,
                    confidence=min(MAX_PATTERN_CONFIDENCE, score),
                    reasoning=", ".join(reasons),
                    model_version=self.model_version,
                    sources=["patterns"],
                ))
        return predictions

    async def classify(self, transaction: Transaction) -> StrategyOutcome:
        return StrategyOutcome.success(self.source, self.match_patterns(transaction))
