from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from smart_categorizer.core.settings import MODEL_VERSION
from smart_categorizer.models import Category, Prediction, Transaction

from .base import Classifier, StrategyOutcome

FALLBACK_CONFIDENCE = 60.0
DEFAULT_CONFIDENCE = 30.0
DEFAULT_CATEGORY_MARKERS = ("other", "miscellaneous")


@dataclass(frozen=True)
class KeywordRule:
    keywords: tuple[str, ...]
    category: str
    confidence: float


RULES: tuple[KeywordRule, ...] = (
    KeywordRule(
        ("grocery", "supermarket", "food", "restaurant", "dining", "coffee"),
        "Food & Dining",
        75,
    ),
    KeywordRule(("gas", "fuel", "uber", "lyft", "taxi", "transport"), "Transportation", 75),
    KeywordRule(("amazon", "shopping", "store", "retail", "walmart", "target"), "Shopping", 70),
    KeywordRule(("netflix", "spotify", "entertainment", "movie", "streaming"), "Entertainment", 80),
    KeywordRule(
        ("electric", "utility", "phone", "internet", "bill", "cable"),
        "Bills & Utilities",
        85,
    ),
    KeywordRule(("medical", "doctor", "pharmacy", "health", "hospital"), "Healthcare", 80),
    KeywordRule(("salary", "payroll", "wage", "income", "dividend"), "Salary", 90),
)


class RuleClassifier(Classifier):
    """Static keyword table; also the last-resort fallback policy."""

    source = "rules"

    def __init__(
        self,
        categories: Sequence[Category],
        rules: Sequence[KeywordRule] = RULES,
        model_version: str = MODEL_VERSION,
    ):
        self.categories = list(categories)
        self.rules = tuple(rules)
        self.model_version = model_version
        self._by_name = {category.name: category for category in self.categories}

    def _matches(self, transaction: Transaction) -> list[tuple[KeywordRule, Category, list[str]]]:
        description = transaction.description.lower()
        matched = []
        for rule in self.rules:
            hits = [keyword for keyword in rule.keywords if keyword in description]
            if not hits:
                continue
            category = self._by_name.get(rule.category)
            if category is not None:
                matched.append((rule, category, hits))
        return matched

    def match_rules(self, transaction: Transaction) -> list[Prediction]:
        return [
            Prediction(
                category_id=category.id,
                category_name=category.name,
                confidence=rule.confidence,
                reasoning=f"Rule-based match: {', '.join(hits)}",
                model_version=self.model_version,
                sources=["rules"],
            )
            for rule, category, hits in self._matches(transaction)
        ]

    async def classify(self, transaction: Transaction) -> StrategyOutcome:
        return StrategyOutcome.success(self.source, self.match_rules(transaction))

    def default_category(self) -> Category:
        for category in self.categories:
            name = category.name.lower()
            if any(marker in name for marker in DEFAULT_CATEGORY_MARKERS):
                return category
        return self.categories[0]

    def default_prediction(self, reasoning: str = "Default categorization (no confident match)") -> Prediction:
        category = self.default_category()
        return Prediction(
            category_id=category.id,
            category_name=category.name,
            confidence=DEFAULT_CONFIDENCE,
            reasoning=reasoning,
            model_version=self.model_version,
            sources=["rules"],
        )

    def fallback_prediction(self, transaction: Transaction) -> Prediction:
        """Single low-confidence guess used when the model is unavailable."""
        matched = self._matches(transaction)
        if not matched:
            return self.default_prediction("Default categorization (AI unavailable)")
        _, category, _ = matched[0]
        return Prediction(
            category_id=category.id,
            category_name=category.name,
            confidence=FALLBACK_CONFIDENCE,
            reasoning="Rule-based categorization (AI unavailable)",
            model_version=self.model_version,
            sources=["rules"],
        )
