from __future__ import annotations

import math
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence

from smart_categorizer.domain.text import keyword_tokens, split_words
from smart_categorizer.logger import get_logger
from smart_categorizer.models import AmountRange, Category, CategoryPattern, TrainingExample

logger = get_logger(__name__)

KeywordRefiner = Callable[[list[str], list[str]], Awaitable[list[str]]]

CANDIDATE_KEYWORDS = 20
MAX_KEYWORDS = 10
MAX_MERCHANTS = 10
MAX_EXAMPLES = 5
MAX_PATTERN_CONFIDENCE = 80.0
SMALL_SAMPLE_CONFIDENCE = 60.0
SMALL_SAMPLE_SIZE = 3


def group_by_category(examples: Sequence[TrainingExample]) -> dict[str, list[TrainingExample]]:
    groups: dict[str, list[TrainingExample]] = {}
    for example in examples:
        groups.setdefault(example.category_id, []).append(example)
    return groups


def rank_keywords(descriptions: Sequence[str], limit: int = CANDIDATE_KEYWORDS) -> list[str]:
    counts: Counter[str] = Counter()
    for description in descriptions:
        counts.update(keyword_tokens(description))
    # most_common keeps first-seen order among equal counts
    return [word for word, _ in counts.most_common(limit)]


def analyze_amount_ranges(examples: Sequence[TrainingExample]) -> list[AmountRange]:
    amounts = sorted(abs(example.amount) for example in examples)
    if not amounts:
        return []

    n = len(amounts)
    q1 = amounts[math.floor(n * 0.25)]
    q2 = amounts[math.floor(n * 0.5)]
    q3 = amounts[math.floor(n * 0.75)]
    top = amounts[-1]

    ranges = [
        AmountRange(min=0, max=q1),
        AmountRange(min=q1, max=q2),
        AmountRange(min=q2, max=q3),
        AmountRange(min=q3, max=top),
    ]
    for amount in amounts:
        for amount_range in ranges:
            if amount_range.min <= amount <= amount_range.max:
                amount_range.frequency += 1
                break

    return [r for r in ranges if r.frequency > 0]


def extract_merchant_patterns(examples: Sequence[TrainingExample]) -> list[str]:
    merchants = Counter(
        example.merchant.lower() for example in examples if example.merchant
    )
    return [
        merchant for merchant, count in merchants.most_common()
        if count > 1
    ][:MAX_MERCHANTS]


def pattern_confidence(examples: Sequence[TrainingExample]) -> float:
    if len(examples) < SMALL_SAMPLE_SIZE:
        return SMALL_SAMPLE_CONFIDENCE

    words = split_words(" ".join(example.description for example in examples))
    if not words:
        return 0.0

    consistency_score = len(set(words)) / len(words) * 100
    frequency_score = min(len(examples) / 10, 1) * 100
    return min(MAX_PATTERN_CONFIDENCE, (consistency_score + frequency_score) / 2)


class PatternTrainer:
    """Builds one CategoryPattern per category present in the training data."""

    def __init__(self, refiner: KeywordRefiner | None = None):
        self.refiner = refiner

    async def extract_keywords(self, examples: Sequence[TrainingExample]) -> list[str]:
        descriptions = [example.description.lower() for example in examples]
        candidates = rank_keywords(descriptions)
        if self.refiner is None:
            return candidates[:MAX_KEYWORDS]
        try:
            refined = await self.refiner(candidates, descriptions)
        except Exception as e:
            logger.warning("[TRAIN] Keyword refinement failed: %s", e)
            return candidates[:MAX_KEYWORDS]
        return refined[:MAX_KEYWORDS]

    async def train_category(self, category: Category, examples: Sequence[TrainingExample]) -> CategoryPattern:
        return CategoryPattern(
            category_id=category.id,
            category_name=category.name,
            keywords=await self.extract_keywords(examples),
            amount_ranges=analyze_amount_ranges(examples),
            merchant_patterns=extract_merchant_patterns(examples),
            confidence=pattern_confidence(examples),
            frequency=len(examples),
            examples=[example.description for example in examples[:MAX_EXAMPLES]],
        )

    async def train(
        self,
        examples: Sequence[TrainingExample],
        categories: Sequence[Category],
    ) -> dict[str, CategoryPattern]:
        known = {category.id: category for category in categories}
        patterns: dict[str, CategoryPattern] = {}

        for category_id, group in group_by_category(examples).items():
            category = known.get(category_id)
            if category is None:
                logger.warning(
                    "[TRAIN] Skipping %d examples for unknown category id '%s'",
                    len(group),
                    category_id,
                )
                continue
            patterns[category_id] = await self.train_category(category, group)
            logger.debug(
                "[TRAIN] Pattern for '%s': %d examples, keywords=%s",
                category.name,
                len(group),
                patterns[category_id].keywords,
            )

        return patterns
