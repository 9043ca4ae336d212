from __future__ import annotations

import asyncio
import math
import os
from collections.abc import Sequence
from datetime import datetime

from openai import AsyncOpenAI
from pydantic import ValidationError

from smart_categorizer.classifiers.base import StrategyOutcome
from smart_categorizer.classifiers.llm import LLMClassifier
from smart_categorizer.classifiers.patterns import PatternMatcher
from smart_categorizer.classifiers.rules import RuleClassifier
from smart_categorizer.core.settings import MODEL_VERSION, EngineSettings
from smart_categorizer.logger import get_logger
from smart_categorizer.models import (
    CategorizationResult,
    Category,
    ModelSnapshot,
    ModelStats,
    Prediction,
    TrainingExample,
    Transaction,
)
from smart_categorizer.services.blending import PredictionBlender
from smart_categorizer.services.feedback import FeedbackLog
from smart_categorizer.services.training import PatternTrainer

logger = get_logger(__name__)

MAX_TEST_SIZE = 50
TEST_FRACTION = 0.2


class CategorizationEngine:
    """Per-user categorizer blending pattern, LLM and rule predictions."""

    def __init__(
        self,
        categories: Sequence[Category],
        training_data: Sequence[TrainingExample] | None = None,
        *,
        llm_client: AsyncOpenAI | None = None,
        settings: EngineSettings | None = None,
    ):
        if not categories:
            raise ValueError("CategorizationEngine needs at least one category")

        self.settings = settings or EngineSettings.from_env()
        self.categories = list(categories)
        self.training_data: list[TrainingExample] = list(training_data or [])
        self.model = ModelSnapshot(version=MODEL_VERSION)

        # 1. Patterns learned from history (empty until trained)
        self.patterns = PatternMatcher(threshold=self.settings.pattern_threshold)

        # 2. Static rule table, also the last-resort fallback
        self.rules = RuleClassifier(self.categories)

        # 3. LLM (optional)
        if llm_client is not None:
            self.llm: LLMClassifier | None = LLMClassifier(
                self.categories,
                self.training_data,
                fallback=self.rules,
                client=llm_client,
                model=self.settings.llm_model,
            )
            logger.info(f"LLM strategy enabled: model={self.settings.llm_model}")
        else:
            self.llm = None
            logger.info("No LLM client configured. LLM strategy disabled.")

        self.trainer = PatternTrainer(refiner=self.llm.refine_keywords if self.llm else None)
        self.blender = PredictionBlender(
            agreement_boost=self.settings.agreement_boost,
            confidence_ceiling=self.settings.confidence_ceiling,
            top_n=self.settings.top_n,
            high_confidence_threshold=self.settings.high_confidence_threshold,
        )
        self.feedback = FeedbackLog(high_confidence=self.settings.high_confidence_threshold)

    async def predict_category(
        self, transaction: Transaction, *, include_llm: bool = True
    ) -> list[Prediction]:
        outcomes: list[StrategyOutcome] = [await self.patterns.classify(transaction)]
        if include_llm and self.llm is not None:
            outcomes.append(await self.llm.classify(transaction))
        outcomes.append(await self.rules.classify(transaction))

        for outcome in outcomes:
            logger.debug(
                "[PREDICT] %s -> %s",
                outcome.source,
                [(p.category_name, round(p.confidence, 1)) for p in outcome.predictions]
                if outcome.ok else f"error: {outcome.error.message}",
            )

        return self.blender.combine_outcomes(outcomes)

    async def categorize_transaction(self, transaction: Transaction) -> CategorizationResult:
        try:
            predictions = await self.predict_category(transaction)
        except Exception:
            logger.exception(f"[PREDICT] Prediction failed for '{transaction.description[:50]}'")
            predictions = [self.rules.fallback_prediction(transaction)]

        if not predictions:
            logger.debug(f"[PREDICT] No strategy matched '{transaction.description[:50]}', using default.")
            predictions = [self.rules.default_prediction()]

        return CategorizationResult(
            prediction=predictions[0],
            alternatives=predictions[1:],
            is_high_confidence=self.blender.is_high_confidence(predictions),
        )

    async def batch_categorize_transactions(
        self, transactions: Sequence[Transaction]
    ) -> list[CategorizationResult]:
        results: list[CategorizationResult] = []
        size = self.settings.batch_size
        total = len(transactions)

        for start in range(0, total, size):
            chunk = transactions[start:start + size]
            results.extend(await asyncio.gather(
                *(self.categorize_transaction(tx) for tx in chunk)
            ))
            logger.debug("[BATCH] Categorized %d/%d transactions", len(results), total)
            if start + size < total and self.settings.batch_delay > 0:
                await asyncio.sleep(self.settings.batch_delay)

        return results

    async def train_model(self) -> ModelStats:
        logger.info("[TRAIN] Training with %d examples", len(self.training_data))

        patterns = await self.trainer.train(self.training_data, self.categories)
        snapshot = ModelSnapshot(patterns=patterns, version=MODEL_VERSION)
        self._evaluate(snapshot)
        snapshot.last_trained = datetime.now()
        self._use(snapshot)

        logger.info(
            "[TRAIN] Complete! Patterns: %d, accuracy: %.2f%%",
            len(snapshot.patterns),
            snapshot.accuracy,
        )
        return snapshot.stats()

    def _use(self, snapshot: ModelSnapshot) -> None:
        self.model = snapshot
        self.patterns.use(snapshot.patterns)

    def _evaluate(self, snapshot: ModelSnapshot) -> None:
        # Re-predict the tail of the history with the offline strategies
        if len(self.training_data) < self.settings.min_training_examples:
            snapshot.accuracy = self.settings.default_accuracy
            snapshot.total_predictions = 0
            snapshot.correct_predictions = 0
            return

        test_size = max(1, min(MAX_TEST_SIZE, math.floor(len(self.training_data) * TEST_FRACTION)))
        test_data = self.training_data[-test_size:]
        matcher = PatternMatcher(snapshot.patterns, threshold=self.settings.pattern_threshold)

        correct = 0
        for example in test_data:
            transaction = Transaction(
                description=example.description,
                amount=example.amount,
                merchant=example.merchant,
                date=example.date,
                account=example.account,
            )
            predictions = self.blender.combine([
                matcher.match_patterns(transaction),
                self.rules.match_rules(transaction),
            ])
            if predictions and predictions[0].category_id == example.category_id:
                correct += 1

        snapshot.accuracy = correct / test_size * 100
        snapshot.total_predictions = test_size
        snapshot.correct_predictions = correct

    async def add_training_data(self, examples: Sequence[TrainingExample]) -> ModelStats:
        # Extend in place; the LLM strategy holds a reference to this list
        self.training_data.extend(examples)
        if len(examples) >= self.settings.retrain_threshold:
            return await self.train_model()
        return self.get_model_stats()

    def get_model_stats(self) -> ModelStats:
        return self.model.stats()

    def export_model(self) -> str:
        return self.model.model_dump_json(indent=2)

    def import_model(self, data: str) -> bool:
        try:
            snapshot = ModelSnapshot.model_validate_json(data)
        except ValidationError as e:
            logger.error(f"[MODEL] Error importing model: {e}")
            return False

        known = {c.id for c in self.categories}
        unknown = sorted(set(snapshot.patterns) - known)
        if unknown:
            logger.warning("[MODEL] Dropping imported patterns for unknown categories: %s", unknown)
            snapshot.patterns = {
                category_id: pattern
                for category_id, pattern in snapshot.patterns.items()
                if category_id in known
            }
        self._use(snapshot)
        logger.info("[MODEL] Imported model with %d patterns", len(snapshot.patterns))
        return True

    def record_feedback(
        self,
        result: CategorizationResult | Prediction,
        actual_category_id: str,
    ) -> None:
        prediction = result.prediction if isinstance(result, CategorizationResult) else result
        self.feedback.record(prediction, actual_category_id)


async def create_engine(
    categories: Sequence[Category],
    training_data: Sequence[TrainingExample] | None = None,
    settings: EngineSettings | None = None,
) -> CategorizationEngine:
    settings = settings or EngineSettings.from_env()

    llm_client = None
    api_key = os.getenv("OPENAI_API_KEY")
    if api_key:
        base_url = os.getenv("OPENAI_BASE_URL")
        llm_client = AsyncOpenAI(api_key=api_key, base_url=base_url or None)
        logger.info(f"OpenAI client configured: base_url={base_url or 'default'}")
    else:
        logger.warning("OPENAI_API_KEY not found. Categorization will use patterns and rules only.")

    engine = CategorizationEngine(
        categories,
        training_data,
        llm_client=llm_client,
        settings=settings,
    )
    if len(engine.training_data) >= settings.min_training_examples:
        await engine.train_model()
    return engine
