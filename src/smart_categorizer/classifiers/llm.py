from __future__ import annotations

import json
import math
import os
from collections.abc import Sequence
from typing import Any

from openai import AsyncOpenAI

from smart_categorizer.core.settings import DEFAULT_OPENAI_MODEL, MODEL_VERSION
from smart_categorizer.domain.history import select_relevant_history
from smart_categorizer.logger import get_logger
from smart_categorizer.models import Category, Prediction, TrainingExample, Transaction

from .base import Classifier, StrategyOutcome
from .rules import RuleClassifier

logger = get_logger(__name__)

CATEGORIZE_INSTRUCTIONS = (
    "You are an expert financial advisor specialized in categorizing expenses and income. "
    "Analyze transactions and provide accurate category predictions with confidence scores."
)
KEYWORD_INSTRUCTIONS = (
    "You are a financial categorization expert. "
    "Analyze transaction data and extract the most relevant keywords."
)
MAX_REFINED_KEYWORDS = 10

_RESPONSE_TEMPLATE = """{
  "prediction": {
    "categoryId": "category_id_here",
    "categoryName": "category_name_here",
    "confidence": 95,
    "reasoning": "Brief explanation of why this category fits best"
  },
  "alternatives": [
    {
      "categoryId": "alt_category_id_1",
      "categoryName": "alt_category_name_1",
      "confidence": 75,
      "reasoning": "Why this could be an alternative"
    }
  ]
}"""


class ModelResponseError(ValueError):
    """The model answered, but not with a usable categorization payload."""


_DECODER = json.JSONDecoder()


def parse_model_response(text: str | None) -> dict[str, Any]:
    """Return the first JSON object embedded in a free-text model answer.

    Models tend to wrap JSON in prose or code fences, so every ``{`` is tried
    as the start of an object until one decodes. The object must carry a
    ``prediction`` mapping and an ``alternatives`` list.
    """
    if not text:
        raise ModelResponseError("Empty model response")

    payload: dict[str, Any] | None = None
    start = text.find("{")
    while start != -1:
        try:
            candidate, _ = _DECODER.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(candidate, dict):
            payload = candidate
            break
        start = text.find("{", start + 1)

    if payload is None:
        raise ModelResponseError("No JSON object found in model response")
    if not isinstance(payload.get("prediction"), dict):
        raise ModelResponseError("Model response is missing 'prediction'")
    if not isinstance(payload.get("alternatives"), list):
        raise ModelResponseError("Model response is missing 'alternatives'")
    return payload


class LLMClassifier(Classifier):
    source = "ai"

    def __init__(
        self,
        categories: Sequence[Category],
        history: Sequence[TrainingExample] = (),
        fallback: RuleClassifier | None = None,
        *,
        client: AsyncOpenAI | None = None,
        api_key: str | None = None,
        model: str = DEFAULT_OPENAI_MODEL,
        base_url: str | None = None,
        model_version: str = MODEL_VERSION,
    ):
        self.client = client or AsyncOpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url or os.getenv("OPENAI_BASE_URL") or None,
        )
        self.model = model
        self.categories = list(categories)
        # Kept by reference so history appended by the caller is visible here
        self.history = history
        self.fallback = fallback or RuleClassifier(self.categories, model_version=model_version)
        self.model_version = model_version

    def build_prompt(self, transaction: Transaction) -> str:
        categories_text = "\n".join(
            f"- {c.name} (id: {c.id}): {c.description or 'No description'}"
            for c in self.categories
        )

        similar = select_relevant_history(transaction, self.history)
        history_text = ""
        if similar:
            lines = "\n".join(
                f'- "{h.description}" -> {h.category_name or h.category_id}' for h in similar
            )
            history_text = f"\nSimilar past transactions:\n{lines}\n"

        date_text = transaction.date.date().isoformat() if transaction.date else "Unknown"

        return f"""
Analyze this transaction and categorize it accurately:

Transaction Details:
- Description: "{transaction.description}"
- Amount: {abs(transaction.amount):.2f} {transaction.currency}
- Merchant: {transaction.merchant or 'Unknown'}
- Date: {date_text}
- Account: {transaction.account or 'Unknown'}

Available Categories:
{categories_text}
{history_text}
Instructions:
1. Analyze the transaction description, amount, and merchant
2. Consider the user's past categorization patterns
3. Provide a primary category prediction with confidence score (0-100)
4. Include up to 2 alternative category suggestions
5. Explain your reasoning briefly

Use only the categories listed above. Return your response in this exact JSON format:
{_RESPONSE_TEMPLATE}
"""

    async def _complete(self, instructions: str, prompt: str, max_tokens: int) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": instructions},
                {"role": "user", "content": prompt},
            ],
            temperature=0.1,
            max_tokens=max_tokens,
        )
        text = self._extract_output_text(response)
        if text is None:
            raise ModelResponseError("Model returned no content")
        return text

    @staticmethod
    def _extract_output_text(response: object) -> str | None:
        choices = getattr(response, "choices", None)
        if not choices:
            return None
        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None)
        if isinstance(content, str) and content:
            return content
        return None

    def _resolve_category(self, entry: dict[str, Any]) -> Category | None:
        category_id = entry.get("categoryId") or entry.get("category_id")
        if category_id is not None:
            for category in self.categories:
                if category.id == str(category_id):
                    return category

        category_name = entry.get("categoryName") or entry.get("category_name")
        if isinstance(category_name, str):
            wanted = category_name.strip().lower()
            for category in self.categories:
                if category.name.lower() == wanted:
                    return category
        return None

    def _to_predictions(self, payload: dict[str, Any]) -> list[Prediction]:
        predictions: list[Prediction] = []
        seen: set[str] = set()
        for entry in [payload["prediction"], *payload["alternatives"]]:
            if not isinstance(entry, dict):
                continue
            category = self._resolve_category(entry)
            if category is None or category.id in seen:
                logger.debug("[LLM] Ignoring prediction entry: %s", entry)
                continue
            try:
                confidence = float(entry.get("confidence"))
            except (TypeError, ValueError):
                continue
            if not math.isfinite(confidence):
                continue
            seen.add(category.id)
            predictions.append(Prediction(
                category_id=category.id,
                category_name=category.name,
                confidence=confidence,
                reasoning=str(entry.get("reasoning") or "AI prediction"),
                model_version=self.model_version,
                sources=["ai"],
            ))
        return predictions

    async def classify(self, transaction: Transaction) -> StrategyOutcome:
        try:
            text = await self._complete(
                CATEGORIZE_INSTRUCTIONS,
                self.build_prompt(transaction),
                max_tokens=1000,
            )
            predictions = self._to_predictions(parse_model_response(text))
        except ModelResponseError as e:
            logger.warning(f"[LLM] Unusable response for '{transaction.description[:50]}': {e}")
            return StrategyOutcome.failure(self.source, str(e))
        except Exception as e:
            logger.error(f"[LLM] Request failed for '{transaction.description[:50]}': {e}")
            return StrategyOutcome.failure(self.source, f"{type(e).__name__}: {e}")

        if not predictions:
            logger.warning("[LLM] Response named no known category.")
            return StrategyOutcome.failure(self.source, "No known category in model response")
        return StrategyOutcome.success(self.source, predictions)

    async def ask_model(self, transaction: Transaction) -> list[Prediction]:
        """Model predictions, or a single rule-based guess if the model fails."""
        outcome = await self.classify(transaction)
        if outcome.ok:
            return outcome.predictions
        return [self.fallback.fallback_prediction(transaction)]

    async def refine_keywords(self, keywords: list[str], descriptions: list[str]) -> list[str]:
        if not keywords:
            return []

        sample = "\n".join(descriptions[:10])
        prompt = f"""
Given these transaction descriptions and extracted keywords, identify the most relevant keywords for categorization:

Sample descriptions:
{sample}

Extracted keywords:
{', '.join(keywords)}

Return only the most relevant keywords (maximum {MAX_REFINED_KEYWORDS}) that best identify this category of transactions. Consider:
1. Keywords that appear frequently and consistently
2. Keywords that are specific to this transaction type
3. Keywords that would help distinguish this category from others

Return as a comma-separated list of keywords only.
"""
        try:
            text = await self._complete(KEYWORD_INSTRUCTIONS, prompt, max_tokens=200)
        except Exception as e:
            logger.warning(f"[LLM] Keyword refinement failed, keeping frequency ranking: {e}")
            return keywords[:MAX_REFINED_KEYWORDS]

        refined = [k.strip().lower() for k in text.split(",") if k.strip()]
        return (refined or keywords)[:MAX_REFINED_KEYWORDS]
