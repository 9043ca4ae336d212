from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Any

from rapidfuzz import fuzz

from smart_categorizer.domain.text import extract_merchant, split_words
from smart_categorizer.models import TrainingExample, Transaction

MAX_RELEVANT_HISTORY = 5


def parse_date(value: str | datetime | None) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return datetime.now()
    return datetime.now()


def _nested_name(row: dict[str, Any], key: str) -> str | None:
    nested = row.get(key)
    if isinstance(nested, dict):
        name = nested.get("name")
        if name:
            return str(name)
    return None


def build_training_example(row: dict[str, Any]) -> TrainingExample | None:
    """Convert a stored, labeled transaction row into a training example.

    Rows without a category id are not usable for training and yield None.
    """
    category_id = row.get("category_id") or row.get("categoryId")
    if not category_id:
        return None

    description = str(row.get("description") or "")
    try:
        amount = abs(float(row.get("amount", 0.0)))
    except (TypeError, ValueError):
        amount = 0.0

    merchant = row.get("merchant") or extract_merchant(description)
    transaction_type = row.get("transaction_type") or row.get("transactionType")
    if transaction_type not in ("income", "expense"):
        transaction_type = "expense"

    return TrainingExample(
        description=description,
        amount=amount,
        merchant=merchant or None,
        date=parse_date(row.get("transaction_date") or row.get("date")),
        category_id=str(category_id),
        category_name=_nested_name(row, "categories") or row.get("category_name"),
        account=_nested_name(row, "accounts") or row.get("account"),
        transaction_type=transaction_type,
    )


def build_training_examples(rows: Iterable[dict[str, Any]]) -> list[TrainingExample]:
    examples: list[TrainingExample] = []
    for row in rows:
        example = build_training_example(row)
        if example is not None:
            examples.append(example)
    return examples


def select_relevant_history(
    transaction: Transaction,
    history: Sequence[TrainingExample],
    limit: int = MAX_RELEVANT_HISTORY,
) -> list[TrainingExample]:
    """Past examples sharing a description keyword, most similar first."""
    keywords = [word for word in split_words(transaction.description) if len(word) > 2]
    if not keywords:
        return []

    candidates = [
        example for example in history
        if any(keyword in example.description.lower() for keyword in keywords)
    ]
    # sorted() is stable, so equally similar rows keep history order
    ranked = sorted(
        candidates,
        key=lambda example: fuzz.token_set_ratio(
            transaction.description.lower(), example.description.lower()
        ),
        reverse=True,
    )
    return ranked[:limit]
