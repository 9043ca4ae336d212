import os

import pytest

from smart_categorizer.core.settings import EngineSettings
from smart_categorizer.manager import CategorizationEngine
from smart_categorizer.models import Category, CategoryPattern
from smart_categorizer.services.model_store import ModelStore


@pytest.fixture
def store(tmp_path) -> ModelStore:
    return ModelStore(str(tmp_path / "models"))


def test_path_is_sanitized(store: ModelStore) -> None:
    path = store.path_for("../alice@example.com")
    assert os.path.basename(path) == "model_.._alice_example.com.json"
    assert os.path.dirname(path) == store.data_dir


def test_save_and_load(
    store: ModelStore, categories: list[Category], settings: EngineSettings
) -> None:
    engine = CategorizationEngine(categories, settings=settings)
    engine.import_model(engine.model.model_copy(update={
        "patterns": {
            "food": CategoryPattern(
                category_id="food",
                category_name="Food & Dining",
                keywords=["latte"],
                confidence=60,
                frequency=2,
            ),
        },
    }).model_dump_json())

    store.save("alice", engine)
    assert store.exists("alice")

    restored = CategorizationEngine(categories, settings=settings)
    assert store.load("alice", restored)
    assert restored.get_model_stats() == engine.get_model_stats()


def test_load_missing_model(
    store: ModelStore, categories: list[Category], settings: EngineSettings
) -> None:
    engine = CategorizationEngine(categories, settings=settings)

    assert store.load("nobody", engine) is False
    assert store.delete("nobody") is False


def test_delete(store: ModelStore, categories: list[Category], settings: EngineSettings) -> None:
    engine = CategorizationEngine(categories, settings=settings)
    store.save("bob", engine)

    assert store.delete("bob")
    assert not store.exists("bob")
