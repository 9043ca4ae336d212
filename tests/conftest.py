from unittest.mock import AsyncMock, MagicMock

import pytest

from smart_categorizer.core.settings import EngineSettings
from smart_categorizer.models import Category


@pytest.fixture
def categories() -> list[Category]:
    return [
        Category(id="food", name="Food & Dining", description="Groceries, restaurants and coffee"),
        Category(id="transport", name="Transportation", description="Fuel, rides and transit"),
        Category(id="shopping", name="Shopping"),
        Category(id="entertainment", name="Entertainment"),
        Category(id="bills", name="Bills & Utilities"),
        Category(id="health", name="Healthcare"),
        Category(id="salary", name="Salary"),
        Category(id="other", name="Other"),
    ]


@pytest.fixture
def settings() -> EngineSettings:
    return EngineSettings(batch_delay=0.0)


@pytest.fixture
def llm_client() -> MagicMock:
    """Stand-in for AsyncOpenAI; tests set the create() result or side effect."""
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    return client


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"
