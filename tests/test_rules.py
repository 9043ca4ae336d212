import pytest

from smart_categorizer.classifiers.rules import RuleClassifier
from smart_categorizer.models import Category, Transaction


@pytest.fixture
def rules(categories: list[Category]) -> RuleClassifier:
    return RuleClassifier(categories)


def test_rule_matches_coffee(rules: RuleClassifier) -> None:
    t = Transaction(description="Starbucks Coffee", amount=5.25)

    predictions = rules.match_rules(t)

    assert len(predictions) == 1
    assert predictions[0].category_name == "Food & Dining"
    assert predictions[0].category_id == "food"
    assert predictions[0].confidence == 75
    assert predictions[0].sources == ["rules"]
    assert "coffee" in predictions[0].reasoning


def test_transaction_can_match_several_rules(rules: RuleClassifier) -> None:
    t = Transaction(description="Uber Eats food delivery", amount=23.10)

    names = [p.category_name for p in rules.match_rules(t)]

    assert names == ["Food & Dining", "Transportation"]


def test_rule_needs_matching_category() -> None:
    rules = RuleClassifier([Category(id="misc", name="Miscellaneous")])
    t = Transaction(description="Payroll deposit ACME", amount=2500.0)

    assert rules.match_rules(t) == []


def test_no_rule_matches(rules: RuleClassifier) -> None:
    t = Transaction(description="Zxqv 4411", amount=12.0)
    assert rules.match_rules(t) == []


def test_fallback_prediction_uses_first_matching_rule(rules: RuleClassifier) -> None:
    t = Transaction(description="Walmart Supercenter", amount=80.0)

    prediction = rules.fallback_prediction(t)

    assert prediction.category_name == "Shopping"
    assert prediction.confidence == 60
    assert "AI unavailable" in prediction.reasoning


def test_fallback_prediction_without_rule_uses_default(rules: RuleClassifier) -> None:
    t = Transaction(description="Zxqv 4411", amount=12.0)

    prediction = rules.fallback_prediction(t)

    assert prediction.category_name == "Other"
    assert prediction.confidence == 30


def test_default_category_prefers_other_or_miscellaneous() -> None:
    rules = RuleClassifier([
        Category(id="a", name="Travel"),
        Category(id="b", name="Miscellaneous Expenses"),
    ])
    assert rules.default_category().id == "b"


def test_default_category_falls_back_to_first() -> None:
    rules = RuleClassifier([Category(id="a", name="Travel"), Category(id="b", name="Rent")])
    assert rules.default_prediction().category_id == "a"


@pytest.mark.anyio
async def test_classify_wraps_matches(rules: RuleClassifier) -> None:
    outcome = await rules.classify(Transaction(description="Netflix.com", amount=15.49))

    assert outcome.ok
    assert outcome.source == "rules"
    assert [p.category_name for p in outcome.predictions] == ["Entertainment"]
