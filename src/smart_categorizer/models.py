from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

PredictionSource = Literal["patterns", "ai", "rules"]
TransactionType = Literal["income", "expense"]


class Category(BaseModel):
    id: str
    name: str
    description: Optional[str] = None


class Transaction(BaseModel):
    description: str
    amount: float
    merchant: Optional[str] = None
    date: Optional[datetime] = None
    account: Optional[str] = None
    currency: str = "USD"


class TrainingExample(BaseModel):
    description: str
    amount: float
    date: datetime
    category_id: str
    category_name: Optional[str] = None
    merchant: Optional[str] = None
    account: Optional[str] = None
    transaction_type: TransactionType = "expense"


class AmountRange(BaseModel):
    min: float
    max: float
    frequency: int = 0


class CategoryPattern(BaseModel):
    category_id: str
    category_name: str
    keywords: list[str] = Field(default_factory=list)
    amount_ranges: list[AmountRange] = Field(default_factory=list)
    merchant_patterns: list[str] = Field(default_factory=list)
    confidence: float  # 0 to 100
    frequency: int  # number of training examples
    examples: list[str] = Field(default_factory=list)


class Prediction(BaseModel):
    category_id: str
    category_name: str
    confidence: float  # 0 to 100
    reasoning: str = ""
    model_version: Optional[str] = None
    sources: list[PredictionSource] = Field(default_factory=list)

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return max(0.0, min(100.0, value))


class CategorizationResult(BaseModel):
    prediction: Prediction
    alternatives: list[Prediction] = Field(default_factory=list)
    is_high_confidence: bool = False


class ModelStats(BaseModel):
    accuracy: float
    total_predictions: int
    correct_predictions: int
    last_trained: datetime
    version: str
    pattern_count: int


class ModelSnapshot(BaseModel):
    """Serializable state of a trained model, swapped wholesale on retrain."""
    patterns: dict[str, CategoryPattern] = Field(default_factory=dict)
    accuracy: float = 0.0
    total_predictions: int = 0
    correct_predictions: int = 0
    last_trained: datetime = Field(default_factory=datetime.now)
    version: str

    def stats(self) -> ModelStats:
        return ModelStats(
            accuracy=self.accuracy,
            total_predictions=self.total_predictions,
            correct_predictions=self.correct_predictions,
            last_trained=self.last_trained,
            version=self.version,
            pattern_count=len(self.patterns),
        )


class PredictionFeedback(BaseModel):
    predicted_category_id: str
    actual_category_id: str
    confidence: float
    sources: list[PredictionSource] = Field(default_factory=list)
    model_version: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def was_correct(self) -> bool:
        return self.predicted_category_id == self.actual_category_id


class FeedbackStats(BaseModel):
    total_predictions: int = 0
    correct_predictions: int = 0
    accuracy: float = 0.0
    high_confidence_predictions: int = 0
    high_confidence_correct: int = 0
    high_confidence_accuracy: float = 0.0


class TrendPoint(BaseModel):
    date: datetime
    confidence: float
    was_correct: bool


class PerformanceMetrics(BaseModel):
    average_confidence: float = 0.0
    high_confidence_rate: float = 0.0
    source_distribution: dict[str, int] = Field(default_factory=dict)
    accuracy_trend: list[TrendPoint] = Field(default_factory=list)
    total_predictions: int = 0
    recent_predictions: int = 0
