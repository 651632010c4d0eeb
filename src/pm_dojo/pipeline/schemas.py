"""
Pydantic schemas for LLM output and cached records.

Models are lenient on input: the extraction prompt allows the model to find
nothing, so every list defaults to empty and every text field may be missing.
Nulls inside lists and unknown extra keys are tolerated.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class InterviewType(str, Enum):
    BEHAVIORAL = "behavioral"
    PRODUCT_SENSE = "product_sense"
    PRODUCT_DESIGN = "product_design"
    RCA = "rca"
    GUESSTIMATE = "guesstimate"
    TECH = "tech"
    AI_ML = "ai_ml"
    STRATEGY = "strategy"
    METRICS = "metrics"


class Difficulty(str, Enum):
    MEDIUM = "medium"
    HARD = "hard"
    EXPERT = "expert"


FRAMEWORK_CATEGORIES = (
    "prioritization",
    "strategy",
    "growth",
    "metrics",
    "design",
    "execution",
    "leadership",
    "ai_ml",
)


def _drop_nulls(value: Any) -> Any:
    if isinstance(value, list):
        return [item for item in value if item is not None]
    return [] if value is None else value


class _Lenient(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ============================================================
# Intelligence
# ============================================================

class Decision(_Lenient):
    """A decision or action the guest described a company taking."""

    what: str = ""
    when: Optional[str] = None
    why: Optional[str] = None
    outcome: Optional[str] = None
    quote: Optional[str] = None


class Opinion(_Lenient):
    opinion: str = ""
    quote: Optional[str] = None


class Company(_Lenient):
    name: str
    is_guest_company: bool = False
    mention_context: Optional[str] = None
    decisions: List[Decision] = Field(default_factory=list)
    opinions: List[Opinion] = Field(default_factory=list)
    metrics_mentioned: List[str] = Field(default_factory=list)

    drop_null_items = field_validator("decisions", "opinions", "metrics_mentioned", mode="before")(_drop_nulls)

    @property
    def richness(self) -> int:
        """Number of decisions plus opinions; zero means nothing to ask about."""
        return len(self.decisions) + len(self.opinions)

    @property
    def is_rich(self) -> bool:
        return self.richness > 0


class Framework(_Lenient):
    name: str
    creator: Optional[str] = None
    category: Optional[str] = Field(
        default=None,
        description="prioritization|strategy|growth|metrics|design|execution|leadership|ai_ml",
    )
    explanation: Optional[str] = None
    when_to_use: Optional[str] = None
    example: Optional[str] = None
    quote: Optional[str] = None

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value: Any) -> Any:
        # Known categories are normalized; anything else is kept as free text
        if isinstance(value, str):
            lowered = value.strip().lower().replace("/", "_").replace(" ", "_")
            return lowered if lowered in FRAMEWORK_CATEGORIES else value.strip()
        return value


class QuestionSeed(_Lenient):
    type: Optional[str] = None
    company: Optional[str] = None
    situation: Optional[str] = None
    what_happened: Optional[str] = None
    usable_quotes: List[str] = Field(default_factory=list)

    drop_null_items = field_validator("usable_quotes", mode="before")(_drop_nulls)


class MemorableQuote(_Lenient):
    quote: str = ""
    topic: Optional[str] = None
    context: Optional[str] = None


class Intelligence(_Lenient):
    """Structured extraction from one transcript. One record per episode_id."""

    episode_id: str
    guest_name: str = ""
    episode_title: str = ""
    companies: List[Company] = Field(default_factory=list)
    frameworks: List[Framework] = Field(default_factory=list)
    question_seeds: List[QuestionSeed] = Field(default_factory=list)
    memorable_quotes: List[MemorableQuote] = Field(default_factory=list)
    extracted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    drop_null_items = field_validator(
        "companies", "frameworks", "question_seeds", "memorable_quotes", mode="before"
    )(_drop_nulls)

    def rich_companies(self) -> List[Company]:
        return [c for c in self.companies if c.is_rich]

    @property
    def is_empty(self) -> bool:
        return not (self.companies or self.frameworks or self.question_seeds or self.memorable_quotes)


# ============================================================
# Questions
# ============================================================

class ModelAnswer(_Lenient):
    what_happened: str = ""
    key_reasoning: str = ""
    key_quote: str = ""
    frameworks_mentioned: List[str] = Field(default_factory=list)
    full_answer: str = ""

    drop_null_items = field_validator("frameworks_mentioned", mode="before")(_drop_nulls)


class QuestionSource(_Lenient):
    episode_title: str = ""
    guest_name: str = ""


class Question(_Lenient):
    id: str
    type: InterviewType
    company: str
    difficulty: Difficulty
    suggested_time_minutes: int = 20
    situation_brief: str = ""
    question: str
    follow_ups: List[str] = Field(default_factory=list)
    model_answer: ModelAnswer = Field(default_factory=ModelAnswer)
    source: QuestionSource = Field(default_factory=QuestionSource)

    drop_null_items = field_validator("follow_ups", mode="before")(_drop_nulls)

    @field_validator("question")
    @classmethod
    def question_not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("question text is empty")
        return value.strip()


class StoredQuestion(BaseModel):
    """A QuestionBank row: the triple key plus the question document."""

    episode_id: str
    interview_type: InterviewType
    difficulty: Difficulty
    company_name: Optional[str] = None
    origin: str = "batch"
    created_at: Optional[str] = None
    question: Question


# ============================================================
# Answer evaluation
# ============================================================

class DimensionScore(_Lenient):
    score: float = 0
    feedback: str = ""


class QuoteToRemember(_Lenient):
    text: str = ""
    why_it_matters: str = ""


class AnswerEvaluation(_Lenient):
    overall_score: float = Field(ge=0, le=10)
    dimension_scores: Dict[str, DimensionScore] = Field(default_factory=dict)
    strengths: List[str] = Field(default_factory=list)
    improvements: List[str] = Field(default_factory=list)
    missed_from_podcast: List[str] = Field(default_factory=list)
    quote_to_remember: QuoteToRemember = Field(default_factory=QuoteToRemember)
    encouragement: str = ""
