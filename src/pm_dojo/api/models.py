"""
Pydantic response/request models for the PM Dojo API.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from src.pm_dojo.pipeline.aggregation import CompanyProfile, FrameworkProfile
from src.pm_dojo.pipeline.schemas import AnswerEvaluation, Question, StoredQuestion


# ============================================================
# Questions
# ============================================================

class QuestionListResponse(BaseModel):
    count: int
    questions: List[StoredQuestion]


class NextQuestionResponse(BaseModel):
    origin: str = Field(..., description="bank | generated")
    question: Question


class EvaluateRequest(BaseModel):
    """Either a bank question id or a full question document, plus the answer."""
    question_id: Optional[str] = None
    question: Optional[Question] = None
    answer: str = Field(..., min_length=1)


class EvaluateResponse(BaseModel):
    question_id: str
    evaluation: AnswerEvaluation


# ============================================================
# Intelligence
# ============================================================

class CompaniesResponse(BaseModel):
    count: int
    companies: List[CompanyProfile]


class FrameworksResponse(BaseModel):
    count: int
    frameworks: List[FrameworkProfile]


class StatsResponse(BaseModel):
    episodes_cached: int = 0
    questions_total: int = 0
    questions_by_type: Dict[str, int] = Field(default_factory=dict)


class ErrorResponse(BaseModel):
    error: str
    kind: Optional[str] = None
