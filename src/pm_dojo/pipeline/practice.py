"""
Serve-time practice operations.

- next_question: QuestionBank fast path (no LLM call), on-demand generation
  as the fallback when nothing in the bank matches
- evaluate_answer: score a user's answer against the podcast-grounded model answer

Interactive calls make one attempt and let taxonomy errors propagate.
"""

import logging
import random
from typing import Iterable, List, Optional, Tuple

from pydantic import ValidationError

from src.pm_dojo.core import config
from src.pm_dojo.core.metrics import increment
from src.pm_dojo.pipeline import sanitizer
from src.pm_dojo.pipeline.assembler import ContextBundle, build_context_bundle, request_question
from src.pm_dojo.pipeline.errors import EmptyResponse, MalformedResponse
from src.pm_dojo.pipeline.extraction.question_prompt import build_evaluation_messages
from src.pm_dojo.pipeline.llm_client import ModelGateway
from src.pm_dojo.pipeline.schemas import AnswerEvaluation, Intelligence, Question
from src.pm_dojo.storage.intelligence_cache import IntelligenceCache
from src.pm_dojo.storage.question_bank import QuestionBank

logger = logging.getLogger(__name__)


class NoPracticeContext(LookupError):
    """No cached company has enough context to ground a question."""


def build_company_contexts(records: Iterable[Intelligence], company: Optional[str] = None) -> List[ContextBundle]:
    """
    A context bundle for every rich company in every record, optionally
    restricted to one company name (case-insensitive).
    """
    wanted = company.strip().lower() if company else None
    contexts = []
    for record in records:
        for candidate in record.companies:
            if wanted and candidate.name.strip().lower() != wanted:
                continue
            if not candidate.is_rich:
                continue
            bundle = build_context_bundle(record, candidate)
            if not bundle.company_context:
                bundle.company_context = f"{candidate.name} as discussed by {record.guest_name}"
            contexts.append(bundle)
    return contexts


def pick_company_context(records: Iterable[Intelligence], company: Optional[str] = None) -> ContextBundle:
    contexts = build_company_contexts(records, company)
    if not contexts:
        target = f" for {company}" if company else ""
        raise NoPracticeContext(f"No cached intelligence with decisions or opinions{target}")
    return random.choice(contexts)


def generate_question(
    gateway: ModelGateway,
    interview_type: str,
    difficulty: str,
    context: ContextBundle,
    caller: Optional[str] = None,
    bank: Optional[QuestionBank] = None,
) -> Question:
    """
    On-demand single question. Stored in the bank when its triple is free.

    Raises:
        AssemblyFailed: kind taken from the underlying gateway/sanitizer error.
    """
    question = request_question(
        gateway,
        context,
        interview_type,
        difficulty,
        max_tokens=config.ON_DEMAND_QUESTION_MAX_TOKENS,
        on_demand=True,
        caller=caller,
    )
    increment("questions_generated", labels={"origin": "on_demand"})
    if bank is not None and bank.insert(context.episode_id, question, origin="on_demand"):
        logger.info(f"✓ Stored on-demand question {question.id}")
    return question


def next_question(
    bank: QuestionBank,
    cache: IntelligenceCache,
    gateway: ModelGateway,
    interview_type: str,
    difficulty: str,
    company: Optional[str] = None,
    caller: Optional[str] = None,
) -> Tuple[Question, str]:
    """
    (question, origin) where origin is "bank" or "generated".

    Raises:
        NoPracticeContext: bank miss and no cached company to ground a new question.
        AssemblyFailed: the fallback generation failed.
    """
    stored = bank.random_match(interview_type, difficulty, company)
    if stored is not None:
        increment("practice_questions_served", labels={"origin": "bank"})
        return stored.question, "bank"

    logger.info(f"Bank miss for {interview_type}/{difficulty}/{company or '*'}; generating on demand")
    context = pick_company_context(cache.list_all(), company)
    question = generate_question(gateway, interview_type, difficulty, context, caller=caller, bank=bank)
    increment("practice_questions_served", labels={"origin": "generated"})
    return question, "generated"


def evaluate_answer(
    gateway: ModelGateway,
    question: Question,
    user_answer: str,
    caller: Optional[str] = None,
) -> AnswerEvaluation:
    """
    Score an answer against the question's model answer.

    Raises:
        ValueError: blank answer.
        NoCredential / GatewayError subclasses: from the gateway.
        EmptyResponse / MalformedResponse: unusable model output.
    """
    if not user_answer or not user_answer.strip():
        raise ValueError("Answer is empty")

    raw_text = gateway.complete(
        build_evaluation_messages(question, user_answer.strip()),
        config.EVALUATION_MAX_TOKENS,
        caller=caller,
    )
    if not raw_text or not raw_text.strip():
        raise EmptyResponse()

    data = sanitizer.parse(raw_text)
    try:
        evaluation = AnswerEvaluation.model_validate(data)
    except ValidationError as e:
        raise MalformedResponse(f"Response did not match the evaluation schema: {e}", excerpt=raw_text[:2000]) from e

    increment("answers_evaluated")
    return evaluation
