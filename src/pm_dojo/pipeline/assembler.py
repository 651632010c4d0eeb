"""
Cached Intelligence -> interview questions in the QuestionBank.

For each record the richest company (most decisions + opinions) is turned
into a compact context bundle, and one question is requested per
(interview type x difficulty) pair that is not already in the bank.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from pydantic import ValidationError

from src.pm_dojo.core import config
from src.pm_dojo.core.logging_utils import log_banner
from src.pm_dojo.core.metrics import increment
from src.pm_dojo.core.models import triple_key
from src.pm_dojo.core.utils import CancelToken
from src.pm_dojo.pipeline import sanitizer
from src.pm_dojo.pipeline.errors import AssemblyFailed, DojoError, EmptyResponse, MalformedResponse, is_systemic
from src.pm_dojo.pipeline.extraction.question_prompt import build_question_messages
from src.pm_dojo.pipeline.llm_client import ModelGateway
from src.pm_dojo.pipeline.schemas import Company, Decision, Difficulty, Intelligence, InterviewType, Question
from src.pm_dojo.storage.question_bank import QuestionBank

logger = logging.getLogger(__name__)

DEFAULT_TYPES = ("behavioral", "product_sense", "product_design", "rca", "strategy", "metrics")
DEFAULT_DIFFICULTIES = ("medium", "hard")

_SUGGESTED_TIME = {"hard": 30, "expert": 45}

INTERVIEW_TYPES = tuple(item.value for item in InterviewType)
DIFFICULTIES = tuple(item.value for item in Difficulty)


def check_pairs(types: Sequence[str], difficulties: Sequence[str]) -> None:
    """Raise ValueError naming any interview type or difficulty the bank does not accept."""
    bad_types = [t for t in types if t not in INTERVIEW_TYPES]
    bad_difficulties = [d for d in difficulties if d not in DIFFICULTIES]
    if bad_types:
        raise ValueError(f"Unknown interview type(s): {', '.join(bad_types)}")
    if bad_difficulties:
        raise ValueError(f"Unknown difficulty(ies): {', '.join(bad_difficulties)}")


@dataclass
class ContextBundle:
    """What a question prompt knows about one company in one episode."""
    episode_id: str
    guest_name: str
    episode_title: str
    company_name: str
    company_context: Optional[str]
    decisions: List[str] = field(default_factory=list)
    quotes: List[str] = field(default_factory=list)


@dataclass
class AssemblyResult:
    generated: int = 0
    questions: List[Question] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)  # [{"id": triple, "reason": str}]
    skipped_existing: int = 0
    skipped_records: List[str] = field(default_factory=list)  # episodes with no rich company
    stopped_reason: Optional[str] = None


def format_decision(decision: Decision) -> str:
    """'<what> (Why: <why>) → <outcome>' with absent clauses omitted."""
    text = decision.what
    if decision.why:
        text += f" (Why: {decision.why})"
    if decision.outcome:
        text += f" → {decision.outcome}"
    return text


def select_richest_company(companies: Sequence[Company]) -> Optional[Company]:
    """
    Company with the most decisions + opinions; ties go to the earliest.
    None when no company has any.
    """
    richest = None
    for company in companies:
        if not company.is_rich:
            continue
        if richest is None or company.richness > richest.richness:
            richest = company
    return richest


def build_context_bundle(
    record: Intelligence,
    company: Company,
    max_decisions: int = config.CONTEXT_MAX_DECISIONS,
    max_quotes: int = config.CONTEXT_MAX_QUOTES,
) -> ContextBundle:
    decisions = [format_decision(d) for d in company.decisions][:max_decisions]
    quotes = [d.quote for d in company.decisions if d.quote]
    quotes += [o.quote for o in company.opinions if o.quote]
    return ContextBundle(
        episode_id=record.episode_id,
        guest_name=record.guest_name,
        episode_title=record.episode_title,
        company_name=company.name,
        company_context=company.mention_context,
        decisions=decisions,
        quotes=quotes[:max_quotes],
    )


def suggested_time_minutes(difficulty: str) -> int:
    return _SUGGESTED_TIME.get(difficulty, 20)


def question_id(episode_id: str, interview_type: str, difficulty: str) -> str:
    return f"{episode_id}-{interview_type}-{difficulty}"


def request_question(
    gateway: ModelGateway,
    bundle: ContextBundle,
    interview_type: str,
    difficulty: str,
    *,
    max_tokens: int = config.QUESTION_MAX_TOKENS,
    on_demand: bool = False,
    caller: Optional[str] = None,
) -> Question:
    """
    One generation call for one triple. No retries.

    The triple fields (id, type, difficulty, company) and the source are
    taken from the request, never from the model output.

    Raises:
        AssemblyFailed: wrapping the gateway, sanitizer or validation error.
    """
    key = triple_key(bundle.episode_id, interview_type, difficulty)
    qid = question_id(bundle.episode_id, interview_type, difficulty)
    messages = build_question_messages(
        question_id=qid,
        interview_type=interview_type,
        difficulty=difficulty,
        suggested_time=suggested_time_minutes(difficulty),
        company_name=bundle.company_name,
        company_context=bundle.company_context,
        decisions=bundle.decisions,
        quotes=bundle.quotes,
        guest_name=bundle.guest_name,
        episode_title=bundle.episode_title,
        on_demand=on_demand,
    )

    try:
        raw_text = gateway.complete(messages, max_tokens, caller=caller)
        if not raw_text or not raw_text.strip():
            raise EmptyResponse()
        data = sanitizer.parse(raw_text)
    except DojoError as e:
        raise AssemblyFailed(key, str(e), e) from e

    data.update(
        id=qid,
        type=interview_type,
        difficulty=difficulty,
        company=bundle.company_name,
        source={"episode_title": bundle.episode_title, "guest_name": bundle.guest_name},
    )
    data.setdefault("suggested_time_minutes", suggested_time_minutes(difficulty))
    try:
        return Question.model_validate(data)
    except ValidationError as e:
        cause = MalformedResponse(f"Response did not match the question schema: {e}", excerpt=(raw_text or "")[:2000])
        raise AssemblyFailed(key, str(cause), cause) from e


class QuestionAssembler:
    """
    Batch question generation over cached intelligence.

    Handles:
    - Richest-company selection and context bundling per record
    - Skipping triples already in the bank (one existence query per run)
    - Stopping the run on systemic errors (rate limit, billing, credentials)
    """

    def __init__(
        self,
        gateway: ModelGateway,
        bank: QuestionBank,
        call_delay: float = config.QUESTION_CALL_DELAY,
        caller: Optional[str] = None,
    ):
        self.gateway = gateway
        self.bank = bank
        self.call_delay = call_delay
        self.caller = caller

    def assemble(
        self,
        records: Iterable[Intelligence],
        types: Optional[Sequence[str]] = None,
        difficulties: Optional[Sequence[str]] = None,
        max_questions: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
    ) -> AssemblyResult:
        """
        Generate and store questions for every missing triple.

        Never raises for per-triple failures; see AssemblyResult.errors and
        AssemblyResult.stopped_reason.
        Raises ValueError for an unknown interview type or difficulty
        before any model call.
        """
        records = list(records)
        types = list(types or DEFAULT_TYPES)
        difficulties = list(difficulties or DEFAULT_DIFFICULTIES)
        check_pairs(types, difficulties)
        result = AssemblyResult()

        existing = self.bank.existing_triples(r.episode_id for r in records)
        logger.info(
            f"Assembling questions for {len(records)} episodes "
            f"({len(types)} types x {len(difficulties)} difficulties, {len(existing)} already in bank)"
        )

        calls_made = 0
        for record in records:
            company = select_richest_company(record.companies)
            if company is None:
                logger.info(f"⊘ {record.episode_id}: no company with decisions or opinions, skipping")
                result.skipped_records.append(record.episode_id)
                continue
            bundle = build_context_bundle(record, company)

            for interview_type in types:
                for difficulty in difficulties:
                    if max_questions is not None and result.generated >= max_questions:
                        result.stopped_reason = f"reached max_questions={max_questions}"
                        return self._finish(result)
                    if cancel is not None and cancel.cancelled:
                        result.stopped_reason = cancel.reason()
                        return self._finish(result)

                    key = triple_key(record.episode_id, interview_type, difficulty)
                    if key in existing:
                        result.skipped_existing += 1
                        continue

                    if calls_made and self.call_delay > 0:
                        time.sleep(self.call_delay)
                    calls_made += 1

                    try:
                        question = request_question(
                            self.gateway, bundle, interview_type, difficulty, caller=self.caller
                        )
                    except AssemblyFailed as e:
                        increment("questions_failed", labels={"kind": e.kind.value})
                        if is_systemic(e):
                            logger.error(f"✗ Stopping assembly at {key}: {e.reason}")
                            result.stopped_reason = f"{e.kind.value}: {e.reason}"
                            return self._finish(result)
                        logger.error(f"✗ {key}: {e.reason}")
                        result.errors.append({"id": key, "reason": e.reason})
                        continue

                    existing.add(key)
                    if not self.bank.insert(record.episode_id, question, origin="batch"):
                        result.skipped_existing += 1
                        continue

                    result.generated += 1
                    result.questions.append(question)
                    increment("questions_generated")
                    logger.info(f"✓ Generated: {key}")

        return self._finish(result)

    def _finish(self, result: AssemblyResult) -> AssemblyResult:
        log_banner(
            logger,
            "Question assembly complete",
            {
                "Generated": result.generated,
                "Skipped (existing)": result.skipped_existing,
                "Skipped (no rich company)": len(result.skipped_records),
                "Errors": len(result.errors),
                "Stopped": result.stopped_reason or "no",
            },
        )
        return result
