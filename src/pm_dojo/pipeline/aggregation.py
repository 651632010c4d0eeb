"""
Aggregate cached intelligence across episodes.

Companies are merged case-insensitively by name (first spelling seen wins),
frameworks likewise, and both lists are sorted by how many episodes mention
them. Reads cached records only; never calls the LLM.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from pydantic import BaseModel, Field

from src.pm_dojo.pipeline.schemas import Decision, Framework, Intelligence, Opinion, QuestionSeed

logger = logging.getLogger(__name__)


class EpisodeRef(BaseModel):
    episode_id: str
    guest_name: str
    episode_title: str


class CompanyMention(EpisodeRef):
    is_guest_company: bool = False
    context: Optional[str] = None


class AttributedDecision(Decision):
    guest_name: str
    episode_id: str


class AttributedOpinion(Opinion):
    guest_name: str
    episode_id: str


class AttributedSeed(QuestionSeed):
    guest_name: str
    episode_id: str
    episode_title: str


class CompanyProfile(BaseModel):
    name: str
    episode_count: int = 0
    total_decisions: int = 0
    total_opinions: int = 0
    episodes: List[CompanyMention] = Field(default_factory=list)
    decisions: List[AttributedDecision] = Field(default_factory=list)
    opinions: List[AttributedOpinion] = Field(default_factory=list)
    metrics: List[str] = Field(default_factory=list)
    question_seeds: List[AttributedSeed] = Field(default_factory=list)


class FrameworkProfile(Framework):
    mentioned_in: List[EpisodeRef] = Field(default_factory=list)


def _merge_record(
    record: Intelligence,
    companies: Dict[str, CompanyProfile],
    frameworks: Dict[str, FrameworkProfile],
) -> None:
    ref = EpisodeRef(
        episode_id=record.episode_id,
        guest_name=record.guest_name,
        episode_title=record.episode_title,
    )

    for company in record.companies:
        key = company.name.strip().lower()
        profile = companies.setdefault(key, CompanyProfile(name=company.name.strip()))
        profile.episode_count += 1
        profile.episodes.append(
            CompanyMention(
                **ref.model_dump(),
                is_guest_company=company.is_guest_company,
                context=company.mention_context,
            )
        )
        for decision in company.decisions:
            profile.decisions.append(
                AttributedDecision(**decision.model_dump(), guest_name=record.guest_name, episode_id=record.episode_id)
            )
        for opinion in company.opinions:
            profile.opinions.append(
                AttributedOpinion(**opinion.model_dump(), guest_name=record.guest_name, episode_id=record.episode_id)
            )
        profile.total_decisions += len(company.decisions)
        profile.total_opinions += len(company.opinions)
        profile.metrics.extend(company.metrics_mentioned)

    # Seeds attach only to companies already known from this or earlier episodes
    for seed in record.question_seeds:
        if not seed.company:
            continue
        profile = companies.get(seed.company.strip().lower())
        if profile is not None:
            profile.question_seeds.append(
                AttributedSeed(**seed.model_dump(), **ref.model_dump())
            )

    for framework in record.frameworks:
        key = framework.name.strip().lower()
        existing = frameworks.get(key)
        if existing is None:
            frameworks[key] = FrameworkProfile(**framework.model_dump(), mentioned_in=[ref])
        else:
            existing.mentioned_in.append(ref)


def aggregate_intelligence(
    records: Iterable[Intelligence],
) -> Tuple[List[CompanyProfile], List[FrameworkProfile]]:
    """
    (companies, frameworks) across all records, most-mentioned first.
    Ties keep first-seen order.
    """
    companies: Dict[str, CompanyProfile] = {}
    frameworks: Dict[str, FrameworkProfile] = {}
    count = 0
    for record in records:
        _merge_record(record, companies, frameworks)
        count += 1

    logger.debug(f"Aggregated {count} episodes: {len(companies)} companies, {len(frameworks)} frameworks")
    return (
        sorted(companies.values(), key=lambda c: c.episode_count, reverse=True),
        sorted(frameworks.values(), key=lambda f: len(f.mentioned_in), reverse=True),
    )
