"""
Prompt templates for interview question generation and answer evaluation.

Two generation flavours share one output shape:
- bank: batch assembly into the QuestionBank (short system prompt)
- on-demand: a single question for a practice session (stricter rules,
  difficulty named in the system prompt)
"""

from typing import List, Optional

# One instruction sentence per interview type
INTERVIEW_TYPE_PROMPTS = {
    "behavioral": 'Generate a behavioral interview question ("Tell me about a time...") based on a real situation this company/PM faced according to the podcast.',
    "product_sense": "Generate a product sense question about identifying opportunities or user needs, based on what the guest discussed about this company's situation.",
    "product_design": "Generate a product design question asking to design a feature or product, using constraints and context mentioned in the podcast.",
    "rca": "Generate a root cause analysis question about debugging a metric or problem, based on challenges the guest described.",
    "guesstimate": "Generate a market sizing or estimation question related to this company, using any numbers or context from the podcast.",
    "tech": "Generate a technical/architecture question at PM level, based on technical challenges or decisions discussed in the podcast.",
    "ai_ml": "Generate a question about AI/ML product decisions, based on any AI-related discussions from the podcast.",
    "strategy": "Generate a product strategy question about competitive positioning or long-term decisions, based on strategic discussions in the podcast.",
    "metrics": "Generate a metrics/goal-setting question about defining success metrics, based on how the guest discussed measuring outcomes.",
}

BANK_SYSTEM_PROMPT = (
    "You are an expert PM interview coach. Generate a realistic interview question "
    "based ONLY on the podcast transcript context provided. Return ONLY valid JSON."
)

ON_DEMAND_SYSTEM_TEMPLATE = """You are an expert PM interview coach for Lenny's Dojo.

CRITICAL RULES:
1. Use ONLY information from the provided podcast transcript context
2. DO NOT add any external facts, data, or information about the company
3. All scenarios, numbers, and outcomes must come from what the guest said
4. Frame all outcomes as "According to {guest_name}..." and never as absolute facts
5. Generate open-ended questions that require 15-45 minutes to answer
6. Questions must be realistic interview questions, NOT trivia about the podcast

You are creating a {difficulty_upper} difficulty question."""

QUESTION_TEMPLATE = """{type_instruction}

COMPANY: {company_name}
CONTEXT: {company_context}
DECISIONS:
{decisions}
QUOTES FROM {guest_upper}:
{quotes}
SOURCE: "{episode_title}" with {guest_name}
DIFFICULTY: {difficulty_upper}

Return ONLY this JSON:
{{
  "id": "{question_id}",
  "type": "{interview_type}",
  "company": "{company_name}",
  "difficulty": "{difficulty}",
  "suggested_time_minutes": {suggested_time},
  "situation_brief": "<2-3 sentences setting context from the podcast>",
  "question": "<the interview question>",
  "follow_ups": ["<follow up 1>", "<follow up 2>", "<follow up 3>"],
  "model_answer": {{
    "what_happened": "According to {guest_name}, <what happened>",
    "key_reasoning": "<the reasoning the guest explained>",
    "key_quote": "<most relevant direct quote>",
    "frameworks_mentioned": [],
    "full_answer": "<comprehensive model answer based on podcast content>"
  }},
  "source": {{
    "episode_title": "{episode_title}",
    "guest_name": "{guest_name}"
  }}
}}"""


def _numbered(items: List[str], quoted: bool = False) -> str:
    if not items:
        return "(none)"
    if quoted:
        return "\n".join(f'{i}. "{item}"' for i, item in enumerate(items, 1))
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, 1))


def build_question_messages(
    *,
    question_id: str,
    interview_type: str,
    difficulty: str,
    suggested_time: int,
    company_name: str,
    company_context: Optional[str],
    decisions: List[str],
    quotes: List[str],
    guest_name: str,
    episode_title: str,
    on_demand: bool = False,
) -> list:
    type_instruction = INTERVIEW_TYPE_PROMPTS.get(interview_type, INTERVIEW_TYPE_PROMPTS["product_sense"])
    user_prompt = QUESTION_TEMPLATE.format(
        type_instruction=type_instruction,
        company_name=company_name,
        company_context=company_context or company_name,
        decisions=_numbered(decisions),
        quotes=_numbered(quotes, quoted=True),
        guest_upper=(guest_name or "THE GUEST").upper(),
        guest_name=guest_name,
        episode_title=episode_title,
        difficulty=difficulty,
        difficulty_upper=difficulty.upper(),
        question_id=question_id,
        interview_type=interview_type,
        suggested_time=suggested_time,
    )
    if on_demand:
        system_prompt = ON_DEMAND_SYSTEM_TEMPLATE.format(
            guest_name=guest_name or "the guest",
            difficulty_upper=difficulty.upper(),
        )
    else:
        system_prompt = BANK_SYSTEM_PROMPT
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]


# ============================================================
# Answer evaluation
# ============================================================

EVALUATION_SYSTEM_TEMPLATE = """You are a supportive but honest PM interview coach at Lenny's Dojo.

Your job is to evaluate the user's answer by comparing it to insights from {guest_name}'s appearance on Lenny's Podcast.

TONE GUIDELINES:
- Be encouraging and constructive
- Highlight what they did well first
- Give specific, actionable improvement suggestions
- Reference the podcast guest's insights naturally
- Help them see patterns they can apply in real interviews"""

EVALUATION_TEMPLATE = """INTERVIEW TYPE: {interview_type}

SITUATION BRIEF:
{situation_brief}

QUESTION:
{question}

WHAT {guest_upper} SAID (from "{episode_title}"):
- What happened: {what_happened}
- Their reasoning: {key_reasoning}
- Key quote: "{key_quote}"
- Frameworks they mentioned: {frameworks}

USER'S ANSWER:
{user_answer}

---

Evaluate the answer. Return ONLY this JSON:
{{
  "overall_score": <number 1-10, be fair but encouraging>,
  "dimension_scores": {{
    "structure": {{"score": <1-10>, "feedback": "<1 sentence on their answer structure>"}},
    "insight": {{"score": <1-10>, "feedback": "<1 sentence on depth of thinking>"}},
    "framework_usage": {{"score": <1-10>, "feedback": "<1 sentence on framework application>"}},
    "communication": {{"score": <1-10>, "feedback": "<1 sentence on clarity>"}},
    "outcome_orientation": {{"score": <1-10>, "feedback": "<1 sentence on focus on results/impact>"}}
  }},
  "strengths": ["<specific thing they did well with example from their answer>", "<another strength>"],
  "improvements": ["<specific improvement with actionable suggestion>", "<another improvement>"],
  "missed_from_podcast": ["<key insight from {guest_name} they could have used>", "<another point>"],
  "quote_to_remember": {{
    "text": "{key_quote}",
    "why_it_matters": "<how this quote applies to PM interviews>"
  }},
  "encouragement": "<1-2 sentences of genuine encouragement>"
}}"""


def build_evaluation_messages(question, user_answer: str) -> list:
    """Messages scoring `user_answer` against a Question's model answer."""
    guest_name = question.source.guest_name or "the guest"
    answer = question.model_answer
    user_prompt = EVALUATION_TEMPLATE.format(
        interview_type=question.type.value,
        situation_brief=question.situation_brief,
        question=question.question,
        guest_upper=guest_name.upper(),
        guest_name=guest_name,
        episode_title=question.source.episode_title,
        what_happened=answer.what_happened,
        key_reasoning=answer.key_reasoning,
        key_quote=answer.key_quote,
        frameworks=", ".join(answer.frameworks_mentioned) or "None specifically named",
        user_answer=user_answer,
    )
    return [
        {"role": "system", "content": EVALUATION_SYSTEM_TEMPLATE.format(guest_name=guest_name)},
        {"role": "user", "content": user_prompt},
    ]
