"""
Prompt templates for the LLM calls:
- intelligence_prompt: transcript -> Intelligence
- question_prompt: context bundle -> Question, and answer evaluation
"""

from .intelligence_prompt import PROMPT_TEMPLATE, build_messages
from .question_prompt import (
    INTERVIEW_TYPE_PROMPTS,
    build_evaluation_messages,
    build_question_messages,
)

__all__ = [
    'PROMPT_TEMPLATE',
    'build_messages',
    'INTERVIEW_TYPE_PROMPTS',
    'build_question_messages',
    'build_evaluation_messages',
]
