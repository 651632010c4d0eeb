"""
Storage module: sqlite-backed caches for intelligence and questions.
"""

from .intelligence_cache import BatchWriteResult, IntelligenceCache
from .question_bank import QuestionBank

__all__ = [
    'BatchWriteResult',
    'IntelligenceCache',
    'QuestionBank',
]
