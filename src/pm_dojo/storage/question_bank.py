"""
Durable Question store.

UNIQUE(episode_id, interview_type, difficulty) is enforced by the table, so a
second writer racing on the same triple gets a duplicate rejection instead of
a second row. Stored questions are never updated.
"""

import logging
import random
import sqlite3
from typing import Dict, Iterable, List, Optional, Set

from src.pm_dojo.core.db import db_transaction
from src.pm_dojo.core.models import triple_key
from src.pm_dojo.core.utils import now_utc_iso
from src.pm_dojo.pipeline.schemas import Question, StoredQuestion

logger = logging.getLogger(__name__)


def _is_unique_violation(error: sqlite3.IntegrityError) -> bool:
    return "UNIQUE constraint failed" in str(error)


def _row_to_stored(row: sqlite3.Row) -> StoredQuestion:
    return StoredQuestion(
        episode_id=row["episode_id"],
        interview_type=row["interview_type"],
        difficulty=row["difficulty"],
        company_name=row["company_name"],
        origin=row["origin"],
        created_at=row["created_at"],
        question=Question.model_validate_json(row["question"]),
    )


class QuestionBank:
    """sqlite-backed question bank."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def exists_for(self, episode_id: str, interview_type: str, difficulty: str) -> bool:
        row = self.conn.execute(
            """
            SELECT 1 FROM question_bank
            WHERE episode_id = ? AND interview_type = ? AND difficulty = ?
            """,
            (episode_id, interview_type, difficulty),
        ).fetchone()
        return row is not None

    def existing_triples(self, episode_ids: Optional[Iterable[str]] = None) -> Set[str]:
        """
        Triple keys ("episode:type:difficulty") already stored.

        Scoped to `episode_ids` when given, so a batch only loads what it needs.
        """
        query = "SELECT episode_id, interview_type, difficulty FROM question_bank"
        params: List[str] = []
        if episode_ids is not None:
            params = list(dict.fromkeys(episode_ids))
            if not params:
                return set()
            query += f" WHERE episode_id IN ({','.join('?' for _ in params)})"
        rows = self.conn.execute(query, params).fetchall()
        return {triple_key(row["episode_id"], row["interview_type"], row["difficulty"]) for row in rows}

    def insert(self, episode_id: str, question: Question, origin: str = "batch") -> bool:
        """
        Store a question under its triple.

        Returns False (and writes nothing) when the triple already exists.
        """
        try:
            with db_transaction(self.conn):
                self.conn.execute(
                    """
                    INSERT INTO question_bank (
                        question_id, episode_id, interview_type, difficulty, company_name,
                        guest_name, episode_title, question, origin, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        question.id,
                        episode_id,
                        question.type.value,
                        question.difficulty.value,
                        question.company,
                        question.source.guest_name,
                        question.source.episode_title,
                        question.model_dump_json(),
                        origin,
                        now_utc_iso(),
                    ),
                )
        except sqlite3.IntegrityError as e:
            if _is_unique_violation(e):
                logger.info(f"⊘ Question already exists: {triple_key(episode_id, question.type.value, question.difficulty.value)}")
                return False
            raise
        return True

    def query_by(
        self,
        interview_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        company: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[StoredQuestion]:
        """Filter by any combination of type, difficulty and company (case-insensitive)."""
        clauses = []
        params: List[object] = []
        if interview_type:
            clauses.append("interview_type = ?")
            params.append(interview_type)
        if difficulty:
            clauses.append("difficulty = ?")
            params.append(difficulty)
        if company:
            clauses.append("company_name = ? COLLATE NOCASE")
            params.append(company)

        query = "SELECT * FROM question_bank"
        if clauses:
            query += " WHERE " + " AND ".join(clauses)
        query += " ORDER BY id"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        return [_row_to_stored(row) for row in self.conn.execute(query, params).fetchall()]

    def random_match(
        self,
        interview_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        company: Optional[str] = None,
    ) -> Optional[StoredQuestion]:
        matches = self.query_by(interview_type, difficulty, company)
        return random.choice(matches) if matches else None

    def get(self, question_id: str) -> Optional[StoredQuestion]:
        row = self.conn.execute(
            "SELECT * FROM question_bank WHERE question_id = ? ORDER BY id LIMIT 1",
            (question_id,),
        ).fetchone()
        return _row_to_stored(row) if row else None

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM question_bank").fetchone()[0]

    def counts_by_type(self) -> Dict[str, int]:
        rows = self.conn.execute(
            "SELECT interview_type, COUNT(*) AS n FROM question_bank GROUP BY interview_type ORDER BY interview_type"
        ).fetchall()
        return {row["interview_type"]: row["n"] for row in rows}
