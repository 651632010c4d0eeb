"""
Durable Intelligence store keyed by episode_id.

One row per episode, the full Intelligence document stored as JSON.
Upserts overwrite (last write wins); a record is written in one statement so
it is never partially visible.
"""

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from src.pm_dojo.core.config import SEED_BATCH_SIZE
from src.pm_dojo.core.db import db_transaction
from src.pm_dojo.core.utils import now_utc_iso
from src.pm_dojo.pipeline.schemas import Intelligence

logger = logging.getLogger(__name__)

_UPSERT_SQL = """
    INSERT INTO episode_intelligence_cache (
        episode_id, guest_name, episode_title, intelligence, extracted_at, updated_at
    ) VALUES (?, ?, ?, ?, ?, ?)
    ON CONFLICT(episode_id) DO UPDATE SET
        guest_name = excluded.guest_name,
        episode_title = excluded.episode_title,
        intelligence = excluded.intelligence,
        extracted_at = excluded.extracted_at,
        updated_at = excluded.updated_at
"""


@dataclass
class BatchWriteResult:
    written: int = 0
    failed: List[Dict[str, object]] = field(default_factory=list)  # [{"ids": [...], "reason": str}]

    @property
    def failed_ids(self) -> List[str]:
        return [episode_id for chunk in self.failed for episode_id in chunk["ids"]]


def _row_params(record: Intelligence) -> tuple:
    now = now_utc_iso()
    return (
        record.episode_id,
        record.guest_name,
        record.episode_title,
        record.model_dump_json(),
        record.extracted_at.isoformat(),
        now,
    )


class IntelligenceCache:
    """sqlite-backed cache of extracted intelligence."""

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def has(self, episode_id: str) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM episode_intelligence_cache WHERE episode_id = ?",
            (episode_id,),
        ).fetchone()
        return row is not None

    def upsert(self, record: Intelligence) -> None:
        with db_transaction(self.conn):
            self.conn.execute(_UPSERT_SQL, _row_params(record))
        logger.debug(f"Cached intelligence for {record.episode_id}")

    def get(self, episode_id: str) -> Optional[Intelligence]:
        row = self.conn.execute(
            "SELECT intelligence FROM episode_intelligence_cache WHERE episode_id = ?",
            (episode_id,),
        ).fetchone()
        if row is None:
            return None
        return Intelligence.model_validate_json(row["intelligence"])

    def get_many(self, episode_ids: Iterable[str]) -> List[Intelligence]:
        """Records for the given ids, in the order given; unknown ids are skipped."""
        ids = list(dict.fromkeys(episode_ids))
        if not ids:
            return []
        placeholders = ",".join("?" for _ in ids)
        rows = self.conn.execute(
            f"SELECT episode_id, intelligence FROM episode_intelligence_cache WHERE episode_id IN ({placeholders})",
            ids,
        ).fetchall()
        by_id = {row["episode_id"]: Intelligence.model_validate_json(row["intelligence"]) for row in rows}
        return [by_id[episode_id] for episode_id in ids if episode_id in by_id]

    def list_all(self) -> List[Intelligence]:
        rows = self.conn.execute(
            "SELECT intelligence FROM episode_intelligence_cache ORDER BY episode_id"
        ).fetchall()
        return [Intelligence.model_validate_json(row["intelligence"]) for row in rows]

    def list_ids(self) -> Set[str]:
        rows = self.conn.execute("SELECT episode_id FROM episode_intelligence_cache").fetchall()
        return {row["episode_id"] for row in rows}

    def count(self) -> int:
        return self.conn.execute("SELECT COUNT(*) FROM episode_intelligence_cache").fetchone()[0]

    def upsert_many(self, records: Iterable[Intelligence], batch_size: int = SEED_BATCH_SIZE) -> BatchWriteResult:
        """
        Upsert records in chunks, one transaction per chunk.

        A failing chunk is rolled back and recorded; earlier chunks stay
        committed and later chunks are still attempted.
        """
        result = BatchWriteResult()
        records = list(records)

        for start in range(0, len(records), batch_size):
            chunk = records[start:start + batch_size]
            ids = [record.episode_id for record in chunk]
            try:
                with db_transaction(self.conn):
                    self.conn.executemany(_UPSERT_SQL, [_row_params(record) for record in chunk])
            except sqlite3.Error as e:
                logger.error(f"✗ Cache chunk {start // batch_size + 1} failed ({len(chunk)} records): {e}")
                result.failed.append({"ids": ids, "reason": str(e)})
                continue
            result.written += len(chunk)
            logger.info(f"✓ Cached chunk {start // batch_size + 1}: {len(chunk)} records")

        return result

    def clear(self) -> int:
        with db_transaction(self.conn):
            cursor = self.conn.execute("DELETE FROM episode_intelligence_cache")
        logger.warning(f"Cleared intelligence cache ({cursor.rowcount} records)")
        return cursor.rowcount
