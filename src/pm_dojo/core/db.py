# src/pm_dojo/core/db.py
import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path

from src.pm_dojo.core.config import DB_PATH

logger = logging.getLogger(__name__)


def get_connection(
    db_path: Path = DB_PATH,
    timeout: float = 30.0,
    read_only: bool = False,
) -> sqlite3.Connection:
    """
    Get a database connection configured for concurrent access.

    Args:
        db_path: Path to database file
        timeout: Connection timeout in seconds (default: 30s for writes, 5s for reads)
        read_only: If True, opens connection in read-only mode (no write locks)

    Returns:
        SQLite connection with WAL mode enabled and proper timeouts
    """
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    if read_only:
        db_uri = f"file:{db_path}?mode=ro"
        conn = sqlite3.connect(db_uri, uri=True, timeout=5.0, check_same_thread=False)
    else:
        conn = sqlite3.connect(str(db_path), timeout=timeout, check_same_thread=False)

    conn.row_factory = sqlite3.Row

    # WAL allows readers (the API) while a batch job is writing
    if not read_only:
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("PRAGMA busy_timeout=30000")
        except sqlite3.Error as e:
            # Network / read-only filesystems may refuse WAL
            logger.warning(f"Could not enable WAL mode: {e}. Continuing with default journal mode.")

    return conn


@contextmanager
def db_transaction(conn: sqlite3.Connection, commit: bool = True):
    """
    Context manager for database transactions.

    Commits on clean exit, rolls back and re-raises on error.

    Usage:
        with db_transaction(conn):
            conn.execute("INSERT INTO ...")
    """
    try:
        yield conn
        if commit:
            conn.commit()
    except Exception:
        conn.rollback()
        raise


def init_db(conn: sqlite3.Connection) -> None:
    """
    Create the intelligence cache and question bank tables.

    Schema design:
    - episode_intelligence_cache: one row per episode, intelligence stored as JSON.
      episode_id is the primary key so re-extraction overwrites.
    - question_bank: one row per (episode_id, interview_type, difficulty).
      The UNIQUE constraint is the last line against concurrent assembly runs.
    """
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS episode_intelligence_cache (
            episode_id      TEXT PRIMARY KEY,
            guest_name      TEXT,
            episode_title   TEXT,
            intelligence    TEXT NOT NULL,   -- Intelligence JSON
            extracted_at    TEXT NOT NULL,
            updated_at      TEXT NOT NULL
        );

        CREATE TABLE IF NOT EXISTS question_bank (
            id              INTEGER PRIMARY KEY AUTOINCREMENT,
            question_id     TEXT NOT NULL,
            episode_id      TEXT NOT NULL,
            interview_type  TEXT NOT NULL,
            difficulty      TEXT NOT NULL,
            company_name    TEXT,
            guest_name      TEXT,
            episode_title   TEXT,
            question        TEXT NOT NULL,   -- Question JSON
            origin          TEXT NOT NULL DEFAULT 'batch',  -- 'batch' | 'on_demand'
            created_at      TEXT NOT NULL,
            UNIQUE (episode_id, interview_type, difficulty)
        );

        CREATE INDEX IF NOT EXISTS idx_question_bank_type ON question_bank(interview_type);
        CREATE INDEX IF NOT EXISTS idx_question_bank_difficulty ON question_bank(difficulty);
        CREATE INDEX IF NOT EXISTS idx_question_bank_company ON question_bank(company_name COLLATE NOCASE);
        """
    )
    conn.commit()
