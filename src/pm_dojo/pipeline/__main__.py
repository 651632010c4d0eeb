"""
PM Dojo batch pipeline CLI.

Commands:
  sync      Extract intelligence for episodes not yet cached (optionally
            assemble questions for them afterwards)
  seed      Cache metadata-only records for unseen episodes (no LLM calls)
  assemble  Generate bank questions from cached intelligence
  stats     Print cache and bank counts
"""

from __future__ import annotations

import argparse
import logging
import sqlite3
from pathlib import Path
from typing import List, Optional

from src.pm_dojo.core import config
from src.pm_dojo.core.db import get_connection, init_db
from src.pm_dojo.core.logging_utils import configure_logging, log_banner
from src.pm_dojo.core.utils import CancelToken
from src.pm_dojo.pipeline.assembler import (
    DEFAULT_DIFFICULTIES,
    DEFAULT_TYPES,
    DIFFICULTIES,
    INTERVIEW_TYPES,
    AssemblyResult,
    QuestionAssembler,
    check_pairs,
)
from src.pm_dojo.pipeline.extractor import IntelligenceExtractor
from src.pm_dojo.pipeline.llm_client import ModelGateway
from src.pm_dojo.pipeline.sync import SyncOrchestrator, SyncResult
from src.pm_dojo.sources.transcripts import GitHubTranscriptSource, TranscriptSource
from src.pm_dojo.storage.intelligence_cache import IntelligenceCache
from src.pm_dojo.storage.question_bank import QuestionBank

logger = logging.getLogger(__name__)


def run_sync_job(
    conn: sqlite3.Connection,
    gateway: Optional[ModelGateway] = None,
    source: Optional[TranscriptSource] = None,
    max_episodes: Optional[int] = None,
    assemble_after: bool = True,
    cancel: Optional[CancelToken] = None,
) -> tuple[SyncResult, Optional[AssemblyResult]]:
    """
    Sync new episodes, then assemble questions for the ones just cached.

    Assembly is skipped when the sync stopped on a systemic error, since the
    same credential would fail again straight away.
    """
    gateway = gateway or ModelGateway()
    orchestrator = SyncOrchestrator(
        source or GitHubTranscriptSource(),
        IntelligenceCache(conn),
        extractor=IntelligenceExtractor(gateway),
    )
    sync_result = orchestrator.sync_new(max_episodes=max_episodes, cancel=cancel)

    if not assemble_after or not sync_result.processed_ids:
        return sync_result, None
    if sync_result.stopped_reason and not (cancel and cancel.cancelled):
        logger.warning(f"Skipping question assembly: sync stopped ({sync_result.stopped_reason})")
        return sync_result, None

    assembly_result = run_assemble_job(conn, gateway=gateway, episode_ids=sync_result.processed_ids, cancel=cancel)
    return sync_result, assembly_result


def run_seed_job(
    conn: sqlite3.Connection,
    source: Optional[TranscriptSource] = None,
    max_episodes: Optional[int] = None,
) -> SyncResult:
    orchestrator = SyncOrchestrator(source or GitHubTranscriptSource(), IntelligenceCache(conn))
    return orchestrator.seed_metadata(max_episodes=max_episodes)


def run_assemble_job(
    conn: sqlite3.Connection,
    gateway: Optional[ModelGateway] = None,
    episode_ids: Optional[List[str]] = None,
    types: Optional[List[str]] = None,
    difficulties: Optional[List[str]] = None,
    max_questions: Optional[int] = None,
    cancel: Optional[CancelToken] = None,
) -> AssemblyResult:
    """Assemble questions for the given episodes (default: every cached episode)."""
    cache = IntelligenceCache(conn)
    records = cache.get_many(episode_ids) if episode_ids else cache.list_all()
    assembler = QuestionAssembler(gateway or ModelGateway(), QuestionBank(conn))
    return assembler.assemble(
        records,
        types=types,
        difficulties=difficulties,
        max_questions=max_questions,
        cancel=cancel,
    )


def print_stats(conn: sqlite3.Connection) -> None:
    bank = QuestionBank(conn)
    lines = {
        "Episodes cached": IntelligenceCache(conn).count(),
        "Questions in bank": bank.count(),
    }
    for interview_type, count in sorted(bank.counts_by_type().items()):
        lines[f"  {interview_type}"] = count
    log_banner(logger, "PM Dojo Statistics", lines)


def _csv_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _type_list(value: str) -> List[str]:
    types = _csv_list(value)
    try:
        check_pairs(types, [])
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"{e} (choose from {', '.join(INTERVIEW_TYPES)})") from e
    return types


def _difficulty_list(value: str) -> List[str]:
    difficulties = _csv_list(value)
    try:
        check_pairs([], difficulties)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"{e} (choose from {', '.join(DIFFICULTIES)})") from e
    return difficulties


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="PM Dojo batch pipeline: transcript sync, intelligence extraction, question assembly.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Extract intelligence for new episodes and build their questions
  python -m src.pm_dojo.pipeline sync

  # Limit to 5 new episodes, skip question assembly
  python -m src.pm_dojo.pipeline sync --max-episodes 5 --no-assemble

  # Metadata only, no LLM calls
  python -m src.pm_dojo.pipeline seed

  # Fill the bank for two interview types
  python -m src.pm_dojo.pipeline assemble --types product_sense,rca --difficulties medium
        """,
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        default=config.DB_PATH,
        help=f"SQLite database path (default: {config.DB_PATH})",
    )
    parser.add_argument(
        "--log-level",
        default=config.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Path to log file (default: console only)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Extract intelligence for episodes not yet cached")
    sync.add_argument("--max-episodes", type=int, default=None, help="Maximum new episodes to process")
    sync.add_argument(
        "--no-assemble",
        action="store_false",
        dest="assemble",
        help="Do not generate questions for newly cached episodes",
    )
    sync.add_argument(
        "--deadline",
        type=float,
        default=None,
        help="Stop starting new work after this many seconds",
    )

    seed = subparsers.add_parser("seed", help="Cache metadata-only records (no LLM calls)")
    seed.add_argument("--max-episodes", type=int, default=None, help="Maximum new episodes to seed")

    assemble = subparsers.add_parser("assemble", help="Generate bank questions from cached intelligence")
    assemble.add_argument(
        "--types",
        type=_type_list,
        default=list(DEFAULT_TYPES),
        help=f"Comma-separated interview types (default: {','.join(DEFAULT_TYPES)})",
    )
    assemble.add_argument(
        "--difficulties",
        type=_difficulty_list,
        default=list(DEFAULT_DIFFICULTIES),
        help=f"Comma-separated difficulties (default: {','.join(DEFAULT_DIFFICULTIES)})",
    )
    assemble.add_argument("--max-questions", type=int, default=None, help="Stop after this many questions")
    assemble.add_argument(
        "--episodes",
        type=_csv_list,
        default=None,
        help="Comma-separated episode ids (default: every cached episode)",
    )

    subparsers.add_parser("stats", help="Show cache and question bank counts")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the batch pipeline."""
    args = parse_args(argv)
    configure_logging(args.log_level, log_file=Path(args.log_file) if args.log_file else None)

    conn = get_connection(args.db_path)
    try:
        init_db(conn)

        if args.command == "sync":
            cancel = CancelToken(deadline_seconds=args.deadline) if args.deadline else None
            sync_result, _ = run_sync_job(
                conn,
                max_episodes=args.max_episodes,
                assemble_after=args.assemble,
                cancel=cancel,
            )
            return 1 if sync_result.stopped_reason and not (cancel and cancel.cancelled) else 0

        if args.command == "seed":
            run_seed_job(conn, max_episodes=args.max_episodes)
            return 0

        if args.command == "assemble":
            result = run_assemble_job(
                conn,
                episode_ids=args.episodes,
                types=args.types,
                difficulties=args.difficulties,
                max_questions=args.max_questions,
            )
            stopped_by_error = result.stopped_reason and not result.stopped_reason.startswith("reached max_questions")
            return 1 if stopped_by_error else 0

        print_stats(conn)
        return 0
    finally:
        conn.close()


if __name__ == "__main__":
    raise SystemExit(main())
