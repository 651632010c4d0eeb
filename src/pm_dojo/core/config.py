"""
Central configuration constants for PM Dojo.

Supports environment variables for configuration:
- PM_DOJO_DB_PATH: Database file name (default: pm_dojo.db, under the data dir)
- PM_DOJO_LOG_LEVEL: Logging level (default: INFO)
- PM_DOJO_LOG_FILE: Log file path (default: logs/pipeline.log)
- PM_DOJO_DATA_DIR: Data directory (default: data)
- PM_DOJO_LLM_PROVIDER / PM_DOJO_LLM_API_KEY / PM_DOJO_LLM_MODEL: service
  credential used by batch jobs (sync, seed, assemble)
"""

import os
from pathlib import Path
from typing import List

# ---- Networking ----

REQUEST_TIMEOUT_SECONDS = 30
HTTP_MAX_RETRIES = 4
HTTP_BACKOFF_BASE = 1.5  # seconds
HTTP_MIN_DELAY = 0.0
HTTP_MAX_DELAY = 0.3

HTTP_USER_AGENTS: List[str] = [
    "PM-Dojo/1.0 (+https://github.com/pm-dojo/pm-dojo)",
]

# Transcript repository (one directory per episode, transcript.md inside)
TRANSCRIPTS_REPO_OWNER = os.getenv("PM_DOJO_TRANSCRIPTS_OWNER", "ChatPRD")
TRANSCRIPTS_REPO_NAME = os.getenv("PM_DOJO_TRANSCRIPTS_REPO", "lennys-podcast-transcripts")
TRANSCRIPTS_BRANCH = os.getenv("PM_DOJO_TRANSCRIPTS_BRANCH", "main")
TRANSCRIPTS_DIR = os.getenv("PM_DOJO_TRANSCRIPTS_DIR", "episodes")
GITHUB_TOKEN = os.getenv("GITHUB_TOKEN")

# Environment variable configuration
DATA_DIR = Path(os.getenv("PM_DOJO_DATA_DIR", "data"))
DB_PATH = DATA_DIR / os.getenv("PM_DOJO_DB_PATH", "pm_dojo.db")
LOG_LEVEL = os.getenv("PM_DOJO_LOG_LEVEL", "INFO")
LOG_FILE = Path(os.getenv("PM_DOJO_LOG_FILE", "logs/pipeline.log"))

# ---- LLM gateway ----

# Service credential for batch jobs. Unset means batch jobs fail with NoCredential.
LLM_PROVIDER = os.getenv("PM_DOJO_LLM_PROVIDER")
LLM_API_KEY = os.getenv("PM_DOJO_LLM_API_KEY")
LLM_MODEL = os.getenv("PM_DOJO_LLM_MODEL")
LLM_REQUEST_TIMEOUT_SECONDS = float(os.getenv("LLM_REQUEST_TIMEOUT_SECONDS", "120"))
# Per-caller requests fall back to the service credential only when enabled
LLM_SHARED_FALLBACK = os.getenv("PM_DOJO_LLM_SHARED_FALLBACK", "0").lower() in ("1", "true", "yes")
OLLAMA_HOST = os.getenv("OLLAMA_HOST_URL", "https://ollama.com")

# ---- Intelligence extraction ----

MAX_TRANSCRIPT_CHARS = 60000
TRANSCRIPT_TRUNCATION_MARKER = "\n\n[TRANSCRIPT TRUNCATED]"
EXTRACTION_MAX_TOKENS = 4096
EXTRACTION_MAX_ATTEMPTS = int(os.getenv("EXTRACTION_MAX_ATTEMPTS", "6"))
RATE_LIMIT_BACKOFF_BASE = 1.5  # seconds, doubled per attempt
RATE_LIMIT_BACKOFF_CAP = 30.0  # seconds
EMPTY_RESPONSE_BACKOFF = 1.0  # seconds, multiplied by attempt number

# ---- Question assembly ----

QUESTION_MAX_TOKENS = 3000
ON_DEMAND_QUESTION_MAX_TOKENS = 4000
EVALUATION_MAX_TOKENS = 2000
QUESTION_CALL_DELAY = float(os.getenv("QUESTION_CALL_DELAY", "0.5"))  # Seconds between generation calls
CONTEXT_MAX_DECISIONS = 5
CONTEXT_MAX_QUOTES = 5

# ---- Sync / seeding ----

SYNC_BATCH_SIZE = int(os.getenv("SYNC_BATCH_SIZE", "10"))
SYNC_HEADER_WORKERS = int(os.getenv("SYNC_HEADER_WORKERS", "5"))
SYNC_EPISODE_DELAY = float(os.getenv("SYNC_EPISODE_DELAY", "2.0"))  # Seconds between extractions
SEED_BATCH_SIZE = int(os.getenv("SEED_BATCH_SIZE", "50"))

# ---- Scheduler ----

SCHEDULER_DAILY_TIME = os.getenv("PM_DOJO_SYNC_TIME", "03:00")
