import os
from pathlib import Path

from dotenv import load_dotenv  # type: ignore


# Load environment variables from .env file
load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# MongoDB
MONGODB_URL = os.getenv("MONGODB_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "hiring-portal")

# Blob storage
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "local").lower()
DETA_PROJECT_KEY = os.getenv("DETA_PROJECT_KEY")
DATA_DIR = Path(os.getenv("DATA_DIR", "data"))
SNAPSHOT_DIR = DATA_DIR / "uploads" / "snapshots"
REPORT_DIR = DATA_DIR / "reports"

# Submissions arriving later than this past the deadline are flagged late
SUBMISSION_GRACE_SECONDS = int(os.getenv("SUBMISSION_GRACE_SECONDS", "30"))

# Scoring oracle
SNAPSHOT_REVIEW = _flag("SNAPSHOT_REVIEW")
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "openai").lower()
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llava")

# HTTP
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))

# Client-side session constants (seconds)
TICK_SECONDS = 1
SNAPSHOT_INTERVAL_SECONDS = 120
WARNING_THRESHOLDS = (300, 60)
WARNING_ADVISORY_SECONDS = 5.0
INTEGRITY_ADVISORY_SECONDS = 3.0
