"""Configuration for the offline sync queue."""
import os
from pathlib import Path
from dotenv import load_dotenv

from syncqueue.queue.models import DEFAULT_MAX_ATTEMPTS, DEFAULT_STORAGE_KEY

load_dotenv()

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent
LOGS_DIR = Path(os.getenv("LOGS_DIR", str(BASE_DIR / "logs")))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_TO_FILE = os.getenv("LOG_TO_FILE", "true").lower() in ("1", "true", "yes")
if LOG_TO_FILE:
    LOGS_DIR.mkdir(parents=True, exist_ok=True)
BETTERSTACK_SOURCE_TOKEN = os.getenv("BETTERSTACK_SOURCE_TOKEN")
BETTERSTACK_INGEST_HOST = os.getenv("BETTERSTACK_INGEST_HOST")

# Durable storage
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "file").lower()  # file | postgres | memory
STORAGE_DIR = Path(os.getenv("STORAGE_DIR", str(BASE_DIR / "data")))
DATABASE_URL = os.getenv("DATABASE_URL")
STORAGE_TABLE = os.getenv("STORAGE_TABLE", "sync_queue_store")
SYNC_QUEUE_STORAGE_KEY = os.getenv("SYNC_QUEUE_STORAGE_KEY", DEFAULT_STORAGE_KEY)

# Queue
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", str(DEFAULT_MAX_ATTEMPTS)))
SWEEP_INTERVAL = int(os.getenv("SWEEP_INTERVAL", "30"))  # seconds between retry sweeps

# Remote backend
SYNC_API_URL = os.getenv("SYNC_API_URL")
SYNC_API_TOKEN = os.getenv("SYNC_API_TOKEN")

# Connectivity
CONNECTIVITY_PROBE_URL = os.getenv("CONNECTIVITY_PROBE_URL") or SYNC_API_URL
CONNECTIVITY_POLL_INTERVAL = int(os.getenv("CONNECTIVITY_POLL_INTERVAL", "5"))
CONNECTIVITY_TIMEOUT = float(os.getenv("CONNECTIVITY_TIMEOUT", "3"))

STORAGE_BACKENDS = ("file", "postgres", "memory")


def validate_config():
    """Validate required configuration."""
    errors = []

    if not SYNC_API_URL:
        errors.append("SYNC_API_URL is required")

    if STORAGE_BACKEND not in STORAGE_BACKENDS:
        errors.append(f"STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}: {STORAGE_BACKEND}")
    elif STORAGE_BACKEND == "postgres" and not DATABASE_URL:
        errors.append("DATABASE_URL is required when STORAGE_BACKEND=postgres")
    elif STORAGE_BACKEND == "file" and not STORAGE_DIR.is_absolute():
        errors.append(f"STORAGE_DIR must be absolute: {STORAGE_DIR}")

    if not SYNC_QUEUE_STORAGE_KEY:
        errors.append("SYNC_QUEUE_STORAGE_KEY must not be empty")

    if MAX_ATTEMPTS < 1:
        errors.append(f"MAX_ATTEMPTS must be at least 1: {MAX_ATTEMPTS}")

    for name, value in (
        ("SWEEP_INTERVAL", SWEEP_INTERVAL),
        ("CONNECTIVITY_POLL_INTERVAL", CONNECTIVITY_POLL_INTERVAL),
        ("CONNECTIVITY_TIMEOUT", CONNECTIVITY_TIMEOUT),
    ):
        if value <= 0:
            errors.append(f"{name} must be positive: {value}")

    if errors:
        raise ValueError("Config errors:\n  " + "\n  ".join(errors))
