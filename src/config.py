"""Configuration and settings."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
DATA_DIR = PROJECT_ROOT / "data"
OUTPUT_DIR = PROJECT_ROOT / "output"

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)
OUTPUT_DIR.mkdir(parents=True, exist_ok=True)

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'inbox.sqlite'}")

# OpenAI (used by pydantic-ai agents)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

# Logging. LOG_FILE="" turns the JSONL file sink off; LOG_FORMAT is "console" or "json".
_log_file = os.getenv("LOG_FILE", str(OUTPUT_DIR / "logs" / "app.jsonl")).strip()
LOG_FILE = Path(_log_file) if _log_file else None
LOG_FORMAT = os.getenv("LOG_FORMAT", "console").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
VERBOSE_LOGGING = os.getenv("VERBOSE_LOGGING", "false").lower() == "true"

# OpenTelemetry
TRACING_ENABLED = os.getenv("TRACING_ENABLED", "false").lower() == "true"
OTLP_ENDPOINT = os.getenv("OTLP_ENDPOINT", "http://localhost:4318/v1/traces")
SERVICE_NAME = os.getenv("SERVICE_NAME", "inbox-ingest")
DEPLOYMENT_ENVIRONMENT = os.getenv("DEPLOYMENT_ENVIRONMENT", "development")

# Upstream mail provider (Resend)
RESEND_API_KEY = os.getenv("RESEND_API_KEY", "")
RESEND_API_BASE = os.getenv("RESEND_API_BASE", "https://api.resend.com").rstrip("/")
DEFAULT_FROM_ADDRESS = os.getenv("DEFAULT_FROM_ADDRESS", "")

# Secondary content fetch (payload may omit the body)
CONTENT_FETCH_MAX_ATTEMPTS = int(os.getenv("CONTENT_FETCH_MAX_ATTEMPTS", "3"))
CONTENT_FETCH_BASE_DELAY = float(os.getenv("CONTENT_FETCH_BASE_DELAY", "0.5"))

# Inbound webhook
WEBHOOK_PORT = int(os.getenv("WEBHOOK_PORT", "8000"))
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET", "")
# Max clock skew accepted on the signed timestamp (seconds)
WEBHOOK_TOLERANCE_SECONDS = int(os.getenv("WEBHOOK_TOLERANCE_SECONDS", "300"))

# Delivery replay guard
DEDUP_STORE_PATH = DATA_DIR / "delivery_dedup.json"
DEDUP_DELIVERY_TTL_SECONDS = int(os.getenv("DEDUP_DELIVERY_TTL_SECONDS", "86400"))

# Classification thresholds (0-100). The classifier's own cutoff and the
# cutoff for persisting a label are distinct values.
CLASSIFIER_MIN_CONFIDENCE = int(os.getenv("CLASSIFIER_MIN_CONFIDENCE", "50"))
LABEL_APPLY_CONFIDENCE = int(os.getenv("LABEL_APPLY_CONFIDENCE", "70"))

# Knowledge extraction thresholds (0-100)
KNOWLEDGE_MIN_CONFIDENCE = int(os.getenv("KNOWLEDGE_MIN_CONFIDENCE", "50"))
KNOWLEDGE_AUTO_APPLY_THRESHOLD = int(os.getenv("KNOWLEDGE_AUTO_APPLY_THRESHOLD", "80"))

# Contact enrichment: facts below this confidence are dropped
CONTACT_FACT_MIN_CONFIDENCE = int(os.getenv("CONTACT_FACT_MIN_CONFIDENCE", "70"))
CONTACT_ENRICH_EMAIL_LIMIT = int(os.getenv("CONTACT_ENRICH_EMAIL_LIMIT", "10"))

# Attachment summarization
ATTACHMENT_SUMMARY_MAX_BYTES = int(os.getenv("ATTACHMENT_SUMMARY_MAX_BYTES", str(5 * 1024 * 1024)))
ATTACHMENT_SUMMARY_MAX_CHARS = int(os.getenv("ATTACHMENT_SUMMARY_MAX_CHARS", "4000"))

# Threading
SNIPPET_LENGTH = 150
SUBJECT_MATCH_CANDIDATES = int(os.getenv("SUBJECT_MATCH_CANDIDATES", "10"))

# Live event stream (server side)
SSE_PING_INTERVAL_SECONDS = float(os.getenv("SSE_PING_INTERVAL_SECONDS", "30"))
SSE_CLIENT_QUEUE_MAX = int(os.getenv("SSE_CLIENT_QUEUE_MAX", "100"))

# Live event stream (client side reconnect policy)
SSE_RECONNECT_BASE_DELAY = float(os.getenv("SSE_RECONNECT_BASE_DELAY", "1.0"))
SSE_RECONNECT_MAX_ATTEMPTS = int(os.getenv("SSE_RECONNECT_MAX_ATTEMPTS", "5"))
