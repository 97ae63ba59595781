"""Runtime configuration for the notification engine."""
import os
import socket

from dotenv import load_dotenv

# Load environment variables from .env if present
load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


ENVIRONMENT = os.environ.get("ENVIRONMENT", "development")
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Database
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./calnotify.db")

# Bearer tokens are issued by the calendar app; we only verify them
AUTH_SECRET = os.environ.get("AUTH_SECRET", "change-me-in-production")
AUTH_ALGORITHM = os.environ.get("AUTH_ALGORITHM", "HS256")

# Dispatcher
DISPATCH_INTERVAL_SECONDS = int(os.environ.get("DISPATCH_INTERVAL_SECONDS", "60"))
CHANNEL_SEND_TIMEOUT_SECONDS = float(os.environ.get("CHANNEL_SEND_TIMEOUT_SECONDS", "10"))
CLAIM_LEASE_MARGIN_SECONDS = int(os.environ.get("CLAIM_LEASE_MARGIN_SECONDS", "30"))
DEFAULT_MAX_RETRIES = int(os.environ.get("DEFAULT_MAX_RETRIES", "3"))
NOTIFICATION_RETENTION_DAYS = int(os.environ.get("NOTIFICATION_RETENTION_DAYS", "30"))
DEFAULT_SNOOZE_MINUTES = int(os.environ.get("DEFAULT_SNOOZE_MINUTES", "10"))
RUN_DISPATCHER_IN_APP = _env_bool("RUN_DISPATCHER_IN_APP")
WORKER_ID = os.environ.get("WORKER_ID") or f"{socket.gethostname()}-{os.getpid()}"

# Dapr pub/sub for operator-facing failure events
DAPR_ENABLED = _env_bool("DAPR_ENABLED")
PUBSUB_NAME = os.environ.get("PUBSUB_NAME", "notification-pubsub")
FAILURE_TOPIC = os.environ.get("FAILURE_TOPIC", "notification-failures")

# Channel providers
PUSH_GATEWAY_URL = os.environ.get("PUSH_GATEWAY_URL") or None
SMTP_HOST = os.environ.get("SMTP_HOST", "localhost")
SMTP_PORT = int(os.environ.get("SMTP_PORT", "587"))
SENDER_EMAIL = os.environ.get("SENDER_EMAIL", "noreply@example.com")
