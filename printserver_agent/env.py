import os
from pathlib import Path

from dotenv import load_dotenv

PACKAGE_DIR = Path(__file__).resolve().parent

# .env from the cwd, else the one next to the package
_env_path = Path(".env")
if not _env_path.exists():
    _env_path = PACKAGE_DIR / ".env"
load_dotenv(_env_path)

CLIENT_ID = os.getenv("CLIENT_ID", "default-client")
S3_BUCKET_NAME = os.getenv("S3_BUCKET_NAME") or None
AWS_REGION = os.getenv("AWS_REGION") or None
TEST_MODE = os.getenv("TEST_MODE", "false").lower() == "true"

QUEUE_NAME = os.getenv("QUEUE_NAME", f"printserver-{CLIENT_ID}")
TMP_DIR = os.getenv("TMP_DIR", str(PACKAGE_DIR / "tmp"))
DRIVERS_DIR = os.getenv("DRIVERS_DIR", str(PACKAGE_DIR / "drivers"))

RECEIVE_BATCH_SIZE = int(os.getenv("RECEIVE_BATCH_SIZE", "10"))
RECEIVE_WAIT_SECONDS = int(os.getenv("RECEIVE_WAIT_SECONDS", "20"))
VISIBILITY_TIMEOUT = int(os.getenv("VISIBILITY_TIMEOUT", "300"))

IDEMPOTENCY_TTL_SECONDS = float(os.getenv("IDEMPOTENCY_TTL_SECONDS", "3600"))
IDEMPOTENCY_SWEEP_SECONDS = float(os.getenv("IDEMPOTENCY_SWEEP_SECONDS", "300"))
PRINTER_SETTLE_SECONDS = float(os.getenv("PRINTER_SETTLE_SECONDS", "5"))

CONNECTION_BACKOFF_SECONDS = float(os.getenv("CONNECTION_BACKOFF_SECONDS", "10"))
ERROR_BACKOFF_SECONDS = float(os.getenv("ERROR_BACKOFF_SECONDS", "5"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
AUDIT_LOG_PATH = os.getenv("AUDIT_LOG_PATH", "./logs/audit.jsonl")


def load_settings():
    from printserver_agent.models import AgentSettings

    return AgentSettings(
        client_id=CLIENT_ID,
        bucket_name=S3_BUCKET_NAME,
        region=AWS_REGION,
        dry_run=TEST_MODE,
        queue_name=QUEUE_NAME,
        tmp_dir=Path(TMP_DIR),
        drivers_dir=Path(DRIVERS_DIR),
        receive_batch_size=RECEIVE_BATCH_SIZE,
        receive_wait_seconds=RECEIVE_WAIT_SECONDS,
        visibility_timeout=VISIBILITY_TIMEOUT,
        idempotency_ttl_seconds=IDEMPOTENCY_TTL_SECONDS,
        idempotency_sweep_seconds=IDEMPOTENCY_SWEEP_SECONDS,
        printer_settle_seconds=PRINTER_SETTLE_SECONDS,
        connection_backoff_seconds=CONNECTION_BACKOFF_SECONDS,
        error_backoff_seconds=ERROR_BACKOFF_SECONDS,
        audit_log_path=Path(AUDIT_LOG_PATH),
    )
