import json
import logging
import time
from pathlib import Path

logger = logging.getLogger(__name__)


class AuditLog:
    """Append-only JSONL trail of message outcomes."""

    def __init__(self, path: Path, client_id: str):
        self.path = Path(path)
        self.client_id = client_id

    def record(self, event: str, payload: dict):
        record = {
            "ts": time.time(),
            "client_id": self.client_id,
            "event": event,
            "payload": payload,
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
        except OSError:
            logger.debug("Failed to write audit record to %s", self.path, exc_info=True)
