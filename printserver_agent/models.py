import time
from enum import Enum
from pathlib import Path
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

SUPPORTED_PROTOCOLS = ("socket", "lpd", "ipp")


class AgentSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_id: str = "default-client"
    bucket_name: Optional[str] = None
    region: Optional[str] = None
    dry_run: bool = False
    queue_name: Optional[str] = None
    tmp_dir: Path = Path("tmp")
    drivers_dir: Path = Path("drivers")
    receive_batch_size: int = Field(default=10, ge=1, le=10)
    receive_wait_seconds: int = Field(default=20, ge=0, le=20)
    visibility_timeout: int = 300
    idempotency_ttl_seconds: float = 3600
    idempotency_sweep_seconds: float = 300
    printer_settle_seconds: float = 5
    connection_backoff_seconds: float = 10
    error_backoff_seconds: float = 5
    audit_log_path: Path = Path("logs/audit.jsonl")

    @property
    def namespace_prefix(self) -> str:
        return f"clients/{self.client_id}/"

    @property
    def resolved_queue_name(self) -> str:
        return self.queue_name or f"printserver-{self.client_id}"


# -----------------------------
# Queue
# -----------------------------
class QueueMessage(BaseModel):
    message_id: str
    body: str
    receipt_handle: str
    receive_count: int = 1

    @property
    def short_id(self) -> str:
        return self.message_id[:8] if self.message_id else "unknown"


class QueueStatus(BaseModel):
    visible: int
    not_visible: int


# -----------------------------
# Storage event envelope (S3 ObjectCreated)
# -----------------------------
class S3Bucket(BaseModel):
    name: str


class S3Object(BaseModel):
    key: str


class S3Entity(BaseModel):
    bucket: S3Bucket
    object_: S3Object = Field(alias="object")


class S3EventRecord(BaseModel):
    s3: S3Entity


class S3EventEnvelope(BaseModel):
    Records: List[S3EventRecord] = Field(min_length=1)


class DeliveryNotification(BaseModel):
    container: str
    object_key: str
    is_valid: Literal[True] = True


class InvalidNotification(BaseModel):
    reason: str
    is_valid: Literal[False] = False


# -----------------------------
# Jobs
# -----------------------------
class JobRecord(BaseModel):
    local_file_path: Path
    destination_id: Optional[str] = None
    delivery_options: str = ""


class StoredObject(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    body: object  # file-like with read(size)
    metadata: dict = Field(default_factory=dict)


class Destination(BaseModel):
    kind: Literal["network", "direct"]
    local_name: str
    address: Optional[str] = None
    protocol: Optional[Literal["socket", "lpd", "ipp"]] = None

    @property
    def is_network(self) -> bool:
        return self.kind == "network"


class ProcessOutcome(str, Enum):
    printed = "printed"
    skipped_shutdown = "skipped_shutdown"
    dropped_malformed = "dropped_malformed"
    dropped_foreign = "dropped_foreign"
    dropped_duplicate = "dropped_duplicate"
    retry = "retry"


class UploadResult(BaseModel):
    success: bool
    bucket: Optional[str] = None
    key: Optional[str] = None
    error: Optional[str] = None
    created_at: float = Field(default_factory=lambda: time.time())
