import asyncio
import io
import json
import shlex
from pathlib import Path
from typing import List, Optional

import pytest

from printserver_agent.cloud.base import MessageQueue, ObjectStorage
from printserver_agent.context import build_context
from printserver_agent.errors import PrintSubsystemError
from printserver_agent.idempotency import IdempotencyCache
from printserver_agent.models import AgentSettings, QueueMessage, StoredObject
from printserver_agent.printers.base import PrintSubsystem
from printserver_agent.queue_worker import QueueWorker

BUCKET = "printserver-123456789012-us-east-1"
CLIENT_ID = "test-store"


# -----------------------------
# Builders
# -----------------------------
def s3_event(key: str, bucket: str = BUCKET) -> str:
    return json.dumps({
        "Records": [{
            "eventVersion": "2.1",
            "eventSource": "aws:s3",
            "eventName": "ObjectCreated:Put",
            "s3": {
                "bucket": {"name": bucket, "arn": f"arn:aws:s3:::{bucket}"},
                "object": {"key": key, "size": 3},
            },
        }]
    })


def make_message(key: Optional[str] = None, body: Optional[str] = None, n: int = 1, receive_count: int = 1):
    return QueueMessage(
        message_id=f"msg{n:05d}-aaaa-bbbb",
        body=body if body is not None else s3_event(key),
        receipt_handle=f"rh-{n}",
        receive_count=receive_count,
    )


async def wait_until(predicate, timeout: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


# -----------------------------
# Fakes
# -----------------------------
class FakeQueue(MessageQueue):
    def __init__(self, batches=None, events=None, on_exhausted=None):
        self.batches = list(batches or [])
        self.events = events if events is not None else []
        self.on_exhausted = on_exhausted
        self.receive_calls = []
        self.deleted = []
        self.fail_delete = False

    async def receive(self, max_batch, wait_seconds, invisibility_seconds) -> List[QueueMessage]:
        self.receive_calls.append((max_batch, wait_seconds, invisibility_seconds))
        await asyncio.sleep(0)
        if self.batches:
            item = self.batches.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        if self.on_exhausted:
            self.on_exhausted()
        return []

    async def delete(self, receipt_handle: str):
        if self.fail_delete:
            raise RuntimeError("delete failed")
        self.events.append(("delete", receipt_handle))
        self.deleted.append(receipt_handle)


class FakeStorage(ObjectStorage):
    def __init__(self, events=None):
        self.objects = {}
        self.events = events if events is not None else []
        self.gets = []
        self.puts = []

    def add(self, key, data=b"%PDF", metadata=None, bucket=BUCKET):
        self.objects[(bucket, key)] = (data, dict(metadata or {}))

    async def get(self, container, key) -> StoredObject:
        self.events.append(("get", key))
        self.gets.append((container, key))
        if (container, key) not in self.objects:
            raise KeyError(f"NoSuchKey: {key}")
        data, metadata = self.objects[(container, key)]
        return StoredObject(body=io.BytesIO(data), metadata=metadata)

    async def put(self, container, key, data, metadata):
        self.puts.append((container, key, data, metadata))
        self.objects[(container, key)] = (data, dict(metadata))


class FakePrintSubsystem(PrintSubsystem):
    def __init__(self, devices=(), events=None):
        self.devices = list(devices)
        self.events = events if events is not None else []
        self.registered = []
        self.submitted = []
        self.list_calls = 0
        self.fail_list = False
        self.fail_register = False
        self.fail_submit = False
        self.gate: Optional[asyncio.Event] = None
        self.waiting = 0

    def listing(self) -> str:
        lines = [f"printer {d} is idle.  enabled since Mon 01 Jan 2024" for d in self.devices]
        lines.append("no system default destination")
        return "\n".join(lines)

    async def list_devices(self) -> str:
        self.list_calls += 1
        if self.fail_list:
            raise PrintSubsystemError(["lpstat", "-p", "-d"], 1, "lpstat: scheduler not responding")
        return self.listing()

    def register_command(self, name, uri, driver=None):
        return ["lpadmin", "-p", name, "-E", "-v", uri] + (["-P", str(driver)] if driver else ["-m", "everywhere"])

    async def register_device(self, name, uri, driver=None):
        self.events.append(("register", name))
        if self.fail_register:
            raise PrintSubsystemError(self.register_command(name, uri, driver), 1, "lpadmin: bad device-uri")
        self.registered.append((name, uri, driver))
        self.devices.append(name)

    def submit_command(self, name, file_path, options=""):
        return ["lp", "-d", name, str(file_path), *shlex.split(options or "")]

    async def submit(self, name, file_path, options=""):
        if self.gate is not None:
            self.waiting += 1
            await self.gate.wait()
        self.events.append(("submit", name))
        if self.fail_submit:
            raise PrintSubsystemError(self.submit_command(name, file_path, options), 1, "lp: The printer or class does not exist.")
        assert Path(file_path).exists()
        self.submitted.append((name, Path(file_path).name, options))
        return f"request id is {name}-1 (1 file(s))"


class RecordingCache(IdempotencyCache):
    def __init__(self, events, **kwargs):
        super().__init__(**kwargs)
        self.events = events

    def mark_processed(self, key, now=None):
        self.events.append(("mark", key))
        super().mark_processed(key, now)


# -----------------------------
# Fixtures
# -----------------------------
@pytest.fixture
def events():
    return []


@pytest.fixture
def settings(tmp_path):
    return AgentSettings(
        client_id=CLIENT_ID,
        tmp_dir=tmp_path / "tmp",
        drivers_dir=tmp_path / "drivers",
        printer_settle_seconds=0,
        connection_backoff_seconds=0.01,
        error_backoff_seconds=0.01,
        audit_log_path=tmp_path / "logs" / "audit.jsonl",
    )


@pytest.fixture
def queue(events):
    return FakeQueue(events=events)


@pytest.fixture
def storage(events):
    return FakeStorage(events=events)


@pytest.fixture
def subsystem(events):
    return FakePrintSubsystem(devices=["Label_Printer_1"], events=events)


@pytest.fixture
def make_worker(settings, queue, storage, subsystem, events):
    def _make(**overrides):
        s = settings.model_copy(update=overrides) if overrides else settings
        ctx = build_context(s, storage, queue, subsystem)
        ctx.cache = RecordingCache(events, ttl_seconds=s.idempotency_ttl_seconds)
        return QueueWorker(ctx)

    return _make
