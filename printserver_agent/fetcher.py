import asyncio
import logging
import os
import shutil
import tempfile
from contextlib import asynccontextmanager
from pathlib import Path, PurePosixPath

from printserver_agent.cloud.base import ObjectStorage
from printserver_agent.errors import TransferError
from printserver_agent.models import JobRecord

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
JOB_DIR_PREFIX = "job-"

PRINTER_METADATA_KEY = "printer"
OPTIONS_METADATA_KEY = "print-options"


class JobFetcher:
    """Download a stored artifact plus its delivery metadata to a temp file."""

    def __init__(self, storage: ObjectStorage, tmp_dir: Path):
        self.storage = storage
        self.tmp_dir = Path(tmp_dir)

    @staticmethod
    def _write(body, path: Path):
        try:
            with open(path, "wb") as f:
                while True:
                    chunk = body.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    f.write(chunk)
                f.flush()
                os.fsync(f.fileno())
        finally:
            close = getattr(body, "close", None)
            if callable(close):
                close()

    async def fetch(self, container: str, key: str) -> JobRecord:
        filename = PurePosixPath(key).name or "job"
        self.tmp_dir.mkdir(parents=True, exist_ok=True)
        # one dir per job so two uploads with the same name never collide
        job_dir = Path(tempfile.mkdtemp(prefix=JOB_DIR_PREFIX, dir=self.tmp_dir))
        local_path = job_dir / filename

        try:
            obj = await self.storage.get(container, key)
            await asyncio.to_thread(self._write, obj.body, local_path)
        except Exception as e:
            shutil.rmtree(job_dir, ignore_errors=True)
            raise TransferError(f"Failed to fetch s3://{container}/{key}: {e}", key=key) from e

        metadata = {k.lower(): v for k, v in (obj.metadata or {}).items()}
        return JobRecord(
            local_file_path=local_path,
            destination_id=metadata.get(PRINTER_METADATA_KEY) or None,
            delivery_options=metadata.get(OPTIONS_METADATA_KEY) or "",
        )

    def cleanup(self, job: JobRecord) -> bool:
        path = Path(job.local_file_path)
        try:
            if path.exists():
                path.unlink()
            if path.parent.name.startswith(JOB_DIR_PREFIX):
                path.parent.rmdir()
            return True
        except OSError as e:
            logger.warning("Failed to clean up temp file %s: %s", path, e)
            return False

    @asynccontextmanager
    async def downloaded(self, container: str, key: str):
        job = await self.fetch(container, key)
        try:
            yield job
        finally:
            self.cleanup(job)
