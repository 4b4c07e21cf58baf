import asyncio
import logging
from pathlib import Path
from typing import Optional

from printserver_agent.cloud.base import ObjectStorage
from printserver_agent.fetcher import OPTIONS_METADATA_KEY, PRINTER_METADATA_KEY
from printserver_agent.models import UploadResult

logger = logging.getLogger(__name__)


def job_key(client_id: str, filename: str) -> str:
    return f"clients/{client_id}/{filename}"


async def upload_print_job(
    storage: ObjectStorage,
    bucket: str,
    file_path,
    client_id: str,
    printer_id: Optional[str] = None,
    print_options: str = "",
) -> UploadResult:
    """
    Drop a file into the bucket for ``client_id``.

    The bucket notification routes it to ``printserver-{client_id}``; the
    printer and options travel as object metadata, not in the key.
    """
    path = Path(file_path)
    key = job_key(client_id, path.name)

    metadata = {}
    if printer_id:
        metadata[PRINTER_METADATA_KEY] = printer_id
    if print_options:
        metadata[OPTIONS_METADATA_KEY] = print_options

    try:
        data = await asyncio.to_thread(path.read_bytes)
        await storage.put(bucket, key, data, metadata)
    except Exception as e:
        logger.error("Upload failed: %s", e)
        return UploadResult(success=False, error=str(e))

    logger.info("Uploaded: s3://%s/%s", bucket, key)
    logger.info("Printer: %s | Options: %s", printer_id, print_options or "none")
    logger.info("S3 notification will route to: printserver-%s", client_id)
    return UploadResult(success=True, bucket=bucket, key=key)
