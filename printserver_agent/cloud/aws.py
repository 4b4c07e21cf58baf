"""
boto3 adapters for the bucket and the per-client queue.

The SDK is blocking; every call is pushed to a worker thread with
``asyncio.to_thread`` so sibling jobs keep running while one waits on the
network.
"""

import asyncio
import logging
from typing import List, Optional

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    HTTPClientError,
)

from printserver_agent.cloud.base import MessageQueue, ObjectStorage
from printserver_agent.errors import QueueConnectionError, QueueError
from printserver_agent.models import QueueMessage, QueueStatus, StoredObject

logger = logging.getLogger(__name__)

CONNECTIVITY_ERRORS = (BotoConnectionError, HTTPClientError, ConnectionError, TimeoutError)

QUEUE_ATTRIBUTES = {
    "VisibilityTimeout": "300",  # 5 minutes
    "MessageRetentionPeriod": "604800",  # 7 days
    "ReceiveMessageWaitTimeSeconds": "20",  # long polling
}


# -----------------------------
# S3
# -----------------------------
class S3ObjectStorage(ObjectStorage):
    def __init__(self, client):
        self.client = client

    async def get(self, container: str, key: str) -> StoredObject:
        response = await asyncio.to_thread(self.client.get_object, Bucket=container, Key=key)
        return StoredObject(body=response["Body"], metadata=response.get("Metadata") or {})

    async def put(self, container: str, key: str, data: bytes, metadata: dict):
        await asyncio.to_thread(
            self.client.put_object,
            Bucket=container,
            Key=key,
            Body=data,
            Metadata=metadata,
        )


# -----------------------------
# SQS
# -----------------------------
class SqsMessageQueue(MessageQueue):
    def __init__(self, client, queue_url: str):
        self.client = client
        self.queue_url = queue_url

    async def receive(self, max_batch: int, wait_seconds: int, invisibility_seconds: int) -> List[QueueMessage]:
        try:
            response = await asyncio.to_thread(
                self.client.receive_message,
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=max_batch,
                WaitTimeSeconds=wait_seconds,
                VisibilityTimeout=invisibility_seconds,
                MessageSystemAttributeNames=["ApproximateReceiveCount"],
            )
        except CONNECTIVITY_ERRORS as e:
            raise QueueConnectionError(str(e)) from e
        except (ClientError, BotoCoreError) as e:
            raise QueueError(str(e)) from e

        messages = []
        for m in response.get("Messages", []):
            attrs = m.get("Attributes") or {}
            messages.append(QueueMessage(
                message_id=m.get("MessageId", ""),
                body=m.get("Body", ""),
                receipt_handle=m["ReceiptHandle"],
                receive_count=int(attrs.get("ApproximateReceiveCount", "1")),
            ))
        return messages

    async def delete(self, receipt_handle: str):
        await asyncio.to_thread(
            self.client.delete_message,
            QueueUrl=self.queue_url,
            ReceiptHandle=receipt_handle,
        )

    async def status(self) -> Optional[QueueStatus]:
        try:
            response = await asyncio.to_thread(
                self.client.get_queue_attributes,
                QueueUrl=self.queue_url,
                AttributeNames=["ApproximateNumberOfMessages", "ApproximateNumberOfMessagesNotVisible"],
            )
            attrs = response["Attributes"]
            return QueueStatus(
                visible=int(attrs["ApproximateNumberOfMessages"]),
                not_visible=int(attrs["ApproximateNumberOfMessagesNotVisible"]),
            )
        except Exception as e:
            logger.debug("Queue status unavailable: %s", e)
            return None


# -----------------------------
# Resolution helpers
# -----------------------------
def resolve_queue_url(sqs_client, queue_name: str) -> str:
    try:
        return sqs_client.get_queue_url(QueueName=queue_name)["QueueUrl"]
    except sqs_client.exceptions.QueueDoesNotExist:
        logger.info("Queue '%s' does not exist. Creating it now...", queue_name)

    try:
        response = sqs_client.create_queue(QueueName=queue_name, Attributes=QUEUE_ATTRIBUTES)
    except ClientError as e:
        raise QueueError(f"Failed to create queue '{queue_name}': {e}") from e
    logger.info("Created queue: %s", queue_name)
    return response["QueueUrl"]


_resolved_bucket_name: Optional[str] = None


def resolve_bucket_name(session, configured: Optional[str] = None) -> str:
    """Configured bucket, else ``printserver-{account}-{region}`` (as deployed)."""
    global _resolved_bucket_name
    if configured:
        return configured
    if _resolved_bucket_name:
        return _resolved_bucket_name

    account_id = session.client("sts").get_caller_identity()["Account"]
    region = session.region_name or "us-east-1"
    _resolved_bucket_name = f"printserver-{account_id}-{region}"
    return _resolved_bucket_name
