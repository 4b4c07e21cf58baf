"""
Decode queue message bodies into storage locators.

The queue carries storage ``ObjectCreated`` envelopes. Anything else (test
events, hand-written messages, garbage) decodes to an
:class:`InvalidNotification` instead of raising, and the caller drops it.
"""

import logging
from typing import Union
from urllib.parse import unquote_plus

from pydantic import ValidationError

from printserver_agent.models import (
    DeliveryNotification,
    InvalidNotification,
    S3EventEnvelope,
)

logger = logging.getLogger(__name__)

Notification = Union[DeliveryNotification, InvalidNotification]


def parse_notification(body: str) -> Notification:
    try:
        envelope = S3EventEnvelope.model_validate_json(body)
    except ValidationError as e:
        return InvalidNotification(reason=f"{e.error_count()} validation error(s)")

    record = envelope.Records[0]
    # keys arrive form-encoded: spaces as '+', reserved chars as %XX
    return DeliveryNotification(
        container=record.s3.bucket.name,
        object_key=unquote_plus(record.s3.object_.key),
    )


def in_namespace(notification: DeliveryNotification, prefix: str) -> bool:
    return notification.object_key.startswith(prefix)
