from abc import ABC, abstractmethod
from typing import List, Optional

from printserver_agent.models import QueueMessage, QueueStatus, StoredObject


class ObjectStorage(ABC):

    @abstractmethod
    async def get(self, container: str, key: str) -> StoredObject:
        pass

    @abstractmethod
    async def put(self, container: str, key: str, data: bytes, metadata: dict):
        pass


class MessageQueue(ABC):

    @abstractmethod
    async def receive(self, max_batch: int, wait_seconds: int, invisibility_seconds: int) -> List[QueueMessage]:
        pass

    @abstractmethod
    async def delete(self, receipt_handle: str):
        pass

    async def status(self) -> Optional[QueueStatus]:
        return None
