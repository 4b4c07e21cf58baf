from printserver_agent.cloud.base import MessageQueue, ObjectStorage

__all__ = ["MessageQueue", "ObjectStorage"]
