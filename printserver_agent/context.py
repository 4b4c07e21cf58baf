from dataclasses import dataclass

from printserver_agent.audit import AuditLog
from printserver_agent.cloud.base import MessageQueue, ObjectStorage
from printserver_agent.fetcher import JobFetcher
from printserver_agent.idempotency import IdempotencyCache
from printserver_agent.models import AgentSettings
from printserver_agent.printers.base import PrintSubsystem
from printserver_agent.printers.dispatcher import PrinterDispatcher
from printserver_agent.printers.resolver import PrinterResolver


@dataclass
class AgentContext:
    settings: AgentSettings
    storage: ObjectStorage
    queue: MessageQueue
    subsystem: PrintSubsystem
    cache: IdempotencyCache
    fetcher: JobFetcher
    resolver: PrinterResolver
    dispatcher: PrinterDispatcher
    audit: AuditLog


def build_context(
    settings: AgentSettings,
    storage: ObjectStorage,
    queue: MessageQueue,
    subsystem: PrintSubsystem,
) -> AgentContext:
    return AgentContext(
        settings=settings,
        storage=storage,
        queue=queue,
        subsystem=subsystem,
        cache=IdempotencyCache(
            ttl_seconds=settings.idempotency_ttl_seconds,
            sweep_interval=settings.idempotency_sweep_seconds,
        ),
        fetcher=JobFetcher(storage, settings.tmp_dir),
        resolver=PrinterResolver(
            subsystem,
            drivers_dir=settings.drivers_dir,
            settle_seconds=settings.printer_settle_seconds,
            dry_run=settings.dry_run,
        ),
        dispatcher=PrinterDispatcher(subsystem, dry_run=settings.dry_run),
        audit=AuditLog(settings.audit_log_path, settings.client_id),
    )
