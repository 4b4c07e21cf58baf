"""
Receive / process / acknowledge loop for one client queue.

Lifecycle: startup drain (zero-wait receives until the backlog is empty),
then long-poll receives until shutdown is requested. Each batch is processed
concurrently; one message's failure never affects its siblings.

A message is deleted only when it is terminal (malformed, foreign, duplicate)
or after a successful print, and in that case only after its key has been
recorded in the idempotency cache. Everything else is left to reappear after
the visibility timeout.

Shutdown: ``request_shutdown`` stops new receives and makes not-yet-started
jobs skip; jobs already running finish. The worker stops when the in-flight
counter reaches zero.
"""

import asyncio
import logging
from pathlib import PurePosixPath
from typing import List

from printserver_agent.context import AgentContext
from printserver_agent.errors import (
    DispatchFailure,
    DuplicateDelivery,
    ForeignNamespace,
    MalformedNotification,
    PrintAgentError,
    QueueConnectionError,
)
from printserver_agent.models import ProcessOutcome, QueueMessage
from printserver_agent.notifications import in_namespace, parse_notification

logger = logging.getLogger(__name__)

DROP_OUTCOMES = {
    MalformedNotification: ProcessOutcome.dropped_malformed,
    ForeignNamespace: ProcessOutcome.dropped_foreign,
    DuplicateDelivery: ProcessOutcome.dropped_duplicate,
}


class QueueWorker:
    def __init__(self, ctx: AgentContext):
        self.ctx = ctx
        self.settings = ctx.settings
        self.in_flight = 0
        self._shutdown = asyncio.Event()
        self._stopped = asyncio.Event()
        self._connection_lost = False

    # -----------------------------
    # Shutdown
    # -----------------------------
    @property
    def shutdown_requested(self) -> bool:
        return self._shutdown.is_set()

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def request_shutdown(self):
        if self._shutdown.is_set():
            return
        logger.info("Shutdown requested")
        self._shutdown.set()
        if self.in_flight > 0:
            logger.info("Currently processing %d message(s), will exit after completion...", self.in_flight)
        else:
            self._stopped.set()

    async def _pause(self, seconds: float):
        try:
            await asyncio.wait_for(self._shutdown.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            pass

    # -----------------------------
    # Main loop
    # -----------------------------
    async def run(self):
        logger.info(
            "Print Client: %s (%s)", self.settings.client_id, "TEST" if self.settings.dry_run else "LIVE"
        )
        self.ctx.audit.record("agent_startup", {"dry_run": self.settings.dry_run})

        consumer = asyncio.create_task(self._consume())
        sweeper = asyncio.create_task(self.ctx.cache.run_sweeper(self._shutdown))
        stopped = asyncio.create_task(self._stopped.wait())
        try:
            done, _ = await asyncio.wait({consumer, stopped}, return_when=asyncio.FIRST_COMPLETED)
            if consumer in done:
                consumer.result()
        finally:
            for task in (consumer, sweeper, stopped):
                if not task.done():
                    task.cancel()
            await asyncio.gather(consumer, sweeper, stopped, return_exceptions=True)

        self.ctx.audit.record("agent_shutdown", {})
        logger.info("Print client shutdown complete")

    async def _consume(self):
        try:
            await self.drain()
        except Exception as e:
            logger.error("Startup drain failed: %s", e)

        status = await self.ctx.queue.status()
        if status and status.not_visible > 0:
            logger.info("%d in-flight", status.not_visible)
        logger.info("Ready")

        await self.poll()
        if self.in_flight == 0:
            self._stopped.set()

    async def drain(self) -> int:
        total = 0
        while not self.shutdown_requested:
            messages = await self.ctx.queue.receive(
                self.settings.receive_batch_size, 0, self.settings.visibility_timeout
            )
            if not messages:
                break
            await self.process_batch(messages)
            total += len(messages)

        if total:
            logger.info("Processed %d startup message(s)", total)
        return total

    async def poll(self):
        while not self.shutdown_requested:
            try:
                messages = await self.ctx.queue.receive(
                    self.settings.receive_batch_size,
                    self.settings.receive_wait_seconds,
                    self.settings.visibility_timeout,
                )
            except (QueueConnectionError, ConnectionError):
                if self.shutdown_requested:
                    break
                if not self._connection_lost:
                    logger.warning("Connection lost")
                    self._connection_lost = True
                await self._pause(self.settings.connection_backoff_seconds)
                continue
            except Exception as e:
                if self.shutdown_requested:
                    break
                logger.error("Error: %s", e)
                await self._pause(self.settings.error_backoff_seconds)
                continue

            if self._connection_lost:
                logger.info("Connected")
                self._connection_lost = False

            if not messages:
                continue
            if self.shutdown_requested:
                break

            await self.process_batch(messages)

    async def process_batch(self, messages: List[QueueMessage]):
        results = await asyncio.gather(
            *(self.process_message(m) for m in messages), return_exceptions=True
        )
        for message, result in zip(messages, results):
            if isinstance(result, BaseException):
                logger.error("[%s] Message processing failed: %r", message.short_id, result)
        return results

    # -----------------------------
    # Per-message pipeline
    # -----------------------------
    async def process_message(self, message: QueueMessage) -> ProcessOutcome:
        mid = message.short_id
        self.in_flight += 1
        logger.info("[%s] Processing message (%d active)", mid, self.in_flight)
        try:
            if self.shutdown_requested:
                logger.info("[%s] Shutdown requested, skipping message", mid)
                self.ctx.audit.record("job_skipped", {"message_id": message.message_id})
                return ProcessOutcome.skipped_shutdown

            if message.receive_count > 1:
                logger.warning(
                    "[%s] RECEIVE COUNT %d: message has been delivered before", mid, message.receive_count
                )

            try:
                return await self._handle(message, mid)
            except PrintAgentError as e:
                return await self._handle_error(message, mid, e)
            except Exception as e:
                logger.exception("[%s] Error processing message", mid)
                return self._leave_for_retry(message, mid, e)
        finally:
            self.in_flight -= 1
            logger.info("[%s] Done (%d active)", mid, self.in_flight)
            if self.shutdown_requested and self.in_flight == 0:
                logger.info("All messages processed, shutting down...")
                self._stopped.set()

    async def _handle(self, message: QueueMessage, mid: str) -> ProcessOutcome:
        notification = parse_notification(message.body)
        if not notification.is_valid:
            raise MalformedNotification(f"Skipping message with unknown format ({notification.reason})")

        key = notification.object_key
        logger.info("[%s] File: %s", mid, PurePosixPath(key).name)

        if not in_namespace(notification, self.settings.namespace_prefix):
            raise ForeignNamespace(f"Skipping message for different client: {key}", key=key)

        if self.ctx.cache.has(key):
            raise DuplicateDelivery(f"Skipping already printed job: {key}", key=key)

        logger.info("[%s] Downloading...", mid)
        async with self.ctx.fetcher.downloaded(notification.container, key) as job:
            printer_id = job.destination_id
            if not printer_id:
                raise DispatchFailure("No printer specified", key=key)

            logger.info("[%s] Printing to %s...", mid, printer_id)
            destination = await self.ctx.resolver.resolve(printer_id, tag=mid)
            printed = await self.ctx.dispatcher.print(
                destination.local_name, job.local_file_path, job.delivery_options, tag=mid
            )
            if not printed:
                raise DispatchFailure(f"Print failed on {destination.local_name}", key=key, printer=printer_id)

            # recorded before the ack; a failed delete then redelivers as a duplicate
            self.ctx.cache.mark_processed(key)
            await self.ctx.queue.delete(message.receipt_handle)

        logger.info("[%s] Printed: %s", mid, printer_id)
        self.ctx.audit.record("job_printed", {
            "message_id": message.message_id,
            "key": key,
            "printer": printer_id,
            "options": job.delivery_options,
        })
        return ProcessOutcome.printed

    async def _handle_error(self, message: QueueMessage, mid: str, error: PrintAgentError) -> ProcessOutcome:
        if not error.acknowledge:
            logger.error("[%s] Error processing message: %s", mid, error)
            return self._leave_for_retry(message, mid, error)

        if isinstance(error, MalformedNotification):
            logger.warning("[%s] %s", mid, error.message)
        else:
            logger.info("[%s] %s", mid, error.message)

        try:
            await self.ctx.queue.delete(message.receipt_handle)
        except Exception as e:
            logger.error("[%s] Failed to delete message: %s", mid, e)
            return self._leave_for_retry(message, mid, e)

        self.ctx.audit.record("message_dropped", {
            "message_id": message.message_id,
            "reason": type(error).__name__,
            "key": error.details.get("key"),
        })
        return DROP_OUTCOMES.get(type(error), ProcessOutcome.dropped_malformed)

    def _leave_for_retry(self, message: QueueMessage, mid: str, error: Exception) -> ProcessOutcome:
        logger.info("[%s] Message will be retried after visibility timeout", mid)
        self.ctx.audit.record("job_failed", {
            "message_id": message.message_id,
            "error": str(error),
            "receive_count": message.receive_count,
        })
        return ProcessOutcome.retry
