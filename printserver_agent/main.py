import argparse
import asyncio
import logging
import os
import signal
from typing import List, Optional

import boto3

from printserver_agent import env
from printserver_agent.cloud.aws import (
    S3ObjectStorage,
    SqsMessageQueue,
    resolve_bucket_name,
    resolve_queue_url,
)
from printserver_agent.context import build_context
from printserver_agent.models import AgentSettings
from printserver_agent.printers import get_print_subsystem
from printserver_agent.queue_worker import QueueWorker
from printserver_agent.uploader import upload_print_job

logger = logging.getLogger("printserver_agent")


def setup_logging(level: str = "INFO"):
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)-7s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="printserver-agent",
        description="Print files delivered to this client's queue, or upload a file for printing.",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Listen for print jobs (default).")

    upload = subparsers.add_parser("upload", help="Upload a file for a client to print, then exit.")
    upload.add_argument("file", help="File to print.")
    upload.add_argument("client_id", help="Client that should print the file.")
    upload.add_argument(
        "printer",
        help="Printer identifier: '192.168.7.101/socket', '192.168.7.101' (IPP) or a local printer name.",
    )
    upload.add_argument("options", nargs="?", default="", help="Raw lp options, e.g. '-o media=Custom.62x50mm'.")

    return parser.parse_args(argv)


def install_signal_handlers(loop: asyncio.AbstractEventLoop, worker: QueueWorker):
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, worker.request_shutdown)
        except NotImplementedError:
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(worker.request_shutdown))


async def serve(worker: QueueWorker):
    install_signal_handlers(asyncio.get_running_loop(), worker)
    await worker.run()


def run_agent(settings: AgentSettings) -> int:
    try:
        session = boto3.session.Session(region_name=settings.region)
        sqs = session.client("sqs")
        s3 = session.client("s3")
        queue_name = settings.resolved_queue_name
        queue_url = resolve_queue_url(sqs, queue_name)
        subsystem = get_print_subsystem()
    except Exception as e:
        logger.error("Failed to start client: %s", e)
        return 1
    logger.info("Queue: %s", queue_name)

    ctx = build_context(settings, S3ObjectStorage(s3), SqsMessageQueue(sqs, queue_url), subsystem)
    worker = QueueWorker(ctx)

    # a long-poll receive may still be parked in a worker thread; close without joining it
    loop = asyncio.new_event_loop()
    try:
        loop.run_until_complete(serve(worker))
    finally:
        loop.close()
    return 0


def run_upload(settings: AgentSettings, args: argparse.Namespace) -> int:
    logger.info("Quick Print: %s", args.file)
    logger.info("Client: %s | Printer: %s", args.client_id, args.printer)

    try:
        session = boto3.session.Session(region_name=settings.region)
        bucket = resolve_bucket_name(session, settings.bucket_name)
        storage = S3ObjectStorage(session.client("s3"))
    except Exception as e:
        logger.error("Upload error: %s", e)
        return 1

    result = asyncio.run(upload_print_job(
        storage,
        bucket,
        args.file,
        args.client_id,
        printer_id=args.printer,
        print_options=args.options,
    ))
    if not result.success:
        return 1

    logger.info("Print job uploaded successfully: %s", result.key)
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(env.LOG_LEVEL)
    settings = env.load_settings()

    if args.command == "upload":
        return run_upload(settings, args)
    return run_agent(settings)


def cli():
    code = main()
    logging.shutdown()
    os._exit(code)


if __name__ == "__main__":
    cli()
