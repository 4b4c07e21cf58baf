import logging
from pathlib import Path
from typing import Optional

from printserver_agent.errors import PrintSubsystemError
from printserver_agent.printers.base import PrintSubsystem

logger = logging.getLogger(__name__)


def log_prefix(tag: Optional[str]) -> str:
    return f"[{tag}] " if tag else ""


class PrinterDispatcher:
    def __init__(self, subsystem: PrintSubsystem, dry_run: bool = False):
        self.subsystem = subsystem
        self.dry_run = dry_run

    async def print(self, local_name: str, file_path: Path, options: str = "", tag: Optional[str] = None) -> bool:
        """
        Submit one file. False (never an exception) when the print CLI fails.

        ``tag`` (the short message id) prefixes every log line so concurrent
        jobs' CLI output can be told apart.
        """
        p = log_prefix(tag)
        if not local_name:
            logger.error("%sNo printer specified", p)
            return False

        file_path = Path(file_path)
        if not file_path.exists():
            logger.error("%sFile does not exist: %s", p, file_path)
            return False

        try:
            cmd = self.subsystem.submit_command(local_name, file_path, options)
        except ValueError as e:
            logger.error("%sUnparseable print options %r: %s", p, options, e)
            return False

        if self.dry_run:
            logger.info("%sTEST MODE: Would execute: %s", p, " ".join(cmd))
            return True

        logger.info("%sExecuting: %s", p, " ".join(cmd))
        try:
            out = await self.subsystem.submit(local_name, file_path, options)
        except PrintSubsystemError as e:
            logger.error("%sError while printing: %s", p, e)
            return False

        if out.strip():
            logger.info("%sPrint stdout: %s", p, out.strip())
        return True
