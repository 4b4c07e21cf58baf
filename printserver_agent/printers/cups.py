import asyncio
import logging
import shlex
from pathlib import Path
from typing import List, Optional

from printserver_agent.errors import PrintSubsystemError
from printserver_agent.printers.base import PrintSubsystem

logger = logging.getLogger(__name__)


class CupsPrintSubsystem(PrintSubsystem):
    """lpstat / lpadmin / lp, run without a shell."""

    def __init__(self, lp_path: str = "lp", lpstat_path: str = "lpstat", lpadmin_path: str = "lpadmin"):
        self.lp_path = lp_path
        self.lpstat_path = lpstat_path
        self.lpadmin_path = lpadmin_path

    async def _run(self, cmd: List[str]) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise PrintSubsystemError(cmd, -1, str(e)) from e

        stdout, stderr = await proc.communicate()
        out = stdout.decode(errors="ignore")
        err = stderr.decode(errors="ignore")
        if proc.returncode != 0:
            raise PrintSubsystemError(cmd, proc.returncode, out + err)
        if err.strip():
            logger.debug("%s stderr: %s", cmd[0], err.strip())
        return out

    async def list_devices(self) -> str:
        return await self._run([self.lpstat_path, "-p", "-d"])

    def register_command(self, name: str, uri: str, driver: Optional[Path] = None) -> List[str]:
        cmd = [self.lpadmin_path, "-p", name, "-E", "-v", uri]
        if driver:
            cmd += ["-P", str(driver)]
        else:
            cmd += ["-m", "everywhere"]
        return cmd

    async def register_device(self, name: str, uri: str, driver: Optional[Path] = None):
        await self._run(self.register_command(name, uri, driver))

    def submit_command(self, name: str, file_path: Path, options: str = "") -> List[str]:
        # options are passed through as-is; only split into argv words
        return [self.lp_path, "-d", name, str(file_path), *shlex.split(options or "")]

    async def submit(self, name: str, file_path: Path, options: str = "") -> str:
        return await self._run(self.submit_command(name, file_path, options))
