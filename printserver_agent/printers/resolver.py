"""
Turn a destination identifier into a local print device.

Identifier forms (from the ``printer`` metadata of the stored object):

- ``192.168.7.101/socket``      explicit address and protocol
- ``192.168.7.101``             address only, defaults to IPP
- ``Brother_MFC_L3770CDW_series`` a device already configured locally

Network destinations get a deterministic local name (``_192_168_7_101``) and
are registered with the print subsystem on first use. Two jobs hitting a new
printer at the same time may both register it; CUPS treats the second
``lpadmin`` for the same name as a modification, not an error.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional

from printserver_agent.errors import (
    InvalidDestinationError,
    PrintSubsystemError,
    UnsupportedProtocolError,
)
from printserver_agent.models import SUPPORTED_PROTOCOLS, Destination
from printserver_agent.printers.base import PrintSubsystem
from printserver_agent.printers.dispatcher import log_prefix

logger = logging.getLogger(__name__)

IPV4_RE = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")
DEFAULT_PROTOCOL = "ipp"

# --------------------------------------------------
# Driver (PPD) files, looked up in the drivers dir
# --------------------------------------------------
PROTOCOL_DRIVER_OVERRIDES = {"lpd": "ZebraPrinterPPD"}
VENDOR_DRIVER_COMPRESSED = "BrotherQL820NwbCupsPpd.gz"
VENDOR_DRIVER_PLAIN = "brother_ql820nwb_printer_en.ppd"
OTHER_KNOWN_DRIVERS = ("ZebraPrinterPPD",)

URI_TEMPLATES = {
    "socket": "socket://{host}/",
    "lpd": "lpd://{host}",
    "ipp": "ipp://{host}/ipp/print",
}


def local_printer_name(address: str) -> str:
    return "_" + re.sub(r"[^A-Za-z0-9]", "_", address)


def parse_destination(identifier: str) -> Destination:
    identifier = identifier.strip()
    if not identifier:
        raise InvalidDestinationError(identifier)

    if identifier.count("/") == 1:
        address, protocol = identifier.split("/")
        address = address.strip()
        protocol = protocol.strip().lower()
        if not address:
            raise InvalidDestinationError(identifier)
        if protocol not in SUPPORTED_PROTOCOLS:
            raise UnsupportedProtocolError(protocol)
        return Destination(
            kind="network",
            address=address,
            protocol=protocol,
            local_name=local_printer_name(address),
        )

    if IPV4_RE.match(identifier):
        return Destination(
            kind="network",
            address=identifier,
            protocol=DEFAULT_PROTOCOL,
            local_name=local_printer_name(identifier),
        )

    return Destination(kind="direct", local_name=identifier)


def device_uri(destination: Destination) -> str:
    return URI_TEMPLATES[destination.protocol].format(host=destination.address)


def select_driver(protocol: str, drivers_dir: Path) -> Optional[Path]:
    """PPD to register with, or None for the generic 'everywhere' driver."""
    if protocol == "ipp":
        return None

    candidates = []
    if protocol in PROTOCOL_DRIVER_OVERRIDES:
        candidates.append(PROTOCOL_DRIVER_OVERRIDES[protocol])
    candidates += [VENDOR_DRIVER_COMPRESSED, VENDOR_DRIVER_PLAIN, *OTHER_KNOWN_DRIVERS]

    for name in candidates:
        path = Path(drivers_dir) / name
        if path.is_file():
            logger.info("Using driver file: %s", path)
            return path

    logger.info("No driver files found - using generic 'everywhere' driver")
    return None


class PrinterResolver:
    def __init__(
        self,
        subsystem: PrintSubsystem,
        drivers_dir: Path,
        settle_seconds: float = 5,
        dry_run: bool = False,
    ):
        self.subsystem = subsystem
        self.drivers_dir = Path(drivers_dir)
        self.settle_seconds = settle_seconds
        self.dry_run = dry_run

    async def is_known(self, name: str, tag: Optional[str] = None) -> bool:
        try:
            listing = await self.subsystem.list_devices()
        except PrintSubsystemError as e:
            logger.warning("%sError checking printer registration: %s", log_prefix(tag), e)
            return False
        # whole-word match: '_10_0_0_1' must not match '_10_0_0_12'
        tokens = set(re.split(r"[\s:]+", listing))
        return name in tokens

    async def register(self, destination: Destination, tag: Optional[str] = None) -> bool:
        p = log_prefix(tag)
        driver = select_driver(destination.protocol, self.drivers_dir)
        uri = device_uri(destination)

        if self.dry_run:
            cmd = self.subsystem.register_command(destination.local_name, uri, driver)
            logger.info("%sTEST MODE: Would execute: %s", p, " ".join(cmd))
            return True

        logger.info("%sRegistering %s as %s (%s)", p, destination.address, destination.local_name, uri)
        try:
            await self.subsystem.register_device(destination.local_name, uri, driver)
        except PrintSubsystemError as e:
            logger.error("%sError registering printer %s: %s", p, destination.local_name, e)
            return False

        # give CUPS time to bring the queue up
        await asyncio.sleep(self.settle_seconds)
        return True

    async def resolve(self, identifier: str, tag: Optional[str] = None) -> Destination:
        p = log_prefix(tag)
        destination = parse_destination(identifier)

        if destination.is_network:
            logger.info("%sPrinting on %s (%s)", p, destination.address, destination.protocol)
            if not await self.is_known(destination.local_name, tag):
                logger.info("%s%s is not registered as a printer", p, destination.address)
                await self.register(destination, tag)
        else:
            logger.info("%sPrinting on %s (direct printer name)", p, destination.local_name)
            if not await self.is_known(destination.local_name, tag):
                logger.warning(
                    "%sPrinter '%s' not found in system; make sure it is properly configured",
                    p,
                    destination.local_name,
                )

        return destination
