import platform

from printserver_agent.printers.base import PrintSubsystem
from printserver_agent.printers.cups import CupsPrintSubsystem
from printserver_agent.printers.dispatcher import PrinterDispatcher
from printserver_agent.printers.resolver import PrinterResolver, parse_destination

OS = platform.system()


def get_print_subsystem() -> PrintSubsystem:
    if OS in ("Linux", "Darwin"):
        return CupsPrintSubsystem()
    raise RuntimeError(f"Unsupported operating system: {OS}")


__all__ = [
    "PrintSubsystem",
    "CupsPrintSubsystem",
    "PrinterDispatcher",
    "PrinterResolver",
    "get_print_subsystem",
    "parse_destination",
]
