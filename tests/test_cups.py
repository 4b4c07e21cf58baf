import asyncio
from pathlib import Path

import pytest

from printserver_agent.errors import PrintSubsystemError
from printserver_agent.printers import cups
from printserver_agent.printers.base import PrintSubsystem
from printserver_agent.printers.cups import CupsPrintSubsystem


class FakeProc:
    def __init__(self, returncode=0, stdout=b"", stderr=b""):
        self.returncode = returncode
        self._out = (stdout, stderr)

    async def communicate(self):
        return self._out


class Recorded(list):
    pass


@pytest.fixture
def subprocess_calls(monkeypatch):
    recorded = Recorded()
    recorded.results = []

    async def fake_exec(*cmd, **kwargs):
        recorded.append(list(cmd))
        result = recorded.results.pop(0) if recorded.results else FakeProc()
        if isinstance(result, Exception):
            raise result
        return result

    monkeypatch.setattr(cups.asyncio, "create_subprocess_exec", fake_exec)
    return recorded


def test_submit_command_passes_options_through():
    cmd = CupsPrintSubsystem().submit_command(
        "_10_0_0_7", Path("/tmp/job/label.pdf"), "-o media=Custom.62x50mm -o fit-to-page"
    )
    assert cmd == ["lp", "-d", "_10_0_0_7", "/tmp/job/label.pdf", "-o", "media=Custom.62x50mm", "-o", "fit-to-page"]


def test_submit_command_without_options():
    assert CupsPrintSubsystem().submit_command("P", Path("a.pdf")) == ["lp", "-d", "P", "a.pdf"]


def test_register_command_with_and_without_driver():
    sub = CupsPrintSubsystem()
    assert sub.register_command("_10_0_0_7", "socket://10.0.0.7/", Path("/d/ZebraPrinterPPD")) == [
        "lpadmin", "-p", "_10_0_0_7", "-E", "-v", "socket://10.0.0.7/", "-P", "/d/ZebraPrinterPPD",
    ]
    assert sub.register_command("_10_0_0_7", "ipp://10.0.0.7/ipp/print") == [
        "lpadmin", "-p", "_10_0_0_7", "-E", "-v", "ipp://10.0.0.7/ipp/print", "-m", "everywhere",
    ]


def test_list_devices_runs_lpstat(subprocess_calls):
    subprocess_calls.results.append(FakeProc(stdout=b"printer Label_Printer_1 is idle.\n"))

    out = asyncio.run(CupsPrintSubsystem().list_devices())

    assert subprocess_calls == [["lpstat", "-p", "-d"]]
    assert "Label_Printer_1" in out


def test_submit_returns_stdout(subprocess_calls):
    subprocess_calls.results.append(FakeProc(stdout=b"request id is P-12 (1 file(s))\n"))

    out = asyncio.run(CupsPrintSubsystem().submit("P", Path("a.pdf"), "-n 2"))

    assert subprocess_calls == [["lp", "-d", "P", "a.pdf", "-n", "2"]]
    assert out.startswith("request id is P-12")


def test_non_zero_exit_raises_with_output(subprocess_calls):
    subprocess_calls.results.append(FakeProc(returncode=1, stderr=b"lp: The printer or class does not exist.\n"))

    with pytest.raises(PrintSubsystemError) as exc:
        asyncio.run(CupsPrintSubsystem().submit("Nope", Path("a.pdf")))

    assert exc.value.returncode == 1
    assert exc.value.output == "lp: The printer or class does not exist."


def test_missing_binary_raises(subprocess_calls):
    subprocess_calls.results.append(FileNotFoundError("lpadmin"))

    with pytest.raises(PrintSubsystemError) as exc:
        asyncio.run(CupsPrintSubsystem().register_device("P", "lpd://10.0.0.7"))

    assert exc.value.returncode == -1


def test_subsystem_must_describe_its_registration_command():
    class SubmitOnly(PrintSubsystem):
        async def list_devices(self):
            return ""

        async def register_device(self, name, uri, driver=None):
            pass

        def submit_command(self, name, file_path, options=""):
            return ["lp", "-d", name, str(file_path)]

        async def submit(self, name, file_path, options=""):
            return ""

    with pytest.raises(TypeError):
        SubmitOnly()
