from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional


class PrintSubsystem(ABC):

    @abstractmethod
    async def list_devices(self) -> str:
        pass

    @abstractmethod
    def register_command(self, name: str, uri: str, driver: Optional[Path] = None) -> List[str]:
        pass

    @abstractmethod
    async def register_device(self, name: str, uri: str, driver: Optional[Path] = None):
        pass

    @abstractmethod
    def submit_command(self, name: str, file_path: Path, options: str = "") -> List[str]:
        pass

    @abstractmethod
    async def submit(self, name: str, file_path: Path, options: str = "") -> str:
        pass
