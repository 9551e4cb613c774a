# cloud/base.py

import threading
from abc import ABC, abstractmethod


class CloudService(ABC):
    """Operations the orchestration loop can perform on a cloud resource."""

    provider_name = "cloud"

    @abstractmethod
    def scale_down(self, resource_name: str, cancel: threading.Event | None = None) -> None:
        ...

    @abstractmethod
    def scale_up(self, resource_name: str, cancel: threading.Event | None = None) -> None:
        ...

    @abstractmethod
    def get_current_scale(self, resource_name: str, cancel: threading.Event | None = None) -> int:
        ...

    def close(self) -> None:
        """Release background resources. No-op unless a provider starts any."""
