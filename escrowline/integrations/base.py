from abc import ABC, abstractmethod

from escrowline.common.logging import get_logger


class BaseIntegration(ABC):
    """Base class for external service integrations.

    Provides a namespaced logger and a required health_check interface so the
    service can report connectivity from ``/health``.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = get_logger(f"integrations.{name}")

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the integration is reachable and functional."""
        ...
