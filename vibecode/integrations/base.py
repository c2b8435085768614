from abc import ABC, abstractmethod

from vibecode.common.logging import get_logger


class BaseIntegration(ABC):
    """Base class for every external collaborator (model API, key-value store, disk).

    Subclasses implement ``health_check``; ``probe`` wraps it for the
    ``/health`` endpoint so one failing dependency cannot break the report.
    ``close`` releases pooled connections at shutdown.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = get_logger(f"integrations.{name}")

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True when the integration is reachable and functional."""
        ...

    async def probe(self) -> bool:
        try:
            healthy = await self.health_check()
        except Exception as e:
            self.logger.error("%s health check raised: %s", self.name, e)
            return False
        if not healthy:
            self.logger.warning("%s health check failed", self.name)
        return bool(healthy)

    async def close(self) -> None:
        return None
