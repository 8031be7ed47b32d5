"""Adapter interface contracts."""

from abc import ABC, abstractmethod
from logging import Logger, LoggerAdapter


class NotificationRelay(ABC):
    """Deliver one request to a push notification relay."""

    @abstractmethod
    def send(
        self,
        method: str,
        url: str,
        body: str | None = None,
        headers: dict[str, str] | None = None,
        log: Logger | LoggerAdapter | None = None,
    ) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release transport resources, if any."""
