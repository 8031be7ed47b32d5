"""Per-alert lifecycle: update, delayed clear, or delete."""

import logging
import threading
from collections.abc import Callable
from enum import Enum
from logging import Logger, LoggerAdapter

from alertntfy.adapters.interfaces import NotificationRelay
from alertntfy.config import NtfyConfig
from alertntfy.domain.errors import DeliveryAbortError
from alertntfy.domain.models import Alert
from alertntfy.services.composer import NotificationComposer

logger = logging.getLogger(__name__)

Scheduler = Callable[[float, Callable[[], None]], None]


def timer_scheduler(delay: float, action: Callable[[], None]) -> None:
    """Run `action` once after `delay` seconds on a daemon timer thread."""

    timer = threading.Timer(delay, action)
    timer.daemon = True
    timer.start()


class LifecycleOperation(str, Enum):
    update = "update"
    update_then_clear = "update_then_clear"
    delete = "delete"


def classify(alert: Alert, config: NtfyConfig) -> LifecycleOperation:
    if not alert.is_resolved:
        return LifecycleOperation.update
    if config.delete_resolved_notification:
        return LifecycleOperation.delete
    if config.clear_resolved_notification:
        return LifecycleOperation.update_then_clear
    return LifecycleOperation.update


class LifecycleDispatcher:
    def __init__(
        self,
        config: NtfyConfig,
        relay: NotificationRelay,
        composer: NotificationComposer | None = None,
        scheduler: Scheduler = timer_scheduler,
    ) -> None:
        self.config = config
        self.relay = relay
        self.composer = composer or NotificationComposer(config)
        self.scheduler = scheduler

    def dispatch(self, alert: Alert, log: Logger | LoggerAdapter | None = None) -> LifecycleOperation:
        """Run the operation for this alert.

        Returns once the update (or delete) has finished; a follow-up clear
        is only scheduled, never awaited. Raises DeliveryAbortError.
        """

        log = log or logger
        operation = classify(alert, self.config)
        if operation == LifecycleOperation.delete:
            self.delete(alert, log)
            return operation

        self.update(alert, log)
        if operation == LifecycleOperation.update_then_clear:
            self.scheduler(self.config.clear_delay, lambda: self._clear_later(alert, log))
        return operation

    def update(self, alert: Alert, log: Logger | LoggerAdapter) -> None:
        notification = self.composer.compose(alert, log)
        self.relay.send(
            "POST",
            notification.url,
            body=notification.body,
            headers=notification.request_headers(),
            log=log,
        )

    def clear(self, alert: Alert, log: Logger | LoggerAdapter) -> None:
        log.debug("Alert is resolved, clearing notification")
        self.relay.send("PUT", self.composer.resolve_url(alert) + "/clear", log=log)

    def delete(self, alert: Alert, log: Logger | LoggerAdapter) -> None:
        log.debug("Alert is resolved, deleting notification")
        self.relay.send("DELETE", self.composer.resolve_url(alert), log=log)

    def _clear_later(self, alert: Alert, log: Logger | LoggerAdapter) -> None:
        try:
            self.clear(alert, log)
        except DeliveryAbortError as exc:
            log.error("Failed to clear notification: %s", exc)
        except Exception:  # noqa: BLE001
            log.exception("Unexpected error while clearing notification")
        else:
            log.info("Cleared resolved notification")
