"""Alert batch forwarding."""

import logging
from collections.abc import Sequence
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from logging import Logger, LoggerAdapter

from alertntfy.domain.errors import DeliveryAbortError
from alertntfy.domain.models import Alert
from alertntfy.services.lifecycle import LifecycleDispatcher
from alertntfy.telemetry.logging import bind

logger = logging.getLogger(__name__)


class AlertForwarder:
    """Forward every alert of a webhook batch, one after the other."""

    def __init__(self, dispatcher: LifecycleDispatcher, executor: Executor | None = None) -> None:
        self.dispatcher = dispatcher
        self.executor = executor or ThreadPoolExecutor(thread_name_prefix="alertntfy-forward")

    def forward_alerts(self, alerts: Sequence[Alert], log: Logger | LoggerAdapter | None = None) -> bool:
        """True only if every alert was delivered. A failure never stops later alerts."""

        log = log or logger
        success = True
        for alert in alerts:
            alert_log = bind(log, alert_fingerprint=alert.fingerprint)
            try:
                self.dispatcher.dispatch(alert, alert_log)
            except DeliveryAbortError as exc:
                alert_log.error("Failed to forward alert to ntfy: %s", exc)
                success = False
            except Exception:  # noqa: BLE001
                alert_log.exception("Unexpected error while forwarding alert to ntfy")
                success = False
            else:
                alert_log.info("Successfully forwarded alert to ntfy")
        return success

    def submit(self, alerts: Sequence[Alert], log: Logger | LoggerAdapter | None = None) -> None:
        """Forward the batch in the background; the outcome is only logged."""

        log = log or logger
        future = self.executor.submit(self.forward_alerts, list(alerts), log)

        def _report(done: Future) -> None:
            if not done.cancelled() and done.exception() is not None:
                log.error("Background forwarding crashed: %s", done.exception())

        future.add_done_callback(_report)

    def shutdown(self) -> None:
        """Drop queued batches and wait for the running one before the relay closes."""

        self.executor.shutdown(wait=True, cancel_futures=True)
