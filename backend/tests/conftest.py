import os
from collections.abc import Callable
from concurrent.futures import Executor, Future
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

os.environ.setdefault("ALERTNTFY_CONFIGS", "")

from alertntfy.adapters.interfaces import NotificationRelay  # noqa: E402
from alertntfy.adapters.ntfy import NtfyClient  # noqa: E402
from alertntfy.config import AppConfig, build_config, get_settings  # noqa: E402
from alertntfy.domain.errors import DeliveryError  # noqa: E402
from alertntfy.domain.models import Alert  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def make_alert(**overrides: Any) -> Alert:
    data: dict[str, Any] = {
        "status": "firing",
        "labels": {"alertname": "HighErrorRate", "severity": "critical"},
        "annotations": {"description": "Error rate above 5%"},
        "startsAt": datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
        "generatorURL": "http://prometheus:9090/graph",
        "fingerprint": "c0ffee",
    }
    data.update(overrides)
    return Alert.model_validate(data)


def make_config(ntfy: dict[str, Any] | None = None, **sections: Any) -> AppConfig:
    raw: dict[str, Any] = {"ntfy": {"baseurl": "http://ntfy.test", **(ntfy or {})}}
    raw.setdefault("ntfy", {}).setdefault("notification", {}).setdefault("topic", "alerts")
    raw.update(sections)
    return build_config(raw)


class RecordingRelay(NotificationRelay):
    """Relay double that records calls and fails for configured methods."""

    def __init__(self, fail_methods: set[str] | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self.fail_methods = fail_methods or set()

    def send(self, method, url, body=None, headers=None, log=None) -> None:
        self.calls.append({"method": method, "url": url, "body": body, "headers": dict(headers or {})})
        if method in self.fail_methods:
            raise DeliveryError("http 500, Internal Server Error", status_code=500)

    @property
    def methods(self) -> list[str]:
        return [call["method"] for call in self.calls]


class RecordingScheduler:
    """Collects delayed actions instead of starting timers."""

    def __init__(self) -> None:
        self.scheduled: list[tuple[float, Callable[[], None]]] = []

    def __call__(self, delay: float, action: Callable[[], None]) -> None:
        self.scheduled.append((delay, action))

    def run_all(self) -> None:
        pending, self.scheduled = self.scheduled, []
        for _, action in pending:
            action()


class ImmediateExecutor(Executor):
    """Runs submitted work inline so background forwarding is observable."""

    def __init__(self) -> None:
        self.submitted = 0

    def submit(self, fn, /, *args, **kwargs) -> Future:
        self.submitted += 1
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:  # noqa: BLE001
            future.set_exception(exc)
        return future


class FakeNtfy:
    """httpx.MockTransport handler that answers with queued status codes."""

    def __init__(self, statuses: list[int] | None = None) -> None:
        self.requests: list[httpx.Request] = []
        self.statuses = list(statuses or [])

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status, json={"id": "abc"})

    def client(self, config: AppConfig) -> NtfyClient:
        return NtfyClient(config.ntfy, client=httpx.Client(transport=httpx.MockTransport(self)))


@pytest.fixture
def relay() -> RecordingRelay:
    return RecordingRelay()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()
