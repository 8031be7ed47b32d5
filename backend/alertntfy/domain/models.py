"""Domain schemas and enums."""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

T = TypeVar("T")


class AlertStatus(str, Enum):
    """Alertmanager alert status."""

    firing = "firing"
    resolved = "resolved"


class Alert(BaseModel):
    """One alert from an Alertmanager webhook payload."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    status: AlertStatus
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    startsAt: datetime | None = None
    endsAt: datetime | None = None
    generatorURL: str = ""
    fingerprint: str = ""

    @field_validator("labels", "annotations", mode="before")
    @classmethod
    def stringify_values(cls, value: Any) -> Any:
        if value is None:
            return {}
        if isinstance(value, dict):
            return {str(k): str(v) for k, v in value.items()}
        return value

    @property
    def is_resolved(self) -> bool:
        return self.status == AlertStatus.resolved

    def fields(self) -> dict[str, Any]:
        """Flatten the alert into the mapping seen by expressions and templates."""

        return {
            "status": self.status.value,
            "labels": dict(self.labels),
            "annotations": dict(self.annotations),
            "startsAt": self.startsAt.isoformat() if self.startsAt else "",
            "endsAt": self.endsAt.isoformat() if self.endsAt else "",
            "generatorURL": self.generatorURL,
            "fingerprint": self.fingerprint,
        }


class WebhookPayload(BaseModel):
    """Alertmanager webhook envelope."""

    model_config = ConfigDict(extra="ignore")

    version: str | None = None
    groupKey: str | None = None
    truncatedAlerts: int = 0
    receiver: str = ""
    status: str = ""
    alerts: list[Alert] = Field(default_factory=list)
    groupLabels: dict[str, str] = Field(default_factory=dict)
    commonLabels: dict[str, str] = Field(default_factory=dict)
    commonAnnotations: dict[str, str] = Field(default_factory=dict)
    externalURL: str = ""

    @field_validator("alerts", "groupLabels", "commonLabels", "commonAnnotations", mode="before")
    @classmethod
    def null_as_empty(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return [] if info.field_name == "alerts" else {}
        return value


class NtfyAction(BaseModel):
    """One ntfy action button, serialized into the X-Actions header."""

    action: str
    label: str
    url: str


@dataclass(frozen=True)
class OutboundNotification:
    """Everything needed to publish one alert to ntfy."""

    url: str
    topic: str
    body: str
    title: str = ""
    priority: str | None = None
    tags: list[str] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)
    actions: list[NtfyAction] = field(default_factory=list)

    def request_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.title:
            headers["X-Title"] = " ".join(self.title.splitlines())
        if self.tags:
            headers["X-Tags"] = ",".join(self.tags)
        if self.priority:
            headers["X-Priority"] = self.priority
        if self.actions:
            headers["X-Actions"] = json.dumps([a.model_dump() for a in self.actions])
        headers.update(self.headers)
        return headers


@dataclass(frozen=True)
class FieldResult(Generic[T]):
    """Outcome of resolving one notification field.

    Exactly one of three shapes: a value, an omitted field (with the
    non-fatal reason, if any), or a fatal error that aborts the alert.
    """

    value: T | None = None
    omitted: bool = False
    error: Exception | None = None
    fatal: bool = False

    @classmethod
    def ok(cls, value: T) -> "FieldResult[T]":
        return cls(value=value)

    @classmethod
    def omit(cls, error: Exception | None = None) -> "FieldResult[T]":
        return cls(omitted=True, error=error)

    @classmethod
    def abort(cls, error: Exception) -> "FieldResult[T]":
        return cls(error=error, fatal=True)
