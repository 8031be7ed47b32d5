"""Compose the outbound ntfy notification for one alert."""

import logging
from logging import Logger, LoggerAdapter
from typing import Any

import httpx

from alertntfy.config import NtfyConfig
from alertntfy.domain.errors import DeliveryAbortError, FieldResolutionError
from alertntfy.domain.models import Alert, FieldResult, NtfyAction, OutboundNotification

logger = logging.getLogger(__name__)

TAG_SEPARATOR = ","


def convert_labels_to_tags(labels: dict[str, str]) -> list[str]:
    """One "key = value" tag per label that would not corrupt the X-Tags header."""

    return [
        f"{key} = {value}"
        for key, value in labels.items()
        if TAG_SEPARATOR not in key and TAG_SEPARATOR not in value
    ]


class NotificationComposer:
    """Turns an alert into an OutboundNotification under the configured rules."""

    def __init__(self, config: NtfyConfig) -> None:
        self.config = config
        self.rules = config.notification
        self.base_url = httpx.URL(config.baseurl)

    def _url_for(self, topic: str, fingerprint: str) -> str:
        segments = [self.base_url.path.rstrip("/"), topic]
        if self.config.update_existing_notification:
            segments.append(fingerprint)
        return str(self.base_url.copy_with(path="/".join(segments)))

    def _topic(self, fields: dict[str, Any]) -> FieldResult[str]:
        try:
            topic = self.rules.topic.resolve(fields)
        except FieldResolutionError as exc:
            return FieldResult.abort(DeliveryAbortError(f"topic expression eval: {exc}"))
        if not topic:
            return FieldResult.abort(DeliveryAbortError("topic is empty"))
        return FieldResult.ok(topic)

    def resolve_url(self, alert: Alert) -> str:
        """Target URL for this alert. Used directly by clear and delete."""

        result = self._topic(alert.fields())
        if result.fatal:
            raise result.error
        return self._url_for(result.value, alert.fingerprint)

    def _text(self, fields: dict[str, Any]) -> FieldResult[tuple[str, str]]:
        templates = self.rules.templates
        try:
            title = templates.title.render(fields)
        except FieldResolutionError as exc:
            return FieldResult.abort(DeliveryAbortError(f"render title template: {exc}"))
        try:
            description = templates.description.render(fields)
        except FieldResolutionError as exc:
            return FieldResult.abort(DeliveryAbortError(f"render description template: {exc}"))

        # An empty body makes ntfy fall back to "triggered", so the title moves into the body.
        if not description:
            return FieldResult.ok(("", title))
        return FieldResult.ok((title, description))

    def _label_tags(self, alert: Alert, log: Logger | LoggerAdapter) -> list[str]:
        template = self.rules.templates.labels
        if template is None:
            return convert_labels_to_tags(alert.labels)
        try:
            rendered = template.render({"labels": dict(alert.labels)})
        except FieldResolutionError as exc:
            log.warning("Labels template rendering failed, skipping label tags: %s", exc)
            return []
        return [part.strip() for part in rendered.split(TAG_SEPARATOR) if part.strip()]

    def _tags(self, alert: Alert, fields: dict[str, Any], log: Logger | LoggerAdapter) -> FieldResult[list[str]]:
        tags: list[str] = []
        for rule in self.rules.tags:
            if rule.condition is not None:
                try:
                    match = rule.condition.eval_bool(fields)
                except FieldResolutionError as exc:
                    log.warning(
                        "Tag condition expression evaluation failed tag=%s expression=%s: %s",
                        rule.tag,
                        rule.condition.text,
                        exc,
                    )
                    continue
                if not match:
                    continue
            tags.append(rule.tag)

        if self.rules.convert_labels_to_tags:
            tags.extend(self._label_tags(alert, log))
        return FieldResult.ok(tags)

    def _priority(self, fields: dict[str, Any], log: Logger | LoggerAdapter) -> FieldResult[str]:
        selector = self.rules.priority
        if selector is None:
            return FieldResult.omit()
        try:
            priority = selector.resolve(fields)
        except FieldResolutionError as exc:
            log.warning("Priority expression evaluation failed expression=%s: %s", selector.text, exc)
            return FieldResult.omit(exc)
        if not priority:
            return FieldResult.omit()
        return FieldResult.ok(priority)

    def _headers(self, fields: dict[str, Any]) -> FieldResult[dict[str, str]]:
        headers: dict[str, str] = {}
        for name, template in self.rules.templates.headers.items():
            try:
                value = template.render(fields)
            except FieldResolutionError as exc:
                return FieldResult.abort(DeliveryAbortError(f"render header {name} template: {exc}"))
            headers[name] = value.replace("\n", "")
        return FieldResult.ok(headers)

    def _actions(self, fields: dict[str, Any], log: Logger | LoggerAdapter) -> FieldResult[list[NtfyAction]]:
        actions: list[NtfyAction] = []
        for rule in self.rules.templates.actions:
            if rule.condition is not None:
                try:
                    match = rule.condition.eval_bool(fields)
                except FieldResolutionError as exc:
                    log.warning("Action condition evaluation failed, skipping action label=%s: %s", rule.label, exc)
                    log.debug(
                        "Action condition evaluation details label=%s condition=%s fields=%s",
                        rule.label,
                        rule.condition.text,
                        fields,
                    )
                    continue
                if not match:
                    log.debug("Action condition not met label=%s condition=%s", rule.label, rule.condition.text)
                    continue
            try:
                url = rule.url.render(fields)
            except FieldResolutionError as exc:
                log.warning("Failed to render URL template, skipping action label=%s: %s", rule.label, exc)
                continue
            actions.append(NtfyAction(action=rule.action, label=rule.label, url=url))
        return FieldResult.ok(actions)

    def compose(self, alert: Alert, log: Logger | LoggerAdapter | None = None) -> OutboundNotification:
        """Resolve every field; the first fatal field aborts this alert with DeliveryAbortError."""

        log = log or logger
        fields = alert.fields()
        results: dict[str, FieldResult] = {
            "topic": self._topic(fields),
            "text": self._text(fields),
            "tags": self._tags(alert, fields, log),
            "priority": self._priority(fields, log),
            "headers": self._headers(fields),
            "actions": self._actions(fields, log),
        }
        for result in results.values():
            if result.fatal:
                raise result.error

        topic = results["topic"].value
        title, body = results["text"].value
        return OutboundNotification(
            url=self._url_for(topic, alert.fingerprint),
            topic=topic,
            title=title,
            body=body,
            priority=None if results["priority"].omitted else results["priority"].value,
            tags=results["tags"].value,
            headers=results["headers"].value,
            actions=results["actions"].value,
        )
