import json

import pytest

from conftest import make_alert, make_config

from alertntfy.domain.errors import DeliveryAbortError
from alertntfy.services.composer import NotificationComposer, convert_labels_to_tags


def composer_for(notification: dict | None = None, **ntfy) -> NotificationComposer:
    config = make_config({"notification": {"topic": "alerts", **(notification or {})}, **ntfy})
    return NotificationComposer(config.ntfy)


def test_compose_full_notification() -> None:
    composer = composer_for(
        {
            "priority": 'labels.severity == "critical" ? "urgent" : "default"',
            "convert_labels_to_tags": False,
            "tags": [
                {"tag": "rotating_light", "condition": 'labels.severity == "critical"'},
                {"tag": "snail", "condition": 'labels.severity == "info"'},
                {"tag": "computer"},
            ],
            "templates": {
                "title": "[{{ status | upper }}] {{ labels.alertname }}",
                "description": "{{ annotations.description }}",
                "headers": {"X-Click": "{{ generatorURL }}\n", "X-Icon": "https://example.com/icon.png"},
                "actions": [
                    {"label": "Graph", "url": "{{ generatorURL }}"},
                    {"action": "http", "label": "Ack", "url": "https://ack/{{ fingerprint }}", "condition": 'status == "firing"'},
                ],
            },
        }
    )

    notification = composer.compose(make_alert())

    assert notification.url == "http://ntfy.test/alerts"
    assert notification.topic == "alerts"
    assert notification.title == "[FIRING] HighErrorRate"
    assert notification.body == "Error rate above 5%"
    assert notification.priority == "urgent"
    assert notification.tags == ["rotating_light", "computer"]
    assert notification.headers == {"X-Click": "http://prometheus:9090/graph", "X-Icon": "https://example.com/icon.png"}
    assert [(a.action, a.label, a.url) for a in notification.actions] == [
        ("view", "Graph", "http://prometheus:9090/graph"),
        ("http", "Ack", "https://ack/c0ffee"),
    ]

    headers = notification.request_headers()
    assert headers["X-Title"] == "[FIRING] HighErrorRate"
    assert headers["X-Tags"] == "rotating_light,computer"
    assert headers["X-Priority"] == "urgent"
    assert json.loads(headers["X-Actions"]) == [
        {"action": "view", "label": "Graph", "url": "http://prometheus:9090/graph"},
        {"action": "http", "label": "Ack", "url": "https://ack/c0ffee"},
    ]
    assert headers["X-Click"] == "http://prometheus:9090/graph"


def test_empty_description_promotes_title_to_body() -> None:
    composer = composer_for({"templates": {"title": "{{ labels.alertname }}", "description": "  "}})

    notification = composer.compose(make_alert())

    assert notification.body == "HighErrorRate"
    assert notification.title == ""
    assert "X-Title" not in notification.request_headers()


def test_comment_only_title_renders_empty() -> None:
    composer = composer_for({"templates": {"title": "{# empty #}"}, "convert_labels_to_tags": False})

    notification = composer.compose(make_alert())

    assert notification.title == ""
    assert notification.body == "Error rate above 5%"
    headers = notification.request_headers()
    assert "X-Title" not in headers
    assert "X-Tags" not in headers


def test_failing_tag_guard_is_skipped_without_blocking_delivery() -> None:
    composer = composer_for(
        {
            "convert_labels_to_tags": False,
            "tags": [
                {"tag": "broken", "condition": 'labels.does_not_exist == "x"'},
                {"tag": "kept", "condition": 'labels.severity == "critical"'},
            ],
        }
    )

    notification = composer.compose(make_alert())

    assert notification.tags == ["kept"]
    assert notification.title == "HighErrorRate"
    assert notification.body == "Error rate above 5%"


def test_label_tags_follow_configured_tags() -> None:
    composer = composer_for({"tags": [{"tag": "first"}]})

    notification = composer.compose(make_alert(labels={"severity": "critical", "service": "api"}))

    assert notification.tags[0] == "first"
    assert set(notification.tags[1:]) == {"severity = critical", "service = api"}


def test_label_tags_without_configured_tags() -> None:
    composer = composer_for()

    notification = composer.compose(make_alert(labels={"severity": "critical", "service": "api"}))

    assert set(notification.tags) == {"severity = critical", "service = api"}
    assert len(notification.tags) == 2


def test_convert_labels_excludes_separator() -> None:
    tags = convert_labels_to_tags({"ok": "yes", "bad,key": "v", "k": "bad,value"})
    assert tags == ["ok = yes"]


@pytest.mark.parametrize(
    "template, labels, expected",
    [
        ("{# empty #}", {"severity": "critical"}, set()),
        ("{% for key, value in labels.items() %}{{ key }}: {{ value }}, {% endfor %}", {"severity": "critical"}, {"severity: critical"}),
        (
            "{% for key, value in labels.items() %}{% if key != 'internal' %}{{ key }}={{ value }}, {% endif %}{% endfor %}",
            {"severity": "critical", "internal": "debug"},
            {"severity=critical"},
        ),
        ("{% for key, value in labels.items() %}{{ capitalize(value) }}, {% endfor %}", {"env": "production"}, {"Production"}),
    ],
)
def test_labels_template_replaces_default_label_tags(template: str, labels: dict, expected: set) -> None:
    composer = composer_for({"templates": {"labels": template}})

    notification = composer.compose(make_alert(labels=labels))

    assert set(notification.tags) == expected
    assert len(notification.tags) == len(expected)


def test_literal_priority_is_never_evaluated() -> None:
    composer = composer_for({"priority": "default"})

    assert composer.rules.priority.expression is None
    assert composer.compose(make_alert()).priority == "default"
    assert composer.compose(make_alert(labels={})).priority == "default"


def test_failing_priority_is_omitted() -> None:
    composer = composer_for({"priority": "labels.missing + 1"})

    notification = composer.compose(make_alert())

    assert notification.priority is None
    assert "X-Priority" not in notification.request_headers()
    assert notification.body == "Error rate above 5%"


def test_unset_priority_is_omitted() -> None:
    composer = composer_for({"priority": None})
    assert composer.compose(make_alert()).priority is None


def test_topic_expression_and_fingerprint_path() -> None:
    composer = composer_for({"topic": '"alerts-" + labels.team'}, update_existing_notification=True)

    notification = composer.compose(make_alert(labels={"team": "db"}))

    assert notification.url == "http://ntfy.test/alerts-db/c0ffee"


def test_base_url_path_is_kept() -> None:
    composer = NotificationComposer(
        make_config({"baseurl": "https://ntfy.example.com/push/", "notification": {"topic": "alerts"}}).ntfy
    )
    assert composer.resolve_url(make_alert()) == "https://ntfy.example.com/push/alerts"


def test_failing_topic_aborts_alert() -> None:
    composer = composer_for({"topic": "labels.team"})

    with pytest.raises(DeliveryAbortError, match="topic"):
        composer.compose(make_alert())


def test_empty_topic_aborts_alert() -> None:
    composer = composer_for({"topic": 'labels.team ?? ""'})

    with pytest.raises(DeliveryAbortError, match="topic is empty"):
        composer.compose(make_alert())


def test_title_render_failure_aborts_alert() -> None:
    composer = composer_for({"templates": {"title": "{{ printf('%d', labels.alertname) }}"}})

    with pytest.raises(DeliveryAbortError, match="title"):
        composer.compose(make_alert())


def test_header_render_failure_aborts_alert() -> None:
    composer = composer_for({"templates": {"headers": {"X-Bad": "{{ printf('%d', status) }}"}}})

    with pytest.raises(DeliveryAbortError, match="X-Bad"):
        composer.compose(make_alert())


def test_action_failures_skip_only_that_action() -> None:
    composer = composer_for(
        {
            "templates": {
                "actions": [
                    {"label": "BadGuard", "url": "https://a", "condition": "labels.nope == 1"},
                    {"label": "False", "url": "https://b", "condition": 'status == "resolved"'},
                    {"label": "BadUrl", "url": "{{ printf('%d', status) }}"},
                    {"label": "Good", "url": "https://c/{{ labels.alertname }}"},
                ]
            }
        }
    )

    notification = composer.compose(make_alert())

    assert [a.label for a in notification.actions] == ["Good"]
    assert notification.actions[0].url == "https://c/HighErrorRate"


def test_no_actions_means_no_actions_header() -> None:
    composer = composer_for({"templates": {"actions": [{"label": "x", "url": "y", "condition": "false"}]}})
    assert "X-Actions" not in composer.compose(make_alert()).request_headers()


def test_arithmetic_error_in_action_url_skips_only_that_action() -> None:
    composer = composer_for(
        {
            "templates": {
                "actions": [
                    {"label": "Scale", "url": "https://x/{{ 100 // (labels.replicas | int) }}"},
                    {"label": "Good", "url": "https://c/{{ labels.replicas }}"},
                ]
            }
        }
    )

    notification = composer.compose(make_alert(labels={"replicas": "0"}))

    assert [a.label for a in notification.actions] == ["Good"]


def test_arithmetic_error_in_title_aborts_with_delivery_error() -> None:
    composer = composer_for({"templates": {"title": "{{ 1 // 0 }}"}})

    with pytest.raises(DeliveryAbortError, match="title"):
        composer.compose(make_alert())
