"""alertmanager-ntfy - CLI entry point."""

import logging

import click
import uvicorn

from alertntfy.config import get_settings, load_config
from alertntfy.domain.errors import ConfigError
from alertntfy.main import create_app
from alertntfy.telemetry.logging import setup_logging

logger = logging.getLogger("alertntfy.cli")


@click.command(help="alertmanager-ntfy is a forwarder for Prometheus Alertmanager notifications")
@click.option("--configs", help="The YAML configuration files to load and merge (comma separated).")
@click.option("--log-level", help="The log level to use.")
@click.option("--http-addr", help="The address to have the HTTP server listen on.")
@click.option("--ntfy-baseurl", help="The ntfy url to forward alerts to.")
@click.option("--ntfy-topic", help="The ntfy topic.")
@click.option("--ntfy-priority", help="The ntfy priority.")
@click.option("--ntfy-timeout", help="The ntfy request timeout, e.g. 10s.")
def main(configs, log_level, http_addr, ntfy_baseurl, ntfy_topic, ntfy_priority, ntfy_timeout):
    flags = {
        "configs": configs,
        "log_level": log_level,
        "http_addr": http_addr,
        "ntfy_baseurl": ntfy_baseurl,
        "ntfy_topic": ntfy_topic,
        "ntfy_priority": ntfy_priority,
        "ntfy_timeout": ntfy_timeout,
    }
    settings = get_settings().model_copy(update={k: v for k, v in flags.items() if v is not None})

    try:
        config = load_config(settings)
        host, port = config.http.host_port()
    except ConfigError as exc:
        click.echo(f"Failed to load config: {exc}", err=True)
        raise SystemExit(1) from exc

    setup_logging(config.log.level)
    logger.info("Starting HTTP server addr=%s", config.http.addr)
    uvicorn.run(create_app(config), host=host, port=port, log_config=None)


if __name__ == "__main__":
    main()
