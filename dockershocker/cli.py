"""Command line entry point."""

from typing import Optional

import click
import structlog
import uvicorn

from dockershocker.config import load_settings
from dockershocker.logging_config import configure_logging
from dockershocker.main import create_app

logger = structlog.get_logger()


@click.command()
@click.option(
    "--log-level",
    envvar="DOCKERSHOCKER_LOG_LEVEL",
    type=click.Choice(
        ["debug", "info", "warn", "warning", "error"], case_sensitive=False
    ),
    default=None,
    help="Log level (default: info).",
)
@click.option(
    "--port",
    envvar="DOCKERSHOCKER_PORT",
    type=int,
    default=None,
    help="Port to listen on (default: 8080).",
)
@click.option(
    "--docker-socket",
    envvar="DOCKERSHOCKER_DOCKER_HOST",
    default=None,
    help="Docker API address, unix://path or tcp://host:port.",
)
@click.option(
    "--config",
    "config_path",
    envvar="DOCKERSHOCKER_CONFIG_PATH",
    type=click.Path(dir_okay=False),
    default=None,
    help="YAML config file.",
)
def main(
    log_level: Optional[str],
    port: Optional[int],
    docker_socket: Optional[str],
    config_path: Optional[str],
) -> None:
    """Start containers on demand and stop them when idle."""
    settings = load_settings(
        config_path, log_level=log_level, port=port, docker_host=docker_socket
    )
    configure_logging(settings.log_level)

    app = create_app(settings)
    logger.info(
        "server_starting", port=settings.port, docker_host=settings.docker_host
    )
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.port,
        log_level=_uvicorn_level(settings.log_level),
    )


def _uvicorn_level(level: str) -> str:
    return "warning" if level == "warn" else level


if __name__ == "__main__":
    main()
