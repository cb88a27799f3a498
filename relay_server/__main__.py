"""
Entry point for running the relay.

Usage:
    python -m relay_server

Reads configuration from the environment (and .env / .env.local), then serves
on HOST:PORT (default http://0.0.0.0:3001).
"""
import uvicorn

from logging_setup import get_logger, setup_logging, Component
from .app import create_app
from .config import RelayConfig, load_env_files


def main() -> None:
    load_env_files()
    config = RelayConfig.from_env()
    setup_logging(level=config.log_level, use_json=config.log_json)

    logger = get_logger(Component.RELAY_SERVER)
    logger.info("Starting relay", host=config.host, port=config.port)

    uvicorn.run(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
