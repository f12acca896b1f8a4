"""
Service entry point - BOOTSTRAP ONLY
This module should contain NO business logic, only orchestration.
"""
import argparse
import os
import sys

from aiohttp import web

from companion import __version__
from companion.config import load_config
from companion.exceptions import ConfigurationError
from companion.utils.logging import get_logger, init_logging, shutdown_logging_and_exit
from companion.web import create_app

PROVIDER_KEYS = ("OPENAI_API_KEY", "FLUX_API_KEY", "STABILITY_API_KEY", "GEMINI_API_KEY")


def parse_arguments(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(description="Companion generation service")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    parser.add_argument("--config-check", action="store_true", help="Validate configuration and exit.")
    parser.add_argument("--version", action="store_true", help="Show version info and exit.")
    parser.add_argument("--host", help="Bind address (overrides HOST).")
    parser.add_argument("--port", type=int, help="Bind port (overrides PORT).")
    return parser.parse_args(argv)


def validate_configuration(config) -> None:
    """Fail fast on settings the service cannot run with; missing provider keys only warn."""
    logger = get_logger(__name__)
    if config["POLL_MAX_ATTEMPTS"] < 1:
        raise ConfigurationError("POLL_MAX_ATTEMPTS must be at least 1")
    if config["POLL_INTERVAL_MS"] < 0:
        raise ConfigurationError("POLL_INTERVAL_MS must not be negative")

    configured = [key for key in PROVIDER_KEYS if config.get(key)]
    if not configured:
        logger.warning(
            "No provider credentials configured; image and vision requests will fail, chat runs simulated",
            extra={"subsys": "core", "event": "config.no_providers"},
        )
    for key, value in config.items():
        if "KEY" in key and value:
            value = "********"
        logger.debug(f"  • {key}: {value}", extra={"subsys": "core", "event": "config.value"})


def run(argv=None) -> None:
    """Entry point for running the service with proper error handling."""
    args = parse_arguments(argv)
    if args.debug:
        os.environ["LOG_LEVEL"] = "DEBUG"

    init_logging()
    logger = get_logger(__name__)

    if args.version:
        print(f"Companion generation service - Version {__version__}")
        print(f"Python Version: {sys.version}")
        shutdown_logging_and_exit(0)

    try:
        config = load_config()
        validate_configuration(config)
    except ConfigurationError as e:
        logger.critical(f"Configuration error: {e}", extra={"subsys": "core", "event": "config_fail"})
        shutdown_logging_and_exit(1)

    if args.config_check:
        logger.info("Configuration validation successful.", extra={"subsys": "core", "event": "config_valid"})
        shutdown_logging_and_exit(0)

    host = args.host or config["HOST"]
    port = args.port or config["PORT"]
    logger.info(f"Starting HTTP server on {host}:{port}", extra={"subsys": "core", "event": "server.start"})

    try:
        web.run_app(create_app(config), host=host, port=port, print=None)
    except KeyboardInterrupt:
        print("\nShutdown requested by user.")
    except Exception as e:
        logger.critical(f"A fatal error occurred: {e}", exc_info=True)
        shutdown_logging_and_exit(1)
    shutdown_logging_and_exit(0)


if __name__ == "__main__":
    run()
