#!/usr/bin/env python3
"""
Webhook Server Command Line Interface

Usage:
    webhook-server [--config <file>] [--log-level <level>] [--plain-logs]
                   [--log-file <file>] [--skip-runner-check]
"""

import argparse
import logging
import sys

import uvicorn

from .config import is_debug, load_settings
from .logging_config import configure_logging
from .main import app, configure
from .security import ConfigError

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webhook-server",
        description="Execute scripts on incoming webhook requests via an external task runner",
    )
    parser.add_argument("--config", help="Extra config file, merged after the default locations")
    parser.add_argument(
        "--log-level",
        default="DEBUG" if is_debug() else "INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    parser.add_argument("--plain-logs", action="store_true", help="Human readable instead of JSON logs")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument(
        "--skip-runner-check",
        action="store_true",
        help="Start even if the task runner cannot be reached",
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, json_format=not args.plain_logs, log_file=args.log_file)

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return 2

    dispatcher = configure(settings)

    if not args.skip_runner_check:
        logger.info("Check once if the task runner is available")
        if not dispatcher.runner.ping():
            logger.error("Task runner cannot be reached (runner: %s)", settings.runner)
            return 1

    logger.info("Init webserver on %s:%s", settings.domain, settings.port)
    uvicorn_kwargs = {}
    if settings.tls_enabled:
        uvicorn_kwargs["ssl_keyfile"] = settings.ssl_private_key
        uvicorn_kwargs["ssl_certfile"] = settings.ssl_cert_chain

    uvicorn.run(
        app,
        host=settings.domain,
        port=settings.port,
        log_config=None,
        **uvicorn_kwargs,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
