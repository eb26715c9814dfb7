"""
Command-line entrypoint: `python -m sop_proxy --config config.yml`.
"""

import argparse
import logging
import os
import sys

import uvicorn

from .app import create_app
from .bootstrap import bootstrap, setup_logging


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the SOP-Proxy server.")
    parser.add_argument(
        "--config",
        default=os.environ.get("SOP_PROXY_CONFIG", "config.yml"),
        help="Path to the configuration file: .yml, .toml, .json or .py "
        "(or set SOP_PROXY_CONFIG env variable).",
    )
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Environment file loaded before the configuration (default .env).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    setup_logging(args.debug)
    log = logging.getLogger("sop_proxy")
    try:
        env = bootstrap(args.config, env_file=args.env_file, debug=args.debug)
    except (OSError, ValueError) as e:
        log.error("Failed to load configuration: %s", e)
        return 1

    log.info(
        "Starting proxy on %s:%d, destinations below %s",
        env.config.host,
        env.config.port,
        env.config.mount_path,
    )
    uvicorn.run(
        create_app(),
        host=env.config.host,
        port=env.config.port,
        log_level="debug" if args.debug else "info",
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
