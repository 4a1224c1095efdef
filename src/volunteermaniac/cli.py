"""CLI entry point for the VolunteerManiac server."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from volunteermaniac import __version__
from volunteermaniac.config.settings import CONFIG_ENV_VAR, Settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="volunteermaniac",
        description="VolunteerManiac — volunteer opportunity search aggregation server",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=None,
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Server bind address (overrides config)",
    )
    parser.add_argument(
        "--port",
        "-p",
        type=int,
        default=None,
        help="Server port (overrides config)",
    )
    parser.add_argument(
        "--workers",
        "-w",
        type=int,
        default=None,
        help="Number of worker processes",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        default=None,
        help="Log level (overrides config)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"VolunteerManiac {__version__}",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point for the VolunteerManiac server."""
    args = build_parser().parse_args(argv)

    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"Error: Config file not found: {config_path}", file=sys.stderr)
            sys.exit(1)
        settings = Settings.from_yaml(config_path)
        os.environ[CONFIG_ENV_VAR] = str(config_path.resolve())
    else:
        settings = Settings()

    # Apply CLI overrides. Workers build their own settings, so the log level
    # is handed over through the environment.
    host = args.host or settings.server.host
    port = args.port or settings.server.port
    workers = args.workers or settings.server.workers
    if args.log_level:
        os.environ["VOLUNTEERMANIAC_OBSERVABILITY__LOG_LEVEL"] = args.log_level
    log_level = args.log_level or settings.observability.log_level

    import uvicorn

    uvicorn.run(
        "volunteermaniac.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        workers=workers if not args.reload else 1,
        reload=args.reload,
        log_level=log_level.lower(),
    )


if __name__ == "__main__":
    main()
