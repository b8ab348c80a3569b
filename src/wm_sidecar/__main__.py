"""Sidecar entry point.

Changes:
  - 2026-10-16: CLI flags override LOCAL_API_* environment settings.
  - 2026-10-16: Rich console logging.
"""

import argparse
import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

from wm_sidecar.config import Settings
from wm_sidecar.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _package_version() -> str:
    try:
        return get_version("worldmonitor-sidecar")
    except PackageNotFoundError:
        return "unknown"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="wm-sidecar",
        description="Local API gateway for the World Monitor desktop app",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  wm-sidecar                                   Serve on 127.0.0.1:46123
  wm-sidecar --port 47000                      Use another loopback port
  wm-sidecar --remote-base https://tech.worldmonitor.app
  LOCAL_API_RESOURCE_DIR=/opt/wm wm-sidecar    Load handlers from /opt/wm/api
""",
    )
    parser.add_argument("--port", "-p", type=int, default=None, help="Loopback port to listen on")
    parser.add_argument(
        "--remote-base", default=None, help="Cloud origin used for pass-through and fallback"
    )
    parser.add_argument(
        "--resource-dir", default=None, help="Directory whose api/ folder holds local handlers"
    )
    parser.add_argument("--mode", default=None, help="Operating mode label reported by status")
    parser.add_argument("--log-level", default=None, help="Logging level (default: INFO)")
    parser.add_argument(
        "--version", "-v", action="version", version=f"%(prog)s {_package_version()}"
    )
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Environment settings with any explicit CLI flags layered on top."""
    overrides = {
        "port": args.port,
        "remote_base": args.remote_base,
        "resource_dir": args.resource_dir,
        "mode": args.mode,
        "log_level": args.log_level,
    }
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = settings_from_args(args)
    setup_logging(settings.log_level)

    from wm_sidecar.server import run_server

    try:
        run_server(settings)
    except KeyboardInterrupt:
        logger.info("Sidecar stopped.")


if __name__ == "__main__":
    main()
