#!/usr/bin/env python3
"""
Command line entry point for protodeps.

Usage:
    protodeps generate --config protodeps.yaml [--keep-tmp-dir] [--verbose]
"""

import argparse
import logging
import sys
from enum import Enum
from typing import List, Optional

from . import __version__
from .config import DEFAULT_CONFIG_FILE, load_config
from .errors import ProtodepsError, UnknownCommand
from .orchestrator import Orchestrator


logger = logging.getLogger("protodeps")


class Command(Enum):
    GENERATE = "generate"

    @classmethod
    def parse(cls, name: str) -> "Command":
        for command in cls:
            if command.value == name:
                return command
        raise UnknownCommand(name)


def setup_logging(verbose: bool = False, log_format: str = "text") -> logging.Logger:
    """Attach a single stderr handler to the protodeps logger."""
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    if not logger.handlers:
        handler = logging.StreamHandler()

        if log_format == "json":
            formatter = logging.Formatter(
                '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
                '"component": "%(name)s", "message": "%(message)s"}'
            )
        else:
            formatter = logging.Formatter('%(asctime)s [%(levelname)s] protodeps: %(message)s')

        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="protodeps",
        description="Compile proto dependencies from multiple repositories",
    )
    parser.add_argument("command", help=f"Command to run ({', '.join(c.value for c in Command)})")
    parser.add_argument("--config", "-c", default=DEFAULT_CONFIG_FILE, help="Configuration file")
    parser.add_argument("--keep-tmp-dir", action="store_true",
                        help="Keep the temporary clone directory and print its path")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    parser.add_argument("--log-format", choices=["text", "json"], default="text", help="Log output format")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def run(command: Command, args: argparse.Namespace) -> int:
    if command is Command.GENERATE:
        config = load_config(args.config)
        orchestrator = Orchestrator(config, verbose=args.verbose, keep_tmp_dir=args.keep_tmp_dir)
        report = orchestrator.generate()
        logger.info(f"compiled {len(report.compiled)} proto files")
        return 0
    raise UnknownCommand(command.value)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the protodeps command."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose, args.log_format)

    try:
        return run(Command.parse(args.command), args)
    except ProtodepsError as e:
        logger.error(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
