"""Command-line interface for linkbackup.

    linkbackup SOURCE TARGET

Takes one hardlinked snapshot of SOURCE into TARGET/hourly/. The exit
status tells the scheduler how the run went (see linkbackup.backup).
"""

import argparse
import sys
from pathlib import Path
from typing import List, Optional

from linkbackup import __version__
from linkbackup.backup import (
    EXIT_CONFIG_ERROR,
    EXIT_SUCCESS,
    EXIT_USAGE_ERROR,
    run_backup,
)
from linkbackup.config import DEFAULT_CONFIG_PATH, create_default_config


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="linkbackup",
        description="Hardlink-based snapshot backup of SOURCE into TARGET/hourly/",
    )
    parser.add_argument(
        "source",
        nargs="?",
        metavar="SOURCE",
        help="Directory to back up",
    )
    parser.add_argument(
        "target",
        nargs="?",
        metavar="TARGET",
        help="Provisioned backup target (local path or host:path)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--config", "-c",
        type=Path,
        help=f"Path to config file (default: {DEFAULT_CONFIG_PATH})",
        metavar="PATH",
    )
    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write a default config file and exit",
    )
    parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="With --init-config, overwrite an existing config file",
    )
    return parser


def cmd_init_config(config_path: Optional[Path], force: bool) -> int:
    """Write the default configuration file."""
    config_path = config_path or DEFAULT_CONFIG_PATH
    if config_path.exists() and not force:
        print(f"Config file already exists: {config_path}", file=sys.stderr)
        print("Use --force to overwrite", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_path.write_text(create_default_config())
    except OSError as e:
        print(f"Cannot write config file {config_path}: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    print(f"Created config file: {config_path}")
    return EXIT_SUCCESS


def cmd_run(source: str, target: str, config_path: Optional[Path]) -> int:
    """Run one backup and report the outcome."""
    result = run_backup(source, target, config_path=config_path)

    if result.success:
        location = result.snapshot_result.snapshot_location if result.snapshot_result else "unknown"
        print(f"Backup completed: {location}")
        return EXIT_SUCCESS

    print(f"Backup failed: {result.error_message}", file=sys.stderr)
    if result.log_file is not None:
        print(f"See {result.log_file}", file=sys.stderr)
    return result.exit_code


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.init_config:
        return cmd_init_config(args.config, args.force)

    if not args.source or not args.target:
        parser.print_usage(sys.stderr)
        print(f"{parser.prog}: error: SOURCE and TARGET are required", file=sys.stderr)
        return EXIT_USAGE_ERROR

    try:
        return cmd_run(args.source, args.target, args.config)
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130  # Standard exit code for SIGINT


def main_entry() -> None:
    sys.exit(main())


if __name__ == "__main__":
    main_entry()
