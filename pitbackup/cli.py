"""Command-line interface for pitbackup.

This module provides the CLI for pitbackup, supporting commands for:
- backup: Take a snapshot of the given paths
- run: Take a snapshot of the configured sources
- list: List snapshots
- verify: Check the integrity of a snapshot
- init: Create default config
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Optional

from pitbackup import __version__
from pitbackup.backup import (
    EXIT_CONFIG_ERROR,
    EXIT_GENERAL_ERROR,
    EXIT_INTEGRITY_ERROR,
    EXIT_SUCCESS,
    Backup,
    BackupError,
    run_backup,
)
from pitbackup.config import (
    DEFAULT_CONFIG_PATH,
    Configuration,
    ConfigurationError,
    ValidationError,
    create_default_config,
    parse_config,
)
from pitbackup.logger import LoggingError, format_size, level_for_verbosity, setup_logging


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog='pitbackup',
        description='Point-in-time incremental backup of files and folders'
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'%(prog)s {__version__}'
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        help='Path to config file (default: ~/.config/pitbackup/config.toml)',
        metavar='PATH'
    )

    # -v is accepted after the subcommand name
    verbosity = argparse.ArgumentParser(add_help=False)
    verbosity.add_argument(
        '--verbose', '-v',
        action='count',
        default=0,
        help='Verbose output (-v debug, -vv every file)'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    backup_parser = subparsers.add_parser(
        'backup',
        parents=[verbosity],
        help='Take a snapshot of the given paths'
    )
    backup_parser.add_argument(
        'backup',
        type=Path,
        help='Folder holding the snapshots'
    )
    backup_parser.add_argument(
        'inputs',
        type=Path,
        nargs='+',
        metavar='INPUT',
        help='Files and folders to capture'
    )
    backup_parser.add_argument(
        '--full',
        action='store_true',
        help='Copy everything instead of reusing unchanged files'
    )

    run_parser = subparsers.add_parser(
        'run',
        parents=[verbosity],
        help='Take a snapshot of the configured sources'
    )
    run_parser.add_argument(
        '--full',
        action='store_true',
        help='Copy everything instead of reusing unchanged files'
    )

    list_parser = subparsers.add_parser(
        'list',
        aliases=['ls'],
        parents=[verbosity],
        help='List snapshots'
    )
    list_parser.add_argument(
        'backup',
        type=Path,
        nargs='?',
        help='Folder holding the snapshots (default: configured backup_root)'
    )
    list_parser.add_argument(
        '--short',
        action='store_true',
        help='Print snapshot names only'
    )
    list_parser.add_argument(
        '--json',
        action='store_true',
        help='Output as JSON'
    )

    verify_parser = subparsers.add_parser(
        'verify',
        parents=[verbosity],
        help='Check the integrity of a snapshot'
    )
    verify_parser.add_argument(
        'snapshot',
        type=Path,
        help='Path of the snapshot folder'
    )
    verify_parser.add_argument(
        '--json',
        action='store_true',
        help='Output as JSON'
    )

    init_parser = subparsers.add_parser(
        'init',
        help='Create default config file'
    )
    init_parser.add_argument(
        '--force',
        action='store_true',
        help='Overwrite existing config file'
    )

    return parser


def load_config(config_path: Optional[Path]) -> Optional[Configuration]:
    """
    Load configuration from file.

    Returns None and prints error on failure.
    """
    try:
        return parse_config(config_path)
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return None
    except ValidationError as e:
        print(f"Validation error: {e}", file=sys.stderr)
        return None


def _setup_logging(config: Configuration, verbose: int) -> None:
    level = level_for_verbosity(verbose, default=config.logging.level)
    try:
        setup_logging(config.logging, level=level)
    except LoggingError as e:
        # Continue with console logging only
        print(f"Failed to set up logging: {e}", file=sys.stderr)
        setup_logging(level=level)


def cmd_backup(args: argparse.Namespace) -> int:
    """Execute the 'backup' command - snapshot the paths given on the command line."""
    config = load_config(args.config)
    if config is None:
        return EXIT_CONFIG_ERROR
    _setup_logging(config, args.verbose)

    result = run_backup(
        config,
        paths=args.inputs,
        backup_root=args.backup,
        incremental=not args.full,
    )
    if not result.success:
        print(f"Backup failed: {result.error_message}", file=sys.stderr)
        return result.exit_code

    print(f"Created snapshot: {result.snapshot_name}")
    return EXIT_SUCCESS


def cmd_run(args: argparse.Namespace) -> int:
    """Execute the 'run' command - snapshot the configured sources."""
    config = load_config(args.config)
    if config is None:
        return EXIT_CONFIG_ERROR
    _setup_logging(config, args.verbose)

    result = run_backup(config, incremental=False if args.full else None)
    if not result.success:
        print(f"Backup failed: {result.error_message}", file=sys.stderr)
        return result.exit_code

    print(f"Created snapshot: {result.snapshot_name}")
    if args.verbose:
        print(f"  Duration: {result.duration_seconds:.2f}s")
    return EXIT_SUCCESS


def cmd_list(args: argparse.Namespace) -> int:
    """Execute the 'list' command - list snapshots, newest first."""
    config = load_config(args.config)
    if config is None:
        return EXIT_CONFIG_ERROR
    _setup_logging(config, args.verbose)

    root = args.backup or config.backup_root
    if root is None:
        print("No backup folder given and no backup_root configured.", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        backup = Backup.open(Path(root).expanduser())
    except BackupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return e.exit_code

    snapshots = list(reversed(backup.snapshots))

    if args.short:
        for snap in snapshots:
            print(snap.name)
        return EXIT_SUCCESS

    if args.json:
        output = []
        for snap in snapshots:
            output.append({
                "name": snap.name,
                "path": str(snap.location),
                "size_bytes": snap.size_bytes(),
                "entry_count": snap.entry_count(),
            })
        print(json.dumps(output, indent=2))
        return EXIT_SUCCESS

    if not snapshots:
        print("No snapshots found.")
        return EXIT_SUCCESS

    print(f"{'Snapshot':<20} {'Size':>12} {'Entries':>10}")
    print("-" * 44)
    for snap in snapshots:
        print(f"{snap.name:<20} {format_size(snap.size_bytes()):>12} {snap.entry_count():>10}")
    print("-" * 44)
    print(f"Total: {len(snapshots)} snapshot(s)")
    return EXIT_SUCCESS


def cmd_verify(args: argparse.Namespace) -> int:
    """Execute the 'verify' command - check a single snapshot folder."""
    config = load_config(args.config)
    if config is None:
        return EXIT_CONFIG_ERROR
    _setup_logging(config, args.verbose)

    snapshot_path = Path(args.snapshot).expanduser()
    backup = Backup(snapshot_path.parent)
    result = backup.check_integrity(snapshot_path.name)

    if args.json:
        output = {"snapshot": str(snapshot_path)}
        output.update(result.to_dict())
        print(json.dumps(output, indent=2))
    elif result.success:
        print(f"Snapshot integrity check completed. {result.message}")
    else:
        print(f"Snapshot integrity check failed. {result.message}")

    return EXIT_SUCCESS if result.success else EXIT_INTEGRITY_ERROR


def cmd_init(args: argparse.Namespace) -> int:
    """Execute the 'init' command - create default config."""
    config_path = args.config or DEFAULT_CONFIG_PATH

    if config_path.exists() and not args.force:
        print(f"Config file already exists: {config_path}", file=sys.stderr)
        print("Use --force to overwrite.", file=sys.stderr)
        return EXIT_GENERAL_ERROR

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(create_default_config(), encoding="utf-8")

    print(f"Created default config: {config_path}")
    print("Edit this file to configure your backup settings.")
    return EXIT_SUCCESS


def main(argv: list = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, non-zero for failure)
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    # If no command specified, show help
    if args.command is None:
        parser.print_help()
        return EXIT_SUCCESS

    try:
        if args.command == 'backup':
            return cmd_backup(args)
        elif args.command == 'run':
            return cmd_run(args)
        elif args.command in ('list', 'ls'):
            return cmd_list(args)
        elif args.command == 'verify':
            return cmd_verify(args)
        elif args.command == 'init':
            return cmd_init(args)
        else:
            print(f"Unknown command: {args.command}", file=sys.stderr)
            return EXIT_GENERAL_ERROR
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130  # Standard exit code for SIGINT
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_GENERAL_ERROR


if __name__ == "__main__":
    sys.exit(main())
