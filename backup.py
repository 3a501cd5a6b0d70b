#!/usr/bin/env python3
"""
Trello to Markdown Backup - Main CLI Entry Point

Backs up every Trello board the user can see into a tree of Markdown files,
downloading attachments and turning links between cards into relative links.
"""

import argparse
import logging
import sys
from typing import List, Optional

import requests
import yaml

from config_loader import ConfigLoader, get_nested, split_names
from logger import LOGGER_NAME, log_config, log_section, setup_logging
from models import BackupError, BackupOptions
from orchestrator import BackupOrchestrator
from rate_limiter import RateLimiter
from trello_client import TrelloClient

__version__ = "1.0.0"


def create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser for CLI."""
    parser = argparse.ArgumentParser(
        description="Back up Trello boards to Markdown files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # First run writes config.yaml for you to fill in
  python backup.py

  # Back up everything into ./backup/t2md
  python backup.py --output-folder ./backup

  # Obsidian-friendly links, one file per card
  python backup.py --always-use-forward-slashes --single-file

  # Only some boards, more detail in the log
  python backup.py --include-boards "Roadmap,Reading list" -vv
        """
    )

    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    parser.add_argument(
        '--config',
        type=str,
        default='config.yaml',
        help='Path to configuration YAML file (default: config.yaml)'
    )
    parser.add_argument(
        '-o', '--output-folder',
        type=str,
        help='Folder to back up into; the backup is written to its t2md subfolder'
    )
    parser.add_argument(
        '--max-card-filename-title-length',
        type=int,
        help='Truncate card titles in file names to this many characters (default: 40)'
    )
    parser.add_argument(
        '--ignore-failed-attachment-downloads',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Log failed attachment downloads instead of failing the board'
    )
    parser.add_argument(
        '--always-use-forward-slashes',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Use / in generated links on every platform'
    )
    parser.add_argument(
        '--remove-emoji',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Replace emoji in file and folder names with underscores'
    )
    parser.add_argument(
        '--single-file',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Write each card to a single Markdown file'
    )
    parser.add_argument(
        '--numbering',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Prefix list folders and card files with their position (default: on)'
    )
    parser.add_argument(
        '--keep-json',
        dest='keep_json_backups',
        action=argparse.BooleanOptionalAction,
        default=None,
        help='Keep the raw JSON backup of each board (default: on)'
    )
    parser.add_argument(
        '--rate-limit',
        type=int,
        help='Maximum Trello requests per second (default: 10)'
    )
    parser.add_argument(
        '--include-boards',
        type=split_names,
        help='Comma-separated board names or short links to back up'
    )
    parser.add_argument(
        '--exclude-boards',
        type=split_names,
        help='Comma-separated board names or short links to skip'
    )
    parser.add_argument(
        '--link-exclude-boards',
        type=split_names,
        help='Comma-separated boards whose cards are never turned into local links'
    )
    parser.add_argument(
        '--report-json',
        type=str,
        help='Also write the run report to this JSON file'
    )
    parser.add_argument('--log-file', type=str, help='Also log to this file')
    parser.add_argument(
        '-v', '--verbose',
        action='count',
        default=0,
        help='Increase verbosity (-v for INFO, -vv for DEBUG)'
    )

    return parser


def run_backup(config: dict, args: argparse.Namespace, logger: logging.Logger) -> int:
    """
    Run the backup described by a validated config.

    Returns:
        Exit code
    """
    options = BackupOptions.from_config(config)
    output_folder = get_nested(config, 'export.output_directory')

    with RateLimiter(options.rate_limit) as rate_limiter:
        client = TrelloClient.from_config(config, rate_limiter)
        orchestrator = BackupOrchestrator(client, output_folder, options)

        try:
            orchestrator.run()
            exit_code = 0
        except BackupError as e:
            logger.error(f"Backup failed: {e}")
            exit_code = 1

    if orchestrator.report:
        print(orchestrator.report_generator.format_console_report(orchestrator.report))
        if args.report_json:
            orchestrator.report_generator.export_json_report(orchestrator.report, args.report_json)

    return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    try:
        if ConfigLoader.create_template(args.config):
            print(f"Created configuration template at {args.config}")
            print("Add your Trello API key and token (or set TRELLO_API_KEY and TRELLO_API_TOKEN), then run again.")
            return 0

        config = ConfigLoader.load(args.config)
        config = ConfigLoader.merge_with_args(config, args)
        ConfigLoader.validate(config)

        logger = setup_logging(
            verbosity=args.verbose,
            log_file=get_nested(config, 'logging.file'),
            level=get_nested(config, 'logging.level')
        )
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        log_section("Trello to Markdown Backup")
        logger.info(f"Version: {__version__}")
        log_config(config)

        return run_backup(config, args, logger)

    except KeyboardInterrupt:
        print("\nBackup interrupted by user", file=sys.stderr)
        return 130
    except requests.exceptions.RequestException as e:
        print(f"ERROR: Trello request failed: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logging.getLogger(LOGGER_NAME).debug("Unexpected error", exc_info=True)
        print(f"ERROR: Unexpected error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
