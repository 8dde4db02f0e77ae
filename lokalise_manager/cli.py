"""
lokalise-manager - synchronize translation files with Lokalise

Commands:
    export   - Upload local translation files to the Lokalise project
    import   - Download the translation bundle into the locales directory

Options are read from lokalise_manager.yaml (or --config / $LOKALISE_MANAGER_CONFIG),
.env and the LOKALISE_API_TOKEN / LOKALISE_PROJECT_ID / LOKALISE_BRANCH variables.
"""
import argparse
import logging
import sys
from typing import Any, Dict, List, Optional

from lokalise_manager.app_config import defaults_from_config, load_config_file
from lokalise_manager.errors import LokaliseManagerError
from lokalise_manager.exporter import Exporter
from lokalise_manager.importer import Importer
from lokalise_manager.logging_config import setup_logger

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_CANCELLED = 2


def _setup_logger_from_config(config: Dict[str, Any], level_override: Optional[str]) -> logging.Logger:
    log_config = config.get('logging') or {}
    log_level_str = level_override or log_config.get('log_level', 'WARNING')
    return setup_logger(
        log_level_str,
        log_config.get('log_file_path'),
        log_config.get('log_to_console', True),
    )


def cmd_export(args, defaults) -> int:
    custom_opts: Dict[str, Any] = {}
    if args.silent:
        custom_opts['silent_mode'] = True
    if args.no_fail_fast:
        custom_opts['raise_on_export_fail'] = False

    outcomes = Exporter(custom_opts, defaults).export()
    failed = [outcome for outcome in outcomes if not outcome.success]
    for outcome in failed:
        print(f"Failed: {outcome.path}: {outcome.error}", file=sys.stderr)
    return EXIT_ERROR if failed else EXIT_OK


def cmd_import(args, defaults) -> int:
    custom_opts: Dict[str, Any] = {}
    if args.silent:
        custom_opts['silent_mode'] = True
    if args.use_async:
        custom_opts['import_async'] = True
    if args.safe_mode:
        custom_opts['import_safe_mode'] = True

    completed = Importer(custom_opts, defaults).import_files()
    return EXIT_OK if completed else EXIT_CANCELLED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='lokalise-manager',
        description='Exchange translation files between a project and Lokalise.',
    )
    parser.add_argument('--config', help='Path to the YAML configuration file')
    parser.add_argument('--log-level', help='Logging level (DEBUG, INFO, WARNING, ...)')

    subparsers = parser.add_subparsers(dest='command', required=True)

    export_parser = subparsers.add_parser('export', help='Upload translation files to Lokalise')
    export_parser.add_argument('--silent', action='store_true', help='Do not print progress or messages')
    export_parser.add_argument('--no-fail-fast', action='store_true',
                               help='Keep uploading when a file fails and report failures at the end')
    export_parser.set_defaults(handler=cmd_export)

    import_parser = subparsers.add_parser('import', help='Download translation files from Lokalise')
    import_parser.add_argument('--silent', action='store_true', help='Do not print messages')
    import_parser.add_argument('--async', dest='use_async', action='store_true',
                               help='Use an asynchronous download process')
    import_parser.add_argument('--safe-mode', action='store_true',
                               help='Ask before writing into a non-empty directory')
    import_parser.set_defaults(handler=cmd_import)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config_file(args.config)
    logger = _setup_logger_from_config(config, args.log_level)

    try:
        defaults = defaults_from_config(config)
        return args.handler(args, defaults)
    except LokaliseManagerError as e:
        logger.error("%s failed (%s): %s", args.command, e.kind.value, e)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == '__main__':
    sys.exit(main())
