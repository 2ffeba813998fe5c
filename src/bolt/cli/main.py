"""
Main CLI entrypoint for bolt.

Usage:
    bolt --version
    bolt run site.yml [-n] [-e key=value]
    bolt validate site.yml [other.yml ...]
    bolt modules
"""

import argparse
import asyncio
import json
import logging
import platform
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from bolt import __version__
from bolt.engine.errors import BoltError, ExitCode, PlaybookValidationError
from bolt.engine.playbook import load_playbook_file, playbook_warnings, validate_playbook
from bolt.modules.base import get_default_registry
from bolt.output import QuietReporter, Reporter, color_enabled


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def get_version_string() -> str:
    """Generate a detailed version string."""
    python_version = platform.python_version()
    os_info = f"{platform.system()} {platform.release()}"
    return (
        f"bolt {__version__}\n"
        f"  python: {python_version}\n"
        f"  platform: {os_info}"
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for bolt."""
    parser = argparse.ArgumentParser(
        prog="bolt",
        description="Apply declarative YAML playbooks to the local machine or a container",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  bolt run site.yml
  bolt run site.yml --dry-run -e env=staging
  bolt validate site.yml web.yml
  bolt modules
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=get_version_string(),
    )

    parser.add_argument(
        "--log-level",
        dest="log_level",
        choices=LOG_LEVELS,
        default="WARNING",
        type=str.upper,
        help="Diagnostic log level (default: WARNING)",
    )

    subparsers = parser.add_subparsers(dest="command")

    run = subparsers.add_parser("run", help="Run a playbook")
    run.add_argument("playbook", help="Playbook file to run")
    run.add_argument(
        "-n", "--dry-run",
        dest="dry_run",
        action="store_true",
        help="Resolve and template every task without executing modules",
    )
    run.add_argument(
        "-d", "--debug",
        action="store_true",
        help="Show module messages and debug logging",
    )
    run.add_argument(
        "--no-color",
        dest="no_color",
        action="store_true",
        help="Disable coloured output",
    )
    run.add_argument(
        "-e", "--extra-vars",
        dest="extra_vars",
        action="append",
        default=[],
        help="Extra variables as key=value or JSON (can be repeated)",
    )
    run.add_argument(
        "--roles-path",
        dest="roles_path",
        default=None,
        help="Roles directory (default: <playbook dir>/roles)",
    )
    run.add_argument(
        "--json",
        action="store_true",
        help="Print the run result as JSON",
    )

    validate = subparsers.add_parser("validate", help="Check playbooks without running them")
    validate.add_argument("playbooks", nargs="+", help="Playbook file(s) to check")
    validate.add_argument(
        "--roles-path",
        dest="roles_path",
        default=None,
        help="Roles directory (default: <playbook dir>/roles)",
    )

    subparsers.add_parser("modules", help="List available modules")

    return parser


def _parse_extra_vars(extra_vars_list: List[str]) -> Dict[str, Any]:
    """Parse extra vars from command line."""
    result: Dict[str, Any] = {}
    for item in extra_vars_list:
        item = item.strip()

        # Try JSON first
        if item.startswith('{'):
            try:
                result.update(json.loads(item))
                continue
            except json.JSONDecodeError:
                pass

        if '=' in item:
            key, _, value = item.partition('=')
            key = key.strip()
            value = value.strip()

            # Try to parse value as JSON for complex types
            try:
                result[key] = json.loads(value)
            except json.JSONDecodeError:
                result[key] = value
        elif item.startswith('@') and Path(item[1:]).exists():
            with open(item[1:]) as f:
                file_vars = yaml.safe_load(f)
            if not isinstance(file_vars, dict):
                raise BoltError(f"extra vars file {item[1:]} must contain a mapping")
            result.update(file_vars)
        else:
            raise BoltError(f"invalid extra var '{item}': expected key=value, JSON or @file")

    return result


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def cmd_run(parsed: argparse.Namespace) -> int:
    """Run a playbook."""
    from bolt.engine.executor import Executor, ExecutorOptions

    color = color_enabled(not parsed.no_color) and not parsed.json
    reporter = Reporter(color=color)
    # Keep stdout clean for the JSON document
    progress = QuietReporter() if parsed.json else reporter

    try:
        extra_vars = _parse_extra_vars(parsed.extra_vars)
        options = ExecutorOptions(
            dry_run=parsed.dry_run,
            debug=parsed.debug,
            roles_dir=parsed.roles_path,
            extra_vars=extra_vars,
            color=color,
        )
        executor = Executor(reporter=progress, options=options)
        result = asyncio.run(executor.run_file(parsed.playbook))
    except PlaybookValidationError as e:
        for error in e.errors:
            reporter.error(f"ERROR: {error}")
        return e.exit_code
    except BoltError as e:
        reporter.error(f"ERROR: {e}")
        return e.exit_code
    except KeyboardInterrupt:
        reporter.error("\nInterrupted")
        return ExitCode.KEYBOARD_INTERRUPT

    if parsed.json:
        print(result.to_json())
    return result.exit_code


def cmd_validate(parsed: argparse.Namespace) -> int:
    """Report every problem in every playbook given."""
    registry = get_default_registry()
    failed = False

    for path in parsed.playbooks:
        try:
            playbook = load_playbook_file(path, roles_dir=parsed.roles_path)
        except BoltError as e:
            print(f"{path}: {e}", file=sys.stderr)
            failed = True
            continue

        errors = validate_playbook(playbook, registry)
        for error in errors:
            print(f"{path}: {error}", file=sys.stderr)
        for warning in playbook_warnings(playbook):
            print(f"{path}: warning: {warning}", file=sys.stderr)
        if errors:
            failed = True
        else:
            print(f"{path}: ok ({len(playbook)} play(s))")

    return ExitCode.PARSE_ERROR if failed else ExitCode.SUCCESS


def cmd_modules(parsed: argparse.Namespace) -> int:
    """List registered modules."""
    registry = get_default_registry()
    for name in registry.names():
        module_class = registry.get(name)
        doc = (module_class.__doc__ or "").strip().splitlines()
        summary = doc[0] if doc else ""
        print(f"{name:12} {summary}")
    return ExitCode.SUCCESS


COMMANDS = {
    "run": cmd_run,
    "validate": cmd_validate,
    "modules": cmd_modules,
}


def main(args: Optional[List[str]] = None) -> int:
    """Main entrypoint for bolt CLI."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return ExitCode.SUCCESS

    level = "DEBUG" if getattr(parsed, "debug", False) else parsed.log_level
    _setup_logging(level)

    return int(COMMANDS[parsed.command](parsed))


if __name__ == "__main__":
    sys.exit(main())
