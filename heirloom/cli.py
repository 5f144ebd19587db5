#!/usr/bin/env python3
"""
HEIRLOOM CLI

Command-line interface for the confidential estate ledger.

Usage:
    python -m heirloom <command> [subcommand] [options]

Commands:
    scenario    Validate and replay ledger scenarios
    config      Configuration management

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from typing import Any, List, Optional

import yaml

from heirloom import __version__


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    return json.dumps(data, indent=2, default=str)


class HeirloomCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="heirloom",
            description="Confidential estate allocation ledger",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"heirloom {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="Configuration file to load",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        """Register all command groups."""
        self._register_scenario_commands()
        self._register_config_commands()

    def _register_scenario_commands(self) -> None:
        """Register scenario subcommands."""
        scenario = self.subparsers.add_parser("scenario", help="Ledger scenarios")
        scenario_sub = scenario.add_subparsers(dest="subcommand")

        # scenario run
        run = scenario_sub.add_parser("run", help="Replay a scenario")
        run.add_argument("path", help="Scenario YAML file")

        # scenario validate
        validate = scenario_sub.add_parser("validate", help="Validate a scenario file")
        validate.add_argument("path", help="Scenario YAML file")

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        # config get
        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., gateway.max_duration_days)")

        # config show
        config_sub.add_parser("show", help="Show full configuration")

        # config validate
        config_sub.add_parser("validate", help="Validate configuration")

        # config schema
        config_sub.add_parser("schema", help="Export configuration schema")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            fmt = OutputFormat(parsed.format)
            self._load_config(parsed)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return getattr(parsed, "exit_code", 0)

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except Exception as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _load_config(self, args: argparse.Namespace) -> None:
        from heirloom.config import get_config_manager
        mgr = get_config_manager()
        if args.config:
            mgr.load_from_file(args.config)
        else:
            mgr.load_defaults()

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}".strip(), exit_code=2)

        return handler(args)

    # Scenario handlers
    def _handle_scenario_run(self, args: argparse.Namespace) -> Any:
        from heirloom.scenario import ScenarioError, run_scenario
        try:
            report = run_scenario(args.path)
        except ScenarioError as e:
            raise CLIError(_describe(e)) from e
        if not report.passed:
            args.exit_code = 1
        return report.to_dict()

    def _handle_scenario_validate(self, args: argparse.Namespace) -> Any:
        from heirloom.scenario import ScenarioError, load_scenario
        try:
            data = load_scenario(args.path)
        except ScenarioError as e:
            args.exit_code = 1
            return {"valid": False, "errors": e.errors or [str(e)]}
        return {"valid": True, "name": data["name"], "steps": len(data["steps"])}

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from heirloom.config import ConfigError, get_config_manager
        mgr = get_config_manager()
        try:
            return {"path": args.path, "value": mgr.get(args.path)}
        except ConfigError as e:
            raise CLIError(str(e)) from e

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from heirloom.config import get_config_manager
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from heirloom.config import get_config_manager
        errors = get_config_manager().validate()
        if errors:
            args.exit_code = 1
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        from heirloom.config import get_config_manager
        return get_config_manager().export_schema()


def _describe(error: Exception) -> str:
    errors = getattr(error, "errors", None)
    if errors:
        return f"{error}: " + "; ".join(errors)
    return str(error)


def main() -> int:
    """CLI entry point."""
    cli = HeirloomCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
