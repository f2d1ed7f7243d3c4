#!/usr/bin/env python3
"""
CID Registry CLI

Usage:
    cidreg <command> [subcommand] [options]

Commands:
    price       Registration price at a point in time
    isqrt       Integer square root (u64)
    config      Configuration management
    simulate    Replay a YAML scenario against an in-memory registry

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from typing import Any, List, Optional

import yaml

from cidreg import __version__


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.safe_dump(data, default_flow_style=False, sort_keys=False)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


class CidregCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="cidreg",
            description="Scarce four-digit CID registry",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"cidreg {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="Configuration file (YAML); defaults are loaded otherwise",
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
        self._register_price_commands()
        self._register_config_commands()
        self._register_simulate_commands()

    def _register_price_commands(self) -> None:
        price = self.subparsers.add_parser("price", help="Registration price at a point in time")
        when = price.add_mutually_exclusive_group(required=True)
        when.add_argument("--elapsed-seconds", type=int, help="Seconds since genesis")
        when.add_argument("--months", type=int, help="Whole months since genesis")
        price.add_argument("--base-price", type=int, help="Override the configured base price")

        isqrt = self.subparsers.add_parser("isqrt", help="Integer square root of a u64")
        isqrt.add_argument("value", type=int)

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        # config get
        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., registration.base_price)")

        # config show
        config_sub.add_parser("show", help="Show all configuration")

        # config validate
        config_sub.add_parser("validate", help="Validate configuration")

        # config schema
        config_sub.add_parser("schema", help="Export configuration schema")

    def _register_simulate_commands(self) -> None:
        simulate = self.subparsers.add_parser("simulate", help="Replay a YAML scenario")
        simulate.add_argument("scenario", help="Scenario file")

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            self._configure(parsed)
            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            if parsed.command == "simulate" and not result["expectations_met"]:
                return 2
            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except Exception as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _configure(self, args: argparse.Namespace) -> None:
        from cidreg.config import get_config_manager
        from cidreg.observability import configure_logging

        mgr = get_config_manager()
        if args.config:
            mgr.load_from_file(args.config)
        else:
            mgr.load_defaults()

        level = "error" if args.quiet else mgr.get("observability.log_level")
        configure_logging(level=level, fmt=mgr.get("observability.log_format"))

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}")

        return handler(args)

    # Pricing handlers
    def _handle_price(self, args: argparse.Namespace) -> Any:
        from cidreg.config import get_config_manager
        from cidreg.duration import months_to_seconds
        from cidreg.pricing import quote_registration

        if args.months is not None:
            if args.months < 0:
                raise CLIError(f"months cannot be negative: {args.months}")
            elapsed = months_to_seconds(args.months)
        else:
            elapsed = args.elapsed_seconds
        base_price = args.base_price
        if base_price is None:
            base_price = get_config_manager().get("registration.base_price")

        try:
            return quote_registration(elapsed, base_price).to_dict()
        except ValueError as e:
            raise CLIError(str(e)) from e

    def _handle_isqrt(self, args: argparse.Namespace) -> Any:
        from cidreg.intmath import isqrt

        try:
            return {"value": args.value, "isqrt": isqrt(args.value)}
        except ValueError as e:
            raise CLIError(str(e)) from e

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        from cidreg.config import ConfigError, get_config_manager
        mgr = get_config_manager()
        try:
            value = mgr.get(args.path)
        except ConfigError as e:
            raise CLIError(str(e)) from e
        if hasattr(value, "__dataclass_fields__"):
            raise CLIError(f"{args.path} is a section; use 'config show'")
        return {"path": args.path, "value": value}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        from cidreg.config import get_config_manager
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        from cidreg.config import get_config_manager
        errors = get_config_manager().validate()
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        from cidreg.config import get_config_manager
        return get_config_manager().export_schema()

    # Simulation
    def _handle_simulate(self, args: argparse.Namespace) -> Any:
        from cidreg.simulation import ScenarioError, run_scenario

        try:
            return run_scenario(args.scenario).to_dict()
        except ScenarioError as e:
            raise CLIError(str(e)) from e


def main() -> int:
    """CLI entry point."""
    cli = CidregCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
