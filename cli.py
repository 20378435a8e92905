#!/usr/bin/env python3
"""
Action Resolver - Console

Resolve a request file and show the decision trace.

Usage: python cli.py request.json [--config config.json] [--json] [-v]
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from action_resolver.console import render_result, setup_logging
from action_resolver.engine import ActionResolver
from action_resolver.models import ConfigurationError, ResolverConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Resolve an action-resolver request file")
    parser.add_argument('request', type=Path, help="JSON request body")
    parser.add_argument('--config', type=Path, help="resolver configuration (JSON)")
    parser.add_argument('--json', action='store_true', help="print the raw JSON response")
    parser.add_argument('-v', '--verbose', action='store_true', help="debug logging")
    return parser


def main(argv: Optional[List[str]] = None, console: Optional[Console] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    console = console or Console()
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING)

    try:
        config = ResolverConfig.from_file(args.config) if args.config else ResolverConfig()
        payload = json.loads(args.request.read_text(encoding='utf-8'))
    except (OSError, json.JSONDecodeError, ConfigurationError) as e:
        console.print(f"[bold red]Erro:[/bold red] {e}")
        return 2

    result = ActionResolver(config).resolve(payload)

    if args.json:
        console.print_json(data=result.to_dict())
    else:
        render_result(console, result)

    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
