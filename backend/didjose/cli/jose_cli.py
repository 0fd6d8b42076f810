#!/usr/bin/env python3
"""didjose inspection CLI.

Decodes tokens and envelopes without verifying or decrypting them.

Usage:
    didjose decode eyJhbGciOi...
    didjose inspect-jwe message.jwe
    cat message.jwe | didjose inspect-jwe -
    didjose algorithms

Exit Codes:
    0 - Success
    2 - Token or envelope could not be parsed
    3 - Invalid arguments
"""

import argparse
import json
import logging
import sys
from enum import Enum
from pathlib import Path

from pydantic import ValidationError

from didjose.config import get_settings
from didjose.core.algorithms import algorithm_registry
from didjose.core.encoding import decode_section
from didjose.core.errors import MalformedEnvelope, MalformedToken
from didjose.core.jwe import JWE
from didjose.core.jwt import decode_jwt

# =============================================================================
# Terminal Colors (for non-CI output)
# =============================================================================


class Colors:
    """ANSI color codes for terminal output."""

    RED = "\033[91m"
    GREEN = "\033[92m"
    CYAN = "\033[96m"
    BOLD = "\033[1m"
    RESET = "\033[0m"

    @classmethod
    def disable(cls):
        """Disable colors (for CI/CD or piped output)."""
        cls.RED = ""
        cls.GREEN = ""
        cls.CYAN = ""
        cls.BOLD = ""
        cls.RESET = ""


def colored(text: str, color: str) -> str:
    return f"{color}{text}{Colors.RESET}"


class OutputFormat(str, Enum):
    """Output format options."""

    TEXT = "text"
    JSON = "json"


def output_sections(sections: dict[str, object], format: OutputFormat) -> None:
    if format == OutputFormat.JSON:
        print(json.dumps(sections, indent=2))
        return
    for title, value in sections.items():
        print(colored(title, Colors.BOLD + Colors.CYAN))
        print(json.dumps(value, indent=2))


def error(message: str) -> None:
    print(colored(f"✗ {message}", Colors.RED), file=sys.stderr)


# =============================================================================
# Commands
# =============================================================================


def cmd_decode(args) -> int:
    """Print the header and payload of a compact JWT."""
    try:
        decoded = decode_jwt(args.token.strip())
    except MalformedToken as e:
        error(str(e))
        return 2
    output_sections({"header": decoded.header, "payload": decoded.payload}, args.format)
    return 0


def cmd_inspect_jwe(args) -> int:
    """Print the protected and per-recipient headers of a JWE."""
    if args.file == "-":
        raw = sys.stdin.read()
    else:
        path = Path(args.file)
        if not path.exists():
            error(f"File not found: {path}")
            return 2
        raw = path.read_text()

    try:
        jwe = JWE.parse(raw.strip())
        protected = decode_section(jwe.protected)
    except MalformedEnvelope as e:
        error(str(e))
        return 2
    except ValueError as e:
        error(f"invalid_jwe: Invalid protected header: {e}")
        return 2

    output_sections(
        {
            "protected": protected,
            "recipients": [r.header for r in jwe.recipients],
        },
        args.format,
    )
    return 0


def cmd_algorithms(args) -> int:
    """List the registered signing algorithms."""
    names = sorted(algorithm_registry.algorithms())
    if args.format == OutputFormat.JSON:
        print(json.dumps(names))
    else:
        for name in names:
            print(f"{colored('•', Colors.GREEN)} {name}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="didjose",
        description="Inspect DID JWTs and JWEs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show the claims of a token
  didjose decode eyJhbGciOiJFUzI1NksifQ.eyJpc3MiOiJkaWQ6ZXhhbXBsZTphbGljZSJ9.c2ln

  # Show recipient headers of an encrypted message
  didjose inspect-jwe message.jwe --format json
        """,
    )
    parser.add_argument(
        "--format",
        "-f",
        type=OutputFormat,
        choices=list(OutputFormat),
        default=OutputFormat.TEXT,
        help="Output format (default: text)",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    decode_parser = subparsers.add_parser("decode", help="Decode a compact JWT without verifying it")
    decode_parser.add_argument("token", help="Compact JWT")

    jwe_parser = subparsers.add_parser("inspect-jwe", help="Show the headers of a JWE")
    jwe_parser.add_argument("file", help="File holding a compact or JSON JWE, or - for stdin")

    subparsers.add_parser("algorithms", help="List registered signing algorithms")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        # argparse exits with 2 on bad usage; report it as an argument error
        return 0 if e.code == 0 else 3

    try:
        settings = get_settings()
    except ValidationError as e:
        error(f"Invalid configuration: {e}")
        return 3
    logging.basicConfig(level=settings.log_level)

    if args.no_color or not sys.stdout.isatty():
        Colors.disable()

    if not args.command:
        parser.print_help()
        return 0

    if args.command == "decode":
        return cmd_decode(args)
    elif args.command == "inspect-jwe":
        return cmd_inspect_jwe(args)
    elif args.command == "algorithms":
        return cmd_algorithms(args)
    else:
        parser.print_help()
        return 3


if __name__ == "__main__":
    sys.exit(main())
