"""CLI entry point for fluent-request.

Builds one HTTPRequest from command-line flags (optionally layered on a
profile from a YAML config file), sends it and prints the response body.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from fluent_request.config_loader import ConfigError, get_profile, load_profiles
from fluent_request.errors import FluentRequestError
from fluent_request.models import LogLevel, ResponseMeta
from fluent_request.request import PACKAGE_LOGGER, HTTPRequest


def positive_float(value: str) -> float:
    """Parse and validate a positive float value.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive number.
    """
    try:
        result = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid number '{value}'.")
    if result <= 0:
        raise argparse.ArgumentTypeError(f"Value must be positive, got {result}.")
    return result


def parse_header(value: str) -> tuple[str, str]:
    """Parse "Name: value" format.

    Raises:
        argparse.ArgumentTypeError: If format is invalid.
    """
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(
            f"Invalid header '{value}'. Expected 'Name: value' (e.g., 'Accept: application/json')"
        )
    return (name.strip(), header_value.strip())


def parse_query_param(value: str) -> tuple[str, str]:
    """Parse KEY=VALUE format. A missing value means the empty string."""
    key, _, param_value = value.partition("=")
    if not key:
        raise argparse.ArgumentTypeError(f"Invalid query parameter '{value}'. Key cannot be empty.")
    return (key, param_value)


def json_value(value: str) -> Any:
    """Parse a JSON document given on the command line."""
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise argparse.ArgumentTypeError(f"Invalid JSON body: {e}")


@dataclass
class FetchArgs:
    """Parsed arguments for the fetch command."""

    url: str | None
    verb: str | None
    headers: list[tuple[str, str]] = field(default_factory=list)
    query: list[tuple[str, str]] = field(default_factory=list)
    data: str | None = None
    json_body: Any = None
    timeout: float | None = None
    cert: str | None = None
    key: str | None = None
    keep_alive: bool = False
    config: Path | None = None
    profile: str | None = None
    include: bool = False
    verbosity: int = 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with the fetch subcommand."""
    parser = argparse.ArgumentParser(
        prog="fluent-request",
        description="Send an HTTP request and print the response.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="Command")

    fetch_parser = subparsers.add_parser("fetch", help="Send one request and print the response body")
    fetch_parser.add_argument(
        "url",
        nargs="?",
        default=None,
        help="Target URL (optional when the profile defines one)",
    )
    fetch_parser.add_argument(
        "-X", "--request",
        dest="verb",
        default=None,
        metavar="VERB",
        help="HTTP method (default: GET, or the profile's verb)",
    )
    fetch_parser.add_argument(
        "-H", "--header",
        dest="headers",
        type=parse_header,
        action="append",
        default=[],
        metavar="'NAME: VALUE'",
        help="Set a header (can be repeated)",
    )
    fetch_parser.add_argument(
        "-q", "--query",
        dest="query",
        type=parse_query_param,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Add a query parameter (can be repeated)",
    )
    body_group = fetch_parser.add_mutually_exclusive_group()
    body_group.add_argument(
        "-d", "--data",
        default=None,
        help="Raw request body",
    )
    body_group.add_argument(
        "--json-body",
        type=json_value,
        default=None,
        metavar="JSON",
        help="JSON request body (sets Content-Type: application/json)",
    )
    fetch_parser.add_argument(
        "--timeout",
        type=positive_float,
        default=None,
        help="Request timeout in seconds (default: unbounded)",
    )
    fetch_parser.add_argument(
        "--cert",
        default=None,
        help="Path to a PEM client certificate",
    )
    fetch_parser.add_argument(
        "--key",
        default=None,
        help="Path to the client certificate's PEM private key",
    )
    fetch_parser.add_argument(
        "--keep-alive",
        action="store_true",
        help="Dial with TCP keep-alive and allow connection reuse",
    )
    fetch_parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to a YAML profiles file",
    )
    fetch_parser.add_argument(
        "--profile",
        default=None,
        help="Profile name from --config to apply before the other flags",
    )
    fetch_parser.add_argument(
        "-i", "--include",
        action="store_true",
        help="Print the status line and response headers before the body",
    )
    fetch_parser.add_argument(
        "-v", "--verbose",
        dest="verbosity",
        action="count",
        default=0,
        help="Log request activity to stderr (-v verbose, -vv debug)",
    )

    return parser


def parse_fetch_args(namespace: argparse.Namespace) -> FetchArgs:
    return FetchArgs(
        url=namespace.url,
        verb=namespace.verb,
        headers=namespace.headers,
        query=namespace.query,
        data=namespace.data,
        json_body=namespace.json_body,
        timeout=namespace.timeout,
        cert=namespace.cert,
        key=namespace.key,
        keep_alive=namespace.keep_alive,
        config=namespace.config,
        profile=namespace.profile,
        include=namespace.include,
        verbosity=namespace.verbosity,
    )


def parse_args(args: list[str] | None = None) -> FetchArgs:
    """Parse command-line arguments and return typed args dataclass.

    Args:
        args: Command-line arguments to parse. If None, uses sys.argv[1:].

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)

    if (namespace.cert is None) != (namespace.key is None):
        parser.error("--cert and --key must be given together")
    if namespace.profile is not None and namespace.config is None:
        parser.error("--profile requires --config")

    return parse_fetch_args(namespace)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        return run_fetch(parse_args(argv))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


def build_request(args: FetchArgs) -> HTTPRequest:
    """Translate parsed arguments into an HTTPRequest.

    The profile is applied first so explicit flags override it.

    Raises:
        ConfigError: If the config file or profile cannot be loaded, or no
            URL is available.
    """
    request = HTTPRequest()

    if args.config is not None:
        profiles = load_profiles(args.config)
        if args.profile is not None:
            request.with_profile(get_profile(profiles, args.profile))

    if args.url is not None:
        request.with_url(args.url)
    elif not request.host:
        raise ConfigError("No URL given and no profile defines one")

    if args.verb is not None:
        request.with_verb(args.verb.upper())
    for name, value in args.headers:
        request.with_header(name, value)
    for key, value in args.query:
        request.with_query_string(key, value)

    if args.data is not None:
        request.with_raw_body(args.data.encode("utf-8"))
    elif args.json_body is not None:
        request.with_json_body(args.json_body)

    if args.timeout is not None:
        request.with_timeout(args.timeout)
    if args.cert is not None and args.key is not None:
        request.with_tls_cert(args.cert).with_tls_key(args.key)
    if args.keep_alive:
        request.with_keep_alives()

    if args.verbosity:
        level = LogLevel.VERBOSE if args.verbosity == 1 else LogLevel.DEBUG
        request.with_logger(level, _stderr_logger())

    return request


def run_fetch(args: FetchArgs) -> int:
    """Run the fetch command."""
    try:
        request = build_request(args)
    except ConfigError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    try:
        body, meta = request.fetch_string_with_meta()
    except FluentRequestError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.include:
        print(format_meta(meta))
        print()
    sys.stdout.write(body)
    if body and not body.endswith("\n"):
        sys.stdout.write("\n")
    return 0


def format_meta(meta: ResponseMeta) -> str:
    """Status line followed by one "name: value" line per header value."""
    lines = [f"HTTP {meta.status_code}"]
    for name, values in meta.headers.items():
        for value in values:
            lines.append(f"{name}: {value}")
    return "\n".join(lines)


def _stderr_logger() -> logging.Logger:
    logger = logging.getLogger(PACKAGE_LOGGER)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(asctime)s %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    return logger


if __name__ == "__main__":
    sys.exit(main())
