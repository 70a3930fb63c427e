"""Command-line front end for one-shot requests.

Prints the response as JSON, for example::

    tether-request GET https://example.com/ -H "accept: text/html" --timeout 2000
"""

import argparse
import asyncio
import json
import logging
import sys

from pathlib import Path
from typing import Optional, Sequence

from .client import request
from .config import load_dotenv_for_client
from .exceptions import TetherError
from .models import Method


def parse_header(value: str) -> tuple[str, str]:
    """Split a ``Name: value`` argument into a header pair."""
    name, sep, rest = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"expected 'Name: value', got {value!r}")
    return name.strip(), rest.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tether-request",
        description="Perform a single HTTP/1.1 request and print the response as JSON.",
    )
    parser.add_argument(
        "method",
        type=str.upper,
        choices=[method.value for method in Method],
        help="HTTP method",
    )
    parser.add_argument("url", help="absolute http:// or https:// URL")
    parser.add_argument(
        "-H",
        "--header",
        dest="headers",
        action="append",
        type=parse_header,
        default=[],
        help="request header as 'Name: value'; may be repeated",
    )
    parser.add_argument("-d", "--data", default="", help="request body")
    parser.add_argument("--timeout", type=int, help="response timeout in milliseconds")
    parser.add_argument("--env-file", type=Path, help="load settings from this .env file")
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug logging")
    return parser


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the request described by ``argv``.

    Exit Codes
    ----------
    0 : Response received (whatever its status code)
    1 : The request failed
    """
    args = build_parser().parse_args(argv)
    load_dotenv_for_client(args.env_file)

    options = {"timeout": args.timeout} if args.timeout is not None else None
    try:
        response = await request(args.method, args.url, args.headers, args.data, options)
    except TetherError as e:
        logging.error("Request failed: %s", e)
        return 1
    except ValueError as e:
        logging.error("Invalid request: %s", e)
        return 1

    print(json.dumps(response.to_dict(), indent=2))
    return 0


def cli_main():
    """Entry point for the tether-request command."""
    verbose = "-v" in sys.argv[1:] or "--verbose" in sys.argv[1:]
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli_main()
