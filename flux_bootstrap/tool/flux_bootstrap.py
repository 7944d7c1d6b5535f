"""Command line tool for bootstrapping the flux toolkit onto a cluster."""

import argparse
import asyncio
import logging
import sys
import traceback

from flux_bootstrap.exceptions import FluxException
from . import git

_LOGGER = logging.getLogger(__name__)


def _make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Bootstrap the flux toolkit components on a cluster.",
    )
    parser.add_argument(
        "--verbosity",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Log level of this tool",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command", required=True)

    git.GitAction.register(subparsers)
    return parser


def main(argv: list[str] | None = None) -> None:
    """Flux-bootstrap command line tool main entry point."""
    parser = _make_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.verbosity, format="%(levelname)s %(message)s")

    action = args.cls()
    try:
        asyncio.run(action.run(**vars(args)))
    except FluxException as err:
        if args.verbosity == "DEBUG":
            traceback.print_exc(file=sys.stderr)
        print("flux-bootstrap error: ", err, file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("flux-bootstrap: interrupted", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
