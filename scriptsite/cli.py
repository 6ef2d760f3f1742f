"""CLI entrypoints for scriptsite commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import List

from .build import SiteBuild
from .errors import SiteError
from .logging import configure_logging


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_log_file_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    parser.add_argument(
        "--log-file",
        type=Path,
        default=argparse.SUPPRESS if suppress_default else None,
        help="Also write log output to this file.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scriptsite",
        description="Build a static site from a directory of scripts, pages and assets.",
    )
    _add_verbose_option(parser)
    _add_log_file_option(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser(
        "build",
        help="Evaluate the content tree and write the site.",
    )
    _add_verbose_option(build_parser, suppress_default=True)
    _add_log_file_option(build_parser, suppress_default=True)
    build_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the project root (defaults to current directory).",
    )
    build_parser.add_argument(
        "-o",
        "--output",
        default=None,
        help="Output directory (defaults to output_dir from site.yml).",
    )
    build_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Evaluate every script without writing any output.",
    )

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for scriptsite commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    if args.command == "build":
        dry_run = bool(getattr(args, "dry_run", False))
        try:
            result = SiteBuild().run(args.path, output=args.output, dry_run=dry_run)
        except SiteError as exc:
            _print_warnings(exc.warnings)
            parser.exit(1, f"scriptsite build failed:\n{exc.describe()}\n")
        _print_warnings(result.warnings)
        if dry_run:
            print(f"Site evaluated (dry-run), would write to {_relativize(result.output)}")
        else:
            print(f"Site written to {_relativize(result.output)}")
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _print_warnings(warnings: List[str]) -> None:
    for warning in warnings:
        print(f"warning: {warning}", file=sys.stderr)


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
