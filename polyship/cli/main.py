# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI entrypoint for polyship.

This is the single root command; every operation is a subcommand of `polyship`.
No separate executables, no interactive prompts.

The global options (--config, --log-level, --dry-run, --only, --tag, --output)
are inherited by every subcommand through argparse's parent parser mechanism.

Usage:
    polyship <subcommand> [options]
    polyship init
    polyship plan --json
    polyship package --only api --tag v1.4.0
    polyship release --no-draft
    polyship verify --output dist
"""

import argparse
import sys

from polyship.cli.commands import (
    handle_build,
    handle_info,
    handle_init,
    handle_package,
    handle_plan,
    handle_release,
    handle_verify,
)
from polyship.cli.exit_codes import USER_ERROR


def _build_global_parser() -> argparse.ArgumentParser:
    """
    Build the parent parser with global options.

    A separate parent parser (add_help=False) keeps help text from colliding
    between the parent and the subcommand parsers.
    """
    parent = argparse.ArgumentParser(add_help=False)
    parent.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to the YAML configuration file (default: ./.polyship.yaml).",
    )
    parent.add_argument(
        "--log-level",
        type=str,
        default=None,
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging verbosity level (overrides global.log_level).",
    )
    parent.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        dest="dry_run",
        help="Compute and log the plan without running any build tool.",
    )
    parent.add_argument(
        "--only",
        action="append",
        default=None,
        metavar="NAME[,NAME...]",
        help="Restrict the run to these packages. Repeatable or comma-separated.",
    )
    parent.add_argument(
        "--tag",
        type=str,
        default=None,
        help="Use this tag as the release version instead of the configured source.",
    )
    parent.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output directory (overrides global.output_dir).",
    )
    return parent


def _register_subcommands(
    subparsers: argparse._SubParsersAction,  # type: ignore[type-arg]
    parent: argparse.ArgumentParser,
) -> None:
    """
    Register all subcommands with their handler functions.

    Each subcommand gets the global options from the parent parser and sets
    its handler via set_defaults(func=...).
    """
    commands = [
        ("init", "Detect projects and write a starter .polyship.yaml.", handle_init),
        ("plan", "Show the packages, targets and artifact names of a release.", handle_plan),
        ("build", "Run the build stage only.", handle_build),
        ("package", "Build, package, attach SBOMs and signatures, write the manifest.", handle_package),
        ("release", "Package, then publish the release to GitHub.", handle_release),
        ("verify", "Check an output directory against its manifest.", handle_verify),
        ("info", "Display environment and toolchain information.", handle_info),
    ]

    for name, help_text, handler in commands:
        parser = subparsers.add_parser(name, parents=[parent], help=help_text)
        parser.set_defaults(func=handler)

    subparsers.choices["init"].add_argument(
        "--force",
        action="store_true",
        default=False,
        help="Overwrite an existing config file.",
    )
    subparsers.choices["plan"].add_argument(
        "--json",
        action="store_true",
        default=False,
        dest="as_json",
        help="Print the plan as JSON on stdout.",
    )

    release_parser = subparsers.choices["release"]
    release_parser.add_argument(
        "--draft",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Create the GitHub release as a draft (default: release.draft).",
    )
    release_parser.add_argument(
        "--prerelease",
        action="store_true",
        default=None,
        help="Mark the GitHub release as a prerelease.",
    )

    subparsers.choices["verify"].add_argument(
        "--manifest",
        type=str,
        default=None,
        help="Manifest to verify against (default: <output>/manifest.json).",
    )
    subparsers.choices["verify"].add_argument(
        "--require-signatures",
        action="store_true",
        default=None,
        dest="require_signatures",
        help="Demand a signature for every manifest entry.",
    )


def main() -> None:
    """
    Main CLI entrypoint. This is what pyproject.toml's [project.scripts] points to.

    If no subcommand is given, print help and exit with USER_ERROR.
    """
    parent = _build_global_parser()

    root_parser = argparse.ArgumentParser(
        prog="polyship",
        description="polyship: reproducible multi-language release builds.",
        parents=[parent],
    )
    subparsers = root_parser.add_subparsers(dest="command")
    _register_subcommands(subparsers, parent)

    args = root_parser.parse_args()

    if not hasattr(args, "func") or args.func is None:
        root_parser.print_help()
        sys.exit(USER_ERROR)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
