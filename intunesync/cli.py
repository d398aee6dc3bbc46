# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Command-line interface for intunesync.

Commands:

    validate: Validate catalog syntax and configuration
    package: Discover, download and package every catalog application
    deploy: Publish the newest archives to Intune with supersedence
    run: package, then deploy

Example:
    Validate the catalog:
        ```bash
        $ intunesync validate catalog/apps.yaml
        ```

    Package a single application:
        ```bash
        $ intunesync package catalog/apps.yaml --app 7zip
        ```

    Deploy and make new entries available to all users:
        ```bash
        $ intunesync deploy catalog/apps.yaml --assign-users
        ```

    Full run with debug output:
        ```bash
        $ intunesync run catalog/apps.yaml --debug
        ```

Exit Codes:

- 0: Every application succeeded (skipped counts as success)
- 1: Fatal setup failure (catalog, authentication) or any application failed

Note:
    Tenant credentials come from --tenant-id/--client-id/--client-secret or
    the INTUNE_TENANT_ID, INTUNE_CLIENT_ID and INTUNE_CLIENT_SECRET
    environment variables (a .env file is honoured).

"""

from __future__ import annotations

import argparse
from importlib.metadata import version
from pathlib import Path
import sys
import traceback

from intunesync.auth import GraphSession
from intunesync.config import load_descriptors
from intunesync.core import run_deployment, run_packaging
from intunesync.exceptions import AuthError, ConfigError, IntuneSyncError
from intunesync.logging import get_logger, set_global_logger
from intunesync.results import RunSummary
from intunesync.validation import validate_catalog


def _configure_logger(args: argparse.Namespace) -> None:
    logger = get_logger(verbose=args.verbose, debug=getattr(args, "debug", False))
    set_global_logger(logger)


def _report_error(args: argparse.Namespace, err: Exception) -> None:
    print(f"Error: {err}")
    if args.verbose or getattr(args, "debug", False):
        traceback.print_exc()


def _print_summary(title: str, summary: RunSummary) -> None:
    print("=" * 70)
    print(title)
    print("=" * 70)
    for result in summary.results:
        extra = ""
        if getattr(result, "superseded", ()):
            extra = f"  supersedes {len(result.superseded)}"
        if getattr(result, "edge_failures", ()):
            extra += f"  ({len(result.edge_failures)} edge failure(s))"
        print(f"{result.app_id:<24} {result.status:<18} {result.version or '-'}{extra}")
    print("=" * 70)
    print(f"Succeeded: {len(summary.succeeded)}   Failed: {len(summary.failed)}")
    for app_id, reason in summary.failed:
        print(f"  [X] {app_id}: {reason}")
    print()


def _load(args: argparse.Namespace):
    catalog_path = Path(args.catalog).resolve()
    if not catalog_path.exists():
        raise ConfigError(f"Catalog file not found: {catalog_path}")
    return load_descriptors(catalog_path, app_id=args.app)


def _session(args: argparse.Namespace) -> GraphSession:
    session = GraphSession(
        tenant_id=args.tenant_id,
        client_id=args.client_id,
        client_secret=args.client_secret,
    )
    if not session.ensure_valid():
        raise AuthError("Could not connect to Microsoft Graph; check tenant credentials")
    return session


def _deploy(args: argparse.Namespace, descriptors) -> RunSummary:
    return run_deployment(
        descriptors,
        Path(args.packages_dir),
        _session(args),
        force_update=args.force_update,
        assign_users=args.assign_users,
        assign_devices=args.assign_devices,
    )


def cmd_validate(args: argparse.Namespace) -> int:
    """Handler for 'intunesync validate' command.

    Checks the catalog without making network calls.

    Returns:
        Exit code (0 for a valid catalog, 1 otherwise).

    """
    _configure_logger(args)

    catalog_path = Path(args.catalog).resolve()
    print(f"Validating catalog: {catalog_path}")
    print()

    result = validate_catalog(catalog_path)

    print("=" * 70)
    print("VALIDATION RESULTS")
    print("=" * 70)
    print(f"Catalog:     {result.catalog_path}")
    print(f"Status:      {result.status.upper()}")
    print(f"App Count:   {result.app_count}")
    print()

    if result.warnings:
        print(f"Warnings ({len(result.warnings)}):")
        for warning in result.warnings:
            print(f"  [WARNING] {warning}")
        print()

    if result.errors:
        print(f"Errors ({len(result.errors)}):")
        for error in result.errors:
            print(f"  [X] {error}")
        print()

    print("=" * 70)

    if result.status == "valid":
        print()
        print("[SUCCESS] Catalog is valid!")
        return 0
    print()
    print(f"[FAILED] Catalog validation failed with {len(result.errors)} error(s).")
    return 1


def cmd_package(args: argparse.Namespace) -> int:
    """Handler for 'intunesync package' command."""
    _configure_logger(args)

    try:
        descriptors = _load(args)
    except IntuneSyncError as err:
        _report_error(args, err)
        return 1

    print(f"Packaging {len(descriptors)} application(s) into {Path(args.packages_dir).resolve()}")
    print()
    summary = run_packaging(descriptors, Path(args.packages_dir))
    _print_summary("PACKAGE RESULTS", summary)
    return 0 if summary.all_succeeded else 1


def cmd_deploy(args: argparse.Namespace) -> int:
    """Handler for 'intunesync deploy' command.

    Reconciles the newest archive of each application against Intune.
    Authentication loss aborts the run with exit code 1.
    """
    _configure_logger(args)

    try:
        descriptors = _load(args)
        print(f"Deploying {len(descriptors)} application(s)")
        print()
        summary = _deploy(args, descriptors)
    except IntuneSyncError as err:
        _report_error(args, err)
        return 1

    _print_summary("DEPLOY RESULTS", summary)
    return 0 if summary.all_succeeded else 1


def cmd_run(args: argparse.Namespace) -> int:
    """Handler for 'intunesync run' command: package pass, then deploy pass."""
    _configure_logger(args)

    try:
        descriptors = _load(args)
    except IntuneSyncError as err:
        _report_error(args, err)
        return 1

    packaging = run_packaging(descriptors, Path(args.packages_dir))
    _print_summary("PACKAGE RESULTS", packaging)

    try:
        deployment = _deploy(args, descriptors)
    except IntuneSyncError as err:
        _report_error(args, err)
        return 1
    _print_summary("DEPLOY RESULTS", deployment)

    return 0 if packaging.all_succeeded and deployment.all_succeeded else 1


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "catalog",
        help="Path to the catalog YAML file",
    )
    parser.add_argument(
        "--app",
        default=None,
        help="Only process the application with this id",
    )
    parser.add_argument(
        "--packages-dir",
        default="./packages",
        help="Root of the archive directory tree (default: ./packages)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show progress and high-level status updates",
    )
    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Show detailed debugging output (implies --verbose)",
    )


def _add_deploy_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--assign-users",
        action="store_true",
        help="Make newly created entries available to all users",
    )
    parser.add_argument(
        "--assign-devices",
        action="store_true",
        help="Require newly created entries on all devices",
    )
    parser.add_argument(
        "--force-update",
        action="store_true",
        help="Publish even when Intune already has the same version",
    )
    parser.add_argument("--tenant-id", default=None, help="Azure AD tenant id")
    parser.add_argument("--client-id", default=None, help="App registration client id")
    parser.add_argument("--client-secret", default=None, help="App registration client secret")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="intunesync",
        description="intunesync - keep Intune Win32 apps in sync with their vendors",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"intunesync {version('intunesync')}",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True,
    )

    # 'validate' command
    parser_validate = subparsers.add_parser(
        "validate",
        help="Validate catalog syntax and configuration (no downloads)",
        description="Check the catalog YAML for syntax errors and configuration issues without making network calls.",
    )
    parser_validate.add_argument(
        "catalog",
        help="Path to the catalog YAML file",
    )
    parser_validate.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show validation progress and details",
    )
    parser_validate.set_defaults(func=cmd_validate)

    # 'package' command
    parser_package = subparsers.add_parser(
        "package",
        help="Discover, download and package applications",
        description="Resolve the latest version of each application and build missing .intunewin archives.",
    )
    _add_common(parser_package)
    parser_package.set_defaults(func=cmd_package)

    # 'deploy' command
    parser_deploy = subparsers.add_parser(
        "deploy",
        help="Publish the newest archives to Intune",
        description="Create Intune entries for new versions and supersede older ones.",
    )
    _add_common(parser_deploy)
    _add_deploy_options(parser_deploy)
    parser_deploy.set_defaults(func=cmd_deploy)

    # 'run' command
    parser_run = subparsers.add_parser(
        "run",
        help="Package, then deploy",
        description="Run the packaging pass followed by the deployment pass.",
    )
    _add_common(parser_run)
    _add_deploy_options(parser_run)
    parser_run.set_defaults(func=cmd_run)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the intunesync CLI.

    This function is registered as the 'intunesync' console script in
    pyproject.toml.
    """
    args = build_parser().parse_args(argv)
    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
