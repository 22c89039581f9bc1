#!/usr/bin/env python3
"""
Rotator CLI - rotate secrets in Vault, AWS Secrets Manager or a file store.

Usage:
    rotator init -o rotator-config.yaml
    rotator flag myapp/db --period 3 --target-username app_user
    rotator scan myapp
    rotator rotate myapp/db --update-target --target-username app_user
    rotator auto myapp --dry-run
    rotator read myapp/db
    rotator list myapp
    rotator update-env myapp/db --key password --env-var MYAPP_DB
    rotator gen-password myapp/api --key token --length 48
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Optional

from rotator.__version__ import __version__
from rotator.backends import create_backend
from rotator.config import CONFIG_FILENAME, Config, load_config
from rotator.env_updater import EnvUpdater, env_var_name_for
from rotator.exceptions import ConfigurationError, RotatorError
from rotator.logging_config import configure_logging, get_logger
from rotator.rotation import (
    flag_for_rotation,
    generate_secret,
    rotate_due_secrets,
    rotate_secret,
    scan_for_rotation,
)
from rotator.targets import create_target

logger = get_logger(__name__)

RELOAD_HINT = "Reload your shell or run 'source ~/.bashrc' (or ~/.zshrc) for changes to take effect"


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError("must be at least 1")
    return number


def _display(path: str) -> str:
    return path or "/"


# =============================================================================
# Commands
# =============================================================================


def cmd_init(args: argparse.Namespace) -> int:
    """Write a sample configuration file."""
    written = Config.create_sample(args.output)
    print(f"Created sample configuration: {written}")
    print("Edit it with your Vault address, token and target settings.")
    return 0


async def cmd_flag(args: argparse.Namespace, config: Config) -> int:
    async with create_backend(config) as store:
        await flag_for_rotation(store, args.path, args.period, target_identity=args.target_username)
    print(f"Flagged '{args.path}' for rotation every {args.period} month(s)")
    return 0


async def cmd_scan(args: argparse.Namespace, config: Config) -> int:
    async with create_backend(config) as store:
        due = await scan_for_rotation(store, args.path, config.rotation.period_months)
    if not due:
        print(f"No secrets due for rotation under {_display(args.path)}")
        return 0
    print(f"Secrets due for rotation under {_display(args.path)}:")
    for path in due:
        print(f"  - {path}")
    return 0


async def cmd_rotate(args: argparse.Namespace, config: Config) -> int:
    if args.update_target and not args.target_username:
        raise ConfigurationError("rotate", "--target-username is required with --update-target")

    async with create_backend(config) as store:
        target = None
        if args.update_target:
            target = await create_target(config, store, args.target_type)
            if target is None:
                raise ConfigurationError(
                    "targets", "no target configured (targets.postgres or targets.api)"
                )
        try:
            await rotate_secret(
                store,
                args.path,
                config.rotation.secret_length,
                target=target,
                identity=args.target_username,
            )
        finally:
            if target is not None:
                await target.close()
        backend_kind = store.backend_kind()

    print(f"Rotated '{args.path}' in {backend_kind}")
    if target is not None:
        print(f"Updated {target.target_kind()} credential for '{args.target_username}'")
    return 0


async def cmd_auto(args: argparse.Namespace, config: Config) -> int:
    async with create_backend(config) as store:
        target = None
        if args.update_target:
            target = await create_target(config, store, args.target_type)
            if target is None:
                raise ConfigurationError(
                    "targets", "no target configured (targets.postgres or targets.api)"
                )
        try:
            outcomes = await rotate_due_secrets(
                store,
                args.path,
                config.rotation.period_months,
                config.rotation.secret_length,
                target=target,
                dry_run=args.dry_run,
            )
        finally:
            if target is not None:
                await target.close()

    if not outcomes:
        print(f"No secrets due for rotation under {_display(args.path)}")
        return 0

    updater = EnvUpdater() if args.update_env and not args.dry_run else None
    failures = 0
    for outcome in outcomes:
        if outcome.dry_run:
            print(f"[DRY RUN] Would rotate {outcome.path}")
            if args.update_target:
                print(f"  [DRY RUN] Would update target credential for {outcome.identity or '(none)'}")
            continue
        if outcome.error is not None:
            failures += 1
            print(f"FAILED {outcome.path}: {outcome.error}", file=sys.stderr)
            continue
        print(f"Rotated {outcome.path}")
        if target is not None and outcome.identity:
            print(f"  Updated {target.target_kind()} credential for '{outcome.identity}'")
        if updater is not None and outcome.new_value is not None:
            var_name = env_var_name_for(outcome.path)
            try:
                updater.update_env_var(var_name, outcome.new_value)
            except RotatorError as e:
                print(f"  Failed to update env var {var_name}: {e}", file=sys.stderr)
            else:
                print(f"  Updated env var {var_name}")

    if not args.dry_run:
        print(f"\nRotation complete: {len(outcomes) - failures} rotated, {failures} failed")
        if updater is not None:
            print(RELOAD_HINT)
    return 1 if failures else 0


async def cmd_read(args: argparse.Namespace, config: Config) -> int:
    async with create_backend(config) as store:
        record = await store.read(args.path)
    print("WARNING: secret values will be displayed. Ensure this output is secured.", file=sys.stderr)
    print("Secret data:")
    for key, value in record.data.items():
        print(f"  {key}: {value}")
    return 0


async def cmd_list(args: argparse.Namespace, config: Config) -> int:
    async with create_backend(config) as store:
        names = await store.list(args.path)
    if not names:
        print(f"No secrets found at path: {_display(args.path)}")
        return 0
    print(f"Secrets at {_display(args.path)}:")
    for name in names:
        print(f"  - {name}")
    return 0


async def cmd_update_env(args: argparse.Namespace, config: Config) -> int:
    async with create_backend(config) as store:
        record = await store.read(args.path)
        backend_kind = store.backend_kind()
    if args.key not in record.data:
        raise ConfigurationError("update-env", f"key '{args.key}' not found in secret '{args.path}'")
    touched = EnvUpdater().update_env_var(args.env_var, record.data[args.key])
    print(f"Updated environment variable '{args.env_var}' in {len(touched)} shell profile(s)")
    print(f"  Value synced from {backend_kind}: {args.path} (key: {args.key})")
    print(RELOAD_HINT)
    return 0


async def cmd_gen_password(args: argparse.Namespace, config: Config) -> int:
    length = args.length or config.rotation.secret_length
    new_password = generate_secret(length)
    async with create_backend(config) as store:
        await store.write(args.path, {args.key: new_password})
        backend_kind = store.backend_kind()
    print(f"Generated new password and stored it in {backend_kind}")
    print(f"  Location: {args.path}")
    print(f"  Key: {args.key}")
    print(f"  Length: {length} characters")
    if args.env_var:
        touched = EnvUpdater().update_env_var(args.env_var, new_password)
        print(f"Updated environment variable '{args.env_var}' in {len(touched)} shell profile(s)")
        print(RELOAD_HINT)
    return 0


# =============================================================================
# Parser
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rotator",
        description="Automatic secret rotation for HashiCorp Vault, AWS Secrets Manager and local files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create a starter configuration
  rotator init

  # Enable rotation for a secret and rotate everything that is due
  rotator flag myapp/db --period 3
  rotator auto myapp --update-target
        """,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", "-c", help=f"Configuration file (default: $ROTATOR_CONFIG or {CONFIG_FILENAME})")
    parser.add_argument("--backend", help="Secret backend: vault, aws or file (overrides config)")
    parser.add_argument("--vault-addr", help="Vault address (overrides config)")
    parser.add_argument("--vault-token", help="Vault token (overrides config)")
    parser.add_argument("--vault-mount", help="Vault KV v2 mount (overrides config)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        type=str.upper,
        help="Log level (default: $ROTATOR_LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["text", "json"],
        help="Log format (default: $ROTATOR_LOG_FORMAT or text)",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="<command>")
    subparsers.required = True

    init_parser = subparsers.add_parser("init", help="Write a sample configuration file")
    init_parser.add_argument("-o", "--output", default=CONFIG_FILENAME, help="Output path")

    flag_parser = subparsers.add_parser("flag", help="Flag a secret for automatic rotation")
    flag_parser.add_argument("path", help="Secret path")
    flag_parser.add_argument(
        "-p", "--period", type=_positive_int, default=6, help="Rotation period in months (default: 6)"
    )
    flag_parser.add_argument("--target-username", help="Identity to update on the target during auto rotation")
    flag_parser.set_defaults(func=cmd_flag)

    scan_parser = subparsers.add_parser("scan", help="List secrets that are due for rotation")
    scan_parser.add_argument("path", nargs="?", default="", help="Base path (default: root)")
    scan_parser.set_defaults(func=cmd_scan)

    rotate_parser = subparsers.add_parser("rotate", help="Rotate one secret now")
    rotate_parser.add_argument("path", help="Secret path")
    rotate_parser.add_argument("--update-target", action="store_true", help="Also update the target credential")
    rotate_parser.add_argument("--target-type", help="Target to update: postgres or api")
    rotate_parser.add_argument("--target-username", help="Identity to update on the target")
    rotate_parser.set_defaults(func=cmd_rotate)

    auto_parser = subparsers.add_parser("auto", help="Rotate every secret that is due")
    auto_parser.add_argument("path", nargs="?", default="", help="Base path (default: root)")
    auto_parser.add_argument("--dry-run", action="store_true", help="Only show what would be rotated")
    auto_parser.add_argument(
        "--update-env", action="store_true", help="Export rotated values to shell profiles (myapp/db -> MYAPP_DB)"
    )
    auto_parser.add_argument(
        "--update-target", action="store_true", help="Update target credentials named in secret metadata"
    )
    auto_parser.add_argument("--target-type", help="Target to update: postgres or api")
    auto_parser.set_defaults(func=cmd_auto)

    read_parser = subparsers.add_parser("read", help="Print a secret")
    read_parser.add_argument("path", help="Secret path")
    read_parser.set_defaults(func=cmd_read)

    list_parser = subparsers.add_parser("list", help="List secrets under a path")
    list_parser.add_argument("path", nargs="?", default="", help="Base path (default: root)")
    list_parser.set_defaults(func=cmd_list)

    env_parser = subparsers.add_parser("update-env", help="Export a secret value to shell profiles")
    env_parser.add_argument("path", help="Secret path")
    env_parser.add_argument("-k", "--key", default="password", help="Key within the secret (default: password)")
    env_parser.add_argument("-e", "--env-var", required=True, help="Environment variable name")
    env_parser.set_defaults(func=cmd_update_env)

    gen_parser = subparsers.add_parser("gen-password", help="Generate and store a new password")
    gen_parser.add_argument("path", help="Secret path")
    gen_parser.add_argument("-k", "--key", default="password", help="Key name (default: password)")
    gen_parser.add_argument("-e", "--env-var", help="Also export to this environment variable")
    gen_parser.add_argument("-l", "--length", type=_positive_int, help="Password length (default: from config)")
    gen_parser.set_defaults(func=cmd_gen_password)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        level=args.log_level,
        json_output=None if args.log_format is None else args.log_format == "json",
    )

    try:
        if args.command == "init":
            return cmd_init(args)
        config = load_config(args.config).apply_overrides(
            backend=args.backend,
            vault_addr=args.vault_addr,
            vault_token=args.vault_token,
            vault_mount=args.vault_mount,
        )
        return asyncio.run(args.func(args, config))
    except RotatorError as e:
        logger.debug("Command failed", command=args.command, error_type=type(e).__name__)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    sys.exit(main())
