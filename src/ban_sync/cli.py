"""
Command-line interface for the ban sync system.

Commands:
- sync: Push a domain's ban list to Cloudflare once
- expression: Print the firewall expression for a ban list (offline)
- serve: Run the HTTP API
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Optional, TypeVar

import pydantic

from . import __version__
from .audit_logger import create_logger
from .cloudflare_client import CloudflareAPI, format_validation_issues
from .config import SyncConfig
from .domain_resolver import DomainConfigResolver
from .exceptions import BanSyncError
from .expression import build_bans_expression
from .models import BanList, BansMap, SyncRequest
from .sync_service import CloudflareSyncService


ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


def load_bans(bans_file: Optional[str], ban_args: Optional[list[str]]) -> dict:
    """
    Collect bans from a JSON file and/or ``IP=SECONDS`` arguments.

    The file holds a JSON object mapping IP to seconds, or ``-`` for stdin.
    Command line bans override file entries for the same IP.

    Raises:
        ValueError: If the file or an argument cannot be parsed
    """
    bans: dict = {}

    if bans_file:
        try:
            if bans_file == "-":
                data = json.load(sys.stdin)
            else:
                with open(Path(bans_file), "r", encoding="utf-8") as f:
                    data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValueError(f"Could not read bans file {bans_file}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Bans file {bans_file} must contain a JSON object")
        bans.update(data)

    for item in ban_args or []:
        ip, sep, seconds = item.partition("=")
        if not sep or not ip.strip():
            raise ValueError(f"Invalid ban '{item}', expected IP=SECONDS")
        try:
            bans[ip.strip()] = int(seconds)
        except ValueError:
            raise ValueError(f"Invalid ban duration in '{item}'") from None

    return bans


def _validate(model: type[ModelT], payload: dict) -> ModelT:
    """Validate input, printing each issue to stderr on failure."""
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        for issue in format_validation_issues(e):
            path = ".".join(str(p) for p in issue["path"]) or "<root>"
            print(f"Invalid input at {path}: {issue['message']}", file=sys.stderr)
        raise


async def run_sync(config: SyncConfig, domain: str, bans: BansMap) -> str:
    """Run one reconciliation with a real Cloudflare client."""
    logger = create_logger(
        level=config.logging.level,
        output_format=config.logging.output_format,
    )
    logger.info("CLI", f"Syncing {len(bans)} bans for {domain}")
    resolver = DomainConfigResolver(config)
    async with CloudflareAPI(
        logger, base_url=config.api_base_url, timeout=config.timeout_seconds
    ) as client:
        service = CloudflareSyncService(config, resolver, client, logger)
        return await service.sync_bans(domain, bans)


def _load_config(args: argparse.Namespace) -> SyncConfig:
    env_file = Path(args.env_file) if getattr(args, "env_file", None) else None
    return SyncConfig.from_env(env_file=env_file)


def cmd_sync(args: argparse.Namespace) -> int:
    """Handle the 'sync' command."""
    try:
        bans = load_bans(args.bans_file, args.ban)
        request = _validate(SyncRequest, {"domain": args.domain, "bans": bans})
    except ValueError as e:
        # pydantic.ValidationError is a ValueError; details already printed
        if not isinstance(e, pydantic.ValidationError):
            print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        config = _load_config(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        message = asyncio.run(run_sync(config, request.domain, request.bans))
    except BanSyncError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        return 1

    print(message)
    return 0


def cmd_expression(args: argparse.Namespace) -> int:
    """Handle the 'expression' command."""
    try:
        bans = load_bans(args.bans_file, args.ban)
        request = _validate(BanList, {"bans": bans})
    except ValueError as e:
        if not isinstance(e, pydantic.ValidationError):
            print(f"Error: {e}", file=sys.stderr)
        return 2

    print(build_bans_expression(request.bans))
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Handle the 'serve' command."""
    import uvicorn

    from .api import create_app

    try:
        config = _load_config(args)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    uvicorn.run(
        create_app(config=config),
        host=args.host,
        port=args.port,
        access_log=False,
    )
    return 0


def _add_ban_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--bans-file", "-f",
        help="JSON file mapping IP to ban seconds ('-' for stdin)",
    )
    parser.add_argument(
        "--ban", "-b",
        action="append",
        metavar="IP=SECONDS",
        help="Ban entry; may be repeated",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="ban-sync",
        description="Sync fail2ban bans to a Cloudflare firewall rule",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'sync' command
    sync_parser = subparsers.add_parser(
        "sync",
        help="Sync the full ban list of a domain",
    )
    sync_parser.add_argument(
        "domain",
        help="Domain whose rule to update (e.g., example.com)",
    )
    _add_ban_arguments(sync_parser)
    sync_parser.add_argument(
        "--env-file", "-e",
        help="Path to a .env file with ALLOWED_DOMAINS, ZONE_ID_*, API_TOKEN_*",
    )
    sync_parser.set_defaults(func=cmd_sync)

    # 'expression' command
    expression_parser = subparsers.add_parser(
        "expression",
        help="Print the firewall expression for a ban list",
    )
    _add_ban_arguments(expression_parser)
    expression_parser.set_defaults(func=cmd_expression)

    # 'serve' command
    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP API",
    )
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", "-p", type=int, default=8787, help="Bind port")
    serve_parser.add_argument("--env-file", "-e", help="Path to a .env file")
    serve_parser.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
