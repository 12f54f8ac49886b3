import argparse
import asyncio
import logging
import sys

from wallylog.core import security
from wallylog.core.config import DISPATCH_REQUIRED_SETTINGS, Settings, require_settings, settings
from wallylog.core.errors import ConfigurationError
from wallylog.core.logging_config import configure_logging
from wallylog.services.content_client import ContentClient
from wallylog.services.dispatch import DispatchJob
from wallylog.services.issue_store import GitHubIssueStore

logger = logging.getLogger("wallylog.cli")

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_FATAL = 2


def send_subscriptions(*, interval_hours: float | None = None, dry_run: bool = False, config: Settings = settings) -> int:
    try:
        require_settings(config, DISPATCH_REQUIRED_SETTINGS)
    except ConfigurationError as exc:
        logger.error("Missing configuration: %s", exc.message)
        return EXIT_CONFIG

    try:
        job = DispatchJob(
            GitHubIssueStore.from_settings(config),
            ContentClient(config.content_api_base_url, timeout=config.content_timeout_seconds),
            interval_hours=interval_hours,
            config=config,
            dry_run=dry_run,
        )
        asyncio.run(job.run())
    except Exception:
        logger.exception("Fatal error in send-subscriptions")
        return EXIT_FATAL
    return EXIT_OK


def _add_dispatch_command(subparsers: argparse._SubParsersAction) -> None:
    send = subparsers.add_parser("send-subscriptions", help="Mail approved subscribers their digest")
    send.add_argument(
        "--interval-hours",
        type=float,
        default=None,
        help="Minimum hours between two sends to one subscriber (0 disables the guard)",
    )
    send.add_argument("--dry-run", action="store_true", help="Render and log without sending or commenting")


def _add_password_command(subparsers: argparse._SubParsersAction) -> None:
    hash_cmd = subparsers.add_parser("hash-password", help="Print a bcrypt hash for ADMIN_PASSWORD_HASH")
    hash_cmd.add_argument("password")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="wallylog", description="WallyLog maintenance commands")
    subparsers = parser.add_subparsers(dest="command")
    _add_dispatch_command(subparsers)
    _add_password_command(subparsers)
    return parser


def _run_cli_command(args: argparse.Namespace) -> int | None:
    if args.command == "send-subscriptions":
        return send_subscriptions(interval_hours=args.interval_hours, dry_run=bool(args.dry_run))

    if args.command == "hash-password":
        print(security.hash_password(args.password))
        return EXIT_OK

    return None


def main(argv: list[str] | None = None) -> int:
    configure_logging(settings.log_json)
    parser = _build_parser()
    args = parser.parse_args(argv)
    code = _run_cli_command(args)
    if code is None:
        parser.print_help()
        return EXIT_CONFIG
    return code


if __name__ == "__main__":
    sys.exit(main())
