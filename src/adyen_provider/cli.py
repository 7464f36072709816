#!/usr/bin/env python3
"""Command-line tools for the Adyen payment provider.

Usage:
    adyen-provider verify-notification notification.json --hmac-key 44782DEF547AAA06C910C43932B1EB0C
    adyen-provider verify-notification notification.json --hmac-key KEY --live
    adyen-provider init-db
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from .database import close_db, get_database_url, init_db
from .exceptions import ModeMismatchError, NotificationParseError
from .webhooks.models import VerifiedEvent, parse_live_flag
from .webhooks.parser import check_live_mode, load_item, load_notification
from .webhooks.reconciler import map_event_status
from .webhooks.signature import is_valid_hmac

logger = logging.getLogger(__name__)


def verify_notification(path: str, hmac_key: str, test_mode: bool = True) -> int:
    """Verify every item of a stored notification delivery.

    Args:
        path: JSON file holding the delivery body.
        hmac_key: HEX encoded HMAC key.
        test_mode: Whether the delivery is expected to come from the test environment.

    Returns:
        0 when every item verified, 1 when some didn't, 2 when the delivery
        could not be parsed or its mode is wrong.
    """
    with open(path, "rb") as f:
        body = f.read()

    try:
        notification = load_notification(body)
        check_live_mode(parse_live_flag(notification.live), test_mode)
    except (NotificationParseError, ModeMismatchError) as e:
        logger.error(f"{path}: {e}")
        return 2

    failures = 0
    raw_items = notification.raw_items
    for raw in raw_items:
        try:
            item = load_item(raw)
        except NotificationParseError as e:
            failures += 1
            logger.warning(str(e))
            psp_reference = raw.get("pspReference") if isinstance(raw, dict) else None
            print(f"{psp_reference or '-'}\t-\tMALFORMED")
            continue
        if not is_valid_hmac(item, hmac_key):
            failures += 1
            print(f"{item.psp_reference}\t{item.event_code}\tINVALID")
            continue
        status = map_event_status(VerifiedEvent.from_item(item))
        print(f"{item.psp_reference}\t{item.event_code}\tOK\t{status.value if status else 'ignored'}")

    if failures:
        logger.warning(f"{failures} of {len(raw_items)} item(s) failed validation")
        return 1
    return 0


async def init_db_async(database_url: Optional[str] = None) -> int:
    url = database_url or get_database_url()
    await init_db(url)
    await close_db()
    logger.info(f"Tables created for {url}")
    return 0


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="adyen-provider",
        description="Tools for the Adyen payment provider.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    verify_parser = subparsers.add_parser(
        "verify-notification",
        help="Check the HMAC signatures of a stored notification delivery",
    )
    verify_parser.add_argument("file", help="JSON file with the notification body")
    verify_parser.add_argument("--hmac-key", required=True, help="HEX encoded HMAC key")
    mode = verify_parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--test-mode",
        dest="test_mode",
        action="store_true",
        default=True,
        help="Expect a test delivery (default)",
    )
    mode.add_argument(
        "--live",
        dest="test_mode",
        action="store_false",
        help="Expect a live delivery",
    )

    db_parser = subparsers.add_parser("init-db", help="Create the reference host tables")
    db_parser.add_argument("--database-url", help="Database URL (default: DATABASE_URL)")

    return parser


def main(args: Optional[list] = None) -> int:
    """Main entry point for the CLI.

    Args:
        args: Optional list of command-line arguments (for testing).

    Returns:
        Exit code.
    """
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if not parsed_args.command:
        parser.print_help()
        return 1

    if parsed_args.command == "verify-notification":
        try:
            return verify_notification(parsed_args.file, parsed_args.hmac_key, parsed_args.test_mode)
        except OSError as e:
            logger.error(f"Unable to read {parsed_args.file}: {e}")
            return 2

    if parsed_args.command == "init-db":
        return asyncio.run(init_db_async(parsed_args.database_url))

    return 0


if __name__ == "__main__":
    sys.exit(main())
