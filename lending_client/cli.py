"""Command-line interface for the lending client."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .config import load_config
from .errors import LendingError, describe_error
from .logging_setup import configure_logging
from .models import Action
from .operations import ExistingPrivateAddress, NewPrivateAddress, OwnAddress, RecipientChoice
from .services import LendingSession, RefreshOutcome


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="lending-client",
        description="Private lending protocol client",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--account",
        default=None,
        help="Account label or address (default: first configured account)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("status", help="Show positions, health factor and limits")

    watch_parser = sub.add_parser("watch", help="Continuous refresh loop")
    watch_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Refresh interval in seconds (overrides config)",
    )

    for action in Action:
        action_parser = sub.add_parser(action.value, help=f"{action.value.capitalize()} an asset")
        action_parser.add_argument("asset", help="Asset id from config")
        action_parser.add_argument("amount", help="Amount in token units, e.g. 1.5")
        action_parser.add_argument(
            "--private", action="store_true", help="Use private balances and recipients"
        )
        recipient = action_parser.add_mutually_exclusive_group()
        recipient.add_argument(
            "--recipient", default=None, help="Existing private address to receive funds"
        )
        recipient.add_argument(
            "--new-recipient",
            action="store_true",
            help="Derive a new private address to receive funds",
        )
        action_parser.add_argument(
            "--from-public-balance",
            action="store_true",
            help="Fund a private deposit or repayment from the public balance",
        )

    addresses_parser = sub.add_parser("addresses", help="Manage private addresses")
    addresses_sub = addresses_parser.add_subparsers(dest="addresses_command", required=True)
    addresses_sub.add_parser("list", help="List stored private addresses")
    addresses_sub.add_parser("new", help="Derive and store a new private address")
    remove_parser = addresses_sub.add_parser("remove", help="Remove a private address")
    remove_parser.add_argument("address")
    addresses_sub.add_parser("clear", help="Remove all private addresses")

    return parser


def _recipient_choice(args: argparse.Namespace) -> RecipientChoice:
    if args.new_recipient:
        return NewPrivateAddress()
    if args.recipient:
        return ExistingPrivateAddress(args.recipient)
    return OwnAddress()


async def _run_addresses(session: LendingSession, args: argparse.Namespace) -> None:
    book = session.orchestrator.address_book()

    if args.addresses_command == "list":
        if not book.entries:
            print("No private addresses.")
        for entry in book.entries:
            print(entry.address)
    elif args.addresses_command == "new":
        print(book.add_new().address)
    elif args.addresses_command == "remove":
        if not book.remove(args.address):
            print(f"Unknown private address: {args.address}")
            sys.exit(1)
    elif args.addresses_command == "clear":
        book.clear()


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)
    session = LendingSession(config)

    if args.command == "addresses":
        await session.refresh.set_active_account(session.resolve_address(args.account))
        await _run_addresses(session, args)
        return

    outcome = await session.switch_account(args.account)

    if args.command == "status":
        if outcome is RefreshOutcome.FAILED:
            print("Could not load positions, see log for details.")
            sys.exit(1)
        print(session.build_report())
    elif args.command == "watch":
        await session.run_continuous(args.interval)
    elif args.command in {a.value for a in Action}:
        try:
            print(session.preview_line(args.command, args.asset, args.amount))
            receipt = await session.orchestrator.execute(
                args.command,
                args.asset,
                args.amount,
                private=args.private,
                recipient=_recipient_choice(args),
                from_public_balance=args.from_public_balance,
            )
        except LendingError as e:
            print(describe_error(e))
            sys.exit(1)
        print(f"Transaction confirmed: {receipt.tx_hash}")
        print(session.build_report())
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    asyncio.run(_run(args))
