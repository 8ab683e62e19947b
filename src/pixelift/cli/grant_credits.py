"""CLI command for granting credits to a user.

Usage:
    python -m pixelift.cli.grant_credits --email EMAIL --amount N

Examples:
    # Add 10 credits after a manual refund
    python -m pixelift.cli.grant_credits --email user@example.com --amount 10
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog

from pixelift.core import timezone  # noqa: F401
from pixelift.core.config import Settings, configure_logging
from pixelift.core.database import setup_db_session
from pixelift.uow import UowFactory, create_uow_factory

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(description="Grant credits to a user account")

    parser.add_argument("--email", required=True, help="Account email address")

    parser.add_argument(
        "--amount",
        type=int,
        required=True,
        help="Number of credits to add (must be positive)",
    )

    return parser.parse_args(argv)


async def grant_credits(uow_factory: UowFactory, email: str, amount: int) -> int | None:
    """Add credits to the account registered under ``email``.

    Returns:
        New balance, or None if no account uses that email

    Raises:
        ValueError: If amount is not positive
    """
    async with await uow_factory() as uow:
        user = await uow.users.get_by_email(email)
        if user is None:
            return None
        balance = await uow.users.credit(user.id, amount)

    logger.info("credits.granted", user_id=str(user.id), amount=amount, balance=balance)
    return balance


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    args = parse_args(argv)

    if args.amount <= 0:
        print("Error: --amount must be positive", file=sys.stderr)
        return 1

    settings = Settings()  # type: ignore[call-arg]
    configure_logging(settings)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    balance = await grant_credits(create_uow_factory(session_factory), args.email, args.amount)

    if balance is None:
        logger.error("cli.user_not_found", email=args.email)
        print(f"Error: No user with email {args.email}", file=sys.stderr)
        return 1

    print(f"Granted {args.amount} credits to {args.email}. New balance: {balance}")
    return 0


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
