"""CLI command for recovering stuck photos.

Usage:
    python -m pixelift.cli.recover_photos [OPTIONS]

Examples:
    # Run both sweeps (stale PENDING + inconsistent COMPLETED)
    python -m pixelift.cli.recover_photos

    # Only re-trigger stale PENDING photos
    python -m pixelift.cli.recover_photos --stale

    # List candidates without changing anything
    python -m pixelift.cli.recover_photos --dry-run

    # Verbose logging
    python -m pixelift.cli.recover_photos -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace

import structlog

from pixelift.core import timezone  # noqa: F401
from pixelift.core.config import Settings, configure_logging
from pixelift.core.database import setup_db_session
from pixelift.services.enhancement.replicate_client import ReplicateEnhancementClient
from pixelift.services.scanner import StuckJobScanner, SweepResult
from pixelift.services.storage.pinata_client import PinataBlobStore
from pixelift.uow import create_uow_factory

logger = structlog.get_logger()


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Recover stuck photos",
        epilog="Without --stale or --inconsistent both sweeps run",
    )

    parser.add_argument(
        "--stale",
        action="store_true",
        help="Re-trigger PENDING photos older than STALE_AFTER_SECONDS",
    )

    parser.add_argument(
        "--inconsistent",
        action="store_true",
        help="Reset and reprocess COMPLETED photos with an inconsistent result",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List candidates without database writes or enhancement calls",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    args = parser.parse_args(argv)
    if not args.stale and not args.inconsistent:
        args.stale = args.inconsistent = True
    return args


def print_sweep(result: SweepResult) -> None:
    print(f"\n{result.sweep.capitalize()} sweep: {result.processed} processed")
    print(f"  Succeeded: {result.succeeded}")
    print(f"  Failed: {result.failed}")
    failures = [item for item in result.items if not item.succeeded]
    for item in failures[:5]:  # Show first 5 failures
        print(f"  - {item.photo_id}: {item.error_code} {item.error_detail or ''}".rstrip())
    if len(failures) > 5:
        print(f"  ... and {len(failures) - 5} more failures")


async def run(scanner: StuckJobScanner, args: Namespace) -> int:
    """Run the selected sweeps and print a summary.

    Returns:
        Exit code: 0 (success), 2 (some photos failed)
    """
    failed = 0

    print("\n" + "=" * 60)
    print("Photo Recovery Summary")
    print("=" * 60)

    if args.dry_run:
        if args.stale:
            stale = await scanner.preview_stale()
            print(f"\nStale PENDING photos: {stale.count} (created before {stale.cutoff})")
            for candidate in stale.candidates:
                print(f"  - {candidate.photo_id}: stuck for {candidate.stuck_seconds}s")
        if args.inconsistent:
            report = await scanner.preview_inconsistent()
            print(
                f"\nInconsistent COMPLETED photos: {report.count} "
                f"(of {report.scanned} scanned)"
            )
            for candidate in report.candidates:
                print(f"  - {candidate.photo_id}: {candidate.issue}")
        print("\n[DRY RUN] No changes were persisted to database")
    else:
        if args.stale:
            result = await scanner.recover_stale()
            print_sweep(result)
            failed += result.failed
        if args.inconsistent:
            result = await scanner.recover_inconsistent()
            print_sweep(result)
            failed += result.failed

    print("=" * 60 + "\n")

    if failed:
        logger.warning("cli.partial_success", failed=failed)
        return 2
    logger.info("cli.success")
    return 0


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error), 2 (partial success)
    """
    args = parse_args(argv)

    # Initialize settings and logging
    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    logger.info(
        "cli.started",
        stale=args.stale,
        inconsistent=args.inconsistent,
        dry_run=args.dry_run,
    )

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    scanner = StuckJobScanner.from_settings(
        settings,
        create_uow_factory(session_factory),
        ReplicateEnhancementClient(settings.replicate_api_token, settings.replicate_model_version),
        PinataBlobStore(settings.pinata_jwt, settings.pinata_gateway),
    )

    try:
        return await run(scanner, args)

    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nRecovery interrupted by user", file=sys.stderr)
        return 130  # Standard exit code for SIGINT

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
