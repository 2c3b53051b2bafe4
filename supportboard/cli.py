"""Command-line sync. Run with: supportboard-sync [--full] [--from YYYY-MM-DD] [--to YYYY-MM-DD]"""
import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone

from supportboard.config import settings
from supportboard.database import async_session, engine
from supportboard.schemas.sync import SyncResult
from supportboard.services import sync_service
from supportboard.services.zendesk_client import ZendeskClient


def _date(value: str) -> datetime:
    try:
        return datetime.strptime(value, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="supportboard-sync", description="Sync Zendesk data and recalculate agent metrics"
    )
    parser.add_argument("--full", action="store_true", help="Run a full sync instead of the incremental one")
    parser.add_argument("--from", dest="from_date", type=_date, help="Full sync start date (inclusive)")
    parser.add_argument("--to", dest="to_date", type=_date, help="Full sync end date (exclusive)")
    return parser


async def sync(args: argparse.Namespace) -> SyncResult:
    async with async_session() as db, ZendeskClient.from_settings() as client:
        if args.full:
            run = sync_service.start_full_sync(db, client, args.from_date, args.to_date)
        else:
            run = sync_service.start_incremental_sync(db, client)

        async for event in run:
            print(f"[{event.current:5.1f}%] {event.step}: {event.message}")

    await engine.dispose()
    return run.result


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.full and (args.from_date or args.to_date):
        parser.error("--from/--to require --full")

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        result = asyncio.run(sync(args))
    except ValueError as e:
        parser.error(str(e))

    print("=" * 60)
    if result.success:
        print("Sync completed successfully!")
    else:
        print(f"Sync failed: {result.errors[0] if result.errors else 'unknown error'}")
    print(f"Agents:  {result.agents_processed}")
    print(f"Tickets: {result.tickets_processed}")
    print(f"Metrics: {result.metrics_calculated}")
    print(f"Took:    {result.duration_ms} ms")
    print("=" * 60)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
