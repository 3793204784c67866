#!/usr/bin/env python3
"""Pending Transfer Reconciliation Script.

Finds withdrawals left pending by a local transfer timeout and asks the
transfer executor for their outcome. Settlements whose transfer timed out
before a hash came back are checked the same way. Confirmed and failed
transfers are finalized; unknown ones stay pending.

Usage:
    python scripts/reconcile.py [--older-than 300] [--list]

Options:
    --older-than  Only consider withdrawals pending at least this many seconds
    --list        Show stale pending withdrawals without contacting the executor
"""

import argparse
import asyncio
import logging
import sys
from datetime import timedelta
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

from liquidesk.config import get_settings
from liquidesk.container import build_services
from liquidesk.ledger.database import close_db, get_db, init_db
from liquidesk.ledger.models import utcnow
from liquidesk.ledger.repository import LedgerRepository

load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def list_stale(older_than: int) -> int:
    """Print stale pending withdrawals. Returns how many were found."""
    cutoff = utcnow() - timedelta(seconds=older_than)
    async with get_db() as session:
        pending = await LedgerRepository(session).get_stale_pending_withdrawals(cutoff)

    for tx in pending:
        logger.info(
            f"  #{tx.id} user={tx.user_id} {tx.amount} USDC on {tx.network} "
            f"to {tx.to_address} (since {tx.created_at})"
        )
    logger.info(f"{len(pending)} pending withdrawal(s) older than {older_than}s")
    return len(pending)


async def run(older_than: int, list_only: bool) -> int:
    await init_db()
    try:
        if list_only:
            await list_stale(older_than)
            return 0

        services = build_services(get_settings())
        report = await services.reconciler.run_once(older_than_seconds=older_than)

        print()
        print("=" * 50)
        print("RECONCILIATION SUMMARY")
        print("=" * 50)
        print(f"  Checked:    {report.checked}")
        print(f"  Confirmed:  {report.confirmed}")
        print(f"  Failed:     {report.failed}")
        print(f"  Unresolved: {report.unresolved}")
        print(f"  Errors:     {report.errors}")

        return 1 if report.unresolved else 0
    finally:
        await close_db()


def main():
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Reconcile pending withdrawals")
    parser.add_argument(
        "--older-than",
        type=int,
        default=settings.reconcile_after_seconds,
        help="Minimum age in seconds of a pending withdrawal",
    )
    parser.add_argument("--list", action="store_true", help="Only list stale withdrawals")
    args = parser.parse_args()

    sys.exit(asyncio.run(run(args.older_than, args.list)))


if __name__ == "__main__":
    main()
