"""
Outstanding balances report job.

Loads one snapshot from the store and logs the windowed global totals plus
every payee's lifetime ledger statement, so operators can review what is
payable before settling.
"""

from __future__ import annotations

import argparse
import sys
from typing import Dict, List, Optional

from src.core.config import Config
from src.domain.models import PayeeKind
from src.repositories.feed_repository import FeedRepository
from src.services.financial_aggregator import aggregate
from src.services.ledger_service import LedgerBalance, outstanding_balances
from src.utils.logging_config import get_logger

logger = get_logger(__name__)


def build_report(
    repo: Optional[FeedRepository] = None, window: str = "allTime"
) -> Dict[str, List[LedgerBalance]]:
    """Compute ledger statements for every payee and log the summary."""
    repo = repo or FeedRepository()
    snapshot = repo.load_snapshot()

    result = aggregate(
        snapshot.orders.values(),
        snapshot.restaurants,
        snapshot.settings,
        window,
        partners=snapshot.partners,
    )
    totals = result.global_metrics
    logger.info(
        "window_totals",
        window=result.window,
        gross=str(totals.total_including_gst),
        commission=str(totals.total_commission),
        restaurant_payable=str(totals.total_restaurant_payable),
        partner_payouts=str(totals.total_partner_payouts),
    )

    report: Dict[str, List[LedgerBalance]] = {}
    for kind in PayeeKind:
        balances = list(outstanding_balances(snapshot, kind).values())
        report[kind.value] = balances
        for balance in balances:
            logger.info(
                "payee_balance",
                payee_kind=kind.value,
                payee_id=balance.payee_id,
                lifetime_earnings=str(balance.lifetime_earnings),
                total_settled=str(balance.total_settled),
                outstanding=str(balance.outstanding),
            )
    return report


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Log outstanding balances per payee.")
    parser.add_argument(
        "--window",
        default="allTime",
        help="Reporting window for the global totals (ledger is always lifetime).",
    )
    return parser.parse_args()


def main() -> None:
    try:
        Config.validate()
    except ValueError as e:
        logger.error("configuration_validation_failed", error=str(e))
        sys.exit(1)

    args = _parse_args()
    try:
        build_report(window=args.window)
    except Exception as exc:  # pragma: no cover - ensures job surfaces failure
        logger.error("outstanding_balances_report_failed", error=str(exc))
        sys.exit(1)


if __name__ == "__main__":
    main()
