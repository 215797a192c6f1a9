"""Command line entry point running one wallet analysis."""

from __future__ import annotations

import argparse
import json
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from loguru import logger

from ingestion.service import session_scope
from reflectgains import schemas
from reflectgains.core.config import Settings, get_settings
from reflectgains.core.errors import CollaboratorUnavailable, InvalidAddress, NoTransactionsFound
from reflectgains.db import init_db
from reflectgains.domain import AnalysisReport, FixedPoint
from reflectgains.domain.formatting import format_token_amount, format_usd
from reflectgains.repositories import InMemoryPriceCache, PriceCache, PriceCacheRepository
from reflectgains.services.analysis_service import AnalysisService

ServiceFactory = Callable[[PriceCache, Settings], AnalysisService]


def _balance_arg(value: str) -> FixedPoint:
    try:
        return FixedPoint.from_string(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analyze a wallet's cost basis for one token")
    parser.add_argument("--contract", required=True, help="Token contract address or short name")
    parser.add_argument("--wallet", required=True, help="Public wallet address")
    parser.add_argument(
        "--balance",
        type=_balance_arg,
        default=None,
        help="Use this balance (whole tokens) instead of reading it on-chain",
    )
    parser.add_argument(
        "--balance-source",
        choices=("chain", "covalent"),
        default="chain",
        help="Where the live balance is read from when --balance is not given",
    )
    parser.add_argument("--top-coin", type=int, default=None, help="Zero-based top coin index")
    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Override the number of transactions priced in parallel",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Keep resolved prices in memory instead of the database cache",
    )
    parser.add_argument(
        "--summary-path",
        type=Path,
        default=None,
        help="Optional path where a JSON summary report will be written",
    )
    return parser.parse_args(argv)


@contextmanager
def _price_cache(dry_run: bool) -> Iterator[PriceCache]:
    if dry_run:
        yield InMemoryPriceCache()
        return
    init_db()
    with session_scope() as session:
        yield PriceCacheRepository(session)


def _log_report(report: AnalysisReport) -> None:
    suffix = report.display_suffix
    basis = report.cost_basis
    symbol = report.snapshot.symbol
    logger.info("Net bought:      {}{} {}", format_token_amount(basis.net_balance, suffix), suffix, symbol)
    logger.info(
        "Current balance: {}{} {} (${})",
        format_token_amount(report.balance, suffix),
        suffix,
        symbol,
        format_usd(report.balance_usd),
    )
    logger.info(
        "Gains:           {}{} {} (${})",
        format_token_amount(report.gains, suffix),
        suffix,
        symbol,
        format_usd(report.gains_usd),
    )
    average = basis.average_cost_basis_per_token
    logger.info(
        "{} transactions, net spend ${}, average cost basis {}",
        basis.transaction_count,
        format_usd(basis.total_spent_usd),
        f"${format_usd(average)}" if average is not None else "undefined",
    )
    if report.comparison is not None:
        logger.info(
            "As big as #{} {}: ${}",
            report.comparison.rank,
            report.comparison.coin.name,
            format_usd(report.comparison.potential_usd),
        )
    if report.unpriced_transactions:
        logger.warning(
            "{} transactions could not be priced and count as $0",
            len(report.unpriced_transactions),
        )


def _write_summary(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, sort_keys=True) + "\n", encoding="utf-8")


def run_analysis(
    args: argparse.Namespace,
    settings: Settings,
    *,
    service_factory: ServiceFactory | None = None,
) -> dict[str, Any]:
    factory = service_factory or (
        lambda cache, cfg: AnalysisService(
            cache, settings=cfg, max_workers=args.concurrency or cfg.price_resolution_concurrency
        )
    )

    with _price_cache(args.dry_run) as cache:
        service = factory(cache, settings)
        try:
            report = service.analyze(
                args.contract,
                args.wallet,
                balance=args.balance,
                balance_source=args.balance_source,
                top_coin_index=args.top_coin,
            )
        finally:
            service.close()

    _log_report(report)
    payload = schemas.Analysis.from_report(report).model_dump(mode="json")
    if args.summary_path:
        _write_summary(args.summary_path, payload)
        logger.info("Wrote analysis summary to {}", args.summary_path)
    return payload


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    settings = get_settings()
    try:
        run_analysis(args, settings)
    except NoTransactionsFound as exc:
        logger.error("{} for wallet {}", exc, exc.wallet)
        return 1
    except CollaboratorUnavailable as exc:
        logger.error("{}; try again shortly", exc)
        return 2
    except InvalidAddress as exc:
        logger.error("{}", exc)
        return 3
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
