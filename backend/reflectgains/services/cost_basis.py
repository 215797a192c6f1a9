"""Aggregate priced transactions into holdings, spend and average cost basis."""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from reflectgains.core.errors import NoTransactionsFound
from reflectgains.domain import USD_SCALE, CostBasisReport, FixedPoint, Transaction

# Extra digits carried through the spend / balance division before truncating.
WORKING_PRECISION_DIGITS = 13


def aggregate_cost_basis(
    transactions: Sequence[Transaction],
    wallet: str,
    *,
    decimals: int | None = None,
) -> CostBasisReport:
    """Walk the transactions once, in order, and derive the cost basis report.

    A transfer *to* the wallet is a buy: it adds to the net balance and its USD
    value to the spend. Anything else is a sell and subtracts both. Unpriced
    transactions count as $0.
    """

    if not transactions:
        raise NoTransactionsFound(wallet)

    scale = decimals if decimals is not None else transactions[0].token_amount.scale
    net_balance = FixedPoint.zero(scale)
    total_bought = FixedPoint.zero(scale)
    total_sold = FixedPoint.zero(scale)
    total_spent = FixedPoint.zero(USD_SCALE)

    for transaction in transactions:
        amount = transaction.token_amount
        usd = (transaction.usd_value or FixedPoint.zero(USD_SCALE)).rescale(USD_SCALE)
        if transaction.is_inflow(wallet):
            net_balance += amount
            total_bought += amount
            total_spent += usd
        else:
            net_balance -= amount
            total_sold += amount
            total_spent -= usd

    average_cost: FixedPoint | None = None
    tokens_per_usd: FixedPoint | None = None
    if net_balance:
        wide_average = total_spent.divide(net_balance, USD_SCALE + WORKING_PRECISION_DIGITS)
        average_cost = wide_average.rescale(USD_SCALE)
        if wide_average:
            tokens_per_usd = FixedPoint(1, 0).divide(wide_average, scale)
    else:
        logger.info("Net balance for {} is zero; cost basis is undefined", wallet)

    return CostBasisReport(
        net_balance=net_balance,
        total_bought=total_bought,
        total_sold=total_sold,
        total_spent_usd=total_spent,
        average_cost_basis_per_token=average_cost,
        tokens_per_usd=tokens_per_usd,
        transaction_count=len(transactions),
    )


__all__ = ["WORKING_PRECISION_DIGITS", "aggregate_cost_basis"]
