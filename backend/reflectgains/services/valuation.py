"""Current and hypothetical USD valuations of token quantities."""

from __future__ import annotations

from reflectgains.domain import USD_SCALE, FixedPoint, TokenSnapshot

_ONE_DOLLAR = FixedPoint(1, 0)


class ValuationProjector:
    """Convert token quantities to USD using a :class:`TokenSnapshot`."""

    def __init__(self, snapshot: TokenSnapshot) -> None:
        self.snapshot = snapshot
        self.price = snapshot.current_price_usd.rescale(USD_SCALE)

    @property
    def decimals(self) -> int:
        return self.snapshot.decimals

    def to_usd(self, tokens: FixedPoint) -> FixedPoint:
        return (tokens * self.price).rescale(USD_SCALE)

    @property
    def market_cap(self) -> FixedPoint:
        return self.to_usd(self.snapshot.circulating_supply)

    def scale_to_market_cap(self, balance: FixedPoint, hypothetical_cap: FixedPoint) -> FixedPoint:
        """USD value of ``balance`` if the token were worth ``hypothetical_cap`` in total.

        A current market cap of zero is divided as if it were $1.
        """

        current_cap = self.market_cap or _ONE_DOLLAR
        ratio = hypothetical_cap.divide(current_cap, USD_SCALE + self.decimals)
        scaled_balance = (balance * ratio).rescale(balance.scale)
        return self.to_usd(scaled_balance)

    def ownership_per_ten_thousand(self, balance: FixedPoint) -> FixedPoint | None:
        """Share of the circulating supply held, in parts per ten thousand (3 decimals)."""

        supply = self.snapshot.circulating_supply
        if not supply:
            return None
        return (balance * 10_000).divide(supply, 3)


__all__ = ["ValuationProjector"]
