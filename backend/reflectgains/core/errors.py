"""Error taxonomy shared by the analysis pipeline."""

from __future__ import annotations


class ScaleMismatchError(ArithmeticError):
    """Raised when two fixed-point values with different scales are combined."""


class PriceUnresolved(Exception):
    """Raised when a single transaction's USD value cannot be determined."""

    def __init__(self, tx_hash: str, reason: str) -> None:
        super().__init__(f"Unable to price transaction {tx_hash}: {reason}")
        self.tx_hash = tx_hash
        self.reason = reason


class NoTransactionsFound(Exception):
    """Raised when a wallet has no transfers of the analysed token."""

    def __init__(self, wallet: str, contract: str | None = None) -> None:
        super().__init__("No transactions found")
        self.wallet = wallet
        self.contract = contract


class InvalidAddress(ValueError):
    """Raised when a user-supplied wallet or contract is not a hex address."""

    def __init__(self, field: str, value: str) -> None:
        super().__init__(f"{field} {value!r} is not a valid address")
        self.field = field
        self.value = value


class CollaboratorUnavailable(Exception):
    """Raised when an upstream data source required for the whole run fails."""

    def __init__(self, collaborator: str, reason: str) -> None:
        super().__init__(f"{collaborator} unavailable: {reason}")
        self.collaborator = collaborator
        self.reason = reason


__all__ = [
    "CollaboratorUnavailable",
    "InvalidAddress",
    "NoTransactionsFound",
    "PriceUnresolved",
    "ScaleMismatchError",
]
