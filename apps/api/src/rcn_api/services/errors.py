"""Exceptions shared by the registration, ledger, and redemption services.

Business outcomes (denials, role conflicts, rolled-back commits) are returned as
typed results. Exceptions are reserved for invalid input, which is rejected
before any I/O, and for infrastructure failures, which callers may retry.
"""

from __future__ import annotations


class InvalidAddressError(ValueError):
    """Raised when a wallet address is not a 0x-prefixed 20-byte hex string."""

    def __init__(self, address: object) -> None:
        super().__init__(f"Invalid wallet address: {address!r}")
        self.address = address


class InvalidRedemptionRequest(ValueError):
    """Raised for malformed redemption or earning requests."""


class TransientError(RuntimeError):
    """Base class for retryable infrastructure failures."""

    retryable = True


class TransientStoreError(TransientError):
    """Raised when a registry or ledger query cannot be completed."""


class ChainBalanceUnavailable(TransientError):
    """Raised when the chain balance source fails or times out."""


class CustomerLockBusy(TransientError):
    """Raised when the per-customer commit lock cannot be acquired in time."""

    def __init__(self, address: str, timeout_seconds: float) -> None:
        super().__init__(f"Commit lock for {address} not acquired within {timeout_seconds}s")
        self.address = address
        self.timeout_seconds = timeout_seconds


class DuplicateLedgerEntry(RuntimeError):
    """Raised when a ledger entry reuses an existing transaction reference."""

    def __init__(self, tx_ref: str) -> None:
        super().__init__(f"Ledger entry already recorded for tx_ref {tx_ref}")
        self.tx_ref = tx_ref
