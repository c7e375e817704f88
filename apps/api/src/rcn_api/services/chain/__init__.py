"""Chain balance sources."""

from .balance_source import (  # noqa: F401
    ChainBalanceSource,
    JsonRpcChainBalanceSource,
    LedgerChainBalanceSource,
)
