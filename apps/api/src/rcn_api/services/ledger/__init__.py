"""Token ledger services."""

from .earning_service import EarningResult, EarningService  # noqa: F401
from .store import LedgerStore, SqlLedgerStore, is_ledger_amount  # noqa: F401
