"""Sources for a wallet's current RCN balance."""

from __future__ import annotations

from decimal import Decimal
from itertools import count
from typing import Protocol

import httpx
from loguru import logger

from rcn_api.models.ledger import LedgerEntryKind
from rcn_api.services.errors import ChainBalanceUnavailable
from rcn_api.services.ledger.store import LedgerStore

_BALANCE_OF_SELECTOR = "0x70a08231"


class ChainBalanceSource(Protocol):
    async def get_balance(self, address: str) -> Decimal:
        """Return the token balance held by ``address``; raises ``ChainBalanceUnavailable``."""


class JsonRpcChainBalanceSource:
    """Reads the ERC-20 ``balanceOf`` of the RCN contract through an Ethereum JSON-RPC node."""

    def __init__(
        self,
        *,
        rpc_url: str,
        token_contract: str,
        decimals: int = 18,
        timeout_seconds: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not rpc_url:
            raise ValueError("Chain RPC URL must be configured")
        if not token_contract:
            raise ValueError("Token contract address must be configured")
        self._rpc_url = rpc_url
        self._token_contract = token_contract.lower()
        self._scale = Decimal(10) ** decimals
        self._timeout_seconds = timeout_seconds
        self._client = http_client
        self._request_ids = count(1)

    def _build_call(self, address: str) -> dict:
        padded = address.lower().removeprefix("0x").rjust(64, "0")
        return {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": "eth_call",
            "params": [{"to": self._token_contract, "data": f"{_BALANCE_OF_SELECTOR}{padded}"}, "latest"],
        }

    async def _post(self, payload: dict) -> httpx.Response:
        if self._client is not None:
            return await self._client.post(self._rpc_url, json=payload, timeout=self._timeout_seconds)
        async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
            return await client.post(self._rpc_url, json=payload)

    async def get_balance(self, address: str) -> Decimal:
        try:
            response = await self._post(self._build_call(address))
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Chain balance request failed", address=address, error=str(exc))
            raise ChainBalanceUnavailable(f"Balance query for {address} failed: {exc}") from exc

        if body.get("error"):
            logger.warning("Chain balance RPC error", address=address, error=body["error"])
            raise ChainBalanceUnavailable(f"RPC error for {address}: {body['error']}")

        raw = body.get("result")
        if not isinstance(raw, str) or not raw.startswith("0x"):
            raise ChainBalanceUnavailable(f"Unexpected balanceOf result for {address}: {raw!r}")
        units = int(raw, 16) if raw != "0x" else 0
        return Decimal(units) / self._scale


class LedgerChainBalanceSource:
    """Ledger-of-record balance: every confirmed credit minus every confirmed debit.

    Unlike earned balance this counts purchases and inbound transfers, so it
    stands in for the wallet balance where no chain node is configured.
    """

    def __init__(self, ledger: LedgerStore) -> None:
        self._ledger = ledger

    async def get_balance(self, address: str) -> Decimal:
        balance = Decimal("0")
        for entry in await self._ledger.query_entries(address):
            amount = Decimal(entry.amount)
            if entry.kind == LedgerEntryKind.MINT:
                balance += amount
            else:
                balance -= amount
        for entry in await self._ledger.query_inbound_transfers(address):
            balance += Decimal(entry.amount)
        return max(balance, Decimal("0"))
