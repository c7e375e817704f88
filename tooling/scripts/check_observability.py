#!/usr/bin/env python3
"""Quick health check for RCN redemption observability.

Usage:
    python tooling/scripts/check_observability.py \
        --base-url https://staging-api.example.com \
        --api-key "$SHOP_API_KEY"

The script validates that transient denials, busy commits, and role conflicts
recorded by the API stay within the given thresholds.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any, Dict, Optional

import httpx


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="RCN observability checker")
    parser.add_argument(
        "--base-url",
        default="http://localhost:8000",
        help="Base URL of the RCN API service.",
    )
    parser.add_argument(
        "--api-key",
        default=None,
        help="Shop API key (required when the service enforces one).",
    )
    parser.add_argument(
        "--max-transient-denials",
        type=int,
        default=0,
        help="Maximum allowed TRANSIENT_FAILURE decisions before failing (default: 0).",
    )
    parser.add_argument(
        "--max-busy-commits",
        type=int,
        default=0,
        help="Maximum allowed BUSY commit outcomes before failing (default: 0).",
    )
    parser.add_argument(
        "--max-role-conflicts",
        type=int,
        default=-1,
        help="Maximum allowed role conflicts before failing (default: unlimited).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=10.0,
        help="HTTP request timeout in seconds.",
    )
    return parser.parse_args()


async def _get_json(
    client: httpx.AsyncClient,
    path: str,
    *,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    response = await client.get(path, headers=headers)
    response.raise_for_status()
    return response.json()


def _fail(message: str) -> None:
    print(f"[check-observability] ❌ {message}")
    sys.exit(1)


def _log_ok(message: str) -> None:
    print(f"[check-observability] ✅ {message}")


async def validate_health(client: httpx.AsyncClient) -> None:
    payload = await _get_json(client, "/api/v1/readyz")
    if payload.get("status") == "error":
        failing = [name for name, component in payload.get("components", {}).items() if component.get("status") == "error"]
        _fail(f"Readiness reports errors in: {', '.join(failing) or 'unknown'}")
    _log_ok(f"Readiness OK (status={payload.get('status')})")


async def validate_redemptions(
    client: httpx.AsyncClient,
    api_key: Optional[str],
    max_transient_denials: int,
    max_busy_commits: int,
    max_role_conflicts: int,
) -> None:
    headers = {"X-API-Key": api_key} if api_key else None
    payload = await _get_json(client, "/api/v1/observability/redemptions", headers=headers)
    decisions = payload.get("decisions", {}) or {}
    commits = payload.get("commits", {}) or {}
    role_conflicts = payload.get("roleConflicts", {}) or {}

    transient = int(decisions.get("TRANSIENT_FAILURE", 0))
    busy = int(commits.get("BUSY", 0))
    conflicts = sum(int(value) for value in role_conflicts.values())

    if transient > max_transient_denials:
        _fail(f"Transient denials {transient} exceed threshold {max_transient_denials}")
    if busy > max_busy_commits:
        _fail(f"Busy commits {busy} exceed threshold {max_busy_commits}")
    if max_role_conflicts >= 0 and conflicts > max_role_conflicts:
        _fail(f"Role conflicts {conflicts} exceed threshold {max_role_conflicts}")

    _log_ok(
        "Redemption observability OK "
        f"(approved={decisions.get('APPROVED', 0)}, confirmed={commits.get('CONFIRMED', 0)}, "
        f"rolled_back={commits.get('ROLLED_BACK', 0)}, busy={busy}, role_conflicts={conflicts})"
    )


async def main() -> None:
    args = parse_args()

    async with httpx.AsyncClient(base_url=args.base_url, timeout=args.timeout) as client:
        await validate_health(client)
        await validate_redemptions(
            client,
            api_key=args.api_key,
            max_transient_denials=args.max_transient_denials,
            max_busy_commits=args.max_busy_commits,
            max_role_conflicts=args.max_role_conflicts,
        )

    _log_ok("Observability checks completed successfully")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except httpx.HTTPStatusError as exc:
        _fail(f"HTTP {exc.response.status_code} while calling {exc.request.url}")
    except httpx.HTTPError as exc:
        _fail(f"Request failed: {exc}")
