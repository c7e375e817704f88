"""Validate configured admin addresses against the shop and customer registries."""

from __future__ import annotations

import argparse
import asyncio
import sys

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from rcn_api.core.settings import settings
from rcn_api.services.roles import AdminAddressReport, AdminRoleAudit


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="RCN admin address validator")
    parser.add_argument(
        "--sync",
        action="store_true",
        help="Record valid admin addresses in the address role index.",
    )
    parser.add_argument(
        "--address",
        action="append",
        default=None,
        help="Address to validate instead of ADMIN_ADDRESSES (repeatable).",
    )
    return parser.parse_args()


def print_report(report: AdminAddressReport) -> None:
    for address in report.valid:
        print(f"  ok        {address}")
    for conflict in report.conflicts:
        print(f"  conflict  {conflict.address} is registered as {conflict.existing_role.value} ({conflict.reference_id})")
    for address, reason in report.invalid:
        print(f"  invalid   {address}: {reason}")


async def main() -> int:
    args = parse_args()
    addresses = args.address or settings.admin_addresses
    if not addresses:
        print("No admin addresses configured (set ADMIN_ADDRESSES or pass --address)")
        return 1

    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            audit = AdminRoleAudit(session, addresses)
            report = await (audit.sync_admin_addresses() if args.sync else audit.validate_admin_addresses())
    finally:
        await engine.dispose()

    print_report(report)
    if report.healthy:
        print("Admin addresses valid ✅")
        return 0
    print("Admin addresses need attention ❌")
    return 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
