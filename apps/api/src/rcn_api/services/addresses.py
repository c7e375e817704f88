"""Wallet address normalization."""

from __future__ import annotations

import re

from rcn_api.services.errors import InvalidAddressError

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-f]{40}$")


def normalize_address(address: object) -> str:
    """Return the lower-cased form of an EVM address or raise ``InvalidAddressError``."""

    if not isinstance(address, str):
        raise InvalidAddressError(address)
    normalized = address.strip().lower()
    if not _ADDRESS_PATTERN.match(normalized):
        raise InvalidAddressError(address)
    return normalized


def is_valid_address(address: object) -> bool:
    try:
        normalize_address(address)
    except InvalidAddressError:
        return False
    return True
