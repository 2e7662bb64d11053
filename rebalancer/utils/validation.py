"""Identifier validation helpers."""

import base58


def is_valid_mint(address: str) -> bool:
    """Check that an address decodes to a 32-byte Solana public key."""
    if not address or not isinstance(address, str):
        return False

    try:
        return len(base58.b58decode(address)) == 32
    except ValueError:
        return False
