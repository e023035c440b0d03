import hashlib
import bech32 # type: ignore
from typing import Tuple, Optional


def address_from_bytes(data: bytes, prefix: str = "stk") -> str:
    """Creates Bech32 address from arbitrary bytes (public key, label)."""
    h20 = hashlib.sha256(data).digest()[:20]

    # Convert to 5-bit words
    five_bit_r = bech32.convertbits(h20, 8, 5)
    if five_bit_r is None:
        raise ValueError("Error converting to bech32 words")

    return bech32.bech32_encode(prefix, five_bit_r)

def address_from_pubkey(pub_bytes: bytes, prefix: str = "stk") -> str:
    """Creates Bech32 address from a compressed public key."""
    return address_from_bytes(pub_bytes, prefix=prefix)

def decode_address(addr: str) -> Tuple[str, bytes]:
    """Decodes Bech32 address to (prefix, h20_bytes)."""
    hrp, data = bech32.bech32_decode(addr)
    if hrp is None or data is None:
        raise ValueError("Invalid bech32 address")

    decoded = bech32.convertbits(data, 5, 8, False)
    if decoded is None:
        raise ValueError("Error converting from bech32 words")

    return hrp, bytes(decoded)

def is_valid_address(addr: str, expected_prefix: Optional[str] = None) -> bool:
    try:
        hrp, _ = decode_address(addr)
        if expected_prefix and hrp != expected_prefix:
            return False
        return True
    except ValueError:
        return False
