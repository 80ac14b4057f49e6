import re
from typing import Optional
from ..config.params import EMPTY_ADDRESS

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def is_valid_address(addr: str) -> bool:
    return isinstance(addr, str) and bool(_ADDRESS_RE.match(addr))


def normalize_address(addr: Optional[str]) -> str:
    """Lower-cases an address. Unset delegates (None, "", zero address) become ""."""
    if not addr or addr.lower() == EMPTY_ADDRESS:
        return ""
    if not is_valid_address(addr):
        raise ValueError(f"Invalid address: {addr}")
    return addr.lower()


def same_address(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


def hint_address(addr: Optional[str]) -> str:
    """Empty hint slots are encoded as the zero address."""
    return addr.lower() if addr else EMPTY_ADDRESS
