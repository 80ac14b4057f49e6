from pydantic import BaseModel, Field
from typing import Any, List, Optional


class CallSpec(BaseModel):
    """A state-changing contract call, prior to ABI encoding."""
    contract: str = "BondingManager"
    method: str
    args: List[Any] = Field(default_factory=list)


class TxOptions(BaseModel):
    from_address: Optional[str] = None
    gas: Optional[int] = None
    gas_price: Optional[int] = None
    value: int = 0

    # Fire-and-forget: return the tx hash without waiting for a receipt
    return_tx_hash: bool = False
    # Seconds to wait for a receipt; None uses the network default
    timeout: Optional[float] = None

    def merged(self, other: Optional["TxOptions"]) -> "TxOptions":
        """Returns a copy with the explicitly set fields of `other` applied on top."""
        if other is None:
            return self.model_copy()
        return self.model_copy(update=other.model_dump(exclude_unset=True))
