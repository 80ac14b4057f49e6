from enum import Enum, IntEnum
from typing import Any, Dict, Optional


class DelegatorStatus(str, Enum):
    PENDING = "Pending"
    BONDED = "Bonded"
    UNBONDED = "Unbonded"
    UNBONDING = "Unbonding"   # Derived locally, never returned by the contract


# On-chain enum order for BondingManager.delegatorStatus()
CHAIN_DELEGATOR_STATUS = [
    DelegatorStatus.PENDING,
    DelegatorStatus.BONDED,
    DelegatorStatus.UNBONDED,
]


class TranscoderStatus(str, Enum):
    NOT_REGISTERED = "NotRegistered"
    REGISTERED = "Registered"


CHAIN_TRANSCODER_STATUS = [
    TranscoderStatus.NOT_REGISTERED,
    TranscoderStatus.REGISTERED,
]


class StakeAction(str, Enum):
    STAKE = "stake"
    UNSTAKE = "unstake"


class RewardFormula(str, Enum):
    LEGACY = "legacy"       # Genesis BondingManager: reward cut taken from the pool
    CURRENT = "current"     # Streamflow BondingManager: separate transcoder reward pool


class EventType(str, Enum):
    REWARD = "reward"
    BOND = "bond"
    UNBOND = "unbond"
    REBOND = "rebond"
    WITHDRAW_STAKE = "withdraw_stake"
    SHARE_COMPUTED = "share_computed"


class ProtocolError(Exception):
    pass


class NotFound(ProtocolError):
    pass


class InvalidState(ProtocolError):
    pass


class UnbondingPeriodNotElapsed(InvalidState):
    pass


class NothingToWithdraw(InvalidState):
    pass


class InvalidAmount(InvalidState):
    pass


class ChainReadFailure(ProtocolError):
    """A chain-read collaborator call failed. Message is prefixed with the call name."""

    def __init__(self, call: str, message: str):
        self.call = call
        super().__init__(f"Error: {call}\n{message}")


class RewardCreditFailure(ChainReadFailure):
    """
    A Reward event was processed, but some bonded delegators got no share.

    Attributes:
        failures: delegator address -> the error that stopped its share
        shares: shares that were credited
    """

    def __init__(self, transcoder: str, failures: Dict[str, Exception], shares: list):
        self.transcoder = transcoder
        self.failures = failures
        self.shares = shares
        detail = "; ".join(f"{address}: {e}" for address, e in failures.items())
        super().__init__("reward", f"{len(failures)} delegator(s) of {transcoder} not credited: {detail}")


class NameNotDefined(ProtocolError):
    """Raised by address resolvers when a name has no entry."""
    pass


class ConfirmationFailure(ProtocolError):
    """
    A transaction was mined but did not succeed.

    Carries the receipt and the original transaction payload for diagnostics.
    """

    def __init__(self, message: str, receipt: Optional[Dict[str, Any]] = None,
                 transaction: Optional[Dict[str, Any]] = None):
        self.receipt = receipt
        self.transaction = transaction
        super().__init__(message)


class ConfirmationTimeout(ConfirmationFailure):
    pass
