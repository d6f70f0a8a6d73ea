"""
Data models for the GiftZap SDK.
"""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Any, Optional, List

from pydantic import BaseModel, ConfigDict, Field

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class GiftRecord(BaseModel):
    """A single gift as stored on the ledger"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int = Field(..., gt=0)
    sender: str
    recipient: str
    amount: int = Field(..., ge=0)
    gift_type_hash: str = Field(..., alias="giftTypeHash")
    message_hash: str = Field(..., alias="messageHash")
    is_charity: bool = Field(False, alias="isCharity")
    redeemed: bool = False
    timestamp: int = Field(..., ge=0)

    def involves(self, address: str) -> bool:
        """True if ``address`` sent or received this gift (case-insensitive)."""
        needle = address.lower()
        return self.sender.lower() == needle or self.recipient.lower() == needle

    def with_redeemed(self) -> "GiftRecord":
        """Return a copy marked as redeemed. Redemption never flips back."""
        return self.model_copy(update={"redeemed": True})


class FavoriteEntry(BaseModel):
    """A favorite recipient with ledger-maintained aggregates"""
    model_config = ConfigDict(frozen=True)

    recipient: str
    name: str
    gift_count: int = 0
    total_amount: int = 0


class CharityEntry(BaseModel):
    """A registered charity with its display fields resolved"""
    model_config = ConfigDict(frozen=True)

    id: int
    address: str
    name: str
    description: Optional[str] = None
    logo: Optional[str] = None
    website: Optional[str] = None
    metadata_ref: Optional[str] = None
    # Which fallback tier produced ``name``: "metadata", "legacy" or "placeholder"
    source: str = "placeholder"


class TopGifter(BaseModel):
    """Leaderboard entry"""
    model_config = ConfigDict(frozen=True)

    address: str
    count: int


class CharityMetadata(BaseModel):
    """JSON document describing a charity, stored on IPFS"""
    name: str
    description: str = ""
    logo: Optional[str] = None
    website: Optional[str] = None


class GiftMetadata(BaseModel):
    """JSON document carrying a gift's message, stored on IPFS"""
    model_config = ConfigDict(populate_by_name=True)

    gift_type: str = Field("", alias="giftType")
    message: str = ""
    timestamp: int = 0
    sender: Optional[str] = None


class TxReceipt(BaseModel):
    """Transaction receipt from the blockchain"""
    model_config = ConfigDict(populate_by_name=True)

    tx_hash: str = Field(..., alias="transactionHash")
    block_number: int = Field(..., alias="blockNumber")
    status: int
    gas_used: int = Field(0, alias="gasUsed")
    from_address: Optional[str] = Field(None, alias="from")
    to_address: Optional[str] = Field(None, alias="to")
    logs: List[Dict[str, Any]] = Field(default_factory=list)


@dataclass(frozen=True)
class RawCharities:
    """Parallel arrays as returned by ``getCharities``"""
    ids: List[int]
    addresses: List[str]
    names: List[Any]
    metadata_refs: List[Any]


@dataclass(frozen=True)
class RawFavorites:
    """Parallel arrays as returned by ``getFavorites(owner)``"""
    recipients: List[str]
    names: List[Any]
    gift_counts: List[int]
    total_amounts: List[int]


@dataclass(frozen=True)
class RawTopGifters:
    """Parallel arrays as returned by ``getTopGifters``"""
    addresses: List[str]
    counts: List[int]


class TxState(str, Enum):
    """States of a pending value-bearing transaction."""
    IDLE = "Idle"
    CHECKING_ALLOWANCE = "CheckingAllowance"
    AWAITING_APPROVAL = "AwaitingApproval"
    AWAITING_ACTION = "AwaitingAction"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TxState.CONFIRMED, TxState.CANCELLED, TxState.FAILED)


class TxErrorClass(str, Enum):
    """Classification of a failed transaction step."""
    USER_CANCELLED = "UserCancelled"
    INSUFFICIENT_ALLOWANCE_AFTER_APPROVAL = "InsufficientAllowanceAfterApproval"
    LEDGER_REVERT = "LedgerRevert"
    NETWORK_ERROR = "NetworkError"


@dataclass(frozen=True)
class PendingTransaction:
    """
    Snapshot of one submission attempt.

    Instances are immutable; every transition produces a new snapshot.
    An attempt is never reused once it reaches a terminal state.
    """
    state: TxState = TxState.IDLE
    amount: int = 0
    predicted_record_id: Optional[int] = None
    record_id: Optional[int] = None
    error_class: Optional[TxErrorClass] = None
    approval_tx: Optional[str] = None
    action_tx: Optional[str] = None

    @property
    def is_provisional(self) -> bool:
        """True while the only known id is the optimistic prediction."""
        return self.record_id is None

    @property
    def best_record_id(self) -> Optional[int]:
        """Authoritative id when known, the prediction otherwise."""
        return self.record_id if self.record_id is not None else self.predicted_record_id

    def evolve(self, **changes) -> "PendingTransaction":
        return replace(self, **changes)
