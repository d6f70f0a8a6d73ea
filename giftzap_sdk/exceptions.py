"""
Exceptions for the GiftZap SDK.

Read-side failures (a single unreadable gift, an unreachable IPFS gateway)
are absorbed close to where they happen and never reach these classes'
callers as hard errors. Write-side failures always surface as
``TransactionFailed`` carrying their classification.
"""
from typing import Optional

from .models import PendingTransaction, TxErrorClass, TxState


class GiftZapError(Exception):
    """Base exception for all GiftZap SDK errors."""
    pass


class InvalidInput(GiftZapError, ValueError):
    """Raised when caller-supplied input cannot be encoded or submitted."""
    pass


class NotRedeemable(InvalidInput):
    """Raised before submitting a redemption the ledger would reject."""

    def __init__(self, record_id: int, reason: str):
        self.record_id = record_id
        self.reason = reason
        super().__init__(f"Gift #{record_id} cannot be redeemed: {reason}")


class NotRegistryOwner(InvalidInput):
    """Raised when a charity registry write is attempted by a non-owner account."""

    def __init__(self, account: str, owner: str):
        self.account = account
        self.owner = owner
        super().__init__(f"Only the registry owner {owner} can manage charities (signing as {account})")


class MetadataUnavailable(GiftZapError):
    """Raised when no IPFS gateway could return a parseable document."""

    def __init__(self, address: str, attempts: int = 0):
        self.address = address
        self.attempts = attempts
        super().__init__(f"Metadata unavailable for {address!r} after {attempts} gateway attempt(s)")


class PublishFailed(GiftZapError):
    """Raised when a document could not be pinned through the write endpoint."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class LedgerError(GiftZapError):
    """Base exception for failures reported by a ledger client."""
    pass


class LedgerReadError(LedgerError):
    """Raised when a list-shaped or counter read fails as a whole."""
    pass


class RecordNotFound(LedgerError):
    """Raised when a gift id does not resolve to a populated record."""

    def __init__(self, record_id: int):
        self.record_id = record_id
        super().__init__(f"Gift #{record_id} not found")


class UserRejectedError(LedgerError):
    """Raised by a signer when the user declines to sign."""
    pass


class LedgerRevertError(LedgerError):
    """Raised when the ledger rejects a write (revert or failed receipt)."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        self.tx_hash = tx_hash
        super().__init__(message)


class InvalidTransition(GiftZapError):
    """Raised when a pending transaction receives an event its state cannot accept."""

    def __init__(self, state: TxState, event: str):
        self.state = state
        self.event = event
        super().__init__(f"Event {event!r} is not valid in state {state.value}")


class TransactionFailed(GiftZapError):
    """
    Raised when a value-bearing action does not reach ``Confirmed``.

    Attributes:
        error_class: Classification of the failure
        state: State the transaction was in when it failed
        cause: Underlying exception, if any
        transaction: Final snapshot of the attempt, when one exists
    """

    def __init__(
        self,
        error_class: TxErrorClass,
        message: str,
        state: Optional[TxState] = None,
        cause: Optional[BaseException] = None,
        transaction: Optional[PendingTransaction] = None
    ):
        self.error_class = error_class
        self.state = state
        self.cause = cause
        self.transaction = transaction
        super().__init__(f"{error_class.value}: {message}")
