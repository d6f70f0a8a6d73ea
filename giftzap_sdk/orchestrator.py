"""
Two-phase gift submission.

Sending a gift spends ERC-20 tokens on the user's behalf, so the
GiftManager needs an allowance first. The orchestrator turns "approve if
needed, then send" into one logical operation driven by an explicit state
machine:

    Idle -> CheckingAllowance
    CheckingAllowance -> AwaitingApproval   (allowance < amount)
    CheckingAllowance -> AwaitingAction     (allowance >= amount)
    AwaitingApproval  -> AwaitingAction     (approval confirmed)
    AwaitingApproval  -> Failed
    AwaitingAction    -> Confirmed
    AwaitingAction    -> Failed

An approval that confirmed is never revoked, even if the gift itself fails.
"""
import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from web3 import Web3

from .codec import cid_to_bytes32, encode_name, hash_tag, to_bytes32
from .exceptions import (
    GiftZapError, InvalidInput, InvalidTransition, LedgerReadError, NotRedeemable, NotRegistryOwner,
    PublishFailed, TransactionFailed
)
from .ledger.base import LedgerClient, classify_error
from .metadata import MetadataResolver
from .models import CharityMetadata, GiftRecord, PendingTransaction, TxErrorClass, TxReceipt, TxState

logger = logging.getLogger(__name__)

DEFAULT_GIFT_TYPE = "just_because"

Observer = Callable[[PendingTransaction], None]


class TxEvent(str, Enum):
    """Inputs accepted by :func:`advance`."""
    START = "start"
    ALLOWANCE_INSUFFICIENT = "allowance_insufficient"
    ALLOWANCE_SUFFICIENT = "allowance_sufficient"
    APPROVAL_CONFIRMED = "approval_confirmed"
    ACTION_CONFIRMED = "action_confirmed"
    FAIL = "fail"
    CANCEL = "cancel"


_TRANSITIONS: Dict[Tuple[TxState, TxEvent], TxState] = {
    (TxState.IDLE, TxEvent.START): TxState.CHECKING_ALLOWANCE,
    (TxState.CHECKING_ALLOWANCE, TxEvent.ALLOWANCE_INSUFFICIENT): TxState.AWAITING_APPROVAL,
    (TxState.CHECKING_ALLOWANCE, TxEvent.ALLOWANCE_SUFFICIENT): TxState.AWAITING_ACTION,
    (TxState.CHECKING_ALLOWANCE, TxEvent.FAIL): TxState.FAILED,
    (TxState.AWAITING_APPROVAL, TxEvent.APPROVAL_CONFIRMED): TxState.AWAITING_ACTION,
    (TxState.AWAITING_APPROVAL, TxEvent.FAIL): TxState.FAILED,
    (TxState.AWAITING_ACTION, TxEvent.ACTION_CONFIRMED): TxState.CONFIRMED,
    (TxState.AWAITING_ACTION, TxEvent.FAIL): TxState.FAILED,
}


def advance(tx: PendingTransaction, event: TxEvent, **changes) -> PendingTransaction:
    """
    Apply ``event`` to ``tx`` and return the next snapshot.

    ``CANCEL`` is accepted from any non-terminal state; it marks an attempt
    abandoned by its caller. A write already handed to the ledger may still
    confirm after that.

    Args:
        tx: Current snapshot
        event: Event to apply
        **changes: Extra fields to set on the new snapshot

    Returns:
        New snapshot in the target state

    Raises:
        InvalidTransition: If ``event`` is not valid in ``tx.state``
    """
    event = TxEvent(event)
    if event == TxEvent.CANCEL and not tx.state.is_terminal:
        target = TxState.CANCELLED
    else:
        target = _TRANSITIONS.get((tx.state, event))
    if target is None:
        raise InvalidTransition(tx.state, event.value)
    return tx.evolve(state=target, **changes)


def build_redeem_url(base_url: str, record_id: int) -> str:
    """
    Shareable link a recipient opens to redeem a gift.

    >>> build_redeem_url("https://giftzap.app/", 7)
    'https://giftzap.app/redeem/7'
    """
    if record_id is None or int(record_id) < 1:
        raise InvalidInput(f"Invalid gift id: {record_id!r}")
    return f"{base_url.rstrip('/')}/redeem/{int(record_id)}"


class _Attempt:
    """Holds the current snapshot of one attempt and reports every transition."""

    def __init__(self, amount: int, observer: Optional[Observer], logger: logging.Logger):
        self.tx = PendingTransaction(amount=amount)
        self.observer = observer
        self.logger = logger
        self._notify()

    def _notify(self) -> None:
        if self.observer is None:
            return
        try:
            self.observer(self.tx)
        except Exception as e:
            self.logger.warning(f"Transaction observer raised: {e}")

    def move(self, event: TxEvent, **changes) -> PendingTransaction:
        previous = self.tx.state
        self.tx = advance(self.tx, event, **changes)
        self.logger.debug(f"Gift transaction {previous.value} -> {self.tx.state.value}")
        self._notify()
        return self.tx

    def update(self, **changes) -> PendingTransaction:
        self.tx = self.tx.evolve(**changes)
        return self.tx

    def fail(
        self,
        cause: Optional[BaseException],
        error_class: Optional[TxErrorClass] = None,
        message: Optional[str] = None
    ) -> GiftZapError:
        """
        Move to ``Failed`` and build the exception to raise.

        Causes that ``classify_error`` leaves unclassified (the request was
        refused before reaching the ledger) are raised as ``InvalidInput``.
        """
        error_class = error_class or classify_error(cause)
        failed_in = self.tx.state
        self.move(TxEvent.FAIL, error_class=error_class)
        message = message or f"{type(cause).__name__}: {cause}"
        if error_class is None:
            self.logger.error(f"Gift transaction refused in {failed_in.value}: {message}")
            return InvalidInput(str(cause))
        self.logger.error(f"Gift transaction failed in {failed_in.value} ({error_class.value}): {message}")
        return TransactionFailed(error_class, message, state=failed_in, cause=cause, transaction=self.tx)


class TransactionOrchestrator:
    """
    Submits gifts and the other user-signed GiftManager writes.

    Failures are classified as UserCancelled, LedgerRevert, NetworkError or
    InsufficientAllowanceAfterApproval and raised as ``TransactionFailed``.
    Nothing is retried automatically; a retry is a new call with a new
    prediction.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        resolver: Optional[MetadataResolver] = None,
        observer: Optional[Observer] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the orchestrator

        Args:
            ledger: Ledger client used for reads and signed writes
            resolver: Metadata resolver used to publish gift messages (optional)
            observer: Callback receiving every ``PendingTransaction`` snapshot
            logger: Optional logger instance
        """
        self.ledger = ledger
        self.resolver = resolver
        self.observer = observer
        self.logger = logger or logging.getLogger(__name__)

    def _require_signer(self) -> str:
        if not self.ledger.can_sign:
            raise InvalidInput("No account or signer available for writes")
        return self.ledger.account_address

    async def _message_hash(self, gift_type: str, message: str, sender: str, publish: bool) -> bytes:
        if publish and message and self.resolver is not None:
            try:
                cid = await self.resolver.upload_gift_metadata(gift_type, message, sender=sender)
                return cid_to_bytes32(cid)
            except (PublishFailed, InvalidInput) as e:
                self.logger.warning(f"Gift message not published, storing its hash only: {e}")
        return to_bytes32(hash_tag(message))

    async def _predict(self, attempt: _Attempt) -> None:
        count = await self.ledger.read_record_count()
        attempt.update(predicted_record_id=count + 1)
        self.logger.debug(f"Predicted gift id {count + 1}")

    async def send_gift(
        self,
        recipient: str,
        amount: int,
        gift_type: str = DEFAULT_GIFT_TYPE,
        message: str = "",
        is_charity: bool = False,
        publish_message: bool = True
    ) -> PendingTransaction:
        """
        Approve the token spend if needed, then send the gift.

        The predicted id (``count + 1``) is only a best guess while the
        transaction is pending. Once the gift confirms, ``record_id`` is
        taken from the ``GiftSent`` event; if the event cannot be read the
        result stays provisional. The message is published only once the
        allowance is in place, so a declined approval leaves nothing pinned.

        Args:
            recipient: Address receiving the gift (or charity address)
            amount: Token amount in base units
            gift_type: Category label, stored as its keccak256 hash
            message: Personal message
            is_charity: Whether the recipient is a registered charity
            publish_message: Publish the message to IPFS and store its
                address; otherwise only its keccak256 hash is stored

        Returns:
            Confirmed transaction snapshot

        Raises:
            InvalidInput: If the recipient or amount is invalid, or the
                ledger client has no signer or token configured
            TransactionFailed: If any step fails
        """
        if not isinstance(recipient, str) or not Web3.is_address(recipient):
            raise InvalidInput(f"Invalid recipient address: {recipient!r}")
        if not isinstance(amount, int) or isinstance(amount, bool) or amount <= 0:
            raise InvalidInput(f"Amount must be a positive integer, got {amount!r}")
        owner = self._require_signer()
        if not self.ledger.token_address:
            raise InvalidInput("Token address not configured; gifts cannot be paid for")

        attempt = _Attempt(amount, self.observer, self.logger)
        try:
            return await self._run_send(
                attempt, owner, recipient, amount, gift_type, message, is_charity, publish_message
            )
        except asyncio.CancelledError:
            if not attempt.tx.state.is_terminal:
                attempt.move(TxEvent.CANCEL)
            raise

    async def _run_send(
        self,
        attempt: _Attempt,
        owner: str,
        recipient: str,
        amount: int,
        gift_type: str,
        message: str,
        is_charity: bool,
        publish_message: bool
    ) -> PendingTransaction:
        spender = self.ledger.gift_manager_address
        type_hash = to_bytes32(hash_tag(gift_type))

        attempt.move(TxEvent.START)
        try:
            allowance = await self.ledger.read_allowance(owner, spender)
            await self._predict(attempt)
        except Exception as e:
            raise attempt.fail(e) from e

        if allowance < amount:
            self.logger.info(f"Allowance {allowance} below {amount}; requesting approval")
            attempt.move(TxEvent.ALLOWANCE_INSUFFICIENT)
            try:
                approval = await self.ledger.submit_approval(spender, amount)
                attempt.update(approval_tx=approval.tx_hash)
                allowance = await self.ledger.read_allowance(owner, spender)
            except Exception as e:
                raise attempt.fail(e) from e
            if allowance < amount:
                raise attempt.fail(
                    None,
                    TxErrorClass.INSUFFICIENT_ALLOWANCE_AFTER_APPROVAL,
                    f"allowance is {allowance} after approval, {amount} required",
                )
            try:
                await self._predict(attempt)
            except Exception as e:
                self.logger.debug(f"Could not refresh predicted id: {e}")
            attempt.move(TxEvent.APPROVAL_CONFIRMED)
        else:
            attempt.move(TxEvent.ALLOWANCE_SUFFICIENT)

        try:
            message_hash = await self._message_hash(gift_type, message, owner, publish_message)
            receipt = await self.ledger.submit_gift(recipient, amount, type_hash, message_hash, is_charity)
        except Exception as e:
            raise attempt.fail(e) from e

        record_id = self.ledger.extract_record_id(receipt)
        predicted = attempt.tx.predicted_record_id
        if record_id is None:
            self.logger.warning(f"GiftSent event missing from {receipt.tx_hash}; gift id {predicted} is provisional")
        elif record_id != predicted:
            self.logger.info(f"Gift id {record_id} differs from predicted {predicted}")

        tx = attempt.move(TxEvent.ACTION_CONFIRMED, action_tx=receipt.tx_hash, record_id=record_id)
        self.logger.info(f"Gift {tx.best_record_id} confirmed in {receipt.tx_hash}")
        return tx

    async def _single_write(self, label: str, call) -> TxReceipt:
        try:
            receipt = await call
        except Exception as e:
            error_class = classify_error(e)
            if error_class is None:
                raise
            self.logger.error(f"{label} failed ({error_class.value}): {e}")
            raise TransactionFailed(error_class, f"{type(e).__name__}: {e}", cause=e) from e
        self.logger.info(f"{label} confirmed in {receipt.tx_hash}")
        return receipt

    async def check_redeemable(self, record_id: int) -> GiftRecord:
        """
        Confirm the signing account can redeem ``record_id``.

        Returns:
            The gift record

        Raises:
            NotRedeemable: If the gift does not exist, is addressed to
                another account, or was already redeemed
        """
        account = self._require_signer()
        try:
            record = await self.ledger.read_record(record_id)
        except Exception as e:
            raise LedgerReadError(f"Failed to read gift {record_id}: {e}") from e
        if record is None:
            raise NotRedeemable(record_id, "gift does not exist")
        if record.recipient.lower() != account.lower():
            raise NotRedeemable(record_id, "signing account is not the recipient")
        if record.redeemed:
            raise NotRedeemable(record_id, "gift has already been redeemed")
        return record

    async def redeem_gift(self, record_id: int, check: bool = True) -> TxReceipt:
        """
        Redeem a gift addressed to the signing account.

        Args:
            record_id: Gift id
            check: Read the gift first and refuse to submit a redemption
                the ledger would reject

        Raises:
            InvalidInput: If ``record_id`` is not a positive integer
            NotRedeemable: If ``check`` is set and the gift cannot be redeemed
            TransactionFailed: If the ledger rejects the redemption or the
                user declines to sign
        """
        if not isinstance(record_id, int) or isinstance(record_id, bool) or record_id < 1:
            raise InvalidInput(f"Invalid gift id: {record_id!r}")
        self._require_signer()
        if check:
            await self.check_redeemable(record_id)
        return await self._single_write(f"Redeem of gift {record_id}", self.ledger.submit_redeem(record_id))

    async def add_favorite(self, recipient: str, name: str) -> TxReceipt:
        """
        Save ``recipient`` as a favorite under a display name.

        The name is stored in a ``bytes32`` slot and truncated to 31 bytes.

        Raises:
            InvalidInput: If the address is invalid or the name is empty
            TransactionFailed: If the write fails
        """
        if not isinstance(recipient, str) or not Web3.is_address(recipient):
            raise InvalidInput(f"Invalid recipient address: {recipient!r}")
        encoded = encode_name(name)
        self._require_signer()
        return await self._single_write(
            f"Adding favorite {recipient}", self.ledger.submit_add_favorite(recipient, encoded)
        )

    # Charity registry

    async def is_registry_owner(self, address: Optional[str] = None) -> bool:
        """Whether ``address`` (default: the signing account) owns the charity registry."""
        address = address or self._require_signer()
        owner = await self.ledger.read_owner()
        return owner.lower() == address.lower()

    async def _require_registry_owner(self) -> None:
        account = self._require_signer()
        try:
            owner = await self.ledger.read_owner()
        except Exception as e:
            raise LedgerReadError(f"Failed to read registry owner: {e}") from e
        if owner.lower() != account.lower():
            raise NotRegistryOwner(account, owner)

    async def add_charity(self, charity_address: str, metadata: CharityMetadata) -> TxReceipt:
        """
        Publish a charity's metadata document and register it on the ledger.

        Args:
            charity_address: Wallet receiving gifts for the charity
            metadata: Name, description, logo and website

        Raises:
            InvalidInput: If the address is invalid or no resolver is configured
            NotRegistryOwner: If the signing account does not own the registry
            PublishFailed: If the metadata document could not be pinned
            TransactionFailed: If the registry write fails
        """
        if not isinstance(charity_address, str) or not Web3.is_address(charity_address):
            raise InvalidInput(f"Invalid charity address: {charity_address!r}")
        if not metadata.name.strip():
            raise InvalidInput("Charity name must not be empty")
        if self.resolver is None:
            raise InvalidInput("Metadata resolver not provided during initialization")
        await self._require_registry_owner()

        cid = await self.resolver.upload_charity_metadata(metadata)
        return await self._single_write(
            f"Adding charity {metadata.name!r}",
            self.ledger.submit_add_charity(charity_address, metadata.name.strip(), cid),
        )

    async def remove_charity(self, charity_id: int) -> TxReceipt:
        """
        Deactivate a charity.

        Raises:
            InvalidInput: If ``charity_id`` is not a positive integer
            NotRegistryOwner: If the signing account does not own the registry
            TransactionFailed: If the registry write fails
        """
        if not isinstance(charity_id, int) or isinstance(charity_id, bool) or charity_id < 1:
            raise InvalidInput(f"Invalid charity id: {charity_id!r}")
        await self._require_registry_owner()
        return await self._single_write(
            f"Removing charity {charity_id}", self.ledger.submit_remove_charity(charity_id)
        )
