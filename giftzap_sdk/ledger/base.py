"""
Ledger client interface.

The GiftManager contract exposes single-record reads, a record counter,
a few list-shaped views and a handful of writes. Everything in the SDK talks
to the ledger through :class:`LedgerClient`, so the web3 implementation and
the in-memory stub are interchangeable.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, Optional, Protocol, Union

import httpx
from web3.exceptions import ContractLogicError, TimeExhausted

from ..exceptions import InvalidInput, LedgerRevertError, UserRejectedError
from ..models import (
    GiftRecord, RawCharities, RawFavorites, RawTopGifters, TxErrorClass, TxReceipt
)
from .abi import GIFT_SENT_TOPIC

logger = logging.getLogger(__name__)

# EIP-1193 "User Rejected Request"
USER_REJECTED_CODE = 4001

_USER_REJECTED_MARKERS = ("user rejected", "user denied", "rejected by user", "user cancelled", "user canceled")

VIEW_CHARITIES = "charities"
VIEW_FAVORITES = "favorites"
VIEW_TOP_GIFTERS = "topGifters"


class Signer(Protocol):
    """Protocol for custom signers (hardware wallets, remote signing services)"""
    address: str

    def sign_transaction(self, transaction_dict: Dict[str, Any]) -> Any:
        """
        Sign transaction and return an object exposing ``raw_transaction``.

        Implementations raise :class:`giftzap_sdk.exceptions.UserRejectedError`
        when the user declines.
        """
        ...


def _rpc_error_code(exc: BaseException) -> Optional[int]:
    code = getattr(exc, "code", None)
    if isinstance(code, int):
        return code
    rpc_response = getattr(exc, "rpc_response", None)
    if isinstance(rpc_response, dict):
        error = rpc_response.get("error") or {}
        if isinstance(error, dict) and isinstance(error.get("code"), int):
            return error["code"]
    if exc.args and isinstance(exc.args[0], dict):
        code = exc.args[0].get("code")
        if isinstance(code, int):
            return code
    return None


def classify_error(exc: BaseException) -> Optional[TxErrorClass]:
    """
    Map an exception raised by a ledger write onto the failure taxonomy.

    Args:
        exc: Exception raised while signing, sending or confirming

    Returns:
        UserCancelled, LedgerRevert or NetworkError; None for
        ``InvalidInput``, which means the request never left the client
    """
    if isinstance(exc, InvalidInput):
        return None
    if isinstance(exc, UserRejectedError):
        return TxErrorClass.USER_CANCELLED
    if isinstance(exc, (LedgerRevertError, ContractLogicError)):
        return TxErrorClass.LEDGER_REVERT

    code = _rpc_error_code(exc)
    if code == USER_REJECTED_CODE:
        return TxErrorClass.USER_CANCELLED

    message = str(exc).lower()
    if any(marker in message for marker in _USER_REJECTED_MARKERS):
        return TxErrorClass.USER_CANCELLED
    if "revert" in message:
        return TxErrorClass.LEDGER_REVERT

    if isinstance(exc, (asyncio.TimeoutError, TimeExhausted, ConnectionError, OSError, httpx.TransportError)):
        return TxErrorClass.NETWORK_ERROR

    # A JSON-RPC error object means the node answered and refused the request
    if code is not None:
        return TxErrorClass.LEDGER_REVERT

    logger.warning(f"Unrecognised ledger error treated as network error: {type(exc).__name__}: {exc}")
    return TxErrorClass.NETWORK_ERROR


class LedgerClient(ABC):
    """
    Abstract GiftManager client.

    All methods are coroutines and may raise transport or ledger errors;
    callers decide whether a failure is absorbed or surfaced.
    """

    @property
    @abstractmethod
    def account_address(self) -> str:
        """Address that signs writes and owns allowances."""
        pass

    @property
    @abstractmethod
    def gift_manager_address(self) -> str:
        """Address of the GiftManager contract (the allowance spender)."""
        pass

    @property
    @abstractmethod
    def token_address(self) -> Optional[str]:
        """Address of the ERC-20 token gifts are paid in, if configured."""
        pass

    @property
    @abstractmethod
    def can_sign(self) -> bool:
        """Whether an account or signer is available for writes."""
        pass

    @abstractmethod
    async def read_record(self, record_id: int) -> Optional[GiftRecord]:
        """
        Read one gift.

        Returns:
            The record, or None if the slot is unpopulated
        """
        pass

    @abstractmethod
    async def read_record_count(self) -> int:
        pass

    @abstractmethod
    async def read_charities(self) -> RawCharities:
        pass

    @abstractmethod
    async def read_favorites(self, owner: str) -> RawFavorites:
        pass

    @abstractmethod
    async def read_top_gifters(self) -> RawTopGifters:
        pass

    @abstractmethod
    async def read_allowance(self, owner: str, spender: str) -> int:
        pass

    @abstractmethod
    async def read_token_balance(self, owner: str) -> int:
        pass

    @abstractmethod
    async def read_owner(self) -> str:
        """Address allowed to manage the charity registry."""
        pass

    @abstractmethod
    async def submit_approval(self, spender: str, amount: int) -> TxReceipt:
        """Grant ``spender`` an allowance of ``amount`` and wait for confirmation."""
        pass

    @abstractmethod
    async def submit_gift(
        self,
        recipient: str,
        amount: int,
        gift_type_hash: bytes,
        message_hash: bytes,
        is_charity: bool
    ) -> TxReceipt:
        """Send a gift and wait for confirmation."""
        pass

    @abstractmethod
    async def submit_redeem(self, record_id: int) -> TxReceipt:
        pass

    @abstractmethod
    async def submit_add_favorite(self, recipient: str, encoded_name: bytes) -> TxReceipt:
        pass

    @abstractmethod
    async def submit_add_charity(self, charity_address: str, name: str, metadata_uri: str) -> TxReceipt:
        """Register a charity (registry owner only)."""
        pass

    @abstractmethod
    async def submit_remove_charity(self, charity_id: int) -> TxReceipt:
        """Deactivate a charity (registry owner only)."""
        pass

    async def read_list(self, view_name: str, *args: Any) -> Union[RawCharities, RawFavorites, RawTopGifters]:
        """
        Read a list-shaped view by name.

        Args:
            view_name: "charities", "favorites" (takes the owner) or "topGifters"
        """
        if view_name == VIEW_CHARITIES:
            return await self.read_charities()
        if view_name == VIEW_FAVORITES:
            return await self.read_favorites(*args)
        if view_name == VIEW_TOP_GIFTERS:
            return await self.read_top_gifters()
        raise InvalidInput(f"Unknown ledger view: {view_name}")

    def extract_record_id(self, receipt: TxReceipt) -> Optional[int]:
        """
        Find the gift id assigned by a confirmed ``sendGift``.

        Reads the first ``GiftSent`` log emitted by the GiftManager; the id is
        its first indexed topic.
        """
        manager = self.gift_manager_address.lower()
        for log in receipt.logs:
            address = str(log.get("address", "")).lower()
            topics = log.get("topics") or []
            if address != manager or not topics:
                continue
            if str(topics[0]).lower() != GIFT_SENT_TOPIC.lower() or len(topics) < 2:
                continue
            try:
                return int(str(topics[1]), 16)
            except ValueError:
                logger.debug(f"Malformed GiftSent topic: {topics[1]!r}")
        return None

    async def close(self) -> None:
        """Release network resources."""
        pass
