"""
In-memory GiftManager for development and tests.

It follows the contract's observable rules closely enough for the SDK's
read and write paths: dense ids from 1, allowance spent by ``sendGift``,
one-way redemption, per-owner favorites with derived aggregates.
"""
import logging
import time
from typing import Dict, Any, Optional, List, Set, Tuple

from ..exceptions import InvalidInput, LedgerRevertError
from ..models import (
    GiftRecord, RawCharities, RawFavorites, RawTopGifters, TxReceipt
)
from .abi import GIFT_SENT_TOPIC
from .base import LedgerClient

logger = logging.getLogger(__name__)

STUB_ACCOUNT = "0x00000000000000000000000000000000000a11ce"
STUB_GIFT_MANAGER = "0x0000000000000000000000000000000000061f75"
STUB_TOKEN = "0x00000000000000000000000000000000000070c3"


def _topic(value: int) -> str:
    return "0x" + format(value, "064x")


class StubLedgerClient(LedgerClient):
    """
    A simple in-memory ledger.

    Failures can be injected per operation with :meth:`inject_failure`
    (one-shot) or per record id with ``failing_ids`` (every read).
    ``calls`` records every write in order. Pass ``account=None`` for a
    read-only client and ``token_address=None`` for a deployment without a
    configured token.
    """

    def __init__(
        self,
        account: Optional[str] = STUB_ACCOUNT,
        gift_manager_address: str = STUB_GIFT_MANAGER,
        token_address: Optional[str] = STUB_TOKEN,
        owner: Optional[str] = None,
        clock=None
    ):
        self._account = account
        self._gift_manager_address = gift_manager_address
        self._token_address = token_address
        self.owner = owner or account or STUB_ACCOUNT
        self._clock = clock or (lambda: int(time.time()))

        self.records: Dict[int, GiftRecord] = {}
        self.allowances: Dict[Tuple[str, str], int] = {}
        self.balances: Dict[str, int] = {}
        self.charities: List[Dict[str, Any]] = []
        self.favorites: Dict[str, List[Dict[str, Any]]] = {}
        self.failing_ids: Set[int] = set()
        self.calls: List[str] = []
        self.reads: List[int] = []
        self._failures: Dict[str, BaseException] = {}
        self._tx_counter = 0

    @property
    def account_address(self) -> str:
        if self._account is None:
            raise InvalidInput("No account or signer available")
        return self._account

    @property
    def gift_manager_address(self) -> str:
        return self._gift_manager_address

    @property
    def token_address(self) -> Optional[str]:
        return self._token_address

    @property
    def can_sign(self) -> bool:
        return self._account is not None

    def inject_failure(self, operation: str, exc: BaseException) -> None:
        """Make the next call of ``operation`` (e.g. "approve", "sendGift") raise ``exc``."""
        self._failures[operation] = exc

    def _maybe_fail(self, operation: str) -> None:
        exc = self._failures.pop(operation, None)
        if exc is not None:
            raise exc

    def _receipt(self, logs: Optional[List[Dict[str, Any]]] = None) -> TxReceipt:
        self._tx_counter += 1
        return TxReceipt(
            tx_hash=_topic(self._tx_counter),
            block_number=self._tx_counter,
            status=1,
            from_address=self.account_address,
            to_address=self._gift_manager_address,
            logs=logs or [],
        )

    # Seeding helpers

    def add_gift(
        self,
        sender: str,
        recipient: str,
        amount: int,
        timestamp: Optional[int] = None,
        gift_type_hash: str = "0x" + "00" * 32,
        message_hash: str = "0x" + "00" * 32,
        is_charity: bool = False,
        redeemed: bool = False
    ) -> GiftRecord:
        record = GiftRecord(
            id=len(self.records) + 1,
            sender=sender,
            recipient=recipient,
            amount=amount,
            gift_type_hash=gift_type_hash,
            message_hash=message_hash,
            is_charity=is_charity,
            redeemed=redeemed,
            timestamp=self._clock() if timestamp is None else timestamp,
        )
        self.records[record.id] = record
        return record

    def add_charity(self, address: str, name: Any, metadata_ref: Any = "") -> int:
        charity_id = len(self.charities) + 1
        self.charities.append(
            {"id": charity_id, "address": address, "name": name, "ref": metadata_ref, "active": True}
        )
        return charity_id

    # Reads

    async def read_record(self, record_id: int) -> Optional[GiftRecord]:
        self.reads.append(record_id)
        if record_id in self.failing_ids:
            raise ConnectionError(f"read of gift {record_id} failed")
        return self.records.get(record_id)

    async def read_record_count(self) -> int:
        self._maybe_fail("giftCounter")
        return len(self.records)

    async def read_charities(self) -> RawCharities:
        self._maybe_fail("getCharities")
        active = [c for c in self.charities if c["active"]]
        return RawCharities(
            ids=[c["id"] for c in active],
            addresses=[c["address"] for c in active],
            names=[c["name"] for c in active],
            metadata_refs=[c["ref"] for c in active],
        )

    async def read_favorites(self, owner: str) -> RawFavorites:
        self._maybe_fail("getFavorites")
        entries = self.favorites.get(owner.lower(), [])
        return RawFavorites(
            recipients=[e["recipient"] for e in entries],
            names=[e["name"] for e in entries],
            gift_counts=[e["count"] for e in entries],
            total_amounts=[e["total"] for e in entries],
        )

    async def read_top_gifters(self) -> RawTopGifters:
        self._maybe_fail("getTopGifters")
        counts: Dict[str, int] = {}
        for record in self.records.values():
            counts[record.sender] = counts.get(record.sender, 0) + 1
        ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
        return RawTopGifters(addresses=[a for a, _ in ranked], counts=[c for _, c in ranked])

    async def read_allowance(self, owner: str, spender: str) -> int:
        self._maybe_fail("allowance")
        return self.allowances.get((owner.lower(), spender.lower()), 0)

    async def read_token_balance(self, owner: str) -> int:
        self._maybe_fail("balanceOf")
        return self.balances.get(owner.lower(), 0)

    async def read_owner(self) -> str:
        self._maybe_fail("owner")
        return self.owner

    # Writes

    async def submit_approval(self, spender: str, amount: int) -> TxReceipt:
        self.calls.append("approve")
        self._maybe_fail("approve")
        self.allowances[(self.account_address.lower(), spender.lower())] = amount
        return self._receipt()

    async def submit_gift(
        self,
        recipient: str,
        amount: int,
        gift_type_hash: bytes,
        message_hash: bytes,
        is_charity: bool
    ) -> TxReceipt:
        self.calls.append("sendGift")
        self._maybe_fail("sendGift")
        key = (self.account_address.lower(), self._gift_manager_address.lower())
        if self.allowances.get(key, 0) < amount:
            raise LedgerRevertError("execution reverted: insufficient allowance")
        self.allowances[key] -= amount

        record = self.add_gift(
            sender=self.account_address,
            recipient=recipient,
            amount=amount,
            gift_type_hash="0x" + bytes(gift_type_hash).hex(),
            message_hash="0x" + bytes(message_hash).hex(),
            is_charity=is_charity,
        )
        self._bump_favorite(recipient, amount)
        log = {
            "address": self._gift_manager_address,
            "topics": [
                GIFT_SENT_TOPIC,
                _topic(record.id),
                _topic(int(self.account_address, 16)),
                _topic(int(recipient, 16)),
            ],
            "data": "0x",
        }
        return self._receipt([log])

    async def submit_redeem(self, record_id: int) -> TxReceipt:
        self.calls.append("redeemGift")
        self._maybe_fail("redeemGift")
        record = self.records.get(record_id)
        if record is None:
            raise LedgerRevertError("execution reverted: gift does not exist")
        if record.recipient.lower() != self.account_address.lower():
            raise LedgerRevertError("execution reverted: not the recipient")
        if record.redeemed:
            raise LedgerRevertError("execution reverted: already redeemed")
        self.records[record_id] = record.with_redeemed()
        return self._receipt()

    async def submit_add_favorite(self, recipient: str, encoded_name: bytes) -> TxReceipt:
        self.calls.append("addFavorite")
        self._maybe_fail("addFavorite")
        entries = self.favorites.setdefault(self.account_address.lower(), [])
        if any(e["recipient"].lower() == recipient.lower() for e in entries):
            raise LedgerRevertError("execution reverted: already a favorite")
        entries.append({"recipient": recipient, "name": bytes(encoded_name), "count": 0, "total": 0})
        return self._receipt()

    async def submit_add_charity(self, charity_address: str, name: str, metadata_uri: str) -> TxReceipt:
        self.calls.append("addCharity")
        self._maybe_fail("addCharity")
        self._require_owner()
        self.add_charity(charity_address, name, metadata_uri)
        return self._receipt()

    async def submit_remove_charity(self, charity_id: int) -> TxReceipt:
        self.calls.append("removeCharity")
        self._maybe_fail("removeCharity")
        self._require_owner()
        for charity in self.charities:
            if charity["id"] == charity_id and charity["active"]:
                charity["active"] = False
                return self._receipt()
        raise LedgerRevertError("execution reverted: charity not active")

    def _require_owner(self) -> None:
        if self.account_address.lower() != self.owner.lower():
            raise LedgerRevertError("execution reverted: caller is not the owner")

    def _bump_favorite(self, recipient: str, amount: int) -> None:
        for entry in self.favorites.get(self.account_address.lower(), []):
            if entry["recipient"].lower() == recipient.lower():
                entry["count"] += 1
                entry["total"] += amount
