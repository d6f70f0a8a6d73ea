"""
GiftManager client backed by web3.py.
"""
import logging
from typing import Dict, Any, Optional, List, Mapping

from eth_account import Account
from eth_account.signers.base import BaseAccount
from web3 import AsyncWeb3, AsyncHTTPProvider, Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError

from ..exceptions import InvalidInput, LedgerReadError, LedgerRevertError
from ..models import (
    GiftRecord, RawCharities, RawFavorites, RawTopGifters, TxReceipt, ZERO_ADDRESS
)
from .abi import ERC20_ABI, GIFT_MANAGER_ABI
from .base import LedgerClient, Signer

logger = logging.getLogger(__name__)

DEFAULT_GAS = 300000


def _to_jsonable(value: Any) -> Any:
    """Convert HexBytes/AttributeDict receipt values into plain JSON types."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, Mapping):
        return {key: _to_jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(item) for item in value]
    return value


class Web3LedgerClient(LedgerClient):
    """
    Ledger client for a deployed GiftManager and its ERC-20 token.

    To use this client, you'll need:
    - An RPC endpoint for the chain the contracts live on
    - The GiftManager address, and the token address for allowance checks
    - Either a private key or a custom signer for writes
    """

    def __init__(
        self,
        rpc_url: str,
        gift_manager_address: str,
        token_address: Optional[str] = None,
        priv_key: Optional[str] = None,
        signer: Optional[Signer] = None,
        receipt_timeout: float = 120,
        poll_interval: float = 0.5,
        w3: Optional[AsyncWeb3] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the client

        Args:
            rpc_url: JSON-RPC endpoint URL
            gift_manager_address: GiftManager contract address
            token_address: ERC-20 token used for gift amounts (required for allowances)
            priv_key: Private key used to sign writes (optional if signer provided)
            signer: Custom signer object (optional if priv_key provided)
            receipt_timeout: Seconds to wait for a transaction receipt
            poll_interval: Receipt polling interval in seconds
            w3: Preconfigured AsyncWeb3 instance (mainly for tests)
            logger: Optional logger instance

        Raises:
            InvalidInput: If an address is malformed
        """
        self.rpc_url = rpc_url
        self.logger = logger or logging.getLogger(__name__)
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval

        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))

        try:
            self._gift_manager_address = Web3.to_checksum_address(gift_manager_address)
            self._token_address = Web3.to_checksum_address(token_address) if token_address else None
        except (TypeError, ValueError) as e:
            raise InvalidInput(f"Invalid contract address: {e}")

        self.gift_manager = self.w3.eth.contract(address=self._gift_manager_address, abi=GIFT_MANAGER_ABI)
        self.token = (
            self.w3.eth.contract(address=self._token_address, abi=ERC20_ABI)
            if self._token_address else None
        )

        self.account: Optional[BaseAccount] = Account.from_key(priv_key) if priv_key else None
        self.signer = signer

    @property
    def account_address(self) -> str:
        """
        Get the signing address

        Raises:
            InvalidInput: If no account or signer is available
        """
        if self.account:
            return self.account.address
        if self.signer:
            return self.signer.address
        raise InvalidInput("No account or signer available")

    @property
    def gift_manager_address(self) -> str:
        return self._gift_manager_address

    @property
    def token_address(self) -> Optional[str]:
        return self._token_address

    @property
    def can_sign(self) -> bool:
        return self.account is not None or self.signer is not None

    def _require_token(self):
        if self.token is None:
            raise InvalidInput("Token address not provided during initialization")
        return self.token

    async def read_record(self, record_id: int) -> Optional[GiftRecord]:
        raw = await self.gift_manager.functions.gifts(record_id).call()
        sender, recipient, amount, type_hash, message_hash, is_charity, redeemed, timestamp = raw
        if sender == ZERO_ADDRESS:
            return None
        return GiftRecord(
            id=record_id,
            sender=sender,
            recipient=recipient,
            amount=amount,
            gift_type_hash=Web3.to_hex(type_hash),
            message_hash=Web3.to_hex(message_hash),
            is_charity=is_charity,
            redeemed=redeemed,
            timestamp=timestamp,
        )

    async def read_record_count(self) -> int:
        return int(await self.gift_manager.functions.giftCounter().call())

    async def read_charities(self) -> RawCharities:
        """
        Read the charity registry.

        Older deployments expose ``getCharities`` (bytes32 names and
        descriptions); newer ones expose ``getAllActiveCharities`` plus
        ``getCharity(id)`` with string name and metadata URI. The legacy view is
        tried first and the per-id view is used when it is missing.
        """
        try:
            ids, addresses, names, descriptions = await self.gift_manager.functions.getCharities().call()
            return RawCharities(
                ids=[int(i) for i in ids],
                addresses=list(addresses),
                names=list(names),
                metadata_refs=list(descriptions),
            )
        except (BadFunctionCallOutput, ContractLogicError) as e:
            self.logger.debug(f"getCharities unavailable ({e}); using getAllActiveCharities")

        try:
            active_ids = await self.gift_manager.functions.getAllActiveCharities().call()
            ids: List[int] = []
            addresses: List[str] = []
            names: List[Any] = []
            refs: List[Any] = []
            for charity_id in active_ids:
                address, name, metadata_uri, active = await self.gift_manager.functions.getCharity(charity_id).call()
                if not active:
                    continue
                ids.append(int(charity_id))
                addresses.append(address)
                names.append(name)
                refs.append(metadata_uri)
        except (BadFunctionCallOutput, ContractLogicError) as e:
            raise LedgerReadError(f"Charity registry unreadable: {e}")
        return RawCharities(ids=ids, addresses=addresses, names=names, metadata_refs=refs)

    async def read_favorites(self, owner: str) -> RawFavorites:
        recipients, names, counts, totals = await self.gift_manager.functions.getFavorites(
            Web3.to_checksum_address(owner)
        ).call()
        return RawFavorites(
            recipients=list(recipients),
            names=list(names),
            gift_counts=[int(c) for c in counts],
            total_amounts=[int(t) for t in totals],
        )

    async def read_top_gifters(self) -> RawTopGifters:
        addresses, counts = await self.gift_manager.functions.getTopGifters().call()
        return RawTopGifters(addresses=list(addresses), counts=[int(c) for c in counts])

    async def read_allowance(self, owner: str, spender: str) -> int:
        token = self._require_token()
        return int(await token.functions.allowance(
            Web3.to_checksum_address(owner),
            Web3.to_checksum_address(spender)
        ).call())

    async def read_token_balance(self, owner: str) -> int:
        token = self._require_token()
        return int(await token.functions.balanceOf(Web3.to_checksum_address(owner)).call())

    async def read_owner(self) -> str:
        return await self.gift_manager.functions.owner().call()

    async def submit_approval(self, spender: str, amount: int) -> TxReceipt:
        token = self._require_token()
        fn = token.functions.approve(Web3.to_checksum_address(spender), amount)
        return await self._transact(fn, "approve")

    async def submit_gift(
        self,
        recipient: str,
        amount: int,
        gift_type_hash: bytes,
        message_hash: bytes,
        is_charity: bool
    ) -> TxReceipt:
        fn = self.gift_manager.functions.sendGift(
            Web3.to_checksum_address(recipient),
            amount,
            gift_type_hash,
            message_hash,
            is_charity
        )
        return await self._transact(fn, "sendGift")

    async def submit_redeem(self, record_id: int) -> TxReceipt:
        return await self._transact(self.gift_manager.functions.redeemGift(record_id), "redeemGift")

    async def submit_add_favorite(self, recipient: str, encoded_name: bytes) -> TxReceipt:
        fn = self.gift_manager.functions.addFavorite(Web3.to_checksum_address(recipient), encoded_name)
        return await self._transact(fn, "addFavorite")

    async def submit_add_charity(self, charity_address: str, name: str, metadata_uri: str) -> TxReceipt:
        fn = self.gift_manager.functions.addCharity(Web3.to_checksum_address(charity_address), name, metadata_uri)
        return await self._transact(fn, "addCharity")

    async def submit_remove_charity(self, charity_id: int) -> TxReceipt:
        return await self._transact(self.gift_manager.functions.removeCharity(charity_id), "removeCharity")

    async def _transact(self, fn, label: str) -> TxReceipt:
        """
        Estimate, sign, send and confirm a contract call.

        Raises:
            UserRejectedError: If a custom signer declines
            LedgerRevertError: If the transaction is mined with status 0
            ContractLogicError: If gas estimation hits a revert
        """
        from_address = self.account_address
        nonce = await self.w3.eth.get_transaction_count(from_address)

        try:
            gas = int(await fn.estimate_gas({"from": from_address}) * 1.1)
            self.logger.debug(f"Estimated gas for {label}: {gas}")
        except ContractLogicError:
            raise
        except Exception as e:
            gas = DEFAULT_GAS
            self.logger.warning(f"Gas estimation for {label} failed, using default: {gas}. Error: {e}")

        tx = await fn.build_transaction({
            "from": from_address,
            "nonce": nonce,
            "gas": gas,
            "gasPrice": await self.w3.eth.gas_price,
        })

        if self.account:
            signed = self.account.sign_transaction(tx)
        else:
            signed = self.signer.sign_transaction(tx)

        tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        tx_hex = Web3.to_hex(tx_hash)
        self.logger.info(f"{label} transaction sent: {tx_hex}")

        receipt = await self.w3.eth.wait_for_transaction_receipt(
            tx_hash,
            timeout=self.receipt_timeout,
            poll_latency=self.poll_interval
        )
        converted = self._convert_receipt(receipt)
        if converted.status != 1:
            raise LedgerRevertError(f"{label} reverted in block {converted.block_number}", tx_hash=tx_hex)
        return converted

    def _convert_receipt(self, web3_receipt: Mapping[str, Any]) -> TxReceipt:
        """Convert a web3 receipt into the SDK's TxReceipt model"""
        receipt_dict: Dict[str, Any] = _to_jsonable(dict(web3_receipt))
        return TxReceipt.model_validate(receipt_dict)

    async def close(self) -> None:
        provider = self.w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()
