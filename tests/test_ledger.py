"""
Tests for ledger clients and error classification.
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from web3 import Web3
from web3.exceptions import BadFunctionCallOutput, ContractLogicError, TimeExhausted

from giftzap_sdk.codec import encode_name
from giftzap_sdk.exceptions import InvalidInput, LedgerReadError, LedgerRevertError, UserRejectedError
from giftzap_sdk.ledger import StubLedgerClient, Web3LedgerClient, classify_error
from giftzap_sdk.ledger.abi import GIFT_SENT_TOPIC
from giftzap_sdk.ledger.base import VIEW_CHARITIES
from giftzap_sdk.models import TxErrorClass, TxReceipt, ZERO_ADDRESS

from tests.test_helpers import ALICE, BOB, CHARITY, TEST_CONTRACT, TEST_RPC_URL, TEST_TOKEN


class RpcError(Exception):
    """Provider error carrying a JSON-RPC error code."""

    def __init__(self, message, code):
        super().__init__(message)
        self.code = code


@pytest.mark.parametrize("exc, expected", [
    (UserRejectedError("declined"), TxErrorClass.USER_CANCELLED),
    (RpcError("request rejected", 4001), TxErrorClass.USER_CANCELLED),
    (ValueError({"code": 4001, "message": "rejected"}), TxErrorClass.USER_CANCELLED),
    (Exception("User rejected the request."), TxErrorClass.USER_CANCELLED),
    (LedgerRevertError("reverted"), TxErrorClass.LEDGER_REVERT),
    (ContractLogicError("execution reverted: not recipient"), TxErrorClass.LEDGER_REVERT),
    (ValueError("execution reverted"), TxErrorClass.LEDGER_REVERT),
    (RpcError("insufficient funds for gas", -32000), TxErrorClass.LEDGER_REVERT),
    (asyncio.TimeoutError(), TxErrorClass.NETWORK_ERROR),
    (TimeExhausted("no receipt"), TxErrorClass.NETWORK_ERROR),
    (ConnectionError("refused"), TxErrorClass.NETWORK_ERROR),
    (httpx.ConnectError("dns"), TxErrorClass.NETWORK_ERROR),
    (RuntimeError("something odd"), TxErrorClass.NETWORK_ERROR),
])
def test_classify_error(exc, expected):
    assert classify_error(exc) == expected


def test_local_refusal_is_unclassified():
    assert classify_error(InvalidInput("Token address not provided during initialization")) is None


def _gift_sent_log(address, gift_id):
    return {"address": address, "topics": [GIFT_SENT_TOPIC, "0x" + format(gift_id, "064x")], "data": "0x"}


class TestExtractRecordId:

    def _receipt(self, logs):
        return TxReceipt(tx_hash="0x01", block_number=1, status=1, logs=logs)

    def test_reads_gift_sent_topic(self, stub_ledger):
        receipt = self._receipt([
            {"address": "0xdead", "topics": ["0x" + "11" * 32], "data": "0x"},
            _gift_sent_log(stub_ledger.gift_manager_address.upper().replace("0X", "0x"), 42),
        ])
        assert stub_ledger.extract_record_id(receipt) == 42

    def test_ignores_other_contracts(self, stub_ledger):
        receipt = self._receipt([_gift_sent_log(TEST_CONTRACT, 42)])
        assert stub_ledger.extract_record_id(receipt) is None

    def test_no_logs(self, stub_ledger):
        assert stub_ledger.extract_record_id(self._receipt([])) is None


class TestStubLedger:

    async def test_read_list_dispatch(self, stub_ledger):
        stub_ledger.add_charity(CHARITY, encode_name("Red Cross"))
        raw = await stub_ledger.read_list(VIEW_CHARITIES)
        assert raw.ids == [1]
        with pytest.raises(InvalidInput):
            await stub_ledger.read_list("unknown")

    async def test_gift_requires_allowance(self, stub_ledger):
        with pytest.raises(LedgerRevertError):
            await stub_ledger.submit_gift(BOB, 5, b"\x00" * 32, b"\x00" * 32, False)

    async def test_gift_updates_favorite_aggregates(self, stub_ledger):
        await stub_ledger.submit_add_favorite(BOB, encode_name("Bob"))
        await stub_ledger.submit_approval(stub_ledger.gift_manager_address, 30)
        await stub_ledger.submit_gift(BOB, 10, b"\x00" * 32, b"\x00" * 32, False)
        await stub_ledger.submit_gift(BOB, 20, b"\x00" * 32, b"\x00" * 32, False)

        raw = await stub_ledger.read_favorites(stub_ledger.account_address)

        assert raw.gift_counts == [2]
        assert raw.total_amounts == [30]

    async def test_only_recipient_can_redeem(self, stub_ledger):
        stub_ledger.add_gift(sender=ALICE, recipient=BOB, amount=5)
        with pytest.raises(LedgerRevertError):
            await stub_ledger.submit_redeem(1)

    async def test_token_balance(self, stub_ledger):
        stub_ledger.balances[ALICE.lower()] = 500
        assert await stub_ledger.read_token_balance(ALICE) == 500
        assert await stub_ledger.read_token_balance(BOB) == 0

    async def test_charity_registry_is_owner_only(self, clock):
        ledger = StubLedgerClient(owner=ALICE, clock=clock)
        assert await ledger.read_owner() == ALICE
        with pytest.raises(LedgerRevertError):
            await ledger.submit_add_charity(CHARITY, "Red Cross", "QmAbc")

    async def test_removed_charity_leaves_the_view(self, stub_ledger):
        await stub_ledger.submit_add_charity(CHARITY, "Red Cross", "QmAbc")
        await stub_ledger.submit_add_charity(BOB, "Shelter", "")
        await stub_ledger.submit_remove_charity(1)

        raw = await stub_ledger.read_charities()

        assert raw.ids == [2]
        assert stub_ledger.calls == ["addCharity", "addCharity", "removeCharity"]

    async def test_read_only_stub(self, clock):
        ledger = StubLedgerClient(account=None, clock=clock)
        assert not ledger.can_sign
        with pytest.raises(InvalidInput):
            ledger.account_address
        with pytest.raises(InvalidInput):
            await ledger.submit_add_favorite(BOB, encode_name("Bob"))

    async def test_duplicate_favorite_reverts(self, stub_ledger):
        await stub_ledger.submit_add_favorite(BOB, encode_name("Bob"))
        with pytest.raises(LedgerRevertError):
            await stub_ledger.submit_add_favorite(BOB.upper().replace("0X", "0x"), encode_name("Bob"))


def _call(value=None, side_effect=None):
    """Contract function mock whose ``.call()`` is awaitable."""
    fn = MagicMock()
    fn.call = AsyncMock(return_value=value, side_effect=side_effect)
    return fn


class _Awaitable:
    """Property-style awaitable such as ``w3.eth.gas_price``."""

    def __init__(self, value):
        self.value = value

    def __await__(self):
        return asyncio.sleep(0, result=self.value).__await__()


@pytest.fixture
def contracts():
    manager, token = MagicMock(), MagicMock()
    w3 = MagicMock()
    w3.eth.contract.side_effect = [manager, token]
    return w3, manager, token


@pytest.fixture
def signer():
    signer = MagicMock()
    signer.address = ALICE
    signer.sign_transaction.return_value = MagicMock(raw_transaction=b"signed")
    return signer


@pytest.fixture
def web3_client(contracts, signer):
    w3, _, _ = contracts
    return Web3LedgerClient(
        rpc_url=TEST_RPC_URL,
        gift_manager_address=TEST_CONTRACT,
        token_address=TEST_TOKEN,
        signer=signer,
        w3=w3,
    )


class TestWeb3LedgerClient:

    def test_invalid_address(self, contracts):
        w3, _, _ = contracts
        with pytest.raises(InvalidInput):
            Web3LedgerClient(TEST_RPC_URL, "not-an-address", w3=w3)

    def test_account_address_from_signer(self, web3_client):
        assert web3_client.account_address == ALICE
        assert web3_client.gift_manager_address == Web3.to_checksum_address(TEST_CONTRACT)
        assert web3_client.token_address == Web3.to_checksum_address(TEST_TOKEN)
        assert web3_client.can_sign

    def test_no_signer(self, contracts):
        w3, _, _ = contracts
        client = Web3LedgerClient(TEST_RPC_URL, TEST_CONTRACT, w3=w3)
        assert not client.can_sign
        assert client.token_address is None
        with pytest.raises(InvalidInput):
            client.account_address

    async def test_read_record(self, web3_client, contracts):
        _, manager, _ = contracts
        manager.functions.gifts.return_value = _call(
            (ALICE, BOB, 50, b"\x01" * 32, b"\x02" * 32, False, True, 1_700_000_000)
        )

        record = await web3_client.read_record(3)

        manager.functions.gifts.assert_called_once_with(3)
        assert record.id == 3
        assert record.gift_type_hash == "0x" + "01" * 32
        assert record.redeemed

    async def test_read_record_zero_sender_is_absent(self, web3_client, contracts):
        _, manager, _ = contracts
        manager.functions.gifts.return_value = _call(
            (ZERO_ADDRESS, ZERO_ADDRESS, 0, b"\x00" * 32, b"\x00" * 32, False, False, 0)
        )
        assert await web3_client.read_record(99) is None

    async def test_read_charities_legacy_view(self, web3_client, contracts):
        _, manager, _ = contracts
        manager.functions.getCharities.return_value = _call(
            ([1], [CHARITY], [encode_name("Red Cross")], [b"\x00" * 32])
        )

        raw = await web3_client.read_charities()

        assert raw.ids == [1]
        assert raw.addresses == [CHARITY]

    async def test_read_charities_falls_back_to_active_list(self, web3_client, contracts):
        _, manager, _ = contracts
        manager.functions.getCharities.return_value = _call(side_effect=BadFunctionCallOutput("missing"))
        manager.functions.getAllActiveCharities.return_value = _call([1, 2])
        details = {
            1: _call((CHARITY, "Red Cross", "ipfs://QmAbc", True)),
            2: _call((BOB, "Closed", "", False)),
        }
        manager.functions.getCharity.side_effect = lambda charity_id: details[charity_id]

        raw = await web3_client.read_charities()

        assert raw.ids == [1]
        assert raw.names == ["Red Cross"]
        assert raw.metadata_refs == ["ipfs://QmAbc"]

    async def test_read_charities_both_views_fail(self, web3_client, contracts):
        _, manager, _ = contracts
        manager.functions.getCharities.return_value = _call(side_effect=BadFunctionCallOutput("missing"))
        manager.functions.getAllActiveCharities.return_value = _call(side_effect=ContractLogicError("revert"))

        with pytest.raises(LedgerReadError):
            await web3_client.read_charities()

    async def test_read_allowance_requires_token(self, contracts):
        w3, _, _ = contracts
        client = Web3LedgerClient(TEST_RPC_URL, TEST_CONTRACT, w3=w3)
        with pytest.raises(InvalidInput):
            await client.read_allowance(ALICE, TEST_CONTRACT)

    async def test_read_allowance(self, web3_client, contracts):
        _, _, token = contracts
        token.functions.allowance.return_value = _call(75)
        assert await web3_client.read_allowance(ALICE, TEST_CONTRACT) == 75

    async def test_read_token_balance(self, web3_client, contracts):
        _, _, token = contracts
        token.functions.balanceOf.return_value = _call(1_000)
        assert await web3_client.read_token_balance(BOB) == 1_000
        token.functions.balanceOf.assert_called_once_with(Web3.to_checksum_address(BOB))

    async def test_read_owner(self, web3_client, contracts):
        _, manager, _ = contracts
        manager.functions.owner.return_value = _call(ALICE)
        assert await web3_client.read_owner() == ALICE

    def _prepare_send(self, w3, fn, receipt):
        w3.eth.get_transaction_count = AsyncMock(return_value=7)
        w3.eth.gas_price = _Awaitable(1_000_000_000)
        w3.eth.send_raw_transaction = AsyncMock(return_value=b"\xab" * 32)
        w3.eth.wait_for_transaction_receipt = AsyncMock(return_value=receipt)
        fn.estimate_gas = AsyncMock(return_value=100_000)
        fn.build_transaction = AsyncMock(side_effect=lambda params: {**params, "to": TEST_CONTRACT, "data": "0x"})

    async def test_submit_gift_signs_and_confirms(self, web3_client, contracts, signer):
        w3, manager, _ = contracts
        fn = MagicMock()
        manager.functions.sendGift.return_value = fn
        receipt = {
            "transactionHash": b"\xab" * 32,
            "blockNumber": 10,
            "status": 1,
            "gasUsed": 90_000,
            "from": ALICE,
            "to": TEST_CONTRACT,
            "logs": [{
                "address": Web3.to_checksum_address(TEST_CONTRACT),
                "topics": [bytes.fromhex(GIFT_SENT_TOPIC[2:]), (5).to_bytes(32, "big")],
                "data": b"",
            }],
        }
        self._prepare_send(w3, fn, receipt)

        result = await web3_client.submit_gift(BOB, 50, b"\x01" * 32, b"\x02" * 32, True)

        built = fn.build_transaction.call_args[0][0]
        assert built["nonce"] == 7
        assert built["gas"] == 110_000
        signer.sign_transaction.assert_called_once()
        w3.eth.send_raw_transaction.assert_awaited_once_with(b"signed")
        assert result.tx_hash == "0x" + "ab" * 32
        assert web3_client.extract_record_id(result) == 5

    async def test_submit_add_charity(self, web3_client, contracts):
        w3, manager, _ = contracts
        fn = MagicMock()
        manager.functions.addCharity.return_value = fn
        self._prepare_send(w3, fn, {"transactionHash": b"\x03" * 32, "blockNumber": 4, "status": 1})

        await web3_client.submit_add_charity(CHARITY, "Red Cross", "QmAbc")

        manager.functions.addCharity.assert_called_once_with(
            Web3.to_checksum_address(CHARITY), "Red Cross", "QmAbc"
        )

    async def test_gas_estimation_fallback(self, web3_client, contracts):
        w3, _, token = contracts
        fn = MagicMock()
        token.functions.approve.return_value = fn
        self._prepare_send(w3, fn, {"transactionHash": b"\x01" * 32, "blockNumber": 1, "status": 1})
        fn.estimate_gas = AsyncMock(side_effect=ValueError("estimation unavailable"))

        await web3_client.submit_approval(TEST_CONTRACT, 10)

        assert fn.build_transaction.call_args[0][0]["gas"] == 300_000

    async def test_estimation_revert_propagates(self, web3_client, contracts):
        w3, manager, _ = contracts
        fn = MagicMock()
        manager.functions.redeemGift.return_value = fn
        self._prepare_send(w3, fn, {})
        fn.estimate_gas = AsyncMock(side_effect=ContractLogicError("execution reverted: already redeemed"))

        with pytest.raises(ContractLogicError):
            await web3_client.submit_redeem(1)
        w3.eth.send_raw_transaction.assert_not_called()

    async def test_failed_receipt_raises_revert(self, web3_client, contracts):
        w3, manager, _ = contracts
        fn = MagicMock()
        manager.functions.addFavorite.return_value = fn
        self._prepare_send(w3, fn, {"transactionHash": b"\x02" * 32, "blockNumber": 3, "status": 0})

        with pytest.raises(LedgerRevertError) as exc_info:
            await web3_client.submit_add_favorite(BOB, encode_name("Bob"))
        assert exc_info.value.tx_hash == "0x" + "ab" * 32

    async def test_close_disconnects_provider(self, web3_client, contracts):
        w3, _, _ = contracts
        w3.provider.disconnect = AsyncMock()
        await web3_client.close()
        w3.provider.disconnect.assert_awaited_once()


def test_stub_is_a_ledger_client():
    from giftzap_sdk.ledger.base import LedgerClient
    assert isinstance(StubLedgerClient(), LedgerClient)
