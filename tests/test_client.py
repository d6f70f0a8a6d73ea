"""
Tests for the GiftZapClient facade.
"""
from unittest.mock import AsyncMock

import httpx
import pytest

from giftzap_sdk.client import GiftZapClient
from giftzap_sdk.codec import cid_to_bytes32, encode_name, hash_tag
from giftzap_sdk.config import GiftZapConfig
from giftzap_sdk.exceptions import InvalidInput, LedgerReadError, NotRedeemable, RecordNotFound
from giftzap_sdk.ledger.stub import StubLedgerClient
from giftzap_sdk.ledger.web3_client import Web3LedgerClient
from giftzap_sdk.models import CharityMetadata, TxState

from tests.test_helpers import (
    ALICE, BOB, CHARITY, TEST_APP_URL, TEST_CONTRACT, TEST_GATEWAY, TEST_PINNER_URL, TEST_PRIV_KEY,
    TEST_RPC_URL, create_test_client, make_cid
)


def _config(**overrides):
    values = dict(
        rpc_url=TEST_RPC_URL,
        gift_manager_address=TEST_CONTRACT,
        ipfs_gateway=TEST_GATEWAY,
        fallback_gateways=[],
        pinata_api_url=TEST_PINNER_URL,
        app_base_url=TEST_APP_URL,
    )
    values.update(overrides)
    return GiftZapConfig(**values)


class TestFromConfig:

    async def test_builds_web3_ledger(self):
        client = GiftZapClient.from_config(_config(private_key=TEST_PRIV_KEY))
        try:
            assert isinstance(client.ledger, Web3LedgerClient)
            assert client.ledger.account is not None
            assert client.resolver.gateways == [TEST_GATEWAY]
            assert client.app_base_url == TEST_APP_URL
        finally:
            await client.resolver.aclose()

    async def test_requires_gift_manager(self):
        with pytest.raises(InvalidInput):
            GiftZapClient.from_config(_config(gift_manager_address=None))

    async def test_injected_ledger(self, stub_ledger, http_client):
        client = GiftZapClient.from_config(_config(scan_batch_size=4), ledger=stub_ledger, http_client=http_client)
        assert client.ledger is stub_ledger
        assert client.fetcher.batch_size == 4

    async def test_missing_token_fails_as_configuration_error(self):
        client = GiftZapClient.from_config(_config(private_key=TEST_PRIV_KEY, token_address=None))
        try:
            with pytest.raises(InvalidInput) as exc_info:
                await client.send_gift(BOB, 5)
            assert "Token address" in str(exc_info.value)
        finally:
            await client.resolver.aclose()


async def test_context_manager_closes_everything(stub_ledger):
    stub_ledger.close = AsyncMock()
    async with GiftZapClient.from_config(_config(), ledger=stub_ledger) as client:
        resolver = client.resolver
    assert resolver._http.is_closed
    stub_ledger.close.assert_awaited_once()


class TestReads:

    async def test_fetch_user_gifts_defaults_to_account(self, stub_ledger, http_client):
        me = stub_ledger.account_address
        stub_ledger.add_gift(sender=me, recipient=BOB, amount=1)
        stub_ledger.add_gift(sender=ALICE, recipient=BOB, amount=1)
        stub_ledger.add_gift(sender=ALICE, recipient=me, amount=1)
        client = create_test_client(stub_ledger, http_client=http_client)

        gifts = await client.fetch_user_gifts()

        assert sorted(g.id for g in gifts) == [1, 3]

    async def test_fetch_gift_not_found(self, stub_ledger, http_client):
        client = create_test_client(stub_ledger, http_client=http_client)
        with pytest.raises(RecordNotFound):
            await client.fetch_gift(1)

    async def test_resolve_gift_message(self, stub_ledger, http_client, respx_mock):
        cid = make_cid(12)
        respx_mock.get(f"{TEST_GATEWAY}/ipfs/{cid}").mock(
            return_value=httpx.Response(200, json={"giftType": "birthday", "message": "Happy day", "timestamp": 1})
        )
        record = stub_ledger.add_gift(
            sender=ALICE, recipient=BOB, amount=1, message_hash="0x" + cid_to_bytes32(cid).hex()
        )
        client = create_test_client(stub_ledger, http_client=http_client)

        metadata = await client.resolve_gift_message(record)

        assert metadata.message == "Happy day"
        assert metadata.gift_type == "birthday"

    async def test_unpublished_message_resolves_to_none(self, stub_ledger, http_client, respx_mock):
        record = stub_ledger.add_gift(sender=ALICE, recipient=BOB, amount=1, message_hash=hash_tag("secret"))
        respx_mock.route(host="gw.example.com").mock(return_value=httpx.Response(404))
        respx_mock.route(host="mirror.example.com").mock(return_value=httpx.Response(404))
        client = create_test_client(stub_ledger, http_client=http_client)

        assert await client.resolve_gift_message(record) is None

    async def test_list_views(self, stub_ledger, http_client):
        stub_ledger.add_charity(CHARITY, encode_name("Red Cross"))
        stub_ledger.add_gift(sender=ALICE, recipient=BOB, amount=1)
        client = create_test_client(stub_ledger, http_client=http_client)

        assert [c.name for c in await client.load_charities()] == ["Red Cross"]
        assert [g.address for g in await client.load_top_gifters()] == [ALICE]
        assert await client.load_favorites() == []


class TestWrites:

    async def test_send_and_share(self, stub_ledger, http_client):
        client = create_test_client(stub_ledger, http_client=http_client, pinata_jwt=None)

        tx = await client.send_gift(BOB, 25, gift_type="thank_you", message="Thanks!")

        assert tx.state == TxState.CONFIRMED
        assert client.redeem_url(tx) == f"{TEST_APP_URL}/redeem/1"
        assert client.redeem_url(7) == f"{TEST_APP_URL}/redeem/7"

    async def test_redeem_url_requires_base(self, stub_ledger, http_client):
        client = create_test_client(stub_ledger, http_client=http_client, app_base_url=None)
        with pytest.raises(InvalidInput):
            client.redeem_url(1)

    async def test_favorite_then_redeem(self, http_client):
        ledger = StubLedgerClient()
        ledger.add_gift(sender=ALICE, recipient=ledger.account_address, amount=9)
        client = create_test_client(ledger, http_client=http_client)

        await client.add_favorite(ALICE, "Alice")
        await client.redeem_gift(1)

        [favorite] = await client.load_favorites()
        assert favorite.name == "Alice"
        assert (await client.fetch_gift(1)).redeemed

    async def test_redeem_refused_for_someone_else(self, stub_ledger, http_client):
        stub_ledger.add_gift(sender=ALICE, recipient=BOB, amount=9)
        client = create_test_client(stub_ledger, http_client=http_client)

        with pytest.raises(NotRedeemable):
            await client.redeem_gift(1)
        assert stub_ledger.calls == []

    async def test_registered_charity_appears_in_list(self, stub_ledger, http_client, respx_mock):
        cid = make_cid(30)
        respx_mock.post(f"{TEST_PINNER_URL}/pinning/pinJSONToIPFS").mock(
            return_value=httpx.Response(200, json={"IpfsHash": cid})
        )
        client = create_test_client(stub_ledger, http_client=http_client)

        assert await client.is_registry_owner()
        await client.add_charity(CHARITY, CharityMetadata(name="Red Cross", description="Aid"))

        # Published documents are served from the resolver cache
        [charity] = await client.load_charities()
        assert (charity.name, charity.description) == ("Red Cross", "Aid")

        await client.remove_charity(charity.id)
        assert await client.load_charities() == []


class TestBalance:

    async def test_defaults_to_signing_account(self, stub_ledger, http_client):
        stub_ledger.balances[stub_ledger.account_address.lower()] = 1_000
        client = create_test_client(stub_ledger, http_client=http_client)

        assert await client.token_balance() == 1_000
        assert await client.token_balance(BOB) == 0

    async def test_read_failure_is_wrapped(self, stub_ledger, http_client):
        stub_ledger.inject_failure("balanceOf", ConnectionError("rpc down"))
        client = create_test_client(stub_ledger, http_client=http_client)

        with pytest.raises(LedgerReadError):
            await client.token_balance()
