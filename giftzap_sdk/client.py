"""
High-level client for the GiftZap GiftManager.
"""
import logging
from typing import List, Optional, Union

import httpx

from .aggregator import ListAggregator
from .codec import bytes32_to_cid
from .config import GiftZapConfig
from .exceptions import InvalidInput, LedgerReadError, MetadataUnavailable
from .fetcher import LedgerRecordFetcher
from .ledger.base import LedgerClient, Signer
from .ledger.web3_client import Web3LedgerClient
from .metadata import MetadataResolver
from .models import (
    CharityEntry, CharityMetadata, FavoriteEntry, GiftMetadata, GiftRecord, PendingTransaction, TopGifter,
    TxReceipt
)
from .orchestrator import DEFAULT_GIFT_TYPE, Observer, TransactionOrchestrator, build_redeem_url

logger = logging.getLogger(__name__)


class GiftZapClient:
    """
    Client for sending, browsing and redeeming GiftZap gifts.

    The client owns nothing global: every collaborator is passed in or built
    by :meth:`from_config`, and :meth:`aclose` releases them. Use it as an
    async context manager::

        async with GiftZapClient.from_config(GiftZapConfig.from_env()) as client:
            gifts = await client.fetch_user_gifts()
    """

    def __init__(
        self,
        ledger: LedgerClient,
        resolver: MetadataResolver,
        batch_size: int = 10,
        read_timeout: Optional[float] = None,
        app_base_url: Optional[str] = None,
        observer: Optional[Observer] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the client

        Args:
            ledger: Ledger client for reads and writes
            resolver: IPFS metadata resolver
            batch_size: Concurrent reads per batch when scanning gifts
            read_timeout: Per-read timeout in seconds while scanning
            app_base_url: Base URL used to build redeem links
            observer: Callback receiving every gift transaction snapshot
            logger: Optional logger instance
        """
        self.logger = logger or logging.getLogger(__name__)
        self.ledger = ledger
        self.resolver = resolver
        self.app_base_url = app_base_url
        self.fetcher = LedgerRecordFetcher(ledger, batch_size=batch_size, read_timeout=read_timeout, logger=self.logger)
        self.aggregator = ListAggregator(resolver=resolver, ledger=ledger, concurrency=batch_size, logger=self.logger)
        self.orchestrator = TransactionOrchestrator(ledger, resolver=resolver, observer=observer, logger=self.logger)

    @classmethod
    def from_config(
        cls,
        config: GiftZapConfig,
        ledger: Optional[LedgerClient] = None,
        signer: Optional[Signer] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        observer: Optional[Observer] = None,
        logger: Optional[logging.Logger] = None
    ) -> "GiftZapClient":
        """
        Build a client from a configuration.

        Args:
            config: Validated configuration
            ledger: Ledger client to use instead of a web3-backed one
            signer: Custom signer used when no private key is configured
            http_client: Shared HTTP client for the resolver
            observer: Callback receiving every gift transaction snapshot
            logger: Optional logger instance

        Raises:
            InvalidInput: If no GiftManager address is configured
        """
        if ledger is None:
            if not config.gift_manager_address:
                raise InvalidInput(f"No GiftManager address configured for network {config.network}")
            ledger = Web3LedgerClient(
                rpc_url=config.rpc_url,
                gift_manager_address=config.gift_manager_address,
                token_address=config.token_address,
                priv_key=config.private_key,
                signer=signer,
                logger=logger,
            )
        resolver = MetadataResolver(
            primary_gateway=config.ipfs_gateway,
            fallback_gateways=config.fallback_gateways,
            pinata_jwt=config.pinata_jwt,
            pinata_api_url=config.pinata_api_url,
            http_client=http_client,
            timeout=config.http_timeout,
            logger=logger,
        )
        return cls(
            ledger,
            resolver,
            batch_size=config.scan_batch_size,
            read_timeout=config.read_timeout,
            app_base_url=config.app_base_url,
            observer=observer,
            logger=logger,
        )

    async def __aenter__(self) -> "GiftZapClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the resolver's HTTP client and the ledger connection."""
        try:
            await self.resolver.aclose()
        finally:
            await self.ledger.close()

    # Reads

    async def fetch_user_gifts(self, address: Optional[str] = None) -> List[GiftRecord]:
        """Gifts sent or received by ``address`` (default: the signing account), newest first."""
        return await self.fetcher.fetch_user_gifts(address or self.ledger.account_address)

    async def fetch_gift(self, record_id: int) -> GiftRecord:
        return await self.fetcher.fetch_gift(record_id)

    async def resolve_gift_message(self, record: GiftRecord) -> Optional[GiftMetadata]:
        """
        Fetch the published message document for a gift.

        Messages sent with publishing disabled only store a keccak256 hash,
        which no gateway can serve; those resolve to ``None``.
        """
        try:
            cid = bytes32_to_cid(record.message_hash)
        except InvalidInput:
            return None
        try:
            return await self.resolver.fetch_gift_metadata(cid)
        except MetadataUnavailable:
            self.logger.debug(f"No published message for gift {record.id}")
            return None

    async def load_charities(self) -> List[CharityEntry]:
        return await self.aggregator.load_charities()

    async def load_favorites(self, owner: Optional[str] = None) -> List[FavoriteEntry]:
        return await self.aggregator.load_favorites(owner or self.ledger.account_address)

    async def load_top_gifters(self) -> List[TopGifter]:
        return await self.aggregator.load_top_gifters()

    async def token_balance(self, address: Optional[str] = None) -> int:
        """
        Token balance of ``address`` (default: the signing account) in base units.

        Raises:
            InvalidInput: If no token address is configured
            LedgerReadError: If the balance cannot be read
        """
        address = address or self.ledger.account_address
        try:
            return await self.ledger.read_token_balance(address)
        except InvalidInput:
            raise
        except Exception as e:
            self.logger.error(f"Token balance of {address} unreadable: {e}")
            raise LedgerReadError(f"Failed to read token balance: {e}") from e

    async def is_registry_owner(self, address: Optional[str] = None) -> bool:
        return await self.orchestrator.is_registry_owner(address)

    # Writes

    async def send_gift(
        self,
        recipient: str,
        amount: int,
        gift_type: str = DEFAULT_GIFT_TYPE,
        message: str = "",
        is_charity: bool = False,
        publish_message: bool = True
    ) -> PendingTransaction:
        """See :meth:`TransactionOrchestrator.send_gift`."""
        return await self.orchestrator.send_gift(
            recipient, amount, gift_type=gift_type, message=message,
            is_charity=is_charity, publish_message=publish_message
        )

    async def check_redeemable(self, record_id: int) -> GiftRecord:
        return await self.orchestrator.check_redeemable(record_id)

    async def redeem_gift(self, record_id: int, check: bool = True) -> TxReceipt:
        return await self.orchestrator.redeem_gift(record_id, check=check)

    async def add_favorite(self, recipient: str, name: str) -> TxReceipt:
        return await self.orchestrator.add_favorite(recipient, name)

    async def add_charity(self, charity_address: str, metadata: CharityMetadata) -> TxReceipt:
        """See :meth:`TransactionOrchestrator.add_charity`."""
        return await self.orchestrator.add_charity(charity_address, metadata)

    async def remove_charity(self, charity_id: int) -> TxReceipt:
        return await self.orchestrator.remove_charity(charity_id)

    def redeem_url(self, gift: Union[PendingTransaction, int]) -> str:
        """
        Shareable redeem link for a sent gift or gift id.

        Raises:
            InvalidInput: If no app base URL is configured or the id is unknown
        """
        if not self.app_base_url:
            raise InvalidInput("app_base_url not configured")
        record_id = gift.best_record_id if isinstance(gift, PendingTransaction) else gift
        return build_redeem_url(self.app_base_url, record_id)
