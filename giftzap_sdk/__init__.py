"""
GiftZap SDK - send, browse and redeem token gifts on the GiftManager contract.
"""
from .version import __version__
from .aggregator import ListAggregator, sort_charities, sort_favorites
from .client import GiftZapClient
from .codec import bytes32_to_cid, cid_to_bytes32, decode_name, encode_name, hash_tag
from .config import GiftZapConfig, NetworkConfig
from .exceptions import (
    GiftZapError, InvalidInput, InvalidTransition, LedgerError, LedgerReadError, LedgerRevertError,
    MetadataUnavailable, NotRedeemable, NotRegistryOwner, PublishFailed, RecordNotFound, TransactionFailed,
    UserRejectedError
)
from .fetcher import LedgerRecordFetcher, ScanGuard
from .ledger import LedgerClient, StubLedgerClient, Web3LedgerClient, classify_error
from .metadata import MetadataResolver
from .models import (
    CharityEntry, CharityMetadata, FavoriteEntry, GiftMetadata, GiftRecord, PendingTransaction,
    TopGifter, TxErrorClass, TxReceipt, TxState
)
from .orchestrator import TransactionOrchestrator, advance, build_redeem_url

__all__ = [
    "GiftZapClient",
    "GiftZapConfig",
    "NetworkConfig",
    "LedgerClient",
    "StubLedgerClient",
    "Web3LedgerClient",
    "classify_error",
    "MetadataResolver",
    "LedgerRecordFetcher",
    "ScanGuard",
    "ListAggregator",
    "sort_charities",
    "sort_favorites",
    "TransactionOrchestrator",
    "advance",
    "build_redeem_url",
    "encode_name",
    "decode_name",
    "hash_tag",
    "cid_to_bytes32",
    "bytes32_to_cid",
    "GiftRecord",
    "FavoriteEntry",
    "CharityEntry",
    "TopGifter",
    "CharityMetadata",
    "GiftMetadata",
    "TxReceipt",
    "PendingTransaction",
    "TxState",
    "TxErrorClass",
    "GiftZapError",
    "InvalidInput",
    "MetadataUnavailable",
    "NotRedeemable",
    "NotRegistryOwner",
    "PublishFailed",
    "LedgerError",
    "LedgerReadError",
    "RecordNotFound",
    "UserRejectedError",
    "LedgerRevertError",
    "InvalidTransition",
    "TransactionFailed",
    "__version__",
]
