"""
Ledger clients for the GiftManager contract.
"""
from .base import LedgerClient, Signer, classify_error, VIEW_CHARITIES, VIEW_FAVORITES, VIEW_TOP_GIFTERS
from .stub import StubLedgerClient
from .web3_client import Web3LedgerClient

__all__ = [
    "LedgerClient",
    "Signer",
    "classify_error",
    "StubLedgerClient",
    "Web3LedgerClient",
    "VIEW_CHARITIES",
    "VIEW_FAVORITES",
    "VIEW_TOP_GIFTERS",
]
