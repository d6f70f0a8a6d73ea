"""
Content-addressed metadata resolution over IPFS.

Documents are read through an ordered list of HTTP gateways (primary first,
then read-only mirrors) and published through a single Pinata endpoint.
"""
import asyncio
import copy
import logging
import re
import time
from enum import Enum
from typing import Dict, Any, Optional, List, NamedTuple, Union

import httpx
from cachetools import LRUCache
from pydantic import BaseModel, ValidationError

from ._rate_limited_log import rate_limited_log
from .codec import bytes32_to_cid, FIELD_SIZE
from .config import DEFAULT_FALLBACK_GATEWAYS, DEFAULT_PINATA_API_URL
from .exceptions import MetadataUnavailable, PublishFailed
from .models import CharityMetadata, GiftMetadata

logger = logging.getLogger(__name__)

Document = Dict[str, Any]


class RefKind(str, Enum):
    """How a ledger metadata field should be interpreted."""
    EMPTY = "empty"
    CONTENT = "content"  # an IPFS address to resolve
    INLINE = "inline"    # the document or text itself, hex-encoded on chain


class MetadataRef(NamedTuple):
    kind: RefKind
    value: str


def strip_scheme(address: str) -> str:
    """
    Reduce any IPFS reference form to ``<cid>[/path]``.

    Accepts ``ipfs://<cid>``, ``/ipfs/<cid>``, ``ipfs/<cid>``, gateway URLs
    such as ``https://host/ipfs/<cid>`` and bare CIDs.
    """
    ref = (address or "").strip()
    if "://" in ref:
        scheme, rest = ref.split("://", 1)
        if scheme.lower() == "ipfs":
            ref = rest
        else:
            marker = rest.find("/ipfs/")
            ref = rest[marker + len("/ipfs/"):] if marker >= 0 else ""
    ref = ref.lstrip("/")
    if ref.startswith("ipfs/"):
        ref = ref[len("ipfs/"):]
    return ref


def parse_metadata_ref(raw: Union[str, bytes, None]) -> MetadataRef:
    """
    Classify a charity metadata field.

    Two schemas exist on chain: the current one stores an IPFS address
    string, the legacy one stores hex bytes that are either inline UTF-8
    text (often JSON) or a 32-byte CIDv0 digest. Undecodable values are
    reported as ``EMPTY`` so callers move on to the next fallback.
    """
    if raw is None:
        return MetadataRef(RefKind.EMPTY, "")
    if isinstance(raw, (bytes, bytearray)):
        raw = "0x" + bytes(raw).hex()

    text = raw.strip()
    if not text:
        return MetadataRef(RefKind.EMPTY, "")

    if not text.startswith(("0x", "0X")):
        if text.startswith("{"):
            return MetadataRef(RefKind.INLINE, text)
        stripped = strip_scheme(text)
        return MetadataRef(RefKind.CONTENT, stripped) if stripped else MetadataRef(RefKind.EMPTY, "")

    try:
        data = bytes.fromhex(text[2:])
    except ValueError:
        logger.debug(f"Metadata field is not valid hex: {text!r}")
        return MetadataRef(RefKind.EMPTY, "")
    if not any(data):
        return MetadataRef(RefKind.EMPTY, "")

    try:
        decoded = data.replace(b"\x00", b"").decode("utf-8").strip()
    except UnicodeDecodeError:
        decoded = ""

    if decoded and decoded.isprintable():
        if decoded.startswith(("ipfs://", "Qm", "bafy", "/ipfs/")):
            return MetadataRef(RefKind.CONTENT, strip_scheme(decoded))
        return MetadataRef(RefKind.INLINE, decoded)
    if len(data) == FIELD_SIZE:
        return MetadataRef(RefKind.CONTENT, bytes32_to_cid(data))
    return MetadataRef(RefKind.EMPTY, "")


def _slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


class MetadataResolver:
    """
    Resolve and publish JSON documents on IPFS.

    Successful resolutions are memoised per instance; call
    :meth:`clear_cache` (or build a new resolver) when a view is refreshed.
    Failures are never cached.
    """

    def __init__(
        self,
        primary_gateway: str,
        fallback_gateways: Optional[List[str]] = None,
        pinata_jwt: Optional[str] = None,
        pinata_api_url: str = DEFAULT_PINATA_API_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
        retry_count: int = 2,
        cache_size: int = 512,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the resolver

        Args:
            primary_gateway: Gateway tried first (e.g. "https://gateway.pinata.cloud")
            fallback_gateways: Mirrors tried in order after the primary
            pinata_jwt: Bearer token for the pinning API; publishing fails without it
            pinata_api_url: Base URL of the pinning API
            http_client: Shared client; one is created (and owned) when omitted
            timeout: Per-request timeout in seconds for an owned client
            retry_count: Connection retries for an owned client
            cache_size: Maximum number of memoised documents
            logger: Optional logger instance
        """
        if fallback_gateways is None:
            fallback_gateways = DEFAULT_FALLBACK_GATEWAYS

        gateways: List[str] = []
        for url in [primary_gateway, *fallback_gateways]:
            url = url.rstrip("/")
            if url and url not in gateways:
                gateways.append(url)
        self.gateways = gateways
        self.pinata_api_url = pinata_api_url.rstrip("/")
        self._pinata_jwt = pinata_jwt
        self.logger = logger or logging.getLogger(__name__)

        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=timeout,
            transport=httpx.AsyncHTTPTransport(retries=retry_count),
        )
        self._cache: LRUCache = LRUCache(maxsize=cache_size)
        self._inflight: Dict[str, "asyncio.Future[Document]"] = {}

    async def __aenter__(self) -> "MetadataResolver":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this resolver created it."""
        if self._owns_client:
            await self._http.aclose()

    def clear_cache(self) -> None:
        self._cache.clear()

    async def resolve(self, address: str) -> Document:
        """
        Fetch and parse the JSON document at ``address``.

        Args:
            address: CID, ``ipfs://`` URI or gateway URL

        Returns:
            Parsed JSON object

        Raises:
            MetadataUnavailable: If no gateway returned a JSON object
        """
        key = strip_scheme(address)
        if not key:
            raise MetadataUnavailable(address, 0)

        # Callers get their own copy; the cached document stays untouched
        return copy.deepcopy(await self._shared(address, key))

    async def _shared(self, address: str, key: str) -> Document:
        if key in self._cache:
            return self._cache[key]

        # Concurrent lookups of the same address share one fetch
        pending = self._inflight.get(key)
        if pending is not None:
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._fetch(address, key))
        self._inflight[key] = task
        try:
            document = await asyncio.shield(task)
        finally:
            self._inflight.pop(key, None)
        self._cache[key] = document
        return document

    async def _fetch(self, address: str, key: str) -> Document:
        attempts = 0
        for gateway in self.gateways:
            url = f"{gateway}/ipfs/{key}"
            attempts += 1
            try:
                response = await self._http.get(url, headers={"Accept": "application/json"})
                response.raise_for_status()
                document = response.json()
            except httpx.HTTPError as e:
                rate_limited_log(
                    f"IPFS gateway {gateway} failed: {type(e).__name__}",
                    logger_instance=self.logger
                )
                continue
            except httpx.InvalidURL as e:
                self.logger.debug(f"Cannot build a gateway URL for {key!r}: {e}")
                continue
            except ValueError as e:
                self.logger.debug(f"Malformed JSON from {url}: {e}")
                continue

            if not isinstance(document, dict):
                self.logger.debug(f"Expected a JSON object from {url}, got {type(document).__name__}")
                continue

            if attempts > 1:
                self.logger.info(f"Resolved {key} through fallback gateway {gateway}")
            return document

        self.logger.warning(f"All {attempts} IPFS gateways failed for {key}")
        raise MetadataUnavailable(address, attempts)

    async def fetch_charity_metadata(self, address: str) -> CharityMetadata:
        """Resolve and validate a charity document."""
        document = await self.resolve(address)
        try:
            return CharityMetadata.model_validate(document)
        except ValidationError as e:
            self.logger.debug(f"Charity metadata at {address} failed validation: {e}")
            raise MetadataUnavailable(address)

    async def fetch_gift_metadata(self, address: str) -> GiftMetadata:
        """Resolve and validate a gift message document."""
        document = await self.resolve(address)
        try:
            return GiftMetadata.model_validate(document)
        except ValidationError as e:
            self.logger.debug(f"Gift metadata at {address} failed validation: {e}")
            raise MetadataUnavailable(address)

    async def publish(self, document: Union[Document, BaseModel], name: Optional[str] = None) -> str:
        """
        Pin a JSON document and return its CID.

        Args:
            document: JSON-serialisable mapping or pydantic model
            name: Optional pin name shown in the pinning dashboard

        Returns:
            CID string

        Raises:
            PublishFailed: If the credential is missing, the endpoint is
                unreachable, or the response carries no CID
        """
        if not self._pinata_jwt:
            raise PublishFailed("Pinning credential is not configured")

        if isinstance(document, BaseModel):
            document = document.model_dump(by_alias=True, exclude_none=True)

        body: Dict[str, Any] = {"pinataContent": document}
        if name:
            body["pinataMetadata"] = {"name": name}

        try:
            response = await self._http.post(
                f"{self.pinata_api_url}/pinning/pinJSONToIPFS",
                json=body,
                headers={"Authorization": f"Bearer {self._pinata_jwt}"},
            )
            response.raise_for_status()
            result = response.json()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.logger.error(f"IPFS publish request failed: {e}")
            raise PublishFailed(f"IPFS publish failed: {e}", cause=e)
        except ValueError as e:
            raise PublishFailed(f"Invalid JSON response from pinning service: {e}", cause=e)

        cid = result.get("IpfsHash") if isinstance(result, dict) else None
        if not cid:
            raise PublishFailed(f"Missing IpfsHash in pinning response: {result}")

        self.logger.info(f"Published document to IPFS: {cid}")
        self._cache[cid] = copy.deepcopy(document)
        return cid

    async def upload_charity_metadata(self, metadata: CharityMetadata) -> str:
        return await self.publish(metadata, name=f"charity-{_slug(metadata.name)}")

    async def upload_gift_metadata(
        self,
        gift_type: str,
        message: str,
        sender: Optional[str] = None
    ) -> str:
        """Publish a gift message document stamped with the current time (ms)."""
        metadata = GiftMetadata(
            gift_type=gift_type,
            message=message,
            timestamp=int(time.time() * 1000),
            sender=sender,
        )
        return await self.publish(metadata, name=f"gift-{_slug(gift_type) or 'message'}")
