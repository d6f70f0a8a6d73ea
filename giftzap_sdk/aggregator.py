"""
Decoding of the list-shaped GiftManager views.

``getCharities``, ``getFavorites`` and ``getTopGifters`` return parallel
arrays. This module zips them into typed entries, resolving names through
the metadata resolver and the fixed-width name codec.
"""
import asyncio
import json
import locale
import logging
from typing import Any, List, Optional, Tuple

from .codec import decode_name
from .exceptions import InvalidInput, LedgerReadError, MetadataUnavailable
from .ledger.base import LedgerClient, VIEW_CHARITIES, VIEW_FAVORITES, VIEW_TOP_GIFTERS
from .metadata import MetadataResolver, RefKind, parse_metadata_ref
from .models import (
    CharityEntry, FavoriteEntry, RawCharities, RawFavorites, RawTopGifters, TopGifter, ZERO_ADDRESS
)

logger = logging.getLogger(__name__)

UNKNOWN_FAVORITE = "Unknown"

SOURCE_METADATA = "metadata"
SOURCE_LEGACY = "legacy"
SOURCE_PLACEHOLDER = "placeholder"

FAVORITE_SORT_KEYS = ("name", "gift_count", "total_amount")
CHARITY_SORT_KEYS = ("name", "id")


def charity_placeholder(charity_id: int) -> str:
    return f"Charity #{charity_id}"


def _zip_length(view: str, *columns: List[Any]) -> int:
    lengths = {len(column) for column in columns}
    if len(lengths) > 1:
        logger.warning(f"{view} returned columns of unequal length {sorted(lengths)}; truncating")
    return min(lengths) if lengths else 0


def _inline_fields(text: str) -> Tuple[str, Optional[str], Optional[str], Optional[str]]:
    """Name, description, logo and website from inline (hex-stored) metadata."""
    try:
        data = json.loads(text)
    except ValueError:
        return "", text or None, None, None
    if not isinstance(data, dict):
        return "", text or None, None, None
    name = str(data.get("name") or "").strip()
    description, logo, website = (
        str(data[key]) if data.get(key) else None for key in ("description", "logo", "website")
    )
    return name, description, logo, website


def _name_key(name: str):
    return locale.strxfrm(name)


def sort_favorites(
    entries: List[FavoriteEntry],
    key: str = "gift_count",
    descending: bool = True
) -> List[FavoriteEntry]:
    """
    Return favorites sorted by ``name``, ``gift_count`` or ``total_amount``.

    Names collate with the active locale; counts and amounts compare as
    exact integers.
    """
    if key not in FAVORITE_SORT_KEYS:
        raise InvalidInput(f"Unknown sort key {key!r}; expected one of {FAVORITE_SORT_KEYS}")
    if key == "name":
        return sorted(entries, key=lambda e: _name_key(e.name), reverse=descending)
    return sorted(entries, key=lambda e: getattr(e, key), reverse=descending)


def sort_charities(
    entries: List[CharityEntry],
    key: str = "name",
    descending: bool = False
) -> List[CharityEntry]:
    if key not in CHARITY_SORT_KEYS:
        raise InvalidInput(f"Unknown sort key {key!r}; expected one of {CHARITY_SORT_KEYS}")
    if key == "name":
        return sorted(entries, key=lambda e: _name_key(e.name), reverse=descending)
    return sorted(entries, key=lambda e: e.id, reverse=descending)


class ListAggregator:
    """
    Turns raw list views into entry objects.

    Decoding never raises: every charity gets a name, falling back from
    its metadata document, to its legacy ``bytes32`` name, to
    ``"Charity #<id>"``. Rows whose id or totals are not integers are
    skipped.
    """

    def __init__(
        self,
        resolver: Optional[MetadataResolver] = None,
        ledger: Optional[LedgerClient] = None,
        concurrency: int = 10,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the aggregator

        Args:
            resolver: Metadata resolver for content-addressed charity documents
            ledger: Ledger client, required only by the ``load_*`` helpers
            concurrency: Maximum metadata lookups in flight
            logger: Optional logger instance
        """
        self.resolver = resolver
        self.ledger = ledger
        self.concurrency = max(1, concurrency)
        self.logger = logger or logging.getLogger(__name__)

    async def decode_charities(self, raw: RawCharities) -> List[CharityEntry]:
        """Zip the charity columns and resolve a display name for each row."""
        size = _zip_length("getCharities", raw.ids, raw.addresses, raw.names, raw.metadata_refs)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(index: int) -> Optional[CharityEntry]:
            async with semaphore:
                return await self._decode_charity(
                    raw.ids[index], raw.addresses[index], raw.names[index], raw.metadata_refs[index]
                )

        entries = await asyncio.gather(*(bounded(i) for i in range(size)))
        return [entry for entry in entries if entry is not None]

    async def _decode_charity(
        self,
        id_field: Any,
        address: str,
        name_field: Any,
        ref_field: Any
    ) -> Optional[CharityEntry]:
        try:
            charity_id = int(id_field)
        except (TypeError, ValueError):
            self.logger.warning(f"Skipping charity row with malformed id {id_field!r}")
            return None

        try:
            return await self._resolve_charity(charity_id, address, name_field, ref_field)
        except Exception as e:
            self.logger.warning(f"Failed to decode charity {charity_id}: {e}")
            name = decode_name(name_field)
            return CharityEntry(
                id=charity_id,
                address=address,
                name=name or charity_placeholder(charity_id),
                source=SOURCE_LEGACY if name else SOURCE_PLACEHOLDER,
            )

    async def _resolve_charity(self, charity_id: int, address: str, name_field: Any, ref_field: Any) -> CharityEntry:
        ref = parse_metadata_ref(ref_field)
        name = ""
        description = logo = website = None

        if ref.kind == RefKind.CONTENT and self.resolver is not None:
            try:
                metadata = await self.resolver.fetch_charity_metadata(ref.value)
                name = metadata.name.strip()
                description = metadata.description or None
                logo, website = metadata.logo, metadata.website
            except MetadataUnavailable:
                self.logger.debug(f"Metadata for charity {charity_id} unavailable; using legacy name")
        elif ref.kind == RefKind.INLINE:
            name, description, logo, website = _inline_fields(ref.value)

        source = SOURCE_METADATA
        if not name:
            name = decode_name(name_field)
            source = SOURCE_LEGACY
        if not name:
            name = charity_placeholder(charity_id)
            source = SOURCE_PLACEHOLDER

        return CharityEntry(
            id=charity_id,
            address=address,
            name=name,
            description=description,
            logo=logo,
            website=website,
            metadata_ref=ref.value or None,
            source=source,
        )

    def decode_favorites(self, raw: RawFavorites) -> List[FavoriteEntry]:
        """Zip the favorite columns, decoding each ``bytes32`` name."""
        size = _zip_length("getFavorites", raw.recipients, raw.names, raw.gift_counts, raw.total_amounts)
        entries = []
        for i in range(size):
            try:
                gift_count, total_amount = int(raw.gift_counts[i]), int(raw.total_amounts[i])
            except (TypeError, ValueError):
                self.logger.warning(f"Skipping favorite {raw.recipients[i]} with malformed totals")
                continue
            name = decode_name(raw.names[i], placeholder=UNKNOWN_FAVORITE) or UNKNOWN_FAVORITE
            entries.append(FavoriteEntry(
                recipient=raw.recipients[i],
                name=name,
                gift_count=gift_count,
                total_amount=total_amount,
            ))
        return entries

    def decode_top_gifters(self, raw: RawTopGifters) -> List[TopGifter]:
        """Zip the leaderboard, dropping empty (zero address / zero count) slots."""
        size = _zip_length("getTopGifters", raw.addresses, raw.counts)
        gifters = []
        for i in range(size):
            try:
                count = int(raw.counts[i])
            except (TypeError, ValueError):
                self.logger.warning(f"Skipping top gifter {raw.addresses[i]} with malformed count")
                continue
            if raw.addresses[i] != ZERO_ADDRESS and count > 0:
                gifters.append(TopGifter(address=raw.addresses[i], count=count))
        return gifters

    def _require_ledger(self) -> LedgerClient:
        if self.ledger is None:
            raise InvalidInput("Ledger client not provided during initialization")
        return self.ledger

    async def _read_view(self, view: str, *args: Any):
        ledger = self._require_ledger()
        try:
            return await ledger.read_list(view, *args)
        except LedgerReadError:
            raise
        except Exception as e:
            self.logger.error(f"Ledger view {view} unreadable: {e}")
            raise LedgerReadError(f"Failed to read {view}: {e}") from e

    async def load_charities(self) -> List[CharityEntry]:
        return await self.decode_charities(await self._read_view(VIEW_CHARITIES))

    async def load_favorites(self, owner: str) -> List[FavoriteEntry]:
        return self.decode_favorites(await self._read_view(VIEW_FAVORITES, owner))

    async def load_top_gifters(self) -> List[TopGifter]:
        return self.decode_top_gifters(await self._read_view(VIEW_TOP_GIFTERS))
