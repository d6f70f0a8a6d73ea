"""
Batched gift scans.

The ledger only offers ``gifts(id)`` and ``giftCounter()``, so any per-user
view has to read every id and filter client-side. Reads are issued in
fixed-size batches: every read in a batch runs concurrently, batches run one
after another, so at most ``batch_size`` requests are ever in flight.
"""
import asyncio
import logging
from typing import Callable, List, Optional

from .exceptions import InvalidInput, RecordNotFound
from .ledger.base import LedgerClient
from .models import GiftRecord

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 10

Predicate = Callable[[GiftRecord], bool]


def partition(count: int, batch_size: int) -> List[range]:
    """
    Split ids ``1..count`` into consecutive batches.

    >>> partition(23, 10)
    [range(1, 11), range(11, 21), range(21, 24)]
    """
    if batch_size < 1:
        raise InvalidInput(f"batch_size must be positive, got {batch_size}")
    return [range(start, min(start + batch_size, count + 1)) for start in range(1, count + 1, batch_size)]


def involving(address: str) -> Predicate:
    """Predicate matching gifts sent or received by ``address``."""
    return lambda record: record.involves(address)


class ScanGuard:
    """
    Freshness check for overlapping scans.

    Scans are not cancellable; a caller that starts a new scan while an old
    one is in flight takes a token from :meth:`begin` and drops any result
    whose token is no longer current.
    """

    def __init__(self):
        self._generation = 0

    def begin(self) -> int:
        self._generation += 1
        return self._generation

    def is_current(self, token: int) -> bool:
        return token == self._generation


class LedgerRecordFetcher:
    """Reconstructs filtered gift lists from single-record reads."""

    def __init__(
        self,
        ledger: LedgerClient,
        batch_size: int = DEFAULT_BATCH_SIZE,
        read_timeout: Optional[float] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the fetcher

        Args:
            ledger: Ledger client used for reads
            batch_size: Default number of concurrent reads per batch
            read_timeout: Optional per-read timeout in seconds; a read that
                exceeds it counts as absent
            logger: Optional logger instance
        """
        if batch_size < 1:
            raise InvalidInput(f"batch_size must be positive, got {batch_size}")
        self.ledger = ledger
        self.batch_size = batch_size
        self.read_timeout = read_timeout
        self.logger = logger or logging.getLogger(__name__)

    async def _read(self, record_id: int) -> Optional[GiftRecord]:
        if self.read_timeout is None:
            return await self.ledger.read_record(record_id)
        return await asyncio.wait_for(self.ledger.read_record(record_id), timeout=self.read_timeout)

    async def scan(
        self,
        count: int,
        predicate: Optional[Predicate] = None,
        batch_size: Optional[int] = None
    ) -> List[GiftRecord]:
        """
        Read gifts ``1..count`` and return those matching ``predicate``.

        Unreadable or missing ids are skipped silently. ``count`` is fixed
        for the whole scan; gifts created meanwhile are not picked up.

        Args:
            count: Number of gifts to scan (usually ``giftCounter()``)
            predicate: Filter applied after all batches complete
            batch_size: Overrides the fetcher's default batch size

        Returns:
            Matching gifts, newest timestamp first
        """
        if count <= 0:
            return []

        batches = partition(count, batch_size or self.batch_size)
        found: List[GiftRecord] = []
        unreadable = 0

        for batch in batches:
            results = await asyncio.gather(*(self._read(i) for i in batch), return_exceptions=True)
            for record_id, result in zip(batch, results):
                if isinstance(result, Exception):
                    unreadable += 1
                    self.logger.debug(f"Gift {record_id} unreadable: {type(result).__name__}: {result}")
                    continue
                if isinstance(result, BaseException):
                    raise result
                if result is not None:
                    found.append(result)

        if unreadable:
            self.logger.warning(f"Skipped {unreadable} of {count} gifts that could not be read")

        matches = [r for r in found if predicate(r)] if predicate else found
        matches.sort(key=lambda r: (r.timestamp, r.id), reverse=True)
        self.logger.debug(f"Scanned {count} gifts in {len(batches)} batches, {len(matches)} matched")
        return matches

    async def fetch_user_gifts(self, address: str, batch_size: Optional[int] = None) -> List[GiftRecord]:
        """Gifts sent or received by ``address``, newest first."""
        count = await self.ledger.read_record_count()
        return await self.scan(count, involving(address), batch_size=batch_size)

    async def fetch_gift(self, record_id: int) -> GiftRecord:
        """
        Read a single gift where absence matters to the caller.

        Raises:
            RecordNotFound: If the id is not populated
        """
        if record_id < 1:
            raise RecordNotFound(record_id)
        record = await self._read(record_id)
        if record is None:
            raise RecordNotFound(record_id)
        return record
