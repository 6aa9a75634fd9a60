"""
Document identifier generation.
"""

import logging
import threading
import time
from typing import Callable, Optional

from indexer.db.search_index import SearchIndex
from indexer.exceptions import IdentifierAllocationError, IndexerError

logger = logging.getLogger(__name__)


def _current_millis() -> int:
    return int(time.time() * 1000)


class IdentityGenerator:
    """
    Produces unique, increasing document identifiers.

    The counter is seeded once from the wall clock (milliseconds). Every
    candidate is checked against the live index; taken values are skipped.
    The availability check runs outside the counter lock so concurrent
    callers only serialize on the increment.
    """

    def __init__(
        self,
        search_index: SearchIndex,
        clock: Callable[[], int] = _current_millis,
        seed: Optional[int] = None,
    ):
        """
        Initialize identity generator.

        Args:
            search_index: Index used to check identifier availability
            clock: Source of the seed value in milliseconds
            seed: Fixed seed (tests); the clock is used when None
        """
        self.search_index = search_index
        self._clock = clock
        self._lock = threading.Lock()
        self._next: Optional[int] = seed

    def _reserve_candidate(self) -> int:
        with self._lock:
            if self._next is None:
                self._next = self._clock()
                logger.debug(f"Seeded identifier counter with {self._next}")
            candidate = self._next
            self._next += 1
            return candidate

    def next_id(self) -> int:
        """
        Allocate a new document identifier.

        Returns:
            Identifier not used by any committed document

        Raises:
            IdentifierAllocationError: If the index cannot be checked
        """
        while True:
            candidate = self._reserve_candidate()
            try:
                available = self.search_index.is_id_available(candidate)
            except (IndexerError, ConnectionError, OSError) as e:
                raise IdentifierAllocationError(f"Cannot check identifier {candidate}: {e}") from e
            if available:
                return candidate
            logger.debug(f"Identifier {candidate} already taken, advancing")
