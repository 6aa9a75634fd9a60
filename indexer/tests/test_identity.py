"""
Unit tests for document identifier generation.
"""

import unittest
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import Mock

from indexer.db.search_index import SearchIndex
from indexer.exceptions import IdentifierAllocationError, SearchIndexError
from indexer.models import constants as c
from indexer.models.fields import SearchDocument
from indexer.services.identity import IdentityGenerator
from indexer.tests.fakes import FakeSearchIndex


def _doc(iddoc: int) -> SearchDocument:
    return SearchDocument([(c.IDDOC, iddoc), (c.PI, f"PI{iddoc}")])


class TestIdentityGenerator(unittest.TestCase):
    """Test identifier allocation."""

    def setUp(self):
        """Set up test fixtures."""
        self.index = FakeSearchIndex()

    def test_seeds_from_clock_once(self):
        """Test that the counter starts at the clock value and then increments."""
        clock = Mock(return_value=5000)
        identity = IdentityGenerator(self.index, clock=clock)

        self.assertEqual(identity.next_id(), 5000)
        self.assertEqual(identity.next_id(), 5001)
        clock.assert_called_once()

    def test_ids_increase(self):
        """Test that sequential identifiers are strictly increasing."""
        identity = IdentityGenerator(self.index, seed=100)
        ids = [identity.next_id() for _ in range(50)]

        self.assertEqual(ids, sorted(ids))
        self.assertEqual(len(set(ids)), 50)

    def test_skips_taken_ids(self):
        """Test that identifiers used by committed documents are skipped."""
        self.index.seed([_doc(1000), _doc(1001), _doc(1003)])
        identity = IdentityGenerator(self.index, seed=1000)

        self.assertEqual(identity.next_id(), 1002)
        self.assertEqual(identity.next_id(), 1004)

    def test_concurrent_calls_are_unique(self):
        """Test 1000 concurrent allocations yield 1000 distinct identifiers."""
        self.index.seed([_doc(i) for i in range(1000, 1200, 7)])
        identity = IdentityGenerator(self.index, seed=1000)

        with ThreadPoolExecutor(max_workers=16) as executor:
            ids = list(executor.map(lambda _: identity.next_id(), range(1000)))

        self.assertEqual(len(ids), 1000)
        self.assertEqual(len(set(ids)), 1000)
        self.assertFalse(set(ids) & set(self.index.committed))

    def test_index_failure_raises_allocation_error(self):
        """Test that an unreachable index aborts allocation."""
        index = Mock(spec=SearchIndex)
        index.is_id_available.side_effect = SearchIndexError("connection refused")
        identity = IdentityGenerator(index, seed=1)

        with self.assertRaises(IdentifierAllocationError) as ctx:
            identity.next_id()

        self.assertIn("connection refused", str(ctx.exception))

    def test_connection_error_raises_allocation_error(self):
        """Test that low-level connection errors are wrapped as well."""
        index = Mock(spec=SearchIndex)
        index.is_id_available.side_effect = ConnectionError("reset by peer")
        identity = IdentityGenerator(index, seed=1)

        with self.assertRaises(IdentifierAllocationError):
            identity.next_id()


if __name__ == "__main__":
    unittest.main()
