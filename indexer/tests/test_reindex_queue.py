"""
Unit tests for the re-index queue.
"""

import unittest
from pathlib import Path

from indexer.services.reindex_queue import ReindexPriority, ReindexQueue


class TestReindexQueue(unittest.TestCase):
    """Test queue ordering and de-duplication."""

    def setUp(self):
        """Set up test fixtures."""
        self.queue = ReindexQueue()

    def test_adding_twice_is_a_no_op(self):
        """Test that a queued path is only queued once."""
        self.assertTrue(self.queue.add(Path("hotfolder/A.json")))
        self.assertFalse(self.queue.add(Path("hotfolder/A.json")))
        self.assertFalse(self.queue.add(Path("hotfolder/A.json"), ReindexPriority.LOW))

        self.assertEqual(len(self.queue), 1)

    def test_high_priority_served_first(self):
        """Test that all high-priority entries come before low-priority ones."""
        self.queue.add(Path("A.anchor_update"), ReindexPriority.LOW)
        self.queue.add(Path("B.json"))
        self.queue.add(Path("C.json"))

        names = [self.queue.poll().path.name for _ in range(3)]

        self.assertEqual(names, ["B.json", "C.json", "A.anchor_update"])
        self.assertIsNone(self.queue.poll())

    def test_low_priority_entry_is_promoted(self):
        """Test that adding a low-priority path with high priority moves it up."""
        self.queue.add(Path("A.json"), ReindexPriority.LOW)

        self.assertTrue(self.queue.add(Path("A.json"), ReindexPriority.HIGH))

        entries = self.queue.entries()
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0].priority, ReindexPriority.HIGH)

    def test_contains_and_clear(self):
        """Test membership checks and clearing."""
        self.queue.add(Path("A.json"))

        self.assertIn(Path("A.json"), self.queue)
        self.assertIn("A.json", self.queue)
        self.assertNotIn(Path("B.json"), self.queue)
        self.assertNotIn(42, self.queue)

        self.queue.clear()
        self.assertEqual(len(self.queue), 0)


if __name__ == "__main__":
    unittest.main()
