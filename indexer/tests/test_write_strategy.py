"""
Unit tests for write strategies.
"""

import json
import shutil
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from indexer.config.settings import Settings
from indexer.exceptions import IdentifierCollisionError, IndexerError, SearchIndexError
from indexer.models import constants as c
from indexer.models.fields import SearchDocument
from indexer.models.page import PageDocument
from indexer.services.memory_strategy import HierarchicalWriteStrategy, MemoryWriteStrategy
from indexer.services.serializing_strategy import SerializingWriteStrategy
from indexer.services.write_strategy import create_write_strategy
from indexer.tests.fakes import FakeSearchIndex

STAMP = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _root_doc(pi: str = "PPN1", iddoc: int = 1) -> SearchDocument:
    return SearchDocument([
        (c.IDDOC, iddoc),
        (c.GROUPFIELD, str(iddoc)),
        (c.DOCTYPE, c.DOCTYPE_DOCSTRCT),
        (c.PI, pi),
        (c.PI_TOPSTRUCT, pi),
        (c.DATECREATED, STAMP),
        (c.DATEUPDATED, STAMP),
        (c.DEFAULT, "root text"),
    ])


def _child_doc(iddoc: int = 2) -> SearchDocument:
    return SearchDocument([
        (c.IDDOC, iddoc),
        (c.GROUPFIELD, str(iddoc)),
        (c.DOCTYPE, c.DOCTYPE_DOCSTRCT),
        (c.LOGID, "LOG_0001"),
        (c.DEFAULT, "chapter text"),
        (c.BOOL_IMAGEAVAILABLE, True),
        (c.BOOL_IMAGEAVAILABLE, False),
    ])


def _page(order: int, iddoc: int, doc_type: str = c.DOCTYPE_PAGE, text: bool = True) -> PageDocument:
    doc = SearchDocument([
        (c.IDDOC, iddoc),
        (c.GROUPFIELD, str(iddoc)),
        (c.DOCTYPE, doc_type),
        (c.PI_TOPSTRUCT, "PPN1"),
        (c.ORDER, order),
        (c.PHYSID, f"PHYS_{order:04d}"),
    ])
    if text:
        doc.add(c.FULLTEXT, f"page {order}")
    doc.add(c.DATEUPDATED, STAMP)
    return PageDocument(order=order, phys_id=f"PHYS_{order:04d}", doc=doc, file_name=f"{order}.jpg")


def _stage(strategy, pages_order=(3, 1, 2)):
    for order in pages_order:
        strategy.add_page_doc(_page(order, 100 + order))
    strategy.add_doc(_child_doc())
    strategy.set_root_doc(_root_doc())


def _committed_json(index: FakeSearchIndex) -> str:
    docs = sorted(index.committed.values(), key=lambda d: d.iddoc)
    return json.dumps([doc.to_payload() for doc in docs], sort_keys=True)


class TestMemoryWriteStrategy(unittest.TestCase):
    """Test the in-memory staging area."""

    def setUp(self):
        """Set up test fixtures."""
        self.index = FakeSearchIndex()
        self.strategy = MemoryWriteStrategy(self.index)

    def test_commit_order_pages_docs_root(self):
        """Test that pages (in order), then structure docs, then the root are written."""
        _stage(self.strategy)

        written = self.strategy.write_docs()

        self.assertEqual(written, 5)
        order = [payload[c.IDDOC][0] for payload in self.index.commits[0]]
        self.assertEqual(order, [101, 102, 103, 2, 1])

    def test_pages_for_phys_ids_follow_request_order(self):
        """Test lookup by physical id keeps the requested order and skips unknown ids."""
        _stage(self.strategy)

        pages = self.strategy.get_page_docs_for_phys_ids(["PHYS_0003", "PHYS_9999", "PHYS_0001"])

        self.assertEqual([p.order for p in pages], [3, 1])

    def test_pages_in_order_sorts_by_order(self):
        """Test that staged pages are returned sorted regardless of staging order."""
        _stage(self.strategy, pages_order=(2, 3, 1))

        self.assertEqual(self.strategy.page_order_numbers(), [1, 2, 3])
        self.assertEqual([p.order for p in self.strategy.get_pages_in_order()], [1, 2, 3])
        self.assertEqual(self.strategy.page_docs_size, 3)

    def test_order_collision_is_logged(self):
        """Test that two pages with the same order log an error."""
        self.strategy.add_page_doc(_page(1, 101))

        with self.assertLogs("indexer.services.memory_strategy", level="ERROR") as logs:
            self.strategy.add_page_doc(_page(1, 102))

        self.assertIn("Collision for page order 1", logs.output[0])

    def test_shape_pages_are_not_written(self):
        """Test that shape documents are staged but never committed."""
        _stage(self.strategy)
        self.strategy.add_page_doc(_page(4, 104, doc_type=c.DOCTYPE_SHAPE))

        self.strategy.write_docs()

        self.assertNotIn(104, self.index.committed)
        self.assertEqual(len(self.index.committed), 5)

    def test_finalize_fills_missing_fields(self):
        """Test OPENACCESS default, PI_TOPSTRUCT backfill and single-value trimming."""
        _stage(self.strategy)

        self.strategy.write_docs()

        child = self.index.committed[2]
        self.assertEqual(child.get_values(c.ACCESSCONDITION), [c.OPEN_ACCESS_VALUE])
        self.assertEqual(child.get_values(c.PI_TOPSTRUCT), ["PPN1"])
        self.assertEqual(child.get_values(c.BOOL_IMAGEAVAILABLE), [True])

    def test_aggregate_adds_super_fields(self):
        """Test SUPERDEFAULT and SUPERFULLTEXT aggregation on the root."""
        _stage(self.strategy)

        self.strategy.write_docs(aggregate=True)

        root = self.index.committed[1]
        self.assertEqual(root.get_first(c.SUPERDEFAULT), "chapter text")
        self.assertEqual(root.get_first(c.SUPERFULLTEXT), "page 1\npage 2\npage 3")

    def test_no_aggregation_by_default(self):
        """Test that aggregated fields are only added on request."""
        _stage(self.strategy)

        self.strategy.write_docs()

        self.assertNotIn(c.SUPERFULLTEXT, self.index.committed[1])

    def test_missing_root_raises(self):
        """Test that committing without a root document fails."""
        self.strategy.add_doc(_child_doc())

        with self.assertRaises(IndexerError):
            self.strategy.write_docs()

    def test_urn_collision_with_other_record(self):
        """Test that a URN used by another record aborts the commit."""
        self.index.seed([SearchDocument([
            (c.IDDOC, 900), (c.PI, "OTHER"), (c.PI_TOPSTRUCT, "OTHER"), (c.URN, "urn:nbn:de:1"),
        ])])
        _stage(self.strategy)
        self.strategy.root_doc.add(c.URN, "urn:nbn:de:1")

        with self.assertRaises(IdentifierCollisionError) as ctx:
            self.strategy.write_docs()

        self.assertIn("OTHER", str(ctx.exception))
        self.assertEqual(self.index.pending, 0)
        self.assertEqual(list(self.index.committed), [900])

    def test_own_urn_is_not_a_collision(self):
        """Test that the record's previously indexed URN does not collide."""
        self.index.seed([SearchDocument([
            (c.IDDOC, 900), (c.PI, "PPN1"), (c.PI_TOPSTRUCT, "PPN1"), (c.URN, "urn:nbn:de:1"),
        ])])
        _stage(self.strategy)
        self.strategy.root_doc.add(c.URN, "urn:nbn:de:1")

        self.assertEqual(self.strategy.write_docs(), 5)

    def test_commit_failure_propagates(self):
        """Test that index failures surface as errors."""
        _stage(self.strategy)
        self.index.fail_next_commit = True

        with self.assertRaises(SearchIndexError):
            self.strategy.write_docs()

        self.assertEqual(self.index.committed, {})

    def test_context_manager_cleans_up(self):
        """Test that leaving the context releases staged documents."""
        with self.strategy as strategy:
            _stage(strategy)

        self.assertIsNone(self.strategy.root_doc)
        self.assertEqual(self.strategy.page_docs_size, 0)


class TestSerializingWriteStrategy(unittest.TestCase):
    """Test the disk-backed staging area."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.mkdtemp()
        self.index = FakeSearchIndex()
        self.strategy = SerializingWriteStrategy(self.index, temp_parent=Path(self.temp_dir))

    def tearDown(self):
        """Clean up after tests."""
        self.strategy.cleanup()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_documents_are_staged_on_disk(self):
        """Test that documents and full texts are written as separate files."""
        _stage(self.strategy)

        folder = self.strategy.temp_folder
        self.assertTrue((folder / "1.json").is_file())
        self.assertTrue((folder / "101.json").is_file())
        self.assertTrue((folder / "101_FULLTEXT.txt").is_file())
        self.assertFalse((folder / "2_FULLTEXT.txt").exists())

    def test_staged_page_keeps_owner(self):
        """Test that page ownership survives a disk round trip."""
        _stage(self.strategy)
        page = self.strategy.get_page_doc_for_order(2)
        page.claim(2, 1)
        self.strategy.update_doc(page)

        reloaded = self.strategy.get_page_docs_for_phys_ids(["PHYS_0002"])[0]

        self.assertEqual(reloaded.owner_id, 2)
        self.assertEqual(reloaded.owner_depth, 1)
        self.assertEqual(reloaded.doc.get_first(c.IDDOC_OWNER), 2)
        self.assertEqual(reloaded.doc.get_first(c.FULLTEXT), "page 2")

    def test_cleanup_removes_staging_folder(self):
        """Test that cleanup deletes the private temp folder."""
        _stage(self.strategy)
        folder = self.strategy.temp_folder

        self.strategy.cleanup()

        self.assertFalse(folder.exists())

    def test_matches_memory_strategy(self):
        """Test that both strategies commit identical documents for the same input."""
        memory_index = FakeSearchIndex()
        memory = MemoryWriteStrategy(memory_index)
        _stage(memory)
        _stage(self.strategy)

        memory.write_docs(aggregate=True)
        self.strategy.write_docs(aggregate=True)

        self.assertEqual(_committed_json(self.index), _committed_json(memory_index))

    def test_batches_are_committed_once(self):
        """Test small write batches still end in a single commit."""
        strategy = SerializingWriteStrategy(self.index, temp_parent=Path(self.temp_dir), batch_size=2)
        try:
            _stage(strategy)
            self.assertEqual(strategy.write_docs(), 5)
        finally:
            strategy.cleanup()

        self.assertEqual(len(self.index.commits), 1)
        self.assertEqual(len(self.index.committed), 5)


class TestHierarchicalWriteStrategy(unittest.TestCase):
    """Test the nested-document mode."""

    def test_single_nested_document(self):
        """Test that pages and structure docs are nested under the root."""
        index = FakeSearchIndex()
        strategy = HierarchicalWriteStrategy(index)
        _stage(strategy)

        self.assertEqual(strategy.write_docs(), 1)

        self.assertEqual(list(index.committed), [1])
        children = index.committed[1].children
        self.assertEqual([child.iddoc for child in children], [101, 102, 103, 2])


class TestCreateWriteStrategy(unittest.TestCase):
    """Test write strategy selection."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.index = FakeSearchIndex()
        self.source = self.temp_dir / "PPN1.json"
        self.source.write_text("x" * 100, encoding="utf-8")

    def tearDown(self):
        """Clean up after tests."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _settings(self, **overrides) -> Settings:
        values = {
            "index_path": ":memory:",
            "temp_path": self.temp_dir / "tmp",
            "hotfolder_path": self.temp_dir / "hotfolder",
            "indexed_records_path": self.temp_dir / "indexed",
        }
        values.update(overrides)
        return Settings(**values)

    def test_small_source_uses_memory(self):
        """Test that small inputs stay in memory."""
        strategy = create_write_strategy(self.index, self._settings(), source_path=self.source)

        self.assertIsInstance(strategy, MemoryWriteStrategy)
        self.assertNotIsInstance(strategy, HierarchicalWriteStrategy)

    def test_large_source_uses_disk(self):
        """Test that a source above the threshold is staged on disk."""
        strategy = create_write_strategy(
            self.index, self._settings(source_size_threshold=50), source_path=self.source
        )
        try:
            self.assertIsInstance(strategy, SerializingWriteStrategy)
            self.assertEqual(strategy.temp_folder.parent, self.temp_dir / "tmp")
        finally:
            strategy.cleanup()

    def test_large_data_folder_uses_disk(self):
        """Test that a bulky data folder selects the disk-backed strategy."""
        folder = self.temp_dir / "PPN1_fulltext"
        folder.mkdir()
        (folder / "00000001.txt").write_text("y" * 500, encoding="utf-8")

        strategy = create_write_strategy(
            self.index,
            self._settings(data_folder_size_threshold=200),
            source_path=self.source,
            data_folders={"fulltext": folder},
        )
        try:
            self.assertIsInstance(strategy, SerializingWriteStrategy)
        finally:
            strategy.cleanup()

    def test_hierarchical_setting(self):
        """Test that nested-document mode takes precedence."""
        strategy = create_write_strategy(
            self.index,
            self._settings(hierarchical_documents=True, source_size_threshold=1),
            source_path=self.source,
        )

        self.assertIsInstance(strategy, HierarchicalWriteStrategy)


if __name__ == "__main__":
    unittest.main()
