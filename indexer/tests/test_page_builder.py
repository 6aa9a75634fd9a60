"""
Unit tests for page document construction.
"""

import random
import shutil
import tempfile
import unittest
from pathlib import Path

from indexer.models import constants as c
from indexer.models.record import PageSource
from indexer.services.identity import IdentityGenerator
from indexer.services.memory_strategy import MemoryWriteStrategy
from indexer.services.page_builder import PageDocumentBuilder
from indexer.tests.fakes import FakeSearchIndex, make_pages


class TestPageDocumentBuilder(unittest.TestCase):
    """Test page document generation."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.index = FakeSearchIndex()
        self.identity = IdentityGenerator(self.index, seed=1)
        self.strategy = MemoryWriteStrategy(self.index)

    def tearDown(self):
        """Clean up after tests."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_build_page_fields(self):
        """Test the fields of a generated page document."""
        builder = PageDocumentBuilder(self.identity)
        source = PageSource(
            phys_id="PHYS_0001",
            order=1,
            order_label="I",
            file_name="00000001.tif",
            mime_type="image/tiff",
            urn="urn:nbn:de:1-1",
            fields=[("MD_WIDTH", 2000)],
        )

        page = builder.build_page(source, "PPN1", {}, data_repository="repo1")
        doc = page.doc

        self.assertEqual(doc.get_first(c.IDDOC), 1)
        self.assertEqual(doc.get_first(c.GROUPFIELD), "1")
        self.assertEqual(doc.get_first(c.DOCTYPE), c.DOCTYPE_PAGE)
        self.assertEqual(doc.get_first(c.PI_TOPSTRUCT), "PPN1")
        self.assertEqual(doc.get_first(c.ORDER), 1)
        self.assertEqual(doc.get_first(c.ORDERLABEL), "I")
        self.assertEqual(doc.get_first(c.FILENAME), "00000001.tif")
        self.assertEqual(doc.get_first(c.IMAGEURN), "urn:nbn:de:1-1")
        self.assertEqual(doc.get_first(c.DATAREPOSITORY), "repo1")
        self.assertEqual(doc.get_first("MD_WIDTH"), 2000)
        self.assertIs(doc.get_first(c.FULLTEXTAVAILABLE), False)
        self.assertIsNone(page.owner_id)

    def test_full_text_from_data_folder(self):
        """Test that full text is read from <basename>.txt in the fulltext folder."""
        folder = self.temp_dir / "fulltext"
        folder.mkdir()
        (folder / "00000002.txt").write_text("Es irrt der Mensch", encoding="utf-8")
        builder = PageDocumentBuilder(self.identity)

        summary = builder.generate_pages(make_pages(2), "PPN1", self.strategy, data_folders={"fulltext": folder})

        pages = self.strategy.get_pages_in_order()
        self.assertNotIn(c.FULLTEXT, pages[0].doc)
        self.assertEqual(pages[1].doc.get_first(c.FULLTEXT), "Es irrt der Mensch")
        self.assertTrue(pages[1].full_text_available)
        self.assertTrue(summary.full_text_available)
        self.assertTrue(summary.image_available)
        self.assertEqual(summary.pages, 2)

    def test_missing_fulltext_folder_is_recoverable(self):
        """Test that a missing full-text folder only logs a warning."""
        builder = PageDocumentBuilder(self.identity)

        with self.assertLogs("indexer.services.page_builder", level="WARNING"):
            summary = builder.generate_pages(
                make_pages(1), "PPN1", self.strategy, data_folders={"fulltext": self.temp_dir / "missing"}
            )

        self.assertFalse(summary.full_text_available)
        self.assertEqual(self.strategy.page_docs_size, 1)

    def test_inline_full_text(self):
        """Test that full text embedded in the source is used."""
        builder = PageDocumentBuilder(self.identity)

        builder.generate_pages(make_pages(1, with_text=True), "PPN1", self.strategy)

        page = self.strategy.get_page_doc_for_order(1)
        self.assertEqual(page.doc.get_first(c.FULLTEXT), "Text of page 1")
        self.assertIs(page.doc.get_first(c.FULLTEXTAVAILABLE), True)

    def test_pages_without_files_have_no_image(self):
        """Test that image availability requires a file name."""
        builder = PageDocumentBuilder(self.identity)
        pages = [PageSource(phys_id="PHYS_0001", order=1)]

        summary = builder.generate_pages(pages, "PPN1", self.strategy)

        self.assertFalse(summary.image_available)

    def test_parallel_generation_keeps_page_order(self):
        """Test that pages built by a worker pool are still read back in order."""
        pages = make_pages(40)
        random.Random(7).shuffle(pages)
        builder = PageDocumentBuilder(self.identity, threads=4)

        summary = builder.generate_pages(pages, "PPN1", self.strategy)

        self.assertEqual(summary.pages, 40)
        ordered = self.strategy.get_pages_in_order()
        self.assertEqual([p.order for p in ordered], list(range(1, 41)))
        self.assertEqual(len({p.iddoc for p in ordered}), 40)
        by_phys = self.strategy.get_page_docs_for_phys_ids(["PHYS_0010", "PHYS_0002"])
        self.assertEqual([p.order for p in by_phys], [10, 2])


if __name__ == "__main__":
    unittest.main()
