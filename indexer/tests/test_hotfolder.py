"""
Tests for the hotfolder dispatcher.
"""

import os
import shutil
import tempfile
import unittest
from pathlib import Path

from indexer.config.settings import Settings
from indexer.models import constants as c
from indexer.services.extractor import JsonRecordExtractor
from indexer.services.hotfolder import ERROR_FOLDER, Hotfolder, create_hotfolder
from indexer.tests.fakes import FakeSearchIndex, make_anchor, make_record, make_volume, write_record


class TestHotfolder(unittest.TestCase):
    """Test job dispatch by file suffix and queue processing."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = Path(tempfile.mkdtemp())
        self.settings = Settings(
            index_path=":memory:",
            hotfolder_path=self.temp_dir / "hotfolder",
            indexed_records_path=self.temp_dir / "indexed",
            temp_path=self.temp_dir / "tmp",
            log_file=None,
        )
        self.settings.ensure_directories()
        self.hotfolder_path = self.settings.hotfolder_path
        self.index = FakeSearchIndex()
        self.hotfolder = create_hotfolder(self.settings, search_index=self.index)

    def tearDown(self):
        """Clean up after tests."""
        self.hotfolder.close()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _job(self, name: str, content: str = "") -> Path:
        path = self.hotfolder_path / name
        path.write_text(content, encoding="utf-8")
        return path

    def test_create_hotfolder_wires_components(self):
        """Test that the factory shares index and queue between components."""
        self.assertIsInstance(self.hotfolder, Hotfolder)
        self.assertIs(self.hotfolder.search_index, self.index)
        self.assertIs(self.hotfolder.record_indexer.reindex_queue, self.hotfolder.reindex_queue)

    def test_record_source_is_indexed_and_removed(self):
        """Test that a processed record source leaves the hotfolder."""
        path = write_record(self.hotfolder_path, make_record())

        result = self.hotfolder.process(path)

        self.assertTrue(result.ok)
        self.assertEqual(result.record_file_name, "PPN123.json")
        self.assertFalse(path.exists())
        self.assertTrue((self.settings.indexed_records_path / "PPN123.json").exists())
        self.assertEqual(len(self.index.search({c.PI: "PPN123"})), 1)

    def test_failed_job_is_moved_to_error_folder(self):
        """Test that an invalid source is parked in the error folder."""
        path = self._job("broken.json", "{not json")

        result = self.hotfolder.process(path)

        self.assertFalse(result.ok)
        self.assertFalse(path.exists())
        self.assertTrue((self.hotfolder_path / ERROR_FOLDER / "broken.json").exists())

    def test_missing_job_file(self):
        """Test that a vanished job file is reported."""
        result = self.hotfolder.process(self.hotfolder_path / "gone.json")

        self.assertFalse(result.ok)
        self.assertIn("not found", result.message)

    def test_unsupported_file_type(self):
        """Test that unknown suffixes are rejected and left in place."""
        path = self._job("notes.txt", "hello")

        result = self.hotfolder.process(path)

        self.assertFalse(result.ok)
        self.assertTrue(path.exists())

    def test_delete_job(self):
        """Test that a .delete job leaves a tombstone."""
        self.hotfolder.process(write_record(self.hotfolder_path, make_record()))

        result = self.hotfolder.process(self._job("PPN123.delete"))

        self.assertTrue(result.ok)
        docs = self.index.docs_of("PPN123")
        self.assertEqual(len(docs), 1)
        self.assertIn(c.DATEDELETED, docs[0])
        self.assertFalse((self.hotfolder_path / "PPN123.delete").exists())

    def test_purge_job(self):
        """Test that a .purge job removes everything."""
        self.hotfolder.process(write_record(self.hotfolder_path, make_record()))

        result = self.hotfolder.process(self._job("PPN123.purge"))

        self.assertTrue(result.ok)
        self.assertEqual(self.index.docs_of("PPN123"), [])

    def test_anchor_update_job(self):
        """Test that a metadata-only anchor update is stored without indexing."""
        path = write_record(self.hotfolder_path, make_anchor(), name="ANCHOR1.anchor_update")

        result = self.hotfolder.process(path)

        self.assertTrue(result.ok)
        self.assertEqual(result.pi, "ANCHOR1")
        self.assertTrue((self.settings.indexed_records_path / "ANCHOR1.json").exists())
        self.assertEqual(self.index.committed, {})
        self.assertFalse(path.exists())

    def test_data_folders_are_found(self):
        """Test that <basename>_<kind> folders are passed with the source."""
        path = write_record(self.hotfolder_path, make_record())
        fulltext = self.hotfolder_path / "PPN123_fulltext"
        fulltext.mkdir()
        (fulltext / "00000002.txt").write_text("Habe nun, ach! Philosophie", encoding="utf-8")
        (self.hotfolder_path / "PPN1234_fulltext").mkdir()

        self.assertEqual(Hotfolder.find_data_folders(path), {"fulltext": fulltext})

        self.hotfolder.process(path)

        page = self.index.search({c.PI_TOPSTRUCT: "PPN123", c.ORDER: 2})[0]
        self.assertEqual(page.get_first(c.FULLTEXT), "Habe nun, ach! Philosophie")

    def test_index_outside_hotfolder_keeps_source(self):
        """Test that indexing a file elsewhere does not remove it."""
        path = write_record(self.temp_dir / "elsewhere", make_record())

        result = self.hotfolder.process(path)

        self.assertTrue(result.ok)
        self.assertTrue(path.exists())

    def test_scan_queues_jobs_oldest_first(self):
        """Test that scanning queues supported job files by modification time."""
        second = write_record(self.hotfolder_path, make_record(pi="PPN2"))
        first = write_record(self.hotfolder_path, make_record(pi="PPN1"))
        os.utime(first, (1_000_000, 1_000_000))
        os.utime(second, (2_000_000, 2_000_000))
        self._job("ignored.txt")

        self.assertEqual(self.hotfolder.scan(), 2)
        self.assertEqual(self.hotfolder.scan(), 0)

        names = [entry.path.name for entry in self.hotfolder.reindex_queue.entries()]
        self.assertEqual(names, ["PPN1.json", "PPN2.json"])

    def test_multi_volume_work_settles(self):
        """Test that anchor and volumes dropped together converge to a linked state."""
        jobs = [
            write_record(self.hotfolder_path, make_anchor()),
            write_record(self.hotfolder_path, make_volume("V2", number=2)),
            write_record(self.hotfolder_path, make_volume("V1", number=1)),
        ]
        for offset, job in enumerate(jobs):
            os.utime(job, (1_000_000 + offset, 1_000_000 + offset))

        self.hotfolder.scan()
        results = self.hotfolder.process_queue()

        self.assertEqual(len(results), 5)
        self.assertTrue(all(result.ok for result in results))
        self.assertEqual(len(self.hotfolder.reindex_queue), 0)
        self.assertEqual(sorted(p.name for p in self.hotfolder_path.iterdir() if p.is_file()), [])

        stored = JsonRecordExtractor().extract(self.settings.indexed_records_path / "ANCHOR1.json")
        self.assertEqual([link.pi for link in stored.root.child_links], ["V1", "V2"])
        anchor = self.index.search({c.PI: "ANCHOR1"})[0]
        for pi in ("V1", "V2"):
            volume = self.index.search({c.PI: pi})[0]
            self.assertEqual(volume.get_first(c.IDDOC_PARENT), anchor.iddoc)

    def test_process_queue_limit(self):
        """Test that only the requested number of jobs is processed."""
        write_record(self.hotfolder_path, make_record(pi="PPN1"))
        write_record(self.hotfolder_path, make_record(pi="PPN2"))
        self.hotfolder.scan()

        results = self.hotfolder.process_queue(limit=1)

        self.assertEqual(len(results), 1)
        self.assertEqual(len(self.hotfolder.reindex_queue), 1)


if __name__ == "__main__":
    unittest.main()
