"""
Hotfolder dispatcher.

Record source files and deletion jobs dropped into the hotfolder, as well as
re-index work queued by the anchor coordinator, are dispatched here by file
suffix.
"""

import logging
import shutil
import threading
from pathlib import Path
from typing import Optional

from indexer.config.settings import Settings
from indexer.db.search_index import QdrantSearchIndex, SearchIndex
from indexer.models.record import RecordDescriptor
from indexer.models.result import IndexingResult
from indexer.services.consistency import ANCHOR_UPDATE_SUFFIX, RECORD_SUFFIX
from indexer.services.extractor import JsonRecordExtractor
from indexer.services.identity import IdentityGenerator
from indexer.services.record_indexer import RecordIndexer
from indexer.services.reindex_queue import ReindexPriority, ReindexQueue

logger = logging.getLogger(__name__)

DELETE_SUFFIX = ".delete"
PURGE_SUFFIX = ".purge"
ERROR_FOLDER = "errors"

SUPPORTED_SUFFIXES = (RECORD_SUFFIX, DELETE_SUFFIX, PURGE_SUFFIX, ANCHOR_UPDATE_SUFFIX)


class Hotfolder:
    """
    Processes job files one at a time.

    Data folders of a record source live next to it and are named
    ``<basename>_<kind>`` (e.g. ``PPN123_fulltext``).
    """

    def __init__(
        self,
        record_indexer: RecordIndexer,
        reindex_queue: ReindexQueue,
        hotfolder_path: Path,
    ):
        self.record_indexer = record_indexer
        self.reindex_queue = reindex_queue
        self.hotfolder_path = hotfolder_path
        self._lock = threading.RLock()

    @property
    def search_index(self) -> SearchIndex:
        return self.record_indexer.search_index

    @staticmethod
    def find_data_folders(path: Path) -> dict[str, Path]:
        """Collect the data folders belonging to a record source."""
        prefix = f"{path.stem}_"
        folders = {}
        if not path.parent.is_dir():
            return folders
        for candidate in sorted(path.parent.iterdir()):
            if candidate.is_dir() and candidate.name.startswith(prefix):
                kind = candidate.name[len(prefix):]
                if kind:
                    folders[kind] = candidate
        return folders

    def index(self, descriptor: RecordDescriptor) -> IndexingResult:
        """Index a record source outside the hotfolder."""
        with self._lock:
            return self.record_indexer.index(descriptor)

    def delete(self, pi: str, trace: bool = True) -> IndexingResult:
        with self._lock:
            return self.record_indexer.delete(pi, trace=trace)

    def process(self, path: Path) -> IndexingResult:
        """
        Process one job file.

        Args:
            path: Record source (.json), deletion job (.delete, .purge) or
                metadata-only anchor update (.anchor_update)

        Returns:
            Result of the job
        """
        path = Path(path)
        suffix = path.suffix.lower()

        with self._lock:
            if not path.is_file():
                logger.warning(f"Job file {path} not found")
                return IndexingResult.failure(f"File not found: {path.name}", record_file_name=path.name)

            if suffix == RECORD_SUFFIX:
                descriptor = RecordDescriptor(main_path=path, data_folders=self.find_data_folders(path))
                result = self.record_indexer.index(descriptor)
            elif suffix == DELETE_SUFFIX:
                logger.info(f"Deleting {path.stem} (tombstone requested)")
                result = self.record_indexer.delete(path.stem, trace=True)
            elif suffix == PURGE_SUFFIX:
                logger.info(f"Purging {path.stem}")
                result = self.record_indexer.delete(path.stem, trace=False)
            elif suffix == ANCHOR_UPDATE_SUFFIX:
                result = self.record_indexer.apply_anchor_update(path)
            else:
                logger.warning(f"Unsupported job file: {path.name}")
                return IndexingResult.failure(f"Unsupported file type: {path.name}", record_file_name=path.name)

            result.record_file_name = path.name
            self._finish(path, result)
        return result

    def _in_hotfolder(self, path: Path) -> bool:
        return path.parent.resolve() == self.hotfolder_path.resolve()

    def _finish(self, path: Path, result: IndexingResult) -> None:
        """Remove or park a processed hotfolder file."""
        if not self._in_hotfolder(path) or not path.exists():
            return
        # regenerated anchor sources are written under the name being processed
        if path in self.reindex_queue:
            return
        if result.ok:
            path.unlink()
            return
        error_folder = self.hotfolder_path / ERROR_FOLDER
        error_folder.mkdir(parents=True, exist_ok=True)
        shutil.move(str(path), str(error_folder / path.name))
        logger.info(f"Moved failed job {path.name} to {error_folder}")

    def scan(self) -> int:
        """
        Queue all job files waiting in the hotfolder, oldest first.

        Returns:
            Number of newly queued files
        """
        if not self.hotfolder_path.is_dir():
            return 0
        jobs = [
            p for p in self.hotfolder_path.iterdir()
            if p.is_file() and p.suffix.lower() in SUPPORTED_SUFFIXES
        ]
        jobs.sort(key=lambda p: (p.stat().st_mtime, p.name))
        queued = 0
        for job in jobs:
            priority = ReindexPriority.LOW if job.suffix.lower() == ANCHOR_UPDATE_SUFFIX else ReindexPriority.HIGH
            if self.reindex_queue.add(job, priority):
                queued += 1
        return queued

    def process_queue(self, limit: Optional[int] = None) -> list[IndexingResult]:
        """
        Drain the re-index queue, high priority first.

        Args:
            limit: Maximum number of jobs to process (all if None)

        Returns:
            Results in processing order
        """
        results = []
        while limit is None or len(results) < limit:
            entry = self.reindex_queue.poll()
            if entry is None:
                break
            logger.info(f"Processing queued {entry.path.name} ({entry.priority.value} priority)")
            results.append(self.process(entry.path))
        return results

    def close(self) -> None:
        self.search_index.close()


def create_hotfolder(settings: Settings, search_index: Optional[SearchIndex] = None) -> Hotfolder:
    """
    Build the indexing components from settings.

    Args:
        settings: Application settings
        search_index: Index client to use instead of the configured Qdrant store

    Returns:
        Hotfolder wired to a record indexer
    """
    if search_index is None:
        search_index = QdrantSearchIndex(
            location=settings.index_path,
            collection_name=settings.index_collection,
            batch_size=settings.write_batch_size,
        )
    reindex_queue = ReindexQueue()
    record_indexer = RecordIndexer(
        search_index=search_index,
        identity=IdentityGenerator(search_index),
        extractor=JsonRecordExtractor(),
        reindex_queue=reindex_queue,
        settings=settings,
    )
    return Hotfolder(record_indexer, reindex_queue, settings.hotfolder_path)
