"""
Indexing API endpoints.
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from pathlib import Path
from typing import Optional
import logging
import threading

from indexer.config.settings import get_settings
from indexer.models.record import RecordDescriptor
from indexer.models.result import IndexingResult
from indexer.services.hotfolder import Hotfolder, create_hotfolder

router = APIRouter()
logger = logging.getLogger(__name__)


class IndexRecordRequest(BaseModel):
    """Request to index one record source."""
    path: str = Field(..., description="Path to the record source file")
    data_folders: dict[str, str] = Field(
        default_factory=dict,
        description="Auxiliary data folders by kind; discovered next to the source if empty"
    )


class QueueEntryResponse(BaseModel):
    """One queued job file."""
    path: str
    priority: str


class QueueResponse(BaseModel):
    """Current contents of the re-index queue."""
    size: int
    entries: list[QueueEntryResponse]


class ProcessQueueResponse(BaseModel):
    """Results of a queue run."""
    queued: int
    processed: int
    failed: int
    results: list[IndexingResult]


_hotfolder: Optional[Hotfolder] = None
_hotfolder_lock = threading.Lock()


def get_hotfolder() -> Hotfolder:
    """Dependency providing the shared hotfolder (created on first use)."""
    global _hotfolder
    with _hotfolder_lock:
        if _hotfolder is None:
            _hotfolder = create_hotfolder(get_settings())
        return _hotfolder


def reset_hotfolder():
    """Close and drop the shared hotfolder (shutdown and tests)."""
    global _hotfolder
    with _hotfolder_lock:
        if _hotfolder is not None:
            _hotfolder.close()
        _hotfolder = None


@router.post("/records/index", response_model=IndexingResult)
def index_record(request: IndexRecordRequest, hotfolder: Hotfolder = Depends(get_hotfolder)):
    """
    Index a record source file.

    Args:
        request: Source path and optional data folders.

    Returns:
        Indexing result with the record PI.
    """
    path = Path(request.path).expanduser()
    if not path.is_file():
        raise HTTPException(status_code=404, detail=f"Record source not found: {request.path}")

    data_folders = {kind: Path(folder).expanduser() for kind, folder in request.data_folders.items()}
    if not data_folders:
        data_folders = hotfolder.find_data_folders(path)

    logger.info(f"Index request for {path.name}")
    result = hotfolder.index(RecordDescriptor(main_path=path, data_folders=data_folders))

    if not result.ok:
        raise HTTPException(status_code=422, detail=result.message)
    return result


@router.delete("/records/{pi}", response_model=IndexingResult)
def delete_record(
    pi: str,
    trace: bool = Query(True, description="Leave a tombstone document"),
    hotfolder: Hotfolder = Depends(get_hotfolder),
):
    """
    Delete a record and all its documents.

    Anchors that still have indexed volumes are not deleted.
    """
    logger.info(f"Delete request for {pi} (trace={trace})")
    result = hotfolder.delete(pi, trace=trace)

    if not result.ok:
        raise HTTPException(status_code=409, detail=result.message)
    return result


@router.get("/queue", response_model=QueueResponse)
def get_queue(hotfolder: Hotfolder = Depends(get_hotfolder)):
    """List the job files waiting for (re-)indexing."""
    entries = [
        QueueEntryResponse(path=str(entry.path), priority=entry.priority.value)
        for entry in hotfolder.reindex_queue.entries()
    ]
    return QueueResponse(size=len(entries), entries=entries)


@router.post("/queue/process", response_model=ProcessQueueResponse)
def process_queue(
    limit: Optional[int] = Query(None, ge=1, description="Maximum number of jobs to process"),
    hotfolder: Hotfolder = Depends(get_hotfolder),
):
    """
    Queue the files waiting in the hotfolder and process the queue.

    Returns:
        Per-job results in processing order.
    """
    queued = hotfolder.scan()
    results = hotfolder.process_queue(limit=limit)
    failed = sum(1 for result in results if not result.ok)
    if failed:
        logger.warning(f"{failed} of {len(results)} queued jobs failed")
    return ProcessQueueResponse(
        queued=queued,
        processed=len(results),
        failed=failed,
        results=results,
    )
