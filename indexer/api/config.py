"""
Configuration API endpoints.
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Optional
import logging

from indexer.config.fields import FieldConfiguration
from indexer.config.settings import get_settings

router = APIRouter()
logger = logging.getLogger(__name__)


class ConfigResponse(BaseModel):
    """Current configuration response."""
    api_version: str
    index_path: str
    index_collection: str
    hotfolder_path: str
    indexed_records_path: str
    page_threads: int
    source_size_threshold: int
    data_folder_size_threshold: int
    hierarchical_documents: bool
    aggregate_records: bool
    field_config_file: Optional[str] = None
    fields: FieldConfiguration


@router.get("/config", response_model=ConfigResponse)
async def get_config():
    """
    Get the current indexer configuration.

    Returns:
        Storage locations, strategy thresholds and field propagation lists.
    """
    settings = get_settings()
    try:
        fields = settings.get_field_configuration()
    except ValueError as e:
        logger.error(f"Invalid field configuration: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return ConfigResponse(
        api_version=settings.version,
        index_path=settings.index_path,
        index_collection=settings.index_collection,
        hotfolder_path=str(settings.hotfolder_path),
        indexed_records_path=str(settings.indexed_records_path),
        page_threads=settings.page_threads,
        source_size_threshold=settings.source_size_threshold,
        data_folder_size_threshold=settings.data_folder_size_threshold,
        hierarchical_documents=settings.hierarchical_documents,
        aggregate_records=settings.aggregate_records,
        field_config_file=str(settings.field_config_file) if settings.field_config_file else None,
        fields=fields,
    )
