"""
Application settings management.

Loads configuration from environment variables and provides access to the
field propagation configuration and storage paths.
"""

import os
from pathlib import Path
from typing import Optional
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .fields import FieldConfiguration, load_field_configuration


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API Configuration
    api_host: str = Field(default="localhost", description="API server host")
    api_port: int = Field(default=8120, description="API server port")

    # Search index
    index_path: str = Field(
        default_factory=lambda: str(Path.home() / ".local" / "share" / "viewer-indexer" / "qdrant"),
        description="Path to the Qdrant storage directory, or ':memory:'"
    )
    index_collection: str = Field(default="records", description="Qdrant collection holding all documents")

    # Folders
    hotfolder_path: Path = Field(
        default_factory=lambda: Path.home() / ".local" / "share" / "viewer-indexer" / "hotfolder",
        description="Folder receiving record source and job files"
    )
    indexed_records_path: Path = Field(
        default_factory=lambda: Path.home() / ".local" / "share" / "viewer-indexer" / "indexed",
        description="Data repository keeping the source of every indexed record"
    )
    temp_path: Path = Field(
        default_factory=lambda: Path.home() / ".cache" / "viewer-indexer" / "tmp",
        description="Parent folder for disk-backed staging areas"
    )

    # Indexing behaviour
    page_threads: int = Field(default=1, ge=1, description="Worker pool size for page documents")
    source_size_threshold: int = Field(
        default=10 * 1024 * 1024,
        description="Source file size (bytes) from which documents are staged on disk"
    )
    data_folder_size_threshold: int = Field(
        default=100 * 1024 * 1024,
        description="Bulk data folder size (bytes) from which documents are staged on disk"
    )
    hierarchical_documents: bool = Field(
        default=False,
        description="Store structure and pages as nested documents of the record"
    )
    aggregate_records: bool = Field(
        default=False,
        description="Add SUPERDEFAULT and SUPERFULLTEXT to the record document"
    )
    add_volume_collections_to_anchor: bool = Field(
        default=True,
        description="Merge volume collections into their anchor"
    )
    add_label_to_children: bool = Field(
        default=False,
        description="Add ancestor labels to the DEFAULT field of child documents"
    )
    write_batch_size: int = Field(default=5000, ge=1, description="Documents per write batch")
    field_config_file: Optional[Path] = Field(
        default=None,
        description="JSON file with field propagation lists"
    )

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[Path] = Field(
        default_factory=lambda: Path.home() / ".local" / "share" / "viewer-indexer" / "logs" / "indexer.log",
        description="Path to log file"
    )

    # Application version
    version: str = Field(default="0.1.0", description="Indexer version")

    @field_validator(
        "hotfolder_path", "indexed_records_path", "temp_path", "field_config_file", "log_file",
        mode="before",
    )
    @classmethod
    def expand_path(cls, v):
        """Expand user home directory in paths."""
        if v is None or v == "":
            return None
        path_str = str(v)
        if path_str.startswith("~"):
            path_str = os.path.expanduser(path_str)
        return Path(path_str)

    @field_validator("index_path", mode="before")
    @classmethod
    def expand_index_path(cls, v):
        """Expand user home directory in the index path, keeping ':memory:' as is."""
        path_str = str(v)
        if path_str.startswith("~"):
            path_str = os.path.expanduser(path_str)
        return path_str

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @property
    def in_memory_index(self) -> bool:
        return self.index_path == ":memory:"

    def get_field_configuration(self) -> FieldConfiguration:
        """Get the configured field propagation lists."""
        return load_field_configuration(self.field_config_file)

    def ensure_directories(self):
        """Create necessary directories if they don't exist."""
        self.hotfolder_path.mkdir(parents=True, exist_ok=True)
        self.indexed_records_path.mkdir(parents=True, exist_ok=True)
        self.temp_path.mkdir(parents=True, exist_ok=True)
        if not self.in_memory_index:
            Path(self.index_path).mkdir(parents=True, exist_ok=True)

        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global settings instance.

    Creates and caches the settings on first call.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
        _settings.ensure_directories()
    return _settings


def reset_settings():
    """Reset the global settings instance (mainly for testing)."""
    global _settings
    _settings = None
