"""
Source Ingestion Module
"""
from .sources import SOURCE_SCHEMAS, SourceStore, SourceTables, source_tables_from_frames
from .source_loader import FileFormat, LoadResult, SourceLoader, create_source_loader

__all__ = [
    "SOURCE_SCHEMAS",
    "SourceStore",
    "SourceTables",
    "source_tables_from_frames",
    "FileFormat",
    "LoadResult",
    "SourceLoader",
    "create_source_loader",
]
