"""
Source File Loader

Reads the four source tables from CSV, JSON Lines or Parquet files.
Supports:
- Per-table file configuration
- Required-column validation against the source schema
- Date parsing for order and delivery dates
- Load audit results with file hashes
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
import hashlib

import polars as pl
import structlog
from pydantic import BaseModel

from cart_insights.config import get_settings
from cart_insights.exceptions import SourceUnavailableError
from .sources import (
    SOURCE_SCHEMAS,
    SourceTables,
    apply_source_schema,
    coercion_failures,
    require_columns,
)

logger = structlog.get_logger(__name__)


class FileFormat(str, Enum):
    """Supported file formats"""
    CSV = "csv"
    JSONL = "jsonl"
    PARQUET = "parquet"


class LoadStatus(str, Enum):
    """Table load status"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class SourceFileConfig:
    """Configuration for reading one source table"""
    file_path: Union[str, Path]
    file_format: FileFormat
    table: str
    delimiter: str = ","
    encoding: str = "utf8"
    date_format: str = "%Y-%m-%d"
    null_values: List[str] = field(default_factory=lambda: ["", "NULL", "null", "None", "NA", "N/A"])


class LoadResult(BaseModel):
    """Result of a table load"""
    file_path: str
    table: str
    status: LoadStatus
    rows_loaded: int = 0
    error_message: Optional[str] = None
    load_duration_seconds: float = 0
    started_at: datetime
    completed_at: Optional[datetime] = None
    file_hash: Optional[str] = None
    parse_failures: Dict[str, int] = {}


class SourceLoader:
    """
    Loader for the customers, orders, products and sales files.

    A table that cannot be read is fatal: load_sources raises
    SourceUnavailableError after every table has been attempted, so the
    results list shows all failures at once.

    Example:
        loader = SourceLoader()
        tables = loader.load_sources("data/input")
    """

    def __init__(self, validate_schema: bool = True):
        self.validate_schema = validate_schema
        self.results: List[LoadResult] = []

    def _compute_file_hash(self, file_path: Path) -> str:
        """Compute MD5 hash of file for audit"""
        hash_md5 = hashlib.md5()
        with open(file_path, "rb") as f:
            for chunk in iter(lambda: f.read(4096), b""):
                hash_md5.update(chunk)
        return hash_md5.hexdigest()

    def _read_csv(self, config: SourceFileConfig) -> pl.DataFrame:
        return pl.read_csv(
            config.file_path,
            separator=config.delimiter,
            encoding=config.encoding,
            null_values=config.null_values,
            try_parse_dates=True,
        )

    def _read_jsonl(self, config: SourceFileConfig) -> pl.DataFrame:
        return pl.read_ndjson(config.file_path)

    def _read_parquet(self, config: SourceFileConfig) -> pl.DataFrame:
        return pl.read_parquet(config.file_path)

    def _read_file(self, config: SourceFileConfig) -> pl.DataFrame:
        """Read file based on format"""
        readers = {
            FileFormat.CSV: self._read_csv,
            FileFormat.JSONL: self._read_jsonl,
            FileFormat.PARQUET: self._read_parquet,
        }
        reader = readers.get(config.file_format)
        if not reader:
            raise ValueError(f"Unsupported file format: {config.file_format}")
        return reader(config)

    def load(self, config: SourceFileConfig) -> Tuple[Optional[pl.DataFrame], LoadResult]:
        """
        Load one source table.

        Args:
            config: Source file configuration

        Returns:
            The typed frame (None on failure) and the load result
        """
        file_path = Path(config.file_path)
        started_at = datetime.utcnow()

        result = LoadResult(
            file_path=str(file_path),
            table=config.table,
            status=LoadStatus.RUNNING,
            started_at=started_at,
        )

        logger.info("Loading source table", table=config.table, file=str(file_path))

        df = None
        try:
            if not file_path.exists():
                raise FileNotFoundError(f"File not found: {file_path}")

            result.file_hash = self._compute_file_hash(file_path)
            df = self._read_file(config)

            if self.validate_schema:
                require_columns(config.table, df, SOURCE_SCHEMAS[config.table])

            typed = apply_source_schema(config.table, df, config.date_format)
            result.parse_failures = coercion_failures(df, typed)
            df = typed

            result.status = LoadStatus.COMPLETED
            result.rows_loaded = len(df)

        except Exception as e:
            df = None
            result.status = LoadStatus.FAILED
            result.error_message = str(e)
            logger.error(
                "Source table load failed",
                table=config.table,
                file=str(file_path),
                error=str(e),
            )

        result.completed_at = datetime.utcnow()
        result.load_duration_seconds = (result.completed_at - started_at).total_seconds()

        if result.status == LoadStatus.COMPLETED:
            logger.info(
                "Source table loaded",
                table=config.table,
                rows_loaded=result.rows_loaded,
                duration_seconds=result.load_duration_seconds,
            )

        return df, result

    def load_sources(
        self,
        directory: Optional[Union[str, Path]] = None,
        file_format: Optional[FileFormat] = None,
    ) -> SourceTables:
        """
        Load all four source tables from a directory.

        Args:
            directory: Directory holding the files (default: settings)
            file_format: File format (default: settings)

        Returns:
            SourceTables with every table typed to the source schema
        """
        source_settings = get_settings().sources
        directory = Path(directory or source_settings.data_dir)
        file_format = FileFormat(file_format or source_settings.file_format)

        frames: Dict[str, pl.DataFrame] = {}
        self.results = []

        for table, stem in source_settings.table_files.items():
            config = SourceFileConfig(
                file_path=directory / f"{stem}.{file_format.value}",
                file_format=file_format,
                table=table,
                delimiter=source_settings.delimiter,
                encoding=source_settings.encoding,
                date_format=source_settings.date_format,
                null_values=list(source_settings.null_values),
            )
            df, result = self.load(config)
            self.results.append(result)
            if df is not None:
                frames[table] = df

        failed = [r for r in self.results if r.status == LoadStatus.FAILED]
        if failed:
            first = failed[0]
            raise SourceUnavailableError(first.table, first.error_message or "load failed")

        logger.info(
            "Source tables loaded",
            directory=str(directory),
            **{table: len(df) for table, df in frames.items()},
        )

        return SourceTables(**frames)


def create_source_loader() -> SourceLoader:
    """Create a configured SourceLoader instance"""
    return SourceLoader(
        validate_schema=get_settings().data_quality.enable_data_quality_checks,
    )
