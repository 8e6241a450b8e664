"""
Shopping Cart Insights
Centralized Configuration Management

Pydantic settings with environment variable and .env support for the source
files, the pipeline parameters, logging and data quality checks.
"""

from functools import lru_cache
from typing import Optional, List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourceSettings(BaseSettings):
    """Source table file configuration"""

    model_config = SettingsConfigDict(env_prefix="SOURCE_")

    data_dir: str = Field(default="./data/input", description="Directory holding the source files")
    file_format: str = Field(default="csv", description="Source file format: csv, parquet or jsonl")
    customers_file: str = Field(default="customers", description="Customers file stem")
    orders_file: str = Field(default="orders", description="Orders file stem")
    products_file: str = Field(default="products", description="Products file stem")
    sales_file: str = Field(default="sales", description="Sales file stem")
    delimiter: str = Field(default=",", description="CSV delimiter")
    encoding: str = Field(default="utf8", description="CSV encoding")
    date_format: str = Field(default="%Y-%m-%d", description="Date format for order and delivery dates")
    null_values: List[str] = Field(
        default=["", "NULL", "null", "None", "NA", "N/A"],
        description="Strings read as null",
    )

    @property
    def table_files(self) -> dict:
        """File stem per source table"""
        return {
            "customers": self.customers_file,
            "orders": self.orders_file,
            "products": self.products_file,
            "sales": self.sales_file,
        }


class PipelineSettings(BaseSettings):
    """Fact table and analytics configuration"""

    model_config = SettingsConfigDict(env_prefix="PIPELINE_")

    output_path: str = Field(default="./data/curated", description="Export directory for result sets")
    output_format: str = Field(default="parquet", description="Export format: parquet or csv")
    top_n_products: int = Field(default=10, description="Number of products in the revenue ranking")
    moving_average_window: int = Field(default=3, description="Trailing window size in sales days")
    sales_jump_multiplier: float = Field(default=1.5, description="Jump threshold as a multiple of the window mean")

    @field_validator("moving_average_window", "top_n_products")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Window and ranking sizes must be positive"""
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v


class MonitoringSettings(BaseSettings):
    """Logging Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL", description="Logging level")
    log_format: str = Field(default="json", alias="LOG_FORMAT", description="Log format: json or text")
    log_file: Optional[str] = Field(default=None, alias="LOG_FILE", description="Log file path")


class DataQualitySettings(BaseSettings):
    """Data Quality Configuration"""

    model_config = SettingsConfigDict(env_prefix="")

    enable_data_quality_checks: bool = Field(
        default=True,
        alias="ENABLE_DATA_QUALITY_CHECKS",
        description="Run quality checks on sources and the fact table"
    )
    min_bucketed_age: int = Field(
        default=20,
        alias="MIN_BUCKETED_AGE",
        description="Lowest age the age buckets are defined for"
    )
    max_bucketed_age: int = Field(
        default=80,
        alias="MAX_BUCKETED_AGE",
        description="Exclusive upper age the age buckets are defined for"
    )


class Settings(BaseSettings):
    """
    Main Application Settings

    Aggregates all configuration sections and provides a single entry point
    for accessing application configuration.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="cart-insights", alias="APP_NAME", description="Application name")
    app_env: str = Field(default="development", alias="APP_ENV", description="Environment")

    # Version
    version: str = Field(default="1.0.0", description="Application version")

    # Subsystem configurations
    sources: SourceSettings = Field(default_factory=SourceSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    data_quality: DataQualitySettings = Field(default_factory=DataQualitySettings)

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment value"""
        allowed = ["development", "staging", "production", "testing"]
        if v.lower() not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v.lower()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses LRU cache to ensure settings are only loaded once.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
