"""
Application configuration using Pydantic settings.
"""
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Geography sources
    geo_api_base_url: str = Field(
        default="https://geo.api.gouv.fr",
        description="Base URL for the French administrative geography API"
    )
    regions_geojson_url: str = Field(
        default="https://raw.githubusercontent.com/gregoiredavid/france-geojson/master/regions.geojson",
        description="Static GeoJSON of all regions"
    )
    departments_geojson_url: str = Field(
        default="https://raw.githubusercontent.com/gregoiredavid/france-geojson/master/departements.geojson",
        description="Static GeoJSON of all departments"
    )
    http_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for every geography request"
    )
    cache_region_membership: bool = Field(
        default=True,
        description="Keep region -> departments membership after the first lookup"
    )

    # Parcel dataset
    dataset_path: str = Field(
        default="data.parquet",
        description="Parquet file holding one row per land parcel"
    )
    dataset_chunks: list[str] = Field(
        default=[],
        description="Byte chunks concatenated into the parquet file when set"
    )

    # Retry Configuration
    max_retry_attempts: int = Field(
        default=3,
        description="Maximum number of retry attempts for API calls"
    )
    retry_backoff_multiplier: int = Field(
        default=1,
        description="Multiplier for exponential backoff"
    )
    retry_min_wait: int = Field(
        default=1,
        description="Minimum wait time in seconds between retries"
    )
    retry_max_wait: int = Field(
        default=10,
        description="Maximum wait time in seconds between retries"
    )

    # Search
    search_min_query_length: int = Field(
        default=2,
        description="Queries shorter than this return no candidates"
    )
    search_max_results: int = Field(
        default=8,
        description="Maximum number of merged search candidates"
    )
    commune_search_limit: int = Field(
        default=5,
        description="Maximum number of communes returned by the remote lookup"
    )

    # Display
    default_indicator: str = Field(
        default="altitude",
        description="Indicator used to colour areas at startup (altitude or slope)"
    )
    breakdown_top_n: int = Field(
        default=5,
        description="Number of land-cover categories shown in the breakdown chart"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # CORS Configuration
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins (use specific origins in production)"
    )

    # Rate Limiting
    rate_limit_requests: int = Field(
        default=120,
        description="Maximum requests per minute per client"
    )

    # Application Settings
    app_name: str = Field(
        default="Geodrill Parcel Viewer",
        description="Application name"
    )
    app_version: str = Field(
        default="1.0.0",
        description="Application version"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
