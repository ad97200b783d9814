"""Catalog configuration: environment settings plus config/config.yml."""

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "config.yml"


class StorageConfig(BaseModel):
    """Product file locations and cache lifetime."""
    data_file: str = "products.json"
    backup_file: str = "products.backup.json"
    cache_ttl_seconds: float = 300.0


class CatalogConfig(BaseModel):
    """Business rule limits."""
    max_price: float = 999999.99
    low_stock_threshold: int = 10


class LoggingFilesConfig(BaseModel):
    """Per-logger rotating file paths."""
    store: str = "logs/store.log"
    catalog: str = "logs/catalog.log"
    error: str = "logs/error.log"


class LoggingConfig(BaseModel):
    """Log level, format and rotation."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    max_bytes: int = 10485760  # 10MB
    backup_count: int = 5
    files: LoggingFilesConfig = LoggingFilesConfig()


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    rate_limit_requests: int = 100
    rate_limit_window_seconds: int = 900
    max_body_bytes: int = 10485760
    # Only enable behind a reverse proxy that sets X-Forwarded-For itself
    trust_proxy_headers: bool = False


class YAMLConfig(BaseModel):
    """Sections of config/config.yml; missing sections use their defaults."""
    storage: StorageConfig = StorageConfig()
    catalog: CatalogConfig = CatalogConfig()
    logging: LoggingConfig = LoggingConfig()
    server: ServerConfig = ServerConfig()


class Settings(BaseSettings):
    """Process settings read from the environment or `.env`."""

    environment: str = Field(default="development", description="Environment (development/production)")
    log_level: Optional[str] = Field(default=None, description="Override log level")
    host: str = Field(default="0.0.0.0", description="Server bind address")
    port: int = Field(default=3000, description="Server port")
    data_dir: str = Field(default="data", description="Directory holding the product files")
    api_prefix: str = Field(default="/api", description="URL prefix for the API")
    api_version: str = Field(default="v1", description="API version path segment")
    cors_origin: str = Field(
        default="http://localhost:3000",
        description="Comma separated list of allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


class AppConfig:
    """Environment settings and YAML sections behind one object."""

    def __init__(self, config_path: Optional[Path] = None):
        self.env = Settings()

        config_path = config_path or CONFIG_PATH
        if config_path.exists():
            try:
                with open(config_path, "r", encoding="utf-8") as f:
                    yaml_data = yaml.safe_load(f) or {}
            except (OSError, yaml.YAMLError) as e:
                raise ConfigurationError(
                    f"Could not read configuration file: {config_path}",
                    details={"error": str(e)}
                )
            try:
                self.yaml = YAMLConfig.model_validate(yaml_data)
            except PydanticValidationError as e:
                raise ConfigurationError(
                    f"Invalid configuration file: {config_path}",
                    details={"error": str(e)}
                )
        else:
            self.yaml = YAMLConfig()

        # LOG_LEVEL wins over the YAML level
        if self.env.log_level:
            self.yaml.logging.level = self.env.log_level

    @property
    def storage(self) -> StorageConfig:
        return self.yaml.storage

    @property
    def catalog(self) -> CatalogConfig:
        return self.yaml.catalog

    @property
    def logging(self) -> LoggingConfig:
        return self.yaml.logging

    @property
    def server(self) -> ServerConfig:
        return self.yaml.server

    @property
    def is_production(self) -> bool:
        return self.env.environment.lower() == "production"

    @property
    def data_path(self) -> Path:
        return Path(self.env.data_dir) / self.storage.data_file

    @property
    def backup_path(self) -> Path:
        return Path(self.env.data_dir) / self.storage.backup_file

    @property
    def api_base_path(self) -> str:
        return f"{self.env.api_prefix.rstrip('/')}/{self.env.api_version}"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.env.cors_origin.split(",") if origin.strip()]


@lru_cache()
def get_config() -> AppConfig:
    """Return the process-wide configuration, loading it on first use."""
    return AppConfig()
