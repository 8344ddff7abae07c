"""
Configuration system.

Two layers:
- Settings: process-wide, environment based (pydantic-settings).
- CrawlConfiguration: options for a single crawl run, layered as
  defaults -> YAML file -> command-line overrides.
"""

from __future__ import annotations

import posixpath
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

import structlog
import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_FILE = "config.yaml"

# Words found in page content that we never want to count as terms.
DEFAULT_NOISE_WORDS: list[str] = [
    "skip",
    "content",
    "arcgis",
    "developers",
    "dashboard",
    "false",
    "true",
    "nil",
    "null",
    "void",
    "copyright",
    "rights",
    "reserved",
]


class ConfigurationError(Exception):
    """Raised when a crawl cannot start because its configuration is unusable."""


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_VERSION: str = "1.0.0"
    ENV: Literal["development", "staging", "production"] = "development"

    # CORS
    CORS_ORIGINS: Annotated[list[str], NoDecode] = ["http://localhost:3000"]

    # Crawler
    CRAWLER_USER_AGENT: str = "SiteScoreBot/1.0"
    CRAWLER_REQUEST_TIMEOUT: float = 30.0
    CRAWLER_RATE_LIMIT_RPS: float = 1.0       # one request per second
    CRAWLER_MAX_CONNECTIONS: int = Field(default=1, ge=1)
    CRAWLER_NOISE_WORDS: Annotated[list[str], NoDecode] = Field(default_factory=lambda: list(DEFAULT_NOISE_WORDS))

    # API
    API_MAX_FINISHED_CRAWLS: int = Field(default=50, ge=1)   # finished runs kept in memory

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: Literal["json", "console"] = "console"

    @field_validator("CORS_ORIGINS", "CRAWLER_NOISE_WORDS", mode="before")
    @classmethod
    def parse_csv_list(cls, v: str | list) -> list:
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance - created once per process."""
    return Settings()


class CrawlConfiguration(BaseModel):
    """
    Options for one crawl run.

    YAML files use the camelCase keys (startPage, subPathOnly, saveToCSV,
    showReport); Python callers may use either form.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    protocol: str = "https"
    host: str = Field(..., min_length=1)
    start_page: str = Field(..., min_length=1, alias="startPage")
    sub_path_only: bool = Field(default=True, alias="subPathOnly")
    save_to_csv: str = Field(default="", alias="saveToCSV")
    show_report: bool = Field(default=True, alias="showReport")
    debug: bool = False
    base_path: str = Field(default="", alias="basePath")

    @field_validator("protocol")
    @classmethod
    def strip_protocol_colon(cls, v: str) -> str:
        scheme = v.strip().rstrip("/").rstrip(":").lower()
        if scheme not in ("http", "https"):
            raise ValueError(f"protocol must be http or https, got '{v}'")
        return scheme

    @field_validator("host")
    @classmethod
    def normalize_host(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("start_page")
    @classmethod
    def root_start_page(cls, v: str) -> str:
        v = v.strip()
        return v if v.startswith("/") else "/" + v

    @model_validator(mode="after")
    def derive_base_path(self) -> CrawlConfiguration:
        # The parent folder of the start page bounds the analysis.
        base_path = posixpath.dirname(self.start_page) if self.sub_path_only else ""
        object.__setattr__(self, "base_path", base_path)
        return self


# YAML keys we honour; anything else in the file is ignored.
_YAML_KEYS = ("protocol", "host", "startPage", "subPathOnly", "saveToCSV", "showReport", "debug")


def read_yaml_configuration(path: str | Path) -> dict[str, Any]:
    """Read the YAML configuration file. A missing file yields no options."""
    config_path = Path(path)
    if not config_path.exists():
        logger.info("No config file", path=str(config_path))
        return {}

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot load YAML {config_path}: {exc}") from exc

    if data is None:
        logger.warning("Empty config file", path=str(config_path))
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    return {key: data[key] for key in _YAML_KEYS if key in data}


def load_configuration(
    config_path: str | Path | None = DEFAULT_CONFIG_FILE,
    overrides: dict[str, Any] | None = None,
) -> CrawlConfiguration:
    """
    Build the run configuration.

    Overrides are keyed by field name (host, start_page, ...); None values
    mean "not given" and leave the file/default value in place.
    """
    options: dict[str, Any] = {}
    if config_path:
        options.update(read_yaml_configuration(config_path))

    aliases = {
        name: field.alias
        for name, field in CrawlConfiguration.model_fields.items()
        if field.alias
    }
    for name, value in (overrides or {}).items():
        if value is None:
            continue
        options.pop(aliases.get(name, name), None)
        options[name] = value

    try:
        return CrawlConfiguration(**options)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
        raise ConfigurationError(f"Invalid crawl configuration: {problems}") from exc
