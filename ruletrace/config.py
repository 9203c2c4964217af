"""Configuration for ruletrace.

Two layers:
- Settings: process-level settings read from the environment (RULETRACE_*),
  covering the server, the watcher and the rebuild pipeline.
- ProjectConfig: the project's TOML file (default .config/ruletrace/config.toml)
  declaring specs and their implementations.
"""

import logging
import re
import tomllib
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .engine.core.languages import get_profile
from .exceptions import ConfigError, UnknownLanguageError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(".config") / "ruletrace" / "config.toml"


class Settings(BaseSettings):
    """Process settings, overridable through RULETRACE_* environment variables."""

    model_config = SettingsConfigDict(env_prefix="RULETRACE_", env_file=".env", extra="ignore")

    project_root: Path = Field(default_factory=Path.cwd)
    config_path: Path | None = None

    # HTTP server
    host: str = "127.0.0.1"
    port: int = 3000
    debug: bool = False
    log_level: str = "INFO"
    cors_allowed_origins: str = "*"

    # Rebuild pipeline
    debounce_ms: int = Field(default=200, ge=0, le=5000)
    scan_workers: int = Field(default=4, ge=1, le=64)
    watch_enabled: bool = True
    watch_retry_initial_s: float = Field(default=0.5, gt=0)
    watch_retry_max_s: float = Field(default=30.0, gt=0)

    # MCP responses
    page_size: int = Field(default=50, ge=1, le=1000)
    max_sessions: int = Field(default=1000, ge=1)

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]

    def resolved_config_path(self) -> Path:
        """Config path, relative paths resolved against the project root."""
        path = self.config_path or DEFAULT_CONFIG_PATH
        return path if path.is_absolute() else self.project_root / path


settings = Settings()


# ============ PROJECT CONFIGURATION ============


class NamingConfig(BaseModel):
    """Rule id naming convention enforced by validation."""

    pattern: str | None = Field(default=None, description="Regex every rule id must match")
    prefixes: list[str] = Field(
        default_factory=list, description="Allowed first segments (empty allows any)"
    )

    @field_validator("pattern")
    @classmethod
    def _compiles(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"invalid naming pattern '{value}': {e}") from e
        return value


class ImplConfig(BaseModel):
    """One implementation of a spec: a language plus the files to scan."""

    lang: str = Field(..., description="Language name (e.g. rust, python)")
    name: str | None = Field(default=None, description="Display name, defaults to lang")
    include: list[str] = Field(default_factory=list, description="Glob patterns to scan")
    exclude: list[str] = Field(default_factory=list, description="Glob patterns to skip")

    @model_validator(mode="after")
    def _resolve(self) -> "ImplConfig":
        try:
            profile = get_profile(self.lang)
        except UnknownLanguageError as e:
            raise ValueError(str(e)) from e
        self.lang = profile.name
        if not self.name:
            self.name = profile.name
        if not self.include:
            self.include = list(profile.default_include)
        return self


class SpecConfig(BaseModel):
    """A specification and where its rule-defining markdown lives."""

    name: str = Field(..., min_length=1)
    rules_glob: str | None = None
    rules_file: str | None = None
    rules_url: str | None = None
    naming: NamingConfig = Field(default_factory=NamingConfig)
    impls: list[ImplConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _one_source(self) -> "SpecConfig":
        sources = [s for s in (self.rules_glob, self.rules_file, self.rules_url) if s]
        if len(sources) != 1:
            raise ValueError(
                f"spec '{self.name}' needs exactly one of rules_glob, rules_file, rules_url"
            )
        names = [impl.name for impl in self.impls]
        if len(names) != len(set(names)):
            raise ValueError(f"spec '{self.name}' declares the same impl name twice")
        return self

    @property
    def source(self) -> str:
        return self.rules_glob or self.rules_file or self.rules_url or ""


class ProjectConfig(BaseModel):
    """Root of the project configuration file."""

    specs: list[SpecConfig] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_specs(self) -> "ProjectConfig":
        names = [spec.name for spec in self.specs]
        if len(names) != len(set(names)):
            raise ValueError("spec names must be unique")
        return self

    def get_spec(self, name: str) -> SpecConfig | None:
        for spec in self.specs:
            if spec.name == name:
                return spec
        return None


def parse_project_config(text: str, source: str = "<config>") -> ProjectConfig:
    """Parse TOML text into a validated ProjectConfig.

    Raises:
        ConfigError: on TOML syntax errors or schema violations.
    """
    try:
        data = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Config file {source} has errors:\n{e}") from e
    try:
        return ProjectConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Config file {source} has errors:\n{e}") from e


def load_project_config(path: Path) -> ProjectConfig:
    """Load the project config; a missing file means an empty configuration."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.info(f"Config file {path} not found, starting with empty config")
        return ProjectConfig()
    except OSError as e:
        raise ConfigError(f"Config file {path} not readable: {e}") from e
    return parse_project_config(text, source=str(path))
