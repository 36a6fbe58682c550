"""Application configuration using Pydantic Settings."""
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="FLOWCOMPILER_",
        case_sensitive=False,
    )

    # App settings
    app_name: str = "Flow Compiler"
    debug: bool = False

    # Code generation defaults (overridable per request)
    default_target_language: Literal["typescript", "python"] = "typescript"
    default_output_style: Literal["esm", "cjs"] = "esm"
    default_project_name: str = "converted-flow"
    include_comments: bool = True

    # Output layout
    main_file_stem: str = "index"
    project_layout: bool = False

    # Converter plugins discovered through entry points
    load_plugins: bool = True
    plugin_group: str = "flowcompiler.converters"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
