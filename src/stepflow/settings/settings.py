"""Application settings configuration."""

from pydantic_settings import BaseSettings, CliImplicitFlag, SettingsConfigDict
from pydantic import Field
from typing import Dict, Optional
from pathlib import Path


class Settings(BaseSettings):
    """Application settings.

    Values come from init arguments, then ``STEPFLOW_*`` environment
    variables, then the ``.env`` file, then the defaults below. The launcher
    additionally parses command line arguments.
    """

    model_config = SettingsConfigDict(
        env_prefix="STEPFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    app_name: str = "stepflow"
    app_version: str = "0.1.0"

    # Project configuration
    project_path: Path = Field(default_factory=Path.cwd)
    config_dir: str = ".claude"  # Artifact root, relative to project_path
    output_dir: str = "output"  # Run output, relative to project_path

    # API configuration
    api_host: str = "127.0.0.1"
    api_port: int = 3001
    browser: CliImplicitFlag[bool] = True  # --browser / --no-browser
    max_port_attempts: int = 20

    # LLM configuration (any OpenAI-compatible endpoint)
    llm_api_base: str = "http://localhost:11434/v1"
    llm_model: str = "gemma3:27b"
    llm_api_key: str = "not-needed"
    llm_temperature: float = 0.7
    llm_max_tokens: Optional[int] = 4096
    model_aliases: Dict[str, str] = Field(default_factory=dict)  # e.g. {"sonnet": "gemma3:27b"}

    # Logging configuration
    log_level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = None  # Path to log file (None disables file logging)
    log_file_level: str = "DEBUG"
    log_show_path: bool = True
    log_show_time: bool = True
    log_rich_tracebacks: bool = True
    log_file_rotation: str = "10 MB"
    log_file_retention: str = "7 days"
    log_file_compression: str = "zip"

    @property
    def output_root(self) -> Path:
        return Path(self.project_path) / self.output_dir
