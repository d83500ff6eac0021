"""
videocanvas Configuration
=========================

This module handles configuration loading for videocanvas.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    VIDEOCANVAS_DEMUX_TIMEOUT        -> decoder.demux_timeout_seconds
    VIDEOCANVAS_FRAME_TIMEOUT        -> decoder.frame_timeout_seconds
    VIDEOCANVAS_PARALLEL_DOWNLOADS   -> scheduler.parallel_downloads
    VIDEOCANVAS_PARALLEL_PROCESS     -> scheduler.parallel_process
    VIDEOCANVAS_DISPATCH_INTERVAL_MS -> scheduler.dispatch_interval_ms
    VIDEOCANVAS_CACHE_MAX_MB         -> scheduler.cache_max_mb
    VIDEOCANVAS_PREPROCESS_URL       -> fetch.base_url
    VIDEOCANVAS_PORT                 -> server.port
    VIDEOCANVAS_LOG_LEVEL            -> logging.level
    PORT                             -> server.port (Cloud Run)

Example:
    from videocanvas.config import settings

    print(settings.scheduler.parallel_downloads)
    print(settings.decoder.frame_timeout_seconds)
"""

import os
import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AppConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="videocanvas-preprocessor", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class DecoderSettings(BaseModel):
    """Demux/decode negotiation and frame wait configuration."""

    demux_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Maximum wait for a decode configuration",
    )
    frame_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Maximum wait for a decoded frame during seek",
    )


class SchedulerSettings(BaseModel):
    """Preprocessing scheduler configuration."""

    parallel_downloads: int = Field(
        default=10,
        ge=1,
        description="Maximum concurrently active download tasks",
    )
    parallel_process: int = Field(
        default=10,
        ge=1,
        description="Maximum concurrently active process tasks",
    )
    dispatch_interval_ms: int = Field(
        default=50,
        ge=1,
        description="Interval between dispatch passes in milliseconds",
    )
    download_timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Total timeout of one download task",
    )
    cache_max_entries: int = Field(
        default=32,
        ge=1,
        description="Maximum number of cached downloads",
    )
    cache_max_mb: int = Field(
        default=512,
        ge=1,
        description="Maximum total size of cached downloads in MiB",
    )


class FetchSettings(BaseModel):
    """Canvas-side payload fetch configuration."""

    base_url: str = Field(
        default="http://localhost:8001",
        description="Base URL of the preprocessing service",
    )
    timeout_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Total timeout of one preprocess request",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8001, ge=1, le=65535, description="Bind port")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="json", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for videocanvas.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    app: AppConfig = Field(default_factory=AppConfig)
    decoder: DecoderSettings = Field(default_factory=DecoderSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    fetch: FetchSettings = Field(default_factory=FetchSettings)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Decoder settings
    if env_demux := os.environ.get("VIDEOCANVAS_DEMUX_TIMEOUT"):
        config_data.setdefault("decoder", {})["demux_timeout_seconds"] = float(env_demux)
    if env_frame := os.environ.get("VIDEOCANVAS_FRAME_TIMEOUT"):
        config_data.setdefault("decoder", {})["frame_timeout_seconds"] = float(env_frame)

    # Scheduler settings
    if env_dl := os.environ.get("VIDEOCANVAS_PARALLEL_DOWNLOADS"):
        config_data.setdefault("scheduler", {})["parallel_downloads"] = int(env_dl)
    if env_proc := os.environ.get("VIDEOCANVAS_PARALLEL_PROCESS"):
        config_data.setdefault("scheduler", {})["parallel_process"] = int(env_proc)
    if env_interval := os.environ.get("VIDEOCANVAS_DISPATCH_INTERVAL_MS"):
        config_data.setdefault("scheduler", {})["dispatch_interval_ms"] = int(env_interval)
    if env_cache := os.environ.get("VIDEOCANVAS_CACHE_MAX_MB"):
        config_data.setdefault("scheduler", {})["cache_max_mb"] = int(env_cache)

    # Fetch settings
    if env_url := os.environ.get("VIDEOCANVAS_PREPROCESS_URL"):
        config_data.setdefault("fetch", {})["base_url"] = env_url

    # Server settings (Cloud Run uses PORT env var)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("VIDEOCANVAS_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("VIDEOCANVAS_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
