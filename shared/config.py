"""Unified configuration management for Pothole Snap.

One settings object serves the inference service, the orchestrator client
and the CLI. Each component uses only the fields it needs.
"""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, validator

from .schemas import ImageConfig, LogConfig, ServiceConfig

DEFAULT_FLOWS_CONFIG = Path(__file__).parent.parent / "config" / "inference_flows.yml"


class ServiceSettings(BaseModel):
    """Unified settings for all Pothole Snap components."""

    # ========================================================================
    # BASIC SETTINGS
    # ========================================================================
    log_level: str = "INFO"
    log_format: str = "text"
    debug: bool = False
    environment: str = "development"
    service_port: int = 8000

    # ========================================================================
    # INFERENCE CLIENT - used by the orchestrator and the CLI
    # ========================================================================
    inference_service_url: str = "http://localhost:8000"
    service_request_timeout: Optional[int] = 60
    max_concurrent_requests: Optional[int] = 10

    # ========================================================================
    # INFERENCE SERVICE - used by the pothole_ai service
    # ========================================================================
    openai_api_key: Optional[str] = None
    flows_config_path: Optional[str] = None

    # ========================================================================
    # IMAGE SETTINGS
    # ========================================================================
    max_image_size_mb: Optional[int] = 10
    allowed_image_formats: Optional[list[str]] = None

    @validator("log_level")
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @validator("environment")
    def validate_environment(cls, v):
        """Validate environment."""
        valid_envs = ["development", "staging", "production"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Environment must be one of {valid_envs}")
        return v.lower()

    def get_log_config(self) -> LogConfig:
        """Get logging configuration."""
        return LogConfig(level=self.log_level, format=self.log_format)

    def get_service_config(self) -> ServiceConfig:
        """Get service configuration."""
        return ServiceConfig(
            port=self.service_port,
            timeout_seconds=self.service_request_timeout or 60,
            max_concurrent_requests=self.max_concurrent_requests or 10,
        )

    def get_image_config(self) -> ImageConfig:
        """Get image loading configuration."""
        config = ImageConfig()
        if self.max_image_size_mb:
            config.max_size_mb = self.max_image_size_mb
        if self.allowed_image_formats:
            config.allowed_formats = self.allowed_image_formats
        return config

    def get_flows_config_path(self) -> Path:
        """Get the path of the YAML file describing the inference flows."""
        if self.flows_config_path:
            return Path(self.flows_config_path)
        return DEFAULT_FLOWS_CONFIG


# ============================================================================
# UNIFIED SETTINGS LOADER
# ============================================================================

def get_settings() -> ServiceSettings:
    """Get unified settings.

    Loads all environment variables once, components use what they need.
    """
    if not hasattr(get_settings, "_instance"):
        def parse_bool(value: str) -> bool:
            return value.lower() in ("true", "1", "yes", "on")

        def parse_formats(formats_str: str) -> list[str]:
            if not formats_str:
                return []
            return [fmt.strip().lower() for fmt in formats_str.split(",")]

        get_settings._instance = ServiceSettings(
            # Basic settings
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            log_format=os.environ.get("LOG_FORMAT", "text"),
            debug=parse_bool(os.environ.get("DEBUG", "false")),
            environment=os.environ.get("ENVIRONMENT", "development"),
            service_port=int(os.environ.get("SERVICE_PORT", "8000")),

            # Inference client
            inference_service_url=os.environ.get(
                "INFERENCE_SERVICE_URL", "http://localhost:8000"
            ),
            service_request_timeout=int(os.environ.get("SERVICE_REQUEST_TIMEOUT", "60")),
            max_concurrent_requests=int(os.environ.get("MAX_CONCURRENT_REQUESTS", "10")),

            # Inference service
            openai_api_key=os.environ.get("OPENAI_API_KEY"),
            flows_config_path=os.environ.get("FLOWS_CONFIG_PATH"),

            # Image settings
            max_image_size_mb=int(os.environ["MAX_IMAGE_SIZE_MB"]) if os.environ.get("MAX_IMAGE_SIZE_MB") else None,
            allowed_image_formats=parse_formats(os.environ.get("ALLOWED_IMAGE_FORMATS", "")) or None,
        )
    return get_settings._instance
