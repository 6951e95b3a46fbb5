"""
Shared Pydantic schemas for the Pothole Snap analysis pipeline.

This module defines the data models used across components for:
- The request/response contract of the five inference flows
- Service health checks
- Configuration validation

Wire field names are camelCase; the Python attributes are snake_case with the
wire names as aliases. Always serialize with ``by_alias=True``.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, validator

from .images import ImageBlob

# =============================================================================
# ENUMS
# =============================================================================


class Flow(str, Enum):
    """The five remote inference flows."""

    DETECT_POTHOLES = "detect-potholes"
    ESTIMATE_DIMENSIONS = "estimate-dimensions"
    ESTIMATE_MATERIAL = "estimate-material"
    CLASSIFY_SEVERITY = "classify-severity"
    ESTIMATE_VOLUME = "estimate-volume"

    @property
    def endpoint(self) -> str:
        return f"/flows/{self.value}"


class SeverityLevel(str, Enum):
    """Severity levels for potholes."""

    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"


# =============================================================================
# FLOW CONTRACT MODELS
# =============================================================================


class WireModel(BaseModel):
    """Base for models exchanged with the inference service."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, ser_json_inf_nan="constants")

    def to_wire(self) -> dict[str, Any]:
        """Serialize using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True)


class PhotoInput(WireModel):
    """Request carrying a single photo as a data URI."""

    photo_data_uri: str = Field(
        ...,
        alias="photoDataUri",
        description=(
            "A photo, as a data URI that must include a MIME type and use "
            "Base64 encoding. Expected format: 'data:<mimetype>;base64,<encoded_data>'."
        ),
    )

    @field_validator("photo_data_uri")
    @classmethod
    def validate_photo_data_uri(cls, v: str) -> str:
        """Reject anything that is not a decodable image data URI."""
        ImageBlob.from_data_uri(v)
        return v


class DimensionsInput(WireModel):
    """Request carrying pothole dimensions in centimeters."""

    length: float = Field(..., description="The length of the pothole in centimeters.")
    width: float = Field(..., description="The width of the pothole in centimeters.")
    depth: float = Field(..., description="The depth of the pothole in centimeters.")


class DetectPotholesInput(PhotoInput):
    """Request for the detection flow."""


class DetectPotholesOutput(WireModel):
    """Response of the detection flow.

    ``highlighted_image`` may be empty or missing when the model produced no
    image; callers fall back to the original photo in that case.
    """

    highlighted_image: Optional[str] = Field(
        None,
        alias="highlightedImage",
        description="An image with potholes highlighted, as a data URI.",
    )

    @field_validator("highlighted_image", mode="before")
    @classmethod
    def drop_non_string_image(cls, v: Any) -> Optional[str]:
        """A non-string image field is treated as absent."""
        if isinstance(v, str):
            return v
        return None


class EstimateDimensionsInput(PhotoInput):
    """Request for the dimension estimation flow."""


class EstimateDimensionsOutput(DimensionsInput):
    """Response of the dimension estimation flow."""

    unit: str = Field(
        ...,
        description="The unit of measurement for the pothole dimensions, which is centimeters.",
    )

    def to_dimensions(self) -> DimensionsInput:
        """Dimension fields exactly as estimated, for the downstream flows."""
        return DimensionsInput(length=self.length, width=self.width, depth=self.depth)


class EstimateMaterialInput(PhotoInput):
    """Request for the road material flow."""


class EstimateMaterialOutput(WireModel):
    """Response of the road material flow."""

    material_type: str = Field(
        ...,
        alias="materialType",
        description="The estimated road material type (asphalt, concrete, or unknown).",
    )
    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="A confidence score (0-1) for the material type estimation.",
    )


class ClassifySeverityInput(PhotoInput, DimensionsInput):
    """Request for the severity classification flow."""


class ClassifySeverityOutput(WireModel):
    """Response of the severity classification flow."""

    severity: SeverityLevel = Field(
        ..., description="The severity of the pothole (minor, moderate, or severe)."
    )
    justification: str = Field(
        ...,
        description=(
            "The justification for the assigned severity based on visual "
            "characteristics and dimensions."
        ),
    )


class EstimateVolumeInput(DimensionsInput):
    """Request for the volume estimation flow."""


class EstimateVolumeOutput(WireModel):
    """Response of the volume estimation flow."""

    volume: float = Field(
        ..., description="The estimated volume of the pothole in cubic centimeters."
    )
    material_suggestion: str = Field(
        ...,
        alias="materialSuggestion",
        description="A suggestion for the type of material to use for filling the pothole.",
    )


# =============================================================================
# HEALTH CHECK MODELS
# =============================================================================


class HealthStatus(str, Enum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthCheck(BaseModel):
    """Health check response model."""

    service: str
    status: HealthStatus
    version: str = "1.0.0"
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    details: dict[str, Any] = {}


# =============================================================================
# CONFIGURATION MODELS
# =============================================================================


class ServiceConfig(BaseModel):
    """Service configuration."""

    host: str = "0.0.0.0"
    port: int
    timeout_seconds: int = 60
    max_concurrent_requests: int = 10


class ImageConfig(BaseModel):
    """Image loading configuration."""

    max_size_mb: int = 10
    allowed_formats: list[str] = ["jpeg", "jpg", "png", "webp"]


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "text"

    @validator("level")
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()
