"""
Pydantic models produced by the analysis orchestrator.
"""

from enum import Enum
from typing import Callable, Literal, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from shared.schemas import (
    ClassifySeverityOutput,
    DetectPotholesOutput,
    EstimateDimensionsOutput,
    EstimateMaterialOutput,
    EstimateVolumeOutput,
)


class AnalysisStage(str, Enum):
    """Lifecycle of one orchestrator run."""

    IDLE = "idle"
    DETECTING = "detecting"
    ESTIMATING = "estimating"
    CLASSIFYING = "classifying"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def in_progress(self) -> bool:
        return self in (
            AnalysisStage.DETECTING,
            AnalysisStage.ESTIMATING,
            AnalysisStage.CLASSIFYING,
        )


# Percent and message announced when a stage is entered
STAGE_PROGRESS: dict[AnalysisStage, tuple[int, str]] = {
    AnalysisStage.DETECTING: (10, "Detecting potholes..."),
    AnalysisStage.ESTIMATING: (25, "Estimating dimensions and material..."),
    AnalysisStage.CLASSIFYING: (60, "Classifying severity and volume..."),
    AnalysisStage.COMPLETE: (100, "Analysis complete"),
}


class ProgressEvent(BaseModel):
    """Progress notification emitted while a run advances."""

    model_config = ConfigDict(frozen=True)

    percent: int = Field(..., ge=0, le=100)
    message: str
    stage: AnalysisStage


ProgressCallback = Callable[[ProgressEvent], None]


class AnalysisReport(BaseModel):
    """Aggregated, fully-typed result of one completed run."""

    model_config = ConfigDict(frozen=True)

    run_id: UUID = Field(default_factory=uuid4)
    detection: Optional[DetectPotholesOutput] = None
    dimensions: Optional[EstimateDimensionsOutput] = None
    material: Optional[EstimateMaterialOutput] = None
    severity: Optional[ClassifySeverityOutput] = None
    volume: Optional[EstimateVolumeOutput] = None
    analysis_image_source: Literal["highlighted", "original"] = "original"
    processing_time_ms: int = 0

    @model_validator(mode="after")
    def check_dimension_dependency(self) -> "AnalysisReport":
        """Severity and volume are derived from the dimensions."""
        if self.dimensions is None and (self.severity is not None or self.volume is not None):
            raise ValueError("severity and volume require dimensions")
        return self

    @property
    def is_complete(self) -> bool:
        return all(
            part is not None
            for part in (self.detection, self.dimensions, self.material, self.severity, self.volume)
        )
