"""
Inspection session state owned by the caller.

An ``InspectionSession`` is an immutable value describing where the user is
in one inspection: welcome, capturing a photo, analyzing, or reviewing
results. Every transition returns a new session; the orchestrator itself
never touches it.
"""

from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict, Field

from shared.images import ImageBlob
from shared.logging import get_logger

from .errors import AnalysisError, InvalidTransitionError
from .models import AnalysisReport, ProgressEvent
from .pipeline import AnalysisOrchestrator


class InspectionStep(str, Enum):
    """Screens of one inspection."""

    WELCOME = "welcome"
    CAPTURING = "capturing"
    ANALYZING = "analyzing"
    RESULTS = "results"


class GeoPoint(BaseModel):
    """Location tag attached to an inspection."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)

    def __str__(self) -> str:
        return f"{self.lat:.4f}, {self.lon:.4f}"


class InspectionSession(BaseModel):
    """Immutable state of one pothole inspection."""

    model_config = ConfigDict(frozen=True)

    step: InspectionStep = InspectionStep.WELCOME
    image: Optional[ImageBlob] = None
    location: Optional[GeoPoint] = None
    progress: int = 0
    message: str = ""
    report: Optional[AnalysisReport] = None
    error: Optional[str] = None

    def _require(self, *steps: InspectionStep) -> None:
        if self.step not in steps:
            allowed = ", ".join(step.value for step in steps)
            raise InvalidTransitionError(
                f"Cannot perform this transition from '{self.step.value}' (allowed: {allowed})"
            )

    def capture(
        self, image: ImageBlob, location: Optional[GeoPoint] = None
    ) -> "InspectionSession":
        """Attach a newly captured photo and start over from the capture screen."""
        self._require(InspectionStep.WELCOME, InspectionStep.CAPTURING, InspectionStep.RESULTS)
        return InspectionSession(
            step=InspectionStep.CAPTURING,
            image=image,
            location=location,
        )

    def tag_location(self, location: GeoPoint) -> "InspectionSession":
        """Attach or replace the location tag."""
        self._require(InspectionStep.WELCOME, InspectionStep.CAPTURING, InspectionStep.RESULTS)
        return self.model_copy(update={"location": location})

    def begin_analysis(self) -> "InspectionSession":
        self._require(InspectionStep.CAPTURING)
        if self.image is None:
            raise InvalidTransitionError("Cannot analyze without a captured photo")
        return self.model_copy(
            update={
                "step": InspectionStep.ANALYZING,
                "progress": 0,
                "message": "",
                "report": None,
                "error": None,
            }
        )

    def record_progress(self, event: ProgressEvent) -> "InspectionSession":
        self._require(InspectionStep.ANALYZING)
        return self.model_copy(update={"progress": event.percent, "message": event.message})

    def complete(self, report: AnalysisReport) -> "InspectionSession":
        self._require(InspectionStep.ANALYZING)
        return self.model_copy(update={"step": InspectionStep.RESULTS, "report": report})

    def fail(self, error: str) -> "InspectionSession":
        """Return to the capture screen so the user can retry."""
        self._require(InspectionStep.ANALYZING)
        return self.model_copy(
            update={
                "step": InspectionStep.CAPTURING,
                "progress": 0,
                "message": "",
                "error": error,
            }
        )

    def reset(self) -> "InspectionSession":
        """Start a new inspection."""
        return InspectionSession()


SessionCallback = Callable[[InspectionSession], None]


async def run_inspection(
    session: InspectionSession,
    orchestrator: AnalysisOrchestrator,
    on_change: Optional[SessionCallback] = None,
) -> InspectionSession:
    """
    Analyze the session's photo and return the resulting session.

    The returned session is in the results step on success, or back in the
    capturing step with ``error`` set on failure. ``on_change`` receives every
    intermediate session.
    """
    logger = get_logger().bind(component="inspection")
    current = session.begin_analysis()
    if on_change is not None:
        on_change(current)

    def handle_progress(event: ProgressEvent) -> None:
        nonlocal current
        current = current.record_progress(event)
        if on_change is not None:
            on_change(current)

    try:
        report = await orchestrator.run_analysis(current.image, on_progress=handle_progress)
    except AnalysisError as e:
        logger.warning("Inspection analysis failed", stage=e.stage, call=e.call)
        current = current.fail(str(e))
    else:
        current = current.complete(report)

    if on_change is not None:
        on_change(current)
    return current
