"""
Analysis orchestrator for Pothole Snap.

Drives the five inference flows for one captured photo:

1. detection on the original photo
2. dimensions and material, concurrently, on the analysis image
3. severity and volume, concurrently, on the estimated dimensions

Each concurrent stage is a join barrier: every call must succeed before the
run moves on, and the first failure aborts the run and cancels the calls
still in flight.
"""

import asyncio
import time
import uuid
from typing import Any, Awaitable, Optional

from pydantic import ValidationError

from shared.images import ImageBlob
from shared.logging import get_logger
from shared.schemas import (
    ClassifySeverityInput,
    ClassifySeverityOutput,
    DetectPotholesInput,
    DetectPotholesOutput,
    EstimateDimensionsInput,
    EstimateDimensionsOutput,
    EstimateMaterialInput,
    EstimateMaterialOutput,
    EstimateVolumeInput,
    EstimateVolumeOutput,
    WireModel,
)

from .client import InferenceBackend
from .errors import (
    AggregateFailure,
    AnalysisError,
    AnalysisInProgressError,
    CallFailure,
    InferenceError,
    SchemaValidationFailure,
)
from .models import (
    STAGE_PROGRESS,
    AnalysisReport,
    AnalysisStage,
    ProgressCallback,
    ProgressEvent,
)


def resolve_analysis_image(
    detection: DetectPotholesOutput, original: ImageBlob
) -> tuple[str, bool]:
    """Pick the image used by every call after detection.

    Returns the data URI and whether it is the highlighted image. An absent,
    empty or undecodable highlighted image falls back to the original photo.
    """
    highlighted = detection.highlighted_image
    if not highlighted:
        return original.to_data_uri(), False

    try:
        ImageBlob.from_data_uri(highlighted)
    except ValueError:
        return original.to_data_uri(), False

    return highlighted, True


class AnalysisOrchestrator:
    """Runs the pothole analysis pipeline against an inference backend."""

    def __init__(self, backend: InferenceBackend):
        self.backend = backend
        self.logger = get_logger().bind(component="orchestrator")
        self._stage = AnalysisStage.IDLE

    @property
    def stage(self) -> AnalysisStage:
        """Current stage of the most recent run."""
        return self._stage

    async def run_analysis(
        self, image: ImageBlob, on_progress: Optional[ProgressCallback] = None
    ) -> AnalysisReport:
        """
        Analyze one captured photo.

        Args:
            image: The captured photo
            on_progress: Called with each progress event, in order

        Returns:
            The complete report

        Raises:
            AnalysisError: if any inference call fails
            AnalysisInProgressError: if this orchestrator is already running
        """
        if self._stage.in_progress:
            raise AnalysisInProgressError("An analysis run is already in progress")

        run_id = uuid.uuid4()
        start_time = time.time()
        logger = self.logger.bind(run_id=str(run_id))

        logger.info(
            "Analysis run started",
            mime_type=image.mime_type,
            image_size=image.size_bytes,
        )

        try:
            # Detection
            self._enter(AnalysisStage.DETECTING, on_progress)
            detection = await self._invoke(
                "detection",
                self.backend.detect_potholes(
                    DetectPotholesInput(photo_data_uri=image.to_data_uri())
                ),
                DetectPotholesOutput,
            )

            analysis_uri, highlighted = resolve_analysis_image(detection, image)
            if not highlighted:
                logger.info("No usable highlighted image, using the original photo")

            # Dimensions and material
            self._enter(AnalysisStage.ESTIMATING, on_progress)
            dimensions, material = await self._join(
                "estimation",
                self._invoke(
                    "dimensions",
                    self.backend.estimate_dimensions(
                        EstimateDimensionsInput(photo_data_uri=analysis_uri)
                    ),
                    EstimateDimensionsOutput,
                ),
                self._invoke(
                    "material",
                    self.backend.estimate_material(
                        EstimateMaterialInput(photo_data_uri=analysis_uri)
                    ),
                    EstimateMaterialOutput,
                ),
            )

            # Severity and volume
            self._enter(AnalysisStage.CLASSIFYING, on_progress)
            measured = dimensions.to_dimensions()
            severity, volume = await self._join(
                "classification",
                self._invoke(
                    "severity",
                    self.backend.classify_severity(
                        ClassifySeverityInput(
                            photo_data_uri=analysis_uri,
                            length=measured.length,
                            width=measured.width,
                            depth=measured.depth,
                        )
                    ),
                    ClassifySeverityOutput,
                ),
                self._invoke(
                    "volume",
                    self.backend.estimate_volume(
                        EstimateVolumeInput(
                            length=measured.length,
                            width=measured.width,
                            depth=measured.depth,
                        )
                    ),
                    EstimateVolumeOutput,
                ),
            )

            report = AnalysisReport(
                run_id=run_id,
                detection=detection,
                dimensions=dimensions,
                material=material,
                severity=severity,
                volume=volume,
                analysis_image_source="highlighted" if highlighted else "original",
                processing_time_ms=int((time.time() - start_time) * 1000),
            )
            self._enter(AnalysisStage.COMPLETE, on_progress)

            logger.info(
                "Analysis run completed",
                severity=severity.severity.value,
                material=material.material_type,
                volume=volume.volume,
                processing_time_ms=report.processing_time_ms,
            )
            return report

        except InferenceError as e:
            failed_stage = self._stage
            self._stage = AnalysisStage.FAILED
            logger.error(
                "Analysis run failed",
                stage=failed_stage.value,
                call=e.call,
                error=str(e),
                processing_time_ms=int((time.time() - start_time) * 1000),
            )
            raise AnalysisError(failed_stage.value, call=e.call, detail=str(e)) from e

        except BaseException:
            # Cancellation; a finished run keeps its COMPLETE stage
            if self._stage.in_progress:
                self._stage = AnalysisStage.FAILED
            raise

    def _enter(self, stage: AnalysisStage, on_progress: Optional[ProgressCallback]) -> None:
        """Move to ``stage`` and announce it.

        Observer errors are logged and never change the outcome of the run.
        """
        self._stage = stage
        percent, message = STAGE_PROGRESS[stage]
        if on_progress is None:
            return

        try:
            on_progress(ProgressEvent(percent=percent, message=message, stage=stage))
        except Exception:
            self.logger.exception("Progress observer failed", stage=stage.value, percent=percent)

    async def _invoke(
        self, call: str, pending: Awaitable[Any], output_model: type[WireModel]
    ) -> Any:
        """Await one inference call and validate its result shape."""
        try:
            result = await pending
        except InferenceError:
            raise
        except ValidationError as e:
            raise SchemaValidationFailure(call, str(e)) from e
        except Exception as e:
            raise CallFailure(call, f"{type(e).__name__}: {str(e)}") from e

        try:
            return output_model.model_validate(result)
        except ValidationError as e:
            raise SchemaValidationFailure(call, str(e)) from e

    async def _join(self, barrier: str, *calls: Awaitable[Any]) -> tuple:
        """Run ``calls`` concurrently; all must succeed.

        The first failure, in launch order, aborts the barrier and the calls
        still in flight are cancelled.
        """
        tasks = [asyncio.ensure_future(call) for call in calls]
        try:
            await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)

            for task in tasks:
                if task.done() and not task.cancelled() and task.exception() is not None:
                    error = task.exception()
                    if isinstance(error, InferenceError):
                        raise AggregateFailure(barrier, error) from error
                    raise error

            return tuple(task.result() for task in tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
