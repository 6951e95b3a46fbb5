"""
HTTP client for the pothole inference service.

Each flow is a POST to ``/flows/<flow>`` with the request model serialized by
its wire aliases. Transport and status errors become ``CallFailure``;
responses that cannot be parsed into the flow's output model become
``SchemaValidationFailure``. Request timeouts are enforced here.
"""

import time
from typing import Optional, Protocol, TypeVar

import httpx
from pydantic import ValidationError

from shared.config import ServiceSettings, get_settings
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
    Flow,
    WireModel,
)

from .errors import CallFailure, SchemaValidationFailure

OutputT = TypeVar("OutputT", bound=WireModel)


class InferenceBackend(Protocol):
    """The five remote inference calls the orchestrator depends on."""

    async def detect_potholes(self, request: DetectPotholesInput) -> DetectPotholesOutput:
        ...

    async def estimate_dimensions(
        self, request: EstimateDimensionsInput
    ) -> EstimateDimensionsOutput:
        ...

    async def estimate_material(self, request: EstimateMaterialInput) -> EstimateMaterialOutput:
        ...

    async def classify_severity(self, request: ClassifySeverityInput) -> ClassifySeverityOutput:
        ...

    async def estimate_volume(self, request: EstimateVolumeInput) -> EstimateVolumeOutput:
        ...


class InferenceClient:
    """Async HTTP client implementing ``InferenceBackend``."""

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 60,
        max_connections: int = 10,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.logger = get_logger().bind(component="inference_client")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout_seconds,
            limits=httpx.Limits(
                max_connections=max_connections,
                max_keepalive_connections=max_connections,
            ),
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: ServiceSettings = None, base_url: Optional[str] = None
    ) -> "InferenceClient":
        """Build a client from the unified settings.

        ``base_url`` overrides the configured inference service URL.
        """
        settings = settings if settings is not None else get_settings()
        service_config = settings.get_service_config()
        return cls(
            base_url or settings.inference_service_url,
            timeout_seconds=service_config.timeout_seconds,
            max_connections=service_config.max_concurrent_requests,
        )

    async def __aenter__(self) -> "InferenceClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def detect_potholes(self, request: DetectPotholesInput) -> DetectPotholesOutput:
        return await self._call_flow(Flow.DETECT_POTHOLES, request, DetectPotholesOutput)

    async def estimate_dimensions(
        self, request: EstimateDimensionsInput
    ) -> EstimateDimensionsOutput:
        return await self._call_flow(
            Flow.ESTIMATE_DIMENSIONS, request, EstimateDimensionsOutput
        )

    async def estimate_material(self, request: EstimateMaterialInput) -> EstimateMaterialOutput:
        return await self._call_flow(Flow.ESTIMATE_MATERIAL, request, EstimateMaterialOutput)

    async def classify_severity(self, request: ClassifySeverityInput) -> ClassifySeverityOutput:
        return await self._call_flow(Flow.CLASSIFY_SEVERITY, request, ClassifySeverityOutput)

    async def estimate_volume(self, request: EstimateVolumeInput) -> EstimateVolumeOutput:
        return await self._call_flow(Flow.ESTIMATE_VOLUME, request, EstimateVolumeOutput)

    async def check_health(self) -> dict:
        """Fetch the inference service health document."""
        try:
            response = await self.client.get("/health")
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CallFailure("health", str(e)) from e

    async def _call_flow(
        self, flow: Flow, request: WireModel, output_model: type[OutputT]
    ) -> OutputT:
        """POST one flow request and validate the response."""
        start_time = time.time()

        self.logger.debug(
            "Calling inference flow",
            flow=flow.value,
            endpoint=flow.endpoint,
        )

        try:
            response = await self.client.post(flow.endpoint, json=request.to_wire())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self.logger.error(
                "Inference flow returned an error status",
                flow=flow.value,
                status_code=e.response.status_code,
                processing_time_ms=int((time.time() - start_time) * 1000),
            )
            raise CallFailure(
                flow.value, f"HTTP {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            self.logger.error(
                "Inference flow request failed",
                flow=flow.value,
                error_type=type(e).__name__,
                error=str(e),
                processing_time_ms=int((time.time() - start_time) * 1000),
            )
            raise CallFailure(flow.value, f"{type(e).__name__}: {str(e)}") from e

        try:
            result = output_model.model_validate(response.json())
        except (ValidationError, ValueError) as e:
            self.logger.error(
                "Inference flow response did not match schema",
                flow=flow.value,
                error=str(e),
            )
            raise SchemaValidationFailure(flow.value, str(e)) from e

        self.logger.debug(
            "Inference flow completed",
            flow=flow.value,
            processing_time_ms=int((time.time() - start_time) * 1000),
        )
        return result
