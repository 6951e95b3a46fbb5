"""
Pothole inference service for Pothole Snap.

Exposes the five inference flows used by the analysis orchestrator:
detection (image editing), dimensions, material, severity and volume
(structured JSON answers from a multimodal chat model). Models and prompts
are read from ``config/inference_flows.yml``.
"""

import asyncio
import json
import os
import time
from typing import Any, Callable

import yaml
from fastapi import FastAPI, HTTPException
from openai import OpenAI
from pydantic import ValidationError

from shared.base_service import BaseService
from shared.config import ServiceSettings
from shared.images import ImageBlob
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


class PotholeInferenceService(BaseService):
    """OpenAI-backed service implementing the pothole inference flows."""

    def __init__(self, settings: ServiceSettings = None, openai_client: Any = None):
        super().__init__("pothole_ai", "1.0.0", settings=settings)
        self.openai_client = openai_client
        self.flow_config = self._load_flow_config()

    def _load_flow_config(self) -> dict[str, dict[str, Any]]:
        """Load flow models and prompts from the YAML configuration."""
        config_path = self.settings.get_flows_config_path()

        try:
            with open(config_path, "r") as f:
                config = yaml.safe_load(f)

            flows = config["flows"]
            for flow in Flow:
                entry = flows.get(flow.value)
                if not entry or "model" not in entry or "prompt" not in entry:
                    raise ValueError(f"Flow '{flow.value}' needs a model and a prompt")

        except Exception as e:
            self.logger.error(
                "Failed to load inference flow configuration",
                config_file=str(config_path),
                error=str(e),
            )
            raise

        self.logger.info(
            "Inference flow configuration loaded",
            config_file=str(config_path),
            flows=list(flows.keys()),
        )
        return flows

    def _add_routes(self, app: FastAPI) -> None:
        """Add one route per inference flow."""

        @app.post(Flow.DETECT_POTHOLES.endpoint, response_model=DetectPotholesOutput)
        async def detect_potholes(request: DetectPotholesInput) -> DetectPotholesOutput:
            """Return the photo with detected potholes highlighted."""
            return await self.detect_potholes(request)

        @app.post(Flow.ESTIMATE_DIMENSIONS.endpoint, response_model=EstimateDimensionsOutput)
        async def estimate_dimensions(
            request: EstimateDimensionsInput,
        ) -> EstimateDimensionsOutput:
            """Estimate pothole length, width and depth in centimeters."""
            return await self._generate_structured(
                Flow.ESTIMATE_DIMENSIONS,
                EstimateDimensionsOutput,
                image_uri=request.photo_data_uri,
            )

        @app.post(Flow.ESTIMATE_MATERIAL.endpoint, response_model=EstimateMaterialOutput)
        async def estimate_material(request: EstimateMaterialInput) -> EstimateMaterialOutput:
            """Estimate the road material around the pothole."""
            return await self._generate_structured(
                Flow.ESTIMATE_MATERIAL,
                EstimateMaterialOutput,
                image_uri=request.photo_data_uri,
            )

        @app.post(Flow.CLASSIFY_SEVERITY.endpoint, response_model=ClassifySeverityOutput)
        async def classify_severity(request: ClassifySeverityInput) -> ClassifySeverityOutput:
            """Classify severity from the photo and its dimensions."""
            return await self._generate_structured(
                Flow.CLASSIFY_SEVERITY,
                ClassifySeverityOutput,
                image_uri=request.photo_data_uri,
                length=request.length,
                width=request.width,
                depth=request.depth,
            )

        @app.post(Flow.ESTIMATE_VOLUME.endpoint, response_model=EstimateVolumeOutput)
        async def estimate_volume(request: EstimateVolumeInput) -> EstimateVolumeOutput:
            """Estimate volume and suggest a filling material from the dimensions."""
            return await self._generate_structured(
                Flow.ESTIMATE_VOLUME,
                EstimateVolumeOutput,
                length=request.length,
                width=request.width,
                depth=request.depth,
            )

        @app.get("/flows")
        async def list_flows():
            """List the configured flows."""
            return {
                "service_name": self.service_name,
                "version": self.version,
                "flows": {
                    flow.value: {
                        "endpoint": flow.endpoint,
                        "model": self.flow_config[flow.value]["model"],
                    }
                    for flow in Flow
                },
            }

    def _require_client(self) -> Any:
        if self.openai_client is None:
            raise HTTPException(status_code=503, detail="OpenAI client not configured")
        return self.openai_client

    async def _call_openai(self, flow: Flow, func: Callable[..., Any], **kwargs) -> Any:
        """Run a blocking OpenAI SDK call in a worker thread."""
        start_time = time.time()
        try:
            response = await asyncio.to_thread(func, **kwargs)
        except Exception as e:
            self.logger.error(
                "OpenAI request failed",
                flow=flow.value,
                error_type=type(e).__name__,
                error=str(e),
                processing_time_ms=int((time.time() - start_time) * 1000),
            )
            raise HTTPException(
                status_code=502, detail=f"Upstream model error: {type(e).__name__}"
            )

        self.logger.debug(
            "OpenAI request completed",
            flow=flow.value,
            processing_time_ms=int((time.time() - start_time) * 1000),
        )
        return response

    async def detect_potholes(self, request: DetectPotholesInput) -> DetectPotholesOutput:
        """
        Highlight potholes using the image editing endpoint.

        Returns an empty ``highlightedImage`` when the model produced no image.
        """
        client = self._require_client()
        config = self.flow_config[Flow.DETECT_POTHOLES.value]
        image = ImageBlob.from_data_uri(request.photo_data_uri)

        response = await self._call_openai(
            Flow.DETECT_POTHOLES,
            client.images.edit,
            model=config["model"],
            image=(f"pothole.{image.format}", image.data, image.mime_type),
            prompt=config["prompt"],
        )

        b64_image = response.data[0].b64_json if response.data else None
        if not b64_image:
            self.logger.warning("Detection returned no image", flow=Flow.DETECT_POTHOLES.value)
            return DetectPotholesOutput(highlighted_image="")

        self.logger.info(
            "Pothole detection completed",
            flow=Flow.DETECT_POTHOLES.value,
            image_size=len(b64_image),
        )
        return DetectPotholesOutput(highlighted_image=f"data:image/png;base64,{b64_image}")

    async def _generate_structured(
        self,
        flow: Flow,
        output_model: type[WireModel],
        image_uri: str | None = None,
        **prompt_fields: Any,
    ) -> WireModel:
        """
        Ask the chat model for a JSON answer and validate it.

        Args:
            flow: Flow whose model and prompt to use
            output_model: Pydantic model the answer must satisfy
            image_uri: Optional photo attached to the request
            prompt_fields: Values substituted into the prompt template

        Returns:
            The validated output model
        """
        client = self._require_client()
        config = self.flow_config[flow.value]

        schema = output_model.model_json_schema(by_alias=True)
        prompt = (
            config["prompt"].format(**prompt_fields)
            + "\nProvide your response as valid JSON following this exact schema:\n"
            + json.dumps(schema, indent=2)
        )

        content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
        if image_uri:
            content.append(
                {"type": "image_url", "image_url": {"url": image_uri, "detail": "high"}}
            )

        response = await self._call_openai(
            flow,
            client.chat.completions.create,
            model=config["model"],
            messages=[{"role": "user", "content": content}],
            max_tokens=config.get("max_tokens", 1000),
            temperature=config.get("temperature", 0.1),
            response_format={"type": "json_object"},
        )

        response_text = response.choices[0].message.content
        try:
            result = output_model.model_validate(json.loads(response_text))
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            self.logger.error(
                "Model answer did not match schema",
                flow=flow.value,
                error=str(e),
            )
            raise HTTPException(
                status_code=502, detail=f"Model answer for {flow.value} did not match schema"
            )

        self.logger.info("Flow completed", flow=flow.value)
        return result

    async def _initialize_service(self) -> None:
        """Initialize the OpenAI client."""
        if self.openai_client is None:
            api_key = self.settings.openai_api_key or os.getenv("OPENAI_API_KEY")
            if api_key:
                self.openai_client = OpenAI(api_key=api_key)
                self.logger.info("OpenAI client initialized successfully")

        if self.openai_client is None:
            self.logger.warning("OPENAI_API_KEY not found in environment variables")
            self.set_unhealthy("OpenAI API key not configured")
        else:
            self.set_healthy()

        self.set_health_detail(
            "models", {name: entry["model"] for name, entry in self.flow_config.items()}
        )

    async def _cleanup_service(self) -> None:
        """Cleanup inference service."""
        self.logger.info("Pothole inference service cleaned up")

    async def _check_service_health(self) -> bool:
        """The service is healthy once an OpenAI client is available."""
        ready = self.openai_client is not None
        self.set_health_detail("openai_client_ready", ready)
        return ready


def create_app() -> FastAPI:
    """Create the pothole inference FastAPI application."""
    service = PotholeInferenceService()
    return service.app


# For development/testing
if __name__ == "__main__":
    service = PotholeInferenceService()
    service.run()
