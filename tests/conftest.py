"""Shared pytest fixtures for Pothole Snap tests."""

import asyncio
import io

import pytest
from PIL import Image

from shared.config import ServiceSettings
from shared.images import ImageBlob
from shared.schemas import (
    ClassifySeverityOutput,
    DetectPotholesOutput,
    EstimateDimensionsOutput,
    EstimateMaterialOutput,
    EstimateVolumeOutput,
)


def make_image_blob(color: str = "gray", fmt: str = "JPEG", size=(64, 48)) -> ImageBlob:
    """Encode a solid-color image and wrap it in an ImageBlob."""
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return ImageBlob.from_bytes(buffer.getvalue())


class FakeInferenceBackend:
    """In-memory inference backend recording the requests it receives.

    ``failures`` maps a call name to the exception it raises, ``blockers``
    maps a call name to an ``asyncio.Event`` the call waits on before
    answering. Call names: detection, dimensions, material, severity, volume.
    """

    def __init__(self, responses: dict):
        self.responses = dict(responses)
        self.failures: dict[str, BaseException] = {}
        self.blockers: dict[str, asyncio.Event] = {}
        self.requests: dict = {}
        self.call_order: list[str] = []
        self.cancelled: set[str] = set()

    async def _respond(self, call: str, request):
        self.requests[call] = request
        self.call_order.append(call)
        try:
            if call in self.blockers:
                await self.blockers[call].wait()
            else:
                await asyncio.sleep(0)
        except asyncio.CancelledError:
            self.cancelled.add(call)
            raise
        if call in self.failures:
            raise self.failures[call]
        return self.responses[call]

    async def detect_potholes(self, request):
        return await self._respond("detection", request)

    async def estimate_dimensions(self, request):
        return await self._respond("dimensions", request)

    async def estimate_material(self, request):
        return await self._respond("material", request)

    async def classify_severity(self, request):
        return await self._respond("severity", request)

    async def estimate_volume(self, request):
        return await self._respond("volume", request)

    async def check_health(self):
        return {"service": "pothole_ai", "status": "healthy"}

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None


@pytest.fixture
def original_image() -> ImageBlob:
    """The captured photo ("A.jpg")."""
    return make_image_blob("gray", "JPEG")


@pytest.fixture
def highlighted_image() -> ImageBlob:
    """The detection output ("B"), a different PNG."""
    return make_image_blob("red", "PNG")


@pytest.fixture
def scenario_responses(highlighted_image) -> dict:
    """Responses of the reference scenario: a moderate asphalt pothole."""
    return {
        "detection": DetectPotholesOutput(highlighted_image=highlighted_image.to_data_uri()),
        "dimensions": EstimateDimensionsOutput(length=40, width=30, depth=10, unit="cm"),
        "material": EstimateMaterialOutput(material_type="asphalt", confidence=0.9),
        "severity": ClassifySeverityOutput(
            severity="moderate", justification="Deep enough to damage tyres."
        ),
        "volume": EstimateVolumeOutput(volume=12000, material_suggestion="cold patch asphalt"),
    }


@pytest.fixture
def fake_backend(scenario_responses) -> FakeInferenceBackend:
    return FakeInferenceBackend(scenario_responses)


@pytest.fixture
def settings() -> ServiceSettings:
    """Settings that do not depend on the environment."""
    return ServiceSettings(
        log_level="DEBUG",
        log_format="text",
        debug=False,
        environment="development",
        inference_service_url="http://inference.test",
    )
