"""Tests for the inference flow wire models."""

import pytest
from pydantic import ValidationError

from orchestrator.models import AnalysisReport
from shared.schemas import (
    ClassifySeverityInput,
    ClassifySeverityOutput,
    DetectPotholesInput,
    DetectPotholesOutput,
    EstimateDimensionsOutput,
    EstimateMaterialOutput,
    EstimateVolumeInput,
    EstimateVolumeOutput,
    Flow,
    SeverityLevel,
)


def test_flow_endpoints():
    assert Flow.DETECT_POTHOLES.endpoint == "/flows/detect-potholes"
    assert Flow.ESTIMATE_VOLUME.endpoint == "/flows/estimate-volume"


def test_inputs_serialize_with_camel_case(original_image):
    """Requests go over the wire with camelCase field names."""
    request = ClassifySeverityInput(
        photo_data_uri=original_image.to_data_uri(), length=40, width=30, depth=10
    )

    assert request.to_wire() == {
        "photoDataUri": original_image.to_data_uri(),
        "length": 40.0,
        "width": 30.0,
        "depth": 10.0,
    }


def test_inputs_accept_wire_names(original_image):
    request = DetectPotholesInput.model_validate({"photoDataUri": original_image.to_data_uri()})
    assert request.photo_data_uri == original_image.to_data_uri()


def test_photo_input_rejects_invalid_data_uri():
    with pytest.raises(ValidationError):
        DetectPotholesInput(photo_data_uri="https://example.com/road.jpg")


def test_outputs_parse_wire_names():
    material = EstimateMaterialOutput.model_validate({"materialType": "asphalt", "confidence": 0.9})
    volume = EstimateVolumeOutput.model_validate(
        {"volume": 12000, "materialSuggestion": "cold patch asphalt"}
    )

    assert material.material_type == "asphalt"
    assert volume.material_suggestion == "cold patch asphalt"
    assert volume.to_wire() == {"volume": 12000.0, "materialSuggestion": "cold patch asphalt"}


@pytest.mark.parametrize("confidence", [-0.1, 1.5])
def test_material_confidence_must_be_a_probability(confidence):
    with pytest.raises(ValidationError):
        EstimateMaterialOutput(material_type="asphalt", confidence=confidence)


def test_severity_must_be_a_known_level():
    with pytest.raises(ValidationError):
        ClassifySeverityOutput.model_validate({"severity": "catastrophic", "justification": "x"})

    parsed = ClassifySeverityOutput.model_validate({"severity": "severe", "justification": "x"})
    assert parsed.severity == SeverityLevel.SEVERE


def test_dimensions_require_unit():
    with pytest.raises(ValidationError):
        EstimateDimensionsOutput.model_validate({"length": 40, "width": 30, "depth": 10})


def test_dimensions_are_not_range_checked():
    """Implausible values are carried unchanged."""
    dims = EstimateDimensionsOutput(length=-1, width=0, depth=float("inf"), unit="cm")
    forwarded = EstimateVolumeInput(**dims.to_dimensions().model_dump())

    assert (forwarded.length, forwarded.width, forwarded.depth) == (-1, 0, float("inf"))


@pytest.mark.parametrize("payload", [{}, {"highlightedImage": None}, {"highlightedImage": 42}])
def test_detection_output_tolerates_missing_image(payload):
    assert DetectPotholesOutput.model_validate(payload).highlighted_image is None


def test_report_requires_dimensions_for_derived_results():
    """Severity and volume cannot exist without the dimensions they came from."""
    with pytest.raises(ValidationError):
        AnalysisReport(
            severity=ClassifySeverityOutput(severity="minor", justification="shallow"),
        )


def test_report_is_immutable(scenario_responses):
    report = AnalysisReport(
        detection=scenario_responses["detection"],
        dimensions=scenario_responses["dimensions"],
        material=scenario_responses["material"],
        severity=scenario_responses["severity"],
        volume=scenario_responses["volume"],
    )

    assert report.is_complete
    with pytest.raises(ValidationError):
        report.material = None
