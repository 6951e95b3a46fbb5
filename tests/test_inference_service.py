"""Tests for the pothole inference service routes."""

import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from services.pothole_ai import PotholeInferenceService
from shared.schemas import Flow


class FakeOpenAI:
    """Stand-in for the OpenAI SDK client recording every call."""

    def __init__(self, chat_answer=None, image_b64="aGlnaGxpZ2h0ZWQ=", error=None):
        self.chat_answer = chat_answer
        self.image_b64 = image_b64
        self.error = error
        self.calls = []
        self.images = SimpleNamespace(edit=self._edit)
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _edit(self, **kwargs):
        self.calls.append(("images.edit", kwargs))
        if self.error:
            raise self.error
        data = [SimpleNamespace(b64_json=self.image_b64)] if self.image_b64 is not None else []
        return SimpleNamespace(data=data)

    def _create(self, **kwargs):
        self.calls.append(("chat.completions.create", kwargs))
        if self.error:
            raise self.error
        content = self.chat_answer if isinstance(self.chat_answer, str) else json.dumps(
            self.chat_answer
        )
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


def make_client(settings, openai_client) -> TestClient:
    service = PotholeInferenceService(settings=settings, openai_client=openai_client)
    return TestClient(service.app)


def test_detect_returns_highlighted_data_uri(settings, original_image):
    fake = FakeOpenAI()
    client = make_client(settings, fake)

    response = client.post(
        Flow.DETECT_POTHOLES.endpoint, json={"photoDataUri": original_image.to_data_uri()}
    )

    assert response.status_code == 200
    assert response.json() == {"highlightedImage": "data:image/png;base64,aGlnaGxpZ2h0ZWQ="}
    name, kwargs = fake.calls[0]
    assert name == "images.edit"
    assert kwargs["model"] == "gpt-image-1"
    assert kwargs["image"] == ("pothole.jpeg", original_image.data, "image/jpeg")


def test_detect_without_image_returns_empty_string(settings, original_image):
    """The orchestrator falls back to the original photo on an empty answer."""
    client = make_client(settings, FakeOpenAI(image_b64=None))

    response = client.post(
        Flow.DETECT_POTHOLES.endpoint, json={"photoDataUri": original_image.to_data_uri()}
    )

    assert response.status_code == 200
    assert response.json() == {"highlightedImage": ""}


def test_material_flow_sends_image_and_schema(settings, original_image):
    fake = FakeOpenAI(chat_answer={"materialType": "asphalt", "confidence": 0.9})
    client = make_client(settings, fake)

    response = client.post(
        Flow.ESTIMATE_MATERIAL.endpoint, json={"photoDataUri": original_image.to_data_uri()}
    )

    assert response.status_code == 200
    assert response.json() == {"materialType": "asphalt", "confidence": 0.9}

    _, kwargs = fake.calls[0]
    text_part, image_part = kwargs["messages"][0]["content"]
    assert "materialType" in text_part["text"]
    assert image_part["image_url"]["url"] == original_image.to_data_uri()
    assert kwargs["response_format"] == {"type": "json_object"}


def test_severity_prompt_includes_dimensions(settings, original_image):
    fake = FakeOpenAI(chat_answer={"severity": "moderate", "justification": "Sharp edges."})
    client = make_client(settings, fake)

    response = client.post(
        Flow.CLASSIFY_SEVERITY.endpoint,
        json={
            "photoDataUri": original_image.to_data_uri(),
            "length": 40,
            "width": 30,
            "depth": 10,
        },
    )

    assert response.status_code == 200
    assert response.json()["severity"] == "moderate"
    prompt = fake.calls[0][1]["messages"][0]["content"][0]["text"]
    assert "Length: 40.0 cm" in prompt
    assert "Depth: 10.0 cm" in prompt


def test_volume_flow_is_text_only(settings):
    fake = FakeOpenAI(chat_answer={"volume": 12000, "materialSuggestion": "cold patch asphalt"})
    client = make_client(settings, fake)

    response = client.post(
        Flow.ESTIMATE_VOLUME.endpoint, json={"length": 40, "width": 30, "depth": 10}
    )

    assert response.status_code == 200
    assert response.json() == {"volume": 12000.0, "materialSuggestion": "cold patch asphalt"}
    assert len(fake.calls[0][1]["messages"][0]["content"]) == 1


def test_invalid_photo_is_rejected(settings):
    client = make_client(settings, FakeOpenAI())

    response = client.post(
        Flow.ESTIMATE_DIMENSIONS.endpoint, json={"photoDataUri": "http://example.com/a.jpg"}
    )

    assert response.status_code == 422


@pytest.mark.parametrize(
    "answer",
    ["this is not json", {"length": 40, "width": 30}, {"severity": "unknown"}],
)
def test_answer_not_matching_schema_is_bad_gateway(settings, original_image, answer):
    client = make_client(settings, FakeOpenAI(chat_answer=answer))

    response = client.post(
        Flow.ESTIMATE_DIMENSIONS.endpoint, json={"photoDataUri": original_image.to_data_uri()}
    )

    assert response.status_code == 502


def test_upstream_error_is_bad_gateway(settings):
    client = make_client(settings, FakeOpenAI(error=RuntimeError("rate limited")))

    response = client.post(
        Flow.ESTIMATE_VOLUME.endpoint, json={"length": 1, "width": 1, "depth": 1}
    )

    assert response.status_code == 502
    assert "RuntimeError" in response.json()["detail"]


def test_missing_client_is_unavailable(settings):
    client = make_client(settings, None)

    response = client.post(
        Flow.ESTIMATE_VOLUME.endpoint, json={"length": 1, "width": 1, "depth": 1}
    )

    assert response.status_code == 503


def test_list_flows(settings):
    client = make_client(settings, FakeOpenAI())

    body = client.get("/flows").json()

    assert set(body["flows"]) == {flow.value for flow in Flow}
    assert body["flows"]["estimate-volume"] == {
        "endpoint": "/flows/estimate-volume",
        "model": "gpt-4o",
    }


@pytest.mark.parametrize("openai_client, status", [(FakeOpenAI(), "healthy"), (None, "unhealthy")])
def test_health(settings, openai_client, status):
    client = make_client(settings, openai_client)

    body = client.get("/health").json()

    assert body["service"] == "pothole_ai"
    assert body["status"] == status


def test_incomplete_flow_config_fails_startup(tmp_path, settings):
    config = tmp_path / "flows.yml"
    config.write_text("flows:\n  detect-potholes:\n    model: gpt-image-1\n    prompt: x\n")

    with pytest.raises(ValueError, match="estimate-dimensions"):
        PotholeInferenceService(
            settings=settings.model_copy(update={"flows_config_path": str(config)}),
            openai_client=FakeOpenAI(),
        )


def test_startup_without_api_key_marks_unhealthy(settings, monkeypatch):
    """A service started without OpenAI credentials reports why it is unhealthy."""
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    service = PotholeInferenceService(settings=settings, openai_client=None)

    with TestClient(service.app) as client:
        body = client.get("/health").json()

    assert body["status"] == "unhealthy"
    assert body["details"]["unhealthy_reason"] == "OpenAI API key not configured"
    assert body["details"]["models"]["detect-potholes"] == "gpt-image-1"


def test_startup_with_client_is_healthy(settings):
    service = PotholeInferenceService(settings=settings, openai_client=FakeOpenAI())

    with TestClient(service.app) as client:
        body = client.get("/health").json()

    assert body["status"] == "healthy"
    assert "unhealthy_reason" not in body["details"]
    assert body["details"]["uptime_seconds"] >= 0
