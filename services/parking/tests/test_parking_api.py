from __future__ import annotations

import copy
from typing import Optional

from fastapi.testclient import TestClient

from libs.core.llm_provider import LLMProvider, LLMResponse, UpstreamServiceError
from libs.core.models import ToolSpec
from libs.framework.tool_runtime import Tool, ToolRegistry
from services.parking.app.main import create_app
from services.parking.parking_core import (
    EXAMPLE_REQUEST_BODY,
    PARKING_TOOL_NAME,
    CompletionGateway,
    ServiceSettings,
    build_parking_tool,
    build_registry,
)


class _StaticProvider(LLMProvider):
    def __init__(self, content: str = "Análisis de prueba", exc: Optional[Exception] = None) -> None:
        self.content = content
        self.exc = exc
        self.calls = 0

    def generate(self, prompt: str, system: Optional[str] = None) -> LLMResponse:
        self.calls += 1
        if self.exc is not None:
            raise self.exc
        return LLMResponse(content=self.content)


def _client(provider: LLMProvider, environment: str = "production") -> TestClient:
    app = create_app(
        build_registry(provider),
        ServiceSettings(environment=environment),
        mount_mcp=False,
    )
    return TestClient(app)


def _broken_client(environment: str) -> TestClient:
    def broken(payload: dict):
        raise RuntimeError("boom")

    tool = Tool(
        spec=ToolSpec(
            name=PARKING_TOOL_NAME,
            description="broken",
            input_schema={"type": "object", "required": ["data"]},
        ),
        handler=broken,
    )
    app = create_app(ToolRegistry([tool]), ServiceSettings(environment=environment), mount_mcp=False)
    return TestClient(app)


def test_invoke_tool_success() -> None:
    client = _client(_StaticProvider())
    response = client.post(f"/mcp-tool/{PARKING_TOOL_NAME}", json=EXAMPLE_REQUEST_BODY)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["error"] is False
    assert data["content"] == [{"type": "text", "text": "Análisis de prueba"}]
    assert data["metadata"]["estacionamientosPermitidos"] == 1
    assert isinstance(data["processing_ms"], int)


def test_invoke_tool_without_spots_skips_model() -> None:
    provider = _StaticProvider()
    client = _client(provider)
    response = client.post(
        f"/mcp-tool/{PARKING_TOOL_NAME}",
        json={"input": {"data": {"instancias": [], "total": 0, "totalFull": 0}}},
    )
    assert response.status_code == 200
    assert "No se encontraron estacionamientos" in response.json()["content"][0]["text"]
    assert "metadata" not in response.json()
    assert provider.calls == 0


def test_missing_data_returns_400_with_example() -> None:
    client = _client(_StaticProvider())
    for body in ({}, {"input": {}}, {"input": {"data": None}}):
        response = client.post(f"/mcp-tool/{PARKING_TOOL_NAME}", json=body)
        assert response.status_code == 400
        data = response.json()
        assert data["error"].startswith("Formato incorrecto")
        assert data["ejemplo"] == {"input": {"data": {"instancias": [], "total": 0, "totalFull": 0}}}


def test_invalid_json_returns_400() -> None:
    client = _client(_StaticProvider())
    response = client.post(
        f"/mcp-tool/{PARKING_TOOL_NAME}",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert response.status_code == 400


def test_unknown_tool_returns_404_with_available_tools() -> None:
    client = _client(_StaticProvider())
    response = client.post("/mcp-tool/unknown-tool", json=EXAMPLE_REQUEST_BODY)
    assert response.status_code == 404
    assert response.json() == {
        "error": "Herramienta no encontrada",
        "herramientasDisponibles": [PARKING_TOOL_NAME],
    }


def test_missing_data_is_rejected_before_tool_lookup() -> None:
    client = _client(_StaticProvider())
    for body in ({}, {"input": {"data": ""}}, {"input": {"data": 0}}):
        response = client.post("/mcp-tool/unknown-tool", json=body)
        assert response.status_code == 400
        data = response.json()
        assert data["error"].startswith("Formato incorrecto")
        assert "ejemplo" in data


def test_empty_data_object_counts_as_present() -> None:
    provider = _StaticProvider()
    client = _client(provider)
    assert client.post("/mcp-tool/unknown-tool", json={"input": {"data": {}}}).status_code == 404
    response = client.post(f"/mcp-tool/{PARKING_TOOL_NAME}", json={"input": {"data": {}}})
    assert response.status_code == 200
    assert provider.calls == 0


def test_upstream_failure_is_still_200() -> None:
    client = _client(_StaticProvider(exc=UpstreamServiceError("Completion API error 401: bad key")))
    response = client.post(f"/mcp-tool/{PARKING_TOOL_NAME}", json=EXAMPLE_REQUEST_BODY)
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["error"] is True
    assert "bad key" in data["content"][0]["text"]


def test_internal_fault_hides_stack_in_production() -> None:
    response = _broken_client("production").post(
        f"/mcp-tool/{PARKING_TOOL_NAME}", json=EXAMPLE_REQUEST_BODY
    )
    assert response.status_code == 500
    data = response.json()
    assert data["error"] == "Error interno al procesar la solicitud"
    assert data["detalle"] == "boom"
    assert "stack" not in data


def test_internal_fault_exposes_stack_in_development() -> None:
    response = _broken_client("development").post(
        f"/mcp-tool/{PARKING_TOOL_NAME}", json=EXAMPLE_REQUEST_BODY
    )
    assert response.status_code == 500
    assert "RuntimeError: boom" in response.json()["stack"]


def test_health_lists_tools() -> None:
    client = _client(_StaticProvider())
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "OK"
    assert data["tools"] == [PARKING_TOOL_NAME]
    assert data["env"] == "production"
    assert data["uptime"] >= 0
    assert "timestamp" in data


def test_example_endpoint_returns_usable_body() -> None:
    provider = _StaticProvider()
    client = _client(provider)
    example = client.get("/ejemplo").json()
    assert example["request"]["url"] == f"/mcp-tool/{PARKING_TOOL_NAME}"

    response = client.post(example["request"]["url"], json=example["request"]["body"])
    assert response.status_code == 200
    assert provider.calls == 1


def test_tool_can_be_built_from_custom_gateway() -> None:
    provider = _StaticProvider(content="otro")
    registry = ToolRegistry([build_parking_tool(CompletionGateway(provider, system_prompt="x"))])
    client = TestClient(create_app(registry, mount_mcp=False))
    response = client.post(f"/mcp-tool/{PARKING_TOOL_NAME}", json=copy.deepcopy(EXAMPLE_REQUEST_BODY))
    assert response.json()["content"][0]["text"] == "otro"
