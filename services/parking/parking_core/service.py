from __future__ import annotations

from typing import Any, Dict

from libs.core import llm_provider, logging as core_logging
from libs.core.llm_provider import LLMProvider
from libs.core.models import AnalysisResult, ToolSpec
from libs.framework.tool_runtime import Tool, ToolRegistry

from .config import ServiceSettings
from .gateway import CompletionGateway
from .normalizer import NormalizedQuery, normalize_query
from .prompts import NO_SPOTS_MESSAGE, build_analysis_prompt

LOGGER = core_logging.get_logger("parking")

PARKING_TOOL_NAME = "analizar-estacionamiento"

PARKING_INPUT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "data": {
            "type": "object",
            "properties": {
                "instancias": {"type": ["array", "null"]},
            },
        },
    },
    "required": ["data"],
}

EXAMPLE_REQUEST_BODY: Dict[str, Any] = {
    "input": {
        "data": {
            "instancias": [
                {
                    "nombre": "Permitido estacionar 24 horas",
                    "contenido": {
                        "contenido": [
                            {"nombreId": "calle", "valor": "ECHAGUE, PEDRO"},
                            {"nombreId": "altura", "valor": "1301-1400"},
                            {"nombreId": "permiso", "valor": "PERMITIDO ESTACIONAR"},
                            {"nombreId": "horario", "valor": "24 HORAS"},
                            {"nombreId": "lado", "valor": "derecho"},
                        ]
                    },
                    "distancia": "4.85",
                }
            ],
            "total": 1,
            "totalFull": 1,
        }
    }
}

EMPTY_REQUEST_BODY: Dict[str, Any] = {
    "input": {"data": {"instancias": [], "total": 0, "totalFull": 0}}
}


def create_provider(settings: ServiceSettings) -> LLMProvider:
    # Single attempt per request; no retries.
    return llm_provider.resolve_provider(
        settings.llm_provider,
        api_key=settings.api_key,
        model=settings.model,
        base_url=settings.base_url,
        temperature=settings.temperature,
        timeout_s=settings.timeout_s,
        max_retries=0,
    )


def build_metadata(query: NormalizedQuery) -> Dict[str, Any]:
    return {
        "totalEstacionamientos": query.total,
        "estacionamientosPermitidos": sum(1 for r in query.records if r.is_permitted),
        "estacionamientosProhibidos": sum(1 for r in query.records if r.is_prohibited),
    }


def analyze_parking(data: Dict[str, Any], gateway: CompletionGateway) -> AnalysisResult:
    query = normalize_query(data)
    core_logging.log_event(
        LOGGER,
        "parking_query_received",
        {
            "instances": len(query.records),
            "total": query.total,
            "total_full": query.total_full,
        },
    )
    if query.is_empty:
        return AnalysisResult.from_text(NO_SPOTS_MESSAGE)

    prompt = build_analysis_prompt(query)
    LOGGER.info("parking_prompt_built", prompt_len=len(prompt))
    result = gateway.complete(prompt)
    if result.error:
        return result
    return result.model_copy(update={"metadata": build_metadata(query)})


def build_parking_tool(gateway: CompletionGateway) -> Tool:
    return Tool(
        spec=ToolSpec(
            name=PARKING_TOOL_NAME,
            description=(
                "Analiza la disponibilidad de estacionamiento en una zona de CABA "
                "y devuelve un resumen en lenguaje natural."
            ),
            input_schema=PARKING_INPUT_SCHEMA,
            examples=[EXAMPLE_REQUEST_BODY["input"]],
        ),
        handler=lambda payload: analyze_parking(payload["data"], gateway),
    )


def build_registry(provider: LLMProvider) -> ToolRegistry:
    return ToolRegistry([build_parking_tool(CompletionGateway(provider))])
