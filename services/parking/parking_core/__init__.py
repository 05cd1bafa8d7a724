from .config import ServiceSettings, load_settings
from .gateway import CompletionGateway
from .normalizer import NormalizedQuery, ParkingRecord, normalize_query
from .prompts import build_analysis_prompt
from .service import (
    EMPTY_REQUEST_BODY,
    EXAMPLE_REQUEST_BODY,
    PARKING_TOOL_NAME,
    analyze_parking,
    build_parking_tool,
    build_registry,
    create_provider,
)

__all__ = [
    "ServiceSettings",
    "load_settings",
    "CompletionGateway",
    "NormalizedQuery",
    "ParkingRecord",
    "normalize_query",
    "build_analysis_prompt",
    "EMPTY_REQUEST_BODY",
    "EXAMPLE_REQUEST_BODY",
    "PARKING_TOOL_NAME",
    "analyze_parking",
    "build_parking_tool",
    "build_registry",
    "create_provider",
]
