from __future__ import annotations

import time
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Callable, Iterable, Mapping

from jsonschema import Draft202012Validator

from libs.core import logging as core_logging
from libs.core.models import AnalysisResult, ToolSpec

LOGGER = core_logging.get_logger("tool_runtime")

tool_input_type = dict[str, Any]


class ToolNotFoundError(LookupError):
    def __init__(self, name: str, available: Iterable[str]) -> None:
        self.name = name
        self.available = list(available)
        super().__init__(f"unknown_tool:{name} (available: {', '.join(self.available)})")


class InvalidPayloadError(ValueError):
    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class InternalFault(RuntimeError):
    def __init__(self, tool_name: str, detail: str) -> None:
        super().__init__(detail)
        self.tool_name = tool_name
        self.detail = detail


@dataclass(frozen=True)
class Tool:
    spec: ToolSpec
    handler: Callable[[tool_input_type], AnalysisResult]


class ToolRegistry:
    """Read-only mapping of tool names to invocable pipelines.

    Tools are supplied once at construction; there is no runtime
    registration, so concurrent readers need no locking.
    """

    def __init__(self, tools: Iterable[Tool]) -> None:
        by_name: dict[str, Tool] = {}
        for tool in tools:
            if tool.spec.name in by_name:
                raise ValueError(f"duplicate tool name: {tool.spec.name}")
            by_name[tool.spec.name] = tool
        self._tools: Mapping[str, Tool] = MappingProxyType(by_name)

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def list_specs(self) -> list[ToolSpec]:
        return [tool.spec for tool in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def get(self, name: str) -> Tool:
        if name not in self._tools:
            raise ToolNotFoundError(name, self.names())
        return self._tools[name]

    def dispatch(self, name: str, payload: Any) -> AnalysisResult:
        tool = self.get(name)
        validate_schema(tool.spec.input_schema, payload, "input")
        started = time.perf_counter()
        try:
            result = tool.handler(payload)
        except Exception as exc:  # noqa: BLE001
            LOGGER.error("tool_handler_failed", tool_name=name, error=str(exc), exc_info=True)
            raise InternalFault(name, str(exc) or type(exc).__name__) from exc
        processing_ms = int((time.perf_counter() - started) * 1000)
        LOGGER.info(
            "tool_dispatched",
            tool_name=name,
            processing_ms=processing_ms,
            error=result.error,
        )
        return result.model_copy(update={"processing_ms": processing_ms})


def validate_schema(schema: dict[str, Any] | None, payload: Any, label: str) -> None:
    if not schema:
        return
    validator = Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(payload), key=lambda err: [str(part) for part in err.path])
    if errors:
        messages = "; ".join(
            f"{'/'.join(map(str, err.path)) or '<root>'}: {err.message}" for err in errors[:5]
        )
        raise InvalidPayloadError(f"{label} schema validation failed: {messages}")
