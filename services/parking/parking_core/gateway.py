from __future__ import annotations

import time

from libs.core import logging as core_logging
from libs.core.llm_provider import LLMProvider
from libs.core.models import AnalysisResult

from .prompts import SYSTEM_PROMPT

LOGGER = core_logging.get_logger("parking")

ERROR_MESSAGE_TEMPLATE = "⚠️ Error al analizar los estacionamientos: {detail}"


class CompletionGateway:
    """Single-attempt bridge between a rendered prompt and the completion service.

    Any failure of the provider is reported back as an error-flagged
    :class:`AnalysisResult` instead of being raised.
    """

    def __init__(self, provider: LLMProvider, system_prompt: str = SYSTEM_PROMPT) -> None:
        self.provider = provider
        self.system_prompt = system_prompt

    def complete(self, prompt: str) -> AnalysisResult:
        started = time.perf_counter()
        try:
            response = self.provider.generate(prompt, system=self.system_prompt)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning(
                "completion_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                duration_ms=_elapsed_ms(started),
            )
            return AnalysisResult.from_text(
                ERROR_MESSAGE_TEMPLATE.format(detail=_describe(exc)), error=True
            )
        LOGGER.info(
            "completion_succeeded",
            response_len=len(response.content or ""),
            duration_ms=_elapsed_ms(started),
        )
        return AnalysisResult.from_text(response.content)


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
