from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class ToolSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    description: str
    input_schema: Dict[str, Any]
    usage_guidance: Optional[str] = None
    examples: List[Dict[str, Any]] = Field(default_factory=list)


class ContentBlock(BaseModel):
    type: Literal["text"] = "text"
    text: str


class AnalysisResult(BaseModel):
    """Outcome of one tool invocation.

    Built fresh for every request and discarded once the response is sent.
    ``error`` marks degraded results (the upstream model could not be reached)
    which are still delivered to the caller as regular content.
    """

    content: List[ContentBlock]
    metadata: Optional[Dict[str, Any]] = None
    error: bool = False
    processing_ms: Optional[int] = None

    @classmethod
    def from_text(cls, text: str, *, error: bool = False) -> "AnalysisResult":
        return cls(content=[ContentBlock(text=text)], error=error)

    def text(self) -> str:
        return "".join(block.text for block in self.content)
