from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Sequence

import yaml

from .normalizer import NormalizedQuery, ParkingRecord

SECTIONS_PATH = Path(__file__).with_name("response_sections.yaml")

SYSTEM_PROMPT = (
    "Eres un asistente especializado en movilidad urbana de Buenos Aires. "
    "Proporciona información clara y estructurada con emojis relevantes."
)

NO_SPOTS_MESSAGE = "🚫 No se encontraron estacionamientos disponibles en la zona."

_PREAMBLE = (
    "Como experto en tránsito de CABA, analiza estos estacionamientos "
    "en formato claro y estructurado:"
)
_CLOSING = "**Sé conciso pero preciso, usando emojis para mejor legibilidad.**"


@dataclass(frozen=True)
class ResponseSection:
    key: str
    title: str
    description: str


def load_sections(path: Path = SECTIONS_PATH) -> tuple[ResponseSection, ...]:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    sections = []
    for entry in data.get("sections", []):
        sections.append(
            ResponseSection(
                key=str(entry["key"]),
                title=str(entry["title"]),
                description=str(entry["description"]),
            )
        )
    if not sections:
        raise ValueError(f"no response sections configured in {path}")
    return tuple(sections)


@lru_cache(maxsize=1)
def default_sections() -> tuple[ResponseSection, ...]:
    return load_sections()


def _count(value: Any) -> str:
    if value is None:
        return "N/D"
    return str(value)


def render_record(index: int, record: ParkingRecord) -> str:
    lines = [
        f"📍 {index}. {record.street} {record.block} ({record.side})",
        f"- Tipo: {record.permission}",
        f"- Horario: {record.schedule}",
        f"- Distancia: {record.distance} metros",
    ]
    if record.capacity is not None:
        lines.append(f"- Capacidad: {record.capacity}")
    if record.available is not None:
        lines.append(f"- Lugares disponibles: {record.available}")
    return "\n" + "\n".join(lines) + "\n"


def render_sections(sections: Iterable[ResponseSection]) -> str:
    return "\n".join(
        f"{i}. {section.title}: {section.description}"
        for i, section in enumerate(sections, start=1)
    )


def build_analysis_prompt(
    query: NormalizedQuery, sections: Sequence[ResponseSection] | None = None
) -> str:
    details = "".join(
        render_record(i, record) for i, record in enumerate(query.records, start=1)
    )
    return (
        f"{_PREAMBLE}\n\n"
        "**Datos generales:**\n"
        f"- Total encontrados: {_count(query.total)}\n"
        f"- Disponibles para estacionar: {_count(query.total_full)}\n\n"
        "**Detalle por ubicación:**\n"
        f"{details}\n"
        "**Formato requerido para la respuesta:**\n"
        f"{render_sections(sections or default_sections())}\n\n"
        f"{_CLOSING}"
    )
