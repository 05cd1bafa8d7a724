"""Reduce parking query payloads to a uniform list of records.

Upstream feeds describe a parking candidate in one of two shapes:

* nested: attributes live in ``contenido.contenido`` as ``{nombreId, valor}`` pairs;
* flat: attributes are plain keys on the instance (``calle``, ``domicilio``,
  ``tarifa``, ``capacidad``, ``disponibles`` ...).

The shape is resolved once here; everything downstream only sees
:class:`ParkingRecord`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

DEFAULT_STREET = "Calle no especificada"
DEFAULT_BLOCK = "S/N"
DEFAULT_PERMISSION = "Sin datos"
DEFAULT_SCHEDULE = "Sin horario"
DEFAULT_SIDE = ""
DEFAULT_DISTANCE = "N/D"

# Record field -> vendor attribute ids, first present wins.
_FIELD_KEYS: Dict[str, Tuple[str, ...]] = {
    "street": ("calle", "domicilio"),
    "block": ("altura",),
    "permission": ("permiso", "tarifa"),
    "schedule": ("horario",),
    "side": ("lado",),
    "capacity": ("capacidad",),
    "available": ("disponibles",),
}


class InstanceShape(str, Enum):
    nested = "nested"
    flat = "flat"


@dataclass(frozen=True)
class RawInstance:
    shape: InstanceShape
    name: Optional[str]
    attributes: Mapping[str, Any]
    distance: Any = None


@dataclass(frozen=True)
class ParkingRecord:
    street: str = DEFAULT_STREET
    block: str = DEFAULT_BLOCK
    permission: str = DEFAULT_PERMISSION
    schedule: str = DEFAULT_SCHEDULE
    side: str = DEFAULT_SIDE
    distance: str = DEFAULT_DISTANCE
    capacity: Optional[str] = None
    available: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_permitted(self) -> bool:
        return "PERMITIDO" in self.permission.upper()

    @property
    def is_prohibited(self) -> bool:
        return "PROHIBIDO" in self.permission.upper()


@dataclass(frozen=True)
class NormalizedQuery:
    records: Tuple[ParkingRecord, ...]
    total: Any = None
    total_full: Any = None

    @property
    def is_empty(self) -> bool:
        return not self.records


def is_missing_value(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def fold_attributes(entries: Any) -> Dict[str, Any]:
    """Turn a ``[{nombreId, valor}, ...]`` list into ``{nombreId: valor}``.

    Later duplicates override earlier ones; malformed entries are ignored.
    """
    folded: Dict[str, Any] = {}
    if not isinstance(entries, list):
        return folded
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        key = entry.get("nombreId")
        if not isinstance(key, str) or not key:
            continue
        folded[key] = entry.get("valor")
    return folded


def classify_instance(raw: Any) -> RawInstance:
    if not isinstance(raw, dict):
        return RawInstance(shape=InstanceShape.flat, name=None, attributes={})
    name = raw.get("nombre") if isinstance(raw.get("nombre"), str) else None
    container = raw.get("contenido")
    if isinstance(container, dict):
        return RawInstance(
            shape=InstanceShape.nested,
            name=name,
            attributes=fold_attributes(container.get("contenido")),
            distance=raw.get("distancia"),
        )
    return RawInstance(
        shape=InstanceShape.flat,
        name=name,
        attributes=raw,
        distance=raw.get("distancia"),
    )


def _lookup(attributes: Mapping[str, Any], field: str) -> Optional[str]:
    for key in _FIELD_KEYS[field]:
        value = attributes.get(key)
        if not is_missing_value(value):
            return str(value).strip() if isinstance(value, str) else str(value)
    return None


def to_record(instance: RawInstance) -> ParkingRecord:
    attrs = instance.attributes
    distance = instance.distance
    return ParkingRecord(
        street=_lookup(attrs, "street") or DEFAULT_STREET,
        block=_lookup(attrs, "block") or DEFAULT_BLOCK,
        permission=_lookup(attrs, "permission") or DEFAULT_PERMISSION,
        schedule=_lookup(attrs, "schedule") or DEFAULT_SCHEDULE,
        side=_lookup(attrs, "side") or DEFAULT_SIDE,
        distance=DEFAULT_DISTANCE if is_missing_value(distance) else str(distance).strip(),
        capacity=_lookup(attrs, "capacity"),
        available=_lookup(attrs, "available"),
        name=instance.name,
    )


def normalize_query(data: Mapping[str, Any]) -> NormalizedQuery:
    instances = data.get("instancias")
    if not isinstance(instances, list):
        instances = []
    records: List[ParkingRecord] = [to_record(classify_instance(raw)) for raw in instances]
    return NormalizedQuery(
        records=tuple(records),
        total=data.get("total"),
        total_full=data.get("totalFull"),
    )
