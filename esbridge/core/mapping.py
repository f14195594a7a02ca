# esbridge/core/mapping.py
from __future__ import annotations

import base64
import json
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping as MappingType, Optional

from loguru import logger

from .errors import BridgeIllegalArgumentError


class Mapping:
    """
    Flattened view of an index mapping: dotted field name -> field type.
    Built from a get-mapping response, which may hold several indices (aliases, patterns);
    their properties are merged.
    """

    def __init__(self, fields: Dict[str, str], raw: Optional[Dict[str, Any]] = None) -> None:
        self.fields = fields
        self.raw = raw or {}

    @classmethod
    def from_response(cls, response: MappingType[str, Any]) -> "Mapping":
        fields: Dict[str, str] = {}
        for body in response.values():
            mappings = (body or {}).get("mappings") or {}
            # pre-7.x responses nest properties under the type name
            if "properties" not in mappings and len(mappings) == 1:
                mappings = next(iter(mappings.values())) or {}
            _flatten(mappings.get("properties") or {}, "", fields)
        return cls(fields, dict(response))

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def __len__(self) -> int:
        return len(self.fields)

    def to_base64(self) -> str:
        raw = json.dumps({"fields": self.fields, "raw": self.raw}).encode("utf-8")
        return base64.b64encode(raw).decode("ascii")

    @classmethod
    def from_base64(cls, blob: str) -> "Mapping":
        data = json.loads(base64.b64decode(blob.encode("ascii")).decode("utf-8"))
        return cls(data["fields"], data.get("raw"))

    def __repr__(self) -> str:
        return f"Mapping({self.fields})"


def _flatten(properties: MappingType[str, Any], prefix: str, out: Dict[str, str]) -> None:
    for name, spec in properties.items():
        path = f"{prefix}{name}"
        nested = spec.get("properties")
        out[path] = spec.get("type", "object" if nested else "unknown")
        if nested:
            _flatten(nested, f"{path}.", out)


class FieldPresenceValidation(Enum):
    IGNORE = "ignore"
    WARNING = "warning"
    STRICT = "strict"

    @classmethod
    def parse(cls, value: str) -> "FieldPresenceValidation":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise BridgeIllegalArgumentError(
                f"Unknown field presence validation [{value}]; expected one of "
                f"{[v.value for v in cls]}"
            ) from None

    @property
    def is_required(self) -> bool:
        return self is not FieldPresenceValidation.IGNORE


def validate_mapping(
    fields: Optional[Iterable[str]], mapping: Mapping, validation: FieldPresenceValidation
) -> List[str]:
    """Return the requested fields missing from `mapping`; raise in STRICT mode."""
    if not fields or not validation.is_required:
        return []

    missing = [f for f in fields if f not in mapping]
    if missing:
        message = f"Field(s) {missing} not found in the mapping {sorted(mapping.fields)}"
        if validation is FieldPresenceValidation.STRICT:
            raise BridgeIllegalArgumentError(message)
        logger.warning(message)
    return missing


__all__ = ["Mapping", "FieldPresenceValidation", "validate_mapping"]
