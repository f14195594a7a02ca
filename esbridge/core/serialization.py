# esbridge/core/serialization.py
from __future__ import annotations

import json
import re
from collections.abc import Mapping as MappingType
from typing import Any, Dict, List, Optional, Tuple

from .buffer import BytesRef
from .config import Settings
from .errors import BridgeIllegalArgumentError
from .mapping import Mapping
from .registry import BULK_COMMAND, register
from .resource import Resource

Hit = Tuple[str, Dict[str, Any]]

_OPERATIONS = ("index", "create", "update")


def _lookup(record: MappingType[str, Any], path: str) -> Any:
    value: Any = record
    for part in path.split("."):
        if not isinstance(value, MappingType) or part not in value:
            raise BridgeIllegalArgumentError(f"Field [{path}] not found in record {record}")
        value = value[part]
    return value


class IndexPattern:
    """
    Write resource that may name its index from record fields, e.g. `logs-{service}`.
    Without a `{field}` placeholder every record goes to the same index.
    """

    _FIELD = re.compile(r"\{([^{}]+)\}")

    def __init__(self, template: str) -> None:
        self.template = template
        self.fields = [m.strip() for m in self._FIELD.findall(template)]

    @classmethod
    def compile(cls, template: str) -> "IndexPattern":
        return cls(template)

    @property
    def has_pattern(self) -> bool:
        return bool(self.fields)

    def render(self, record: MappingType[str, Any]) -> str:
        if not self.fields:
            return self.template
        return self._FIELD.sub(lambda m: str(_lookup(record, m.group(1).strip())), self.template)


@register(BULK_COMMAND, "json")
class JsonBulkCommand:
    """
    Turns a dict record into one NDJSON bulk entry (action line + source line).
    The returned BytesRef is owned by the command and reused for the next record.
    """

    def __init__(self, settings: Settings) -> None:
        operation = settings.write_operation.lower()
        if operation not in _OPERATIONS:
            raise BridgeIllegalArgumentError(
                f"Unsupported write operation [{settings.write_operation}]; expected {_OPERATIONS}"
            )
        self.operation = operation
        self.id_field = settings.mapping_id
        self.pattern = IndexPattern.compile(Resource(settings, read=False).index)
        self._ref = BytesRef()

    def write(self, record: Any) -> BytesRef:
        if not isinstance(record, MappingType):
            raise BridgeIllegalArgumentError(
                f"Cannot serialize {type(record).__name__}; expected a mapping"
            )

        meta: Dict[str, Any] = {"_index": self.pattern.render(record)}
        if self.id_field:
            meta["_id"] = str(_lookup(record, self.id_field))

        # _id is document metadata, never part of the source
        doc = {k: v for k, v in record.items() if k != "_id"} if "_id" in record else record
        source: Any = {"doc": doc} if self.operation == "update" else doc

        self._ref.reset()
        self._ref.add(json.dumps({self.operation: meta}, separators=(",", ":")))
        self._ref.add("\n")
        self._ref.add(json.dumps(source, separators=(",", ":"), default=str))
        self._ref.add("\n")
        return self._ref


class ScrollReader:
    """
    Decodes a scroll/search page into (doc_id, document) pairs.
    The mapping is optional; without one documents pass through untouched.
    """

    def __init__(
        self,
        mapping: Optional[Mapping] = None,
        read_metadata: bool = False,
        empty_as_null: bool = True,
    ) -> None:
        self.mapping = mapping
        self.read_metadata = read_metadata
        self.empty_as_null = empty_as_null

    def read(self, page: MappingType[str, Any]) -> List[Hit]:
        hits = ((page or {}).get("hits") or {}).get("hits") or []
        return [self._read_hit(hit) for hit in hits]

    def _read_hit(self, hit: MappingType[str, Any]) -> Hit:
        doc: Dict[str, Any] = dict(hit.get("_source") or hit.get("fields") or {})
        if self.mapping is not None and self.empty_as_null:
            self._nullify_empty(doc, "")
        if self.read_metadata:
            doc["_metadata"] = {
                "_index": hit.get("_index"),
                "_id": hit.get("_id"),
                "_score": hit.get("_score"),
            }
        return str(hit.get("_id")), doc

    def _nullify_empty(self, doc: Dict[str, Any], prefix: str) -> None:
        assert self.mapping is not None
        for key, value in doc.items():
            path = f"{prefix}{key}"
            if value == "" and path in self.mapping:
                doc[key] = None
            elif isinstance(value, dict):
                self._nullify_empty(value, f"{path}.")


__all__ = ["IndexPattern", "JsonBulkCommand", "ScrollReader", "Hit"]
