# esbridge/core/registry.py
from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Tuple, Type, TypeVar

from .errors import BridgeIllegalArgumentError

T = TypeVar("T")

BULK_COMMAND = "bulk_command"
VALUE_ADAPTER = "value_adapter"


class Registry:
    """
    Pluggable components looked up by (kind, name), so settings can select a codec or a
    value adapter by name and split payloads stay plain JSON.
    Example:
        @register(BULK_COMMAND, "json")
        class JsonBulkCommand(...): ...
    """

    def __init__(self) -> None:
        self._items: Dict[Tuple[str, str], Type[Any]] = {}

    def register(self, kind: str, name: str, cls: Type[Any]) -> None:
        key = (kind, name.lower())
        if key in self._items and self._items[key] is not cls:
            raise ValueError(f"Registry already has a different {kind} for '{name}'")
        self._items[key] = cls

    def get(self, kind: str, name: str) -> Optional[Type[Any]]:
        return self._items.get((kind, name.lower()))

    def create(self, kind: str, name: str, *args: Any, **kwargs: Any) -> Any:
        cls = self.get(kind, name)
        if not cls:
            known = sorted(n for k, n in self._items if k == kind)
            raise BridgeIllegalArgumentError(f"Unknown {kind} '{name}'; known: {known}")
        return cls(*args, **kwargs)


_global_registry = Registry()


def register(kind: str, name: str) -> Callable[[Type[T]], Type[T]]:
    def deco(cls: Type[T]) -> Type[T]:
        _global_registry.register(kind, name, cls)
        return cls

    return deco


def get_registry() -> Registry:
    return _global_registry


__all__ = ["Registry", "register", "get_registry", "BULK_COMMAND", "VALUE_ADAPTER"]
