from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional

from polydb.adapters.base import BackendAdapter, BackendKind

Handler = Callable[[BackendAdapter, Dict[str, Any]], Any]
ArgumentCheck = Callable[[BackendAdapter, Dict[str, Any]], None]


@dataclass(frozen=True)
class Operation:
    """One invocable tool.

    `handler(adapter, arguments)` returns a JSON-serializable payload.
    `check(adapter, arguments)` runs after schema validation and before the
    policy gate; the retrieval-class operations use it to reject statements
    that write.
    """

    name: str
    description: str
    parameter_schema: Dict[str, Any]
    applies_to: FrozenSet[BackendKind]
    handler: Handler = field(compare=False, repr=False)
    mutating: bool = False
    check: Optional[ArgumentCheck] = field(default=None, compare=False, repr=False)

    def listing(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "inputSchema": self.parameter_schema}


def object_schema(properties: Dict[str, Any], required: Iterable[str] = ()) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    req = list(required)
    if req:
        schema["required"] = req
    return schema


def string(description: str, **extra: Any) -> Dict[str, Any]:
    return {"type": "string", "description": description, **extra}


def integer(description: str, **extra: Any) -> Dict[str, Any]:
    return {"type": "integer", "description": description, **extra}


def obj(description: str) -> Dict[str, Any]:
    return {"type": "object", "description": description}


def array(description: str, items: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {"type": "array", "description": description, "items": items or {}}


def operations_for(kind: BackendKind, entries: List[Dict[str, Any]]) -> List[Operation]:
    """Build a native registry whose operations all apply to a single kind."""
    return [Operation(applies_to=frozenset({kind}), **e) for e in entries]
