from __future__ import annotations

from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from polydb.adapters.base import BackendKind
from polydb.exceptions.errors import ConfigurationError
from polydb.tools.directory_tool import DIRECTORY_OPERATIONS
from polydb.tools.document_tool import DOCUMENT_OPERATIONS
from polydb.tools.generic_tool import GENERIC_OPERATIONS
from polydb.tools.keyvalue_tool import KEY_VALUE_OPERATIONS
from polydb.tools.registry import Operation

NATIVE_REGISTRIES: Dict[BackendKind, List[Operation]] = {
    BackendKind.KEY_VALUE: KEY_VALUE_OPERATIONS,
    BackendKind.DOCUMENT: DOCUMENT_OPERATIONS,
    BackendKind.DIRECTORY: DIRECTORY_OPERATIONS,
}


class Catalog:
    """Ordered, immutable set of operations visible for one backend kind."""

    def __init__(self, kind: BackendKind, operations: Iterable[Operation]):
        self.kind = kind
        self._operations = tuple(operations)
        self._by_name = {op.name: op for op in self._operations}

    def get(self, name: str) -> Optional[Operation]:
        return self._by_name.get(name)

    def names(self) -> List[str]:
        return [op.name for op in self._operations]

    def listing(self) -> List[Dict[str, Any]]:
        return [op.listing() for op in self._operations]

    def __iter__(self) -> Iterator[Operation]:
        return iter(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name


def _check_unique(registries: Sequence[Sequence[Operation]]) -> None:
    seen: Dict[str, int] = {}
    dupes = set()
    for i, registry in enumerate(registries):
        for op in registry:
            if op.name in seen:
                dupes.add(op.name)
            seen[op.name] = i
    if dupes:
        raise ConfigurationError(f"Duplicate operation names in registries: {', '.join(sorted(dupes))}")


def build_catalog(
    kind: BackendKind,
    generic: Optional[Sequence[Operation]] = None,
    native: Optional[Mapping[BackendKind, Sequence[Operation]]] = None,
) -> Catalog:
    """Generic operations, then the kind's native ones, filtered by applies_to.

    Pure function of the kind and the registries. A name appearing twice
    anywhere across the registries is a ConfigurationError even if the
    clash would be filtered out for this kind.
    """
    generic = GENERIC_OPERATIONS if generic is None else generic
    native = NATIVE_REGISTRIES if native is None else native

    _check_unique([generic, *native.values()])

    candidates = [*generic, *native.get(kind, [])]
    return Catalog(kind, [op for op in candidates if kind in op.applies_to])
