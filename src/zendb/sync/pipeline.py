"""Per-entity mutation hooks applied to records right before they are written."""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List, Tuple, TypeVar

from zendb.storage.descriptors import EntityDescriptor

T = TypeVar("T")

Transformation = Callable[[T], None]


class TransformationPipeline:
    """Ordered hooks per entity type.

    Hooks receive the record itself and mutate it in place. They run once per
    record per import attempt, regardless of whether the record ends up being
    inserted or updated, so they must be idempotent.
    """

    def __init__(self) -> None:
        self._hooks: DefaultDict[str, List[Callable[[Any], None]]] = defaultdict(list)
        self._lock = threading.Lock()

    def register(
        self, descriptor: EntityDescriptor[T], fn: Transformation[T]
    ) -> None:
        if not callable(fn):
            raise TypeError(f"Transformation for {descriptor.name} must be callable")
        with self._lock:
            self._hooks[descriptor.name].append(fn)

    def hooks(self, descriptor: EntityDescriptor[Any]) -> Tuple[Callable[[Any], None], ...]:
        with self._lock:
            return tuple(self._hooks.get(descriptor.name, ()))

    def apply(self, descriptor: EntityDescriptor[T], record: T) -> T:
        for fn in self.hooks(descriptor):
            fn(record)
        return record
