"""Registry of operation records consulted by the specializer and differentiator."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, replace
import logging
import threading
from typing import Final

from .descriptors import descriptor_values_ntype
from .errors import ArityError, RegistryFrozenError
from .values import ANY_VALUES, ValuesNtype

logger = logging.getLogger(__name__)

FOLDABLE: Final[str] = "foldable"
MOVABLE: Final[str] = "movable"
KNOWN_PROPERTIES: Final[frozenset[str]] = frozenset({FOLDABLE, MOVABLE})


@dataclass(frozen=True)
class FnRecord:
    """Everything known about one operation.

    ``foldable`` means the implementation is pure, deterministic and safe to
    run on constant arguments during analysis. ``movable`` means the call has
    no observable side effects and may be reordered or duplicated.
    """

    name: object
    min_arguments: int = 0
    max_arguments: int | None = None
    properties: frozenset[str] = field(default_factory=frozenset)
    values: ValuesNtype = ANY_VALUES
    implementation: Callable | None = None
    specializer: Callable | None = None
    differentiator: Callable | None = None

    @property
    def foldable(self) -> bool:
        return FOLDABLE in self.properties

    @property
    def movable(self) -> bool:
        return MOVABLE in self.properties

    def accepts(self, count: int) -> bool:
        if count < self.min_arguments:
            return False
        return self.max_arguments is None or count <= self.max_arguments


def _values_ntype(values: object) -> ValuesNtype:
    if isinstance(values, ValuesNtype):
        return values
    parsed, _ = descriptor_values_ntype(values)
    return parsed


class FunctionDatabase:
    """Name-to-record registry with an initialize-then-freeze lifecycle.

    Writes take a lock and replace whole records; reads are plain dict
    lookups. After ``freeze()`` any registration raises
    ``RegistryFrozenError``.
    """

    def __init__(self, records: Iterable[FnRecord] = ()) -> None:
        self._records: dict[object, FnRecord] = {record.name: record for record in records}
        self._lock = threading.Lock()
        self._frozen = False

    def register(
        self,
        name: object,
        *,
        min_arguments: int = 0,
        max_arguments: int | None = None,
        properties: Iterable[str] = (),
        values: object = ANY_VALUES,
        implementation: Callable | None = None,
        specializer: Callable | None = None,
        differentiator: Callable | None = None,
    ) -> FnRecord:
        props = frozenset(properties)
        unknown = props - KNOWN_PROPERTIES
        if unknown:
            raise ValueError(f"Unknown function properties for {name!r}: {sorted(unknown)}")
        if min_arguments < 0 or (max_arguments is not None and max_arguments < min_arguments):
            raise ValueError(f"Invalid arity bounds for {name!r}: [{min_arguments}, {max_arguments}]")
        record = FnRecord(
            name=name,
            min_arguments=min_arguments,
            max_arguments=max_arguments,
            properties=props,
            values=_values_ntype(values),
            implementation=implementation,
            specializer=specializer,
            differentiator=differentiator,
        )
        self._store(record)
        return record

    def _store(self, record: FnRecord) -> None:
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(f"Cannot register {record.name!r}: function database is frozen")
            replaced = record.name in self._records
            self._records[record.name] = record
        logger.debug("%s function record %r", "Replaced" if replaced else "Registered", record.name)

    def update(self, name: object, **changes) -> FnRecord:
        """Replace fields of an existing record."""
        if "values" in changes:
            changes["values"] = _values_ntype(changes["values"])
        record = replace(self.ensure(name), **changes)
        self._store(record)
        return record

    def specializer(self, name: object) -> Callable[[Callable], Callable]:
        def decorate(rule: Callable) -> Callable:
            self.update(name, specializer=rule)
            return rule

        return decorate

    def differentiator(self, name: object) -> Callable[[Callable], Callable]:
        def decorate(rule: Callable) -> Callable:
            self.update(name, differentiator=rule)
            return rule

        return decorate

    def lookup(self, name: object) -> FnRecord | None:
        return self._records.get(name)

    def ensure(self, name: object) -> FnRecord:
        """Existing record, or an opaque default: unbounded arity, no properties, no rules."""
        record = self._records.get(name)
        if record is not None:
            return record
        return FnRecord(name=name)

    def check_arity(self, name: object, count: int) -> FnRecord:
        record = self.ensure(name)
        if not record.accepts(count):
            raise ArityError(name, count, record.min_arguments, record.max_arguments)
        return record

    def freeze(self) -> "FunctionDatabase":
        with self._lock:
            self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def names(self) -> tuple[object, ...]:
        return tuple(self._records)

    def copy(self) -> "FunctionDatabase":
        """Unfrozen copy sharing the (immutable) records."""
        return FunctionDatabase(self._records.values())

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __len__(self) -> int:
        return len(self._records)
