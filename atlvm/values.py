"""atlvm/values.py – Runtime values produced by expression evaluation.

Scalars are plain Python objects: ``int`` (Integer), ``float`` (Real),
``str`` (String), ``bool`` (Boolean) and ``None`` (OclUndefined).  Model
objects are opaque handles owned by their model.  The engine adds three
value classes of its own:

* ``OclCollection`` – one of the four collection kinds plus an item tuple
* ``OclTuple``      – an ordered name → value mapping
* ``OclType``       – the value of a type literal such as ``MM!Class``

Equality is strict and typed (``value_key``): ``'42'`` never equals
``42``, ``true`` never equals ``1``, Integer and Real compare
numerically, collections compare structurally according to their kind,
and model objects compare by identity.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Optional, Tuple

from atlvm.ast import CollectionKind


def split_type_name(name: str) -> Tuple[Optional[str], str]:
    """Split ``'MM!Class'`` into ``('MM', 'Class')``; unqualified → ``(None, name)``."""
    if "!" in name:
        metamodel, _, cls = name.partition("!")
        return metamodel, cls
    return None, name


# ---------------------------------------------------------------------------
# Typed equality
# ---------------------------------------------------------------------------

def value_key(value: Any) -> Hashable:
    """Hashable key such that ``value_key(a) == value_key(b)`` iff ``a = b``."""
    if value is None:
        return ("undefined",)
    if isinstance(value, bool):
        return ("b", value)
    if isinstance(value, (int, float)):
        return ("n", value)
    if isinstance(value, str):
        return ("s", value)
    if isinstance(value, OclCollection):
        keys = [value_key(item) for item in value.items]
        if value.kind is CollectionKind.SET:
            return ("Set", frozenset(keys))
        if value.kind is CollectionKind.BAG:
            return ("Bag", frozenset(Counter(keys).items()))
        return (value.kind.value, tuple(keys))
    if isinstance(value, OclTuple):
        return ("Tuple", tuple((name, value_key(v)) for name, v in value.fields))
    if isinstance(value, OclType):
        return ("type", value.name)
    return ("object", id(value))


def ocl_equals(lhs: Any, rhs: Any) -> bool:
    """Strict typed structural equality (identity for model objects)."""
    return value_key(lhs) == value_key(rhs)


def dedupe(items: Iterable[Any]) -> List[Any]:
    """Drop repeats, keeping the first occurrence of each value."""
    seen: set = set()
    out: List[Any] = []
    for item in items:
        key = value_key(item)
        if key not in seen:
            seen.add(key)
            out.append(item)
    return out


# ---------------------------------------------------------------------------
# Engine value classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True, eq=False)
class OclCollection:
    """An immutable collection value of a given kind.

    Build through ``OclCollection.of`` so that unique kinds are
    deduplicated; the item order is preserved for every kind.
    """

    kind: CollectionKind
    items: Tuple[Any, ...] = ()

    @classmethod
    def of(cls, kind: CollectionKind, items: Iterable[Any] = ()) -> "OclCollection":
        if kind.unique:
            return cls(kind, tuple(dedupe(items)))
        return cls(kind, tuple(items))

    @classmethod
    def sequence(cls, items: Iterable[Any] = ()) -> "OclCollection":
        return cls(CollectionKind.SEQUENCE, tuple(items))

    def with_kind(self, kind: CollectionKind) -> "OclCollection":
        """Convert to another kind, applying its dedup rule."""
        if kind is self.kind:
            return self
        return OclCollection.of(kind, self.items)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OclCollection):
            return NotImplemented
        return value_key(self) == value_key(other)

    def __hash__(self) -> int:
        return hash(value_key(self))

    def __repr__(self) -> str:
        return f"{self.kind.value}{{{', '.join(to_display(i) for i in self.items)}}}"


@dataclass(frozen=True, slots=True, eq=False)
class OclTuple:
    """An ordered name → value record."""

    fields: Tuple[Tuple[str, Any], ...] = ()

    def get(self, name: str, default: Any = None) -> Any:
        for key, value in self.fields:
            if key == name:
                return value
        return default

    def __contains__(self, name: object) -> bool:
        return any(key == name for key, _ in self.fields)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(key for key, _ in self.fields)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OclTuple):
            return NotImplemented
        return value_key(self) == value_key(other)

    def __hash__(self) -> int:
        return hash(value_key(self))

    def __repr__(self) -> str:
        parts = ", ".join(f"{k} = {to_display(v)}" for k, v in self.fields)
        return f"Tuple{{{parts}}}"


@dataclass(frozen=True, slots=True)
class OclType:
    """The value of a type literal."""

    name: str

    @property
    def metamodel(self) -> Optional[str]:
        return split_type_name(self.name)[0]

    @property
    def class_name(self) -> str:
        return split_type_name(self.name)[1]

    def __repr__(self) -> str:
        return self.name


# ---------------------------------------------------------------------------
# Classification helpers
# ---------------------------------------------------------------------------

#: Ancestry of the primitive and engine value types (type → distance).
BUILTIN_ANCESTRY: Dict[str, Dict[str, int]] = {
    "OclUndefined": {"OclUndefined": 0},
    "Boolean": {"Boolean": 0, "OclAny": 1},
    "Integer": {"Integer": 0, "Real": 1, "OclAny": 2},
    "Real": {"Real": 0, "OclAny": 1},
    "String": {"String": 0, "OclAny": 1},
    "Tuple": {"Tuple": 0, "OclAny": 1},
    "OclType": {"OclType": 0, "OclAny": 1},
}
for _kind in CollectionKind:
    BUILTIN_ANCESTRY[_kind.value] = {_kind.value: 0, "Collection": 1, "OclAny": 2}


def builtin_type_name(value: Any) -> Optional[str]:
    """OCL type name of a non-object value, or ``None`` for model objects."""
    if value is None:
        return "OclUndefined"
    if isinstance(value, bool):
        return "Boolean"
    if isinstance(value, int):
        return "Integer"
    if isinstance(value, float):
        return "Real"
    if isinstance(value, str):
        return "String"
    if isinstance(value, OclCollection):
        return value.kind.value
    if isinstance(value, OclTuple):
        return "Tuple"
    if isinstance(value, OclType):
        return "OclType"
    return None


def describe_type(value: Any) -> str:
    """Best-effort type name for diagnostics."""
    name = builtin_type_name(value)
    if name is not None:
        return name
    meta = getattr(value, "meta", None)
    return getattr(meta, "name", None) or type(value).__name__


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_orderable(value: Any) -> bool:
    """Ordering comparisons are defined for Integer, Real and String only."""
    return is_number(value) or isinstance(value, str)


def as_collection(value: Any) -> OclCollection:
    """OCL implicit conversion: undefined → empty, scalar → singleton."""
    if isinstance(value, OclCollection):
        return value
    if value is None:
        return OclCollection.sequence()
    return OclCollection.sequence((value,))


def to_display(value: Any) -> str:
    """Render a value the way ``toString()`` does."""
    if value is None:
        return "OclUndefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value
    if isinstance(value, (OclCollection, OclTuple, OclType)):
        return repr(value)
    return str(value)


__all__ = [
    "split_type_name",
    "value_key",
    "ocl_equals",
    "dedupe",
    "OclCollection",
    "OclTuple",
    "OclType",
    "BUILTIN_ANCESTRY",
    "builtin_type_name",
    "describe_type",
    "is_number",
    "is_orderable",
    "as_collection",
    "to_display",
]
