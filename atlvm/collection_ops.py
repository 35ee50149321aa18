"""
atlvm/collection_ops.py
=======================

Semantics of the ``->`` collection operations.

The functions here know nothing about expressions or scopes: iterator
operations receive an ``ElementFn`` coroutine that the evaluator builds
so that every call binds the iterator in a fresh frame.  Predicates
count as satisfied only when they evaluate to ``true``; any other value,
undefined included, counts as not satisfied.

Result kinds
------------
* ``select`` / ``reject`` / ``including`` / ``excluding`` keep the source kind.
* ``collect`` yields a Sequence from ordered sources and a Bag otherwise.
* ``sortedBy`` yields an OrderedSet from unique sources and a Sequence otherwise.
* ``union`` / ``intersection`` / ``difference`` take the richer operand kind
  (OrderedSet > Set > Bag > Sequence).
"""

from __future__ import annotations

from collections import Counter
from typing import Any, Awaitable, Callable, Dict, List

from atlvm.ast import CollectionKind, CollectionOperation
from atlvm.errors import (
    InternalError,
    NoUniqueElementError,
    TypeMismatchError,
    UnsupportedOperationError,
)
from atlvm.values import (
    OclCollection,
    describe_type,
    is_number,
    ocl_equals,
    value_key,
)

ElementFn = Callable[[Any], Awaitable[Any]]


def _holds(value: Any) -> bool:
    return value is True


def result_kind(lhs: OclCollection, rhs: OclCollection) -> CollectionKind:
    """Kind of a set-algebra result: the richer of the two operand kinds."""
    return lhs.kind if lhs.kind.rank >= rhs.kind.rank else rhs.kind


def _expect_collection(value: Any, op: str) -> OclCollection:
    if not isinstance(value, OclCollection):
        raise TypeMismatchError("Collection", describe_type(value), context=f"'{op}'")
    return value


# ---------------------------------------------------------------------------
# Iterator operations
# ---------------------------------------------------------------------------

async def select(source: OclCollection, predicate: ElementFn) -> OclCollection:
    kept = [item for item in source if _holds(await predicate(item))]
    return OclCollection(source.kind, tuple(kept))


async def reject(source: OclCollection, predicate: ElementFn) -> OclCollection:
    kept = [item for item in source if not _holds(await predicate(item))]
    return OclCollection(source.kind, tuple(kept))


async def collect(source: OclCollection, mapper: ElementFn) -> OclCollection:
    out: List[Any] = []
    for item in source:
        value = await mapper(item)
        if isinstance(value, OclCollection):
            out.extend(value.items)
        else:
            out.append(value)
    kind = CollectionKind.SEQUENCE if source.kind.ordered else CollectionKind.BAG
    return OclCollection(kind, tuple(out))


async def exists(source: OclCollection, predicate: ElementFn) -> bool:
    for item in source:
        if _holds(await predicate(item)):
            return True
    return False


async def for_all(source: OclCollection, predicate: ElementFn) -> bool:
    for item in source:
        if not _holds(await predicate(item)):
            return False
    return True


async def one(source: OclCollection, predicate: ElementFn) -> bool:
    count = 0
    for item in source:
        if _holds(await predicate(item)):
            count += 1
            if count > 1:
                return False
    return count == 1


async def any_(source: OclCollection, predicate: ElementFn) -> Any:
    matches = [item for item in source if _holds(await predicate(item))]
    if len(matches) != 1:
        raise NoUniqueElementError(len(matches))
    return matches[0]


async def is_unique(source: OclCollection, key_fn: ElementFn) -> bool:
    seen: set = set()
    for item in source:
        key = value_key(await key_fn(item))
        if key in seen:
            return False
        seen.add(key)
    return True


async def sorted_by(source: OclCollection, key_fn: ElementFn) -> OclCollection:
    keyed = [(await key_fn(item), item) for item in source]
    keys = [k for k, _ in keyed]
    if keys:
        numeric = all(is_number(k) for k in keys)
        textual = all(isinstance(k, str) for k in keys)
        if not (numeric or textual):
            bad = next(
                (k for k in keys if not (is_number(k) or isinstance(k, str))),
                keys[-1],
            )
            raise TypeMismatchError(
                "Integer, Real or String keys of one kind",
                describe_type(bad),
                context="'sortedBy'",
            )
    # sorted() is stable: equal keys keep source order.
    ordered = [item for _, item in sorted(keyed, key=lambda pair: pair[0])]
    kind = CollectionKind.ORDERED_SET if source.kind.unique else CollectionKind.SEQUENCE
    return OclCollection(kind, tuple(ordered))


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def first(source: OclCollection) -> Any:
    return source.items[0] if source.items else None


def last(source: OclCollection) -> Any:
    return source.items[-1] if source.items else None


def sum_(source: OclCollection) -> Any:
    total: Any = 0
    for item in source:
        if not is_number(item):
            raise TypeMismatchError("Integer or Real", describe_type(item), context="'sum'")
        total = total + item
    return total


def flatten(source: OclCollection) -> OclCollection:
    out: List[Any] = []
    for item in source:
        if isinstance(item, OclCollection):
            out.extend(flatten(item).items)
        else:
            out.append(item)
    return OclCollection.of(source.kind, out)


def reverse(source: OclCollection) -> OclCollection:
    return OclCollection(source.kind, tuple(reversed(source.items)))


# ---------------------------------------------------------------------------
# Argument operations
# ---------------------------------------------------------------------------

def union(lhs: OclCollection, rhs: Any) -> OclCollection:
    rhs = _expect_collection(rhs, "union")
    return OclCollection.of(result_kind(lhs, rhs), lhs.items + rhs.items)


def intersection(lhs: OclCollection, rhs: Any) -> OclCollection:
    rhs = _expect_collection(rhs, "intersection")
    available = Counter(value_key(item) for item in rhs)
    out: List[Any] = []
    for item in lhs:
        key = value_key(item)
        if available[key] > 0:
            available[key] -= 1
            out.append(item)
    return OclCollection.of(result_kind(lhs, rhs), out)


def difference(lhs: OclCollection, rhs: Any) -> OclCollection:
    rhs = _expect_collection(rhs, "difference")
    removed = {value_key(item) for item in rhs}
    out = [item for item in lhs if value_key(item) not in removed]
    return OclCollection.of(result_kind(lhs, rhs), out)


def including(source: OclCollection, element: Any) -> OclCollection:
    return OclCollection.of(source.kind, source.items + (element,))


def excluding(source: OclCollection, element: Any) -> OclCollection:
    key = value_key(element)
    return OclCollection(
        source.kind, tuple(item for item in source if value_key(item) != key)
    )


def includes(source: OclCollection, element: Any) -> bool:
    return any(ocl_equals(item, element) for item in source)


def excludes(source: OclCollection, element: Any) -> bool:
    return not includes(source, element)


def count(source: OclCollection, element: Any) -> int:
    return sum(1 for item in source if ocl_equals(item, element))


def append(source: OclCollection, element: Any) -> OclCollection:
    return OclCollection.of(source.kind, source.items + (element,))


def prepend(source: OclCollection, element: Any) -> OclCollection:
    if source.kind.unique:
        rest = tuple(i for i in source.items if not ocl_equals(i, element))
        return OclCollection(source.kind, (element,) + rest)
    return OclCollection(source.kind, (element,) + source.items)


def at(source: OclCollection, index: Any) -> Any:
    if not isinstance(index, int) or isinstance(index, bool):
        raise TypeMismatchError("Integer", describe_type(index), context="'at'")
    if not 1 <= index <= len(source):
        raise UnsupportedOperationError(
            "at", f"index {index} outside 1..{len(source)}"
        )
    return source.items[index - 1]


def index_of(source: OclCollection, element: Any) -> int:
    """1-based position of ``element``, or 0 when absent."""
    for position, item in enumerate(source, start=1):
        if ocl_equals(item, element):
            return position
    return 0


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

ITERATOR_OPERATIONS: Dict[CollectionOperation, Callable[[OclCollection, ElementFn], Awaitable[Any]]] = {
    CollectionOperation.SELECT: select,
    CollectionOperation.REJECT: reject,
    CollectionOperation.COLLECT: collect,
    CollectionOperation.EXISTS: exists,
    CollectionOperation.FOR_ALL: for_all,
    CollectionOperation.ONE: one,
    CollectionOperation.ANY: any_,
    CollectionOperation.SORTED_BY: sorted_by,
    CollectionOperation.IS_UNIQUE: is_unique,
}

QUERY_OPERATIONS: Dict[CollectionOperation, Callable[[OclCollection], Any]] = {
    CollectionOperation.SIZE: len,
    CollectionOperation.IS_EMPTY: lambda c: len(c) == 0,
    CollectionOperation.NOT_EMPTY: lambda c: len(c) > 0,
    CollectionOperation.FIRST: first,
    CollectionOperation.LAST: last,
    CollectionOperation.SUM: sum_,
    CollectionOperation.FLATTEN: flatten,
    CollectionOperation.REVERSE: reverse,
    CollectionOperation.AS_SET: lambda c: c.with_kind(CollectionKind.SET),
    CollectionOperation.AS_SEQUENCE: lambda c: c.with_kind(CollectionKind.SEQUENCE),
    CollectionOperation.AS_BAG: lambda c: c.with_kind(CollectionKind.BAG),
    CollectionOperation.AS_ORDERED_SET: lambda c: c.with_kind(CollectionKind.ORDERED_SET),
}

ARGUMENT_OPERATIONS: Dict[CollectionOperation, Callable[[OclCollection, Any], Any]] = {
    CollectionOperation.UNION: union,
    CollectionOperation.INTERSECTION: intersection,
    CollectionOperation.DIFFERENCE: difference,
    CollectionOperation.INCLUDING: including,
    CollectionOperation.EXCLUDING: excluding,
    CollectionOperation.INCLUDES: includes,
    CollectionOperation.EXCLUDES: excludes,
    CollectionOperation.COUNT: count,
    CollectionOperation.APPEND: append,
    CollectionOperation.PREPEND: prepend,
    CollectionOperation.AT: at,
    CollectionOperation.INDEX_OF: index_of,
}


async def apply_iterator(op: CollectionOperation, source: OclCollection, fn: ElementFn) -> Any:
    handler = ITERATOR_OPERATIONS.get(op)
    if handler is None:
        raise InternalError(f"{op.value} is not an iterator operation")
    return await handler(source, fn)


def apply_query(op: CollectionOperation, source: OclCollection) -> Any:
    handler = QUERY_OPERATIONS.get(op)
    if handler is None:
        raise InternalError(f"{op.value} is not a query operation")
    return handler(source)


def apply_argument(op: CollectionOperation, source: OclCollection, argument: Any) -> Any:
    handler = ARGUMENT_OPERATIONS.get(op)
    if handler is None:
        raise InternalError(f"{op.value} is not an argument operation")
    return handler(source, argument)


__all__ = [
    "ElementFn",
    "result_kind",
    "select",
    "reject",
    "collect",
    "exists",
    "for_all",
    "one",
    "any_",
    "is_unique",
    "sorted_by",
    "first",
    "last",
    "sum_",
    "flatten",
    "reverse",
    "union",
    "intersection",
    "difference",
    "including",
    "excluding",
    "includes",
    "excludes",
    "count",
    "append",
    "prepend",
    "at",
    "index_of",
    "ITERATOR_OPERATIONS",
    "QUERY_OPERATIONS",
    "ARGUMENT_OPERATIONS",
    "apply_iterator",
    "apply_query",
    "apply_argument",
]
