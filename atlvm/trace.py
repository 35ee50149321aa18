"""
atlvm/trace.py
==============

The trace model: which targets each (rule, source object) application
produced, under which output-pattern variable names.

Entries are keyed by ``source_key``: model objects by identity, Strings,
numbers, tuples and collections by typed value, so two equal Strings
share one entry.  The trace keeps a weak reference to a source object
where the object allows one, so it does not extend the lifetime of
anything the source model owns.  Values and objects without weak
reference support are held strongly; their identity can then never be
reused by a different source while the link exists.  Target handles are
kept because they are what ``resolve`` answers with.
"""

from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Hashable, Iterator, List, Mapping, Optional, Tuple

from atlvm.errors import (
    AmbiguousTraceError,
    DuplicateTraceError,
    MissingReferenceError,
)
from atlvm.values import builtin_type_name, describe_type, value_key

logger = logging.getLogger(__name__)


def source_key(source: Any) -> Hashable:
    """Dictionary key for ``source``: typed value for values, identity for objects."""
    return value_key(source)


def source_handle(source: Any) -> Callable[[], Any]:
    """A weak reference to ``source`` where supported, otherwise a strong one."""
    try:
        return weakref.ref(source)
    except TypeError:
        return lambda: source


def same_source(key: Hashable, handle: Callable[[], Any], source: Any) -> bool:
    """True if ``source`` is the source recorded as ``key`` / ``handle``."""
    if key != source_key(source):
        return False
    if builtin_type_name(source) is not None:
        return True
    return handle() is source


@dataclass(frozen=True)
class TraceLink:
    """One rule application: ``rule_name`` applied to the source keyed ``source_key``."""

    rule_name: str
    source_key: Hashable
    source_type: str
    outputs: Mapping[str, Any]
    kind: str = "matched"  # "matched" | "lazy"
    _source_ref: Callable[[], Any] = field(default=lambda: None, repr=False, compare=False)

    def refers_to(self, source: Any) -> bool:
        """True if this link was registered for ``source``."""
        return same_source(self.source_key, self._source_ref, source)

    @property
    def default_target(self) -> Any:
        """Target of the first output-pattern element."""
        return next(iter(self.outputs.values()))


class TraceModel:
    """
    Registry of rule applications, owned by one pipeline run.

    Usage::

        trace = TraceModel()
        trace.register("Class2Table", cls, {"t": table})
        assert trace.resolve(cls, "t") is table
    """

    def __init__(self) -> None:
        self._links: Dict[Tuple[str, Hashable], TraceLink] = {}
        self._by_source: Dict[Hashable, List[TraceLink]] = {}

    def register(
        self,
        rule_name: str,
        source: Any,
        outputs: Mapping[str, Any],
        kind: str = "matched",
    ) -> TraceLink:
        """Record an application; ``DuplicateTraceError`` if already present."""
        key = source_key(source)
        existing = self._links.get((rule_name, key))
        if existing is not None and existing.refers_to(source):
            raise DuplicateTraceError(rule_name, source)
        link = TraceLink(
            rule_name=rule_name,
            source_key=key,
            source_type=describe_type(source),
            outputs=MappingProxyType(dict(outputs)),
            kind=kind,
            _source_ref=source_handle(source),
        )
        self._links[(rule_name, key)] = link
        self._by_source.setdefault(key, []).append(link)
        logger.debug("trace %s(%r) -> %s", rule_name, source, list(outputs))
        return link

    def lookup(self, rule_name: str, source: Any) -> Optional[TraceLink]:
        link = self._links.get((rule_name, source_key(source)))
        if link is not None and link.refers_to(source):
            return link
        return None

    def links_for(self, source: Any) -> List[TraceLink]:
        return [l for l in self._by_source.get(source_key(source), ()) if l.refers_to(source)]

    def resolve(self, source: Any, variable: str, rule_name: Optional[str] = None) -> Any:
        """Target created for ``source`` under output variable ``variable``.

        Raises ``MissingReferenceError`` when nothing matches and
        ``AmbiguousTraceError`` when several rule applications match;
        passing ``rule_name`` narrows the search to one rule.
        """
        candidates = [
            link for link in self.links_for(source)
            if variable in link.outputs
            and (rule_name is None or link.rule_name == rule_name)
        ]
        if not candidates:
            raise MissingReferenceError(variable, source, rule_name)
        if len(candidates) > 1:
            raise AmbiguousTraceError(variable, [l.rule_name for l in candidates])
        return candidates[0].outputs[variable]

    def default_target(self, source: Any) -> Optional[Any]:
        """First target of the matched rule applied to ``source``, if any."""
        for link in self.links_for(source):
            if link.kind == "matched":
                return link.default_target
        return None

    def __len__(self) -> int:
        return len(self._links)

    def __iter__(self) -> Iterator[TraceLink]:
        return iter(list(self._links.values()))

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        rule_name, source = key
        return self.lookup(rule_name, source) is not None

    def __repr__(self) -> str:
        return f"TraceModel({len(self._links)} links)"


__all__ = ["source_key", "source_handle", "same_source", "TraceLink", "TraceModel"]
