"""
atlvm/lazy.py
=============

Memoized on-demand rule applications.

The first ``invoke`` for a (rule, source) pair creates the rule's target
objects, stores them, and only then initializes them, so a binding that
re-enters the same pair while it is being initialized receives the same
(still incomplete) objects instead of recursing forever.  Every later
``invoke`` returns the stored mapping without side effects.
"""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Hashable, Mapping, Optional, Tuple

from atlvm.trace import same_source, source_handle, source_key

logger = logging.getLogger(__name__)

#: ``create(rule_name, source) -> {variable: target}``
CreateFn = Callable[[str, Any], Awaitable[Mapping[str, Any]]]
#: ``initialize(rule_name, source, outputs) -> None``
InitializeFn = Callable[[str, Any, Mapping[str, Any]], Awaitable[None]]


class LazyApplication:
    """Cached result of one lazy rule application."""

    __slots__ = ("rule_name", "source_key", "_source_ref", "outputs", "complete")

    def __init__(self, rule_name: str, source: Any, outputs: Mapping[str, Any]) -> None:
        self.rule_name = rule_name
        self.source_key = source_key(source)
        self._source_ref = source_handle(source)
        self.outputs: Mapping[str, Any] = MappingProxyType(dict(outputs))
        self.complete = False

    def refers_to(self, source: Any) -> bool:
        return same_source(self.source_key, self._source_ref, source)

    def __repr__(self) -> str:
        state = "complete" if self.complete else "initializing"
        return f"LazyApplication({self.rule_name!r}, {state})"


class LazyRuleCache:
    """Per-run cache of lazy rule applications keyed by (rule, ``source_key``)."""

    def __init__(self, create: CreateFn, initialize: InitializeFn) -> None:
        self._create = create
        self._initialize = initialize
        self._entries: Dict[Tuple[str, Hashable], LazyApplication] = {}
        self.hits = 0
        self.misses = 0

    async def invoke(self, rule_name: str, source: Any) -> Mapping[str, Any]:
        """Targets of ``rule_name`` applied to ``source``, by output variable."""
        entry = self.entry(rule_name, source)
        if entry is not None:
            self.hits += 1
            if not entry.complete:
                logger.debug("lazy %s(%r) re-entered while initializing", rule_name, source)
            return entry.outputs

        self.misses += 1
        outputs = await self._create(rule_name, source)
        entry = LazyApplication(rule_name, source, outputs)
        self._entries[(rule_name, entry.source_key)] = entry
        await self._initialize(rule_name, source, entry.outputs)
        entry.complete = True
        logger.debug("lazy %s(%r) applied", rule_name, source)
        return entry.outputs

    def entry(self, rule_name: str, source: Any) -> Optional[LazyApplication]:
        entry = self._entries.get((rule_name, source_key(source)))
        if entry is not None and entry.refers_to(source):
            return entry
        return None

    def is_complete(self, rule_name: str, source: Any) -> bool:
        entry = self.entry(rule_name, source)
        return entry is not None and entry.complete

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"LazyRuleCache({len(self._entries)} entries, hits={self.hits})"


__all__ = ["LazyApplication", "LazyRuleCache"]
