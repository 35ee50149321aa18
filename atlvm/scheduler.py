"""
atlvm/scheduler.py
==================

Matching phase: pairs each source object with the single most specific
matched rule that accepts it.

A rule is a candidate for an object when its input type is an ancestor
or self of the object's runtime type.  Candidates are tried nearest
first; among those whose guard holds, the nearest wins.  Two passing
candidates at the same distance are an ``AmbiguousMatchError``.  Objects
that no rule accepts are left out of the schedule.

The traversal order is fixed: source models in the module's declaration
order, objects in the order their provider enumerates them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator, List, Mapping, Optional, Sequence, Tuple

from atlvm.errors import AmbiguousMatchError, AtlError, NavigationError, SourceSpan
from atlvm.evaluator import Evaluator
from atlvm.model import maybe_await
from atlvm.module import MatchedRule, TransformationModule
from atlvm.values import split_type_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScheduleEntry:
    """One (rule, source object) pair scheduled for application."""

    rule: MatchedRule
    source: Any
    model_alias: str
    position: int

    @property
    def rule_name(self) -> str:
        return self.rule.name


class Schedule:
    """Immutable, ordered result of the matching phase."""

    __slots__ = ("_entries", "examined")

    def __init__(self, entries: Sequence[ScheduleEntry] = (), examined: int = 0) -> None:
        self._entries: Tuple[ScheduleEntry, ...] = tuple(entries)
        # Source objects looked at, matched or not.
        self.examined = examined

    @property
    def entries(self) -> Tuple[ScheduleEntry, ...]:
        return self._entries

    def pairs(self) -> List[Tuple[str, Any]]:
        """``(rule name, source object)`` in schedule order."""
        return [(e.rule.name, e.source) for e in self._entries]

    def sources(self) -> List[Any]:
        return [e.source for e in self._entries]

    def for_rule(self, rule_name: str) -> List[ScheduleEntry]:
        return [e for e in self._entries if e.rule.name == rule_name]

    def __iter__(self) -> Iterator[ScheduleEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Schedule({len(self._entries)} entries)"


class RuleScheduler:
    """Builds a ``Schedule`` for one module over a set of source models."""

    def __init__(self, module: TransformationModule, evaluator: Evaluator) -> None:
        self.module = module
        self.evaluator = evaluator

    def _accepts_model(self, rule: MatchedRule, alias: str) -> bool:
        qualifier, _ = split_type_name(rule.source.type_name)
        if qualifier is None:
            return True
        return qualifier in (alias, self.module.source_metamodels.get(alias))

    async def _guard_holds(self, rule: MatchedRule, source: Any) -> bool:
        if rule.source.guard is None:
            return True
        env = self.evaluator.root_environment({rule.source.variable: source})
        return await self.evaluator.evaluate(rule.source.guard, env) is True

    async def select_rule(self, source: Any, alias: str) -> Optional[MatchedRule]:
        """The most specific matched rule for ``source``, or ``None``."""
        ancestry = await self.evaluator.type_ancestry(source)
        candidates: List[Tuple[int, MatchedRule]] = []
        for rule in self.module.matched_rules:
            distance = ancestry.get(split_type_name(rule.source.type_name)[1])
            if distance is not None and self._accepts_model(rule, alias):
                candidates.append((distance, rule))
        # sort is stable, so equal distances keep declaration order
        candidates.sort(key=lambda c: c[0])

        best_distance: Optional[int] = None
        winners: List[MatchedRule] = []
        for distance, rule in candidates:
            if best_distance is not None and distance > best_distance:
                break
            if await self._guard_holds(rule, source):
                best_distance = distance
                winners.append(rule)

        if len(winners) > 1:
            error = AmbiguousMatchError(source, [r.name for r in winners])
            for rule in winners:
                error.add_note(
                    f"rule '{rule.name}' matches {rule.source.type_name}",
                    span=SourceSpan.from_node(rule),
                )
            raise error
        return winners[0] if winners else None

    async def build(self, source_models: Mapping[str, Any]) -> Schedule:
        entries: List[ScheduleEntry] = []
        examined = 0
        for alias, _ in self.module.source_models:
            provider = source_models[alias]
            try:
                objects = await maybe_await(provider.objects())
            except AtlError:
                raise
            except Exception as exc:
                raise NavigationError(f"objects of {alias}", exc) from exc
            for source in objects:
                examined += 1
                rule = await self.select_rule(source, alias)
                if rule is None:
                    logger.debug("no rule matches %r", source)
                    continue
                entries.append(ScheduleEntry(rule, source, alias, len(entries)))
                logger.debug("scheduled %s(%r)", rule.name, source)
        logger.debug("matching produced %d entries from %d objects", len(entries), examined)
        return Schedule(entries, examined)


__all__ = ["ScheduleEntry", "Schedule", "RuleScheduler"]
