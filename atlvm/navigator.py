"""
atlvm/navigator.py
==================

The helper table and the default navigator.

A ``HelperTable`` is built once per pipeline from the module's helper
definitions plus any native Python helpers, and handed to the navigator
explicitly; there is no process-wide registry.  Context helpers are
selected by the runtime type of their receiver, most specific first.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from atlvm.errors import DuplicateDefinitionError, UnresolvedHelperError
from atlvm.model import ModelObject
from atlvm.module import Helper, TransformationModule
from atlvm.values import (
    BUILTIN_ANCESTRY,
    OclCollection,
    builtin_type_name,
    split_type_name,
)

logger = logging.getLogger(__name__)


class HelperTable:
    """Module helpers indexed by name, plus native Python helpers."""

    def __init__(
        self,
        helpers: Iterable[Helper] = (),
        natives: Optional[Mapping[str, Callable[..., Any]]] = None,
    ) -> None:
        self._module: Dict[str, Helper] = {}
        self._contextual: Dict[str, List[Helper]] = {}
        self._natives: Dict[str, Callable[..., Any]] = dict(natives or {})
        for helper in helpers:
            self.add(helper)

    @classmethod
    def from_module(
        cls,
        module: TransformationModule,
        natives: Optional[Mapping[str, Callable[..., Any]]] = None,
    ) -> "HelperTable":
        return cls(module.helpers, natives)

    def add(self, helper: Helper) -> None:
        if helper.context_type is None:
            if helper.name in self._module:
                raise DuplicateDefinitionError(helper.name, kind="helper")
            self._module[helper.name] = helper
        else:
            self._contextual.setdefault(helper.name, []).append(helper)

    # -- Lookup ----------------------------------------------------------
    def module_helper(self, name: str) -> Optional[Helper]:
        """Helper declared without a context type."""
        return self._module.get(name)

    def lookup(
        self,
        name: str,
        ancestry: Mapping[str, int],
        attribute: Optional[bool] = None,
    ) -> Optional[Helper]:
        """The context helper whose context type is nearest the receiver type.

        Ties between equally near context types go to the first declared.
        ``attribute`` restricts the search to attribute (``True``) or
        operation (``False``) helpers.
        """
        best: Optional[Helper] = None
        best_distance = -1
        for helper in self._contextual.get(name, ()):
            if attribute is not None and helper.is_attribute != attribute:
                continue
            distance = ancestry.get(split_type_name(helper.context_type or "")[1])
            if distance is None:
                continue
            if best is None or distance < best_distance:
                best, best_distance = helper, distance
        return best

    def native(self, name: str) -> Optional[Callable[..., Any]]:
        return self._natives.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._module or name in self._contextual or name in self._natives

    def __len__(self) -> int:
        return (
            len(self._module)
            + sum(len(v) for v in self._contextual.values())
            + len(self._natives)
        )

    def __repr__(self) -> str:
        return (
            f"HelperTable(module={sorted(self._module)}, "
            f"contextual={sorted(self._contextual)}, native={sorted(self._natives)})"
        )


class ModelNavigator:
    """
    Default ``Navigator`` over ``ModelObject`` instances.

    Plain Python objects are navigated with ``getattr`` and typed by their
    class MRO, so host objects can take part in a transformation without
    an adapter.  Many-valued features come back as ``Sequence`` values.
    """

    def __init__(self, helpers: Optional[HelperTable] = None) -> None:
        self.helpers = helpers if helpers is not None else HelperTable()

    def navigate(self, obj: Any, feature: str) -> Any:
        if isinstance(obj, ModelObject):
            value = obj.get(feature)
        else:
            value = getattr(obj, feature)
        if isinstance(value, (list, tuple)):
            return OclCollection.sequence(value)
        return value

    def has_feature(self, obj: Any, feature: str) -> bool:
        if isinstance(obj, ModelObject):
            return obj.has_feature(feature)
        return hasattr(obj, feature)

    def call_helper(self, name: str, arguments: Sequence[Any]) -> Any:
        fn = self.helpers.native(name)
        if fn is None:
            raise UnresolvedHelperError(name)
        logger.debug("native helper %s(%d args)", name, len(arguments))
        return fn(*arguments)

    def type_ancestry(self, obj: Any) -> Mapping[str, int]:
        builtin = builtin_type_name(obj)
        if builtin is not None:
            return BUILTIN_ANCESTRY[builtin]
        if isinstance(obj, ModelObject):
            return obj.meta.ancestry()
        # MRO position stands in for inheritance distance on host objects.
        distances: Dict[str, int] = {}
        for depth, cls in enumerate(type(obj).__mro__):
            distances.setdefault(cls.__name__, depth)
        return distances


__all__ = ["HelperTable", "ModelNavigator"]
