"""
atlvm/model.py
==============

Collaborator contracts through which the engine sees models, and a small
in-memory model that satisfies them.

This module provides:

* ``Navigator``       – feature navigation, native helper calls, type ancestry
* ``ModelProvider``   – object enumeration, creation and feature assignment
* ``ProgramLoader``   – front end producing ``TransformationModule`` trees
* ``maybe_await``     – await a collaborator result only when it is awaitable
* ``MetaFeature`` / ``MetaClass`` / ``Metamodel`` – reflective type layer
* ``ModelObject`` / ``Model`` – in-memory objects and their owning model

Every collaborator method may be a coroutine function; the engine awaits
results at exactly those call sites and nowhere else.
"""

from __future__ import annotations

import inspect
from collections import deque
from dataclasses import dataclass
from typing import (
    Any,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

from atlvm.errors import TypeMismatchError, UnknownFeatureError, UnsupportedOperationError
from atlvm.values import split_type_name

# ===================================================================== #
#  Protocols                                                            #
# ===================================================================== #

@runtime_checkable
class Navigator(Protocol):
    """Reads model objects on behalf of the evaluator."""

    def navigate(self, obj: Any, feature: str) -> Any: ...
    def call_helper(self, name: str, arguments: Sequence[Any]) -> Any: ...
    def type_ancestry(self, obj: Any) -> Mapping[str, int]: ...


@runtime_checkable
class ModelProvider(Protocol):
    """A source or target model as seen by the scheduler and the pipeline."""

    def objects(self) -> Iterable[Any]: ...
    def create(self, type_name: str) -> Any: ...
    def set_feature(self, obj: Any, feature: str, value: Any) -> None: ...


@runtime_checkable
class ProgramLoader(Protocol):
    """Turns transformation source text into a ``TransformationModule``."""

    def load(self, text: str, filename: str = "<string>") -> Any: ...


async def maybe_await(value: Any) -> Any:
    """Return ``value``, awaiting it first if a collaborator returned an awaitable."""
    if inspect.isawaitable(value):
        return await value
    return value


# ===================================================================== #
#  Reflective type layer                                                #
# ===================================================================== #

@dataclass(frozen=True, slots=True)
class MetaFeature:
    """An attribute or reference declared by a metaclass."""

    name: str
    many: bool = False
    default: Any = None


@dataclass(eq=False)
class MetaClass:
    """A type of model object, with single or multiple inheritance."""

    name: str
    features: Tuple[MetaFeature, ...] = ()
    supertypes: Tuple["MetaClass", ...] = ()
    abstract: bool = False

    def all_features(self) -> Dict[str, MetaFeature]:
        """Own and inherited features; own declarations shadow inherited ones."""
        merged: Dict[str, MetaFeature] = {}
        for sup in reversed(self.supertypes):
            merged.update(sup.all_features())
        for feat in self.features:
            merged[feat.name] = feat
        return merged

    def feature(self, name: str) -> Optional[MetaFeature]:
        return self.all_features().get(name)

    def ancestry(self) -> Dict[str, int]:
        """Every ancestor-or-self type name mapped to its shortest distance."""
        distances: Dict[str, int] = {self.name: 0}
        queue = deque([(self, 0)])
        while queue:
            cls, dist = queue.popleft()
            for sup in cls.supertypes:
                if sup.name not in distances:
                    distances[sup.name] = dist + 1
                    queue.append((sup, dist + 1))
        return distances

    def conforms_to(self, type_name: str) -> bool:
        return split_type_name(type_name)[1] in self.ancestry()

    def __repr__(self) -> str:
        return f"MetaClass({self.name!r})"


class Metamodel:
    """A named set of metaclasses."""

    def __init__(self, name: str, classes: Iterable[MetaClass] = ()) -> None:
        self.name = name
        self._classes: Dict[str, MetaClass] = {}
        for cls in classes:
            self.add(cls)

    def add(self, cls: MetaClass) -> MetaClass:
        self._classes[cls.name] = cls
        return cls

    def get(self, name: str) -> Optional[MetaClass]:
        return self._classes.get(split_type_name(name)[1])

    def __getitem__(self, name: str) -> MetaClass:
        cls = self.get(name)
        if cls is None:
            raise KeyError(f"{self.name} has no class {name!r}")
        return cls

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None

    def __iter__(self) -> Iterator[MetaClass]:
        return iter(self._classes.values())

    def __repr__(self) -> str:
        return f"Metamodel({self.name!r}, {sorted(self._classes)})"


# ===================================================================== #
#  In-memory objects and models                                         #
# ===================================================================== #

class ModelObject:
    """An object conforming to a ``MetaClass``; compared by identity."""

    def __init__(self, meta: MetaClass, **values: Any) -> None:
        self.meta = meta
        self._values: Dict[str, Any] = {}
        for name, value in values.items():
            self.set(name, value)

    @property
    def type_name(self) -> str:
        return self.meta.name

    def _feature(self, name: str) -> MetaFeature:
        feat = self.meta.feature(name)
        if feat is None:
            raise UnknownFeatureError(self.meta.name, name)
        return feat

    def has_feature(self, name: str) -> bool:
        return self.meta.feature(name) is not None

    def get(self, name: str) -> Any:
        """Current value of ``name``; many-valued features return a list copy."""
        feat = self._feature(name)
        if feat.many:
            return list(self._values.get(name, ()))
        return self._values.get(name, feat.default)

    def set(self, name: str, value: Any) -> None:
        feat = self._feature(name)
        if feat.many:
            if value is None:
                value = []
            elif isinstance(value, (list, tuple)):
                value = list(value)
            else:
                value = [value]
        elif isinstance(value, (list, tuple)):
            raise TypeMismatchError(
                "single value", f"{len(value)} values",
                context=f"{self.meta.name}.{name}",
            )
        self._values[name] = value

    def __repr__(self) -> str:
        label = self._values.get("name")
        if isinstance(label, str):
            return f"<{self.meta.name} {label!r}>"
        return f"<{self.meta.name} at {id(self):#x}>"


class Model:
    """An in-memory model: the objects of one metamodel, in insertion order."""

    def __init__(self, metamodel: Metamodel, name: str = "") -> None:
        self.metamodel = metamodel
        self.name = name or metamodel.name
        self._objects: List[ModelObject] = []

    # -- ModelProvider ---------------------------------------------------
    def objects(self) -> List[ModelObject]:
        return list(self._objects)

    def create(self, type_name: str) -> ModelObject:
        qualifier, cls_name = split_type_name(type_name)
        if qualifier is not None and qualifier != self.metamodel.name:
            raise UnsupportedOperationError(
                f"create {type_name}",
                f"model {self.name!r} conforms to {self.metamodel.name!r}",
            )
        cls = self.metamodel.get(cls_name)
        if cls is None:
            raise UnsupportedOperationError(
                f"create {type_name}",
                f"metamodel {self.metamodel.name!r} has no class {cls_name!r}",
            )
        if cls.abstract:
            raise UnsupportedOperationError(
                f"create {type_name}", f"class {cls_name!r} is abstract"
            )
        obj = ModelObject(cls)
        self._objects.append(obj)
        return obj

    def set_feature(self, obj: ModelObject, feature: str, value: Any) -> None:
        obj.set(feature, value)

    # -- Convenience -----------------------------------------------------
    def new(self, type_name: str, **values: Any) -> ModelObject:
        """Create an object and set its features in one call."""
        obj = self.create(type_name)
        for name, value in values.items():
            obj.set(name, value)
        return obj

    def all_instances_of(self, type_name: str) -> List[ModelObject]:
        return [o for o in self._objects if o.meta.conforms_to(type_name)]

    def find(self, type_name: str, **features: Any) -> List[ModelObject]:
        """Instances of ``type_name`` whose features equal ``features``."""
        return [
            o for o in self.all_instances_of(type_name)
            if all(o.get(k) == v for k, v in features.items())
        ]

    def __iter__(self) -> Iterator[ModelObject]:
        return iter(list(self._objects))

    def __len__(self) -> int:
        return len(self._objects)

    def __contains__(self, obj: object) -> bool:
        return any(o is obj for o in self._objects)

    def __repr__(self) -> str:
        return f"Model({self.name!r}, {len(self._objects)} objects)"


__all__ = [
    "Navigator",
    "ModelProvider",
    "ProgramLoader",
    "maybe_await",
    "MetaFeature",
    "MetaClass",
    "Metamodel",
    "ModelObject",
    "Model",
]
