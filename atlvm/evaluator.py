"""
atlvm/evaluator.py
==================

Expression evaluator for the embedded query language.

``Evaluator.evaluate(expression, environment)`` is a total dispatch over
the closed ``Expression`` variant set (``atlvm.ast.EXPRESSION_DISPATCH``).
It has no knowledge of rule scheduling: anything that needs the running
transformation (lazy and called rules, ``resolveTemp``, ``allInstances``)
goes through an optional ``TransformationContext`` supplied by the
pipeline.

The only suspension points are collaborator calls: navigation, native
helpers, type ancestry and the context's rule invocations.  A collaborator
may return a plain value or an awaitable; see ``atlvm.model.maybe_await``.

Operator semantics
------------------
* Integer op Integer stays Integer; a Real operand promotes both to Real.
* ``/`` and ``div`` on two Integers truncate toward zero; ``mod`` takes
  the sign of the dividend.  A zero divisor raises ``DivisionByZeroError``.
* ``+`` concatenates only when both operands are Strings.
* ``<``, ``<=``, ``>``, ``>=`` accept two numbers or two Strings.
* ``=`` / ``<>`` use strict typed equality (``atlvm.values.value_key``).
* ``and`` / ``or`` / ``implies`` short-circuit on their left operand.
"""

from __future__ import annotations

import logging
import math
import time
from contextlib import contextmanager
from typing import (
    Any,
    Callable,
    Dict,
    Iterator,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    runtime_checkable,
)

from atlvm import collection_ops
from atlvm.ast import (
    BinaryOp,
    BinaryOperator,
    CollectionKind,
    CollectionLiteral,
    CollectionOp,
    CollectionOperation,
    Conditional,
    Expression,
    HelperCall,
    Iterate,
    Lambda,
    Let,
    Literal,
    MethodCall,
    Navigation,
    TupleExpr,
    TypeLiteral,
    UnaryOp,
    UnaryOperator,
    VariableRef,
    dispatch_expression,
)
from atlvm.config import EngineConfig
from atlvm.environment import Environment
from atlvm.errors import (
    ArityMismatchError,
    AtlError,
    DivisionByZeroError,
    NavigationError,
    SourceSpan,
    TypeMismatchError,
    UnknownFeatureError,
    UnresolvedHelperError,
    UnsupportedOperationError,
)
from atlvm.model import maybe_await
from atlvm.module import CalledRule, Helper, LazyRule, TransformationModule
from atlvm.navigator import HelperTable, ModelNavigator
from atlvm.values import (
    BUILTIN_ANCESTRY,
    OclCollection,
    OclTuple,
    OclType,
    as_collection,
    builtin_type_name,
    describe_type,
    is_number,
    is_orderable,
    ocl_equals,
    to_display,
)

logger = logging.getLogger(__name__)

#: Name bound in every root frame to the running module.
THIS_MODULE = "thisModule"


# ===================================================================== #
#  Collaborator contracts                                               #
# ===================================================================== #

class ModuleHandle:
    """The value of ``thisModule``."""

    __slots__ = ("module",)

    def __init__(self, module: Optional[TransformationModule] = None) -> None:
        self.module = module

    def __repr__(self) -> str:
        name = self.module.name if self.module is not None else "<none>"
        return f"<thisModule {name}>"


@runtime_checkable
class TransformationContext(Protocol):
    """What the evaluator needs from a running transformation."""

    module: TransformationModule

    async def invoke_lazy(self, rule: LazyRule, argument: Any) -> Any: ...
    async def invoke_called(self, rule: CalledRule, arguments: Sequence[Any]) -> Any: ...
    def resolve_temp(self, source: Any, variable: str, rule_name: Optional[str] = None) -> Any: ...
    async def all_instances(self, type_name: str, alias: Optional[str] = None) -> OclCollection: ...


# ===================================================================== #
#  Operators                                                            #
# ===================================================================== #

def _trunc_div(a: int, b: int) -> int:
    """Integer division truncated toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


def _require_bool(value: Any, op: str) -> bool:
    if not isinstance(value, bool):
        raise TypeMismatchError("Boolean", describe_type(value), context=f"'{op}'")
    return value


def _arithmetic(op: BinaryOperator, lhs: Any, rhs: Any) -> Any:
    if op is BinaryOperator.ADD and isinstance(lhs, str) and isinstance(rhs, str):
        return lhs + rhs
    if not (is_number(lhs) and is_number(rhs)):
        expected = "Integer, Real or String" if op is BinaryOperator.ADD else "Integer or Real"
        raise TypeMismatchError(
            expected,
            f"{describe_type(lhs)} {op.value} {describe_type(rhs)}",
            context=f"'{op.value}'",
        )
    if op is BinaryOperator.INT_DIV and (isinstance(lhs, float) or isinstance(rhs, float)):
        raise TypeMismatchError("Integer", "Real", context="'div'")

    real = isinstance(lhs, float) or isinstance(rhs, float)
    if real:
        lhs, rhs = float(lhs), float(rhs)

    if op is BinaryOperator.ADD:
        return lhs + rhs
    if op is BinaryOperator.SUB:
        return lhs - rhs
    if op is BinaryOperator.MUL:
        return lhs * rhs

    if rhs == 0:
        raise DivisionByZeroError(op.value)
    if op is BinaryOperator.DIV:
        return lhs / rhs if real else _trunc_div(lhs, rhs)
    if op is BinaryOperator.INT_DIV:
        return _trunc_div(lhs, rhs)
    if op is BinaryOperator.MOD:
        return math.fmod(lhs, rhs) if real else lhs - rhs * _trunc_div(lhs, rhs)
    raise UnsupportedOperationError(op.value, "not an arithmetic operator")


def _compare(op: BinaryOperator, lhs: Any, rhs: Any) -> bool:
    # Numbers order with numbers and Strings with Strings.
    if not (is_orderable(lhs) and is_orderable(rhs) and is_number(lhs) == is_number(rhs)):
        raise TypeMismatchError(
            "two numbers or two Strings",
            f"{describe_type(lhs)} {op.value} {describe_type(rhs)}",
            context=f"'{op.value}'",
        )
    if op is BinaryOperator.LT:
        return lhs < rhs
    if op is BinaryOperator.LE:
        return lhs <= rhs
    if op is BinaryOperator.GT:
        return lhs > rhs
    return lhs >= rhs


def binary_operation(op: BinaryOperator, lhs: Any, rhs: Any) -> Any:
    """Apply ``op`` to two already evaluated operands."""
    if op is BinaryOperator.EQ:
        return ocl_equals(lhs, rhs)
    if op is BinaryOperator.NE:
        return not ocl_equals(lhs, rhs)
    if op.is_comparison:
        return _compare(op, lhs, rhs)
    if op.is_logical:
        a = _require_bool(lhs, op.value)
        b = _require_bool(rhs, op.value)
        if op is BinaryOperator.AND:
            return a and b
        if op is BinaryOperator.OR:
            return a or b
        if op is BinaryOperator.XOR:
            return a != b
        return (not a) or b

    if op in (BinaryOperator.INCLUDES, BinaryOperator.EXCLUDES):
        if not isinstance(lhs, OclCollection):
            raise TypeMismatchError("Collection", describe_type(lhs), context=f"'{op.value}'")
        found = collection_ops.includes(lhs, rhs)
        return found if op is BinaryOperator.INCLUDES else not found
    if op in (BinaryOperator.UNION, BinaryOperator.INTERSECTION):
        if not isinstance(lhs, OclCollection):
            raise TypeMismatchError("Collection", describe_type(lhs), context=f"'{op.value}'")
        if op is BinaryOperator.UNION:
            return collection_ops.union(lhs, rhs)
        return collection_ops.intersection(lhs, rhs)
    if op is BinaryOperator.SUB and isinstance(lhs, OclCollection):
        return collection_ops.difference(lhs, rhs)

    return _arithmetic(op, lhs, rhs)


def unary_operation(op: UnaryOperator, operand: Any) -> Any:
    """Apply ``op`` to an already evaluated operand."""
    if op is UnaryOperator.NOT:
        return not _require_bool(operand, "not")
    if not is_number(operand):
        raise TypeMismatchError("Integer or Real", describe_type(operand), context="unary '-'")
    return -operand


# ===================================================================== #
#  Built-in operations on primitive receivers                           #
# ===================================================================== #

def _str_arg(value: Any, op: str) -> str:
    if not isinstance(value, str):
        raise TypeMismatchError("String", describe_type(value), context=f"'{op}'")
    return value


def _int_arg(value: Any, op: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeMismatchError("Integer", describe_type(value), context=f"'{op}'")
    return value


def _num_arg(value: Any, op: str) -> Any:
    if not is_number(value):
        raise TypeMismatchError("Integer or Real", describe_type(value), context=f"'{op}'")
    return value


def _substring(s: str, lower: Any, upper: Any) -> str:
    lo, hi = _int_arg(lower, "substring"), _int_arg(upper, "substring")
    if lo < 1 or hi > len(s) or lo > hi + 1:
        raise UnsupportedOperationError(
            "substring", f"range {lo}..{hi} outside 1..{len(s)}"
        )
    return s[lo - 1:hi]


def _to_integer(s: str) -> int:
    try:
        return int(s.strip())
    except ValueError as exc:
        raise TypeMismatchError("Integer literal", repr(s), context="'toInteger'", cause=exc) from exc


def _to_real(s: str) -> float:
    try:
        return float(s.strip())
    except ValueError as exc:
        raise TypeMismatchError("Real literal", repr(s), context="'toReal'", cause=exc) from exc


def _power(base: Any, exponent: Any) -> Any:
    _num_arg(exponent, "power")
    if isinstance(base, int) and isinstance(exponent, int) and exponent >= 0:
        return base ** exponent
    return float(base) ** float(exponent)


#: name -> (arity, fn(receiver, *args))
STRING_OPERATIONS: Dict[str, Tuple[int, Callable[..., Any]]] = {
    "size": (0, len),
    "concat": (1, lambda s, t: s + _str_arg(t, "concat")),
    "toUpper": (0, str.upper),
    "toLower": (0, str.lower),
    "firstToUpper": (0, lambda s: s[:1].upper() + s[1:]),
    "firstToLower": (0, lambda s: s[:1].lower() + s[1:]),
    "trim": (0, str.strip),
    "substring": (2, _substring),
    "indexOf": (1, lambda s, t: s.find(_str_arg(t, "indexOf")) + 1),
    "startsWith": (1, lambda s, t: s.startswith(_str_arg(t, "startsWith"))),
    "endsWith": (1, lambda s, t: s.endswith(_str_arg(t, "endsWith"))),
    "toInteger": (0, _to_integer),
    "toReal": (0, _to_real),
    "toSequence": (0, lambda s: OclCollection.sequence(tuple(s))),
}

NUMBER_OPERATIONS: Dict[str, Tuple[int, Callable[..., Any]]] = {
    "abs": (0, abs),
    "floor": (0, math.floor),
    # OCL rounds halves up, not to even.
    "round": (0, lambda n: math.floor(n + 0.5)),
    "max": (1, lambda a, b: max(a, _num_arg(b, "max"))),
    "min": (1, lambda a, b: min(a, _num_arg(b, "min"))),
    "div": (1, lambda a, b: binary_operation(BinaryOperator.INT_DIV, a, b)),
    "mod": (1, lambda a, b: binary_operation(BinaryOperator.MOD, a, b)),
    "power": (1, _power),
    "isEven": (0, lambda n: _int_arg(n, "isEven") % 2 == 0),
    "isOdd": (0, lambda n: _int_arg(n, "isOdd") % 2 == 1),
    "square": (0, lambda n: n * n),
}


def _call_table(
    table: Dict[str, Tuple[int, Callable[..., Any]]],
    name: str,
    receiver: Any,
    args: Sequence[Any],
) -> Any:
    arity, fn = table[name]
    if len(args) != arity:
        raise ArityMismatchError(name, arity, len(args))
    return fn(receiver, *args)


def _from_host(value: Any) -> Any:
    """Convert Python containers returned by collaborators into values."""
    if isinstance(value, (list, tuple)):
        return OclCollection.sequence(value)
    if isinstance(value, (set, frozenset)):
        return OclCollection.of(CollectionKind.SET, value)
    return value


@contextmanager
def accumulate_time(times: Dict[str, float], name: str) -> Iterator[None]:
    """Add the wall time spent in the block to ``times[name]``."""
    started = time.perf_counter()
    try:
        yield
    finally:
        times[name] = times.get(name, 0.0) + time.perf_counter() - started


# ===================================================================== #
#  Evaluator                                                            #
# ===================================================================== #

class Evaluator:
    """
    Evaluates expressions against an ``Environment``.

    Usage::

        evaluator = Evaluator(ModelNavigator(helpers))
        env = evaluator.root_environment({"c": some_class})
        value = await evaluator.evaluate(expr, env)

    One evaluator may serve many evaluations, but concurrent evaluations
    must each use their own ``Environment``.
    """

    def __init__(
        self,
        navigator: Any = None,
        *,
        helpers: Optional[HelperTable] = None,
        context: Optional[TransformationContext] = None,
        config: Optional[EngineConfig] = None,
    ) -> None:
        self.navigator = navigator if navigator is not None else ModelNavigator(helpers)
        if helpers is None:
            helpers = getattr(self.navigator, "helpers", None) or HelperTable()
        self.helpers: HelperTable = helpers
        self.context = context
        self.config = config or EngineConfig()
        self._module_handle = ModuleHandle(context.module if context is not None else None)
        self._attribute_cache: Dict[str, Any] = {}

        # Counters read by the pipeline's statistics.
        self.navigations = 0
        self.helper_invocations = 0
        # Helper name -> seconds spent in it, nested calls included.
        self.helper_times: Dict[str, float] = {}

    def root_environment(self, bindings: Optional[Mapping[str, Any]] = None) -> Environment:
        """A fresh environment binding ``thisModule`` plus ``bindings``."""
        root: Dict[str, Any] = {THIS_MODULE: self._module_handle}
        if bindings:
            root.update(bindings)
        return Environment(root)

    async def evaluate(self, expr: Expression, env: Environment) -> Any:
        """Evaluate ``expr``; errors are tagged with the innermost location."""
        try:
            return await dispatch_expression(expr, self, env)
        except AtlError as exc:
            exc.locate(SourceSpan.from_node(expr))
            raise

    # -- Collaborators ---------------------------------------------------
    async def _collaborate(self, target: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            result = await maybe_await(fn(*args))
        except AtlError:
            raise
        except Exception as exc:
            raise NavigationError(target, exc) from exc
        return _from_host(result)

    async def type_ancestry(self, value: Any) -> Mapping[str, int]:
        """Type name → inheritance distance for ``value``'s runtime type."""
        name = builtin_type_name(value)
        if name is not None:
            return BUILTIN_ANCESTRY[name]
        return await self._collaborate(
            f"type of {describe_type(value)}", self.navigator.type_ancestry, value
        )

    async def _has_feature(self, obj: Any, feature: str) -> bool:
        has_feature = getattr(self.navigator, "has_feature", None)
        if has_feature is None:
            return False
        return bool(await self._collaborate(feature, has_feature, obj, feature))

    # -- Leaves ----------------------------------------------------------
    async def visit_literal(self, expr: Literal, env: Environment) -> Any:
        return expr.value

    async def visit_variable(self, expr: VariableRef, env: Environment) -> Any:
        return env.lookup(expr.name, SourceSpan.from_node(expr))

    async def visit_type_literal(self, expr: TypeLiteral, env: Environment) -> Any:
        return OclType(expr.name)

    async def visit_lambda(self, expr: Lambda, env: Environment) -> Any:
        # A lambda is only applied by a collection operation.
        return None

    # -- Navigation ------------------------------------------------------
    async def visit_navigation(self, expr: Navigation, env: Environment) -> Any:
        source = await self.evaluate(expr.source, env)
        feature = expr.feature
        if source is None:
            return None
        if isinstance(source, ModuleHandle):
            return await self._module_attribute(feature)
        if isinstance(source, OclTuple):
            if feature not in source:
                raise UnknownFeatureError("Tuple", feature)
            return source.get(feature)

        if feature in self.helpers:
            ancestry = await self.type_ancestry(source)
            helper = self.helpers.lookup(feature, ancestry, attribute=True)
            if helper is not None and (
                builtin_type_name(source) is not None
                or not await self._has_feature(source, feature)
            ):
                return await self._invoke_helper(helper, source, ())

        if builtin_type_name(source) is not None:
            raise TypeMismatchError(
                "model object", describe_type(source), context=f"navigation '.{feature}'"
            )
        self.navigations += 1
        return await self._collaborate(feature, self.navigator.navigate, source, feature)

    # -- Operators -------------------------------------------------------
    async def visit_binary(self, expr: BinaryOp, env: Environment) -> Any:
        op = expr.op
        if op in (BinaryOperator.AND, BinaryOperator.OR, BinaryOperator.IMPLIES):
            lhs = _require_bool(await self.evaluate(expr.lhs, env), op.value)
            if op is BinaryOperator.AND and not lhs:
                return False
            if op is BinaryOperator.OR and lhs:
                return True
            if op is BinaryOperator.IMPLIES and not lhs:
                return True
            return _require_bool(await self.evaluate(expr.rhs, env), op.value)
        lhs = await self.evaluate(expr.lhs, env)
        rhs = await self.evaluate(expr.rhs, env)
        return binary_operation(op, lhs, rhs)

    async def visit_unary(self, expr: UnaryOp, env: Environment) -> Any:
        return unary_operation(expr.op, await self.evaluate(expr.operand, env))

    async def visit_conditional(self, expr: Conditional, env: Environment) -> Any:
        condition = await self.evaluate(expr.condition, env)
        if condition is True:
            return await self.evaluate(expr.then_branch, env)
        return await self.evaluate(expr.else_branch, env)

    async def visit_let(self, expr: Let, env: Environment) -> Any:
        value = await self.evaluate(expr.init, env)
        with env.scope({expr.name: value}, name="let"):
            return await self.evaluate(expr.body, env)

    # -- Collections -----------------------------------------------------
    async def visit_iterate(self, expr: Iterate, env: Environment) -> Any:
        source = await self.evaluate(expr.source, env)
        if not isinstance(source, OclCollection):
            raise TypeMismatchError("Collection", describe_type(source), context="'iterate'")
        acc = await self.evaluate(expr.init, env)
        for element in source:
            with env.scope({expr.parameter: element, expr.accumulator: acc}, name="iterate"):
                acc = await self.evaluate(expr.body, env)
        return acc

    async def visit_collection_literal(self, expr: CollectionLiteral, env: Environment) -> Any:
        items = [await self.evaluate(e, env) for e in expr.elements]
        return OclCollection.of(expr.kind, items)

    def _element_fn(self, parameter: str, body: Expression, env: Environment) -> collection_ops.ElementFn:
        async def apply(element: Any) -> Any:
            with env.scope({parameter: element}, name="iterator"):
                return await self.evaluate(body, env)
        return apply

    async def _apply_collection_op(
        self,
        op: CollectionOperation,
        source: OclCollection,
        parameter: Optional[str],
        body: Optional[Expression],
        env: Environment,
    ) -> Any:
        if op.is_iterator:
            if body is None:
                raise UnsupportedOperationError(op.value, "requires a body expression")
            fn = self._element_fn(parameter or self.config.default_iterator, body, env)
            return await collection_ops.apply_iterator(op, source, fn)
        if op.takes_argument:
            if body is None:
                raise ArityMismatchError(op.value, 1, 0)
            return collection_ops.apply_argument(op, source, await self.evaluate(body, env))
        return collection_ops.apply_query(op, source)

    async def visit_collection_op(self, expr: CollectionOp, env: Environment) -> Any:
        source = as_collection(await self.evaluate(expr.source, env))
        return await self._apply_collection_op(expr.op, source, expr.iterator, expr.body, env)

    async def visit_tuple(self, expr: TupleExpr, env: Environment) -> Any:
        fields: List[Tuple[str, Any]] = []
        for f in expr.fields:
            fields.append((f.name, await self.evaluate(f.value, env)))
        return OclTuple(tuple(fields))

    # -- Calls -----------------------------------------------------------
    async def visit_method_call(self, expr: MethodCall, env: Environment) -> Any:
        receiver = await self.evaluate(expr.receiver, env)
        name = expr.name

        if isinstance(receiver, ModuleHandle):
            args = [await self.evaluate(a, env) for a in expr.args]
            return await self._call_module_operation(name, args)

        op = CollectionOperation.from_name(name)
        if isinstance(receiver, OclCollection) and op is not None:
            return await self._collection_method(receiver, op, expr, env)

        args = [await self.evaluate(a, env) for a in expr.args]

        if name in self.helpers:
            helper = self.helpers.lookup(name, await self.type_ancestry(receiver))
            if helper is not None:
                return await self._invoke_helper(helper, receiver, args)

        if name in _UNIVERSAL_OPERATIONS:
            return await self._universal_operation(name, receiver, args)
        if isinstance(receiver, OclType) and name in ("allInstances", "allInstancesFrom"):
            return await self._all_instances(receiver, name, args)
        if isinstance(receiver, str) and name in STRING_OPERATIONS:
            return _call_table(STRING_OPERATIONS, name, receiver, args)
        if is_number(receiver) and name in NUMBER_OPERATIONS:
            return _call_table(NUMBER_OPERATIONS, name, receiver, args)

        if self.helpers.native(name) is not None:
            return await self._call_native(name, [receiver, *args])
        raise UnresolvedHelperError(name, describe_type(receiver))

    async def _collection_method(
        self,
        receiver: OclCollection,
        op: CollectionOperation,
        expr: MethodCall,
        env: Environment,
    ) -> Any:
        if op.is_iterator:
            if len(expr.args) != 1 or not isinstance(expr.args[0], Lambda):
                raise UnsupportedOperationError(op.value, "expects one lambda argument")
            fn = expr.args[0]
            return await self._apply_collection_op(op, receiver, fn.parameter, fn.body, env)
        expected = 1 if op.takes_argument else 0
        if len(expr.args) != expected:
            raise ArityMismatchError(op.value, expected, len(expr.args))
        body = expr.args[0] if expr.args else None
        return await self._apply_collection_op(op, receiver, None, body, env)

    async def visit_helper_call(self, expr: HelperCall, env: Environment) -> Any:
        args = [await self.evaluate(a, env) for a in expr.args]
        return await self._call_module_operation(expr.name, args)

    async def _universal_operation(self, name: str, receiver: Any, args: Sequence[Any]) -> Any:
        if name == "debug":
            if len(args) > 1:
                raise ArityMismatchError(name, 1, len(args))
            label = f"{to_display(args[0])}: " if args else ""
            logger.info("debug: %s%s", label, to_display(receiver))
            return receiver

        arity = 1 if name in ("oclIsKindOf", "oclIsTypeOf") else 0
        if len(args) != arity:
            raise ArityMismatchError(name, arity, len(args))
        if name == "oclIsUndefined":
            return receiver is None
        if name == "toString":
            return to_display(receiver)

        ancestry = await self.type_ancestry(receiver)
        if name == "oclType":
            return OclType(min(ancestry, key=ancestry.__getitem__))
        target = args[0]
        if not isinstance(target, OclType):
            raise TypeMismatchError("type", describe_type(target), context=f"'{name}'")
        distance = ancestry.get(target.class_name)
        if name == "oclIsKindOf":
            return distance is not None
        return distance == 0

    async def _all_instances(self, type_value: OclType, name: str, args: Sequence[Any]) -> Any:
        if self.context is None:
            raise UnsupportedOperationError(name, "no transformation is running")
        if name == "allInstances":
            if args:
                raise ArityMismatchError(name, 0, len(args))
            return await self.context.all_instances(type_value.name)
        if len(args) != 1:
            raise ArityMismatchError(name, 1, len(args))
        return await self.context.all_instances(type_value.name, _str_arg(args[0], name))

    # -- Helpers and rules -----------------------------------------------
    async def _invoke_helper(self, helper: Helper, receiver: Any, args: Sequence[Any]) -> Any:
        if len(args) != len(helper.parameters):
            raise ArityMismatchError(helper.name, len(helper.parameters), len(args))
        self.helper_invocations += 1
        bindings: Dict[str, Any] = {"self": receiver}
        bindings.update(zip((p.name for p in helper.parameters), args))
        env = self.root_environment()
        with accumulate_time(self.helper_times, helper.name):
            with env.scope(bindings, name=f"helper {helper.name}"):
                return await self.evaluate(helper.body, env)

    async def _call_native(self, name: str, args: List[Any]) -> Any:
        self.helper_invocations += 1
        with accumulate_time(self.helper_times, name):
            return await self._collaborate(name, self.navigator.call_helper, name, args)

    async def _module_attribute(self, name: str) -> Any:
        if name in self._attribute_cache:
            return self._attribute_cache[name]
        helper = self.helpers.module_helper(name)
        if helper is None or not helper.is_attribute:
            raise UnresolvedHelperError(name, "thisModule")
        value = await self._invoke_helper(helper, self._module_handle, ())
        self._attribute_cache[name] = value
        return value

    async def _call_module_operation(self, name: str, args: Sequence[Any]) -> Any:
        helper = self.helpers.module_helper(name)
        if helper is not None:
            if helper.is_attribute and not args:
                return await self._module_attribute(name)
            return await self._invoke_helper(helper, self._module_handle, args)

        module = self.context.module if self.context is not None else None
        if module is not None:
            lazy = module.lazy_rule(name)
            if lazy is not None:
                if len(args) != 1:
                    raise ArityMismatchError(name, 1, len(args))
                return await self.context.invoke_lazy(lazy, args[0])
            called = module.called_rule(name)
            if called is not None:
                return await self.context.invoke_called(called, args)
            if name == "resolveTemp":
                if len(args) not in (2, 3):
                    raise ArityMismatchError(name, 2, len(args))
                rule_name = _str_arg(args[2], name) if len(args) == 3 else None
                return self.context.resolve_temp(args[0], _str_arg(args[1], name), rule_name)

        return await self._call_native(name, list(args))


_UNIVERSAL_OPERATIONS = frozenset({
    "oclIsUndefined", "oclIsKindOf", "oclIsTypeOf", "oclType", "toString", "debug",
})


async def evaluate(
    expression: Expression,
    environment: Optional[Environment] = None,
    navigator: Any = None,
) -> Any:
    """
    Convenience entry point: evaluate ``expression`` outside any
    transformation run, with a default ``ModelNavigator`` if none is given.
    """
    evaluator = Evaluator(navigator)
    env = environment if environment is not None else evaluator.root_environment()
    return await evaluator.evaluate(expression, env)


__all__ = [
    "THIS_MODULE",
    "ModuleHandle",
    "TransformationContext",
    "binary_operation",
    "unary_operation",
    "STRING_OPERATIONS",
    "NUMBER_OPERATIONS",
    "accumulate_time",
    "Evaluator",
    "evaluate",
]
