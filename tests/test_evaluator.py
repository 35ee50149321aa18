# tests/test_evaluator.py
"""
Tests for expression evaluation: operators, scoping, collection
operations, built-in operations, helpers and collaborators.
"""

import pytest

from atlvm.ast import (
    BinaryOp,
    BinaryOperator,
    CollectionKind,
    CollectionLiteral,
    CollectionOp,
    CollectionOperation,
    Conditional,
    HelperCall,
    Iterate,
    Lambda,
    Let,
    Literal,
    MethodCall,
    Navigation,
    SourceLoc,
    TupleExpr,
    TupleField,
    TypeLiteral,
    UnaryOp,
    UnaryOperator,
    VariableRef,
)
from atlvm.errors import (
    ArityMismatchError,
    DivisionByZeroError,
    NavigationError,
    TypeMismatchError,
    UnknownFeatureError,
    UnresolvedHelperError,
    UnresolvedVariableError,
    UnsupportedOperationError,
)
from atlvm.evaluator import Evaluator
from atlvm.evaluator import evaluate as evaluate_expression
from atlvm.model import MetaClass, MetaFeature, ModelObject
from atlvm.module import Helper, Parameter
from atlvm.navigator import HelperTable, ModelNavigator
from atlvm.values import OclCollection, OclType


def lit(value):
    return Literal(value)


def var(name):
    return VariableRef(name)


def nav(source, feature):
    return Navigation(source, feature)


def op(symbol, lhs, rhs):
    return BinaryOp(BinaryOperator(symbol), lhs, rhs)


def seq(*values):
    return CollectionLiteral(CollectionKind.SEQUENCE, tuple(lit(v) for v in values))


async def run(expr, bindings=None, evaluator=None):
    evaluator = evaluator or Evaluator()
    return await evaluator.evaluate(expr, evaluator.root_environment(bindings))


@pytest.fixture
def named_mm():
    named = MetaClass("NamedElement", features=(MetaFeature("name"),), abstract=True)
    klass = MetaClass("Class", supertypes=(named,))
    attribute = MetaClass("Attribute", supertypes=(named,))
    return named, klass, attribute


class TestArithmetic:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("a, b, expected", [
        (7, 2, 3),
        (-7, 2, -3),
        (7, -2, -3),
        (-7, -2, 3),
        (6, 3, 2),
    ])
    async def test_integer_division_truncates(self, a, b, expected):
        assert await run(op("/", lit(a), lit(b))) == expected

    @pytest.mark.asyncio
    @pytest.mark.parametrize("symbol", ["/", "div", "mod"])
    async def test_division_by_zero(self, symbol):
        with pytest.raises(DivisionByZeroError):
            await run(op(symbol, lit(1), lit(0)))

    @pytest.mark.asyncio
    async def test_real_operand_promotes(self):
        assert await run(op("/", lit(7), lit(2.0))) == 3.5
        assert isinstance(await run(op("+", lit(1), lit(1.0))), float)

    @pytest.mark.asyncio
    async def test_mod_follows_dividend_sign(self):
        assert await run(op("mod", lit(-7), lit(2))) == -1
        assert await run(op("mod", lit(7), lit(-2))) == 1

    @pytest.mark.asyncio
    async def test_div_requires_integers(self):
        with pytest.raises(TypeMismatchError):
            await run(op("div", lit(7.0), lit(2)))

    @pytest.mark.asyncio
    async def test_string_concatenation(self):
        assert await run(op("+", lit("zip"), lit("code"))) == "zipcode"
        with pytest.raises(TypeMismatchError):
            await run(op("+", lit("a"), lit(1)))

    @pytest.mark.asyncio
    async def test_unary(self):
        assert await run(UnaryOp(UnaryOperator.NEG, lit(4))) == -4
        assert await run(UnaryOp(UnaryOperator.NOT, lit(False))) is True
        with pytest.raises(TypeMismatchError):
            await run(UnaryOp(UnaryOperator.NOT, lit(1)))
        with pytest.raises(TypeMismatchError):
            await run(UnaryOp(UnaryOperator.NEG, lit("a")))


class TestComparisonAndLogic:

    @pytest.mark.asyncio
    async def test_typed_equality(self):
        assert await run(op("=", lit("42"), lit(42))) is False
        assert await run(op("<>", lit("42"), lit(42))) is True
        assert await run(op("=", lit(1), lit(1.0))) is True
        assert await run(op("=", seq(1, 2), seq(1, 2))) is True

    @pytest.mark.asyncio
    async def test_ordering(self):
        assert await run(op("<", lit(1), lit(2.5))) is True
        assert await run(op(">=", lit("b"), lit("a"))) is True
        with pytest.raises(TypeMismatchError):
            await run(op("<", lit(1), lit("2")))
        with pytest.raises(TypeMismatchError):
            await run(op("<", lit(True), lit(False)))
        with pytest.raises(TypeMismatchError):
            await run(op(">", seq(1), seq(0)))

    @pytest.mark.asyncio
    async def test_short_circuit(self):
        boom = op("/", lit(1), lit(0))
        assert await run(op("and", lit(False), boom)) is False
        assert await run(op("or", lit(True), boom)) is True
        assert await run(op("implies", lit(False), boom)) is True

    @pytest.mark.asyncio
    async def test_logic_requires_booleans(self):
        with pytest.raises(TypeMismatchError):
            await run(op("and", lit(True), lit(1)))
        with pytest.raises(TypeMismatchError):
            await run(op("or", lit(None), lit(True)))

    @pytest.mark.asyncio
    async def test_xor(self):
        assert await run(op("xor", lit(True), lit(True))) is False
        assert await run(op("xor", lit(True), lit(False))) is True

    @pytest.mark.asyncio
    async def test_collection_infix(self):
        assert await run(op("includes", seq(1, 2), lit(2))) is True
        assert await run(op("excludes", seq(1, 2), lit(2))) is False
        result = await run(op("-", seq(1, 2, 3), seq(2)))
        assert result.items == (1, 3)


class TestScoping:

    @pytest.mark.asyncio
    async def test_let(self):
        assert await run(Let("x", lit(3), op("*", var("x"), var("x")))) == 9

    @pytest.mark.asyncio
    async def test_let_shadows_then_restores(self):
        expr = op("+", Let("x", lit(10), var("x")), var("x"))
        assert await run(expr, {"x": 1}) == 11

    @pytest.mark.asyncio
    async def test_conditional_takes_then_only_on_true(self):
        assert await run(Conditional(lit(True), lit("a"), lit("b"))) == "a"
        assert await run(Conditional(lit(None), lit("a"), lit("b"))) == "b"

    @pytest.mark.asyncio
    async def test_unresolved_variable_located(self):
        expr = op("+", lit(1), VariableRef("missing", loc=SourceLoc("m.atl", 3, 9)))
        with pytest.raises(UnresolvedVariableError) as info:
            await run(expr)
        assert info.value.span.line == 3
        assert info.value.span.column == 9

    @pytest.mark.asyncio
    async def test_error_gets_innermost_location(self):
        expr = BinaryOp(
            BinaryOperator.DIV, lit(1), lit(0), loc=SourceLoc("m.atl", 7, 2)
        )
        with pytest.raises(DivisionByZeroError) as info:
            await run(Let("y", lit(1), expr, loc=SourceLoc("m.atl", 6, 1)))
        assert info.value.span.line == 7

    @pytest.mark.asyncio
    async def test_lambda_alone_is_undefined(self):
        assert await run(Lambda("x", var("x"))) is None


class TestCollectionExpressions:

    @pytest.mark.asyncio
    async def test_literal_kinds(self):
        s = await run(CollectionLiteral(CollectionKind.SET, (lit(1), lit(1), lit(2))))
        assert s.kind is CollectionKind.SET
        assert s.items == (1, 2)

    @pytest.mark.asyncio
    async def test_select_with_iterator(self):
        expr = CollectionOp(
            seq(1, 2, 3), CollectionOperation.SELECT, "x", op(">", var("x"), lit(1))
        )
        assert (await run(expr)).items == (2, 3)

    @pytest.mark.asyncio
    async def test_default_iterator_name(self):
        expr = CollectionOp(
            seq(1, 2, 3), CollectionOperation.COLLECT, body=op("*", var("it"), lit(10))
        )
        assert (await run(expr)).items == (10, 20, 30)

    @pytest.mark.asyncio
    async def test_iterator_does_not_leak(self):
        with pytest.raises(UnresolvedVariableError):
            await run(op(
                "+",
                CollectionOp(seq(1), CollectionOperation.ANY, "x", lit(True)),
                var("x"),
            ))

    @pytest.mark.asyncio
    async def test_undefined_source_is_empty(self):
        assert await run(CollectionOp(lit(None), CollectionOperation.SIZE)) == 0
        assert await run(CollectionOp(lit(7), CollectionOperation.FIRST)) == 7

    @pytest.mark.asyncio
    async def test_argument_operation(self):
        expr = CollectionOp(seq(1, 2), CollectionOperation.INCLUDING, body=lit(3))
        assert (await run(expr)).items == (1, 2, 3)

    @pytest.mark.asyncio
    async def test_iterator_without_body(self):
        with pytest.raises(UnsupportedOperationError):
            await run(CollectionOp(seq(1), CollectionOperation.SELECT))

    @pytest.mark.asyncio
    async def test_method_call_form_with_lambda(self):
        expr = MethodCall(
            var("c"), "select", (Lambda("x", op(">", var("x"), lit(1))),)
        )
        c = OclCollection.sequence([1, 2, 3])
        assert (await run(expr, {"c": c})).items == (2, 3)
        size = MethodCall(var("c"), "size")
        assert await run(size, {"c": c}) == 3

    @pytest.mark.asyncio
    async def test_method_call_form_needs_lambda(self):
        expr = MethodCall(seq(1), "select", (lit(True),))
        with pytest.raises(UnsupportedOperationError):
            await run(expr)

    @pytest.mark.asyncio
    async def test_iterate(self):
        expr = Iterate(
            seq(1, 2, 3), "x", "acc", lit(0), op("+", var("acc"), var("x"))
        )
        assert await run(expr) == 6

    @pytest.mark.asyncio
    async def test_iterate_needs_collection(self):
        expr = Iterate(lit(3), "x", "acc", lit(0), var("acc"))
        with pytest.raises(TypeMismatchError):
            await run(expr)

    @pytest.mark.asyncio
    async def test_select_reject_property(self):
        pred = op("=", op("mod", var("x"), lit(2)), lit(0))
        selected = CollectionOp(seq(1, 2, 3, 4), CollectionOperation.SELECT, "x", pred)
        emptied = CollectionOp(selected, CollectionOperation.REJECT, "x", pred)
        holds = CollectionOp(selected, CollectionOperation.FOR_ALL, "x", pred)
        assert (await run(emptied)).items == ()
        assert await run(holds) is True


class TestBuiltins:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("receiver, name, args, expected", [
        ("hello", "size", (), 5),
        ("hello", "toUpper", (), "HELLO"),
        ("hello", "firstToUpper", (), "Hello"),
        ("hello", "substring", (2, 4), "ell"),
        ("hello", "indexOf", ("l",), 3),
        ("hello", "indexOf", ("z",), 0),
        ("hello", "startsWith", ("he",), True),
        ("hello", "concat", ("!",), "hello!"),
        (" 42 ", "toInteger", (), 42),
        ("2.5", "toReal", (), 2.5),
        (-3, "abs", (), 3),
        (2.5, "round", (), 3),
        (2.7, "floor", (), 2),
        (7, "div", (2,), 3),
        (7, "max", (9,), 9),
        (2, "power", (10,), 1024),
        (4, "isEven", (), True),
    ])
    async def test_primitive_operations(self, receiver, name, args, expected):
        expr = MethodCall(lit(receiver), name, tuple(lit(a) for a in args))
        assert await run(expr) == expected

    @pytest.mark.asyncio
    async def test_substring_out_of_range(self):
        with pytest.raises(UnsupportedOperationError):
            await run(MethodCall(lit("abc"), "substring", (lit(0), lit(2))))

    @pytest.mark.asyncio
    async def test_to_integer_rejects_text(self):
        with pytest.raises(TypeMismatchError):
            await run(MethodCall(lit("zip"), "toInteger"))

    @pytest.mark.asyncio
    async def test_wrong_arity(self):
        with pytest.raises(ArityMismatchError):
            await run(MethodCall(lit("abc"), "size", (lit(1),)))

    @pytest.mark.asyncio
    async def test_undefined_checks(self):
        assert await run(MethodCall(lit(None), "oclIsUndefined")) is True
        assert await run(MethodCall(lit(0), "oclIsUndefined")) is False

    @pytest.mark.asyncio
    async def test_to_string(self):
        assert await run(MethodCall(seq(1, 2), "toString")) == "Sequence{1, 2}"
        assert await run(MethodCall(lit(True), "toString")) == "true"

    @pytest.mark.asyncio
    async def test_type_tests(self, named_mm):
        _, klass, _ = named_mm
        obj = ModelObject(klass, name="Person")
        kind_of = MethodCall(var("o"), "oclIsKindOf", (TypeLiteral("MM!NamedElement"),))
        type_of = MethodCall(var("o"), "oclIsTypeOf", (TypeLiteral("MM!NamedElement"),))
        assert await run(kind_of, {"o": obj}) is True
        assert await run(type_of, {"o": obj}) is False
        assert await run(MethodCall(var("o"), "oclType"), {"o": obj}) == OclType("Class")
        assert await run(MethodCall(lit(3), "oclIsKindOf", (TypeLiteral("Real"),))) is True

    @pytest.mark.asyncio
    async def test_all_instances_needs_running_transformation(self):
        with pytest.raises(UnsupportedOperationError):
            await run(MethodCall(TypeLiteral("MM!Class"), "allInstances"))

    @pytest.mark.asyncio
    async def test_unknown_operation(self):
        with pytest.raises(UnresolvedHelperError):
            await run(MethodCall(lit(1), "frobnicate"))

    @pytest.mark.asyncio
    async def test_debug_returns_receiver(self):
        assert await run(MethodCall(lit(5), "debug", (lit("value"),))) == 5


class TestTuplesAndNavigation:

    @pytest.mark.asyncio
    async def test_tuple_fields(self):
        t = TupleExpr((TupleField("a", lit(1)), TupleField("b", lit("x"))))
        assert await run(nav(t, "b")) == "x"
        with pytest.raises(UnknownFeatureError):
            await run(nav(t, "c"))

    @pytest.mark.asyncio
    async def test_navigation_on_undefined(self):
        assert await run(nav(lit(None), "name")) is None

    @pytest.mark.asyncio
    async def test_navigation_on_scalar(self):
        with pytest.raises(TypeMismatchError):
            await run(nav(lit(3), "name"))

    @pytest.mark.asyncio
    async def test_model_object_navigation(self, named_mm):
        _, klass, _ = named_mm
        evaluator = Evaluator()
        obj = ModelObject(klass, name="Person")
        assert await run(nav(var("o"), "name"), {"o": obj}, evaluator) == "Person"
        assert evaluator.navigations == 1
        with pytest.raises(UnknownFeatureError):
            await run(nav(var("o"), "zip"), {"o": obj}, evaluator)

    @pytest.mark.asyncio
    async def test_host_object_failure_is_wrapped(self):
        class Host:
            @property
            def broken(self):
                raise ValueError("nope")

        with pytest.raises(NavigationError) as info:
            await run(nav(var("h"), "broken"), {"h": Host()})
        assert isinstance(info.value.cause, ValueError)
        assert isinstance(info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_async_navigator(self):
        class AsyncNavigator:
            async def navigate(self, obj, feature):
                return obj[feature]

            async def call_helper(self, name, arguments):
                return len(arguments)

            async def type_ancestry(self, obj):
                return {"Record": 0}

        evaluator = Evaluator(AsyncNavigator())
        size = CollectionOp(nav(var("d"), "xs"), CollectionOperation.SIZE)
        assert await run(size, {"d": {"xs": [1, 2]}}, evaluator) == 2
        assert await run(HelperCall("count", (lit(1), lit(2))), None, evaluator) == 2


class TestHelpers:

    def _evaluator(self, *helpers, natives=None):
        return Evaluator(ModelNavigator(HelperTable(helpers, natives)))

    @pytest.mark.asyncio
    async def test_most_specific_context_wins(self, named_mm):
        _, klass, attribute = named_mm
        evaluator = self._evaluator(
            Helper("label", lit("named"), context_type="MM!NamedElement"),
            Helper(
                "label",
                op("+", lit("class "), nav(var("self"), "name")),
                context_type="MM!Class",
            ),
        )
        cls = ModelObject(klass, name="Person")
        attr = ModelObject(attribute, name="zip")
        call = MethodCall(var("o"), "label")
        assert await run(call, {"o": cls}, evaluator) == "class Person"
        assert await run(call, {"o": attr}, evaluator) == "named"
        # attribute helpers are reachable by navigation too
        assert await run(nav(var("o"), "label"), {"o": cls}, evaluator) == "class Person"

    @pytest.mark.asyncio
    async def test_feature_beats_attribute_helper(self, named_mm):
        _, klass, _ = named_mm
        evaluator = self._evaluator(
            Helper("name", lit("shadow"), context_type="Class")
        )
        obj = ModelObject(klass, name="Person")
        assert await run(nav(var("o"), "name"), {"o": obj}, evaluator) == "Person"

    @pytest.mark.asyncio
    async def test_helper_on_builtin_type(self):
        evaluator = self._evaluator(
            Helper("twice", op("*", var("self"), lit(2)), context_type="Integer")
        )
        assert await run(nav(lit(21), "twice"), None, evaluator) == 42

    @pytest.mark.asyncio
    async def test_module_helper_with_parameters(self):
        evaluator = self._evaluator(
            Helper("double", op("*", var("x"), lit(2)), parameters=(Parameter("x"),))
        )
        assert await run(HelperCall("double", (lit(21),)), None, evaluator) == 42
        assert set(evaluator.helper_times) == {"double"}
        with pytest.raises(ArityMismatchError):
            await run(HelperCall("double", ()), None, evaluator)

    @pytest.mark.asyncio
    async def test_helper_body_cannot_see_caller_scope(self):
        evaluator = self._evaluator(Helper("peek", var("y"), parameters=(Parameter("x"),)))
        with pytest.raises(UnresolvedVariableError):
            await run(HelperCall("peek", (lit(1),)), {"y": 2}, evaluator)

    @pytest.mark.asyncio
    async def test_module_attribute_is_computed_once(self):
        evaluator = self._evaluator(Helper("answer", op("*", lit(6), lit(7))))
        twice = op("+", nav(var("thisModule"), "answer"), nav(var("thisModule"), "answer"))
        assert await run(twice, None, evaluator) == 84
        assert evaluator.helper_invocations == 1

    @pytest.mark.asyncio
    async def test_native_helpers(self):
        evaluator = self._evaluator(natives={"shout": lambda s: s.upper() + "!"})
        assert await run(HelperCall("shout", (lit("hi"),)), None, evaluator) == "HI!"
        assert await run(MethodCall(lit("hi"), "shout"), None, evaluator) == "HI!"

    @pytest.mark.asyncio
    async def test_native_returning_list_becomes_sequence(self):
        evaluator = self._evaluator(natives={"pair": lambda: [1, 2]})
        result = await run(HelperCall("pair"), None, evaluator)
        assert isinstance(result, OclCollection)
        assert result.items == (1, 2)

    @pytest.mark.asyncio
    async def test_unknown_helper(self):
        with pytest.raises(UnresolvedHelperError):
            await run(HelperCall("nothing"))


class TestConvenience:

    @pytest.mark.asyncio
    async def test_module_level_evaluate(self):
        assert await evaluate_expression(op("+", lit(1), lit(2))) == 3
