# tests/test_model.py
"""
Tests for the in-memory reference model, the collaborator protocols and
the helper table.
"""

import pytest

from atlvm.ast import Literal
from atlvm.errors import (
    DuplicateDefinitionError,
    TypeMismatchError,
    UnknownFeatureError,
    UnresolvedHelperError,
    UnsupportedOperationError,
)
from atlvm.model import (
    MetaClass,
    MetaFeature,
    Metamodel,
    Model,
    ModelProvider,
    Navigator,
    ProgramLoader,
    maybe_await,
)
from atlvm.module import Helper, Parameter, TransformationModule
from atlvm.navigator import HelperTable, ModelNavigator
from atlvm.values import OclCollection


NAMED = MetaClass("Named", features=(MetaFeature("name"),))
TYPED = MetaClass("Typed", features=(MetaFeature("type", default="String"),))
ATTRIBUTE = MetaClass(
    "Attribute",
    features=(MetaFeature("tags", many=True),),
    supertypes=(NAMED, TYPED),
)
ABSTRACT = MetaClass("Element", abstract=True)


@pytest.fixture
def model():
    return Model(Metamodel("UML", [NAMED, TYPED, ATTRIBUTE, ABSTRACT]))


class Host:
    """A plain Python object navigated without an adapter."""

    def __init__(self):
        self.label = "host"
        self.items = [1, 2]


class TestMetaClass:

    def test_ancestry_distances(self):
        assert ATTRIBUTE.ancestry() == {"Attribute": 0, "Named": 1, "Typed": 1}

    def test_shortest_distance_through_diamond(self):
        top = MetaClass("Top")
        mid = MetaClass("Mid", supertypes=(top,))
        bottom = MetaClass("Bottom", supertypes=(mid, top))
        assert bottom.ancestry()["Top"] == 1

    def test_inherited_features(self):
        assert set(ATTRIBUTE.all_features()) == {"name", "type", "tags"}
        assert ATTRIBUTE.conforms_to("UML!Named")
        assert not NAMED.conforms_to("Attribute")


class TestModelObject:

    def test_defaults_and_many_valued(self, model):
        attr = model.new("Attribute", name="zip")
        assert attr.get("type") == "String"
        assert attr.get("tags") == []
        attr.set("tags", "key")
        assert attr.get("tags") == ["key"]

    def test_many_valued_get_returns_copy(self, model):
        attr = model.new("Attribute", tags=["a"])
        attr.get("tags").append("b")
        assert attr.get("tags") == ["a"]

    def test_single_valued_rejects_lists(self, model):
        attr = model.new("Attribute")
        with pytest.raises(TypeMismatchError):
            attr.set("name", ["a", "b"])

    def test_unknown_feature(self, model):
        attr = model.new("Attribute")
        with pytest.raises(UnknownFeatureError):
            attr.get("nope")
        assert not attr.has_feature("nope")


class TestModel:

    def test_insertion_order(self, model):
        a = model.new("Named", name="a")
        b = model.new("Attribute", name="b")
        assert model.objects() == [a, b]
        assert len(model) == 2
        assert b in model

    def test_all_instances_and_find(self, model):
        model.new("Named", name="a")
        b = model.new("Attribute", name="b")
        assert len(model.all_instances_of("Named")) == 2
        assert model.find("Named", name="b") == [b]

    @pytest.mark.parametrize("type_name", ["Other!Named", "Missing", "Element"])
    def test_create_rejects(self, model, type_name):
        with pytest.raises(UnsupportedOperationError):
            model.create(type_name)

    def test_qualified_create(self, model):
        assert model.create("UML!Named").type_name == "Named"


class TestProtocols:

    def test_reference_implementations_conform(self, model):
        assert isinstance(model, ModelProvider)
        assert isinstance(ModelNavigator(), Navigator)

    def test_loader_protocol(self):
        class EmptyLoader:
            def load(self, text, filename="<string>"):
                return TransformationModule(name=filename, source_models=(), target_models=())

        loader = EmptyLoader()
        assert isinstance(loader, ProgramLoader)
        assert loader.load("", "M").name == "M"

    @pytest.mark.asyncio
    async def test_maybe_await(self):
        async def later():
            return 42

        assert await maybe_await(7) == 7
        assert await maybe_await(later()) == 42


class TestModelNavigator:

    def test_host_objects(self):
        nav = ModelNavigator()
        host = Host()
        assert nav.navigate(host, "label") == "host"
        assert nav.navigate(host, "items") == OclCollection.sequence([1, 2])
        assert nav.has_feature(host, "label")
        assert nav.type_ancestry(host)["Host"] == 0
        assert "object" in nav.type_ancestry(host)

    def test_model_objects(self, model):
        nav = ModelNavigator()
        attr = model.new("Attribute", name="zip", tags=["k"])
        assert nav.navigate(attr, "name") == "zip"
        assert isinstance(nav.navigate(attr, "tags"), OclCollection)
        assert nav.type_ancestry(attr)["Named"] == 1

    def test_native_helpers(self):
        nav = ModelNavigator(HelperTable(natives={"twice": lambda x: x * 2}))
        assert nav.call_helper("twice", [4]) == 8
        with pytest.raises(UnresolvedHelperError):
            nav.call_helper("thrice", [4])


class TestHelperTable:

    def helper(self, name, context=None, params=()):
        return Helper(
            name=name,
            body=Literal(context),
            parameters=tuple(Parameter(p) for p in params),
            context_type=context,
        )

    def test_duplicate_module_helper(self):
        table = HelperTable([self.helper("h")])
        with pytest.raises(DuplicateDefinitionError):
            table.add(self.helper("h"))

    def test_nearest_context_wins(self):
        table = HelperTable([self.helper("label", "Named"), self.helper("label", "Attribute")])
        assert table.lookup("label", ATTRIBUTE.ancestry()).context_type == "Attribute"
        assert table.lookup("label", NAMED.ancestry()).context_type == "Named"
        assert table.lookup("label", TYPED.ancestry()) is None

    def test_tie_goes_to_first_declared(self):
        table = HelperTable([self.helper("label", "Typed"), self.helper("label", "UML!Named")])
        assert table.lookup("label", ATTRIBUTE.ancestry()).context_type == "Typed"

    def test_attribute_filter(self):
        table = HelperTable([
            self.helper("label", "Named", params=("x",)),
            self.helper("label", "Named"),
        ])
        found = table.lookup("label", NAMED.ancestry(), attribute=True)
        assert found.is_attribute
        assert not table.lookup("label", NAMED.ancestry(), attribute=False).is_attribute

    def test_membership(self):
        table = HelperTable([self.helper("h"), self.helper("c", "Named")], {"n": len})
        assert "h" in table and "c" in table and "n" in table
        assert "x" not in table
        assert len(table) == 3
        assert table.module_helper("h") is not None
        assert table.module_helper("c") is None
