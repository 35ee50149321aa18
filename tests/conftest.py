# tests/conftest.py
"""
Shared fixtures: a tiny Class metamodel, a Relational metamodel, and the
Class2Relational transformation built directly from AST nodes.
"""

import pytest

from atlvm.ast import (
    CollectionOp,
    CollectionOperation,
    Navigation,
    VariableRef,
)
from atlvm.model import MetaClass, MetaFeature, Metamodel, Model
from atlvm.module import (
    Binding,
    InPattern,
    MatchedRule,
    OutPatternElement,
    TransformationModule,
)


@pytest.fixture
def class_mm():
    attribute = MetaClass("Attribute", features=(MetaFeature("name"),))
    klass = MetaClass(
        "Class",
        features=(MetaFeature("name"), MetaFeature("attributes", many=True)),
    )
    return Metamodel("Class", [klass, attribute])


@pytest.fixture
def relational_mm():
    column = MetaClass("Column", features=(MetaFeature("name"),))
    table = MetaClass(
        "Table",
        features=(MetaFeature("name"), MetaFeature("columns", many=True)),
    )
    return Metamodel("Relational", [table, column])


@pytest.fixture
def source_model(class_mm):
    """``Person`` (no attributes) and ``Address`` (attribute ``zip``)."""
    model = Model(class_mm, "IN")
    zip_attr = model.new("Attribute", name="zip")
    model.new("Class", name="Person")
    model.new("Class", name="Address", attributes=[zip_attr])
    return model


@pytest.fixture
def target_model(relational_mm):
    return Model(relational_mm, "OUT")


def _class2relational(guard=None):
    class2table = MatchedRule(
        name="Class2Table",
        source=InPattern("c", "Class!Class", guard=guard),
        outputs=(
            OutPatternElement(
                "t",
                "Relational!Table",
                bindings=(
                    Binding("name", Navigation(VariableRef("c"), "name")),
                    Binding("columns", Navigation(VariableRef("c"), "attributes")),
                ),
            ),
        ),
    )
    attribute2column = MatchedRule(
        name="Attribute2Column",
        source=InPattern("a", "Class!Attribute"),
        outputs=(
            OutPatternElement(
                "col",
                "Relational!Column",
                bindings=(Binding("name", Navigation(VariableRef("a"), "name")),),
            ),
        ),
    )
    return TransformationModule(
        name="Class2Relational",
        source_models=(("IN", "Class"),),
        target_models=(("OUT", "Relational"),),
        matched_rules=(class2table, attribute2column),
    )


@pytest.fixture
def class2relational():
    return _class2relational()


@pytest.fixture
def guarded_class2relational():
    """Same module, with ``c.attributes->notEmpty()`` guarding Class2Table."""
    guard = CollectionOp(
        Navigation(VariableRef("c"), "attributes"), CollectionOperation.NOT_EMPTY
    )
    return _class2relational(guard)
