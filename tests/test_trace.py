# tests/test_trace.py
"""
Tests for the trace model.
"""

import gc

import pytest

from atlvm.errors import AmbiguousTraceError, DuplicateTraceError, MissingReferenceError
from atlvm.model import MetaClass, ModelObject
from atlvm.trace import TraceModel

THING = MetaClass("Thing")


def thing():
    return ModelObject(THING)


class TestTraceModel:

    def test_resolve_inverts_register(self):
        trace = TraceModel()
        src, table = thing(), thing()
        trace.register("Class2Table", src, {"t": table})
        assert trace.resolve(src, "t") is table
        assert ("Class2Table", src) in trace
        assert len(trace) == 1

    def test_duplicate_registration(self):
        trace = TraceModel()
        src = thing()
        trace.register("R", src, {"t": thing()})
        with pytest.raises(DuplicateTraceError):
            trace.register("R", src, {"t": thing()})

    def test_missing_reference(self):
        trace = TraceModel()
        src = thing()
        trace.register("R", src, {"t": thing()})
        with pytest.raises(MissingReferenceError):
            trace.resolve(src, "nope")
        with pytest.raises(MissingReferenceError):
            trace.resolve(thing(), "t")

    def test_ambiguous_unless_rule_named(self):
        trace = TraceModel()
        src = thing()
        first, second = thing(), thing()
        trace.register("Matched", src, {"t": first})
        trace.register("Lazy", src, {"t": second}, kind="lazy")
        with pytest.raises(AmbiguousTraceError):
            trace.resolve(src, "t")
        assert trace.resolve(src, "t", "Lazy") is second

    def test_default_target_prefers_matched(self):
        trace = TraceModel()
        src = thing()
        lazy_out, matched_out = thing(), thing()
        trace.register("Lazy", src, {"x": lazy_out}, kind="lazy")
        trace.register("Matched", src, {"t": matched_out, "u": thing()})
        assert trace.default_target(src) is matched_out
        assert trace.default_target(thing()) is None

    def test_does_not_keep_sources_alive(self):
        trace = TraceModel()
        src = thing()
        link = trace.register("R", src, {"t": thing()})
        del src
        gc.collect()
        assert link._source_ref() is None

    def test_outputs_are_read_only(self):
        trace = TraceModel()
        link = trace.register("R", thing(), {"t": thing()})
        with pytest.raises(TypeError):
            link.outputs["t"] = None

    def test_value_sources_compare_by_value(self):
        trace = TraceModel()
        table = thing()
        trace.register("Name2Table", "ab", {"t": table})
        assert trace.resolve("".join(["a", "b"]), "t") is table
        with pytest.raises(MissingReferenceError):
            trace.resolve("ba", "t")
        with pytest.raises(DuplicateTraceError):
            trace.register("Name2Table", "a" + "b".lower(), {"t": thing()})
