"""Tests for the Reference Resolver.

Validates that the resolver:
- Orders nodes so that dependencies come first
- Breaks ties by declaration order
- Names exactly the members of a dependency cycle
"""
import pytest

from flowcompiler.compiler.resolver import ReferenceResolver
from flowcompiler.errors import CyclicDependency


class TestInitializationOrder:
    """Kahn ordering with declaration-order tie-break."""

    def test_chain_is_ordered_dependencies_first(self):
        resolver = ReferenceResolver(["c", "b", "a"])
        resolver.add_dependency("b", "a")
        resolver.add_dependency("c", "b")

        assert resolver.get_initialization_order() == ["a", "b", "c"]

    def test_independent_nodes_keep_declaration_order(self):
        resolver = ReferenceResolver(["b", "a", "c"])

        assert resolver.get_initialization_order() == ["b", "a", "c"]

    def test_ready_nodes_are_taken_in_declaration_order(self):
        # a is the root, b and c depend on it, d depends on both
        resolver = ReferenceResolver(["d", "c", "b", "a"])
        resolver.add_dependency("b", "a")
        resolver.add_dependency("c", "a")
        resolver.add_dependency("d", "b")
        resolver.add_dependency("d", "c")

        assert resolver.get_initialization_order() == ["a", "c", "b", "d"]

    def test_every_dependency_precedes_its_consumer(self):
        resolver = ReferenceResolver(["agent", "tool", "model", "memory"])
        resolver.add_dependency("agent", "tool")
        resolver.add_dependency("agent", "model")
        resolver.add_dependency("agent", "memory")
        resolver.add_dependency("tool", "model")

        order = resolver.get_initialization_order()
        for consumer in ["agent", "tool"]:
            for dependency in resolver.dependencies_of(consumer):
                assert order.index(dependency) < order.index(consumer)

    def test_nodes_outside_declaration_are_appended_first_seen(self):
        resolver = ReferenceResolver(["a"])
        resolver.add_dependency("x", "a")

        assert resolver.get_initialization_order() == ["a", "x"]

    def test_order_is_deterministic(self):
        def build():
            resolver = ReferenceResolver(["m", "k", "z", "a"])
            resolver.add_dependency("z", "k")
            resolver.add_dependency("a", "m")
            return resolver.get_initialization_order()

        assert build() == build()


class TestCycles:
    """Cycle detection and reporting."""

    def test_three_node_cycle_names_exactly_its_members(self):
        resolver = ReferenceResolver(["A", "B", "C", "D", "E"])
        resolver.add_dependency("B", "A")
        resolver.add_dependency("C", "B")
        resolver.add_dependency("A", "C")
        # D hangs off the cycle without being part of it
        resolver.add_dependency("D", "A")

        with pytest.raises(CyclicDependency) as exc_info:
            resolver.get_initialization_order()

        assert exc_info.value.node_ids == ["A", "B", "C"]

    def test_node_between_two_cycles_is_not_a_member(self):
        resolver = ReferenceResolver(["A", "B", "M", "C", "D"])
        resolver.add_dependency("A", "B")
        resolver.add_dependency("B", "A")
        # M depends on the first cycle and the second cycle depends on M
        resolver.add_dependency("M", "A")
        resolver.add_dependency("C", "M")
        resolver.add_dependency("C", "D")
        resolver.add_dependency("D", "C")

        with pytest.raises(CyclicDependency) as exc_info:
            resolver.get_initialization_order()

        assert exc_info.value.node_ids == ["A", "B", "C", "D"]

    def test_self_dependency_is_a_cycle(self):
        resolver = ReferenceResolver(["A"])
        resolver.add_dependency("A", "A")

        with pytest.raises(CyclicDependency) as exc_info:
            resolver.get_initialization_order()

        assert exc_info.value.node_ids == ["A"]

    def test_cycle_error_payload(self):
        resolver = ReferenceResolver(["x", "y"])
        resolver.add_dependency("x", "y")
        resolver.add_dependency("y", "x")

        with pytest.raises(CyclicDependency) as exc_info:
            resolver.get_initialization_order()

        payload = exc_info.value.to_dict()
        assert payload["code"] == "CyclicDependency"
        assert payload["node_ids"] == ["x", "y"]


# =============================================================================
# Registrations
# =============================================================================

def test_register_and_resolve():
    resolver = ReferenceResolver()
    resolver.register_node("model", "chatModel", "llm", fragment_id="model_init")

    registration = resolver.resolve("model")
    assert registration.variable_name == "chatModel"
    assert registration.category == "llm"
    assert registration.fragment_id == "model_init"
    assert resolver.is_registered("model")


def test_resolve_unknown_returns_none():
    assert ReferenceResolver().resolve("missing") is None


def test_add_dependency_is_idempotent():
    resolver = ReferenceResolver()
    resolver.add_dependency("b", "a")
    resolver.add_dependency("b", "a")

    assert resolver.dependencies_of("b") == ["a"]
