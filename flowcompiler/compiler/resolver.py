"""Reference Resolver - tracks node outputs and initialization order.

One resolver is created per compilation. It records:
1. Which variable each node exports (its registration)
2. Which nodes must be initialized before which (dependency edges)

and computes a deterministic topological order over those edges.
"""
import heapq
from dataclasses import dataclass
from typing import Iterable, Optional

import structlog

from flowcompiler.errors import CyclicDependency

logger = structlog.get_logger()


@dataclass(frozen=True)
class Registration:
    """Output registered by a converter for one node."""

    node_id: str
    variable_name: str
    category: str
    fragment_id: Optional[str] = None


class ReferenceResolver:
    """Per-request registry of node outputs and dependency edges."""

    def __init__(self, declaration_order: Optional[Iterable[str]] = None):
        """Initialize resolver.

        Args:
            declaration_order: Node ids in graph declaration order. Used to
                break ties between nodes that become ready together; nodes
                not listed are ordered by first appearance.
        """
        self._registrations: dict[str, Registration] = {}
        self._dependencies: dict[str, list[str]] = {}
        self._rank: dict[str, int] = {}
        for node_id in declaration_order or ():
            self._note(node_id)

    def _note(self, node_id: str) -> None:
        if node_id not in self._rank:
            self._rank[node_id] = len(self._rank)

    def register_node(
        self,
        node_id: str,
        variable_name: str,
        category: str,
        fragment_id: Optional[str] = None,
    ) -> Registration:
        """Record the variable a node exports."""
        self._note(node_id)
        registration = Registration(
            node_id=node_id,
            variable_name=variable_name,
            category=category,
            fragment_id=fragment_id,
        )
        self._registrations[node_id] = registration
        return registration

    def resolve(self, node_id: str) -> Optional[Registration]:
        """Get a node's registration, or None if it never registered."""
        return self._registrations.get(node_id)

    def is_registered(self, node_id: str) -> bool:
        return node_id in self._registrations

    def registrations(self) -> list[Registration]:
        return list(self._registrations.values())

    def add_dependency(self, consumer_id: str, dependency_id: str) -> None:
        """Record that consumer must be initialized after dependency."""
        self._note(consumer_id)
        self._note(dependency_id)
        deps = self._dependencies.setdefault(consumer_id, [])
        if dependency_id not in deps:
            deps.append(dependency_id)

    def dependencies_of(self, node_id: str) -> list[str]:
        """Direct dependencies of a node."""
        return list(self._dependencies.get(node_id, []))

    def known_nodes(self) -> list[str]:
        """Every node seen so far, in declaration order."""
        return sorted(self._rank, key=self._rank.__getitem__)

    def get_initialization_order(self) -> list[str]:
        """Topologically sort known nodes (Kahn's algorithm).

        Raises:
            CyclicDependency: naming the members of the residual cycle(s).
        """
        nodes = self.known_nodes()
        in_degree = {node_id: 0 for node_id in nodes}
        dependents: dict[str, list[str]] = {node_id: [] for node_id in nodes}

        for consumer, deps in self._dependencies.items():
            for dependency in deps:
                in_degree[consumer] += 1
                dependents[dependency].append(consumer)

        ready = [(self._rank[node_id], node_id) for node_id in nodes if in_degree[node_id] == 0]
        heapq.heapify(ready)
        order: list[str] = []

        while ready:
            _, node_id = heapq.heappop(ready)
            order.append(node_id)
            for consumer in dependents[node_id]:
                in_degree[consumer] -= 1
                if in_degree[consumer] == 0:
                    heapq.heappush(ready, (self._rank[consumer], consumer))

        if len(order) < len(nodes):
            residual = [node_id for node_id in nodes if in_degree[node_id] > 0]
            members = self._cycle_members(residual)
            logger.warning("dependency_cycle_detected", node_ids=members)
            raise CyclicDependency(members)

        return order

    def _cycle_members(self, residual: list[str]) -> list[str]:
        """Nodes of the residual that lie on a cycle.

        After Kahn's pass the residual holds cycle members plus nodes that
        depend on them. Strongly connected components (Tarjan, iterative)
        of the residual subgraph separate the two: a node is on a cycle when
        its component has more than one node or it depends on itself.
        """
        remaining = set(residual)
        edges = {
            node_id: [dep for dep in self._dependencies.get(node_id, []) if dep in remaining]
            for node_id in residual
        }
        index: dict[str, int] = {}
        lowlink: dict[str, int] = {}
        stack: list[str] = []
        on_stack: set[str] = set()
        members: set[str] = set()

        for root in residual:
            if root in index:
                continue
            work = [(root, 0)]
            while work:
                node_id, position = work.pop()
                if position == 0:
                    index[node_id] = lowlink[node_id] = len(index)
                    stack.append(node_id)
                    on_stack.add(node_id)
                successors = edges[node_id]
                if position < len(successors):
                    work.append((node_id, position + 1))
                    successor = successors[position]
                    if successor not in index:
                        work.append((successor, 0))
                    elif successor in on_stack:
                        lowlink[node_id] = min(lowlink[node_id], index[successor])
                    continue

                if work:
                    parent = work[-1][0]
                    lowlink[parent] = min(lowlink[parent], lowlink[node_id])
                if lowlink[node_id] == index[node_id]:
                    component = []
                    while True:
                        member = stack.pop()
                        on_stack.discard(member)
                        component.append(member)
                        if member == node_id:
                            break
                    if len(component) > 1 or node_id in edges[node_id]:
                        members.update(component)

        return [node_id for node_id in residual if node_id in members]
