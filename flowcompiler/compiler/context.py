"""Generation context handed to converters.

A context is created for every converter invocation. It exposes the
read-only graph and options, reference lookups against the request's
resolver, and buffers the registrations and dependencies the converter
produces so that nothing is committed when the converter fails.
"""
from dataclasses import dataclass, field
from typing import Iterable, Literal, Optional

from pydantic import BaseModel, Field

from flowcompiler.compiler.formatters import LanguageFormatter, get_formatter
from flowcompiler.compiler.resolver import ReferenceResolver
from flowcompiler.config import get_settings
from flowcompiler.errors import UnresolvedReference
from flowcompiler.models.ir import (
    FlowGraph,
    IRNode,
    LiteralInput,
    NodeReference,
    NodeReferenceList,
)


class GenerationOptions(BaseModel):
    """Global options for one compilation."""

    target_language: Literal["typescript", "python"] = Field(
        default_factory=lambda: get_settings().default_target_language,
    )
    output_style: Literal["esm", "cjs"] = Field(
        default_factory=lambda: get_settings().default_output_style,
    )
    include_comments: bool = Field(default_factory=lambda: get_settings().include_comments)
    project_name: str = Field(default_factory=lambda: get_settings().default_project_name)


@dataclass(frozen=True)
class ResolvedReference:
    """What a converter learns about a referenced node."""

    node_id: str
    variable_name: str
    category: str
    fragment_id: Optional[str] = None


class NameScope:
    """Identifiers handed out during one compilation.

    Each (node, key) pair keeps the name it was first given, so a converter
    retried after a deferral produces the same code. A requested name that
    is already taken gets the first free ``_1``, ``_2``, ... suffix.
    """

    def __init__(self, reserved: Iterable[str] = ()):
        self._taken: set[str] = set(reserved)
        self._names: dict[tuple[str, str], str] = {}
        self._counters: dict[str, int] = {}
        # (node_id, requested name, allocated name)
        self.renames: list[tuple[str, str, str]] = []

    def reserve(self, names: Iterable[str]) -> None:
        self._taken.update(names)

    def allocate(self, owner: str, base: str, key: str = "") -> str:
        existing = self._names.get((owner, key))
        if existing is not None:
            return existing
        name = base
        if name in self._taken:
            counter = self._counters.get(base, 0)
            while name in self._taken:
                counter += 1
                name = f"{base}_{counter}"
            self._counters[base] = counter
            self.renames.append((owner, base, name))
        self._taken.add(name)
        self._names[(owner, key)] = name
        return name


@dataclass
class PendingOutput:
    """Registrations and dependencies produced during one converter call."""

    variable_name: Optional[str] = None
    category: Optional[str] = None
    fragment_id: Optional[str] = None
    dependencies: list[str] = field(default_factory=list)


class GenerationContext:
    """Per-node view of the compilation state."""

    def __init__(
        self,
        node: IRNode,
        graph: FlowGraph,
        resolver: ReferenceResolver,
        options: GenerationOptions,
        formatter: Optional[LanguageFormatter] = None,
        names: Optional[NameScope] = None,
    ):
        self.node = node
        self.graph = graph
        self.options = options
        self.formatter = formatter or get_formatter(options.target_language, options.output_style)
        self._resolver = resolver
        self._names = names or NameScope()
        self.pending = PendingOutput()

    @property
    def node_id(self) -> str:
        return self.node.id

    def resolve_reference(self, node_id: str, port: Optional[str] = None) -> ResolvedReference:
        """Look up another node's exported variable.

        Consuming a reference also records that this node depends on it.

        Raises:
            UnresolvedReference: if the node has not registered an output.
        """
        registration = self._resolver.resolve(node_id)
        if registration is None:
            raise UnresolvedReference(node_id, consumer_id=self.node.id, port=port)
        self.add_dependency(node_id)
        return ResolvedReference(
            node_id=registration.node_id,
            variable_name=registration.variable_name,
            category=registration.category,
            fragment_id=registration.fragment_id,
        )

    def resolve_input(self, node: IRNode, port: str, required: bool = True) -> Optional[ResolvedReference]:
        """Resolve a single-valued reference port."""
        value = node.inputs.get(port)
        if value is None or isinstance(value, LiteralInput):
            if required:
                raise UnresolvedReference(f"<{port}>", consumer_id=node.id, port=port)
            return None
        if isinstance(value, NodeReferenceList):
            raise TypeError(
                f"Port '{port}' on node '{node.id}' is multi-valued; use resolve_inputs"
            )
        return self.resolve_reference(value.node_id, port=port)

    def resolve_inputs(self, node: IRNode, port: str) -> list[ResolvedReference]:
        """Resolve a multi-valued reference port (empty when unset)."""
        value = node.inputs.get(port)
        if value is None or isinstance(value, LiteralInput):
            return []
        if isinstance(value, NodeReference):
            raise TypeError(
                f"Port '{port}' on node '{node.id}' is single-valued; use resolve_input"
            )
        return [self.resolve_reference(node_id, port=port) for node_id in value.node_ids]

    def literal_input(self, node: IRNode, port: str, default=None):
        """Value of a literal input port."""
        value = node.inputs.get(port)
        if isinstance(value, LiteralInput):
            return value.value
        return default

    def allocate_name(self, base: str, key: str = "") -> str:
        """Reserve an identifier for this node; ``key`` tells its names apart."""
        return self._names.allocate(self.node.id, base, key)

    def add_dependency(self, node_id: str) -> None:
        """Declare a dependency not expressed through an edge or port."""
        if node_id not in self.pending.dependencies:
            self.pending.dependencies.append(node_id)

    def register_output(
        self,
        variable_name: str,
        category: Optional[str] = None,
        fragment_id: Optional[str] = None,
    ) -> None:
        """Declare the variable this node exports to later converters."""
        self.pending.variable_name = variable_name
        self.pending.category = category or self.node.category
        self.pending.fragment_id = fragment_id
