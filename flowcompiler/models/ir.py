"""FlowGraph - Intermediate Representation for visual flow definitions.

This schema sits between the exported node-graph JSON and the generated
source code. It provides:
- Strong typing for nodes, parameters and edges
- Structural port arity (single reference vs. reference list)
- Validation rules ensuring graph integrity before any conversion runs
"""
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_core import PydanticCustomError


class IRParameter(BaseModel):
    """Static configuration value on a node."""

    name: str = Field(..., description="Parameter name")
    value: Any = Field(None, description="Configured value")
    type: str = Field("string", description="Declared parameter type")


class LiteralInput(BaseModel):
    """Input port holding a plain value."""

    kind: Literal["literal"] = "literal"
    value: Any = None


class NodeReference(BaseModel):
    """Single-valued input port pointing at another node."""

    kind: Literal["ref"] = "ref"
    node_id: str = Field(..., min_length=1)


class NodeReferenceList(BaseModel):
    """Multi-valued input port pointing at several nodes (e.g. tools)."""

    kind: Literal["refs"] = "refs"
    node_ids: list[str] = Field(default_factory=list)


InputValue = Annotated[
    Union[LiteralInput, NodeReference, NodeReferenceList],
    Field(discriminator="kind"),
]


class IRNode(BaseModel):
    """A graph vertex."""

    id: str = Field(..., description="Unique node identifier")
    type: str = Field(..., description="Node type used for converter dispatch")
    category: str = Field("general", description="Coarse grouping, e.g. llm, memory, tool")
    label: Optional[str] = Field(None, description="Display label")
    parameters: list[IRParameter] = Field(
        default_factory=list,
        description="Ordered static configuration",
    )
    inputs: dict[str, InputValue] = Field(
        default_factory=dict,
        description="Input port name -> literal, reference or reference list",
    )

    def get_parameter(self, name: str, default: Any = None) -> Any:
        """Get a parameter value by name."""
        for param in self.parameters:
            if param.name == name:
                return default if param.value is None else param.value
        return default

    def referenced_node_ids(self) -> list[str]:
        """Node ids referenced through input ports, in port order."""
        refs: list[str] = []
        for value in self.inputs.values():
            if isinstance(value, NodeReference):
                refs.append(value.node_id)
            elif isinstance(value, NodeReferenceList):
                refs.extend(value.node_ids)
        return refs


class IREdge(BaseModel):
    """A connection between two node ports."""

    id: Optional[str] = Field(None, description="Edge identifier")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")
    source_handle: str = Field("output", description="Port name on the source node")
    target_handle: str = Field("input", description="Port name on the target node")


class FlowGraph(BaseModel):
    """Intermediate Representation of one flow.

    This is the sole input of the compilation pipeline. Structural
    invariants (unique ids, existing edge endpoints) are enforced here so
    that the compiler only has to detect semantic problems.
    """

    name: str = Field("flow", description="Flow name")
    description: Optional[str] = Field(None, description="Flow description")
    nodes: list[IRNode] = Field(default_factory=list)
    edges: list[IREdge] = Field(default_factory=list)
    metadata: dict = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_graph_integrity(self):
        """Collect every structural problem and report them together."""
        problems: list[str] = []

        seen: set[str] = set()
        for node in self.nodes:
            if not node.id:
                problems.append("Node with empty id")
            elif node.id in seen:
                problems.append(f"Duplicate node id '{node.id}'")
            seen.add(node.id)
            if not node.type:
                problems.append(f"Node '{node.id}' has an empty type")

        for edge in self.edges:
            label = edge.id or f"{edge.source}->{edge.target}"
            if edge.source not in seen:
                problems.append(f"Edge '{label}' source '{edge.source}' not found")
            if edge.target not in seen:
                problems.append(f"Edge '{label}' target '{edge.target}' not found")

        if problems:
            raise PydanticCustomError(
                "graph_integrity",
                "Invalid flow graph: {summary}",
                {"summary": "; ".join(problems), "problems": problems},
            )
        return self

    def get_node(self, node_id: str) -> Optional[IRNode]:
        """Get a node by its ID."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def has_node(self, node_id: str) -> bool:
        return self.get_node(node_id) is not None

    def incoming_edges(self, node_id: str) -> list[IREdge]:
        """Edges whose target is the given node."""
        return [edge for edge in self.edges if edge.target == node_id]

    def declaration_order(self) -> list[str]:
        """Node ids in the order they were declared."""
        return [node.id for node in self.nodes]


def validation_problems(exc: ValidationError) -> list[str]:
    """Flatten a pydantic validation failure into readable problems."""
    problems: list[str] = []
    for error in exc.errors():
        if error["type"] == "graph_integrity":
            problems.extend(error["ctx"]["problems"])
            continue
        location = ".".join(str(part) for part in error["loc"])
        problems.append(f"{location}: {error['msg']}" if location else error["msg"])
    return problems
