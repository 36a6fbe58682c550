"""Errors raised while compiling a flow graph.

Every fatal problem is a ``FlowCompilerError``. A single ``compile`` call
reports all of its fatal problems at once through ``CompileError``.
"""
from typing import Iterable, Optional


class FlowCompilerError(Exception):
    """Base class for compiler errors."""

    code = "FlowCompilerError"

    def to_dict(self) -> dict:
        return {"code": self.code, "message": str(self)}


class GraphValidationError(FlowCompilerError):
    """Malformed input graph, detected before dispatch."""

    code = "ValidationError"

    def __init__(self, problems: Iterable[str]):
        self.problems = list(problems)
        super().__init__(
            f"Invalid flow graph ({len(self.problems)} problem(s)): "
            + "; ".join(self.problems)
        )

    def to_dict(self) -> dict:
        return {**super().to_dict(), "problems": self.problems}


class UnsupportedNodeType(FlowCompilerError):
    """No converter registered for a node type, directly or via alias."""

    code = "UnsupportedNodeType"

    def __init__(self, type_name: str, node_id: Optional[str] = None, reason: Optional[str] = None):
        self.type_name = type_name
        self.node_id = node_id
        message = f"No converter registered for node type '{type_name}'"
        if node_id:
            message += f" (node '{node_id}')"
        if reason:
            message += f": {reason}"
        super().__init__(message)

    def to_dict(self) -> dict:
        return {**super().to_dict(), "type_name": self.type_name, "node_id": self.node_id}


class UnresolvedReference(FlowCompilerError):
    """A converter asked for a node registration that never materialized."""

    code = "UnresolvedReference"

    def __init__(
        self,
        missing_id: str,
        consumer_id: Optional[str] = None,
        port: Optional[str] = None,
    ):
        self.missing_id = missing_id
        self.consumer_id = consumer_id
        self.port = port
        message = f"Unresolved reference to node '{missing_id}'"
        if consumer_id:
            message += f" from node '{consumer_id}'"
        if port:
            message += f" (port '{port}')"
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "missing_id": self.missing_id,
            "consumer_id": self.consumer_id,
            "port": self.port,
        }


class CyclicDependency(FlowCompilerError):
    """The dependency graph cannot be fully ordered."""

    code = "CyclicDependency"

    def __init__(self, node_ids: Iterable[str]):
        self.node_ids = list(node_ids)
        super().__init__(
            "Circular dependency between nodes: " + ", ".join(self.node_ids)
        )

    def to_dict(self) -> dict:
        return {**super().to_dict(), "node_ids": self.node_ids}


class FragmentCollision(FlowCompilerError):
    """Two fragments claim the same output identifier or fragment id."""

    code = "FragmentCollision"

    def __init__(self, identifier: str, fragment_ids: Iterable[str]):
        self.identifier = identifier
        self.fragment_ids = list(fragment_ids)
        super().__init__(
            f"Identifier '{identifier}' is claimed by fragments "
            + ", ".join(self.fragment_ids)
        )

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "identifier": self.identifier,
            "fragment_ids": self.fragment_ids,
        }


class RegistryError(FlowCompilerError):
    """Invalid converter registry operation."""

    code = "RegistryError"


class CompileError(FlowCompilerError):
    """Aggregated failure of one compile call."""

    code = "CompileError"

    def __init__(self, errors: Iterable[FlowCompilerError]):
        self.errors = list(errors)
        summary = "; ".join(str(error) for error in self.errors)
        super().__init__(f"Compilation failed with {len(self.errors)} error(s): {summary}")

    def of_type(self, error_type: type) -> list[FlowCompilerError]:
        """Errors of a given class."""
        return [error for error in self.errors if isinstance(error, error_type)]

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": str(self),
            "errors": [error.to_dict() for error in self.errors],
        }
