"""Pydantic models for the flow compiler."""
from flowcompiler.models.ir import (
    FlowGraph,
    IRNode,
    IREdge,
    IRParameter,
    LiteralInput,
    NodeReference,
    NodeReferenceList,
)
from flowcompiler.models.fragments import (
    CodeFragment,
    FragmentKind,
    CompileWarning,
    CompileResult,
    GeneratedFile,
    IdentifierRename,
)

__all__ = [
    "FlowGraph",
    "IRNode",
    "IREdge",
    "IRParameter",
    "LiteralInput",
    "NodeReference",
    "NodeReferenceList",
    "CodeFragment",
    "FragmentKind",
    "CompileWarning",
    "CompileResult",
    "GeneratedFile",
    "IdentifierRename",
]
