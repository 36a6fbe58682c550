"""Compile Flowise-style flow graphs into LangChain source code."""
from flowcompiler.compiler import (
    CompilePipeline,
    ConverterRegistry,
    GenerationOptions,
    compile_flow,
    get_registry,
)
from flowcompiler.errors import (
    CompileError,
    CyclicDependency,
    FlowCompilerError,
    FragmentCollision,
    GraphValidationError,
    UnresolvedReference,
    UnsupportedNodeType,
)
from flowcompiler.models import CompileResult, FlowGraph, IRNode, IREdge

__version__ = "0.1.0"

__all__ = [
    "CompilePipeline",
    "ConverterRegistry",
    "GenerationOptions",
    "compile_flow",
    "get_registry",
    "CompileError",
    "CyclicDependency",
    "FlowCompilerError",
    "FragmentCollision",
    "GraphValidationError",
    "UnresolvedReference",
    "UnsupportedNodeType",
    "CompileResult",
    "FlowGraph",
    "IRNode",
    "IREdge",
]
