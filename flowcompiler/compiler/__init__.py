"""Compiler core: resolver, registry, assembler and pipeline."""
from flowcompiler.compiler.formatters import (
    LanguageFormatter,
    PythonFormatter,
    TypeScriptFormatter,
    get_formatter,
)
from flowcompiler.compiler.resolver import ReferenceResolver, Registration
from flowcompiler.compiler.context import GenerationContext, GenerationOptions, ResolvedReference
from flowcompiler.compiler.registry import (
    ConverterRegistration,
    ConverterRegistry,
    get_registry,
    load_plugin,
    load_plugins,
)
from flowcompiler.compiler.assembler import (
    AssembledCode,
    FragmentAssembler,
    ProjectLayout,
    SingleFileLayout,
)
from flowcompiler.compiler.pipeline import CompilePipeline, PipelineState, compile_flow

__all__ = [
    "LanguageFormatter",
    "PythonFormatter",
    "TypeScriptFormatter",
    "get_formatter",
    "ReferenceResolver",
    "Registration",
    "GenerationContext",
    "GenerationOptions",
    "ResolvedReference",
    "ConverterRegistration",
    "ConverterRegistry",
    "get_registry",
    "load_plugin",
    "load_plugins",
    "AssembledCode",
    "FragmentAssembler",
    "ProjectLayout",
    "SingleFileLayout",
    "CompilePipeline",
    "PipelineState",
    "compile_flow",
]
