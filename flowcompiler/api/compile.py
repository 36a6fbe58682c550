"""Compilation API endpoints."""
from typing import Any, Literal, Optional

import structlog
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from flowcompiler.compiler.assembler import get_layout
from flowcompiler.compiler.context import GenerationOptions
from flowcompiler.compiler.pipeline import CompilePipeline
from flowcompiler.compiler.registry import get_registry
from flowcompiler.errors import CompileError, GraphValidationError
from flowcompiler.models.fragments import CompileResult
from flowcompiler.parser.flowise import parse_flowise_export

logger = structlog.get_logger()

router = APIRouter()


class CompileOptions(BaseModel):
    """Per-request overrides of the configured generation defaults."""

    target_language: Optional[Literal["typescript", "python"]] = Field(
        None,
        description="Language of the generated code",
    )
    output_style: Optional[Literal["esm", "cjs"]] = Field(
        None,
        description="TypeScript module style",
    )
    include_comments: Optional[bool] = None
    project_name: Optional[str] = Field(None, min_length=1, max_length=214)
    project_layout: Optional[bool] = Field(
        None,
        description="Emit a dependency manifest and .env.example beside the main file",
    )

    def generation_options(self) -> GenerationOptions:
        overrides = self.model_dump(exclude_none=True, exclude={"project_layout"})
        return GenerationOptions(**overrides)


class CompileRequest(BaseModel):
    """Request body for compiling an IR flow graph."""

    graph: dict[str, Any] = Field(..., description="FlowGraph in its JSON form")
    options: CompileOptions = Field(default_factory=CompileOptions)


class FlowiseCompileRequest(BaseModel):
    """Request body for compiling a Flowise export."""

    flow: dict[str, Any] = Field(..., description="Flowise chatflow or agentflow export")
    options: CompileOptions = Field(default_factory=CompileOptions)


class ValidateRequest(BaseModel):
    graph: dict[str, Any]


class ValidateResponse(BaseModel):
    valid: bool
    problems: list[str] = []
    node_count: int = 0
    edge_count: int = 0


class ConvertersResponse(BaseModel):
    """Registered converters."""

    statistics: dict
    types: list[str]
    aliases: dict[str, str]
    deprecated: dict[str, Optional[str]]


def _compile(graph: Any, options: CompileOptions) -> CompileResult:
    pipeline = CompilePipeline(
        options=options.generation_options(),
        layout=get_layout(options.project_layout),
    )
    try:
        return pipeline.run(graph)
    except CompileError as e:
        logger.warning("compile_request_rejected", errors=len(e.errors))
        raise HTTPException(status_code=422, detail=e.to_dict())


@router.post("/compile", response_model=CompileResult)
async def compile_graph(request: CompileRequest) -> CompileResult:
    """Compile an IR flow graph into source files."""
    logger.info("compile_request", nodes=len(request.graph.get("nodes") or []))
    return _compile(request.graph, request.options)


@router.post("/compile/flowise", response_model=CompileResult)
async def compile_flowise(request: FlowiseCompileRequest) -> CompileResult:
    """Compile a Flowise export into source files."""
    try:
        graph = parse_flowise_export(request.flow)
    except GraphValidationError as e:
        raise HTTPException(status_code=422, detail=CompileError([e]).to_dict())
    return _compile(graph, request.options)


@router.post("/validate", response_model=ValidateResponse)
async def validate_graph(request: ValidateRequest) -> ValidateResponse:
    """Structural validation only; no converters run."""
    try:
        graph = CompilePipeline(registry=get_registry()).validate(request.graph)
    except GraphValidationError as e:
        return ValidateResponse(valid=False, problems=e.problems)
    return ValidateResponse(
        valid=True,
        node_count=len(graph.nodes),
        edge_count=len(graph.edges),
    )


@router.get("/converters", response_model=ConvertersResponse)
async def list_converters() -> ConvertersResponse:
    """Registered node types, aliases and deprecations."""
    registry = get_registry()
    deprecated = {}
    for type_name in registry.registered_types():
        registration = registry.get_registration(type_name)
        if registration.deprecated:
            deprecated[type_name] = registration.replacement_type
    return ConvertersResponse(
        statistics=registry.statistics(),
        types=registry.registered_types(),
        aliases=registry.aliases(),
        deprecated=deprecated,
    )
