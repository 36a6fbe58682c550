"""Compile Pipeline - orchestrates one flow-graph compilation.

The pipeline coordinates:
1. Validating - parse and structurally check the graph
2. Dispatching - find a converter for every node
3. Generating - run converters, deferring nodes whose references are pending
4. Assembling - order, merge and lay out the fragments

A compilation either produces every file or raises ``CompileError``
listing all fatal problems; partial output is never returned.
"""
from enum import Enum
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError

from flowcompiler.compiler.assembler import FragmentAssembler, SingleFileLayout, get_layout
from flowcompiler.compiler.context import GenerationContext, GenerationOptions, NameScope
from flowcompiler.compiler.formatters import LanguageFormatter, get_formatter
from flowcompiler.compiler.registry import ConverterRegistry, get_registry
from flowcompiler.compiler.resolver import ReferenceResolver
from flowcompiler.converters.base import BaseConverter
from flowcompiler.errors import (
    CompileError,
    CyclicDependency,
    FlowCompilerError,
    GraphValidationError,
    UnresolvedReference,
    UnsupportedNodeType,
)
from flowcompiler.models.fragments import (
    CodeFragment,
    CompileResult,
    CompileWarning,
    IdentifierRename,
)
from flowcompiler.models.ir import (
    FlowGraph,
    IRNode,
    NodeReference,
    NodeReferenceList,
    validation_problems,
)

logger = structlog.get_logger()


class PipelineState(str, Enum):
    """Lifecycle of one compilation."""
    VALIDATING = "validating"
    DISPATCHING = "dispatching"
    GENERATING = "generating"
    ASSEMBLING = "assembling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CompilePipeline:
    """Compiles a flow graph into source files.

    The registry is shared and read-only; everything else (resolver,
    fragments, state) lives for the duration of a single ``run``.
    """

    def __init__(
        self,
        registry: Optional[ConverterRegistry] = None,
        options: Optional[GenerationOptions] = None,
        layout: Optional[SingleFileLayout] = None,
    ):
        self.registry = registry or get_registry()
        self.options = options or GenerationOptions()
        self.layout = layout or get_layout()
        self.formatter: LanguageFormatter = get_formatter(
            self.options.target_language, self.options.output_style,
        )
        self.state: Optional[PipelineState] = None

    def _transition(self, state: PipelineState) -> None:
        logger.debug("pipeline_state_changed", previous=self.state, state=state.value)
        self.state = state

    def run(self, graph: Union[FlowGraph, dict[str, Any]]) -> CompileResult:
        """Run the full compilation.

        Args:
            graph: A ``FlowGraph`` or its dict form.

        Returns:
            CompileResult with generated files, warnings and dependencies.

        Raises:
            CompileError: aggregating every fatal problem found.
        """
        self.state = None
        try:
            self._transition(PipelineState.VALIDATING)
            flow = self.validate(graph)
            logger.info(
                "compile_start",
                flow_name=flow.name,
                node_count=len(flow.nodes),
                edge_count=len(flow.edges),
                target_language=self.options.target_language,
            )

            self._transition(PipelineState.DISPATCHING)
            converters, warnings = self._dispatch(flow)

            self._transition(PipelineState.GENERATING)
            resolver, fragments, dependencies, names = self._generate(flow, converters)

            self._transition(PipelineState.ASSEMBLING)
            result = self._assemble(resolver, fragments, dependencies, names)
            result.warnings = warnings
        except CompileError as exc:
            self._fail(exc)
            raise
        except FlowCompilerError as exc:
            error = CompileError([exc])
            self._fail(error)
            raise error from exc

        self._transition(PipelineState.SUCCEEDED)
        logger.info(
            "compile_complete",
            flow_name=flow.name,
            files=[generated.path for generated in result.files],
            warnings=len(result.warnings),
        )
        return result

    def _fail(self, error: CompileError) -> None:
        self._transition(PipelineState.FAILED)
        logger.warning(
            "compile_failed",
            error_codes=[e.code for e in error.errors],
            error=str(error),
        )

    # ------------------------------------------------------------------
    # Validating
    # ------------------------------------------------------------------

    def validate(self, graph: Union[FlowGraph, dict[str, Any]]) -> FlowGraph:
        """Parse and structurally validate a graph.

        Raises:
            GraphValidationError: listing every problem found.
        """
        if isinstance(graph, FlowGraph):
            return graph
        try:
            return FlowGraph.model_validate(graph)
        except ValidationError as exc:
            raise GraphValidationError(validation_problems(exc)) from exc

    # ------------------------------------------------------------------
    # Dispatching
    # ------------------------------------------------------------------

    def _dispatch(self, flow: FlowGraph) -> tuple[dict[str, BaseConverter], list[CompileWarning]]:
        """Look up every node's converter before any code is generated."""
        converters: dict[str, BaseConverter] = {}
        unsupported: list[FlowCompilerError] = []
        deprecated: dict[str, list[str]] = {}
        replacements: dict[str, Optional[str]] = {}

        for node in flow.nodes:
            try:
                registration = self.registry.get_registration(node.type)
                converters[node.id] = self.registry.lookup(node.type, node)
            except UnsupportedNodeType as exc:
                if exc.node_id is None:
                    exc = UnsupportedNodeType(node.type, node_id=node.id)
                unsupported.append(exc)
                continue

            if registration.deprecated:
                deprecated.setdefault(registration.type_name, []).append(node.id)
                replacements[registration.type_name] = registration.replacement_type

        if unsupported:
            raise CompileError(unsupported)

        warnings = []
        for type_name, node_ids in deprecated.items():
            replacement = replacements[type_name]
            message = f"Node type '{type_name}' is deprecated"
            if replacement:
                message += f"; use '{replacement}' instead"
            message += f" (nodes: {', '.join(node_ids)})"
            logger.warning(
                "deprecated_node_type",
                type_name=type_name,
                node_ids=node_ids,
                replacement_type=replacement,
            )
            warnings.append(CompileWarning(
                code="DeprecatedNodeTypeUsed",
                message=message,
                node_ids=node_ids,
                type_name=type_name,
                replacement_type=replacement,
            ))
        return converters, warnings

    # ------------------------------------------------------------------
    # Generating
    # ------------------------------------------------------------------

    def _generate(
        self,
        flow: FlowGraph,
        converters: dict[str, BaseConverter],
    ) -> tuple[ReferenceResolver, list[CodeFragment], set[str], NameScope]:
        """Run converters until every node has generated or none can progress."""
        resolver = ReferenceResolver(flow.declaration_order())
        for edge in flow.edges:
            resolver.add_dependency(edge.target, edge.source)
        for node in flow.nodes:
            for referenced_id in node.referenced_node_ids():
                if flow.has_node(referenced_id):
                    resolver.add_dependency(node.id, referenced_id)

        names = NameScope()
        for converter in converters.values():
            names.reserve(converter.reserved_identifiers(self.options))

        fragments: list[CodeFragment] = []
        dependencies: set[str] = set()
        blocked: dict[str, UnresolvedReference] = {}
        errors: list[FlowCompilerError] = list(self._missing_references(flow))

        pending = list(flow.nodes)
        max_passes = max(len(pending), 1)
        passes = 0
        while pending and passes < max_passes:
            passes += 1
            deferred: list[IRNode] = []
            for node in pending:
                context = GenerationContext(
                    node, flow, resolver, self.options, self.formatter, names=names,
                )
                converter = converters[node.id]
                try:
                    node_fragments = converter.convert(node, context)
                    self._check_dependencies(flow, context)
                except UnresolvedReference as exc:
                    blocked[node.id] = exc
                    deferred.append(node)
                    logger.debug(
                        "node_deferred",
                        node_id=node.id,
                        missing_id=exc.missing_id,
                        compile_pass=passes,
                    )
                    continue
                except FlowCompilerError as exc:
                    errors.append(exc)
                    continue

                blocked.pop(node.id, None)
                self._commit(node, context, node_fragments, resolver)
                fragments.extend(node_fragments)
                dependencies.update(converter.required_dependencies(context))

            if len(deferred) == len(pending):
                pending = deferred
                break
            pending = deferred

        if pending:
            errors.extend(self._leftover_errors(flow, pending, blocked, resolver))
        if errors:
            raise CompileError(_unique_errors(errors))

        self._add_fragment_dependencies(fragments, resolver)
        return resolver, fragments, dependencies, names

    def _missing_references(self, flow: FlowGraph) -> list[UnresolvedReference]:
        """Input ports pointing at node ids that are not in the graph."""
        missing = []
        for node in flow.nodes:
            for port, value in node.inputs.items():
                if isinstance(value, NodeReference):
                    node_ids = [value.node_id]
                elif isinstance(value, NodeReferenceList):
                    node_ids = value.node_ids
                else:
                    continue
                for node_id in node_ids:
                    if not flow.has_node(node_id):
                        missing.append(UnresolvedReference(node_id, consumer_id=node.id, port=port))
        return missing

    def _check_dependencies(self, flow: FlowGraph, context: GenerationContext) -> None:
        for node_id in context.pending.dependencies:
            if not flow.has_node(node_id):
                raise UnresolvedReference(node_id, consumer_id=context.node_id)

    def _commit(
        self,
        node: IRNode,
        context: GenerationContext,
        node_fragments: list[CodeFragment],
        resolver: ReferenceResolver,
    ) -> None:
        """Make a successful converter call visible to later nodes."""
        pending = context.pending
        variable_name = pending.variable_name or context.allocate_name(
            self.formatter.identifier(node.id),
        )
        fragment_id = pending.fragment_id
        if fragment_id is None:
            for fragment in node_fragments:
                if fragment.exports == variable_name:
                    fragment_id = fragment.id
                    break
        resolver.register_node(
            node.id,
            variable_name,
            pending.category or node.category,
            fragment_id=fragment_id,
        )
        for dependency_id in pending.dependencies:
            resolver.add_dependency(node.id, dependency_id)

    def _leftover_errors(
        self,
        flow: FlowGraph,
        pending: list[IRNode],
        blocked: dict[str, UnresolvedReference],
        resolver: ReferenceResolver,
    ) -> list[FlowCompilerError]:
        """Explain why the remaining nodes never generated."""
        pending_ids = {node.id for node in pending}
        errors: list[FlowCompilerError] = []

        waits = ReferenceResolver(flow.declaration_order())
        for node in pending:
            exc = blocked[node.id]
            if exc.missing_id in pending_ids:
                waits.add_dependency(node.id, exc.missing_id)
            elif not flow.has_node(exc.missing_id):
                errors.append(exc)
            for dependency_id in resolver.dependencies_of(node.id):
                if dependency_id in pending_ids:
                    waits.add_dependency(node.id, dependency_id)

        try:
            waits.get_initialization_order()
        except CyclicDependency as exc:
            errors.append(exc)

        if not errors:
            # Waiting on each other without a cycle cannot stall; report raw causes
            errors.extend(blocked[node.id] for node in pending)
        return errors

    def _add_fragment_dependencies(
        self,
        fragments: list[CodeFragment],
        resolver: ReferenceResolver,
    ) -> None:
        """Fragments depending on another node's fragment order that node first."""
        owners = {
            fragment.id: fragment.producing_node_id
            for fragment in fragments if fragment.producing_node_id
        }
        for fragment in fragments:
            consumer = fragment.producing_node_id
            if consumer is None:
                continue
            for dependency in sorted(fragment.depends_on):
                owner = owners.get(dependency)
                if owner and owner != consumer:
                    resolver.add_dependency(consumer, owner)

    # ------------------------------------------------------------------
    # Assembling
    # ------------------------------------------------------------------

    def _assemble(
        self,
        resolver: ReferenceResolver,
        fragments: list[CodeFragment],
        dependencies: set[str],
        names: NameScope,
    ) -> CompileResult:
        order = resolver.get_initialization_order()
        assembled = FragmentAssembler(self.formatter).assemble(fragments, order)
        assembled.dependencies = sorted(set(assembled.dependencies) | dependencies)
        files = self.layout.layout(assembled, self.formatter, self.options)
        return CompileResult(
            files=files,
            dependencies=assembled.dependencies,
            order=order,
            renames=self._allocation_renames(names, fragments) + assembled.renames,
        )

    def _allocation_renames(
        self,
        names: NameScope,
        fragments: list[CodeFragment],
    ) -> list[IdentifierRename]:
        """Names that were suffixed during generation because they were taken."""
        renames = []
        for node_id, old_name, new_name in names.renames:
            defining = next(
                (f.id for f in fragments if f.producing_node_id == node_id and f.exports == new_name),
                None,
            )
            renames.append(IdentifierRename(
                node_id=node_id,
                fragment_id=defining,
                old_name=old_name,
                new_name=new_name,
            ))
        return renames


def compile_flow(
    graph: Union[FlowGraph, dict[str, Any]],
    *,
    registry: Optional[ConverterRegistry] = None,
    layout: Optional[SingleFileLayout] = None,
    options: Optional[GenerationOptions] = None,
    **option_overrides: Any,
) -> CompileResult:
    """Compile a flow graph with the process-wide converter registry.

    Example:
        result = compile_flow(graph, target_language="python")
        print(result.files[0].content)
    """
    if options is None:
        options = GenerationOptions(**option_overrides)
    elif option_overrides:
        options = options.model_copy(update=option_overrides)
    pipeline = CompilePipeline(registry=registry, options=options, layout=layout)
    return pipeline.run(graph)


def _unique_errors(errors: list[FlowCompilerError]) -> list[FlowCompilerError]:
    """Drop repeated reports of the same missing reference."""
    seen = set()
    unique = []
    for error in errors:
        if isinstance(error, UnresolvedReference):
            key = (error.consumer_id, error.missing_id)
            if key in seen:
                continue
            seen.add(key)
        unique.append(error)
    return unique
