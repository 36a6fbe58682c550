"""Tests for the compile pipeline.

Covers the end-to-end guarantees of a compilation:
- Deterministic output
- Dependencies initialized before their consumers
- Cycles, unresolved references and unsupported types reported as errors
- Alias dispatch, import merging and deprecation warnings
- No output at all when anything fails
"""
import pytest

from flowcompiler.compiler.assembler import ProjectLayout
from flowcompiler.compiler.context import GenerationOptions
from flowcompiler.compiler.pipeline import CompilePipeline, PipelineState, compile_flow
from flowcompiler.compiler.registry import ConverterRegistry
from flowcompiler.converters import converter
from flowcompiler.errors import (
    CompileError,
    CyclicDependency,
    GraphValidationError,
    UnresolvedReference,
    UnsupportedNodeType,
)
from flowcompiler.models.fragments import CodeFragment, FragmentKind


def _node(node_id, type_name, inputs=None, **params):
    return {
        "id": node_id,
        "type": type_name,
        "parameters": [{"name": name, "value": value} for name, value in params.items()],
        "inputs": inputs or {},
    }


def _ref(node_id):
    return {"kind": "ref", "node_id": node_id}


def _graph(*nodes, edges=None):
    return {"name": "test-flow", "nodes": list(nodes), "edges": edges or []}


def _chain_graph():
    """LLM chain declared before the nodes it consumes."""
    return _graph(
        _node("chain", "llmChain", {"model": _ref("model"), "prompt": _ref("prompt")}),
        _node("prompt", "promptTemplate", template="Tell me about {topic}"),
        _node("model", "chatOpenAI", modelName="gpt-4o", temperature=0.2),
    )


def _source(result):
    return result.files[0].content


class TestCompileSuccess:
    """Successful compilations."""

    def test_output_is_deterministic(self):
        first = compile_flow(_chain_graph())
        second = compile_flow(_chain_graph())

        assert first.model_dump() == second.model_dump()

    def test_dependencies_initialized_before_consumers(self):
        result = compile_flow(_chain_graph())

        assert result.order == ["prompt", "model", "chain"]
        source = _source(result)
        assert source.index("new ChatOpenAI(") < source.index("new LLMChain(")
        assert source.index("PromptTemplate.fromTemplate(") < source.index("new LLMChain(")

    def test_consumer_references_producer_variables(self):
        source = _source(compile_flow(_chain_graph()))

        assert "llm: model" in source
        assert "prompt: prompt" in source

    def test_default_output_file_and_dependencies(self):
        result = compile_flow(_chain_graph())

        assert [f.path for f in result.files] == ["index.ts"]
        assert result.dependencies == ["@langchain/core", "@langchain/openai", "langchain"]
        assert result.warnings == []

    def test_alias_dispatches_to_canonical_converter(self):
        result = compile_flow(_graph(_node("m", "gpt", modelName="gpt-4o")))

        assert "new ChatOpenAI(" in _source(result)
        assert result.warnings == []

    def test_imports_from_one_package_merge(self):
        result = compile_flow(_graph(
            _node("chat", "chatOpenAI"),
            _node("legacy", "openAI"),
            _node("second", "openAIChat"),
        ))

        source = _source(result)
        assert "import { ChatOpenAI, OpenAI } from '@langchain/openai';" in source
        assert source.count("from '@langchain/openai'") == 1

    def test_deprecated_type_warns_once(self):
        result = compile_flow(_graph(
            _node("old1", "openAI"),
            _node("old2", "openAI"),
        ))

        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert warning.code == "DeprecatedNodeTypeUsed"
        assert warning.node_ids == ["old1", "old2"]
        assert warning.replacement_type == "chatOpenAI"

    def test_python_target(self):
        result = compile_flow(_chain_graph(), target_language="python")

        source = _source(result)
        assert result.files[0].path == "index.py"
        assert "from langchain_openai import ChatOpenAI" in source
        assert "import os" in source
        assert 'api_key=os.environ["OPENAI_API_KEY"]' in source
        assert "os" not in result.dependencies
        assert "langchain-openai" in result.dependencies

    def test_project_layout(self):
        result = compile_flow(_chain_graph(), layout=ProjectLayout(), project_name="chain-demo")

        paths = [f.path for f in result.files]
        assert paths == ["index.ts", "package.json", ".env.example"]
        assert result.get_file(".env.example").content == "OPENAI_API_KEY=\n"

    def test_colliding_identifiers_are_renamed(self):
        result = compile_flow(_graph(
            _node("chat-model", "chatOpenAI"),
            _node("chat_model", "chatOpenAI"),
            _node("prompt", "promptTemplate"),
            _node("chain", "llmChain", {"model": _ref("chat_model"), "prompt": _ref("prompt")}),
        ))

        source = _source(result)
        assert "const chat_model = new ChatOpenAI(" in source
        assert "const chat_model_1 = new ChatOpenAI(" in source
        assert "llm: chat_model_1" in source
        assert [(r.node_id, r.new_name) for r in result.renames] == [("chat_model", "chat_model_1")]

    def test_helper_name_clashing_with_another_node_keeps_its_references(self):
        result = compile_flow(_graph(
            _node("llm", "chatOpenAI"),
            _node("agent_tools", "calculator"),
            _node("agent", "toolAgent", {
                "model": _ref("llm"),
                "tools": {"kind": "refs", "node_ids": ["agent_tools"]},
            }),
        ))

        source = _source(result)
        assert "const agent_tools = new Calculator();" in source
        assert "const agent_tools_1: StructuredToolInterface[] = [agent_tools];" in source
        assert "tools: agent_tools_1" in source
        assert [(r.node_id, r.old_name, r.new_name) for r in result.renames] == [
            ("agent", "agent_tools", "agent_tools_1"),
        ]
        assert result.renames[0].fragment_id == "agent#tools"

    def test_node_ids_sharing_a_prefix_get_distinct_fragments(self):
        result = compile_flow(
            _graph(_node("llm", "chatOpenAI"), _node("llm_env", "bufferMemory")),
            target_language="python",
        )

        source = _source(result)
        assert "llm = ChatOpenAI(" in source
        assert "llm_env = ConversationBufferMemory(" in source
        assert source.count("import os") == 1

    @pytest.mark.parametrize("language, node_id, expected", [
        ("python", "class", "class_ = ChatOpenAI("),
        ("python", "lambda", "lambda_ = ChatOpenAI("),
        ("typescript", "new", "const new_ = new ChatOpenAI("),
        ("typescript", "function", "const function_ = new ChatOpenAI("),
    ])
    def test_reserved_node_ids_are_escaped(self, language, node_id, expected):
        result = compile_flow(_graph(_node(node_id, "chatOpenAI")), target_language=language)

        assert expected in _source(result)

    def test_node_id_matching_an_imported_name_is_suffixed(self):
        result = compile_flow(_graph(_node("ChatOpenAI", "chatOpenAI")))

        assert "const ChatOpenAI_1 = new ChatOpenAI(" in _source(result)

    def test_edges_add_ordering_constraints(self):
        result = compile_flow(_graph(
            _node("second", "calculator"),
            _node("first", "calculator"),
            edges=[{"source": "first", "target": "second"}],
        ))

        assert result.order == ["first", "second"]

    def test_state_after_success(self):
        pipeline = CompilePipeline()
        pipeline.run(_chain_graph())

        assert pipeline.state == PipelineState.SUCCEEDED


class TestCompileFailure:
    """Failed compilations produce errors and no files."""

    def test_cycle_names_exactly_its_members(self):
        with pytest.raises(CompileError) as exc_info:
            compile_flow(_graph(
                _node("A", "subflow", steps='["B"]'),
                _node("B", "subflow", steps='["C"]'),
                _node("C", "subflow", steps='["A"]'),
                _node("D", "calculator"),
                _node("E", "subflow", steps='["A"]'),
            ))

        errors = exc_info.value.errors
        assert len(errors) == 1
        assert isinstance(errors[0], CyclicDependency)
        assert set(errors[0].node_ids) == {"A", "B", "C"}

    def test_cycle_through_edges(self):
        with pytest.raises(CompileError) as exc_info:
            compile_flow(_graph(
                _node("A", "calculator"),
                _node("B", "calculator"),
                _node("C", "calculator"),
                edges=[
                    {"source": "A", "target": "B"},
                    {"source": "B", "target": "C"},
                    {"source": "C", "target": "A"},
                ],
            ))

        cycles = exc_info.value.of_type(CyclicDependency)
        assert [set(c.node_ids) for c in cycles] == [{"A", "B", "C"}]

    def test_unresolved_reference_names_missing_node(self):
        with pytest.raises(CompileError) as exc_info:
            compile_flow(_graph(
                _node("chain", "llmChain", {"model": _ref("ghost"), "prompt": _ref("prompt")}),
                _node("prompt", "promptTemplate"),
            ))

        errors = exc_info.value.of_type(UnresolvedReference)
        assert len(errors) == 1
        assert errors[0].missing_id == "ghost"
        assert errors[0].consumer_id == "chain"
        assert errors[0].port == "model"

    def test_reference_to_missing_node_on_unused_port(self):
        with pytest.raises(CompileError) as exc_info:
            compile_flow(_graph(_node("llm", "chatOpenAI", {"cache": _ref("ghost")})))

        errors = exc_info.value.of_type(UnresolvedReference)
        assert [(e.missing_id, e.consumer_id, e.port) for e in errors] == [("ghost", "llm", "cache")]

    def test_missing_nodes_in_reference_list_are_each_reported(self):
        with pytest.raises(CompileError) as exc_info:
            compile_flow(_graph(
                _node("llm", "chatOpenAI"),
                _node("agent", "toolAgent", {
                    "model": _ref("llm"),
                    "tools": {"kind": "refs", "node_ids": ["ghost1", "ghost2"]},
                }),
            ))

        errors = exc_info.value.of_type(UnresolvedReference)
        assert [e.missing_id for e in errors] == ["ghost1", "ghost2"]

    def test_missing_required_port(self):
        with pytest.raises(CompileError) as exc_info:
            compile_flow(_graph(
                _node("chain", "llmChain", {"prompt": _ref("prompt")}),
                _node("prompt", "promptTemplate"),
            ))

        error = exc_info.value.of_type(UnresolvedReference)[0]
        assert error.port == "model"

    def test_unsupported_node_yields_no_files(self):
        pipeline = CompilePipeline()

        with pytest.raises(CompileError) as exc_info:
            pipeline.run(_graph(
                _node("model", "chatOpenAI"),
                _node("weird", "quantumOracle"),
            ))

        errors = exc_info.value.errors
        assert len(errors) == 1
        assert isinstance(errors[0], UnsupportedNodeType)
        assert errors[0].type_name == "quantumOracle"
        assert errors[0].node_id == "weird"
        assert pipeline.state == PipelineState.FAILED

    def test_every_unsupported_node_is_reported(self):
        with pytest.raises(CompileError) as exc_info:
            compile_flow(_graph(_node("a", "mysteryA"), _node("b", "mysteryB")))

        assert [e.node_id for e in exc_info.value.of_type(UnsupportedNodeType)] == ["a", "b"]

    def test_structural_problems_reported_together(self):
        graph = _graph(
            _node("a", "calculator"),
            _node("a", "calculator"),
            edges=[{"id": "e1", "source": "a", "target": "missing"}],
        )

        with pytest.raises(CompileError) as exc_info:
            compile_flow(graph)

        error = exc_info.value.errors[0]
        assert isinstance(error, GraphValidationError)
        assert error.problems == [
            "Duplicate node id 'a'",
            "Edge 'e1' target 'missing' not found",
        ]

    def test_field_errors_are_validation_errors(self):
        with pytest.raises(CompileError) as exc_info:
            compile_flow({"nodes": [{"id": "a"}]})

        error = exc_info.value.errors[0]
        assert isinstance(error, GraphValidationError)
        assert any(problem.startswith("nodes.0.type") for problem in error.problems)

    def test_invalid_subflow_steps(self):
        with pytest.raises(CompileError) as exc_info:
            compile_flow(_graph(_node("s", "subflow", steps="not json")))

        assert isinstance(exc_info.value.errors[0], GraphValidationError)


# =============================================================================
# Custom registries
# =============================================================================

@converter("silent", category="tool")
def _silent(node, context):
    return []


@converter("echo", category="chain")
def _echo(node, context):
    source = context.resolve_input(node, "source")
    variable = context.formatter.identifier(node.id)
    return [
        CodeFragment(
            id=f"{node.id}_init",
            kind=FragmentKind.INITIALIZATION,
            content=f"const {variable} = {source.variable_name};",
            producing_node_id=node.id,
            metadata={"exports": variable},
        )
    ]


@converter("broken")
def _broken(node, context):
    raise RuntimeError("converter bug")


def _custom_registry():
    registry = ConverterRegistry()
    for item in (_silent, _echo, _broken):
        registry.register(item.type_name, item)
    return registry


def test_node_without_registration_gets_default_name():
    result = compile_flow(
        _graph(
            _node("c", "echo", {"source": _ref("p-1")}),
            _node("p-1", "silent"),
        ),
        registry=_custom_registry(),
    )

    assert _source(result) == "const c = p_1;\n"
    assert result.order == ["p-1", "c"]


def test_converter_exceptions_propagate():
    pipeline = CompilePipeline(
        registry=_custom_registry(),
        options=GenerationOptions(target_language="typescript"),
    )

    with pytest.raises(RuntimeError, match="converter bug"):
        pipeline.run(_graph(_node("x", "broken")))
