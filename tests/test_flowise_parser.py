"""Tests for the Flowise export loader."""
import json

import pytest

from flowcompiler.compiler.pipeline import compile_flow
from flowcompiler.errors import GraphValidationError
from flowcompiler.models.ir import NodeReference, NodeReferenceList
from flowcompiler.parser.flowise import load_flowise_file, parse_flowise_export


class TestParseFlowiseExport:
    """Export to IR conversion."""

    def test_graph_shape(self, flowise_export):
        graph = parse_flowise_export(flowise_export)

        assert graph.name == "Math Agent"
        assert graph.metadata == {"source": "flowise"}
        assert graph.declaration_order() == ["toolAgent_0", "chatOpenAI_0", "calculator_0", "bufferMemory_0"]
        assert len(graph.edges) == 3

    def test_instance_references_become_ports(self, flowise_export):
        agent = parse_flowise_export(flowise_export).get_node("toolAgent_0")

        assert agent.inputs["tools"] == NodeReferenceList(node_ids=["calculator_0"])
        assert agent.inputs["memory"] == NodeReference(node_id="bufferMemory_0")

    def test_empty_port_falls_back_to_edge(self, flowise_export):
        agent = parse_flowise_export(flowise_export).get_node("toolAgent_0")

        assert agent.inputs["model"] == NodeReference(node_id="chatOpenAI_0")

    def test_list_port_falls_back_to_edges(self, flowise_export):
        flowise_export["nodes"][0]["data"]["inputs"]["tools"] = []

        agent = parse_flowise_export(flowise_export).get_node("toolAgent_0")

        assert agent.inputs["tools"] == NodeReferenceList(node_ids=["calculator_0"])

    def test_parameters_use_declared_defaults(self, flowise_export):
        graph = parse_flowise_export(flowise_export)
        model = graph.get_node("chatOpenAI_0")
        agent = graph.get_node("toolAgent_0")

        assert model.type == "chatOpenAI"
        assert model.get_parameter("modelName") == "gpt-4o"
        assert model.get_parameter("temperature") == 0.9
        assert agent.get_parameter("systemMessage") == "You are a helpful AI assistant."
        assert agent.get_parameter("maxIterations") == 5

    def test_undeclared_inputs_become_parameters(self, flowise_export):
        memory = parse_flowise_export(flowise_export).get_node("bufferMemory_0")

        assert memory.get_parameter("memoryKey") == "chat_history"
        assert memory.inputs == {}

    def test_edge_handles_become_port_names(self, flowise_export):
        edge = parse_flowise_export(flowise_export).edges[0]

        assert edge.source_handle == "chatOpenAI"
        assert edge.target_handle == "model"

    def test_unknown_handle_parsed_from_anchor_format(self, flowise_export):
        flowise_export["edges"][0]["targetHandle"] = "toolAgent_0-input-llm-BaseLanguageModel"

        edge = parse_flowise_export(flowise_export).edges[0]

        assert edge.target_handle == "llm"

    def test_accepts_json_text(self, flowise_export):
        graph = parse_flowise_export(json.dumps(flowise_export))

        assert len(graph.nodes) == 4

    def test_chatflow_name_used_when_missing(self, flowise_export):
        del flowise_export["name"]
        flowise_export["chatflow"] = {"name": "Saved Flow"}

        assert parse_flowise_export(flowise_export).name == "Saved Flow"


class TestMalformedExports:

    def test_invalid_json(self):
        with pytest.raises(GraphValidationError) as exc_info:
            parse_flowise_export("{not json")

        assert exc_info.value.problems[0].startswith("Invalid JSON")

    def test_non_object(self):
        with pytest.raises(GraphValidationError):
            parse_flowise_export("[1, 2, 3]")

    def test_dangling_edge(self, flowise_export):
        flowise_export["edges"].append({"id": "e9", "source": "calculator_0", "target": "ghost"})

        with pytest.raises(GraphValidationError) as exc_info:
            parse_flowise_export(flowise_export)

        assert exc_info.value.problems == ["Edge 'e9' target 'ghost' not found"]


def test_load_flowise_file(tmp_path, flowise_export):
    path = tmp_path / "flow.json"
    path.write_text(json.dumps(flowise_export), encoding="utf-8")

    graph = load_flowise_file(path)

    assert graph.get_node("calculator_0").type == "calculator"


def test_flowise_export_compiles(flowise_export):
    result = compile_flow(parse_flowise_export(flowise_export))

    source = result.files[0].content
    assert result.order[-1] == "toolAgent_0"
    assert 'model: "gpt-4o"' in source
    assert "maxIterations: 5" in source
    assert "memory: bufferMemory_0" in source
    assert "const toolAgent_0_tools: StructuredToolInterface[] = [calculator_0];" in source
