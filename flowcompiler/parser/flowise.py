"""Flowise export loader.

Flowise stores each node's configuration under ``data``:
- ``name`` is the node type, ``category`` and ``label`` describe it
- ``inputParams`` declares static parameters, ``inputAnchors`` declares
  ports fed by other nodes (``list: true`` marks a multi-valued port)
- ``inputs`` holds the configured values; a port connected to another
  node holds the string ``{{<nodeId>.data.instance}}``

Edge handles are anchor ids such as ``toolAgent_0-input-model-BaseChatModel``.
"""
import json
import re
from pathlib import Path
from typing import Any, Optional, Union

import structlog
from pydantic import ValidationError

from flowcompiler.errors import GraphValidationError
from flowcompiler.models.ir import FlowGraph, validation_problems

logger = structlog.get_logger()

_INSTANCE_REFERENCE = re.compile(r"^\{\{\s*([^.{}\s]+)\.data\.instance\s*\}\}$")


def _reference_id(value: Any) -> Optional[str]:
    """Node id from a ``{{nodeId.data.instance}}`` string."""
    if not isinstance(value, str):
        return None
    match = _INSTANCE_REFERENCE.match(value.strip())
    return match.group(1) if match else None


def _port_name(handle: Optional[str], anchors: list[dict]) -> Optional[str]:
    """Port name for a target handle."""
    if not handle:
        return None
    for anchor in anchors:
        if anchor.get("id") == handle:
            return anchor.get("name")
    if "-input-" in handle:
        return handle.split("-input-", 1)[1].split("-", 1)[0]
    return handle


def _source_port(handle: Optional[str]) -> str:
    if handle and "-output-" in handle:
        return handle.split("-output-", 1)[1].split("-", 1)[0]
    return handle or "output"


def _parse_node(raw: dict, incoming: dict[str, list[str]]) -> dict:
    """IR node dict for one Flowise node.

    Args:
        raw: Flowise node.
        incoming: Port name -> source node ids of the edges feeding it.
    """
    data = raw.get("data") or {}
    node_id = raw.get("id") or data.get("id") or ""
    values: dict = data.get("inputs") or {}
    anchors: list[dict] = data.get("inputAnchors") or []
    anchor_names = {anchor.get("name") for anchor in anchors}

    inputs: dict[str, dict] = {}
    for anchor in anchors:
        port = anchor.get("name")
        if not port:
            continue
        value = values.get(port)
        if anchor.get("list"):
            items = value if isinstance(value, list) else ([value] if value else [])
            node_ids = [ref for ref in map(_reference_id, items) if ref]
            if not node_ids:
                node_ids = list(incoming.get(port, []))
            if node_ids:
                inputs[port] = {"kind": "refs", "node_ids": node_ids}
            continue

        ref = _reference_id(value)
        if ref is None and incoming.get(port):
            ref = incoming[port][0]
        if ref is not None:
            inputs[port] = {"kind": "ref", "node_id": ref}

    parameters = []
    declared = set()
    for param in data.get("inputParams") or []:
        name = param.get("name")
        if not name:
            continue
        declared.add(name)
        parameters.append({
            "name": name,
            "value": values.get(name, param.get("default")),
            "type": param.get("type", "string"),
        })

    for name, value in values.items():
        if name in declared or name in anchor_names:
            continue
        ref = _reference_id(value)
        if ref is not None:
            inputs[name] = {"kind": "ref", "node_id": ref}
        else:
            parameters.append({"name": name, "value": value, "type": "string"})

    return {
        "id": node_id,
        "type": data.get("name") or data.get("type") or "",
        "category": data.get("category") or "general",
        "label": data.get("label"),
        "parameters": parameters,
        "inputs": inputs,
    }


def parse_flowise_export(data: Union[dict, str]) -> FlowGraph:
    """Convert a Flowise chatflow/agentflow export into a FlowGraph.

    Args:
        data: Parsed export, or its JSON text.

    Raises:
        GraphValidationError: if the export is malformed.
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise GraphValidationError([f"Invalid JSON: {exc.msg}"]) from exc
    if not isinstance(data, dict):
        raise GraphValidationError(["Flowise export must be a JSON object"])

    raw_nodes = data.get("nodes") or []
    raw_edges = data.get("edges") or []
    anchors_by_node = {
        node.get("id"): (node.get("data") or {}).get("inputAnchors") or []
        for node in raw_nodes
    }

    edges = []
    incoming: dict[str, dict[str, list[str]]] = {}
    for raw in raw_edges:
        target = raw.get("target", "")
        port = _port_name(raw.get("targetHandle"), anchors_by_node.get(target, [])) or "input"
        edges.append({
            "id": raw.get("id"),
            "source": raw.get("source", ""),
            "target": target,
            "source_handle": _source_port(raw.get("sourceHandle")),
            "target_handle": port,
        })
        incoming.setdefault(target, {}).setdefault(port, []).append(raw.get("source", ""))

    nodes = [_parse_node(raw, incoming.get(raw.get("id"), {})) for raw in raw_nodes]
    chatflow = data.get("chatflow") or {}

    try:
        graph = FlowGraph.model_validate({
            "name": data.get("name") or chatflow.get("name") or "flow",
            "description": data.get("description") or chatflow.get("description"),
            "nodes": nodes,
            "edges": edges,
            "metadata": {"source": "flowise"},
        })
    except ValidationError as exc:
        raise GraphValidationError(validation_problems(exc)) from exc

    logger.info("flowise_export_parsed", nodes=len(graph.nodes), edges=len(graph.edges))
    return graph


def load_flowise_file(path: Union[str, Path]) -> FlowGraph:
    """Read and parse a Flowise export file."""
    text = Path(path).read_text(encoding="utf-8")
    return parse_flowise_export(text)
