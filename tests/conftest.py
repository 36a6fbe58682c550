"""Shared fixtures."""
import copy

import pytest


SAMPLE_EXPORT = {
    "name": "Math Agent",
    "nodes": [
        {
            "id": "toolAgent_0",
            "data": {
                "id": "toolAgent_0",
                "name": "toolAgent",
                "label": "Tool Agent",
                "category": "Agents",
                "inputAnchors": [
                    {"id": "toolAgent_0-input-tools-Tool", "name": "tools", "list": True},
                    {"id": "toolAgent_0-input-memory-BaseChatMemory", "name": "memory"},
                    {"id": "toolAgent_0-input-model-BaseChatModel", "name": "model"},
                ],
                "inputParams": [
                    {"name": "systemMessage", "type": "string", "default": "You are a helpful AI assistant."},
                    {"name": "maxIterations", "type": "number"},
                ],
                "inputs": {
                    "tools": ["{{calculator_0.data.instance}}"],
                    "memory": "{{bufferMemory_0.data.instance}}",
                    "model": "",
                    "maxIterations": 5,
                },
            },
        },
        {
            "id": "chatOpenAI_0",
            "data": {
                "id": "chatOpenAI_0",
                "name": "chatOpenAI",
                "label": "ChatOpenAI",
                "category": "Chat Models",
                "inputParams": [
                    {"name": "modelName", "type": "options", "default": "gpt-3.5-turbo"},
                    {"name": "temperature", "type": "number", "default": 0.9},
                ],
                "inputs": {"modelName": "gpt-4o"},
            },
        },
        {
            "id": "calculator_0",
            "data": {"id": "calculator_0", "name": "calculator", "category": "Tools", "inputs": {}},
        },
        {
            "id": "bufferMemory_0",
            "data": {
                "id": "bufferMemory_0",
                "name": "bufferMemory",
                "category": "Memory",
                "inputs": {"memoryKey": "chat_history"},
            },
        },
    ],
    "edges": [
        {
            "id": "e1",
            "source": "chatOpenAI_0",
            "sourceHandle": "chatOpenAI_0-output-chatOpenAI-ChatOpenAI|BaseChatModel",
            "target": "toolAgent_0",
            "targetHandle": "toolAgent_0-input-model-BaseChatModel",
        },
        {
            "id": "e2",
            "source": "calculator_0",
            "sourceHandle": "calculator_0-output-calculator-Calculator|Tool",
            "target": "toolAgent_0",
            "targetHandle": "toolAgent_0-input-tools-Tool",
        },
        {
            "id": "e3",
            "source": "bufferMemory_0",
            "sourceHandle": "bufferMemory_0-output-bufferMemory-BufferMemory",
            "target": "toolAgent_0",
            "targetHandle": "toolAgent_0-input-memory-BaseChatMemory",
        },
    ],
}


@pytest.fixture
def flowise_export():
    """Flowise tool-agent export: model, calculator and buffer memory."""
    return copy.deepcopy(SAMPLE_EXPORT)
