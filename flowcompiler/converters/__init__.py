"""Built-in node converters."""
from flowcompiler.converters.base import (
    BaseConverter,
    FunctionConverter,
    converter,
    fragment_id,
)
from flowcompiler.converters.agents import SubflowConverter, ToolAgentConverter
from flowcompiler.converters.chains import (
    ConversationChainConverter,
    LLMChainConverter,
    PromptTemplateConverter,
)
from flowcompiler.converters.llm import (
    ChatAnthropicConverter,
    ChatOpenAIConverter,
    OpenAIConverter,
)
from flowcompiler.converters.memory import BufferMemoryConverter, BufferWindowMemoryConverter
from flowcompiler.converters.tools import CalculatorConverter, SerpAPIConverter

BUILTIN_CONVERTERS = [
    ChatOpenAIConverter,
    ChatAnthropicConverter,
    OpenAIConverter,
    BufferMemoryConverter,
    BufferWindowMemoryConverter,
    CalculatorConverter,
    SerpAPIConverter,
    PromptTemplateConverter,
    LLMChainConverter,
    ConversationChainConverter,
    ToolAgentConverter,
    SubflowConverter,
]

# alias -> canonical type
BUILTIN_ALIASES = {
    "openAIChat": "chatOpenAI",
    "gpt": "chatOpenAI",
    "anthropicChat": "chatAnthropic",
}


def register_builtin_converters(registry) -> None:
    """Register every built-in converter and alias."""
    for converter_class in BUILTIN_CONVERTERS:
        instance = converter_class()
        registry.register(instance.type_name, instance)
    for alias, canonical in BUILTIN_ALIASES.items():
        registry.register_alias(alias, canonical)


__all__ = [
    "BaseConverter",
    "FunctionConverter",
    "converter",
    "fragment_id",
    "BUILTIN_CONVERTERS",
    "BUILTIN_ALIASES",
    "register_builtin_converters",
]
