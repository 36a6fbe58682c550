"""Target-library symbols shared by the built-in converters.

Every symbol the generated code imports is declared once here, per target
language, together with the package that provides it and the distribution
to list in the dependency manifest.
"""
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from flowcompiler.compiler.context import GenerationContext, GenerationOptions, ResolvedReference
from flowcompiler.converters.base import BaseConverter
from flowcompiler.models.fragments import CodeFragment, FragmentKind
from flowcompiler.models.ir import IRNode


@dataclass(frozen=True)
class Symbol:
    """An importable name in one target language."""

    name: str
    package: str
    distribution: Optional[str] = None
    type_only: bool = False

    @property
    def requirement(self) -> str:
        return self.distribution or self.package


LIBRARY: dict[str, dict[str, Symbol]] = {
    # Chat and completion models
    "chat_openai": {
        "typescript": Symbol("ChatOpenAI", "@langchain/openai"),
        "python": Symbol("ChatOpenAI", "langchain_openai", "langchain-openai"),
    },
    "openai_llm": {
        "typescript": Symbol("OpenAI", "@langchain/openai"),
        "python": Symbol("OpenAI", "langchain_openai", "langchain-openai"),
    },
    "chat_anthropic": {
        "typescript": Symbol("ChatAnthropic", "@langchain/anthropic"),
        "python": Symbol("ChatAnthropic", "langchain_anthropic", "langchain-anthropic"),
    },
    # Memory
    "buffer_memory": {
        "typescript": Symbol("BufferMemory", "langchain/memory", "langchain"),
        "python": Symbol("ConversationBufferMemory", "langchain.memory", "langchain"),
    },
    "buffer_window_memory": {
        "typescript": Symbol("BufferWindowMemory", "langchain/memory", "langchain"),
        "python": Symbol("ConversationBufferWindowMemory", "langchain.memory", "langchain"),
    },
    # Tools
    "calculator": {
        "typescript": Symbol("Calculator", "@langchain/community/tools/calculator", "@langchain/community"),
        "python": Symbol("tool", "langchain_core.tools", "langchain-core"),
    },
    "numexpr": {
        "python": Symbol("numexpr", "numexpr"),
    },
    "serpapi": {
        "typescript": Symbol("SerpAPI", "@langchain/community/tools/serpapi", "@langchain/community"),
        "python": Symbol("SerpAPIWrapper", "langchain_community.utilities", "langchain-community"),
    },
    "tool": {
        "python": Symbol("Tool", "langchain_core.tools", "langchain-core"),
    },
    "tool_interface": {
        "typescript": Symbol("StructuredToolInterface", "@langchain/core/tools", "@langchain/core", type_only=True),
    },
    # Prompts
    "prompt_template": {
        "typescript": Symbol("PromptTemplate", "@langchain/core/prompts", "@langchain/core"),
        "python": Symbol("PromptTemplate", "langchain_core.prompts", "langchain-core"),
    },
    "chat_prompt_template": {
        "typescript": Symbol("ChatPromptTemplate", "@langchain/core/prompts", "@langchain/core"),
        "python": Symbol("ChatPromptTemplate", "langchain_core.prompts", "langchain-core"),
    },
    # Chains and agents
    "llm_chain": {
        "typescript": Symbol("LLMChain", "langchain/chains", "langchain"),
        "python": Symbol("LLMChain", "langchain.chains", "langchain"),
    },
    "conversation_chain": {
        "typescript": Symbol("ConversationChain", "langchain/chains", "langchain"),
        "python": Symbol("ConversationChain", "langchain.chains", "langchain"),
    },
    "create_tool_calling_agent": {
        "typescript": Symbol("createToolCallingAgent", "langchain/agents", "langchain"),
        "python": Symbol("create_tool_calling_agent", "langchain.agents", "langchain"),
    },
    "agent_executor": {
        "typescript": Symbol("AgentExecutor", "langchain/agents", "langchain"),
        "python": Symbol("AgentExecutor", "langchain.agents", "langchain"),
    },
    "runnable_sequence": {
        "typescript": Symbol("RunnableSequence", "@langchain/core/runnables", "@langchain/core"),
        "python": Symbol("RunnableSequence", "langchain_core.runnables", "langchain-core"),
    },
}

# Packages every generated LangChain program needs
CORE_DEPENDENCIES = {
    "typescript": ["@langchain/core"],
    "python": ["langchain-core"],
}


def get_symbol(key: str, language: str) -> Optional[Symbol]:
    return LIBRARY.get(key, {}).get(language)


class LibraryConverter(BaseConverter):
    """Converter emitting code against the LangChain libraries."""

    # LIBRARY keys this converter imports
    symbols: tuple[str, ...] = ()

    def required_dependencies(self, context: GenerationContext) -> list[str]:
        language = context.options.target_language
        requirements = list(CORE_DEPENDENCIES.get(language, []))
        for key in self.symbols:
            symbol = get_symbol(key, language)
            if symbol and symbol.requirement not in requirements:
                requirements.append(symbol.requirement)
        return requirements

    def reserved_identifiers(self, options: GenerationOptions) -> set[str]:
        names = set()
        for key in self.symbols:
            symbol = get_symbol(key, options.target_language)
            if symbol is not None:
                names.add(symbol.name)
        if options.target_language == "python":
            # Environment variables are read through ``os``
            names.add("os")
        return names

    def import_symbols(
        self,
        node: IRNode,
        context: GenerationContext,
        keys: Optional[Iterable[str]] = None,
    ) -> tuple[list[CodeFragment], dict[str, str]]:
        """Import fragments for library symbols, one per package.

        Returns:
            The fragments and a mapping of library key to imported name.
        """
        language = context.options.target_language
        by_package: dict[tuple[str, bool], list[Symbol]] = {}
        names: dict[str, str] = {}
        for key in self.symbols if keys is None else keys:
            symbol = get_symbol(key, language)
            if symbol is None:
                continue
            names[key] = symbol.name
            by_package.setdefault((symbol.package, symbol.type_only), []).append(symbol)

        fragments = []
        for index, ((package, type_only), symbols) in enumerate(by_package.items()):
            if len(symbols) == 1 and symbols[0].name == package:
                # Whole-module import, e.g. Python's ``import numexpr``
                names_arg, default = [], package
            else:
                names_arg, default = [s.name for s in symbols], None
            fragments.append(self.import_fragment(
                node,
                package,
                names_arg,
                context,
                type_only=type_only,
                default=default,
                distribution=symbols[0].distribution,
                suffix="import" if index == 0 else f"import_{index}",
            ))
        return fragments, names

    def render_parameters(
        self,
        node: IRNode,
        context: GenerationContext,
        mapping: dict[str, tuple[str, str]],
    ) -> dict[str, str]:
        """Render node parameters as constructor keyword arguments.

        Args:
            mapping: parameter name -> (TypeScript key, Python key).
        """
        python = context.options.target_language == "python"
        kwargs = {}
        for parameter, (ts_key, py_key) in mapping.items():
            value = node.get_parameter(parameter)
            if value is None or value == "":
                continue
            kwargs[py_key if python else ts_key] = context.formatter.literal(value)
        return kwargs

    def reference_ids(self, *references: Optional[ResolvedReference]) -> set[str]:
        """Fragment ids behind resolved references (for rename patching)."""
        return {
            reference.fragment_id for reference in references
            if reference is not None and reference.fragment_id
        }

    def initialization(
        self,
        node: IRNode,
        context: GenerationContext,
        variable: str,
        expression: str,
        depends_on: Iterable[str] = (),
        env: Iterable[str] = (),
        **metadata: Any,
    ) -> CodeFragment:
        """Initialization fragment binding ``variable`` to ``expression``."""
        content = context.formatter.declare(variable, expression)
        if context.options.include_comments:
            label = node.label or node.type
            content = context.formatter.comment(f"{label} ({node.id})") + "\n" + content
        env = list(env)
        if env:
            metadata["env"] = env
        return self.code_fragment(
            node,
            FragmentKind.INITIALIZATION,
            content,
            suffix="init",
            exports=variable,
            depends_on=depends_on,
            **metadata,
        )
