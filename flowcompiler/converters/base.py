"""Converter interface shared by all node-type converters.

A converter turns one IR node into code fragments. Converters are
stateless: everything request-specific arrives through the
``GenerationContext`` argument.
"""
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional, Sequence

from flowcompiler.compiler.context import GenerationContext, GenerationOptions
from flowcompiler.models.fragments import CodeFragment, FragmentKind
from flowcompiler.models.ir import IRNode


# Default priorities inside one node's output
IMPORT_PRIORITY = 0
DECLARATION_PRIORITY = 50
INITIALIZATION_PRIORITY = 100

# Joins node id and suffix in fragment ids. Suffixes never contain it, so two
# nodes can never produce the same fragment id.
FRAGMENT_ID_SEPARATOR = "#"


def fragment_id(node_id: str, suffix: str) -> str:
    """Fragment id for one of a node's fragments, e.g. ``llm#init``."""
    return f"{node_id}{FRAGMENT_ID_SEPARATOR}{suffix}"


class BaseConverter(ABC):
    """Abstract base class for node converters."""

    type_name: str = ""
    category: str = "general"
    deprecated: bool = False
    replacement_type: Optional[str] = None

    def can_handle(self, node: IRNode) -> bool:
        """Extra guard beyond the type match (parameter shape, etc.)."""
        return True

    def required_dependencies(self, context: GenerationContext) -> list[str]:
        """Target-language packages the generated code needs."""
        return []

    def reserved_identifiers(self, options: GenerationOptions) -> set[str]:
        """Names the generated code imports, which node variables must avoid."""
        return set()

    @abstractmethod
    def convert(self, node: IRNode, context: GenerationContext) -> list[CodeFragment]:
        """Generate fragments for one node."""
        pass

    # ------------------------------------------------------------------
    # Fragment helpers
    # ------------------------------------------------------------------

    def variable_name(self, node: IRNode, context: GenerationContext, suffix: str = "") -> str:
        """Identifier derived from the node id, unique per compilation."""
        raw = f"{node.id}_{suffix}" if suffix else node.id
        return context.allocate_name(context.formatter.identifier(raw), key=suffix)

    def import_fragment(
        self,
        node: IRNode,
        package: str,
        symbols: Sequence[str],
        context: GenerationContext,
        type_only: bool = False,
        default: Optional[str] = None,
        distribution: Optional[str] = None,
        external: bool = True,
        suffix: str = "import",
    ) -> CodeFragment:
        """Structured import fragment the assembler can merge."""
        return CodeFragment(
            id=fragment_id(node.id, suffix),
            kind=FragmentKind.IMPORT,
            content=context.formatter.format_import(package, symbols, type_only, default),
            depends_on=frozenset({distribution or package}) if external else frozenset(),
            producing_node_id=node.id,
            priority=IMPORT_PRIORITY,
            metadata={
                "package": package,
                "symbols": list(symbols),
                "type_only": type_only,
                "default": default,
            },
        )

    def code_fragment(
        self,
        node: IRNode,
        kind: FragmentKind,
        content: str,
        suffix: str,
        exports: Optional[str] = None,
        depends_on: Iterable[str] = (),
        priority: Optional[int] = None,
        **metadata: Any,
    ) -> CodeFragment:
        """Declaration or initialization fragment for a node."""
        if priority is None:
            priority = (
                DECLARATION_PRIORITY if kind == FragmentKind.DECLARATION else INITIALIZATION_PRIORITY
            )
        if exports:
            metadata["exports"] = exports
        return CodeFragment(
            id=fragment_id(node.id, suffix),
            kind=kind,
            content=content,
            depends_on=frozenset(depends_on),
            producing_node_id=node.id,
            priority=priority,
            metadata={"category": self.category, **metadata},
        )

    def env_fragments(
        self,
        node: IRNode,
        variables: Sequence[str],
        context: GenerationContext,
    ) -> list[CodeFragment]:
        """Support fragments for code that reads environment variables."""
        if not variables or context.options.target_language != "python":
            return []
        return [
            self.import_fragment(
                node, "os", [], context, default="os", external=False, suffix="env_import",
            )
        ]


class FunctionConverter(BaseConverter):
    """Adapter turning a plain function into a converter."""

    def __init__(
        self,
        func: Callable[[IRNode, GenerationContext], list[CodeFragment]],
        type_name: str,
        category: str = "general",
        dependencies: Optional[Callable[[GenerationContext], list[str]]] = None,
        can_handle: Optional[Callable[[IRNode], bool]] = None,
        deprecated: bool = False,
        replacement_type: Optional[str] = None,
    ):
        self.func = func
        self.type_name = type_name
        self.category = category
        self.deprecated = deprecated
        self.replacement_type = replacement_type
        self._dependencies = dependencies
        self._can_handle = can_handle

    def can_handle(self, node: IRNode) -> bool:
        if self._can_handle is None:
            return True
        return self._can_handle(node)

    def required_dependencies(self, context: GenerationContext) -> list[str]:
        if self._dependencies is None:
            return []
        return list(self._dependencies(context))

    def convert(self, node: IRNode, context: GenerationContext) -> list[CodeFragment]:
        return self.func(node, context)

    def __repr__(self) -> str:
        return f"FunctionConverter({self.type_name!r}, {self.func.__name__})"


def converter(
    type_name: str,
    category: str = "general",
    **kwargs: Any,
) -> Callable[[Callable], FunctionConverter]:
    """Decorator declaring a function as the converter for a node type.

    Example:
        @converter("echoTool", category="tool")
        def convert_echo(node, context):
            ...
    """
    def wrap(func: Callable) -> FunctionConverter:
        return FunctionConverter(func, type_name, category=category, **kwargs)

    return wrap
