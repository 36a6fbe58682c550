"""Per-language formatting strategies.

All target-syntax decisions (import statements, quoting, declarations,
dependency manifests) live here so that the assembler and the converters
stay language-agnostic.
"""
import json
import keyword
import re
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from flowcompiler.models.fragments import GeneratedFile


_IDENTIFIER_CHARS = re.compile(r"[^A-Za-z0-9_]")

# ECMAScript reserved words, strict-mode restrictions and TypeScript keywords
# that cannot name a variable
TYPESCRIPT_RESERVED = frozenset({
    "arguments", "await", "break", "case", "catch", "class", "const", "continue",
    "debugger", "default", "delete", "do", "else", "enum", "eval", "export",
    "extends", "false", "finally", "for", "function", "if", "implements", "import",
    "in", "instanceof", "interface", "let", "new", "null", "package", "private",
    "protected", "public", "return", "static", "super", "switch", "this", "throw",
    "true", "try", "typeof", "undefined", "var", "void", "while", "with", "yield",
})


class LanguageFormatter(ABC):
    """Formatting strategy for one target language."""

    name: str = ""
    file_extension: str = ""
    # True when value and type-only imports must be emitted separately
    separates_type_imports: bool = False
    # Words that cannot be used as identifiers
    reserved_words: frozenset[str] = frozenset()

    @abstractmethod
    def format_import(
        self,
        package: str,
        symbols: Sequence[str],
        type_only: bool = False,
        default: Optional[str] = None,
    ) -> str:
        """Render one import statement."""

    @abstractmethod
    def literal(self, value: Any) -> str:
        """Render a Python value as a target-language literal."""

    @abstractmethod
    def declare(self, name: str, expression: str) -> str:
        """Bind an expression to a new identifier."""

    @abstractmethod
    def construct(self, class_name: str, kwargs: dict[str, str], awaited: bool = False) -> str:
        """Build an object from rendered keyword arguments."""

    @abstractmethod
    def array(self, items: Sequence[str]) -> str:
        pass

    @abstractmethod
    def comment(self, text: str) -> str:
        pass

    @abstractmethod
    def env(self, variable: str) -> str:
        """Expression reading an environment variable."""

    @abstractmethod
    def manifest(self, dependencies: Sequence[str], project_name: str) -> GeneratedFile:
        """Dependency manifest for the generated project."""

    def identifier(self, raw: str) -> str:
        """Sanitize a node id or label into a valid identifier.

        Reserved words get a trailing underscore (``class`` -> ``class_``).
        """
        name = self._sanitize(raw)
        if name in self.reserved_words:
            name = f"{name}_"
        return name

    def _sanitize(self, raw: str) -> str:
        name = _IDENTIFIER_CHARS.sub("_", raw.strip())
        name = re.sub(r"_+", "_", name).strip("_")
        if not name:
            name = "node"
        if name[0].isdigit():
            name = f"n_{name}"
        return name


class TypeScriptFormatter(LanguageFormatter):
    """TypeScript / ESM output."""

    name = "typescript"
    file_extension = "ts"
    separates_type_imports = True
    reserved_words = TYPESCRIPT_RESERVED

    def __init__(self, output_style: str = "esm"):
        self.output_style = output_style

    def format_import(self, package, symbols, type_only=False, default=None):
        if self.output_style == "cjs" and not type_only:
            names = list(symbols)
            if default and not names:
                return f"const {default} = require('{package}');"
            binding = "{ " + ", ".join(names) + " }" if names else default or ""
            if not binding:
                return f"require('{package}');"
            return f"const {binding} = require('{package}');"

        parts = []
        if default:
            parts.append(default)
        if symbols:
            parts.append("{ " + ", ".join(symbols) + " }")
        keyword = "import type" if type_only else "import"
        if not parts:
            return f"import '{package}';"
        return f"{keyword} {', '.join(parts)} from '{package}';"

    def literal(self, value):
        if value is None:
            return "undefined"
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, (int, float)):
            return repr(value)
        if isinstance(value, str):
            return json.dumps(value)
        if isinstance(value, (list, tuple)):
            return self.array([self.literal(item) for item in value])
        if isinstance(value, dict):
            entries = ", ".join(
                f"{self._key(str(key))}: {self.literal(item)}" for key, item in value.items()
            )
            return "{ " + entries + " }" if entries else "{}"
        return json.dumps(str(value))

    def _key(self, key: str) -> str:
        if re.fullmatch(r"[A-Za-z_$][A-Za-z0-9_$]*", key):
            return key
        return json.dumps(key)

    def declare(self, name, expression):
        return f"const {name} = {expression};"

    def construct(self, class_name, kwargs, awaited=False):
        prefix = "await " if awaited else ""
        if not kwargs:
            return f"{prefix}new {class_name}()"
        body = ",\n".join(f"  {self._key(key)}: {value}" for key, value in kwargs.items())
        return f"{prefix}new {class_name}({{\n{body}\n}})"

    def array(self, items):
        return "[" + ", ".join(items) + "]"

    def comment(self, text):
        return "\n".join(f"// {line}" for line in text.splitlines() or [""])

    def env(self, variable):
        return f"process.env.{variable}"

    def manifest(self, dependencies, project_name):
        package = {
            "name": project_name,
            "version": "1.0.0",
            "private": True,
            "type": "module" if self.output_style == "esm" else "commonjs",
            "main": "index.ts",
            "dependencies": {dep: "latest" for dep in sorted(dependencies)},
        }
        return GeneratedFile(path="package.json", content=json.dumps(package, indent=2) + "\n")


class PythonFormatter(LanguageFormatter):
    """Python module output."""

    name = "python"
    file_extension = "py"
    separates_type_imports = False
    reserved_words = frozenset(keyword.kwlist)

    def format_import(self, package, symbols, type_only=False, default=None):
        lines = []
        if default:
            lines.append(f"import {package} as {default}" if default != package else f"import {package}")
        if symbols:
            lines.append(f"from {package} import {', '.join(symbols)}")
        if not lines:
            lines.append(f"import {package}")
        return "\n".join(lines)

    def literal(self, value):
        if isinstance(value, str):
            return json.dumps(value)
        if isinstance(value, (list, tuple)):
            return self.array([self.literal(item) for item in value])
        if isinstance(value, dict):
            entries = ", ".join(
                f"{json.dumps(str(key))}: {self.literal(item)}" for key, item in value.items()
            )
            return "{" + entries + "}"
        # None, bool, int and float share Python's repr
        return repr(value)

    def declare(self, name, expression):
        return f"{name} = {expression}"

    def construct(self, class_name, kwargs, awaited=False):
        prefix = "await " if awaited else ""
        if not kwargs:
            return f"{prefix}{class_name}()"
        body = ",\n".join(f"    {key}={value}" for key, value in kwargs.items())
        return f"{prefix}{class_name}(\n{body},\n)"

    def array(self, items):
        return "[" + ", ".join(items) + "]"

    def comment(self, text):
        return "\n".join(f"# {line}" for line in text.splitlines() or [""])

    def env(self, variable):
        return f'os.environ["{variable}"]'

    def manifest(self, dependencies, project_name):
        content = "".join(f"{dep}\n" for dep in sorted(dependencies))
        return GeneratedFile(path="requirements.txt", content=content)

    def _sanitize(self, raw):
        return super()._sanitize(raw).lower()


FORMATTERS: dict[str, type[LanguageFormatter]] = {
    "typescript": TypeScriptFormatter,
    "python": PythonFormatter,
}


def get_formatter(language: str, output_style: str = "esm") -> LanguageFormatter:
    """Get a formatter instance for a target language."""
    if language not in FORMATTERS:
        raise ValueError(f"Unsupported target language: {language}")
    if language == "typescript":
        return TypeScriptFormatter(output_style=output_style)
    return FORMATTERS[language]()
