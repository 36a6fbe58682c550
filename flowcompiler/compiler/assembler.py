"""Fragment Assembler - merges converter output into source files.

The assembler handles:
- Merging import fragments per package and de-duplicating symbols
- Ordering declarations and initializations by node initialization order
- Renaming colliding exported identifiers
- Laying the result out as one file or a small project
"""
import re
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

import structlog

from flowcompiler.compiler.context import GenerationOptions
from flowcompiler.compiler.formatters import LanguageFormatter
from flowcompiler.config import get_settings
from flowcompiler.errors import FragmentCollision
from flowcompiler.models.fragments import (
    KIND_RANK,
    CodeFragment,
    FragmentKind,
    GeneratedFile,
    IdentifierRename,
)

logger = structlog.get_logger()


@dataclass
class AssembledCode:
    """Language-specific code before it is laid out into files."""

    import_block: str
    body: str
    dependencies: list[str] = field(default_factory=list)
    env_vars: list[str] = field(default_factory=list)
    renames: list[IdentifierRename] = field(default_factory=list)

    def render(self) -> str:
        """Imports, a blank line, then the body."""
        sections = [section for section in (self.import_block, self.body) if section]
        return "\n\n".join(sections) + "\n" if sections else ""


@dataclass
class _MergedImport:
    package: str
    type_only: bool
    symbols: list[str] = field(default_factory=list)
    default: Optional[str] = None


class FragmentAssembler:
    """Combines fragments from every node into one unit of code."""

    def __init__(self, formatter: LanguageFormatter):
        self.formatter = formatter

    def assemble(self, fragments: Sequence[CodeFragment], order: Sequence[str]) -> AssembledCode:
        """Assemble fragments following a node initialization order.

        Args:
            fragments: All fragments of the compilation, in generation order.
            order: Node ids in initialization order.

        Raises:
            FragmentCollision: on duplicate fragment ids, or when an exported
                identifier clash cannot be resolved by renaming.
        """
        self._check_unique_ids(fragments)

        imports = [f for f in fragments if f.kind == FragmentKind.IMPORT]
        body = self._order_body(
            [f for f in fragments if f.kind != FragmentKind.IMPORT],
            order,
        )

        merged = self._merge_imports(imports)
        reserved = set()
        for entry in merged:
            reserved.update(entry.symbols)
            if entry.default:
                reserved.add(entry.default)

        body, renames = self._resolve_collisions(body, reserved)

        import_lines = [
            self.formatter.format_import(entry.package, entry.symbols, entry.type_only, entry.default)
            for entry in merged
        ]
        import_lines.extend(self._raw_imports(imports))

        assembled = AssembledCode(
            import_block="\n".join(import_lines),
            body="\n\n".join(f.content for f in body if f.content),
            dependencies=self._collect_dependencies(imports),
            env_vars=self._collect_env(fragments),
            renames=renames,
        )
        logger.debug(
            "fragments_assembled",
            imports=len(import_lines),
            body_fragments=len(body),
            renames=len(renames),
        )
        return assembled

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------

    def _merge_imports(self, imports: Iterable[CodeFragment]) -> list[_MergedImport]:
        """Group structured imports by package, merging symbols first-seen."""
        merged: dict[tuple[str, bool], _MergedImport] = {}
        for fragment in imports:
            package = fragment.package
            if not package:
                continue
            type_only = bool(fragment.metadata.get("type_only")) and self.formatter.separates_type_imports
            key = (package, type_only)
            entry = merged.get(key)
            if entry is None:
                entry = merged[key] = _MergedImport(package=package, type_only=type_only)
            for symbol in fragment.metadata.get("symbols", []):
                if symbol not in entry.symbols:
                    entry.symbols.append(symbol)
            if entry.default is None:
                entry.default = fragment.metadata.get("default")

        # A symbol imported as a value needs no separate type import
        for (package, type_only), entry in merged.items():
            if type_only and (package, False) in merged:
                values = merged[(package, False)].symbols
                entry.symbols = [symbol for symbol in entry.symbols if symbol not in values]

        return [
            merged[key] for key in sorted(merged)
            if merged[key].symbols or merged[key].default or not key[1]
        ]

    def _raw_imports(self, imports: Iterable[CodeFragment]) -> list[str]:
        """Unstructured import fragments, de-duplicated by content."""
        seen: list[str] = []
        for fragment in imports:
            if fragment.package:
                continue
            content = fragment.content.strip()
            if content and content not in seen:
                seen.append(content)
        return seen

    def _collect_dependencies(self, imports: Iterable[CodeFragment]) -> list[str]:
        dependencies = set()
        for fragment in imports:
            dependencies.update(fragment.depends_on)
        return sorted(dependencies)

    def _collect_env(self, fragments: Iterable[CodeFragment]) -> list[str]:
        env_vars: list[str] = []
        for fragment in fragments:
            for variable in fragment.metadata.get("env", []):
                if variable not in env_vars:
                    env_vars.append(variable)
        return env_vars

    # ------------------------------------------------------------------
    # Body
    # ------------------------------------------------------------------

    def _check_unique_ids(self, fragments: Iterable[CodeFragment]) -> None:
        seen: set[str] = set()
        for fragment in fragments:
            if fragment.id in seen:
                raise FragmentCollision(fragment.id, [fragment.id, fragment.id])
            seen.add(fragment.id)

    def _order_body(self, fragments: list[CodeFragment], order: Sequence[str]) -> list[CodeFragment]:
        position = {node_id: index for index, node_id in enumerate(order)}
        unplaced = len(order)

        def sort_key(item: tuple[int, CodeFragment]):
            sequence, fragment = item
            index = position.get(fragment.producing_node_id)
            if index is None:
                return (unplaced, 0, 0, sequence)
            return (index, KIND_RANK[fragment.kind], fragment.priority, sequence)

        return [fragment for _, fragment in sorted(enumerate(fragments), key=sort_key)]

    def _resolve_collisions(
        self,
        body: list[CodeFragment],
        reserved: set[str],
    ) -> tuple[list[CodeFragment], list[IdentifierRename]]:
        """Rename later exporters of an identifier that is already taken."""
        claimed: dict[str, CodeFragment] = {}
        taken = set(reserved)
        for fragment in body:
            if fragment.exports:
                taken.add(fragment.exports)

        renames: list[IdentifierRename] = []
        counters: dict[str, int] = {}
        for index in range(len(body)):
            fragment = body[index]
            name = fragment.exports
            if not name:
                continue
            owner = claimed.get(name)
            if owner is None and name not in reserved:
                claimed[name] = fragment
                continue

            node_id = fragment.producing_node_id
            if node_id is None or (owner is not None and owner.producing_node_id == node_id):
                raise FragmentCollision(
                    name, [owner.id if owner else name, fragment.id],
                )

            counter = counters.get(name, 0) + 1
            new_name = f"{name}_{counter}"
            while new_name in taken:
                counter += 1
                new_name = f"{name}_{counter}"
            counters[name] = counter
            taken.add(new_name)

            body = self._apply_rename(body, fragment.id, name, new_name)
            claimed[new_name] = body[index]
            renames.append(IdentifierRename(
                node_id=node_id,
                fragment_id=fragment.id,
                old_name=name,
                new_name=new_name,
            ))
            logger.info(
                "identifier_renamed",
                node_id=node_id,
                old_name=name,
                new_name=new_name,
            )

        exported = [f.exports for f in body if f.exports]
        for name in exported:
            if exported.count(name) > 1:
                raise FragmentCollision(
                    name, [f.id for f in body if f.exports == name],
                )
        return body, renames

    def _apply_rename(
        self,
        body: list[CodeFragment],
        defining_id: str,
        old_name: str,
        new_name: str,
    ) -> list[CodeFragment]:
        """Patch the defining fragment and the fragments depending on it.

        Only the definition itself is renamed inside the defining fragment;
        any other occurrence there refers to the identifier that keeps the
        name. Dependents reference the renamed definition throughout.
        """
        pattern = re.compile(rf"\b{re.escape(old_name)}\b")
        patched = []
        for fragment in body:
            if fragment.id == defining_id:
                metadata = {**fragment.metadata, "exports": new_name}
                content = self._substitute(fragment.content, pattern, new_name, first_only=True)
            elif defining_id in fragment.depends_on:
                metadata = fragment.metadata
                content = self._substitute(fragment.content, pattern, new_name)
            else:
                patched.append(fragment)
                continue
            patched.append(fragment.model_copy(update={"content": content, "metadata": metadata}))
        return patched

    def _substitute(
        self,
        content: str,
        pattern: re.Pattern,
        new_name: str,
        first_only: bool = False,
    ) -> str:
        """Replace identifier occurrences outside comment lines."""
        marker = self.formatter.comment("").strip()
        lines = content.split("\n")
        for index, line in enumerate(lines):
            if line.lstrip().startswith(marker):
                continue
            lines[index], count = pattern.subn(new_name, line, count=1 if first_only else 0)
            if first_only and count:
                break
        return "\n".join(lines)


# =============================================================================
# Layout policies
# =============================================================================

class SingleFileLayout:
    """Everything in one source file."""

    def __init__(self, path: Optional[str] = None):
        self.path = path

    def main_path(self, formatter: LanguageFormatter) -> str:
        if self.path:
            return self.path
        return f"{get_settings().main_file_stem}.{formatter.file_extension}"

    def layout(
        self,
        assembled: AssembledCode,
        formatter: LanguageFormatter,
        options: GenerationOptions,
    ) -> list[GeneratedFile]:
        return [GeneratedFile(path=self.main_path(formatter), content=assembled.render())]


class ProjectLayout(SingleFileLayout):
    """Main source file plus dependency manifest and env template."""

    def layout(self, assembled, formatter, options):
        files = super().layout(assembled, formatter, options)
        files.append(formatter.manifest(assembled.dependencies, options.project_name))
        if assembled.env_vars:
            content = "".join(f"{variable}=\n" for variable in assembled.env_vars)
            files.append(GeneratedFile(path=".env.example", content=content))
        return files


def get_layout(project_layout: Optional[bool] = None) -> SingleFileLayout:
    """Layout policy selected by settings unless given explicitly."""
    if project_layout is None:
        project_layout = get_settings().project_layout
    return ProjectLayout() if project_layout else SingleFileLayout()
