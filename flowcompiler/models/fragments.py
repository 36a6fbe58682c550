"""Generated-code fragments and compilation results."""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class FragmentKind(str, Enum):
    """Structural kind of a generated fragment."""
    IMPORT = "import"
    DECLARATION = "declaration"
    INITIALIZATION = "initialization"


# Position of each kind inside a single node's output
KIND_RANK = {
    FragmentKind.IMPORT: 0,
    FragmentKind.DECLARATION: 1,
    FragmentKind.INITIALIZATION: 2,
}


class CodeFragment(BaseModel):
    """One immutable piece of generated source text.

    Import fragments describe what they import through metadata
    (``package``, ``symbols``, optionally ``type_only`` and ``default``)
    so the assembler can merge them independently of the target syntax.
    Fragments that define an identifier list it under ``exports``.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Unique fragment identifier")
    kind: FragmentKind = Field(..., description="import, declaration or initialization")
    content: str = Field("", description="Target-language source text")
    depends_on: frozenset[str] = Field(
        default_factory=frozenset,
        description="Package names and/or other fragment ids",
    )
    producing_node_id: Optional[str] = Field(None, description="Node that produced it")
    priority: int = Field(0, description="Tie-break within the producing node")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def exports(self) -> Optional[str]:
        """Identifier defined by this fragment, if any."""
        return self.metadata.get("exports")

    @property
    def package(self) -> Optional[str]:
        return self.metadata.get("package")


class CompileWarning(BaseModel):
    """Non-fatal finding reported alongside a successful result."""

    code: str = Field(..., description="Warning kind, e.g. DeprecatedNodeTypeUsed")
    message: str
    node_ids: list[str] = Field(default_factory=list)
    type_name: Optional[str] = None
    replacement_type: Optional[str] = None


class GeneratedFile(BaseModel):
    """One output file."""

    path: str
    content: str


class IdentifierRename(BaseModel):
    """Identifier renamed to resolve a collision."""

    node_id: Optional[str] = None
    fragment_id: Optional[str] = Field(None, description="Fragment defining the new name")
    old_name: str
    new_name: str


class CompileResult(BaseModel):
    """Successful output of one flow compilation."""

    files: list[GeneratedFile] = Field(default_factory=list)
    warnings: list[CompileWarning] = Field(default_factory=list)
    dependencies: list[str] = Field(
        default_factory=list,
        description="Target-language packages the generated code needs",
    )
    order: list[str] = Field(
        default_factory=list,
        description="Node initialization order used for emission",
    )
    renames: list[IdentifierRename] = Field(
        default_factory=list,
        description="Identifiers renamed to avoid collisions",
    )

    def get_file(self, path: str) -> Optional[GeneratedFile]:
        """Get an output file by path."""
        for generated in self.files:
            if generated.path == path:
                return generated
        return None
