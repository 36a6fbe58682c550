"""Converter Registry - maps node-type strings to converters.

The registry is populated once at start-up (built-ins plus plugins), then
frozen and shared read-only by every compilation in the process.
"""
from dataclasses import dataclass, field
from functools import lru_cache
from importlib.metadata import entry_points
from typing import Callable, Iterable, Optional

import structlog

from flowcompiler.config import get_settings
from flowcompiler.converters.base import BaseConverter
from flowcompiler.errors import RegistryError, UnsupportedNodeType
from flowcompiler.models.ir import IRNode

logger = structlog.get_logger()


@dataclass
class ConverterRegistration:
    """Registry entry for one canonical node type."""

    type_name: str
    converter: BaseConverter
    aliases: list[str] = field(default_factory=list)
    deprecated: bool = False
    replacement_type: Optional[str] = None
    # Specialised converters for the same type, tried before the primary
    variants: list[BaseConverter] = field(default_factory=list)

    @property
    def category(self) -> str:
        return self.converter.category


class ConverterRegistry:
    """Type-keyed lookup of converters with alias resolution."""

    def __init__(self):
        self._entries: dict[str, ConverterRegistration] = {}
        self._aliases: dict[str, str] = {}
        self._frozen = False

    # ------------------------------------------------------------------
    # Mutation (start-up only)
    # ------------------------------------------------------------------

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RegistryError("Converter registry is frozen; register converters at start-up")

    def register(
        self,
        type_name: str,
        converter: BaseConverter,
        *,
        aliases: Iterable[str] = (),
        deprecated: Optional[bool] = None,
        replacement_type: Optional[str] = None,
        replace: bool = False,
    ) -> ConverterRegistration:
        """Register the converter for a node type.

        Args:
            type_name: Canonical node type.
            converter: Converter instance.
            aliases: Alternate type names dispatching to this converter.
            deprecated: Overrides ``converter.deprecated``.
            replacement_type: Overrides ``converter.replacement_type``.
            replace: Must be True to overwrite an existing registration.
        """
        self._check_mutable()
        if not type_name:
            raise RegistryError("Converter type name must not be empty")
        if type_name in self._aliases:
            raise RegistryError(f"'{type_name}' is already registered as an alias")
        if type_name in self._entries and not replace:
            raise RegistryError(
                f"Converter for type '{type_name}' is already registered; pass replace=True to override"
            )

        if type_name in self._entries:
            logger.info("converter_replaced", type_name=type_name)

        entry = ConverterRegistration(
            type_name=type_name,
            converter=converter,
            deprecated=converter.deprecated if deprecated is None else deprecated,
            replacement_type=replacement_type or converter.replacement_type,
        )
        previous = self._entries.get(type_name)
        if previous is not None:
            entry.aliases = list(previous.aliases)
        self._entries[type_name] = entry

        for alias in aliases:
            self.register_alias(alias, type_name)
        return entry

    def register_variant(self, type_name: str, converter: BaseConverter) -> None:
        """Add a specialised converter selected through ``can_handle``."""
        self._check_mutable()
        entry = self._entries.get(type_name)
        if entry is None:
            raise RegistryError(f"Cannot add a variant to unregistered type '{type_name}'")
        entry.variants.append(converter)

    def register_alias(self, alias: str, canonical_type: str) -> None:
        """Make ``alias`` dispatch to the converter of ``canonical_type``.

        Aliases are single-hop: the target must be a registered canonical
        type, never another alias.
        """
        self._check_mutable()
        if canonical_type in self._aliases:
            raise RegistryError(
                f"Alias target '{canonical_type}' is itself an alias; aliases are single-hop"
            )
        if canonical_type not in self._entries:
            raise RegistryError(f"Target type '{canonical_type}' is not registered")
        if alias in self._entries:
            raise RegistryError(f"Alias '{alias}' would shadow a registered type")

        previous = self._aliases.get(alias)
        if previous and previous != canonical_type:
            self._entries[previous].aliases.remove(alias)
        self._aliases[alias] = canonical_type
        entry = self._entries[canonical_type]
        if alias not in entry.aliases:
            entry.aliases.append(alias)

    def unregister(self, type_name: str) -> bool:
        """Remove a type and the aliases pointing at it."""
        self._check_mutable()
        entry = self._entries.pop(type_name, None)
        if entry is None:
            return False
        for alias in entry.aliases:
            self._aliases.pop(alias, None)
        return True

    def freeze(self) -> None:
        """Forbid further mutation."""
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ------------------------------------------------------------------
    # Lookup (read-only, safe for concurrent use)
    # ------------------------------------------------------------------

    def canonical_type(self, type_name: str) -> Optional[str]:
        """Resolve a type name or alias to its canonical type."""
        if type_name in self._entries:
            return type_name
        return self._aliases.get(type_name)

    def get_registration(self, type_name: str) -> ConverterRegistration:
        """Registry entry for a type name or alias.

        Raises:
            UnsupportedNodeType: if neither a type nor an alias matches.
        """
        canonical = self.canonical_type(type_name)
        if canonical is None:
            raise UnsupportedNodeType(type_name)
        return self._entries[canonical]

    def lookup(self, type_name: str, node: Optional[IRNode] = None) -> BaseConverter:
        """Get the converter for a node type.

        With a node, specialised variants are consulted first and every
        candidate's ``can_handle`` guard must accept the node.
        """
        entry = self.get_registration(type_name)
        if node is None:
            return entry.converter

        for variant in entry.variants:
            if variant.can_handle(node):
                return variant
        if entry.converter.can_handle(node):
            return entry.converter
        raise UnsupportedNodeType(
            type_name,
            node_id=node.id,
            reason="no registered converter accepts this node's configuration",
        )

    def has_converter(self, type_name: str) -> bool:
        return self.canonical_type(type_name) is not None

    def list_by_category(self, category: str) -> list[BaseConverter]:
        """Converters whose category matches."""
        return [
            entry.converter for entry in self._entries.values()
            if entry.category == category
        ]

    def registered_types(self) -> list[str]:
        return list(self._entries)

    def aliases(self) -> dict[str, str]:
        return dict(self._aliases)

    def statistics(self) -> dict:
        """Registry statistics."""
        by_category: dict[str, int] = {}
        deprecated = 0
        for entry in self._entries.values():
            by_category[entry.category] = by_category.get(entry.category, 0) + 1
            if entry.deprecated:
                deprecated += 1
        return {
            "total_converters": len(self._entries),
            "total_aliases": len(self._aliases),
            "converters_by_category": by_category,
            "deprecated_converters": deprecated,
        }


# =============================================================================
# Plugins
# =============================================================================

PluginHook = Callable[[ConverterRegistry], None]


def load_plugin(registry: ConverterRegistry, plugin: PluginHook, name: Optional[str] = None) -> None:
    """Run one plugin registration hook against the registry."""
    plugin(registry)
    logger.info(
        "converter_plugin_loaded",
        plugin=name or getattr(plugin, "__name__", repr(plugin)),
        total_converters=len(registry.registered_types()),
    )


def load_plugins(registry: ConverterRegistry, group: str = "flowcompiler.converters") -> list[str]:
    """Load converter plugins advertised through package entry points.

    Each entry point must resolve to a callable taking the registry.

    Returns:
        Names of the loaded entry points.
    """
    loaded = []
    for entry_point in entry_points(group=group):
        hook = entry_point.load()
        load_plugin(registry, hook, name=entry_point.name)
        loaded.append(entry_point.name)
    return loaded


@lru_cache
def get_registry() -> ConverterRegistry:
    """Process-wide registry: built-in converters plus plugins, frozen."""
    from flowcompiler.converters import register_builtin_converters

    settings = get_settings()
    registry = ConverterRegistry()
    register_builtin_converters(registry)
    if settings.load_plugins:
        load_plugins(registry, group=settings.plugin_group)
    registry.freeze()
    logger.info("converter_registry_ready", **registry.statistics())
    return registry
