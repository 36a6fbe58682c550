"""Front ends turning exported flow files into a FlowGraph."""
from flowcompiler.parser.flowise import load_flowise_file, parse_flowise_export

__all__ = ["parse_flowise_export", "load_flowise_file"]
