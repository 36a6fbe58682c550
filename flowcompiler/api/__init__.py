"""API route modules."""
from flowcompiler.api import compile

__all__ = ["compile"]
