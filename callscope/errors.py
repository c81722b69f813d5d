"""Exception hierarchy for callscope."""

from __future__ import annotations


class CallscopeError(Exception):
    """Base class for all callscope errors."""


class RegistryFrozenError(CallscopeError):
    """Raised when the type registry is written to after ``freeze()``."""


class GrammarUnavailableError(CallscopeError):
    """Raised when the tree-sitter Rust grammar cannot be loaded."""
