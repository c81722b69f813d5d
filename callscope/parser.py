"""Rust source discovery and parsing on Tree-sitter.

Tree-sitter is error tolerant: a file with minor syntax errors still yields a
usable tree, and extraction picks up whatever declarations are intact.
"""

from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Any, Iterator, Optional, Set

from .errors import GrammarUnavailableError
from .syntax import SyntaxNode, TreeSitterNode

logger = logging.getLogger(__name__)

RUST_EXTENSION = ".rs"
GRAMMAR_MODULE = "tree_sitter_rust"

SKIP_DIRS: Set[str] = {
    "target", ".git", ".hg", ".svn", "node_modules", ".cargo",
    ".idea", ".vscode", ".callscope",
}


def iter_source_files(root: Path, skip_dirs: Optional[Set[str]] = None) -> Iterator[Path]:
    """Yield ``*.rs`` files under *root* in sorted order, skipping build/VCS dirs."""
    skip = SKIP_DIRS if skip_dirs is None else skip_dirs
    for file_path in sorted(root.rglob(f"*{RUST_EXTENSION}")):
        relative = file_path.relative_to(root)
        if any(part in skip for part in relative.parts[:-1]):
            continue
        if file_path.is_file():
            yield file_path


class RustParser:
    """Thin wrapper around a Tree-sitter parser loaded with the Rust grammar."""

    def __init__(self) -> None:
        self._parser = self._init_parser()

    @staticmethod
    def _init_parser() -> Any:
        try:
            from tree_sitter import Language, Parser as TSParser  # type: ignore[import-untyped]
            grammar = importlib.import_module(GRAMMAR_MODULE)
        except ImportError as exc:
            raise GrammarUnavailableError(
                f"Rust grammar unavailable ({exc}). "
                "Install with: pip install tree-sitter tree-sitter-rust"
            ) from exc

        # tree-sitter >=0.22 grammar packages expose language() returning a capsule.
        parser = TSParser(Language(grammar.language()))
        logger.debug("Loaded tree-sitter parser for rust")
        return parser

    def parse(self, source: str) -> SyntaxNode:
        tree = self._parser.parse(source.encode("utf-8"))
        return TreeSitterNode(tree.root_node)

    def parse_file(self, file_path: Path) -> Optional[SyntaxNode]:
        """Parse *file_path*; unreadable files are skipped with a warning."""
        try:
            source = file_path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            logger.warning("Failed to read %s: %s", file_path, exc)
            return None
        return self.parse(source)
