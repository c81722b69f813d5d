"""Process-wide type tables used by receiver type inference.

The registry has a two-phase lifecycle.  Phase 1 registers struct fields and
return types for *every* file of the project; ``freeze()`` then marks the
barrier, after which phase 2 (edge collection) only reads.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Optional, Tuple

from .errors import RegistryFrozenError
from .models import CodeItem, ItemKind

logger = logging.getLogger(__name__)

_IDENT_RE = re.compile(r"^[A-Za-z_]\w*$")
_REF_PREFIX_RE = re.compile(r"^(?:&\s*(?:'\w+\s+)?|mut\s+|dyn\s+|impl\s+|\*const\s+|\*mut\s+)")


# ===================================================================
# Type-text helpers
# ===================================================================

def strip_generics(text: str) -> str:
    """Remove every ``<...>`` argument list (and turbofish ``::``) from *text*."""
    out = []
    depth = 0
    prev = ""
    for ch in text:
        if ch == "<":
            depth += 1
        elif ch == ">" and depth > 0 and prev != "-":
            depth -= 1
        elif depth == 0:
            out.append(ch)
        prev = ch
    stripped = "".join(out)
    while "::::" in stripped:
        stripped = stripped.replace("::::", "::")
    return stripped.rstrip(":").strip()


def base_type_name(type_text: Optional[str]) -> Optional[str]:
    """Reduce a type expression to its base type name.

    ``&'a mut Vec<Foo>`` -> ``Vec``, ``crate::model::Unit`` -> ``Unit``,
    ``Option<Self>`` -> ``Option``.  Tuples, slices, arrays and anything that
    does not end in a plain identifier give None.
    """
    if not type_text:
        return None
    text = type_text.strip()
    previous = None
    while previous != text:
        previous = text
        text = _REF_PREFIX_RE.sub("", text).strip()
    if not text or text[0] in "([":
        return None
    text = strip_generics(text)
    text = re.split(r"[\s+]", text, maxsplit=1)[0]
    name = text.split("::")[-1]
    return name if _IDENT_RE.match(name) else None


# ===================================================================
# Registry
# ===================================================================

class TypeRegistry:
    """Struct-field and return-type tables keyed by owner type name.

    Free functions are registered with an empty owner.  Duplicate
    registrations overwrite silently (last write wins).
    """

    def __init__(self) -> None:
        self._fields: Dict[str, Dict[str, str]] = {}
        self._returns: Dict[Tuple[str, str], str] = {}
        self._frozen = False
        self._warned_unfrozen = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @classmethod
    def build(cls, items: Iterable[CodeItem], freeze: bool = True) -> "TypeRegistry":
        """Create a registry from a full entity inventory (phase 1)."""
        registry = cls()
        registry.register_items(items)
        if freeze:
            registry.freeze()
        return registry

    def register_items(self, items: Iterable[CodeItem]) -> None:
        for item in items:
            if item.kind in (ItemKind.STRUCT, ItemKind.ENUM):
                # types that only carry variants still count as known
                self._fields.setdefault(item.name, {})
                for field_name, field_type in item.fields:
                    base = base_type_name(field_type)
                    if base is not None:
                        self.register_struct_field(item.name, field_name, base)
            elif item.kind in (ItemKind.FUNCTION, ItemKind.METHOD) and item.return_type:
                self.register_return_type(item.owner or "", item.name, item.return_type)

    def freeze(self) -> None:
        self._frozen = True
        logger.debug(
            "Type registry frozen: %d types, %d return types",
            len(self._fields), len(self._returns),
        )

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ------------------------------------------------------------------
    # Phase 1: writes
    # ------------------------------------------------------------------

    def register_struct_field(self, owner: str, field: str, type_name: str) -> None:
        self._check_writable()
        self._fields.setdefault(owner, {})[field] = type_name

    def register_return_type(self, owner: str, method: str, type_name: str) -> None:
        self._check_writable()
        self._returns[(owner, method)] = type_name

    def _check_writable(self) -> None:
        if self._frozen:
            raise RegistryFrozenError("type registry is frozen; phase 1 has already completed")

    # ------------------------------------------------------------------
    # Phase 2: reads
    # ------------------------------------------------------------------

    def has_type(self, owner: str) -> bool:
        self._check_readable()
        return owner in self._fields

    def get_field_type(self, owner: str, field: str) -> Optional[str]:
        self._check_readable()
        return self._fields.get(owner, {}).get(field)

    def get_return_type(self, owner: str, method: str) -> Optional[str]:
        self._check_readable()
        return self._returns.get((owner, method))

    def _check_readable(self) -> None:
        if not self._frozen and not self._warned_unfrozen:
            self._warned_unfrozen = True
            logger.warning("Type registry read before freeze(); resolution may be incomplete")
