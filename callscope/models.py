"""Core data records shared by extraction, resolution and query layers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class ItemKind(str, Enum):
    """Entity kinds; the value doubles as the trailing id segment."""

    STRUCT = "struct"
    ENUM = "enum"
    TRAIT = "trait"
    FUNCTION = "fn"
    METHOD = "method"
    IMPL = "impl"
    MODULE = "mod"
    CONST = "const"
    TYPE_ALIAS = "type"
    TEST = "test"


CALLABLE_KINDS = frozenset({ItemKind.FUNCTION, ItemKind.METHOD})


@dataclass(frozen=True)
class CodeItem:
    id: str
    kind: ItemKind
    name: str
    file: str
    line_start: int
    line_end: int
    signature: str = ""
    visibility: str = "private"
    owner: Optional[str] = None
    fields: Tuple[Tuple[str, str], ...] = ()
    return_type: Optional[str] = None
    doc: str = ""

    @property
    def qualified_name(self) -> str:
        return f"{self.owner}::{self.name}" if self.owner else self.name

    @property
    def is_callable(self) -> bool:
        return self.kind in CALLABLE_KINDS or self.kind is ItemKind.TEST

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name,
            "file": self.file,
            "line_start": self.line_start,
            "line_end": self.line_end,
            "signature": self.signature,
            "visibility": self.visibility,
            "owner": self.owner,
            "fields": [list(f) for f in self.fields],
            "return_type": self.return_type,
            "doc": self.doc,
        }


# ===================================================================
# Control-flow context
# ===================================================================

class ContextKind(str, Enum):
    NORMAL = "normal"
    IF = "if"
    ELSE = "else"
    MATCH_ARM = "match_arm"
    LOOP = "loop"
    WHILE = "while"
    FOR = "for"


@dataclass(frozen=True)
class CallContext:
    kind: ContextKind = ContextKind.NORMAL
    condition: Optional[str] = None
    arm_pattern: Optional[str] = None

    @property
    def is_normal(self) -> bool:
        return self.kind is ContextKind.NORMAL

    @property
    def label(self) -> Optional[str]:
        """Condition or pattern text, whichever this context carries."""
        return self.arm_pattern if self.kind is ContextKind.MATCH_ARM else self.condition

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"type": self.kind.value}
        if self.condition is not None:
            payload["condition"] = self.condition
        if self.arm_pattern is not None:
            payload["arm_pattern"] = self.arm_pattern
        return payload


NORMAL_CONTEXT = CallContext()


# ===================================================================
# Edges
# ===================================================================

@dataclass(frozen=True)
class CallSite:
    file: str
    line: int


@dataclass(frozen=True)
class CallEdge:
    """A call from entity *from_id* to *to*.

    Before resolution *to* is the raw callee name (``Bar::compute``,
    ``helper``, ``crate::util::parse``); after resolution it is an entity id.
    ``typed`` is True when receiver type inference picked the owner.
    """

    from_id: str
    to: str
    file: str
    line: int
    context: CallContext = NORMAL_CONTEXT
    typed: bool = False

    @property
    def call_site(self) -> CallSite:
        return CallSite(self.file, self.line)

    @property
    def entry_id(self) -> str:
        return call_entry_id(self.from_id, self.to, self.line)

    def retarget(self, target: str) -> "CallEdge":
        return replace(self, to=target)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_id,
            "to": self.to,
            "file": self.file,
            "line": self.line,
            "context": self.context.to_dict(),
            "typed": self.typed,
        }


def call_entry_id(from_id: str, to: str, line: int) -> str:
    """Stable identity of one call, independent of its position in a diagram."""
    return f"{from_id}->{to}@{line}"


class ReasonCode(str, Enum):
    NO_TYPE_SCOPE = "no_type_scope"
    VARIABLE_NOT_IN_SCOPE = "variable_not_in_scope"
    TYPE_LOOKUP_FAILED = "type_lookup_failed"
    SELF_TYPE_UNKNOWN = "self_type_unknown"
    SELF_TYPE_LOOKUP_FAILED = "self_type_lookup_failed"
    FIELD_TYPE_UNKNOWN = "field_type_unknown"
    RETURN_TYPE_UNKNOWN = "return_type_unknown"
    UNSUPPORTED_RECEIVER_TYPE = "unsupported_receiver_type"


@dataclass(frozen=True)
class UnresolvedReason:
    code: ReasonCode
    detail: Optional[str] = None

    def __str__(self) -> str:
        if self.detail is None:
            return self.code.value
        return f"{self.code.value}:{self.detail}"


@dataclass(frozen=True)
class UnresolvedEdge:
    from_id: str
    file: str
    line: int
    receiver_type: Optional[str]
    receiver_text: str
    method: str
    reason: UnresolvedReason

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_id,
            "file": self.file,
            "line": self.line,
            "receiver_type": self.receiver_type,
            "receiver_text": self.receiver_text,
            "method": self.method,
            "reason": str(self.reason),
        }


# ===================================================================
# Callers / impact
# ===================================================================

@dataclass(frozen=True)
class Caller:
    id: str
    name: str
    file: str
    line: int
    call_site: CallSite

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "file": self.file,
            "line": self.line,
            "call_site": {"file": self.call_site.file, "line": self.call_site.line},
        }


@dataclass
class CallersTreeNode:
    caller: Caller
    depth: int
    children: List["CallersTreeNode"] = field(default_factory=list)
    is_expanded: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "caller": self.caller.to_dict(),
            "depth": self.depth,
            "is_expanded": self.is_expanded,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass(frozen=True)
class TestInfo:
    __test__ = False

    id: str
    name: str
    file: str
    line: int
    source_item: str
    is_direct: bool


@dataclass
class ImpactResult:
    target_id: str
    target_name: str
    direct_impact: List[Caller] = field(default_factory=list)
    indirect_impact: Dict[int, List[Caller]] = field(default_factory=dict)
    direct_tests: List[TestInfo] = field(default_factory=list)
    indirect_tests: List[TestInfo] = field(default_factory=list)
    cycle_nodes: List[str] = field(default_factory=list)

    @property
    def has_cycle(self) -> bool:
        return bool(self.cycle_nodes)

    @property
    def total_affected(self) -> int:
        return len(self.direct_impact) + sum(len(v) for v in self.indirect_impact.values())

    @property
    def max_depth(self) -> int:
        return max(self.indirect_impact.keys(), default=0)

    def affected_ids(self) -> List[str]:
        ids = [c.id for c in self.direct_impact]
        for level in sorted(self.indirect_impact):
            ids.extend(c.id for c in self.indirect_impact[level])
        return ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target_id": self.target_id,
            "target_name": self.target_name,
            "direct_impact": [c.to_dict() for c in self.direct_impact],
            "indirect_impact": {
                str(k): [c.to_dict() for c in v] for k, v in sorted(self.indirect_impact.items())
            },
            "direct_tests": [asdict(t) for t in self.direct_tests],
            "indirect_tests": [asdict(t) for t in self.indirect_tests],
            "total_affected": self.total_affected,
            "max_depth": self.max_depth,
            "has_cycle": self.has_cycle,
            "cycle_nodes": list(self.cycle_nodes),
        }
