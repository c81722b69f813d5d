"""Sequence diagram synthesis: call subtree -> ordered start/end event stream.

The event stream is the raw material; :func:`apply_edits` overlays the user's
saved edits and yields render steps, which :mod:`callscope.mermaid` turns into
text.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Deque, Dict, Iterable, List, Optional, Set, Tuple

from .models import NORMAL_CONTEXT, CallContext, CallEdge
from .sequence_edits import NotePosition, SequenceEditState, SequenceGroup

logger = logging.getLogger(__name__)

ROOT_BUDGET = 1


# ===================================================================
# Id helpers
# ===================================================================

def extract_struct_name(item_id: str) -> str:
    """``src/a.rs::BattleLoop::run::method`` -> ``BattleLoop``.

    Free functions have no owner, so their file takes the owner slot.
    """
    parts = item_id.split("::")
    if len(parts) >= 3:
        return parts[-3]
    if len(parts) >= 2:
        return parts[-2]
    return parts[0]


def extract_method_name(item_id: str) -> str:
    parts = item_id.split("::")
    return parts[-2] if len(parts) >= 2 else parts[0]


def extract_display_name(item_id: str) -> str:
    parts = item_id.split("::")
    if len(parts) >= 3:
        return f"{parts[-3]}::{parts[-2]}"
    if len(parts) >= 2:
        return parts[-2]
    return parts[0]


# ===================================================================
# Data records
# ===================================================================

@dataclass
class DepthConfig:
    default_depth: int = 0
    function_depths: Dict[str, int] = field(default_factory=dict)

    def depth_for(self, function_id: str) -> int:
        return max(0, self.function_depths.get(function_id, self.default_depth))


@dataclass
class FunctionDepthSetting:
    function_id: str
    display_name: str
    depth: int = 0
    max_expandable_depth: int = 0


@dataclass
class ParticipantInfo:
    id: str
    display_name: str
    order: int


@dataclass(frozen=True)
class SequenceCall:
    """One occurrence of a call in the diagram.

    ``key`` is qualified by the call path, so the same static edge reached
    through two different callers gives two occurrences.  ``entry_id`` is the
    path-independent identity that edits refer to.
    """

    from_id: str
    to: str
    file: str
    line: int
    depth: int
    key: str
    context: CallContext = NORMAL_CONTEXT
    reentrant: bool = False

    @property
    def entry_id(self) -> str:
        return f"{self.from_id}->{self.to}@{self.line}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_id,
            "to": self.to,
            "file": self.file,
            "line": self.line,
            "depth": self.depth,
            "entry_id": self.entry_id,
            "context": self.context.to_dict(),
            "reentrant": self.reentrant,
        }


class EventType(str, Enum):
    START = "start"
    END = "end"


@dataclass(frozen=True)
class SequenceEvent:
    type: EventType
    call: SequenceCall


@dataclass
class SequenceDiagram:
    root_id: str
    calls: List[SequenceCall] = field(default_factory=list)
    events: List[SequenceEvent] = field(default_factory=list)
    participants: List[ParticipantInfo] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "root_id": self.root_id,
            "participants": [
                {"id": p.id, "display_name": p.display_name, "order": p.order} for p in self.participants
            ],
            "calls": [c.to_dict() for c in self.calls],
            "events": [{"type": e.type.value, "call": e.call.key} for e in self.events],
        }


# ===================================================================
# Synthesis
# ===================================================================

def _outgoing(edges: Iterable[CallEdge]) -> Dict[str, List[CallEdge]]:
    outgoing: Dict[str, List[CallEdge]] = {}
    for edge in edges:
        outgoing.setdefault(edge.from_id, []).append(edge)
    for calls in outgoing.values():
        calls.sort(key=lambda e: e.line)
    return outgoing


def collect_call_chain(
    edges: Iterable[CallEdge],
    root_id: str,
    depth_config: Optional[DepthConfig] = None,
) -> Tuple[List[SequenceCall], List[SequenceEvent], List[str]]:
    """Depth-first walk from *root_id* in call-site line order.

    The root's direct calls always expand once.  A callee expands further
    with the larger of its own configured depth and what remains of its
    caller's budget.  A callee already on the active call path is recorded
    but not expanded.

    Returns ``(calls, events, participant_ids)``.
    """
    config = depth_config or DepthConfig()
    outgoing = _outgoing(edges)
    calls: List[SequenceCall] = []
    events: List[SequenceEvent] = []
    participants: List[str] = [root_id]
    seen_participants: Set[str] = {root_id}
    seen_keys: Set[str] = set()

    def visit(node: str, budget: int, depth: int, active: Tuple[str, ...], parent_key: str) -> None:
        if budget <= 0:
            return
        for edge in outgoing.get(node, []):
            key = f"{parent_key}>{edge.from_id}->{edge.to}@{edge.line}"
            if key in seen_keys:
                continue
            seen_keys.add(key)

            if edge.to not in seen_participants:
                seen_participants.add(edge.to)
                participants.append(edge.to)

            reentrant = edge.to in active
            call = SequenceCall(
                from_id=edge.from_id,
                to=edge.to,
                file=edge.file,
                line=edge.line,
                depth=depth,
                key=key,
                context=edge.context,
                reentrant=reentrant,
            )
            calls.append(call)
            events.append(SequenceEvent(EventType.START, call))
            if not reentrant:
                child_budget = max(config.depth_for(edge.to), budget - 1)
                visit(edge.to, child_budget, depth + 1, active + (edge.to,), key)
            events.append(SequenceEvent(EventType.END, call))

    visit(root_id, ROOT_BUDGET, 1, (root_id,), "")
    return calls, events, participants


def build_participants(root_id: str, participant_ids: Iterable[str]) -> List[ParticipantInfo]:
    """One participant per owning struct, the root's struct first."""
    by_name: Dict[str, ParticipantInfo] = {}
    for item_id in [root_id, *participant_ids]:
        name = extract_struct_name(item_id)
        if name not in by_name:
            by_name[name] = ParticipantInfo(id=name, display_name=name, order=len(by_name))
    return list(by_name.values())


def generate_sequence(
    edges: Iterable[CallEdge],
    root_id: str,
    depth_config: Optional[DepthConfig] = None,
) -> SequenceDiagram:
    calls, events, participant_ids = collect_call_chain(edges, root_id, depth_config)
    if not calls:
        logger.debug("No outgoing calls from %s", root_id)
    return SequenceDiagram(
        root_id=root_id,
        calls=calls,
        events=events,
        participants=build_participants(root_id, participant_ids),
    )


def build_function_depth_settings(edges: Iterable[CallEdge], root_id: str) -> List[FunctionDepthSetting]:
    """Every function reachable from *root_id* (root excluded), breadth-first, depth 0."""
    outgoing = _outgoing(edges)
    settings: List[FunctionDepthSetting] = []
    visited = {root_id}
    queue: Deque[str] = deque([root_id])
    while queue:
        node = queue.popleft()
        node_edges = outgoing.get(node, [])
        if node != root_id:
            settings.append(FunctionDepthSetting(
                function_id=node,
                display_name=extract_display_name(node),
                depth=0,
                max_expandable_depth=1 if node_edges else 0,
            ))
        for edge in node_edges:
            if edge.to not in visited:
                visited.add(edge.to)
                queue.append(edge.to)
    return settings


# ===================================================================
# Edit overlay
# ===================================================================

class StepKind(str, Enum):
    CALL_START = "call_start"
    CALL_END = "call_end"
    NOTE = "note"
    GROUP_START = "group_start"
    GROUP_END = "group_end"
    GROUP_COLLAPSED = "group_collapsed"


@dataclass(frozen=True)
class SequenceStep:
    """One renderable element.  Notes reference the call they are anchored on."""

    kind: StepKind
    call: Optional[SequenceCall] = None
    label: str = ""
    text: str = ""


@dataclass
class RenderedSequence:
    diagram: SequenceDiagram
    steps: List[SequenceStep] = field(default_factory=list)

    @property
    def rendered_calls(self) -> List[SequenceCall]:
        return [s.call for s in self.steps if s.kind is StepKind.CALL_START and s.call is not None]


def apply_edits(diagram: SequenceDiagram, edits: Optional[SequenceEditState] = None) -> RenderedSequence:
    """Overlay omission, grouping, label and note edits, in that order."""
    edits = edits or SequenceEditState()
    steps = _base_steps(diagram.events)
    steps = _apply_omissions(steps, edits)
    steps = _apply_groups(steps, edits)
    steps = _apply_labels(steps, edits)
    steps = _apply_notes(steps, edits)
    return RenderedSequence(diagram=diagram, steps=steps)


def _base_steps(events: Iterable[SequenceEvent]) -> List[SequenceStep]:
    steps = []
    for event in events:
        if event.type is EventType.START:
            steps.append(SequenceStep(StepKind.CALL_START, event.call, label=extract_method_name(event.call.to)))
        else:
            steps.append(SequenceStep(StepKind.CALL_END, event.call))
    return steps


def _apply_omissions(steps: List[SequenceStep], edits: SequenceEditState) -> List[SequenceStep]:
    if not edits.omissions:
        return steps
    omission_of: Dict[str, Any] = {}
    for omission in edits.omissions:
        for entry in omission.call_entry_ids:
            omission_of.setdefault(entry, omission)

    result: List[SequenceStep] = []
    placed: Set[str] = set()
    suppressing: Optional[str] = None
    for step in steps:
        if suppressing is not None:
            if step.kind is StepKind.CALL_END and step.call is not None and step.call.key == suppressing:
                suppressing = None
            continue
        if step.kind is StepKind.CALL_START and step.call is not None:
            omission = omission_of.get(step.call.entry_id)
            if omission is not None:
                suppressing = step.call.key
                if omission.id not in placed:
                    placed.add(omission.id)
                    result.append(SequenceStep(StepKind.NOTE, step.call, text=omission.placeholder))
                continue
        result.append(step)
    return result


def _apply_groups(steps: List[SequenceStep], edits: SequenceEditState) -> List[SequenceStep]:
    """Bracket contiguous runs of top-level calls that belong to one group."""
    if not edits.groups:
        return steps
    group_of: Dict[str, SequenceGroup] = {}
    for group in edits.groups:
        for entry in group.call_entry_ids:
            group_of.setdefault(entry, group)

    result: List[SequenceStep] = []
    open_group: Optional[SequenceGroup] = None
    for step in steps:
        if step.kind is StepKind.CALL_START and step.call is not None and step.call.depth == 1:
            group = group_of.get(step.call.entry_id)
            if open_group is not None and group is not open_group:
                if not open_group.is_collapsed:
                    result.append(SequenceStep(StepKind.GROUP_END, text=open_group.name))
                open_group = None
            if group is not None and open_group is None:
                open_group = group
                kind = StepKind.GROUP_COLLAPSED if group.is_collapsed else StepKind.GROUP_START
                result.append(SequenceStep(kind, step.call, text=group.name))
        if open_group is not None and open_group.is_collapsed:
            continue
        result.append(step)
    if open_group is not None and not open_group.is_collapsed:
        result.append(SequenceStep(StepKind.GROUP_END, text=open_group.name))
    return result


def _apply_labels(steps: List[SequenceStep], edits: SequenceEditState) -> List[SequenceStep]:
    if not edits.label_edits:
        return steps
    labels = {e.call_entry_id: e.custom_label for e in edits.label_edits}
    result = []
    for step in steps:
        if step.kind is StepKind.CALL_START and step.call is not None and step.call.entry_id in labels:
            step = SequenceStep(step.kind, step.call, label=labels[step.call.entry_id], text=step.text)
        result.append(step)
    return result


def _apply_notes(steps: List[SequenceStep], edits: SequenceEditState) -> List[SequenceStep]:
    if not edits.notes:
        return steps
    before: Dict[str, List[str]] = {}
    after: Dict[str, List[str]] = {}
    for note in edits.notes:
        target = before if note.position is NotePosition.BEFORE else after
        target.setdefault(note.call_entry_id, []).append(note.text)

    result: List[SequenceStep] = []
    for step in steps:
        call = step.call
        if step.kind is StepKind.CALL_START and call is not None:
            result.extend(SequenceStep(StepKind.NOTE, call, text=t) for t in before.get(call.entry_id, []))
        result.append(step)
        if step.kind is StepKind.CALL_END and call is not None:
            result.extend(SequenceStep(StepKind.NOTE, call, text=t) for t in after.get(call.entry_id, []))
    return result
