"""Render a :class:`~callscope.sequence.RenderedSequence` as Mermaid text."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

from .models import CallContext, ContextKind
from .sequence import RenderedSequence, SequenceCall, SequenceStep, StepKind, extract_struct_name

INDENT = "    "
GROUP_COLOR = "rgba(200, 200, 255, 0.25)"

_UNSAFE_ID_RE = re.compile(r"[^A-Za-z0-9_]")
_WS_RE = re.compile(r"\s+")


def sanitize_id(item_id: str) -> str:
    """Mermaid participant ids allow only word characters."""
    return _UNSAFE_ID_RE.sub("_", item_id.replace("::", "_"))


def escape_label(text: str) -> str:
    text = re.sub(r"[<>]", "", text)
    text = text.replace(":", "：").replace('"', "'").replace(";", ",").replace("#", "")
    return _WS_RE.sub(" ", text).strip()


@dataclass
class _Block:
    """An open ``alt``/``loop``/``rect`` directive.

    ``depth`` is the depth of the calls the block wraps; 0 marks a group rect.
    """

    context: Optional[CallContext]
    depth: int


class MermaidWriter:
    """Emits lines while keeping every opened block closed exactly once."""

    def __init__(self) -> None:
        self.lines: List[str] = ["sequenceDiagram"]
        self.stack: List[_Block] = []

    def emit(self, text: str) -> None:
        self.lines.append(INDENT * (len(self.stack) + 1) + text)

    def open(self, directive: str, block: _Block) -> None:
        self.emit(directive)
        self.stack.append(block)

    def close(self) -> None:
        self.stack.pop()
        self.emit("end")

    def close_deeper_than(self, depth: int) -> None:
        while self.stack and self.stack[-1].context is not None and self.stack[-1].depth > depth:
            self.close()

    def close_all(self) -> None:
        while self.stack:
            self.close()

    def close_through_group(self) -> None:
        while self.stack:
            is_group = self.stack[-1].context is None
            self.close()
            if is_group:
                return

    # ------------------------------------------------------------------
    # Contexts
    # ------------------------------------------------------------------

    def enter_context(self, call: SequenceCall) -> None:
        """Open, continue, switch or close the block around *call*."""
        self.close_deeper_than(call.depth)
        context = call.context
        top = self.stack[-1] if self.stack else None
        at_level = top is not None and top.context is not None and top.depth == call.depth

        if at_level:
            current = top.context
            if current == context:
                return
            if context.kind is ContextKind.ELSE and current.kind is ContextKind.IF \
                    and current.condition == context.condition:
                self.lines.append(INDENT * len(self.stack) + "else")
                top.context = context
                return
            if context.kind is ContextKind.MATCH_ARM and current.kind is ContextKind.MATCH_ARM:
                self.lines.append(INDENT * len(self.stack) + f"else {escape_label(context.label or 'pattern')}")
                top.context = context
                return
            self.close()

        if context.is_normal:
            return
        self.open(_directive(context), _Block(context, call.depth))


def _directive(context: CallContext) -> str:
    kind = context.kind
    if kind is ContextKind.IF:
        return f"alt {escape_label(context.condition or 'condition')}"
    if kind is ContextKind.ELSE:
        return f"alt else {escape_label(context.condition or 'condition')}".rstrip()
    if kind is ContextKind.MATCH_ARM:
        return f"alt {escape_label(context.arm_pattern or 'pattern')}"
    if kind is ContextKind.LOOP:
        return "loop"
    if kind is ContextKind.WHILE:
        return f"loop {escape_label(context.condition or 'while')}"
    return f"loop {escape_label(context.condition or 'for')}"


def _note_target(call: SequenceCall) -> str:
    source = sanitize_id(extract_struct_name(call.from_id))
    target = sanitize_id(extract_struct_name(call.to))
    return source if source == target else f"{source},{target}"


def render_sequence(rendered: RenderedSequence) -> str:
    """Mermaid ``sequenceDiagram`` text for *rendered*; block opens equal closes."""
    writer = MermaidWriter()
    for participant in rendered.diagram.participants:
        writer.emit(f"participant {sanitize_id(participant.id)} as {escape_label(participant.display_name)}")
    writer.lines.append("")

    steps = rendered.steps
    for i, step in enumerate(steps):
        if step.kind is StepKind.NOTE and step.call is not None and _precedes_call(steps, i):
            writer.enter_context(step.call)
        _render_step(writer, step)
    writer.close_all()
    return "\n".join(writer.lines) + "\n"


def _precedes_call(steps: List[SequenceStep], index: int) -> bool:
    """True when the note at *index* is attached before its own call's start."""
    call = steps[index].call
    for step in steps[index + 1:]:
        if step.kind is StepKind.NOTE and step.call == call:
            continue
        return step.kind is StepKind.CALL_START and step.call == call
    return False


def _render_step(writer: MermaidWriter, step: SequenceStep) -> None:
    call = step.call
    if step.kind is StepKind.GROUP_START:
        writer.close_all()
        writer.open(f"rect {GROUP_COLOR}", _Block(None, 0))
        if call is not None:
            writer.emit(f"Note over {_note_target(call)}: {escape_label(step.text)}")
    elif step.kind is StepKind.GROUP_END:
        writer.close_through_group()
    elif step.kind is StepKind.GROUP_COLLAPSED and call is not None:
        writer.close_deeper_than(0)
        writer.emit(f"Note over {_note_target(call)}: [{escape_label(step.text)}]")
    elif step.kind is StepKind.NOTE and call is not None:
        writer.emit(f"Note over {_note_target(call)}: {escape_label(step.text)}")
    elif step.kind is StepKind.CALL_START and call is not None:
        writer.enter_context(call)
        source = sanitize_id(extract_struct_name(call.from_id))
        target = sanitize_id(extract_struct_name(call.to))
        label = escape_label(step.label)
        if call.reentrant:
            label = f"{label} (recursive)"
        writer.emit(f"{source}->>+{target}: {label}")
    elif step.kind is StepKind.CALL_END and call is not None:
        writer.close_deeper_than(call.depth)
        source = sanitize_id(extract_struct_name(call.from_id))
        target = sanitize_id(extract_struct_name(call.to))
        writer.emit(f"{target}-->>-{source}: ")
