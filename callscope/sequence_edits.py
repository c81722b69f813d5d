"""User edits layered over a generated sequence diagram, with JSON persistence.

Every edit is keyed by a call entry id (``"<from>-><to>@<line>"``), never by
position, so edits survive regeneration with different depth settings.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_PLACEHOLDER = "..."


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class NotePosition(str, Enum):
    BEFORE = "before"
    AFTER = "after"


@dataclass
class SequenceGroup:
    id: str
    name: str
    call_entry_ids: List[str] = field(default_factory=list)
    is_collapsed: bool = False


@dataclass
class SequenceOmission:
    id: str
    call_entry_ids: List[str] = field(default_factory=list)
    placeholder: str = DEFAULT_PLACEHOLDER


@dataclass
class LabelEdit:
    call_entry_id: str
    custom_label: str


@dataclass
class SequenceNote:
    id: str
    call_entry_id: str
    text: str
    position: NotePosition = NotePosition.AFTER


@dataclass
class SequenceEditState:
    groups: List[SequenceGroup] = field(default_factory=list)
    omissions: List[SequenceOmission] = field(default_factory=list)
    label_edits: List[LabelEdit] = field(default_factory=list)
    notes: List[SequenceNote] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.groups or self.omissions or self.label_edits or self.notes)

    def clear(self) -> None:
        self.groups.clear()
        self.omissions.clear()
        self.label_edits.clear()
        self.notes.clear()

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def add_group(self, name: str, call_entry_ids: Iterable[str]) -> Optional[SequenceGroup]:
        """Add a group, or return None if any call already belongs to one."""
        ids = list(call_entry_ids)
        taken = {entry for group in self.groups for entry in group.call_entry_ids}
        if any(entry in taken for entry in ids):
            logger.debug("Group %r overlaps an existing group; not added", name)
            return None
        group = SequenceGroup(id=_new_id(), name=name, call_entry_ids=ids)
        self.groups.append(group)
        return group

    def remove_group(self, group_id: str) -> None:
        self.groups = [g for g in self.groups if g.id != group_id]

    def update_group(self, group_id: str, **changes: Any) -> None:
        self.groups = [replace(g, **changes) if g.id == group_id else g for g in self.groups]

    def toggle_group_collapse(self, group_id: str) -> None:
        for group in self.groups:
            if group.id == group_id:
                group.is_collapsed = not group.is_collapsed

    # ------------------------------------------------------------------
    # Omissions
    # ------------------------------------------------------------------

    def add_omission(
        self,
        call_entry_ids: Iterable[str],
        placeholder: str = DEFAULT_PLACEHOLDER,
    ) -> Optional[SequenceOmission]:
        """Omit the given calls, or un-omit them if any is already omitted.

        Returns the new omission, or None when the call toggled existing
        omissions off instead.
        """
        ids = list(call_entry_ids)
        selected = set(ids)
        if any(selected.intersection(o.call_entry_ids) for o in self.omissions):
            remaining = []
            for omission in self.omissions:
                kept = [e for e in omission.call_entry_ids if e not in selected]
                if kept:
                    remaining.append(replace(omission, call_entry_ids=kept))
            self.omissions = remaining
            return None
        omission = SequenceOmission(id=_new_id(), call_entry_ids=ids, placeholder=placeholder)
        self.omissions.append(omission)
        return omission

    def remove_omission(self, omission_id: str) -> None:
        self.omissions = [o for o in self.omissions if o.id != omission_id]

    # ------------------------------------------------------------------
    # Labels and notes
    # ------------------------------------------------------------------

    def set_label(self, call_entry_id: str, custom_label: str) -> None:
        for edit in self.label_edits:
            if edit.call_entry_id == call_entry_id:
                edit.custom_label = custom_label
                return
        self.label_edits.append(LabelEdit(call_entry_id, custom_label))

    def remove_label(self, call_entry_id: str) -> None:
        self.label_edits = [e for e in self.label_edits if e.call_entry_id != call_entry_id]

    def add_note(
        self,
        call_entry_id: str,
        text: str,
        position: NotePosition = NotePosition.AFTER,
    ) -> SequenceNote:
        note = SequenceNote(id=_new_id(), call_entry_id=call_entry_id, text=text, position=NotePosition(position))
        self.notes.append(note)
        return note

    def remove_note(self, note_id: str) -> None:
        self.notes = [n for n in self.notes if n.id != note_id]

    def update_note(self, note_id: str, **changes: Any) -> None:
        if "position" in changes:
            changes["position"] = NotePosition(changes["position"])
        self.notes = [replace(n, **changes) if n.id == note_id else n for n in self.notes]

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "groups": [
                {
                    "id": g.id,
                    "name": g.name,
                    "call_entry_ids": list(g.call_entry_ids),
                    "is_collapsed": g.is_collapsed,
                }
                for g in self.groups
            ],
            "omissions": [
                {"id": o.id, "call_entry_ids": list(o.call_entry_ids), "placeholder": o.placeholder}
                for o in self.omissions
            ],
            "label_edits": [
                {"call_entry_id": e.call_entry_id, "custom_label": e.custom_label}
                for e in self.label_edits
            ],
            "notes": [
                {
                    "id": n.id,
                    "call_entry_id": n.call_entry_id,
                    "text": n.text,
                    "position": n.position.value,
                }
                for n in self.notes
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SequenceEditState":
        return cls(
            groups=[
                SequenceGroup(
                    id=g.get("id") or _new_id(),
                    name=g.get("name", ""),
                    call_entry_ids=list(g.get("call_entry_ids", [])),
                    is_collapsed=bool(g.get("is_collapsed", False)),
                )
                for g in data.get("groups", [])
            ],
            omissions=[
                SequenceOmission(
                    id=o.get("id") or _new_id(),
                    call_entry_ids=list(o.get("call_entry_ids", [])),
                    placeholder=o.get("placeholder", DEFAULT_PLACEHOLDER),
                )
                for o in data.get("omissions", [])
            ],
            label_edits=[
                LabelEdit(e["call_entry_id"], e["custom_label"])
                for e in data.get("label_edits", [])
            ],
            notes=[
                SequenceNote(
                    id=n.get("id") or _new_id(),
                    call_entry_id=n["call_entry_id"],
                    text=n.get("text", ""),
                    position=NotePosition(n.get("position", NotePosition.AFTER.value)),
                )
                for n in data.get("notes", [])
            ],
        )


def save_edit_state(state: SequenceEditState, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(state.to_dict(), indent=2), encoding="utf-8")


def load_edit_state(path: Path) -> SequenceEditState:
    """Read an edit state file; a missing file is an empty state."""
    if not path.exists():
        return SequenceEditState()
    data = json.loads(path.read_text(encoding="utf-8"))
    return SequenceEditState.from_dict(data)
