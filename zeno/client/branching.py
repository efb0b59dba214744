"""
MESSAGE TREE
============

Arena of a conversation's messages indexed by id, plus a parent -> children
index kept up to date on insert. Messages sharing a parent are alternative
branches (regenerations, edits) of the same turn; root messages hang off the
ROOT sentinel.

The active path is the walk from ROOT that follows, at every level, the child
chosen in a branch selection map (parent id or ROOT -> child index). Missing
entries mean the first child; out-of-range entries clamp to the last child.
"""

from typing import Dict, Iterable, List, Mapping, Optional

from zeno.models import Message

ROOT = "root"


def selection_key(parent_id: Optional[str]) -> str:
    return ROOT if parent_id is None else parent_id


def clamp(index: int, count: int) -> int:
    if count <= 0:
        return 0
    return max(0, min(int(index), count - 1))


class MessageTree:

    def __init__(self, messages: Iterable[Message] = ()):
        self._by_id: Dict[str, Message] = {}
        self._children: Dict[str, List[str]] = {}
        for message in messages:
            self.add(message)

    def __contains__(self, message_id: str) -> bool:
        return message_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def add(self, message: Message) -> int:
        """Index a message; returns its position among its siblings."""
        if message.id in self._by_id:
            raise ValueError(f"Duplicate message id: {message.id}")
        self._by_id[message.id] = message
        siblings = self._children.setdefault(selection_key(message.parent_id), [])
        siblings.append(message.id)
        return len(siblings) - 1

    def get(self, message_id: str) -> Optional[Message]:
        return self._by_id.get(message_id)

    def children(self, parent_id: Optional[str]) -> List[Message]:
        return [self._by_id[i] for i in self._children.get(selection_key(parent_id), [])]

    def child_count(self, parent_id: Optional[str]) -> int:
        return len(self._children.get(selection_key(parent_id), []))

    def sibling_position(self, message_id: str) -> int:
        message = self._by_id[message_id]
        return self._children[selection_key(message.parent_id)].index(message_id)

    def active_path(self, selection: Mapping[str, int]) -> List[Message]:
        path: List[Message] = []
        seen = set()
        parent_id: Optional[str] = None
        while True:
            key = selection_key(parent_id)
            child_ids = self._children.get(key)
            if not child_ids:
                break
            chosen = child_ids[clamp(selection.get(key, 0), len(child_ids))]
            if chosen in seen:
                # Corrupt snapshot with a parent cycle.
                break
            seen.add(chosen)
            path.append(self._by_id[chosen])
            parent_id = chosen
        return path
