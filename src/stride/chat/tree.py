"""Threaded chat message tree.

Messages are stored flat; the tree is rebuilt from rows on load and then
patched in place as live events arrive.  The tree is an arena: a dict of
``id -> node`` where each node holds its effective parent id and an
ordered list of child ids, so no patch needs to copy the forest.

Ordering rules:

- Replies are always ordered by ascending ``created_at``.
- Roots are ordered by the active :class:`SortOrder` when the tree is
  built or re-sorted.  Between explicit re-sorts, new roots are placed
  in sorted position only for recency sorts (``new``/``old``); for vote
  sorts they are appended so the list does not jump under the reader.
- An update that keeps a message under the same parent keeps its slot.

A reply whose parent is not (yet) known is shown as a root.  It is
remembered as an orphan and moved under its parent when that parent
arrives.  Self-parented messages and parent cycles are shown as roots
so that no message is ever dropped.
"""

from __future__ import annotations

import bisect
import enum
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, field_validator

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator


class SortOrder(enum.Enum):
    """Root ordering modes."""

    BEST = "best"
    TOP = "top"
    NEW = "new"
    OLD = "old"

    @property
    def recency_based(self) -> bool:
        return self in (SortOrder.NEW, SortOrder.OLD)


class ChatMessage(BaseModel):
    """A validated message row as seen by one viewer."""

    id: str
    content: str
    created_at: datetime
    user_id: str
    channel: str
    parent_id: str | None = None
    vote_count: int = 0
    image_url: str | None = None
    user_vote: int | None = None
    author_name: str | None = None
    author_avatar: str | None = None

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    @field_validator("user_vote")
    @classmethod
    def _vote(cls, value: int | None) -> int | None:
        if value not in (None, 1, -1):
            msg = "user_vote must be 1, -1 or null"
            raise ValueError(msg)
        return value


@dataclass
class _Node:
    message: ChatMessage
    parent: str | None = None
    children: list[str] = field(default_factory=list)


def _reply_key(message: ChatMessage) -> tuple[float, str]:
    return (message.created_at.timestamp(), message.id)


def _root_key(sort: SortOrder) -> Callable[[ChatMessage], tuple[Any, ...]]:
    if sort is SortOrder.BEST:
        return lambda m: (-m.vote_count, -m.created_at.timestamp(), m.id)
    if sort is SortOrder.TOP:
        return lambda m: (-max(m.vote_count, 0), -m.created_at.timestamp(), m.id)
    if sort is SortOrder.NEW:
        return lambda m: (-m.created_at.timestamp(), m.id)
    return lambda m: (m.created_at.timestamp(), m.id)


class MessageTree:
    """Arena-backed forest of chat messages for one channel view."""

    def __init__(self, sort: SortOrder = SortOrder.BEST) -> None:
        self._nodes: dict[str, _Node] = {}
        self._roots: list[str] = []
        # parent_id -> roots that name that parent but are not attached to it
        self._orphans: dict[str, list[str]] = {}
        self.sort = sort

    @classmethod
    def build(
        cls,
        messages: Iterable[ChatMessage],
        sort: SortOrder = SortOrder.BEST,
    ) -> MessageTree:
        """Build a forest from flat, unordered rows.

        A repeated id keeps the last row seen.
        """
        tree = cls(sort)
        latest: dict[str, ChatMessage] = {}
        for message in messages:
            latest[message.id] = message

        parents: dict[str, str | None] = {}
        for mid, message in latest.items():
            pid = message.parent_id
            if pid is None or pid == mid or pid not in latest:
                pid = None
            parents[mid] = pid
        _break_cycles(parents)

        for mid, message in latest.items():
            tree._nodes[mid] = _Node(message, parents[mid])
        for mid, message in latest.items():
            pid = parents[mid]
            if pid is None:
                tree._roots.append(mid)
                if message.parent_id is not None and message.parent_id not in latest:
                    tree._orphans.setdefault(message.parent_id, []).append(mid)
            else:
                tree._nodes[pid].children.append(mid)

        for node in tree._nodes.values():
            node.children.sort(key=lambda c: _reply_key(tree._nodes[c].message))
        tree.resort()
        return tree

    # ── Queries ──────────────────────────────────────────────────

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, message_id: str) -> ChatMessage | None:
        node = self._nodes.get(message_id)
        return node.message if node is not None else None

    @property
    def root_ids(self) -> list[str]:
        return list(self._roots)

    @property
    def roots(self) -> list[ChatMessage]:
        return [self._nodes[r].message for r in self._roots]

    def reply_ids(self, message_id: str) -> list[str]:
        return list(self._nodes[message_id].children)

    def replies(self, message_id: str) -> list[ChatMessage]:
        return [self._nodes[c].message for c in self._nodes[message_id].children]

    def parent_of(self, message_id: str) -> str | None:
        """Effective parent in the tree (``None`` for roots)."""
        return self._nodes[message_id].parent

    def walk(self) -> Iterator[tuple[int, ChatMessage]]:
        """Depth-first, pre-order traversal yielding ``(depth, message)``."""
        stack = [(0, r) for r in reversed(self._roots)]
        while stack:
            depth, mid = stack.pop()
            node = self._nodes[mid]
            yield depth, node.message
            stack.extend((depth + 1, c) for c in reversed(node.children))

    def to_forest(self) -> list[dict[str, Any]]:
        """JSON-ready nested forest: each message dict carries ``replies``."""
        out = {
            mid: {**node.message.model_dump(mode="json"), "replies": []}
            for mid, node in self._nodes.items()
        }
        for mid, node in self._nodes.items():
            out[mid]["replies"] = [out[c] for c in node.children]
        return [out[r] for r in self._roots]

    def search(
        self,
        query: str = "",
        *,
        only_top_level: bool = False,
        only_replies: bool = False,
        from_date: date | None = None,
        to_date: date | None = None,
        min_votes: int | None = None,
        author: str | None = None,
    ) -> list[ChatMessage]:
        """Filter messages in display order.

        *query* matches content or author name, case-insensitively.
        The date range is inclusive; *to_date* covers its whole day.
        """
        needle = query.strip().lower()
        author_needle = (author or "").strip().lower()
        found: list[ChatMessage] = []
        for _depth, message in self.walk():
            is_root = self._nodes[message.id].parent is None
            if only_top_level and not is_root:
                continue
            if only_replies and is_root:
                continue
            day = message.created_at.date()
            if from_date is not None and day < from_date:
                continue
            if to_date is not None and day > to_date:
                continue
            if min_votes is not None and message.vote_count < min_votes:
                continue
            name = (message.author_name or "").lower()
            if author_needle and author_needle not in name:
                continue
            if needle and needle not in message.content.lower() and needle not in name:
                continue
            found.append(message)
        return found

    # ── Ordering ─────────────────────────────────────────────────

    def resort(self) -> None:
        """Re-sort roots under the active sort order."""
        key = _root_key(self.sort)
        self._roots.sort(key=lambda r: key(self._nodes[r].message))

    def set_sort(self, sort: SortOrder) -> None:
        """Switch the sort order and re-sort roots."""
        self.sort = sort
        self.resort()

    # ── Mutation ─────────────────────────────────────────────────

    def insert(self, message: ChatMessage) -> bool:
        """Add a new message. Returns False if the id is already present."""
        if message.id in self._nodes:
            return False
        node = _Node(message)
        self._nodes[message.id] = node
        self._attach(message.id, self._resolve_parent(message))
        self._adopt_orphans(message.id)
        return True

    def update(self, message: ChatMessage) -> bool:
        """Replace a message, keeping its replies.

        The message moves only if its effective parent changed.  Unknown
        ids are inserted.  Returns True if the message moved.
        """
        node = self._nodes.get(message.id)
        if node is None:
            self.insert(message)
            return True
        new_parent = self._resolve_parent(message)
        old_parent_id = node.message.parent_id
        node.message = message
        if new_parent == node.parent:
            if new_parent is None and old_parent_id != message.parent_id:
                self._forget_orphan(message.id, old_parent_id)
                self._remember_orphan(message)
            return False
        self._detach(message.id, old_parent_id)
        self._attach(message.id, new_parent)
        self._retry_waiting()
        return True

    def remove(self, message_id: str) -> list[str]:
        """Remove a message and its replies. Returns removed ids."""
        node = self._nodes.get(message_id)
        if node is None:
            return []
        self._detach(message_id, node.message.parent_id)
        removed: list[str] = []
        stack = [message_id]
        while stack:
            mid = stack.pop()
            gone = self._nodes.pop(mid)
            removed.append(mid)
            stack.extend(gone.children)
        return removed

    def set_votes(
        self, message_id: str, vote_count: int, user_vote: int | None
    ) -> None:
        """Overwrite a message's vote state in place (no reordering)."""
        node = self._nodes[message_id]
        node.message.vote_count = vote_count
        node.message.user_vote = user_vote

    # ── Internals ────────────────────────────────────────────────

    def _resolve_parent(self, message: ChatMessage) -> str | None:
        pid = message.parent_id
        if pid is None or pid == message.id or pid not in self._nodes:
            return None
        if self._is_descendant(pid, message.id):
            return None
        return pid

    def _is_descendant(self, candidate: str, ancestor: str) -> bool:
        """True if *candidate* sits inside *ancestor*'s subtree."""
        cur: str | None = candidate
        seen: set[str] = set()
        while cur is not None and cur not in seen:
            if cur == ancestor:
                return True
            seen.add(cur)
            cur = self._nodes[cur].parent
        return False

    def _attach(self, message_id: str, parent_id: str | None) -> None:
        node = self._nodes[message_id]
        node.parent = parent_id
        if parent_id is not None:
            siblings = self._nodes[parent_id].children
            pos = bisect.bisect_right(
                siblings,
                _reply_key(node.message),
                key=lambda c: _reply_key(self._nodes[c].message),
            )
            siblings.insert(pos, message_id)
            return
        if self.sort.recency_based:
            key = _root_key(self.sort)
            pos = bisect.bisect_right(
                self._roots,
                key(node.message),
                key=lambda r: key(self._nodes[r].message),
            )
            self._roots.insert(pos, message_id)
        else:
            self._roots.append(message_id)
        self._remember_orphan(node.message)

    def _detach(self, message_id: str, recorded_parent_id: str | None) -> None:
        node = self._nodes[message_id]
        if node.parent is None:
            self._roots.remove(message_id)
            self._forget_orphan(message_id, recorded_parent_id)
        else:
            self._nodes[node.parent].children.remove(message_id)
        node.parent = None

    def _remember_orphan(self, message: ChatMessage) -> None:
        pid = message.parent_id
        if pid is not None and pid != message.id:
            waiting = self._orphans.setdefault(pid, [])
            if message.id not in waiting:
                waiting.append(message.id)

    def _forget_orphan(self, message_id: str, parent_id: str | None) -> None:
        if parent_id is None:
            return
        waiting = self._orphans.get(parent_id)
        if waiting and message_id in waiting:
            waiting.remove(message_id)
            if not waiting:
                del self._orphans[parent_id]

    def _adopt_orphans(self, parent_id: str) -> None:
        """Attach roots waiting on *parent_id*; ones that would close a cycle wait."""
        still_waiting: list[str] = []
        for orphan_id in self._orphans.pop(parent_id, []):
            orphan = self._nodes.get(orphan_id)
            if orphan is None or orphan.parent is not None:
                continue
            if orphan.message.parent_id != parent_id:
                continue
            if self._is_descendant(parent_id, orphan_id):
                still_waiting.append(orphan_id)
                continue
            self._roots.remove(orphan_id)
            self._attach(orphan_id, parent_id)
        if still_waiting:
            self._orphans[parent_id] = still_waiting

    def _retry_waiting(self) -> None:
        """Re-attempt adoptions a move may have unblocked."""
        for parent_id in [p for p in self._orphans if p in self._nodes]:
            self._adopt_orphans(parent_id)


def _break_cycles(parents: dict[str, str | None]) -> None:
    """Promote every member of a parent cycle to a root (in-place)."""
    done: set[str] = set()
    for start in parents:
        path: list[str] = []
        on_path: set[str] = set()
        cur: str | None = start
        while cur is not None and cur not in done:
            if cur in on_path:
                for member in path[path.index(cur) :]:
                    parents[member] = None
                break
            on_path.add(cur)
            path.append(cur)
            cur = parents[cur]
        done.update(path)
