"""Merge live change events into a :class:`~stride.chat.tree.MessageTree`."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from pydantic import ValidationError as PydanticValidationError

from stride.chat.feed import EventKind
from stride.chat.tree import ChatMessage

if TYPE_CHECKING:
    from stride.chat.feed import ChangeEvent
    from stride.chat.tree import MessageTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReconcileResult:
    """What a single event did to the tree."""

    applied: bool
    action: str  # inserted | updated | moved | removed | skipped
    message_id: str | None = None
    reason: str = ""
    removed: tuple[str, ...] = ()


def _skip(reason: str, message_id: str | None = None) -> ReconcileResult:
    return ReconcileResult(False, "skipped", message_id, reason)


class LiveReconciler:
    """Applies INSERT/UPDATE/DELETE events for one channel."""

    def __init__(self, tree: MessageTree, channel: str) -> None:
        self.tree = tree
        self.channel = channel

    def apply(self, event: ChangeEvent) -> ReconcileResult:
        if event.table != "messages" or event.channel != self.channel:
            return _skip("other channel")
        if event.kind is EventKind.DELETE:
            return self._delete(event)

        try:
            message = ChatMessage.model_validate(event.record)
        except PydanticValidationError as e:
            logger.warning(
                "Dropping invalid %s payload on %s: %s",
                event.kind.value,
                self.channel,
                e.errors(include_url=False),
            )
            return _skip("invalid payload", event.record.get("id"))
        if message.channel != self.channel:
            return _skip("other channel", message.id)

        if event.kind is EventKind.INSERT:
            return self._insert(message)
        return self._update(message)

    def _insert(self, message: ChatMessage) -> ReconcileResult:
        # Present already: our own optimistic insert or a replayed event.
        if not self.tree.insert(message):
            return _skip("already present", message.id)
        return ReconcileResult(True, "inserted", message.id)

    def _update(self, message: ChatMessage) -> ReconcileResult:
        current = self.tree.get(message.id)
        if current is None:
            self.tree.insert(message)
            return ReconcileResult(True, "inserted", message.id)
        # The feed carries shared row state only; viewer state stays local.
        keep: dict[str, object] = {"user_vote": current.user_vote}
        if message.author_name is None:
            keep["author_name"] = current.author_name
        if message.author_avatar is None:
            keep["author_avatar"] = current.author_avatar
        moved = self.tree.update(message.model_copy(update=keep))
        return ReconcileResult(True, "moved" if moved else "updated", message.id)

    def _delete(self, event: ChangeEvent) -> ReconcileResult:
        message_id = event.record.get("id")
        if not isinstance(message_id, str):
            logger.warning("Dropping DELETE without id on %s", self.channel)
            return _skip("invalid payload")
        removed = self.tree.remove(message_id)
        if not removed:
            return _skip("unknown message", message_id)
        return ReconcileResult(True, "removed", message_id, removed=tuple(removed))
