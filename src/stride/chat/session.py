"""One viewer's live view of one chat channel."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from stride.chat.reconciler import LiveReconciler
from stride.chat.tree import MessageTree, SortOrder
from stride.chat.votes import VoteController
from stride.core.errors import AuthError

if TYPE_CHECKING:
    from stride.chat.backend import ChatBackend
    from stride.chat.feed import ChangeEvent
    from stride.chat.reconciler import ReconcileResult
    from stride.chat.tree import ChatMessage
    from stride.chat.votes import VoteOutcome

SIGN_IN_REQUIRED = "Sign in to take part in the chat."


class ChatSession:
    """Owns the tree, the reconciler and the vote controller for a view.

    ``viewer_id`` may be ``None`` for a read-only view.
    """

    def __init__(
        self,
        channel: str,
        viewer_id: str | None,
        backend: ChatBackend,
        *,
        sort: SortOrder = SortOrder.BEST,
        is_admin: bool = False,
    ) -> None:
        self.channel = channel
        self.viewer_id = viewer_id
        self.backend = backend
        self.is_admin = is_admin
        self._bind(MessageTree(sort))

    def _bind(self, tree: MessageTree) -> None:
        self.tree = tree
        self.reconciler = LiveReconciler(tree, self.channel)
        self.votes = (
            VoteController(tree, self.backend, self.viewer_id)
            if self.viewer_id is not None
            else None
        )

    def _require_viewer(self) -> str:
        if self.viewer_id is None:
            raise AuthError(SIGN_IN_REQUIRED)
        return self.viewer_id

    @property
    def sort(self) -> SortOrder:
        return self.tree.sort

    async def load(self) -> None:
        """(Re)build the tree from the backend."""
        rows = await self.backend.list_messages(self.channel, self.viewer_id)
        self._bind(MessageTree.build(rows, self.tree.sort))

    async def post(
        self,
        content: str,
        *,
        parent_id: str | None = None,
        image_url: str | None = None,
    ) -> ChatMessage:
        user_id = self._require_viewer()
        message = await self.backend.post_message(
            self.channel,
            user_id,
            content,
            parent_id=parent_id,
            image_url=image_url,
        )
        # Inserted now, so the feed echo of this row is skipped.
        self.tree.insert(message)
        return message

    async def vote(self, message_id: str, vote_type: int) -> VoteOutcome:
        if self.votes is None:
            raise AuthError(SIGN_IN_REQUIRED)
        return await self.votes.vote(message_id, vote_type)

    async def delete(self, message_id: str) -> list[str]:
        user_id = self._require_viewer()
        removed = await self.backend.delete_message(
            message_id, user_id, is_admin=self.is_admin
        )
        self.tree.remove(message_id)
        return removed

    def set_sort(self, sort: SortOrder) -> None:
        self.tree.set_sort(sort)

    def apply(self, event: ChangeEvent) -> ReconcileResult:
        return self.reconciler.apply(event)

    def view(self) -> list[dict[str, Any]]:
        return self.tree.to_forest()

    def search(self, query: str = "", **filters: Any) -> list[ChatMessage]:
        return self.tree.search(query, **filters)

    def message_json(self, message_id: str) -> dict[str, Any] | None:
        message = self.tree.get(message_id)
        return message.model_dump(mode="json") if message is not None else None

