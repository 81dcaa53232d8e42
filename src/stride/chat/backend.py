"""Chat persistence backed by the repository, publishing to the change feed.

Every operation runs in its own transaction.  Change events are
published only after the commit succeeds, so subscribers never see a
row that was rolled back.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Protocol

from stride.chat.content import append_image, extract_image_url
from stride.chat.feed import ChangeEvent, EventKind
from stride.chat.tree import ChatMessage
from stride.core.errors import NotFoundError, PermissionDeniedError, ValidationError
from stride.db.repository import Repository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from stride.chat.feed import ChangeFeed
    from stride.db.models import Message, Profile

logger = logging.getLogger(__name__)


class ChatBackend(Protocol):
    """Everything a :class:`~stride.chat.session.ChatSession` needs."""

    async def list_messages(
        self, channel: str, viewer_id: str | None = None
    ) -> list[ChatMessage]: ...

    async def post_message(
        self,
        channel: str,
        user_id: str,
        content: str,
        *,
        parent_id: str | None = None,
        image_url: str | None = None,
    ) -> ChatMessage: ...

    async def delete_message(
        self, message_id: str, user_id: str, *, is_admin: bool = False
    ) -> list[str]: ...

    async def insert_vote(self, message_id: str, user_id: str, vote_type: int) -> int:
        ...

    async def update_vote(self, message_id: str, user_id: str, vote_type: int) -> int:
        ...

    async def delete_vote(self, message_id: str, user_id: str) -> int: ...


def message_record(message: Message, profile: Profile | None = None) -> dict[str, Any]:
    """Shared (viewer independent) JSON state of a message row."""
    record: dict[str, Any] = {
        "id": message.id,
        "content": message.content,
        "created_at": message.created_at.isoformat(),
        "user_id": message.user_id,
        "channel": message.channel,
        "parent_id": message.parent_id,
        "vote_count": message.vote_count,
        "image_url": message.image_url,
    }
    if profile is not None:
        record["author_name"] = profile.full_name
        record["author_avatar"] = profile.avatar_url
    return record


def to_chat_message(
    message: Message,
    profile: Profile | None = None,
    user_vote: int | None = None,
) -> ChatMessage:
    return ChatMessage(
        id=message.id,
        content=message.content,
        created_at=message.created_at,
        user_id=message.user_id,
        channel=message.channel,
        parent_id=message.parent_id,
        vote_count=message.vote_count,
        image_url=message.image_url,
        user_vote=user_vote,
        author_name=profile.full_name if profile is not None else None,
        author_avatar=profile.avatar_url if profile is not None else None,
    )


class RepositoryChatBackend:
    """:class:`ChatBackend` over the SQL repository and a change feed."""

    def __init__(
        self,
        db_factory: async_sessionmaker[AsyncSession],
        feed: ChangeFeed,
        *,
        fetch_limit: int = 100,
        max_content_length: int = 4000,
    ) -> None:
        self._db_factory = db_factory
        self._feed = feed
        self.fetch_limit = fetch_limit
        self.max_content_length = max_content_length

    async def list_messages(
        self, channel: str, viewer_id: str | None = None
    ) -> list[ChatMessage]:
        """Latest ``fetch_limit`` messages, oldest first, with the viewer's votes."""
        async with self._db_factory() as session:
            repo = Repository(session)
            rows = await repo.list_messages(channel, limit=self.fetch_limit)
            profiles = await repo.get_profiles([m.user_id for m in rows])
            votes: dict[str, int] = {}
            if viewer_id is not None:
                votes = await repo.user_votes(viewer_id, [m.id for m in rows])
        return [
            to_chat_message(m, profiles.get(m.user_id), votes.get(m.id)) for m in rows
        ]

    async def post_message(
        self,
        channel: str,
        user_id: str,
        content: str,
        *,
        parent_id: str | None = None,
        image_url: str | None = None,
    ) -> ChatMessage:
        content = content.strip()
        if not content and image_url is None:
            raise ValidationError("content", "Message cannot be empty")
        if len(content) > self.max_content_length:
            raise ValidationError(
                "content",
                f"Message must be at most {self.max_content_length} characters",
            )
        if image_url is not None and extract_image_url(content) != image_url:
            content = append_image(content, image_url)

        async with self._db_factory() as session:
            repo = Repository(session)
            if parent_id is not None:
                parent = await repo.get_message(parent_id)
                if parent is None:
                    msg = "The message you are replying to no longer exists."
                    raise NotFoundError(msg)
                if parent.channel != channel:
                    raise ValidationError(
                        "parent_id", "Replies must stay in the same channel"
                    )
            message = await repo.create_message(
                channel,
                user_id,
                content,
                parent_id=parent_id,
                image_url=image_url,
            )
            profile = await repo.get_profile(user_id)
            await session.commit()

        logger.debug("Message %s posted to %s", message.id, channel)
        self._feed.publish(
            ChangeEvent(EventKind.INSERT, channel, message_record(message, profile))
        )
        return to_chat_message(message, profile)

    async def delete_message(
        self, message_id: str, user_id: str, *, is_admin: bool = False
    ) -> list[str]:
        """Delete a message and its replies. Authors and admins only."""
        async with self._db_factory() as session:
            repo = Repository(session)
            message = await repo.get_message(message_id)
            if message is None:
                msg = f"Message not found: {message_id}"
                raise NotFoundError(msg)
            if message.user_id != user_id and not is_admin:
                msg = "You can only delete your own messages"
                raise PermissionDeniedError(msg)
            channel = message.channel
            removed = await repo.delete_message(message_id)
            await session.commit()

        logger.info(
            "Message %s deleted by %s (%d removed)", message_id, user_id, len(removed)
        )
        self._feed.publish(
            ChangeEvent(
                EventKind.DELETE,
                channel,
                {"id": message_id, "channel": channel, "removed": removed},
            )
        )
        return removed

    # ── Votes ────────────────────────────────────────────────────

    async def insert_vote(self, message_id: str, user_id: str, vote_type: int) -> int:
        async with self._db_factory() as session:
            repo = Repository(session)
            count = await repo.insert_vote(message_id, user_id, vote_type)
            return await self._commit_vote(session, repo, message_id, count)

    async def update_vote(self, message_id: str, user_id: str, vote_type: int) -> int:
        async with self._db_factory() as session:
            repo = Repository(session)
            count = await repo.update_vote(message_id, user_id, vote_type)
            return await self._commit_vote(session, repo, message_id, count)

    async def delete_vote(self, message_id: str, user_id: str) -> int:
        async with self._db_factory() as session:
            repo = Repository(session)
            count = await repo.delete_vote(message_id, user_id)
            return await self._commit_vote(session, repo, message_id, count)

    async def _commit_vote(
        self,
        session: AsyncSession,
        repo: Repository,
        message_id: str,
        count: int,
    ) -> int:
        message = await repo.get_message(message_id)
        await session.commit()
        if message is not None:
            record = message_record(message)
            record["vote_count"] = count
            self._feed.publish(ChangeEvent(EventKind.UPDATE, message.channel, record))
        return count
