"""Repository: all database access for stride.

All mutating methods add objects to the session and flush, but do NOT
commit.  The caller controls transaction boundaries via
``session.commit()``.  Integrity failures raised during a flush are
translated into :class:`ForeignKeyViolationError` or
:class:`UniqueViolationError`; the session must then be rolled back.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from stride.core.errors import (
    ConstraintViolationError,
    ForeignKeyViolationError,
    NotFoundError,
    StorageError,
    UniqueViolationError,
)
from stride.db.models import (
    AuthCode,
    Comment,
    CommentLike,
    Message,
    MessageVote,
    Notification,
    NotificationPreference,
    Profile,
    ScheduledWorkout,
    SharedAchievement,
    SharedItemLike,
    SharedWorkout,
    SocialFollow,
    User,
    UserAchievement,
    UserStreak,
    Workout,
    WorkoutProgress,
    _utcnow,
    as_utc,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

_PG_FOREIGN_KEY = "23503"
_PG_UNIQUE = "23505"

NOTIFICATION_TYPES = (
    "achievement",
    "friend_request",
    "friend_activity",
    "streak",
    "milestone",
)

SHARED_ITEM_TYPES = ("workout", "achievement")

_SHARED_MODELS: dict[str, type[SharedWorkout] | type[SharedAchievement]] = {
    "workout": SharedWorkout,
    "achievement": SharedAchievement,
}


def translate_integrity_error(e: IntegrityError) -> StorageError:
    """Map a driver integrity error onto the storage error hierarchy."""
    orig = e.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    text = str(orig).lower()
    if code == _PG_FOREIGN_KEY or "foreign key" in text:
        return ForeignKeyViolationError(str(orig))
    if code == _PG_UNIQUE or "unique" in text:
        return UniqueViolationError(str(orig))
    return ConstraintViolationError(str(orig))


class Repository:
    """Async repository over one session."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _flush(self) -> None:
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise translate_integrity_error(e) from e

    # ── Users ────────────────────────────────────────────────────

    async def create_user(
        self,
        email: str,
        password_hash: str,
        *,
        role: str = "member",
        confirmed: bool = False,
    ) -> User:
        """Create a user. Raises UniqueViolationError on duplicate email."""
        user = User(
            email=email.lower(),
            password_hash=password_hash,
            role=role,
            confirmed_at=_utcnow() if confirmed else None,
        )
        self._session.add(user)
        await self._flush()
        return user

    async def get_user(self, user_id: str) -> User | None:
        return await self._session.get(User, user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        stmt = select(User).where(User.email == email.lower())
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_users(self) -> list[User]:
        result = await self._session.execute(select(User).order_by(User.created_at))
        return list(result.scalars().all())

    async def delete_user(self, user_id: str) -> None:
        """Delete a user; dependent rows go with it via FK cascade."""
        user = await self._session.get(User, user_id)
        if user is None:
            msg = f"User not found: {user_id}"
            raise NotFoundError(msg)
        await self._session.delete(user)
        await self._flush()

    # ── Auth codes ───────────────────────────────────────────────

    async def create_auth_code(
        self,
        user_id: str,
        code: str,
        *,
        ttl: timedelta,
        redirect_to: str | None = None,
    ) -> AuthCode:
        auth_code = AuthCode(
            code=code,
            user_id=user_id,
            redirect_to=redirect_to,
            expires_at=_utcnow() + ttl,
        )
        self._session.add(auth_code)
        await self._flush()
        return auth_code

    async def consume_auth_code(self, code: str) -> AuthCode:
        """Mark *code* used and return it.

        Raises:
            NotFoundError: Unknown or already used code.
            StorageError: The code has expired.
        """
        auth_code = await self._session.get(AuthCode, code)
        if auth_code is None or auth_code.used_at is not None:
            msg = "Unknown or already used code"
            raise NotFoundError(msg)
        if as_utc(auth_code.expires_at) < _utcnow():
            msg = "Code expired"
            raise StorageError(msg)
        auth_code.used_at = _utcnow()
        user = await self._session.get(User, auth_code.user_id)
        if user is not None and user.confirmed_at is None:
            user.confirmed_at = auth_code.used_at
        await self._flush()
        return auth_code

    # ── Profiles ─────────────────────────────────────────────────

    async def create_profile(
        self,
        user_id: str,
        email: str,
        full_name: str,
        *,
        stripe_customer_id: str | None = None,
    ) -> Profile:
        profile = Profile(
            id=user_id,
            email=email.lower(),
            full_name=full_name,
            stripe_customer_id=stripe_customer_id,
        )
        self._session.add(profile)
        await self._flush()
        return profile

    async def get_profile(self, user_id: str) -> Profile | None:
        return await self._session.get(Profile, user_id)

    async def get_profile_by_customer(self, customer_id: str) -> Profile | None:
        stmt = select(Profile).where(Profile.stripe_customer_id == customer_id)
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def get_profile_by_email(self, email: str) -> Profile | None:
        stmt = select(Profile).where(Profile.email == email.lower())
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def get_profiles(self, user_ids: list[str]) -> dict[str, Profile]:
        """Batch-load profiles keyed by user id."""
        if not user_ids:
            return {}
        stmt = select(Profile).where(Profile.id.in_(set(user_ids)))
        result = await self._session.execute(stmt)
        return {p.id: p for p in result.scalars().all()}

    async def update_profile(self, user_id: str, **fields: Any) -> Profile:
        profile = await self._session.get(Profile, user_id)
        if profile is None:
            msg = f"Profile not found: {user_id}"
            raise NotFoundError(msg)
        for key, value in fields.items():
            setattr(profile, key, value)
        await self._flush()
        return profile

    # ── Messages ─────────────────────────────────────────────────

    async def create_message(
        self,
        channel: str,
        user_id: str,
        content: str,
        *,
        parent_id: str | None = None,
        image_url: str | None = None,
    ) -> Message:
        """Insert a message. A missing parent raises ForeignKeyViolationError."""
        message = Message(
            channel=channel,
            user_id=user_id,
            content=content,
            parent_id=parent_id,
            image_url=image_url,
            vote_count=0,
        )
        self._session.add(message)
        await self._flush()
        return message

    async def get_message(self, message_id: str) -> Message | None:
        return await self._session.get(Message, message_id)

    async def list_messages(self, channel: str, *, limit: int = 100) -> list[Message]:
        """The latest *limit* messages of *channel*, oldest first."""
        stmt = (
            select(Message)
            .where(Message.channel == channel)
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        rows = list(result.scalars().all())
        rows.reverse()
        return rows

    async def subtree_ids(self, message_id: str) -> list[str]:
        """Ids of *message_id* and all its descendants, breadth first."""
        found = [message_id]
        frontier = [message_id]
        while frontier:
            stmt = select(Message.id).where(Message.parent_id.in_(frontier))
            result = await self._session.execute(stmt)
            frontier = [i for i in result.scalars().all() if i not in found]
            found.extend(frontier)
        return found

    async def delete_message(self, message_id: str) -> list[str]:
        """Delete a message and its replies. Returns the deleted ids."""
        message = await self._session.get(Message, message_id)
        if message is None:
            msg = f"Message not found: {message_id}"
            raise NotFoundError(msg)
        ids = await self.subtree_ids(message_id)
        # Children first so backends without cascading FKs also succeed.
        for doomed in reversed(ids):
            await self._session.execute(
                delete(MessageVote).where(MessageVote.message_id == doomed)
            )
            await self._session.execute(delete(Message).where(Message.id == doomed))
        await self._flush()
        return ids

    # ── Votes ────────────────────────────────────────────────────

    async def get_vote(self, message_id: str, user_id: str) -> MessageVote | None:
        stmt = select(MessageVote).where(
            MessageVote.message_id == message_id,
            MessageVote.user_id == user_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def user_votes(self, user_id: str, message_ids: list[str]) -> dict[str, int]:
        """The viewer's own votes on *message_ids*."""
        if not message_ids:
            return {}
        stmt = select(MessageVote.message_id, MessageVote.vote_type).where(
            MessageVote.user_id == user_id,
            MessageVote.message_id.in_(message_ids),
        )
        result = await self._session.execute(stmt)
        return {row.message_id: row.vote_type for row in result}

    async def _adjust_vote_count(self, message_id: str, delta: int) -> int:
        await self._session.execute(
            update(Message)
            .where(Message.id == message_id)
            .values(vote_count=Message.vote_count + delta)
        )
        result = await self._session.execute(
            select(Message.vote_count).where(Message.id == message_id)
        )
        count = result.scalar_one_or_none()
        if count is None:
            msg = f"Message not found: {message_id}"
            raise ForeignKeyViolationError(msg)
        return count

    async def insert_vote(self, message_id: str, user_id: str, vote_type: int) -> int:
        """Record a first vote. Returns the message's new vote count."""
        self._session.add(
            MessageVote(message_id=message_id, user_id=user_id, vote_type=vote_type)
        )
        await self._flush()
        return await self._adjust_vote_count(message_id, vote_type)

    async def update_vote(self, message_id: str, user_id: str, vote_type: int) -> int:
        """Change an existing vote. Returns the message's new vote count."""
        vote = await self.get_vote(message_id, user_id)
        if vote is None:
            msg = f"No vote by {user_id} on {message_id}"
            raise NotFoundError(msg)
        delta = vote_type - vote.vote_type
        vote.vote_type = vote_type
        await self._flush()
        return await self._adjust_vote_count(message_id, delta)

    async def delete_vote(self, message_id: str, user_id: str) -> int:
        """Withdraw a vote. Returns the message's new vote count."""
        vote = await self.get_vote(message_id, user_id)
        if vote is None:
            msg = f"No vote by {user_id} on {message_id}"
            raise NotFoundError(msg)
        delta = -vote.vote_type
        await self._session.delete(vote)
        await self._flush()
        return await self._adjust_vote_count(message_id, delta)

    # ── Workouts ─────────────────────────────────────────────────

    async def create_workout(
        self,
        title: str,
        *,
        description: str = "",
        difficulty: str = "beginner",
        duration_seconds: int = 0,
        video_url: str | None = None,
    ) -> Workout:
        workout = Workout(
            title=title,
            description=description,
            difficulty=difficulty,
            duration_seconds=duration_seconds,
            video_url=video_url,
        )
        self._session.add(workout)
        await self._flush()
        return workout

    async def get_workout(self, workout_id: str) -> Workout | None:
        return await self._session.get(Workout, workout_id)

    async def list_workouts(self, *, difficulty: str | None = None) -> list[Workout]:
        stmt = select(Workout).order_by(Workout.created_at, Workout.id)
        if difficulty is not None:
            stmt = stmt.where(Workout.difficulty == difficulty)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def record_progress(
        self,
        user_id: str,
        workout_id: str,
        *,
        duration_seconds: int,
        rating: int | None = None,
        notes: str | None = None,
        completed_at: datetime | None = None,
    ) -> WorkoutProgress:
        progress = WorkoutProgress(
            user_id=user_id,
            workout_id=workout_id,
            duration_seconds=duration_seconds,
            rating=rating,
            notes=notes,
            completed_at=completed_at or _utcnow(),
        )
        self._session.add(progress)
        await self._flush()
        return progress

    async def list_progress(
        self, user_id: str, *, limit: int | None = None
    ) -> list[tuple[WorkoutProgress, Workout]]:
        """Completed sessions with their workouts, most recent first."""
        stmt = (
            select(WorkoutProgress, Workout)
            .join(Workout, Workout.id == WorkoutProgress.workout_id)
            .where(WorkoutProgress.user_id == user_id)
            .order_by(WorkoutProgress.completed_at.desc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    # ── Achievements & streaks ───────────────────────────────────

    async def list_achievement_ids(self, user_id: str) -> set[str]:
        stmt = select(UserAchievement.achievement_id).where(
            UserAchievement.user_id == user_id
        )
        result = await self._session.execute(stmt)
        return set(result.scalars().all())

    async def grant_achievement(
        self, user_id: str, achievement_id: str
    ) -> UserAchievement:
        earned = UserAchievement(user_id=user_id, achievement_id=achievement_id)
        self._session.add(earned)
        await self._flush()
        return earned

    async def save_streak(
        self,
        user_id: str,
        *,
        current: int,
        best: int,
        last_workout_date: date | None,
    ) -> UserStreak:
        streak = await self._session.get(UserStreak, user_id)
        if streak is None:
            streak = UserStreak(user_id=user_id)
            self._session.add(streak)
        streak.current_streak = current
        streak.best_streak = best
        streak.last_workout_date = last_workout_date
        await self._flush()
        return streak

    # ── Notifications ────────────────────────────────────────────

    async def create_notification(
        self,
        user_id: str,
        type: str,  # noqa: A002
        title: str,
        message: str,
        *,
        data: dict[str, Any] | None = None,
    ) -> Notification:
        if type not in NOTIFICATION_TYPES:
            msg = f"Unknown notification type: {type}"
            raise StorageError(msg)
        notification = Notification(
            user_id=user_id, type=type, title=title, message=message, data=data
        )
        self._session.add(notification)
        await self._flush()
        return notification

    async def list_notifications(
        self, user_id: str, *, unread_only: bool = False, limit: int = 50
    ) -> list[Notification]:
        """Notifications newest first."""
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        if unread_only:
            stmt = stmt.where(Notification.read == False)  # noqa: E712
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def mark_notification_read(self, user_id: str, notification_id: str) -> None:
        notification = await self._session.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            msg = f"Notification not found: {notification_id}"
            raise NotFoundError(msg)
        notification.read = True
        await self._flush()

    async def mark_all_notifications_read(self, user_id: str) -> int:
        result = await self._session.execute(
            update(Notification)
            .where(
                Notification.user_id == user_id,
                Notification.read == False,  # noqa: E712
            )
            .values(read=True)
        )
        return result.rowcount or 0

    async def get_preferences(self, user_id: str) -> NotificationPreference:
        """Stored preferences, or an unsaved all-enabled default."""
        prefs = await self._session.get(NotificationPreference, user_id)
        if prefs is None:
            prefs = NotificationPreference(
                user_id=user_id,
                **dict.fromkeys(NOTIFICATION_TYPES, True),
            )
        return prefs

    async def save_preferences(
        self, user_id: str, **switches: bool
    ) -> NotificationPreference:
        prefs = await self._session.get(NotificationPreference, user_id)
        if prefs is None:
            prefs = NotificationPreference(
                user_id=user_id,
                **dict.fromkeys(NOTIFICATION_TYPES, True),
            )
            self._session.add(prefs)
        for key, value in switches.items():
            if key not in NOTIFICATION_TYPES:
                msg = f"Unknown notification type: {key}"
                raise StorageError(msg)
            setattr(prefs, key, value)
        await self._flush()
        return prefs

    # ── Social ───────────────────────────────────────────────────

    async def is_following(self, follower_id: str, following_id: str) -> bool:
        stmt = select(SocialFollow.id).where(
            SocialFollow.follower_id == follower_id,
            SocialFollow.following_id == following_id,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def follow(self, follower_id: str, following_id: str) -> SocialFollow:
        follow = SocialFollow(follower_id=follower_id, following_id=following_id)
        self._session.add(follow)
        await self._flush()
        return follow

    async def unfollow(self, follower_id: str, following_id: str) -> None:
        await self._session.execute(
            delete(SocialFollow).where(
                SocialFollow.follower_id == follower_id,
                SocialFollow.following_id == following_id,
            )
        )

    async def follow_counts(self, user_id: str) -> tuple[int, int]:
        """Return ``(followers, following)`` for *user_id*."""
        followers = await self._session.execute(
            select(func.count())
            .select_from(SocialFollow)
            .where(SocialFollow.following_id == user_id)
        )
        following = await self._session.execute(
            select(func.count())
            .select_from(SocialFollow)
            .where(SocialFollow.follower_id == user_id)
        )
        return followers.scalar_one(), following.scalar_one()

    async def following_ids(self, user_id: str) -> list[str]:
        stmt = select(SocialFollow.following_id).where(
            SocialFollow.follower_id == user_id
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def follower_ids(self, user_id: str) -> list[str]:
        stmt = select(SocialFollow.follower_id).where(
            SocialFollow.following_id == user_id
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def search_profiles(
        self, query: str, *, exclude: str | None = None, limit: int = 20
    ) -> list[Profile]:
        """Profiles whose name or email contains *query*, case-insensitively."""
        pattern = f"%{query.strip()}%"
        stmt = (
            select(Profile)
            .where(
                or_(Profile.full_name.ilike(pattern), Profile.email.ilike(pattern))
            )
            .order_by(Profile.full_name, Profile.id)
            .limit(limit)
        )
        if exclude is not None:
            stmt = stmt.where(Profile.id != exclude)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    # ── Sharing ──────────────────────────────────────────────────

    async def share_workout(
        self,
        user_id: str,
        workout_id: str,
        *,
        duration_seconds: int,
        rating: int | None = None,
        notes: str | None = None,
    ) -> SharedWorkout:
        shared = SharedWorkout(
            user_id=user_id,
            workout_id=workout_id,
            duration_seconds=duration_seconds,
            rating=rating,
            notes=notes,
            likes_count=0,
            comments_count=0,
        )
        self._session.add(shared)
        await self._flush()
        return shared

    async def share_achievement(
        self, user_id: str, achievement_id: str
    ) -> SharedAchievement:
        shared = SharedAchievement(
            user_id=user_id,
            achievement_id=achievement_id,
            likes_count=0,
            comments_count=0,
        )
        self._session.add(shared)
        await self._flush()
        return shared

    async def get_shared_item(
        self, item_type: str, item_id: str
    ) -> SharedWorkout | SharedAchievement | None:
        model = _SHARED_MODELS.get(item_type)
        if model is None:
            msg = f"Unknown item type: {item_type}"
            raise StorageError(msg)
        return await self._session.get(model, item_id)

    async def list_shared_workouts(
        self, user_ids: list[str], *, limit: int = 20
    ) -> list[tuple[SharedWorkout, Workout]]:
        """Workouts shared by *user_ids*, newest first."""
        if not user_ids:
            return []
        stmt = (
            select(SharedWorkout, Workout)
            .join(Workout, Workout.id == SharedWorkout.workout_id)
            .where(SharedWorkout.user_id.in_(user_ids))
            .order_by(SharedWorkout.shared_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def list_shared_achievements(
        self, user_ids: list[str], *, limit: int = 20
    ) -> list[SharedAchievement]:
        if not user_ids:
            return []
        stmt = (
            select(SharedAchievement)
            .where(SharedAchievement.user_id.in_(user_ids))
            .order_by(SharedAchievement.shared_at.desc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def toggle_item_like(
        self, item_type: str, item_id: str, user_id: str
    ) -> tuple[bool, int]:
        """Like a shared item, or unlike it if already liked.

        Returns ``(liked, likes_count)``.
        """
        item = await self.get_shared_item(item_type, item_id)
        if item is None:
            msg = f"Shared {item_type} not found: {item_id}"
            raise NotFoundError(msg)
        stmt = select(SharedItemLike).where(
            SharedItemLike.item_type == item_type,
            SharedItemLike.item_id == item_id,
            SharedItemLike.user_id == user_id,
        )
        existing = (await self._session.execute(stmt)).scalar_one_or_none()
        if existing is not None:
            await self._session.delete(existing)
            item.likes_count = max(0, item.likes_count - 1)
        else:
            self._session.add(
                SharedItemLike(item_type=item_type, item_id=item_id, user_id=user_id)
            )
            item.likes_count += 1
        await self._flush()
        return existing is None, item.likes_count

    async def liked_item_ids(
        self, user_id: str, item_type: str, item_ids: list[str]
    ) -> set[str]:
        if not item_ids:
            return set()
        stmt = select(SharedItemLike.item_id).where(
            SharedItemLike.user_id == user_id,
            SharedItemLike.item_type == item_type,
            SharedItemLike.item_id.in_(item_ids),
        )
        result = await self._session.execute(stmt)
        return set(result.scalars().all())

    # ── Comments ─────────────────────────────────────────────────

    async def create_comment(
        self,
        item_type: str,
        item_id: str,
        user_id: str,
        content: str,
        *,
        parent_id: str | None = None,
    ) -> Comment:
        """Comment on a shared item and bump its ``comments_count``."""
        item = await self.get_shared_item(item_type, item_id)
        if item is None:
            msg = f"Shared {item_type} not found: {item_id}"
            raise NotFoundError(msg)
        comment = Comment(
            item_type=item_type,
            item_id=item_id,
            user_id=user_id,
            content=content,
            parent_id=parent_id,
            likes_count=0,
        )
        self._session.add(comment)
        item.comments_count += 1
        await self._flush()
        return comment

    async def get_comment(self, comment_id: str) -> Comment | None:
        return await self._session.get(Comment, comment_id)

    async def list_comments(self, item_type: str, item_id: str) -> list[Comment]:
        """All comments on an item, oldest first."""
        stmt = (
            select(Comment)
            .where(Comment.item_type == item_type, Comment.item_id == item_id)
            .order_by(Comment.created_at, Comment.id)
        )
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def edit_comment(self, comment_id: str, content: str) -> Comment:
        comment = await self._session.get(Comment, comment_id)
        if comment is None:
            msg = f"Comment not found: {comment_id}"
            raise NotFoundError(msg)
        comment.content = content
        comment.updated_at = _utcnow()
        await self._flush()
        return comment

    async def delete_comment(self, comment_id: str) -> list[str]:
        """Delete a comment and its replies. Returns the deleted ids."""
        comment = await self._session.get(Comment, comment_id)
        if comment is None:
            msg = f"Comment not found: {comment_id}"
            raise NotFoundError(msg)
        found = [comment_id]
        frontier = [comment_id]
        while frontier:
            stmt = select(Comment.id).where(Comment.parent_id.in_(frontier))
            result = await self._session.execute(stmt)
            frontier = [i for i in result.scalars().all() if i not in found]
            found.extend(frontier)

        item = await self.get_shared_item(comment.item_type, comment.item_id)
        for doomed in reversed(found):
            await self._session.execute(
                delete(CommentLike).where(CommentLike.comment_id == doomed)
            )
            await self._session.execute(delete(Comment).where(Comment.id == doomed))
        if item is not None:
            item.comments_count = max(0, item.comments_count - len(found))
        await self._flush()
        return found

    async def toggle_comment_like(
        self, comment_id: str, user_id: str
    ) -> tuple[bool, int]:
        """Like a comment, or unlike it if already liked.

        Returns ``(liked, likes_count)``.
        """
        comment = await self._session.get(Comment, comment_id)
        if comment is None:
            msg = f"Comment not found: {comment_id}"
            raise NotFoundError(msg)
        stmt = select(CommentLike).where(
            CommentLike.comment_id == comment_id, CommentLike.user_id == user_id
        )
        existing = (await self._session.execute(stmt)).scalar_one_or_none()
        if existing is not None:
            await self._session.delete(existing)
            comment.likes_count = max(0, comment.likes_count - 1)
        else:
            self._session.add(CommentLike(comment_id=comment_id, user_id=user_id))
            comment.likes_count += 1
        await self._flush()
        return existing is None, comment.likes_count

    async def liked_comment_ids(self, user_id: str, comment_ids: list[str]) -> set[str]:
        if not comment_ids:
            return set()
        stmt = select(CommentLike.comment_id).where(
            CommentLike.user_id == user_id,
            CommentLike.comment_id.in_(comment_ids),
        )
        result = await self._session.execute(stmt)
        return set(result.scalars().all())

    # ── Schedule ─────────────────────────────────────────────────

    async def schedule_workout(
        self, user_id: str, workout_id: str, scheduled_for: datetime
    ) -> ScheduledWorkout:
        entry = ScheduledWorkout(
            user_id=user_id,
            workout_id=workout_id,
            scheduled_for=scheduled_for,
            completed=False,
        )
        self._session.add(entry)
        await self._flush()
        return entry

    async def list_schedule(
        self, user_id: str
    ) -> list[tuple[ScheduledWorkout, Workout]]:
        """A user's scheduled workouts, soonest first."""
        stmt = (
            select(ScheduledWorkout, Workout)
            .join(Workout, Workout.id == ScheduledWorkout.workout_id)
            .where(ScheduledWorkout.user_id == user_id)
            .order_by(ScheduledWorkout.scheduled_for)
        )
        result = await self._session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def _own_schedule_entry(
        self, user_id: str, schedule_id: str
    ) -> ScheduledWorkout:
        entry = await self._session.get(ScheduledWorkout, schedule_id)
        if entry is None or entry.user_id != user_id:
            msg = f"Scheduled workout not found: {schedule_id}"
            raise NotFoundError(msg)
        return entry

    async def complete_scheduled(
        self, user_id: str, schedule_id: str
    ) -> ScheduledWorkout:
        entry = await self._own_schedule_entry(user_id, schedule_id)
        entry.completed = True
        await self._flush()
        return entry

    async def delete_scheduled(self, user_id: str, schedule_id: str) -> None:
        entry = await self._own_schedule_entry(user_id, schedule_id)
        await self._session.delete(entry)
        await self._flush()
