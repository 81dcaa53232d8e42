"""Optimistic vote controller.

A vote is applied to the local tree immediately, then persisted.  If
persistence fails the message's ``vote_count`` and ``user_vote`` are
restored to their pre-vote values and :class:`VoteError` is raised with
a message fit for display.  Concurrent votes by the same viewer are not
coalesced: the last write wins and the ``(message_id, user_id)`` unique
constraint decides the final server state.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from stride.core.errors import (
    ForeignKeyViolationError,
    StrideError,
    UniqueViolationError,
    VoteError,
)

if TYPE_CHECKING:
    from stride.chat.tree import MessageTree

logger = logging.getLogger(__name__)

MESSAGE_GONE = "This message no longer exists."
ALREADY_VOTED = "Your vote is already recorded for this message."
VOTE_FAILED = "Could not save your vote. Please try again."


class VoteAction(enum.Enum):
    """How a vote click is persisted."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class VotePlan:
    action: VoteAction
    delta: int
    new_vote: int | None


@dataclass(frozen=True, slots=True)
class VoteOutcome:
    message_id: str
    vote_count: int
    user_vote: int | None


class VoteStore(Protocol):
    """Persistence for votes. Each call returns the new ``vote_count``."""

    async def insert_vote(self, message_id: str, user_id: str, vote_type: int) -> int:
        ...

    async def update_vote(self, message_id: str, user_id: str, vote_type: int) -> int:
        ...

    async def delete_vote(self, message_id: str, user_id: str) -> int:
        ...


def _check_vote_type(vote_type: int) -> None:
    if vote_type not in (1, -1):
        msg = f"vote_type must be 1 or -1, got {vote_type!r}"
        raise VoteError(msg)


def plan_vote(current: int | None, vote_type: int) -> VotePlan:
    """Decide the persistence action and count delta for a click.

    Same vote again clears it, no vote sets it, the opposite vote
    flips it (a swing of two).
    """
    _check_vote_type(vote_type)
    if current == vote_type:
        return VotePlan(VoteAction.DELETE, -vote_type, None)
    if current is None:
        return VotePlan(VoteAction.INSERT, vote_type, vote_type)
    return VotePlan(VoteAction.UPDATE, vote_type - current, vote_type)


class VoteController:
    """Optimistic voting for one viewer over one tree."""

    def __init__(self, tree: MessageTree, store: VoteStore, user_id: str) -> None:
        self.tree = tree
        self.store = store
        self.user_id = user_id

    async def vote(self, message_id: str, vote_type: int) -> VoteOutcome:
        _check_vote_type(vote_type)
        message = self.tree.get(message_id)
        if message is None:
            raise VoteError(MESSAGE_GONE)

        before = (message.vote_count, message.user_vote)
        plan = plan_vote(message.user_vote, vote_type)
        user_id = self.user_id
        self.tree.set_votes(message_id, message.vote_count + plan.delta, plan.new_vote)

        try:
            if plan.action is VoteAction.INSERT:
                count = await self.store.insert_vote(message_id, user_id, vote_type)
            elif plan.action is VoteAction.UPDATE:
                count = await self.store.update_vote(message_id, user_id, vote_type)
            else:
                count = await self.store.delete_vote(message_id, user_id)
        except ForeignKeyViolationError as e:
            self._rollback(message_id, before)
            raise VoteError(MESSAGE_GONE) from e
        except UniqueViolationError as e:
            self._rollback(message_id, before)
            raise VoteError(ALREADY_VOTED) from e
        except StrideError as e:
            self._rollback(message_id, before)
            logger.warning("Vote on %s failed: %s", message_id, e)
            raise VoteError(VOTE_FAILED) from e
        except Exception as e:
            self._rollback(message_id, before)
            logger.exception("Unexpected error persisting vote on %s", message_id)
            raise VoteError(VOTE_FAILED) from e

        # May have been deleted by a live event while the write was in flight.
        if message_id in self.tree:
            self.tree.set_votes(message_id, count, plan.new_vote)
        return VoteOutcome(message_id, count, plan.new_vote)

    def _rollback(self, message_id: str, before: tuple[int, int | None]) -> None:
        if message_id in self.tree:
            self.tree.set_votes(message_id, *before)
