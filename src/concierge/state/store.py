"""Where conversation state lives between runs."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from ..github.models import Comment
from .codec import StateCodec
from .models import ConversationState

LOGGER = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(slots=True)
class StateRecord:
    """A located state and, for thread-backed stores, the comment carrying it."""

    state: ConversationState
    comment: Optional[Comment] = None


class StateStore:
    """Persistence seam for conversation state.

    Subclasses decide where state is kept. ``save`` receives the outgoing
    comment body and returns the body that should actually be posted.
    """

    def load(self, participant: str) -> Optional[StateRecord]:
        raise NotImplementedError("Subclasses must implement load().")

    def save(self, body: str, state: ConversationState) -> str:
        raise NotImplementedError("Subclasses must implement save().")


class CommentThreadStateStore(StateStore):
    """Keeps state inside the bot's own comments on the issue thread."""

    def __init__(self, comments: Sequence[Comment], *, bot_username: str, codec: StateCodec | None = None) -> None:
        self._comments = list(comments)
        self._bot_username = bot_username.lower()
        self._codec = codec or StateCodec()

    def bot_comments_newest_first(self) -> List[Comment]:
        authored = [comment for comment in self._comments if comment.user.login.lower() == self._bot_username]
        return sorted(authored, key=lambda comment: (comment.created_at or _EPOCH, comment.id), reverse=True)

    def load(self, participant: str) -> Optional[StateRecord]:
        """Return the newest state belonging to ``participant``."""
        for comment in self.bot_comments_newest_first():
            state = self._codec.decode(comment.body)
            if state is None:
                continue
            if state.belongs_to(participant):
                LOGGER.debug("Found state for %s in comment %d", participant, comment.id)
                return StateRecord(state=state, comment=comment)
        return None

    def save(self, body: str, state: ConversationState) -> str:
        return self._codec.encode(body, state)


__all__ = ["CommentThreadStateStore", "StateRecord", "StateStore"]
