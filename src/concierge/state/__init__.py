"""Conversation state: the persisted record, its codec, storage and transitions."""

from .codec import StateCodec
from .machine import Action, Signals, Transition, transition
from .models import ConversationPhase, ConversationState, FinalOutcome
from .store import CommentThreadStateStore, StateRecord, StateStore

__all__ = [
    "Action",
    "CommentThreadStateStore",
    "ConversationPhase",
    "ConversationState",
    "FinalOutcome",
    "Signals",
    "StateCodec",
    "StateRecord",
    "StateStore",
    "Transition",
    "transition",
]
