"""Comment rendering for the triage bot."""

from .composer import COMMANDS_SECTION, REVISION_PREFIX, CommentComposer

__all__ = ["COMMANDS_SECTION", "CommentComposer", "REVISION_PREFIX"]
