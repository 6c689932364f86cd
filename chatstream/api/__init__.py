"""API routers."""

from chatstream.api import (
    conversation,
    documents,
    events,
    files,
    messages,
    votes,
)

__all__ = [
    "conversation",
    "messages",
    "events",
    "documents",
    "votes",
    "files",
]
