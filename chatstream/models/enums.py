"""
Enum definitions for the application.

These enums are used across models and provide type-safe status values.
"""

from enum import Enum


class MessageRole(str, Enum):
    """Author role of a stored message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class Visibility(str, Enum):
    """Conversation visibility."""

    PRIVATE = "private"
    PUBLIC = "public"


class ArtifactKind(str, Enum):
    """
    Kind of a generated artifact.

    The kind decides how content is encoded and how streamed deltas combine:
    TEXT/CODE stream appended fragments, SHEET/IMAGE stream whole snapshots.
    """

    TEXT = "text"
    CODE = "code"
    SHEET = "sheet"
    IMAGE = "image"


class DraftStatus(str, Enum):
    """Lifecycle of a client-side artifact draft."""

    UNINITIALIZED = "uninitialized"
    STREAMING = "streaming"
    IDLE = "idle"


class ToolInvocationState(str, Enum):
    """Tool invocation state as seen by consumers."""

    CALL = "call"
    RESULT = "result"


class VoteType(str, Enum):
    """Message feedback."""

    UP = "up"
    DOWN = "down"


class ChannelEventType(str, Enum):
    """Frame types delivered over a push channel."""

    CONNECTED = "connected"
    HEARTBEAT = "heartbeat"
    DOCUMENT_CONTEXT_UPDATE = "document-context-update"
    DOCUMENT_CONTEXT_UPDATE_COMPLETE = "document-context-update-complete"
