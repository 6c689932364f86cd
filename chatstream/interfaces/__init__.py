"""Abstract interfaces for infrastructure abstraction."""

from chatstream.interfaces.artifact_repository import IArtifactRepository
from chatstream.interfaces.auth_provider import IAuthProvider
from chatstream.interfaces.conversation_repository import IConversationRepository
from chatstream.interfaces.llm_provider import ILLMProvider
from chatstream.interfaces.storage_provider import IStorageProvider

__all__ = [
    "IArtifactRepository",
    "IAuthProvider",
    "IConversationRepository",
    "ILLMProvider",
    "IStorageProvider",
]
