"""
Conversation repository interface.

Defines the contract for conversations, their messages and votes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from chatstream.models.conversation import Conversation, ConversationCreate, Vote
from chatstream.models.enums import Visibility
from chatstream.models.message import Message, MessageContent, MessageCreate


class IConversationRepository(ABC):
    """Abstract interface for conversation persistence."""

    # ===========================================
    # Conversations
    # ===========================================

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Optional[Conversation]:
        """
        Get a conversation by ID.

        Args:
            conversation_id: Conversation ID

        Returns:
            Conversation if found, None otherwise
        """
        pass

    @abstractmethod
    async def create_conversation(self, user_id: str, data: ConversationCreate) -> Conversation:
        """
        Create a conversation.

        Args:
            user_id: Owner user ID
            data: Conversation fields

        Returns:
            Created conversation
        """
        pass

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> bool:
        """
        Delete a conversation with its messages and votes.

        Returns:
            True if the conversation existed
        """
        pass

    @abstractmethod
    async def update_visibility(
        self,
        conversation_id: str,
        visibility: Visibility,
    ) -> Optional[Conversation]:
        """Update conversation visibility. Returns None if not found."""
        pass

    @abstractmethod
    async def update_model(self, conversation_id: str, model_id: str) -> Optional[Conversation]:
        """Update the selected chat model. Returns None if not found."""
        pass

    @abstractmethod
    async def list_conversations(
        self,
        user_id: str,
        include_public: bool = True,
        limit: int = 100,
        offset: int = 0,
    ) -> list[Conversation]:
        """
        List conversations visible to a user, newest first.

        Args:
            user_id: Caller user ID
            include_public: Also include other users' public conversations
            limit: Max conversations
            offset: Pagination offset

        Returns:
            List of conversations
        """
        pass

    # ===========================================
    # Messages
    # ===========================================

    @abstractmethod
    async def save_messages(
        self,
        conversation_id: str,
        messages: list[MessageCreate],
        created_at: Optional[datetime] = None,
    ) -> list[Message]:
        """
        Append messages to a conversation.

        Timestamps are assigned by the repository: each message gets a
        timestamp strictly greater than every message already stored in
        the conversation, and a batch is strictly increasing in list order.

        Args:
            conversation_id: Owning conversation
            messages: Messages to append (IDs generated when absent)
            created_at: Base timestamp (defaults to now)

        Returns:
            Persisted messages in input order
        """
        pass

    @abstractmethod
    async def get_message(self, message_id: str) -> Optional[Message]:
        """Get a message by ID."""
        pass

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> list[Message]:
        """List messages of a conversation ordered by timestamp ascending."""
        pass

    @abstractmethod
    async def update_message_content(
        self,
        message_id: str,
        content: MessageContent,
    ) -> Optional[Message]:
        """
        Replace a message's content in place.

        Role, conversation and timestamp are kept from the stored record.

        Returns:
            Updated message, None if not found
        """
        pass

    @abstractmethod
    async def delete_messages_after(self, conversation_id: str, timestamp: datetime) -> int:
        """
        Delete every message in a conversation with a timestamp strictly
        greater than `timestamp`.

        Returns:
            Number of deleted messages
        """
        pass

    @abstractmethod
    async def delete_message(self, conversation_id: str, message_id: str) -> bool:
        """Delete one message. Returns False if it was not in the conversation."""
        pass

    # ===========================================
    # Votes
    # ===========================================

    @abstractmethod
    async def vote_message(self, conversation_id: str, message_id: str, is_upvoted: bool) -> Vote:
        """Create or replace the vote on a message."""
        pass

    @abstractmethod
    async def list_votes(self, conversation_id: str) -> list[Vote]:
        """List votes of a conversation."""
        pass
