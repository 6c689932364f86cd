"""
Message reconciler.

Persists inbound turns, runs the model (through the rate gate) with the
artifact tools, sanitizes the generated messages and persists them, and
implements the destructive edit policy: editing a message deletes every
later message in the conversation.

Recording guarantees: the user message is stored before the model is
called (at-least-once); assistant output is stored only after the whole
generation succeeded (at-most-once).
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Optional
from uuid import uuid4

from chatstream.core.config import Settings, get_settings
from chatstream.core.exceptions import (
    AuthorizationError,
    InfrastructureError,
    NotFoundError,
    RateLimitedError,
    UpstreamError,
    ValidationError,
)
from chatstream.core.logger import setup_logger
from chatstream.interfaces.conversation_repository import IConversationRepository
from chatstream.interfaces.llm_provider import (
    ChatStream,
    FinishChunk,
    ReasoningChunk,
    TextChunk,
    ToolCallChunk,
)
from chatstream.models.conversation import Conversation, ConversationCreate, Vote
from chatstream.models.enums import ChannelEventType, MessageRole, ToolInvocationState, Visibility
from chatstream.models.message import (
    Attachment,
    ChatTurnRequest,
    ClientMessage,
    Message,
    MessageCreate,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolInvocation,
    ToolResultPart,
    UIMessage,
)
from chatstream.services.artifact_service import ArtifactService
from chatstream.services.broadcast_registry import BroadcastRegistry
from chatstream.services.data_stream import DataStreamWriter
from chatstream.services.gated_llm import GatedLLM
from chatstream.tools.artifact_tools import ArtifactToolExecutor, tool_definitions
from chatstream.utils.datetime_utils import now_utc

logger = setup_logger(__name__)

# System messages injected by attachment extraction start with this prefix
DOCUMENT_CONTEXT_PREFIX = "Document Analysis:"

SYSTEM_PROMPT = (
    "You are a friendly assistant! Keep your responses concise and helpful.\n\n"
    "When the user asks for a document, essay, code snippet, spreadsheet or image, "
    "use the create_document tool. Use update_document to revise a document that "
    "already exists, and request_suggestions when the user asks for feedback on one. "
    "System messages starting with 'Document Analysis:' contain text extracted from "
    "files the user uploaded; reference them by filename."
)

TITLE_PROMPT = (
    "Generate a short title for a conversation based on the user's first message. "
    "The title must be at most 80 characters long. Do not use quotes or colons. "
    "Respond with the title only."
)

MAX_TITLE_LENGTH = 80
FALLBACK_TITLE_LENGTH = 50

GENERIC_ERROR = "An error occurred while processing your request. Please try again."


# ===========================================
# Pure helpers
# ===========================================


def get_most_recent_user_message(messages: list[ClientMessage]) -> Optional[ClientMessage]:
    """Return the last message with the user role, if any."""
    for message in reversed(messages):
        if message.role == MessageRole.USER:
            return message
    return None


def is_document_context(message: Message) -> bool:
    """Check if a message is a system message injected by attachment extraction."""
    return (
        message.role == MessageRole.SYSTEM
        and isinstance(message.content, str)
        and message.content.startswith(DOCUMENT_CONTEXT_PREFIX)
    )


def derive_title(text: str) -> str:
    """Fallback title: the first line of the user text, truncated."""
    normalized = " ".join((text or "").strip().split())
    if not normalized:
        return "New Chat"
    if len(normalized) > FALLBACK_TITLE_LENGTH:
        return f"{normalized[:FALLBACK_TITLE_LENGTH].rstrip()}..."
    return normalized


def clean_title(raw: str) -> str:
    """Strip quotes and colons and enforce the title length."""
    title = " ".join(raw.replace('"', "").replace("'", "").replace(":", "").split())
    return title[:MAX_TITLE_LENGTH].rstrip()


def sanitize_response_messages(
    messages: list[MessageCreate],
    reasoning: Optional[str] = None,
) -> list[MessageCreate]:
    """
    Clean generated messages before persisting them.

    Drops tool-call parts lacking a matching tool result in the same
    generation, drops empty text parts, appends the reasoning trace (if
    any) as a trailing part of each assistant message, and removes
    messages left without content.
    """
    result_ids: set[str] = set()
    for message in messages:
        if message.role == MessageRole.TOOL and not isinstance(message.content, str):
            for part in message.content:
                if isinstance(part, ToolResultPart):
                    result_ids.add(part.tool_call_id)

    sanitized: list[MessageCreate] = []
    for message in messages:
        if message.role != MessageRole.ASSISTANT:
            sanitized.append(message)
            continue

        if isinstance(message.content, str):
            parts: list[Any] = [TextPart(text=message.content)]
        else:
            parts = list(message.content)

        kept = []
        for part in parts:
            if isinstance(part, ToolCallPart) and part.tool_call_id not in result_ids:
                continue
            if isinstance(part, TextPart) and not part.text:
                continue
            kept.append(part)
        if reasoning:
            kept.append(ReasoningPart(reasoning=reasoning))

        sanitized.append(message.model_copy(update={"content": kept}))

    return [m for m in sanitized if m.content]


def to_ui_messages(messages: list[Message]) -> list[UIMessage]:
    """
    Materialize stored messages for clients.

    Tool results are merged into the invocation they answer (state becomes
    `result`) instead of being returned as separate messages.
    """
    ui_messages: list[UIMessage] = []
    invocations: dict[str, ToolInvocation] = {}

    for message in messages:
        if message.role == MessageRole.TOOL:
            if isinstance(message.content, str):
                continue
            for part in message.content:
                if isinstance(part, ToolResultPart) and part.tool_call_id in invocations:
                    invocation = invocations[part.tool_call_id]
                    invocation.state = ToolInvocationState.RESULT
                    invocation.result = part.result
            continue

        text = ""
        reasoning: Optional[str] = None
        tool_invocations: list[ToolInvocation] = []
        if isinstance(message.content, str):
            text = message.content
        else:
            for part in message.content:
                if isinstance(part, TextPart):
                    text += part.text
                elif isinstance(part, ReasoningPart):
                    reasoning = part.reasoning
                elif isinstance(part, ToolCallPart):
                    invocation = ToolInvocation(
                        tool_call_id=part.tool_call_id,
                        tool_name=part.tool_name,
                        args=part.args,
                    )
                    invocations[part.tool_call_id] = invocation
                    tool_invocations.append(invocation)

        ui_messages.append(
            UIMessage(
                id=message.id,
                role=message.role,
                content=text,
                reasoning=reasoning,
                tool_invocations=tool_invocations,
                attachments=message.attachments,
                created_at=message.created_at,
            )
        )
    return ui_messages


def _user_content(text: str, attachments: list[Attachment]) -> Any:
    if not attachments:
        return text
    content: list[dict[str, Any]] = [{"type": "text", "text": text}] if text else []
    for attachment in attachments:
        if (attachment.content_type or "").startswith("image/"):
            content.append({"type": "image_url", "image_url": {"url": attachment.url}})
        else:
            name = attachment.name or attachment.url
            content.append({"type": "text", "text": f"[Attachment: {name}]"})
    return content


def to_provider_messages(messages: list[Message]) -> list[dict[str, Any]]:
    """Convert stored history to OpenAI-format chat messages."""
    converted: list[dict[str, Any]] = []
    for message in messages:
        if isinstance(message.content, str):
            if message.role == MessageRole.USER:
                converted.append({"role": "user", "content": _user_content(message.content, message.attachments)})
            elif message.role != MessageRole.TOOL:
                converted.append({"role": message.role.value, "content": message.content})
            continue

        if message.role == MessageRole.TOOL:
            for part in message.content:
                if isinstance(part, ToolResultPart):
                    converted.append(
                        {
                            "role": "tool",
                            "tool_call_id": part.tool_call_id,
                            "content": json.dumps(part.result, ensure_ascii=False, default=str),
                        }
                    )
            continue

        text = "".join(p.text for p in message.content if isinstance(p, TextPart))
        calls = [p for p in message.content if isinstance(p, ToolCallPart)]
        if message.role == MessageRole.USER:
            converted.append({"role": "user", "content": _user_content(text, message.attachments)})
            continue
        entry: dict[str, Any] = {"role": message.role.value, "content": text or None}
        if calls:
            entry["tool_calls"] = [
                {
                    "id": call.tool_call_id,
                    "type": "function",
                    "function": {"name": call.tool_name, "arguments": json.dumps(call.args, ensure_ascii=False)},
                }
                for call in calls
            ]
        if entry["content"] is None and not calls:
            continue
        converted.append(entry)
    return converted


# ===========================================
# Turn
# ===========================================


class Turn:
    """
    One generation for a submitted user message.

    Created by `MessageReconciler.submit_turn` with the first upstream
    stream already open; `stream()` yields data-stream frames.
    """

    def __init__(
        self,
        reconciler: "MessageReconciler",
        user_id: str,
        conversation: Conversation,
        model: str,
        history: list[dict[str, Any]],
        first_stream: ChatStream,
    ):
        self._reconciler = reconciler
        self.user_id = user_id
        self.conversation = conversation
        self.model = model
        self._history = history
        self._first_stream: Optional[ChatStream] = first_stream

    async def stream(self) -> AsyncIterator[str]:
        """Run the generation and yield frames. Closing the iterator aborts it."""
        writer = DataStreamWriter()
        task = asyncio.create_task(self._run(writer))
        try:
            async for frame in writer.frames():
                yield frame
        finally:
            if not task.done():
                task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            if self._first_stream is not None:
                await self._first_stream.aclose()
                self._first_stream = None

    async def _run(self, writer: DataStreamWriter) -> None:
        reconciler = self._reconciler
        executor = ArtifactToolExecutor(reconciler.artifact_service, self.user_id, writer)
        tools = tool_definitions()
        messages = list(self._history)
        responses: list[MessageCreate] = []
        reasoning = ""
        finish_reason = "stop"
        usage: dict[str, int] = {}

        try:
            for step in range(reconciler.max_tool_steps):
                stream = self._first_stream
                self._first_stream = None
                if stream is None:
                    stream = await reconciler.llm.open_stream(
                        self.model, messages, tools=tools, system=SYSTEM_PROMPT
                    )

                text = ""
                calls: list[ToolCallChunk] = []
                try:
                    async for event in stream:
                        if isinstance(event, TextChunk):
                            text += event.text
                            writer.write_text(event.text)
                        elif isinstance(event, ReasoningChunk):
                            reasoning += event.text
                            writer.write_reasoning(event.text)
                        elif isinstance(event, ToolCallChunk):
                            calls.append(event)
                            writer.write_tool_call(event.tool_call_id, event.tool_name, event.args)
                        elif isinstance(event, FinishChunk):
                            finish_reason = event.finish_reason
                            usage = event.usage
                finally:
                    await stream.aclose()

                parts: list[Any] = [TextPart(text=text)] if text else []
                parts += [
                    ToolCallPart(tool_call_id=c.tool_call_id, tool_name=c.tool_name, args=c.args)
                    for c in calls
                ]
                responses.append(MessageCreate(role=MessageRole.ASSISTANT, content=parts))
                messages.extend(
                    to_provider_messages(
                        [Message(id="", conversation_id="", role=MessageRole.ASSISTANT, content=parts, created_at=now_utc())]
                    )
                )

                if not calls:
                    writer.write_step_finish(finish_reason)
                    break

                results: list[Any] = []
                for call in calls:
                    result = await executor.execute(call.tool_name, call.args)
                    writer.write_tool_result(call.tool_call_id, result)
                    results.append(
                        ToolResultPart(tool_call_id=call.tool_call_id, tool_name=call.tool_name, result=result)
                    )
                tool_message = MessageCreate(role=MessageRole.TOOL, content=results)
                responses.append(tool_message)
                messages.extend(
                    to_provider_messages(
                        [Message(id="", conversation_id="", role=MessageRole.TOOL, content=results, created_at=now_utc())]
                    )
                )
                writer.write_step_finish("tool-calls", is_continued=step + 1 < reconciler.max_tool_steps)
            else:
                logger.warning(
                    f"Conversation {self.conversation.id} reached {reconciler.max_tool_steps} tool steps"
                )

            sanitized = sanitize_response_messages(responses, reasoning or None)
            to_save = [m.model_copy(update={"id": str(uuid4())}) for m in sanitized]
            await reconciler.repo.save_messages(self.conversation.id, to_save, created_at=now_utc())
            writer.write_finish(finish_reason, usage)
        except RateLimitedError as e:
            logger.warning(f"Turn in {self.conversation.id} rate limited: {e.message}")
            writer.write_error(f"Too many requests. Please retry in {e.wait_seconds} seconds.")
        except UpstreamError as e:
            logger.error(f"Upstream failure in {self.conversation.id}: {e.message}")
            writer.write_error(GENERIC_ERROR)
        except asyncio.CancelledError:
            logger.info(f"Turn in {self.conversation.id} cancelled, assistant output discarded")
            raise
        except Exception as e:
            logger.error(f"Turn in {self.conversation.id} failed: {e}", exc_info=True)
            writer.write_error(GENERIC_ERROR)
        finally:
            writer.close()


# ===========================================
# Reconciler
# ===========================================


class MessageReconciler:
    """Conversation history service."""

    def __init__(
        self,
        repo: IConversationRepository,
        llm: GatedLLM,
        artifact_service: ArtifactService,
        registry: Optional[BroadcastRegistry] = None,
        settings: Optional[Settings] = None,
    ):
        self.repo = repo
        self.llm = llm
        self.artifact_service = artifact_service
        self.registry = registry
        self._settings = settings or get_settings()
        self.max_tool_steps = max(1, self._settings.MAX_TOOL_STEPS)

    # ===========================================
    # Turns
    # ===========================================

    async def generate_title(self, text: str) -> str:
        """Title from the title model, falling back to a truncated copy of the text."""
        try:
            generated = await self.llm.generate_text(
                self._settings.TITLE_MODEL, text, system=TITLE_PROMPT, max_tokens=40
            )
        except (RateLimitedError, UpstreamError) as e:
            logger.warning(f"Title generation failed, using fallback: {e.message}")
            return derive_title(text)
        return clean_title(generated.text) or derive_title(text)

    async def submit_turn(self, user_id: str, request: ChatTurnRequest) -> Turn:
        """
        Record a user turn and open the first upstream stream.

        Raises ValidationError (no user message), AuthorizationError
        (conversation owned by someone else), RateLimitedError and
        UpstreamError. The user message stays persisted when the upstream
        call fails.
        """
        user_message = get_most_recent_user_message(request.messages)
        if user_message is None or not (user_message.content.strip() or user_message.attachments):
            raise ValidationError("No user message found", missing=["messages"])

        conversation = await self.repo.get_conversation(request.id)
        if conversation and conversation.user_id != user_id:
            raise AuthorizationError("Not the owner of this conversation")

        existing = await self.repo.get_message(user_message.id)
        if existing is None or existing.conversation_id != request.id:
            # An id taken by another conversation gets a fresh server id
            message_id = user_message.id if existing is None else None
            await self.repo.save_messages(
                request.id,
                [
                    MessageCreate(
                        id=message_id,
                        role=MessageRole.USER,
                        content=user_message.content,
                        attachments=user_message.attachments,
                    )
                ],
            )

        if conversation is None:
            title = await self.generate_title(user_message.content)
            conversation = await self.repo.create_conversation(
                user_id,
                ConversationCreate(
                    id=request.id,
                    title=title,
                    model_id=request.model_id or self._settings.DEFAULT_CHAT_MODEL,
                ),
            )
            logger.info(f"Created conversation {conversation.id} for {user_id}")

        model = self._settings.resolve_chat_model(request.model_id or conversation.model_id)
        history = to_provider_messages(await self.repo.list_messages(conversation.id))

        first_stream = await self.llm.open_stream(model, history, tools=tool_definitions(), system=SYSTEM_PROMPT)
        return Turn(self, user_id, conversation, model, history, first_stream)

    # ===========================================
    # History
    # ===========================================

    async def _owned_conversation(self, user_id: str, conversation_id: str) -> Conversation:
        conversation = await self.repo.get_conversation(conversation_id)
        if not conversation:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        if conversation.user_id != user_id:
            raise AuthorizationError("Not the owner of this conversation")
        return conversation

    async def list_messages(
        self,
        user_id: str,
        conversation_id: str,
        include_system: bool = False,
    ) -> list[UIMessage]:
        """Materialized history; document-context messages only when asked for."""
        conversation = await self.repo.get_conversation(conversation_id)
        if conversation and conversation.user_id != user_id and conversation.visibility != Visibility.PUBLIC:
            raise AuthorizationError("Conversation is private")
        messages = await self.repo.list_messages(conversation_id)
        if not include_system:
            messages = [m for m in messages if not is_document_context(m)]
        return to_ui_messages(messages)

    async def edit_message(self, user_id: str, message_id: str, content: str) -> Message:
        """
        Replace a message's content and truncate the history after it.

        Role and conversation come from the stored record. If the trailing
        delete fails the edit stays committed; orphaned later messages are
        left for the next full-history fetch.
        """
        existing = await self.repo.get_message(message_id)
        if not existing:
            raise NotFoundError(f"Message {message_id} not found")
        await self._owned_conversation(user_id, existing.conversation_id)

        updated = await self.repo.update_message_content(message_id, content)
        if updated is None:
            raise NotFoundError(f"Message {message_id} not found")

        try:
            removed = await self.repo.delete_messages_after(existing.conversation_id, existing.created_at)
            logger.info(f"Edited message {message_id}, removed {removed} later messages")
        except Exception as e:
            logger.error(
                f"Trailing delete after editing {message_id} failed, history left inconsistent: {e}"
            )
        return updated

    async def delete_trailing_messages(self, user_id: str, message_id: str) -> int:
        """Delete every message after `message_id` in its conversation."""
        message = await self.repo.get_message(message_id)
        if not message:
            raise NotFoundError(f"Message {message_id} not found")
        await self._owned_conversation(user_id, message.conversation_id)
        return await self.repo.delete_messages_after(message.conversation_id, message.created_at)

    async def delete_message(self, user_id: str, conversation_id: str, message_id: str) -> None:
        """Delete one message; notifies observers when it was document context."""
        await self._owned_conversation(user_id, conversation_id)
        message = await self.repo.get_message(message_id)
        if not message or message.conversation_id != conversation_id:
            raise NotFoundError(f"Message {message_id} not found")
        if not await self.repo.delete_message(conversation_id, message_id):
            raise NotFoundError(f"Message {message_id} not found")

        if is_document_context(message) and self.registry is not None:
            await self.registry.publish(
                conversation_id,
                {
                    "type": ChannelEventType.DOCUMENT_CONTEXT_UPDATE.value,
                    "conversationId": conversation_id,
                    "messageId": message_id,
                    "timestamp": now_utc().isoformat(),
                },
            )

    # ===========================================
    # Conversations
    # ===========================================

    async def delete_conversation(self, user_id: str, conversation_id: str) -> None:
        await self._owned_conversation(user_id, conversation_id)
        if not await self.repo.delete_conversation(conversation_id):
            raise InfrastructureError(f"Failed to delete conversation {conversation_id}")

    async def update_visibility(self, user_id: str, conversation_id: str, visibility: Visibility) -> Conversation:
        await self._owned_conversation(user_id, conversation_id)
        updated = await self.repo.update_visibility(conversation_id, visibility)
        if not updated:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return updated

    async def update_model(self, user_id: str, conversation_id: str, model_id: str) -> Conversation:
        if model_id not in self._settings.CHAT_MODELS:
            raise ValidationError(f"Unknown model: {model_id}", missing=[])
        await self._owned_conversation(user_id, conversation_id)
        updated = await self.repo.update_model(conversation_id, model_id)
        if not updated:
            raise NotFoundError(f"Conversation {conversation_id} not found")
        return updated

    async def list_history(self, user_id: str, limit: int = 100, offset: int = 0) -> list[Conversation]:
        """Own conversations plus public ones, newest first."""
        return await self.repo.list_conversations(user_id, include_public=True, limit=limit, offset=offset)

    # ===========================================
    # Votes
    # ===========================================

    async def vote_message(self, user_id: str, conversation_id: str, message_id: str, is_upvoted: bool) -> Vote:
        await self._owned_conversation(user_id, conversation_id)
        message = await self.repo.get_message(message_id)
        if not message or message.conversation_id != conversation_id:
            raise NotFoundError(f"Message {message_id} not found")
        return await self.repo.vote_message(conversation_id, message_id, is_upvoted)

    async def list_votes(self, user_id: str, conversation_id: str) -> list[Vote]:
        await self._owned_conversation(user_id, conversation_id)
        return await self.repo.list_votes(conversation_id)
