"""
Dependency injection for API endpoints.

This module provides FastAPI dependencies that inject the correct
infrastructure implementations based on environment configuration.
"""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from chatstream.core.config import get_settings
from chatstream.interfaces.artifact_repository import IArtifactRepository
from chatstream.interfaces.auth_provider import IAuthProvider, User
from chatstream.interfaces.conversation_repository import IConversationRepository
from chatstream.interfaces.llm_provider import ILLMProvider
from chatstream.interfaces.storage_provider import IStorageProvider
from chatstream.services.artifact_service import ArtifactService
from chatstream.services.attachment_service import AttachmentService
from chatstream.services.background_jobs import BackgroundJobRunner, get_background_job_runner
from chatstream.services.broadcast_registry import BroadcastRegistry, get_broadcast_registry
from chatstream.services.gated_llm import GatedLLM
from chatstream.services.message_reconciler import MessageReconciler
from chatstream.services.rate_gate import get_rate_gate


# ===========================================
# Repository Dependencies
# ===========================================


@lru_cache()
def get_conversation_repository() -> IConversationRepository:
    """Get conversation repository instance."""
    from chatstream.infrastructure.local.conversation_repository import SqliteConversationRepository
    return SqliteConversationRepository()


@lru_cache()
def get_artifact_repository() -> IArtifactRepository:
    """Get artifact repository instance."""
    from chatstream.infrastructure.local.artifact_repository import SqliteArtifactRepository
    return SqliteArtifactRepository()


# ===========================================
# Provider Dependencies
# ===========================================


@lru_cache()
def get_llm_provider() -> ILLMProvider:
    """Get LLM provider instance based on LLM_PROVIDER setting."""
    settings = get_settings()

    if settings.LLM_PROVIDER == "litellm":
        from chatstream.infrastructure.local.litellm_provider import LiteLLMProvider
        return LiteLLMProvider(
            api_base=settings.LITELLM_API_BASE or None,
            api_key=settings.LITELLM_API_KEY or None,
        )

    raise ValueError(f"Unknown LLM provider: {settings.LLM_PROVIDER}")


@lru_cache()
def get_auth_provider() -> IAuthProvider:
    """Get auth provider instance."""
    settings = get_settings()
    if settings.AUTH_PROVIDER == "local":
        from chatstream.infrastructure.auth.local_auth import LocalAuthProvider

        return LocalAuthProvider(settings)

    from chatstream.infrastructure.local.mock_auth import MockAuthProvider
    return MockAuthProvider(enabled=True)


@lru_cache()
def get_storage_provider() -> IStorageProvider:
    """Get storage provider instance."""
    settings = get_settings()
    from chatstream.infrastructure.local.storage_provider import LocalStorageProvider
    return LocalStorageProvider(settings.STORAGE_BASE_PATH)


# ===========================================
# Service Dependencies
# ===========================================


@lru_cache()
def get_gated_llm() -> GatedLLM:
    """LLM provider behind the process-wide rate gate."""
    return GatedLLM(get_llm_provider(), get_rate_gate())


@lru_cache()
def get_artifact_service() -> ArtifactService:
    return ArtifactService(get_gated_llm(), get_artifact_repository(), get_settings())


@lru_cache()
def get_message_reconciler() -> MessageReconciler:
    return MessageReconciler(
        get_conversation_repository(),
        get_gated_llm(),
        get_artifact_service(),
        get_broadcast_registry(),
        get_settings(),
    )


@lru_cache()
def get_attachment_service() -> AttachmentService:
    return AttachmentService(
        get_storage_provider(),
        get_conversation_repository(),
        get_broadcast_registry(),
        get_settings(),
    )


# ===========================================
# User Authentication
# ===========================================


async def get_current_user(
    authorization: Annotated[str | None, Header()] = None,
    auth_provider: IAuthProvider = Depends(get_auth_provider),
) -> User:
    """
    Get current authenticated user.

    Every conversation endpoint requires a bearer token. With the mock
    provider the token is the user ID.
    """
    if not auth_provider.is_enabled():
        return User(id="dev_user", email="dev@example.com", display_name="Developer")

    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header required",
        )

    # Extract token from "Bearer <token>"
    try:
        scheme, token = authorization.split()
        if scheme.lower() != "bearer":
            raise ValueError("Invalid scheme")
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format",
        )

    try:
        return await auth_provider.verify_token(token)
    except Exception as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        )


# ===========================================
# Type Aliases for Dependency Injection
# ===========================================

Registry = Annotated[BroadcastRegistry, Depends(get_broadcast_registry)]
JobRunner = Annotated[BackgroundJobRunner, Depends(get_background_job_runner)]
Reconciler = Annotated[MessageReconciler, Depends(get_message_reconciler)]
Artifacts = Annotated[ArtifactService, Depends(get_artifact_service)]
Attachments = Annotated[AttachmentService, Depends(get_attachment_service)]
CurrentUser = Annotated[User, Depends(get_current_user)]
