"""
ChatStream - Main Application Entry Point

Conversation streaming backend with artifact generation and push channels.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chatstream.core.config import get_settings
from chatstream.core.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    settings = get_settings()
    logger.info(f"Starting ChatStream in {settings.ENVIRONMENT} mode...")

    from chatstream.infrastructure.local.database import init_db

    await init_db()

    from chatstream.services.background_jobs import get_background_job_runner

    runner = get_background_job_runner()
    await runner.start()

    yield

    # Shutdown
    logger.info("Shutting down ChatStream...")
    await runner.stop()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="ChatStream",
        description="Conversation streaming and artifact sync backend",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed request bodies are 400s that name the offending fields."""
        missing = []
        for error in exc.errors():
            loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query")]
            if loc:
                missing.append(".".join(loc))
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": {"message": "Invalid request", "missing": missing}},
        )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    from chatstream.api import (
        conversation,
        documents,
        events,
        files,
        messages,
        votes,
    )

    app.include_router(conversation.router, prefix="/api", tags=["conversation"])
    app.include_router(messages.router, prefix="/api", tags=["messages"])
    app.include_router(events.router, prefix="/api", tags=["events"])
    app.include_router(documents.router, prefix="/api", tags=["documents"])
    app.include_router(votes.router, prefix="/api", tags=["votes"])
    app.include_router(files.router, prefix="/api/files", tags=["files"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "environment": settings.ENVIRONMENT,
            "version": "0.1.0"
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
