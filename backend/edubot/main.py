"""
EduBot FastAPI Application Entry Point.

Run with: uvicorn edubot.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from edubot.api.routes import chat, grades, notifications
from edubot.config import get_settings
from edubot.errors import EduBotError
from edubot.logging_config import setup_logging
from edubot.notifications.broker import NotificationBroker
from edubot.streaming.turn_locks import TurnLocks

logger = logging.getLogger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the per-process broker and turn locks."""
    setup_logging()
    app.state.notifications = NotificationBroker(queue_size=settings.notification_queue_size)
    app.state.turn_locks = TurnLocks()
    logger.info("%s started (%s)", settings.app_name, settings.environment)
    yield
    logger.info("%s shutting down (%d notification subscribers)", settings.app_name, len(app.state.notifications))


app = FastAPI(
    title=settings.app_name,
    description="Academic records assistant: streamed chat and grade notifications",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EduBotError)
async def edubot_error_handler(request: Request, exc: EduBotError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# Include routers
app.include_router(chat.router)
app.include_router(grades.router)
app.include_router(notifications.router)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}
