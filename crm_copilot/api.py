"""
Text-in/text-out HTTP API for the copilot.

Each API session wraps a ``ConversationSession`` in text mode, so the same
tool loop and CRM side effects as the CLI are available to any HTTP client.
"""

import argparse
import logging
from datetime import datetime
from typing import Callable, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from crm_copilot.backends import build_text_backend
from crm_copilot.crm.service import CompanyService, InMemoryCompanyService
from crm_copilot.errors import ConfigurationError
from crm_copilot.events import EventHub
from crm_copilot.log import setup_logging
from crm_copilot.models import Message, Role
from crm_copilot.navigation import Navigator
from crm_copilot.session import ConversationSession

API_TITLE = "CRM Copilot Text API"
API_VERSION = "0.1.0"

SessionFactory = Callable[[str], ConversationSession]


# Request/Response models
class ChatRequest(BaseModel):
    message: str
    session_id: Optional[str] = None
    location: Optional[str] = None


class ChatResponse(BaseModel):
    response: str
    session_id: str
    tool_calls: list[str] = []
    is_error: bool = False


class SessionManager:
    """Keeps one conversation per session id."""

    def __init__(self, factory: SessionFactory, logger=None):
        self.factory = factory
        self.sessions: dict[str, ConversationSession] = {}
        self.logger = logger or logging.getLogger("SessionManager")

    def get_or_create_session(self, session_id: Optional[str] = None) -> tuple[str, ConversationSession]:
        if session_id and session_id in self.sessions:
            return session_id, self.sessions[session_id]

        new_id = session_id or f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{len(self.sessions)}"
        self.sessions[new_id] = self.factory(new_id)
        self.logger.info(f"Created new session: {new_id}")
        return new_id, self.sessions[new_id]

    def get(self, session_id: str) -> ConversationSession | None:
        return self.sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        return self.sessions.pop(session_id, None) is not None


def default_session_factory(crm: CompanyService, logger: logging.Logger) -> SessionFactory:
    """Sessions backed by the configured text provider and a shared CRM."""

    def factory(session_id: str) -> ConversationSession:
        hub = EventHub(logger=logger)
        return ConversationSession(
            crm,
            text_backend=build_text_backend(logger=logger),
            hub=hub,
            navigator=Navigator(hub, logger=logger),
            logger=logger,
        )

    return factory


def _serialize(message: Message) -> dict:
    return message.model_dump(mode="json", exclude_none=True)


def create_app(session_factory: SessionFactory | None = None, logger: logging.Logger | None = None) -> FastAPI:
    logger = logger or setup_logging()
    if session_factory is None:
        session_factory = default_session_factory(InMemoryCompanyService(logger=logger), logger)
    session_manager = SessionManager(session_factory, logger=logger)

    app = FastAPI(
        title=API_TITLE,
        description="Text API for the CRM copilot: chat with tool calling against the CRM",
        version=API_VERSION,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.session_manager = session_manager

    @app.get("/")
    async def root():
        """API info endpoint."""
        return {"name": API_TITLE, "version": API_VERSION, "status": "running"}

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.post("/chat", response_model=ChatResponse)
    async def chat(request: ChatRequest):
        """Run one user message through the session's tool loop."""
        try:
            session_id, session = session_manager.get_or_create_session(request.session_id)
        except ConfigurationError as e:
            logger.error(f"Cannot create session: {e}")
            raise HTTPException(status_code=503, detail=str(e))

        if request.location and request.location != session.navigator.location:
            session.navigator.navigate(request.location)

        logger.info(f"Processing message for session {session_id}: {request.message[:100]}...")
        seen = len(session.transcript)
        reply = await session.send_text(request.message)
        tool_calls = [
            m.tool_name for m in session.transcript.messages[seen:] if m.role is Role.TOOL and m.tool_name
        ]
        return ChatResponse(
            response=(reply.text or "") if reply else "",
            session_id=session_id,
            tool_calls=tool_calls,
            is_error=bool(reply and reply.is_error),
        )

    @app.get("/session/{session_id}")
    async def get_session(session_id: str):
        """Return the session transcript and current page."""
        session = session_manager.get(session_id)
        if session is None:
            raise HTTPException(status_code=404, detail="Session not found")
        return {
            "session_id": session_id,
            "location": session.navigator.location,
            "messages": [_serialize(m) for m in session.transcript],
        }

    @app.delete("/session/{session_id}")
    async def delete_session(session_id: str):
        """Delete a session and its history."""
        if session_manager.delete(session_id):
            return {"status": "deleted", "session_id": session_id}
        raise HTTPException(status_code=404, detail="Session not found")

    return app


def main():
    """Main entry point for the text API server."""
    parser = argparse.ArgumentParser(description="CRM Copilot Text API Server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development")

    args = parser.parse_args()

    logger = setup_logging()
    logger.info("=" * 60)
    logger.info("CRM Copilot Text API Server")
    logger.info("=" * 60)
    logger.info(f"Host: {args.host}")
    logger.info(f"Port: {args.port}")
    logger.info("=" * 60)

    uvicorn.run(
        "crm_copilot.api:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
