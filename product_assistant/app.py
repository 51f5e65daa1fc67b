"""HTTP boundary: chat and session endpoints over the assistant pipeline."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .agent_pipeline import AssistantAgent
from .catalog.fetcher import CatalogFetcher
from .config import Settings, load_settings
from .gemini_client import GeminiClient
from .knowledge.knowledge_store import KnowledgeStore
from .models import ChatRequest, ChatResponse
from .session_store import SessionStore

BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR / ".env"

logger = logging.getLogger("assistant.api")


def configure_logging() -> None:
    # Configure the root logger once; LOG_LEVEL controls verbosity.
    log_level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=log_level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        )
    logging.getLogger("assistant").setLevel(log_level)


def build_agent(settings: Settings) -> AssistantAgent:
    """Purpose: Wire the oracle, catalog, knowledge store and sessions into an agent.
    Inputs/Outputs: Input is Settings; output is a ready AssistantAgent.
    Side Effects / State: Creates an httpx client inside CatalogFetcher.
    Dependencies: GeminiClient, CatalogFetcher, KnowledgeStore, SessionStore.
    Failure Modes: A missing API key disables the oracle instead of failing startup.
    If Removed: create_app has no default agent.
    Testing Notes: With GEMINI_API_KEY unset the agent answers from the fallback.
    """
    # An unconfigured oracle is allowed; every answer then comes from the fallback.
    oracle: Optional[GeminiClient]
    try:
        oracle = GeminiClient(settings)
    except ValueError as exc:
        logger.warning("oracle disabled reason=%s", exc)
        oracle = None

    catalog = CatalogFetcher(
        settings.site_base_url,
        cache_ttl=settings.cache_ttl,
        page_timeout=settings.page_timeout,
    )
    return AssistantAgent(
        oracle=oracle,
        catalog=catalog,
        knowledge=KnowledgeStore(settings.knowledge_path),
        sessions=SessionStore(max_sessions=settings.max_sessions),
        settings=settings,
    )


def create_app(settings: Optional[Settings] = None, agent: Optional[AssistantAgent] = None) -> FastAPI:
    """Purpose: Build the FastAPI application.
    Inputs/Outputs: Optional settings and agent (tests inject fakes); returns FastAPI.
    Side Effects / State: Loads .env, configures logging, registers routes and handlers.
    Dependencies: FastAPI, CORSMiddleware, python-dotenv, AssistantAgent.
    Failure Modes: Invalid numeric env values raise ValueError from load_settings.
    If Removed: The assistant is not reachable over HTTP.
    Testing Notes: Use fastapi.testclient.TestClient with an injected agent.
    """
    # Environment first so load_settings sees .env values.
    if ENV_PATH.exists():
        load_dotenv(ENV_PATH, override=True)
    configure_logging()

    settings = settings or load_settings()
    assistant = agent or build_agent(settings)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await assistant.aclose()

    app = FastAPI(title="Product Assistant", lifespan=lifespan)
    app.state.settings = settings
    app.state.agent = assistant
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins) or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RequestValidationError)
    async def validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        logger.info("rejected request errors=%s", len(exc.errors()))
        return JSONResponse(status_code=400, content={"error": "Message is required"})

    @app.exception_handler(Exception)
    async def unhandled_error(_: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled error", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content={
                "response": assistant.support_message,
                "error": "Internal server error",
                "showOptions": False,
            },
        )

    @app.post("/api/chat", response_model=ChatResponse, response_model_exclude_none=True, response_model_by_alias=True)
    async def chat(request: ChatRequest) -> ChatResponse:
        """Purpose: Handle chat requests and run the agent pipeline.
        Inputs/Outputs: Input is ChatRequest; output is ChatResponse (response/options/showOptions).
        Side Effects / State: Updates session focus and history.
        Dependencies: Uses AssistantAgent.handle_message.
        Failure Modes: Blank messages are rejected with 400 by the validation handler.
        If Removed: Core chat functionality is unavailable.
        Testing Notes: Post {"message": ""} and expect 400 with the error body.
        """
        # The agent never raises; failures come back as the support message.
        return await assistant.handle_message(request.message.strip(), request.session_id)

    @app.get("/api/chat")
    async def status() -> dict:
        return {"message": f"{settings.brand_name} Product Assistant API", "status": "online"}

    @app.get("/api/sessions")
    async def list_sessions() -> List[dict]:
        # Serialize summaries, most recent first.
        return [summary.model_dump() for summary in assistant.sessions.list_sessions()]

    @app.get("/api/sessions/{session_id}")
    async def get_session(session_id: str) -> dict:
        """Return all stored turns for a session; unknown ids give an empty list."""
        messages = assistant.sessions.get_messages(session_id)
        return {
            "session_id": session_id,
            "messages": [message.model_dump() for message in messages],
        }

    return app


app = create_app()
