"""
Module: main.py
Description: FastAPI application entry point for the FinBot expense tracker.

This module provides:
    - The /api/user/* router that forwards each request to the caller's UserAgent
    - Uniform permissive CORS headers and OPTIONS short-circuiting
    - Health and metrics endpoints

Author: FinBot Team

Dependencies:
    - FastAPI for the HTTP surface
    - SQLAlchemy for agent state storage
    - OpenAI as the hosted model

Usage:
    uvicorn main:app --reload --host 0.0.0.0 --port 8000
"""

from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import FastAPI, Depends, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy import text
from sqlalchemy.orm import Session as DBSession
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import DEFAULT_ROUTER_USER_ID
from database import get_db, init_db, SessionLocal
from schemas import HealthResponse
from services import AIService, AgentNamespace
from services.observability import logger, metrics


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


# =============================================================================
# Application Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the storage table on startup."""
    logger.info("Starting FinBot API")
    init_db()
    logger.info("Agent storage initialized")

    yield

    logger.info("Shutting down FinBot API")


# =============================================================================
# FastAPI Application Configuration
# =============================================================================

app = FastAPI(
    title="FinBot API",
    description="""
    Conversational expense tracking. Expenses come in through a form or free-text
    chat, a hosted model categorizes them, and the insights endpoint summarizes
    spending habits.
    """,
    version="1.0.0",
    lifespan=lifespan,
)


@app.middleware("http")
async def cors_headers(request: Request, call_next):
    """Answer OPTIONS directly and stamp CORS headers on every response."""
    if request.method == "OPTIONS":
        return Response(headers=CORS_HEADERS)

    response = await call_next(request)
    for key, value in CORS_HEADERS.items():
        response.headers[key] = value
    return response


@app.exception_handler(StarletteHTTPException)
async def not_found_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return PlainTextResponse("Not Found", status_code=404)
    return await http_exception_handler(request, exc)


# =============================================================================
# Dependency Injection
# =============================================================================

@lru_cache(maxsize=1)
def get_ai_service() -> AIService:
    """
    Dependency: Provide the shared AIService instance.

    Returns:
        AIService: Configured OpenAI wrapper service.
    """
    return AIService()


@lru_cache(maxsize=1)
def get_agent_namespace() -> AgentNamespace:
    """Dependency: Provide the process-wide agent namespace."""
    return AgentNamespace(SessionLocal, get_ai_service())


# =============================================================================
# System Endpoints
# =============================================================================

@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["System"],
    summary="Health check endpoint",
    description="Check the health status of the API, database, and OpenAI connection."
)
async def health_check(
    db: DBSession = Depends(get_db),
    ai_service: AIService = Depends(get_ai_service)
) -> HealthResponse:
    """
    Perform health check on all system components.

    Example:
        GET /health
        Response: {"status": "healthy", "database": "connected", "openai": "connected"}
    """
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)}"

    try:
        openai_connected = await ai_service.check_connection()
        openai_status = "connected" if openai_connected else "disconnected"
    except Exception as e:
        openai_status = f"error: {str(e)}"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return HealthResponse(
        status=overall_status,
        database=db_status,
        openai=openai_status
    )


@app.get(
    "/metrics",
    tags=["System"],
    summary="Get application metrics",
    description="Returns request counters, fallback counts, model call timings and token usage."
)
async def get_metrics(ai_service: AIService = Depends(get_ai_service)):
    """
    Example:
        GET /metrics
        Response: {
            "uptime_seconds": 3600,
            "counters": {"chat.requests": 42, "expenses.added:source=chat": 7},
            "timings": {"openai.run": {"avg_ms": 820.5, ...}},
            "openai_usage": {"total_tokens": 5120, "request_count": 12, ...}
        }
    """
    summary = metrics.get_summary()
    summary["openai_usage"] = ai_service.get_usage_stats()
    return summary


# =============================================================================
# User Router
# =============================================================================

@app.api_route(
    "/api/user/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
    tags=["User"],
    summary="Forward a request to the caller's agent",
    description=(
        "Routes /expenses, /expenses/parse, /chat, /insights and /conversations "
        "to the UserAgent selected by the userId query parameter."
    ),
)
async def user_route(
    path: str,
    request: Request,
    namespace: AgentNamespace = Depends(get_agent_namespace)
) -> Response:
    """
    Resolve the per-user agent and let it handle the request.

    Requests for the same user are serialized on the agent's lock.
    """
    user_id = request.query_params.get("userId") or DEFAULT_ROUTER_USER_ID

    logger.debug("Routing request", user_id=user_id, path=path, method=request.method)
    metrics.increment("requests", tags={"method": request.method})

    async with namespace.acquire(namespace.id_from_name(user_id)) as agent:
        return await agent.fetch(request)


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
