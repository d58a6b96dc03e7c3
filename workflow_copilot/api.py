"""FastAPI service for the workflow co-pilot.

One AgentManager (one session) is created at startup and shared by every
request:

  POST   /workflows            natural-language request → AgentResult envelope
  POST   /workflows/validate   validate a workflow graph you already have
  GET    /tools                registered pipeline tools
  GET    /tools/{name}         one tool's parameter contract
  GET    /cache/stats          result cache statistics
  DELETE /cache                purge expired cache entries
  GET    /session              session id, request count, cache stats
  GET    /health               liveness + which generation backend is active

Pipeline failures are not HTTP errors: POST /workflows always answers 200 with
success=false and an errorContext. Only malformed input and validation of a
user-supplied graph that cannot be performed map to 4xx.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from workflow_copilot.agent.errors import ErrorKind, PipelineError
from workflow_copilot.agent.manager import AgentManager

logger = logging.getLogger("workflow_copilot.api")

# ---------------------------------------------------------------------------
# API key authentication (optional, enabled when AGENT_API_KEY is set)
# ---------------------------------------------------------------------------

_bearer = HTTPBearer(auto_error=False)


def _verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> None:
    """Verify Bearer token matches AGENT_API_KEY env var.

    If AGENT_API_KEY is not set, all requests are allowed (open dev mode).
    If set, every request must carry 'Authorization: Bearer <key>'.
    """
    api_key = os.getenv("AGENT_API_KEY")
    if not api_key:
        return
    if not credentials or credentials.credentials != api_key:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")


# ---------------------------------------------------------------------------
# Lifespan: build the manager once at startup, close the backend on shutdown
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        from dotenv import load_dotenv
        load_dotenv()
    except ImportError:
        pass

    manager = AgentManager.build()
    app.state.manager = manager
    logger.info(
        "Starting workflow co-pilot | session=%s | tools=%s",
        manager.session_id,
        ", ".join(manager.available_tools()),
    )

    yield

    await manager.aclose()
    logger.info("Shutting down workflow co-pilot")


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------


_rate_limit = os.getenv("RATE_LIMIT_WORKFLOWS_PER_MIN", "10")
limiter = Limiter(key_func=get_remote_address, default_limits=[f"{_rate_limit}/minute"])

app = FastAPI(
    title="Workflow Co-pilot API",
    description=(
        "Turns natural-language requests into validated workflow graphs "
        "(classify → extract → generate → validate → suggest)."
    ),
    version="0.1.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

_CORS_ORIGINS: list[str] = [
    o.strip()
    for o in os.environ.get("CORS_ORIGINS", "http://localhost:3001,http://localhost:3000").split(",")
    if o.strip()
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class WorkflowRequest(BaseModel):
    """Request body for POST /workflows."""

    text: str = Field(
        ...,
        min_length=1,
        description="What the workflow should do, in plain language.",
        examples=["Scrape https://example.com and summarize it"],
    )


class ValidateRequest(BaseModel):
    """Request body for POST /workflows/validate."""

    workflow: dict[str, Any] = Field(
        ...,
        description="Workflow graph: {nodes: [...], edges: [...], topology: {...}}.",
    )
    original_input: str = Field(
        "",
        description="The request the workflow was built from, used for context-aware checks.",
    )


class WorkflowResponse(BaseModel):
    """Response body for POST /workflows (mirrors AgentResult.to_dict())."""

    success: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    toolsUsed: list[str] = Field(default_factory=list)
    executionTime: float = 0.0
    confidence: float = 0.0
    errorContext: dict[str, Any] | None = None
    stageMetrics: list[dict[str, Any]] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_manager(request: Request) -> AgentManager:
    return request.app.state.manager


_ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION_ERROR: 422,
    ErrorKind.TOOL_REGISTRY_MISS: 503,
}


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health", tags=["system"], dependencies=[Depends(_verify_api_key)])
async def health(request: Request) -> dict:
    manager = _get_manager(request)
    return {
        "api": "ok",
        "backend": manager.backend_name,
        "tools": len(manager.registry),
    }


@app.post("/workflows", response_model=WorkflowResponse, tags=["workflows"], dependencies=[Depends(_verify_api_key)])
@limiter.limit(f"{os.getenv('RATE_LIMIT_WORKFLOWS_PER_MIN', '10')}/minute")
async def create_workflow(request: Request, body: WorkflowRequest) -> WorkflowResponse:
    """Run the full pipeline on one request."""
    manager = _get_manager(request)
    logger.info("Workflow request: %r", body.text[:80])
    result = await manager.process_workflow_request(body.text)
    return WorkflowResponse(**result.to_dict())


@app.post("/workflows/validate", tags=["workflows"], dependencies=[Depends(_verify_api_key)])
async def validate_workflow(request: Request, body: ValidateRequest) -> dict:
    manager = _get_manager(request)
    try:
        return await manager.validate_workflow(body.workflow, body.original_input)
    except PipelineError as e:
        raise HTTPException(
            status_code=_ERROR_STATUS.get(e.kind, 500),
            detail=e.context.to_dict(),
        )


@app.get("/tools", tags=["tools"], dependencies=[Depends(_verify_api_key)])
async def list_tools(request: Request) -> list[dict]:
    manager = _get_manager(request)
    return [manager.tool_info(name) for name in manager.available_tools()]


@app.get("/tools/{name}", tags=["tools"], dependencies=[Depends(_verify_api_key)])
async def get_tool(request: Request, name: str) -> dict:
    info = _get_manager(request).tool_info(name)
    if info is None:
        raise HTTPException(status_code=404, detail=f"Tool '{name}' not found.")
    return info


@app.get("/cache/stats", tags=["cache"], dependencies=[Depends(_verify_api_key)])
async def cache_stats(request: Request) -> dict:
    return _get_manager(request).cache_stats()


@app.delete("/cache", tags=["cache"], dependencies=[Depends(_verify_api_key)])
async def clear_cache(request: Request) -> dict:
    removed = _get_manager(request).clear_cache()
    return {"removed": removed}


@app.get("/session", tags=["system"], dependencies=[Depends(_verify_api_key)])
async def session_info(request: Request) -> dict:
    manager = _get_manager(request)
    info = manager.session_info()
    info["history"] = [entry.to_dict() for entry in manager.history[-20:]]
    return info


# ---------------------------------------------------------------------------
# Entry point (for uvicorn programmatic launch)
# ---------------------------------------------------------------------------


def serve(host: str = "0.0.0.0", port: int = 8000, reload: bool = False) -> None:
    """Launch the FastAPI server via uvicorn."""
    import uvicorn
    uvicorn.run(
        "workflow_copilot.api:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    serve()
