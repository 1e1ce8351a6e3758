"""FastAPI application for the changelog agent.

Endpoints:
- GET /health - Health check for load balancers and monitoring
- POST /version/next - Resolve the next version (no LLM involved)
- POST /changelog - Resolve the version and generate the changelog
- Automatic OpenAPI/Swagger documentation at /docs

Error mapping:
- InputError (invalid versions, no release directive) -> 422
- TransientCallError (LLM/GitHub still failing after retries) -> 503
- Anything else is a bug and surfaces as a 500

To run locally:
    uvicorn changelog_agent.main:app --reload --port 8000
"""

from __future__ import annotations

import time
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.middleware.base import BaseHTTPMiddleware

from changelog_agent.agent import ChangelogAgent
from changelog_agent.config import load_config
from changelog_agent.errors import InputError, TransientCallError
from changelog_agent.logging_config import get_logger, setup_logging
from changelog_agent.schemas import (
    ChangelogInput,
    ChangelogOutput,
    ReleaseType,
    VersionInfo,
)
from changelog_agent.version import create_version_info

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Application Lifespan (startup/shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the agent once at startup rather than on every request."""
    setup_logging()
    app.state.agent = ChangelogAgent(config=load_config())
    yield


# ---------------------------------------------------------------------------
# FastAPI App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Changelog Agent",
    description="Semantic version resolution and AI-written release notes",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class LoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        start = time.time()
        response = await call_next(request)
        logger.info(
            "http_request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_seconds=round(time.time() - start, 3),
        )
        return response


app.add_middleware(LoggingMiddleware)


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


@app.exception_handler(InputError)
async def input_error_handler(request: Request, exc: InputError) -> JSONResponse:
    """Bad input: invalid versions, releases without a directive."""
    return JSONResponse(
        status_code=422,
        content={"error": "validation_error", "detail": str(exc)},
    )


@app.exception_handler(TransientCallError)
async def transient_error_handler(
    request: Request, exc: TransientCallError
) -> JSONResponse:
    """An upstream service kept failing after every retry."""
    return JSONResponse(
        status_code=503,
        content={"error": "upstream_unavailable", "detail": str(exc)},
    )


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


class NextVersionRequest(BaseModel):
    """Body of POST /version/next."""

    previous: str | None = Field(None, description="Last released version")
    release_type: ReleaseType = Field(..., description="Bump to apply")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint for load balancers and monitoring."""
    return {"status": "healthy"}


@app.post("/version/next", response_model=VersionInfo)
async def next_version(body: NextVersionRequest) -> VersionInfo:
    """Resolve the version that follows ``previous``."""
    return create_version_info(body.previous, body.release_type)


@app.post("/changelog", response_model=ChangelogOutput)
async def generate_changelog(release: ChangelogInput, request: Request) -> ChangelogOutput:
    """Resolve the version and generate the changelog for a release."""
    agent: ChangelogAgent = request.app.state.agent
    return await agent.generate(release)
