"""
Markdown for AI Agents – Edge Service
=====================================

A reverse proxy that sits in front of a website. Requests from AI crawlers
(recognised by their User-Agent) are answered with Markdown: a
pre-generated file from the artifact tree if one exists, otherwise the
page's HTML converted on the fly. Everybody else gets the origin's
response, byte for byte.

Markdown responses carry:
  - Content-Type: text/markdown; charset=utf-8
  - X-AI-Agent: detected | detected-converted
  - X-Robots-Tag: noindex, nofollow
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import Depends, FastAPI, Request
from starlette.concurrency import run_in_threadpool

from agent_markdown import __version__
from agent_markdown.config import Settings
from agent_markdown.pipeline import handle_request
from agent_markdown.render import get_encoder

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

settings = Settings.from_env()

PROXY_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]

# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------

logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
logger = logging.getLogger("agent-markdown")


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    client = httpx.AsyncClient(
        timeout=settings.origin_timeout,
        follow_redirects=False,
    )
    # Only headers the caller sent should reach the origin
    for name in ("accept", "accept-encoding", "user-agent"):
        del client.headers[name]
    return client


@asynccontextmanager
async def lifespan(app: FastAPI):
    async with create_http_client(settings) as client:
        app.state.http_client = client
        # Load (and possibly download) the tokenizer before serving traffic
        await run_in_threadpool(get_encoder, settings.token_model)
        logger.info(
            "Proxying to %s (artifacts under %s%s)",
            settings.origin_base_url,
            settings.artifact_base_url.rstrip("/"),
            settings.markdown_path_prefix,
        )
        yield


app = FastAPI(
    title="Markdown for AI Agents – Edge",
    version=__version__,
    docs_url=None,
    redoc_url=None,
    openapi_url=None,
    lifespan=lifespan,
)


def get_settings() -> Settings:
    return settings


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get(settings.health_path)
async def healthz():
    return {"status": "ok", "service": "agent-markdown-edge"}


@app.api_route("/{path:path}", methods=PROXY_METHODS)
async def proxy(
    request: Request,
    path: str,
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
):
    """
    Answer any request on behalf of the origin.

    AI agents receive Markdown; all other callers are passed through.
    """
    return await handle_request(request, client, settings)
