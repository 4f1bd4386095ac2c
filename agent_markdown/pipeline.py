"""
Request pipeline.

Every inbound request goes through ``handle_request``:

  1. classify the caller by its User-Agent
  2. non-agents, and agents already asking for an artifact, are passed
     through to the origin untouched
  3. agents get the pre-generated Markdown artifact if the store has one
  4. otherwise the origin HTML is fetched and converted on the fly
  5. if that fails too, the request is passed through after all

Upstream bodies are relayed as raw bytes so that the origin's
content-encoding and content-length survive the hop.
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Optional

import httpx
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response, StreamingResponse

from agent_markdown.agents import is_ai_agent
from agent_markdown.config import Settings
from agent_markdown.errors import NetworkError
from agent_markdown.paths import is_artifact_path, to_artifact_path
from agent_markdown.render import compose_document, convert_html, count_tokens

logger = logging.getLogger("agent-markdown.pipeline")

MARKDOWN_CONTENT_TYPE = "text/markdown; charset=utf-8"
ROBOTS_TAG = "noindex, nofollow"
HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

# Content codings httpx decodes without optional extras
DECODABLE_ENCODINGS = frozenset({"gzip", "deflate", "identity"})

# Never forwarded in either direction
HOP_BY_HOP = frozenset({
    "connection",
    "keep-alive",
    "proxy-authenticate",
    "proxy-authorization",
    "proxy-connection",
    "te",
    "trailer",
    "trailers",
    "transfer-encoding",
    "upgrade",
})

# Request headers that belong to the inbound hop only
_REQUEST_ONLY = HOP_BY_HOP | {"host", "content-length"}


# ---------------------------------------------------------------------------
# Request model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class IncomingRequest:
    method: str
    path: str
    query: str
    headers: tuple
    body: bytes = b""

    @classmethod
    async def read(cls, request: Request) -> "IncomingRequest":
        raw_path = request.scope.get("raw_path")
        # raw_path keeps percent-escapes (e.g. %2F) intact
        path = raw_path.decode("latin-1").split("?", 1)[0] if raw_path else request.url.path
        return cls(
            method=request.method,
            path=path,
            query=request.url.query,
            headers=tuple(request.headers.raw),
            body=await request.body(),
        )

    def header(self, name: str) -> Optional[str]:
        wanted = name.lower().encode("latin-1")
        for key, value in self.headers:
            if key.lower() == wanted:
                return value.decode("latin-1")
        return None

    def with_header(self, name: str, value: str) -> "IncomingRequest":
        wanted = name.lower().encode("latin-1")
        headers = [(k, v) for k, v in self.headers if k.lower() != wanted]
        headers.append((wanted, value.encode("latin-1")))
        return replace(self, headers=tuple(headers))

    @property
    def user_agent(self) -> Optional[str]:
        return self.header("user-agent")

    def forward_headers(self) -> list:
        return [
            (name, value)
            for name, value in self.headers
            if name.decode("latin-1").lower() not in _REQUEST_ONLY
        ]

    def url(self, base_url: str, path: Optional[str] = None) -> str:
        url = base_url.rstrip("/") + (path or self.path)
        if self.query:
            url += f"?{self.query}"
        return url


# ---------------------------------------------------------------------------
# Upstream I/O
# ---------------------------------------------------------------------------

async def send(
    client: httpx.AsyncClient,
    request: IncomingRequest,
    base_url: str,
    path: Optional[str] = None,
) -> httpx.Response:
    """Issue *request* against *base_url*; the response is left streaming."""
    upstream = client.build_request(
        request.method,
        request.url(base_url, path),
        headers=request.forward_headers(),
        content=request.body or None,
    )
    try:
        return await client.send(upstream, stream=True)
    except httpx.HTTPError as exc:
        raise NetworkError(f"{request.method} {upstream.url} failed: {exc}") from exc


def relay(upstream: httpx.Response, extra_headers: Optional[dict] = None) -> Response:
    """Stream *upstream* back to the caller, optionally overriding headers."""
    excluded = HOP_BY_HOP | {name.lower() for name in (extra_headers or {})}
    response = StreamingResponse(
        upstream.aiter_raw(),
        status_code=upstream.status_code,
        background=BackgroundTask(upstream.aclose),
    )
    response.raw_headers = [
        (name.lower(), value)
        for name, value in upstream.headers.raw
        if name.decode("latin-1").lower() not in excluded
    ]
    for name, value in (extra_headers or {}).items():
        response.raw_headers.append(
            (name.lower().encode("latin-1"), value.encode("latin-1"))
        )
    return response


def is_html(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "").lower()
    return any(kind in content_type for kind in HTML_CONTENT_TYPES)


def decodable_accept_encoding(value: str) -> str:
    """Narrow an Accept-Encoding value to the codings httpx can decode."""
    kept = [
        part.strip()
        for part in value.split(",")
        if part.split(";")[0].strip().lower() in DECODABLE_ENCODINGS
    ]
    return ", ".join(kept) or "identity"


def content_codings(response: httpx.Response) -> list:
    value = response.headers.get("content-encoding", "")
    return [part.strip().lower() for part in value.split(",") if part.strip()]


# ---------------------------------------------------------------------------
# Pipeline stages
# ---------------------------------------------------------------------------

async def pass_through(
    request: IncomingRequest, client: httpx.AsyncClient, settings: Settings
) -> Response:
    upstream = await send(client, request, settings.origin_base_url)
    return relay(upstream)


async def fetch_artifact(
    request: IncomingRequest,
    client: httpx.AsyncClient,
    settings: Settings,
    markdown_path: str,
) -> Optional[httpx.Response]:
    """Return the streaming artifact response, or None on a miss."""
    try:
        response = await send(client, request, settings.artifact_base_url, markdown_path)
    except NetworkError as exc:
        logger.warning("Artifact fetch failed, treating as miss: %s", exc)
        return None

    if response.is_success:
        return response

    logger.debug("No artifact at %s (%d)", markdown_path, response.status_code)
    await response.aclose()
    return None


async def convert_origin(
    request: IncomingRequest, client: httpx.AsyncClient, settings: Settings
) -> Response:
    """Fetch the origin page and convert it, relaying anything that is not HTML."""
    start = time.monotonic()
    accept_encoding = request.header("accept-encoding")
    if accept_encoding is not None:
        request = request.with_header(
            "accept-encoding", decodable_accept_encoding(accept_encoding)
        )
    origin = await send(client, request, settings.origin_base_url)

    if not (origin.is_success and is_html(origin)):
        logger.info(
            "Origin %s returned %d (%s), relaying unchanged",
            request.path, origin.status_code, origin.headers.get("content-type", "-"),
        )
        return relay(origin)

    undecodable = [c for c in content_codings(origin) if c not in DECODABLE_ENCODINGS]
    if undecodable:
        await origin.aclose()
        raise NetworkError(
            f"cannot decode {request.path} (content-encoding: {', '.join(undecodable)})"
        )

    try:
        await origin.aread()
        html = origin.text
    except httpx.HTTPError as exc:
        raise NetworkError(f"reading {request.path} failed: {exc}") from exc
    finally:
        await origin.aclose()

    # CPU bound, run off the event loop
    result = await run_in_threadpool(convert_html, html, settings)
    markdown_text = compose_document(result.title, result.body, settings.markdown_footer)
    token_count = await run_in_threadpool(count_tokens, markdown_text, settings.token_model)
    duration_ms = int((time.monotonic() - start) * 1000)

    logger.info(
        "Converted %s → %d tokens in %d ms",
        request.path, token_count, duration_ms,
    )

    return PlainTextResponse(
        content=markdown_text,
        status_code=200,
        headers={
            "Content-Type": MARKDOWN_CONTENT_TYPE,
            "X-AI-Agent": "detected-converted",
            "X-Original-Path": request.path,
            "X-Robots-Tag": ROBOTS_TAG,
            "X-Markdown-Tokens": str(token_count),
        },
    )


async def serve_agent(
    request: IncomingRequest, client: httpx.AsyncClient, settings: Settings
) -> Response:
    markdown_path = to_artifact_path(
        request.path, settings.markdown_path_prefix, settings.markdown_file_pattern
    )

    artifact = await fetch_artifact(request, client, settings, markdown_path)
    if artifact is not None:
        logger.info("Serving artifact %s for %s", markdown_path, request.path)
        return relay(
            artifact,
            {
                "X-AI-Agent": "detected",
                "X-Original-Path": request.path,
                "X-Markdown-Path": markdown_path,
                "Content-Type": MARKDOWN_CONTENT_TYPE,
                "X-Robots-Tag": ROBOTS_TAG,
            },
        )

    if request.method == "HEAD":
        # No body to convert
        return await pass_through(request, client, settings)

    try:
        return await convert_origin(request, client, settings)
    except Exception as exc:
        logger.warning("Conversion of %s failed, passing through: %s", request.path, exc)

    return await pass_through(request, client, settings)


async def handle_request(
    request: Request, client: httpx.AsyncClient, settings: Settings
) -> Response:
    """Entry point for every proxied request."""
    try:
        incoming = await IncomingRequest.read(request)
        if not is_ai_agent(incoming.user_agent, settings.ai_user_agents) or is_artifact_path(
            incoming.path, settings.markdown_path_prefix
        ):
            return await pass_through(incoming, client, settings)
        return await serve_agent(incoming, client, settings)
    except Exception:
        logger.exception("Request %s %s failed", request.method, request.url.path)
        return PlainTextResponse("Service Unavailable", status_code=503)
