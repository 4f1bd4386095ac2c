from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from agent_markdown.config import Settings
from agent_markdown.main import app, get_http_client, get_settings

FIXTURES_DIR = Path(__file__).parent / "fixtures"

ORIGIN = "http://origin.test"


class FakeUpstream:
    """Records outbound requests and answers them from a path table."""

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, path, status_code=200, headers=None, content=b""):
        self.routes.setdefault(path, []).append(
            {"status_code": status_code, "headers": headers or {}, "content": content}
        )

    def fail(self, path):
        self.routes.setdefault(path, []).append(httpx.ConnectError("origin down"))

    @property
    def paths(self):
        return [request.url.path for request in self.calls]

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        outcomes = self.routes.get(request.url.path)
        if not outcomes:
            return _streamed(404, {}, b"not found")
        # The last outcome for a path repeats once earlier ones are used up
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return _streamed(outcome["status_code"], outcome["headers"], outcome["content"])


def _streamed(status_code, headers, content):
    # A stream (rather than content=) leaves the raw bytes unread, as a
    # real transport does, so the proxy can relay them with aiter_raw()
    return httpx.Response(
        status_code,
        headers={"content-length": str(len(content)), **headers},
        stream=httpx.ByteStream(content),
    )


@pytest.fixture
def sample_html() -> str:
    return (FIXTURES_DIR / "page.html").read_text()


@pytest.fixture
def minimal_html() -> str:
    return "<html><body><p>Hello World</p></body></html>"


@pytest.fixture
def html_no_main() -> str:
    return """
    <html>
    <head><title>No Main</title></head>
    <body>
        <div id="content">
            <h1>Fallback Content</h1>
            <p>Found via #content div.</p>
        </div>
    </body>
    </html>
    """


@pytest.fixture
def settings() -> Settings:
    return Settings(
        origin_base_url=ORIGIN,
        artifact_base_url=ORIGIN,
        markdown_path_prefix="/md",
    )


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def client(upstream, settings):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(upstream.handle))
    app.dependency_overrides[get_http_client] = lambda: http_client
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()
