"""
Service configuration.

Everything is read from the environment exactly once and frozen into a
``Settings`` value that the rest of the service receives explicitly.

CONTENT_SELECTORS and STRIP_SELECTORS are comma separated and accept only
simple selectors: a tag name (``main``), an id (``#content``), a class
(``.post-body``) or one attribute equality (``[role=main]``). Compound and
descendant selectors such as ``div.content`` or ``main article`` are skipped
with a warning at startup.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from agent_markdown.errors import ConfigurationError
from agent_markdown.selector import parse_selectors


class FilePattern(str, Enum):
    """How a page path maps onto a pre-generated Markdown file."""

    INDEX = "index"    # /about -> {prefix}/about/index.md
    DIRECT = "direct"  # /about -> {prefix}/about.md


DEFAULT_AI_USER_AGENTS = (
    "claude", "anthropic", "claude-bot",
    "gptbot", "chatgpt", "openai",
    "google-extended", "googlebot-extended", "bard", "gemini",
    "perplexity", "perplexitybot",
    "bytespider", "ccbot", "meta-externalagent",
    "cohere", "youbot", "anthropicbot",
)

DEFAULT_CONTENT_SELECTORS = "main,article,[role=main],#content,.content"


def _split(value: str) -> list:
    return [part.strip() for part in value.split(",") if part.strip()]


def normalize_prefix(prefix: str) -> str:
    """Return *prefix* with a leading slash and no trailing slash."""
    cleaned = prefix.strip().rstrip("/")
    if not cleaned:
        raise ConfigurationError("MARKDOWN_PATH_PREFIX must not be empty or '/'")
    if not cleaned.startswith("/"):
        cleaned = "/" + cleaned
    return cleaned


@dataclass(frozen=True)
class Settings:
    origin_base_url: str = "http://localhost:8080"
    artifact_base_url: str = "http://localhost:8080"
    origin_timeout: float = 10.0
    markdown_path_prefix: str = "/md"
    markdown_file_pattern: FilePattern = FilePattern.INDEX
    content_selectors: tuple = field(
        default_factory=lambda: parse_selectors(_split(DEFAULT_CONTENT_SELECTORS))
    )
    strip_selectors: tuple = ()
    ai_user_agents: frozenset = frozenset(DEFAULT_AI_USER_AGENTS)
    markdown_footer: str = ""
    log_level: str = "INFO"
    token_model: str = "cl100k_base"
    health_path: str = "/_agent-markdown/healthz"

    def __post_init__(self):
        object.__setattr__(
            self, "markdown_path_prefix", normalize_prefix(self.markdown_path_prefix)
        )
        pattern = self.markdown_file_pattern
        if not isinstance(pattern, FilePattern):
            pattern = str(pattern).strip().lower()
        try:
            pattern = FilePattern(pattern)
        except ValueError:
            raise ConfigurationError(
                f"MARKDOWN_FILE_PATTERN must be 'index' or 'direct', "
                f"got {self.markdown_file_pattern!r}"
            )
        object.__setattr__(self, "markdown_file_pattern", pattern)
        object.__setattr__(
            self,
            "ai_user_agents",
            frozenset(p.lower() for p in self.ai_user_agents if p),
        )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ

        origin = env.get("ORIGIN_BASE_URL", "http://localhost:8080")
        try:
            timeout = float(env.get("ORIGIN_TIMEOUT", "10"))
        except ValueError:
            raise ConfigurationError("ORIGIN_TIMEOUT must be a number of seconds")

        agents = env.get("AI_USER_AGENTS", "")

        return cls(
            origin_base_url=origin,
            artifact_base_url=env.get("ARTIFACT_BASE_URL", "") or origin,
            origin_timeout=timeout,
            markdown_path_prefix=env.get("MARKDOWN_PATH_PREFIX", "/md"),
            markdown_file_pattern=env.get("MARKDOWN_FILE_PATTERN", "index"),
            content_selectors=parse_selectors(
                _split(env.get("CONTENT_SELECTORS", DEFAULT_CONTENT_SELECTORS))
            ),
            strip_selectors=parse_selectors(_split(env.get("STRIP_SELECTORS", ""))),
            ai_user_agents=frozenset(_split(agents) if agents else DEFAULT_AI_USER_AGENTS),
            markdown_footer=env.get("MARKDOWN_FOOTER", ""),
            log_level=env.get("LOG_LEVEL", "INFO"),
            token_model=env.get("TOKEN_MODEL", "cl100k_base"),
            health_path=env.get("HEALTH_PATH", "/_agent-markdown/healthz"),
        )
