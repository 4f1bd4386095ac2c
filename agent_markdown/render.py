"""
HTML → Markdown rendering.

The output style is fixed for every page so agents always receive the same
dialect: ATX headings, fenced code, ``-`` bullets, ``*``/``**`` emphasis and
inline links.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Union

import tiktoken
from bs4 import BeautifulSoup, Tag
from markdownify import markdownify as md

from agent_markdown.config import Settings
from agent_markdown.extract import extract

logger = logging.getLogger("agent-markdown.render")

MARKDOWN_STYLE = {
    "heading_style": "ATX",
    "bullets": "-",
    "strong_em_symbol": "*",
    "code_language": "",
}

_FENCE = "```"

# tiktoken encoders keyed by encoding name; None marks one that failed to load
_encoders = {}


@dataclass
class ConversionResult:
    title: str
    body: str


def normalize_markdown(text: str) -> str:
    """Collapse runs of blank lines outside fenced code blocks and trim."""
    cleaned = []
    in_fence = False
    blank = False
    for line in text.splitlines():
        if line.lstrip().startswith(_FENCE):
            in_fence = not in_fence
        elif not in_fence and line.strip() == "":
            if not blank and cleaned:
                cleaned.append("")
            blank = True
            continue
        blank = False
        cleaned.append(line)
    return "\n".join(cleaned).strip()


def render_markdown(content: Union[BeautifulSoup, Tag, str]) -> str:
    """Convert a content subtree (or raw markup) to normalized Markdown."""
    return normalize_markdown(md(str(content), **MARKDOWN_STYLE))


def compose_document(title: str, body: str, footer: str = "") -> str:
    document = f"# {title}\n\n{body}"
    if footer:
        document = f"{document}\n\n{footer}"
    return document


def convert_html(html: str, settings: Settings) -> ConversionResult:
    """Extract the main content of *html* and render it to Markdown."""
    extraction = extract(html, settings.content_selectors, settings.strip_selectors)
    return ConversionResult(
        title=extraction.title,
        body=render_markdown(extraction.content),
    )


def get_encoder(model: str):
    """
    Return the tiktoken encoder for *model*, or None if it cannot be loaded.

    Loading may download the BPE file, so it is attempted once per model;
    a failure is remembered as None.
    """
    if model not in _encoders:
        try:
            _encoders[model] = tiktoken.get_encoding(model)
        except Exception as exc:
            logger.warning("tiktoken encoding %s unavailable, estimating: %s", model, exc)
            _encoders[model] = None
    return _encoders[model]


def count_tokens(text: str, model: Optional[str] = None) -> int:
    """Estimate token count using tiktoken."""
    encoder = get_encoder(model or "cl100k_base")
    if encoder is None:
        # Rough fallback: ~4 chars per token
        return len(text) // 4
    return len(encoder.encode(text))
