"""Main-content extraction from origin HTML."""

import logging
from dataclasses import dataclass
from typing import Iterable, Union

from bs4 import BeautifulSoup, Tag
from bs4.builder import ParserRejectedMarkup

from agent_markdown.errors import ParseError

logger = logging.getLogger("agent-markdown.extract")

DEFAULT_TITLE = "Page Content"

# Chrome, not content. Removed from whatever subtree was selected.
NOISE_TAGS = ["script", "style", "nav", "header", "footer", "aside"]


@dataclass
class Extraction:
    title: str
    content: Union[BeautifulSoup, Tag]


def _parse(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, "html.parser")
    except ParserRejectedMarkup as exc:
        raise ParseError(str(exc)) from exc


def parse_document(html: str) -> BeautifulSoup:
    """
    Parse *html* into a document.

    ``html.parser`` copes with nearly any markup. If it still rejects the
    input, fall back to a bare document whose body carries the raw text.
    """
    try:
        return _parse(html)
    except ParseError as exc:
        logger.warning("HTML rejected by parser, using text fallback: %s", exc)
        soup = BeautifulSoup("<html><body></body></html>", "html.parser")
        soup.body.string = html
        return soup


def extract_title(soup: BeautifulSoup) -> str:
    """First <title> text, trimmed; an empty title stays empty."""
    title_tag = soup.find("title")
    if title_tag is None:
        return DEFAULT_TITLE
    return title_tag.get_text().strip()


def select_content(soup: BeautifulSoup, selectors: Iterable) -> Union[BeautifulSoup, Tag]:
    """Return the first subtree matched by *selectors*, else body, else soup."""
    for selector in selectors:
        element = selector.find(soup)
        if element is not None:
            return element
    return soup.body or soup


def strip_noise(content: Union[BeautifulSoup, Tag], strip_selectors: Iterable = ()) -> None:
    """Remove noise elements (and any extra *strip_selectors*) below *content*."""
    for element in content.find_all(NOISE_TAGS):
        # Nested noise goes away with its decomposed ancestor
        if not element.decomposed:
            element.decompose()
    for selector in strip_selectors:
        for element in selector.find_all(content):
            if not element.decomposed:
                element.decompose()


def extract(html: str, selectors: Iterable, strip_selectors: Iterable = ()) -> Extraction:
    soup = parse_document(html)
    title = extract_title(soup)
    content = select_content(soup, selectors)
    strip_noise(content, strip_selectors)
    return Extraction(title=title, content=content)
