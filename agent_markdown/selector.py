"""
Content selectors.

Operators configure where the main content of a page lives with a small
subset of CSS: ``tag``, ``#id``, ``.class`` and ``[attr=value]``. Each string
is parsed once, at configuration load, into one of the selector classes
below; matching then dispatches on the class instead of re-inspecting the
string for every request.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from bs4 import BeautifulSoup, Tag

from agent_markdown.errors import SelectorError

logger = logging.getLogger("agent-markdown.selector")

_NAME = r"[A-Za-z_][A-Za-z0-9_-]*"
_TAG_RE = re.compile(rf"^{_NAME}$")
_ATTR_RE = re.compile(
    rf"""^\[\s*(?P<name>{_NAME})\s*=\s*(?:"(?P<dq>[^"]*)"|'(?P<sq>[^']*)'|(?P<bare>[^\s"'\]]+))\s*\]$"""
)

Node = Union[BeautifulSoup, Tag]


@dataclass(frozen=True)
class ByTagName:
    name: str

    def find(self, root: Node) -> Optional[Tag]:
        return root.find(self.name)

    def find_all(self, root: Node) -> list:
        return root.find_all(self.name)


@dataclass(frozen=True)
class ById:
    value: str

    def find(self, root: Node) -> Optional[Tag]:
        return root.find(id=self.value)

    def find_all(self, root: Node) -> list:
        return root.find_all(id=self.value)


@dataclass(frozen=True)
class ByClass:
    name: str

    def find(self, root: Node) -> Optional[Tag]:
        return root.find(class_=self.name)

    def find_all(self, root: Node) -> list:
        return root.find_all(class_=self.name)


@dataclass(frozen=True)
class ByAttribute:
    name: str
    value: str

    def find(self, root: Node) -> Optional[Tag]:
        return root.find(attrs={self.name: self.value})

    def find_all(self, root: Node) -> list:
        return root.find_all(attrs={self.name: self.value})


Selector = Union[ByTagName, ById, ByClass, ByAttribute]


def parse_selector(text: str) -> Selector:
    """Parse a single selector string, raising SelectorError if unsupported."""
    raw = text.strip()
    if not raw:
        raise SelectorError("empty selector")

    if raw.startswith("#"):
        if _TAG_RE.match(raw[1:]):
            return ById(raw[1:])
    elif raw.startswith("."):
        if _TAG_RE.match(raw[1:]):
            return ByClass(raw[1:])
    elif raw.startswith("["):
        match = _ATTR_RE.match(raw)
        if match:
            value = match.group("dq")
            if value is None:
                value = match.group("sq")
            if value is None:
                value = match.group("bare")
            return ByAttribute(match.group("name").lower(), value)
    elif _TAG_RE.match(raw):
        return ByTagName(raw.lower())

    raise SelectorError(f"unsupported selector: {text!r}")


def parse_selectors(texts: Iterable[str]) -> tuple:
    """Parse selectors in order, skipping (and logging) invalid ones."""
    selectors = []
    for text in texts:
        try:
            selectors.append(parse_selector(text))
        except SelectorError as exc:
            logger.warning("Skipping selector: %s", exc)
    return tuple(selectors)
