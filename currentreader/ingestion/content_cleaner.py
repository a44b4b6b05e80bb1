"""
Content Cleaner
===============

HTML sanitization and text extraction for feed and reader content.

This module provides:
- Full markup stripping for snippets and plain-text bodies
- Allow-list sanitization (bleach) driven by a SanitizePolicy
- The two policies used by the application (feed content, reader view)
"""

import re
from dataclasses import dataclass, field
from functools import partial
from typing import Dict, FrozenSet, Optional

import bleach
from bleach.html5lib_shim import Filter
from bs4 import BeautifulSoup, Comment
from bs4.element import CData, ProcessingInstruction, Doctype

from ..utils.logging import get_logger_for_component

PARSER = "html.parser"

# HTML elements removed together with their content
DANGEROUS_ELEMENTS = {
    "script",
    "style",
    "iframe",
    "embed",
    "object",
    "applet",
    "form",
    "input",
    "button",
    "select",
    "textarea",
    "meta",
    "link",
    "base",
    "noscript",
    "canvas",
    "template",
    "head",
    "title",
}

# Elements that end a line of text when markup is stripped
BLOCK_ELEMENTS = {
    "address", "article", "aside", "blockquote", "dd", "div", "dl", "dt",
    "figcaption", "figure", "footer", "h1", "h2", "h3", "h4", "h5", "h6",
    "header", "hr", "li", "main", "nav", "ol", "p", "pre", "section",
    "table", "tr", "ul",
}

BASE_ALLOWED_TAGS = frozenset({
    "address", "article", "aside", "footer", "header",
    "h1", "h2", "h3", "h4", "h5", "h6", "hgroup", "main", "nav", "section",
    "blockquote", "dd", "div", "dl", "dt", "figcaption", "figure", "hr", "li",
    "ol", "p", "pre", "ul",
    "a", "abbr", "b", "bdi", "bdo", "br", "cite", "code", "data", "dfn", "em",
    "i", "kbd", "mark", "q", "rb", "rp", "rt", "rtc", "ruby", "s", "samp",
    "small", "span", "strong", "sub", "sup", "time", "u", "var", "wbr",
    "caption", "col", "colgroup", "table", "tbody", "td", "tfoot", "th",
    "thead", "tr",
})

BASE_ALLOWED_ATTRIBUTES = {
    "a": frozenset({"href", "name", "target"}),
    "img": frozenset({"src", "srcset", "alt", "title", "width", "height", "loading"}),
}

WHITESPACE_PATTERN = re.compile(r"[ \t\r\f\v\u00a0]+")


@dataclass(frozen=True)
class SanitizePolicy:
    """Allow-list describing which markup survives sanitization."""
    allowed_tags: FrozenSet[str]
    allowed_attributes: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    allowed_schemes: FrozenSet[str] = frozenset({"http", "https"})
    link_target: Optional[str] = "_blank"
    link_rel: Optional[str] = "noreferrer"

    def attributes_for(self, tag_name: str) -> FrozenSet[str]:
        return self.allowed_attributes.get(tag_name, frozenset())


FEED_POLICY = SanitizePolicy(
    allowed_tags=BASE_ALLOWED_TAGS | {"img", "figure", "figcaption", "pre", "code"},
    allowed_attributes={
        **BASE_ALLOWED_ATTRIBUTES,
        "img": frozenset({"src", "alt", "title", "width", "height", "loading"}),
        "a": frozenset({"href", "title", "target", "rel"}),
    },
    allowed_schemes=frozenset({"http", "https", "mailto"}),
)

READER_POLICY = SanitizePolicy(
    allowed_tags=BASE_ALLOWED_TAGS | {"figure", "figcaption", "pre", "code", "img", "video"},
    allowed_attributes={
        **BASE_ALLOWED_ATTRIBUTES,
        "img": frozenset({"src", "alt", "title", "width", "height", "loading"}),
        "video": frozenset({"src", "controls", "poster"}),
        "a": frozenset({"href", "title", "target", "rel"}),
    },
    allowed_schemes=frozenset({"http", "https"}),
)

logger = get_logger_for_component("content_cleaner")


def _is_markup_noise(text) -> bool:
    return isinstance(text, (Comment, CData, ProcessingInstruction, Doctype))


def _remove_dangerous_elements(soup: BeautifulSoup) -> None:
    for element in soup.find_all(DANGEROUS_ELEMENTS):
        element.decompose()


def _remove_non_content_elements(soup: BeautifulSoup) -> None:
    for element in soup.find_all(string=_is_markup_noise):
        element.extract()


def _normalize_text(text: str) -> str:
    """Collapse runs of spaces inside each line and drop empty lines."""
    lines = (WHITESPACE_PATTERN.sub(" ", line).strip() for line in text.split("\n"))
    return "\n".join(line for line in lines if line)


def strip_all_markup(html_content: Optional[str]) -> str:
    """Remove every tag from an HTML fragment and return its readable text.

    Block elements and ``<br>`` become line breaks; script, style and similar
    elements are dropped along with their content. Entities are decoded.

    Args:
        html_content: HTML fragment, or plain text

    Returns:
        Plain text, empty string for empty input
    """
    if not html_content or not html_content.strip():
        return ""

    soup = BeautifulSoup(html_content, PARSER)
    _remove_dangerous_elements(soup)
    _remove_non_content_elements(soup)

    for br in soup.find_all("br"):
        br.replace_with("\n")
    for element in soup.find_all(BLOCK_ELEMENTS):
        element.append("\n")

    return _normalize_text(soup.get_text())


def collapse_whitespace(text: str) -> str:
    """Join all whitespace runs (including newlines) into single spaces."""
    return " ".join(text.split())


class LinkAttributeFilter(Filter):
    """Stamp a fixed ``target``/``rel`` on every surviving link."""

    def __init__(self, source, target: Optional[str] = None, rel: Optional[str] = None):
        super().__init__(source)
        self.target = target
        self.rel = rel

    def __iter__(self):
        for token in super().__iter__():
            if token["type"] in ("StartTag", "EmptyTag") and token["name"] == "a":
                attrs = dict(token["data"])
                if self.target:
                    attrs[(None, "target")] = self.target
                if self.rel:
                    attrs[(None, "rel")] = self.rel
                token["data"] = attrs
            yield token


def _cleaner_for(policy: SanitizePolicy) -> bleach.Cleaner:
    filters = []
    if policy.link_target or policy.link_rel:
        filters.append(
            partial(LinkAttributeFilter, target=policy.link_target, rel=policy.link_rel)
        )
    return bleach.Cleaner(
        tags=policy.allowed_tags,
        attributes={tag: list(attrs) for tag, attrs in policy.allowed_attributes.items()},
        protocols=policy.allowed_schemes,
        strip=True,
        strip_comments=True,
        filters=filters,
    )


def sanitize(html_content: Optional[str], policy: SanitizePolicy) -> str:
    """Sanitize an HTML fragment against an allow-list policy.

    Dangerous elements are removed with their content first; bleach then
    unwraps disallowed elements, drops attributes outside the policy and URL
    attributes with a scheme outside the policy. Every surviving link gets the
    policy's ``target``/``rel``.

    Args:
        html_content: HTML fragment
        policy: Allow-list to apply

    Returns:
        Sanitized HTML string
    """
    if not html_content or not html_content.strip():
        return ""

    soup = BeautifulSoup(html_content, PARSER)
    _remove_dangerous_elements(soup)
    _remove_non_content_elements(soup)

    cleaned = _cleaner_for(policy).clean(str(soup)).strip()
    logger.debug(f"Sanitized HTML: {len(html_content)} -> {len(cleaned)} chars")
    return cleaned
