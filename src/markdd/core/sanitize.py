"""Sanitisation of engine output before it is spliced into preview markup."""

from __future__ import annotations

from bs4 import BeautifulSoup, Comment, Declaration, Doctype, ProcessingInstruction, Tag


# Elements that execute code or accept user interaction. Rendered output is
# reused by read-only export paths, so none of them may survive.
BLOCKED_TAGS = frozenset(
    {
        "script",
        "iframe",
        "object",
        "embed",
        "form",
        "input",
        "button",
        "select",
        "textarea",
        "link",
        "meta",
        "base",
    }
)
_URL_ATTRIBUTES = frozenset({"href", "src", "xlink:href", "action", "formaction"})
_UNSAFE_SCHEMES = ("javascript:", "vbscript:", "data:text/html")
_DROPPED_NODES = (Comment, Declaration, Doctype, ProcessingInstruction)


def _is_unsafe_url(value: str) -> bool:
    compact = "".join(value.split()).lower()
    return compact.startswith(_UNSAFE_SCHEMES)


def _is_blocked(tag: Tag) -> bool:
    name = tag.name.lower()
    if name == "input":
        # Task list checkboxes are static.
        return not (str(tag.get("type", "")).lower() == "checkbox" and tag.has_attr("disabled"))
    return name in BLOCKED_TAGS


def _clean_attributes(tag: Tag) -> None:
    for name in list(tag.attrs):
        lowered = name.lower()
        if lowered.startswith("on"):
            del tag.attrs[name]
            continue
        if lowered in _URL_ATTRIBUTES:
            value = tag.attrs[name]
            if isinstance(value, list):
                value = " ".join(value)
            if _is_unsafe_url(str(value)):
                del tag.attrs[name]


def sanitize_fragment(markup: str) -> str:
    """Strip scripts, interactive controls and event handlers from ``markup``."""
    if not markup:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    for node in soup.find_all(string=lambda node: isinstance(node, _DROPPED_NODES)):
        node.extract()
    for tag in soup.find_all(True):
        if tag.decomposed:
            continue
        if _is_blocked(tag):
            tag.decompose()
            continue
        _clean_attributes(tag)
    return str(soup)


def has_interactive_controls(markup: str) -> bool:
    """Return True when ``markup`` contains a blocked element or event handler."""
    soup = BeautifulSoup(markup, "html.parser")
    for tag in soup.find_all(True):
        if _is_blocked(tag):
            return True
        if any(name.lower().startswith("on") for name in tag.attrs):
            return True
    return False


__all__ = ["BLOCKED_TAGS", "has_interactive_controls", "sanitize_fragment"]
