"""Rewrite ``:::`` containers and ``> [!NOTE]`` callouts as admonitions.

Both syntaxes are translated into ``!!!`` blocks before block parsing, so the
``admonition`` extension renders them. Containers additionally carry the
``custom-container`` class.

```markdown
:::warning Mind the gap
Body text.
:::

> [!TIP]
> Body text.
```
"""

from __future__ import annotations

import re

from markdown import Markdown
from markdown.extensions import Extension
from markdown.preprocessors import Preprocessor


CONTAINER_TYPES = ("info", "warning", "error", "success", "tip", "danger")

_CONTAINER_OPEN_RE = re.compile(
    r"^:::[ ]?(?P<kind>" + "|".join(CONTAINER_TYPES) + r")(?:[ \t]+(?P<title>.*?))?[ \t]*$",
    re.IGNORECASE,
)
_CONTAINER_CLOSE_RE = re.compile(r"^:::[ \t]*$")
_CALLOUT_RE = re.compile(r"^[ ]{0,3}>[ ]?\[!(?P<kind>\w+)\](?P<title>.*)$")
_QUOTE_RE = re.compile(r"^[ ]{0,3}>[ ]?(?P<body>.*)$")


def _admonition_head(kind: str, title: str, *classes: str) -> str:
    label = title.strip() or kind.capitalize()
    return f'!!! {" ".join((kind.lower(), *classes))} "{label}"'


class _ContainerPreprocessor(Preprocessor):
    def run(self, lines: list[str]) -> list[str]:
        result: list[str] = []
        index = 0
        while index < len(lines):
            line = lines[index]
            opening = _CONTAINER_OPEN_RE.match(line)
            if opening:
                end = index + 1
                while end < len(lines) and not _CONTAINER_CLOSE_RE.match(lines[end]):
                    end += 1
                if end < len(lines):
                    head = _admonition_head(
                        opening.group("kind"), opening.group("title") or "", "custom-container"
                    )
                    result.extend(["", head, *_indent(lines[index + 1 : end]), ""])
                    index = end + 1
                    continue

            callout = _CALLOUT_RE.match(line)
            if callout:
                end = index + 1
                body: list[str] = []
                while end < len(lines):
                    quoted = _QUOTE_RE.match(lines[end])
                    if quoted is None:
                        break
                    body.append(quoted.group("body"))
                    end += 1
                head = _admonition_head(callout.group("kind"), callout.group("title"), "callout")
                result.extend(["", head, *_indent(body), ""])
                index = end
                continue

            result.append(line)
            index += 1
        return result


def _indent(lines: list[str]) -> list[str]:
    return [f"    {line}" if line.strip() else "" for line in lines]


class ContainerExtension(Extension):
    def extendMarkdown(self, md: Markdown) -> None:  # noqa: N802
        # After fenced blocks are stashed (25), ahead of raw HTML blocks (20).
        md.preprocessors.register(_ContainerPreprocessor(md), "markdd-containers", 22)


__all__ = ["CONTAINER_TYPES", "ContainerExtension"]
