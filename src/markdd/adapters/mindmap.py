"""Mind maps built with a markmap engine, degrading to a structural tree."""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from html import escape
import json
import re
from typing import Any

from markdd.core.exceptions import ContentError
from markdd.core.libraries.registry import MARKMAP

from .base import NotationAdapter, RenderStep


_HEADING_RE = re.compile(r"^(?P<marks>#{1,6})\s+(?P<text>.+?)\s*#*\s*$")
_BULLET_RE = re.compile(r"^(?P<indent>\s*)[-*+]\s+(?P<text>.+?)\s*$")


@dataclass(slots=True)
class TreeNode:
    content: str
    children: list[TreeNode] = field(default_factory=list)


def heading_tree(source: str) -> TreeNode:
    """Derive a tree from heading markers and bullet items.

    Bullets nest below the closest heading according to their indentation.
    """
    root = TreeNode("")
    stack: list[tuple[int, TreeNode]] = [(0, root)]
    in_fence = False
    for line in source.splitlines():
        if line.lstrip().startswith(("```", "~~~")):
            in_fence = not in_fence
            continue
        if in_fence:
            continue
        heading = _HEADING_RE.match(line)
        if heading:
            depth = len(heading.group("marks")) * 100
            text = heading.group("text")
            while len(stack) > 1 and (stack[-1][0] % 100 or stack[-1][0] >= depth):
                stack.pop()
        else:
            bullet = _BULLET_RE.match(line)
            if bullet is None:
                continue
            heading_depth = max(d for d, _ in stack if d % 100 == 0)
            indent = len(bullet.group("indent").expandtabs(4))
            depth = heading_depth + 1 + indent // 2
            text = bullet.group("text")
            while len(stack) > 1 and stack[-1][0] >= depth:
                stack.pop()
        node = TreeNode(text)
        stack[-1][1].children.append(node)
        stack.append((depth, node))

    if len(root.children) == 1:
        return root.children[0]
    return root


def _json_node(data: Any) -> TreeNode | None:
    if not isinstance(data, Mapping):
        return None
    payload = data.get("data")
    if isinstance(payload, Mapping):
        content = str(payload.get("text") or "")
    else:
        content = str(data.get("content") or data.get("text") or data.get("topic") or "")
    children = [
        child
        for child in (_json_node(entry) for entry in data.get("children") or ())
        if child is not None
    ]
    return TreeNode(content, children)


def json_tree(source: str) -> TreeNode | None:
    """Parse a KityMinder style JSON document into a tree."""
    try:
        data = json.loads(source)
    except ValueError:
        return None
    if isinstance(data, Mapping) and isinstance(data.get("root"), Mapping):
        data = data["root"]
    return _json_node(data)


def tree_from_engine(node: Any, build_item: Any) -> TreeNode:
    item = build_item(node)
    if not isinstance(item, Mapping) or not item:
        item = node if isinstance(node, Mapping) else {}
    children = item.get("children") or ()
    return TreeNode(
        str(item.get("content") or ""),
        [tree_from_engine(child, build_item) for child in children if isinstance(child, Mapping)],
    )


def render_tree(root: TreeNode, *, css_class: str = "mindmap-tree") -> str:
    def render_node(node: TreeNode) -> str:
        children = "".join(render_node(child) for child in node.children)
        nested = f"<ul>{children}</ul>" if children else ""
        label = escape(node.content, quote=False)
        return f'<li><span class="mindmap-node">{label}</span>{nested}</li>'

    if root.content:
        items = render_node(root)
    else:
        items = "".join(render_node(child) for child in root.children)
    return f'<ul class="{css_class}">{items}</ul>'


class MindmapAdapter(NotationAdapter):
    notation = "mindmap"

    def prepare(self, payload: str, variant: str | None) -> str:
        if not payload.strip():
            raise ContentError("empty mind map")
        return payload

    def steps(self, variant: str | None) -> list[RenderStep]:
        return [RenderStep("Markmap", self._transform, engine=MARKMAP)]

    async def _transform(self, engine: Any, source: str, variant: str | None) -> str:
        result = await asyncio.to_thread(engine.transform, source)
        if isinstance(result, Mapping) and isinstance(result.get("root"), Mapping):
            result = result["root"]
        if not isinstance(result, Mapping):
            raise ContentError("markmap transform returned no tree")
        tree = tree_from_engine(result, engine.build_item)
        return render_tree(tree)

    def degrade(self, source: str, variant: str | None) -> str | None:
        tree = json_tree(source) if source.lstrip().startswith("{") else None
        if tree is None:
            tree = heading_tree(source)
        return render_tree(tree, css_class="mindmap-tree mindmap-fallback")


__all__ = [
    "MindmapAdapter",
    "TreeNode",
    "heading_tree",
    "json_tree",
    "render_tree",
    "tree_from_engine",
]
