from __future__ import annotations

import pytest

from markdd.core.rendering.compiler import PlaceholderCompiler, split_front_matter
from markdd.core.rendering.markup import fence_info
from markdd.core.rendering.models import PlaceholderStatus


def _compile(text: str, **options: object):
    return PlaceholderCompiler(**options).compile(text)  # type: ignore[arg-type]


def test_notation_fence_becomes_placeholder() -> None:
    document = _compile("# Title\n\n```mermaid\ngraph TD\n  A-->B\n```\n\nAfter.\n")

    assert len(document.placeholders) == 1
    placeholder = document.placeholders[0]
    assert placeholder.id == "ph-1"
    assert placeholder.notation == "flowchart"
    assert placeholder.variant == "mermaid"
    assert placeholder.payload == "graph TD\n  A-->B"
    assert placeholder.status is PlaceholderStatus.PENDING
    assert placeholder.marker in document.markup
    assert 'data-placeholder-id="ph-1"' in placeholder.marker
    assert '<h1 id="title">Title</h1>' in document.markup
    assert "<p>After.</p>" in document.markup
    assert "<p>" + placeholder.marker not in document.markup


def test_placeholder_ids_are_sequential_per_compile() -> None:
    compiler = PlaceholderCompiler()
    text = "```dot\ndigraph { a -> b }\n```\n\n```abc\nK:C\nCDEF\n```\n"

    first = compiler.compile(text)
    second = compiler.compile(text)

    assert [entry.id for entry in first.placeholders] == ["ph-1", "ph-2"]
    assert [entry.id for entry in second.placeholders] == ["ph-1", "ph-2"]
    assert [entry.notation for entry in first.placeholders] == ["graphviz", "music"]


def test_payload_survives_markup_characters() -> None:
    body = 'digraph { a -> b [label="<x> & \'y\'"] }'
    document = _compile(f"```graphviz\n{body}\n```\n")

    placeholder = document.placeholders[0]
    assert placeholder.payload == body
    assert "<x>" not in document.markup


def test_fence_variants_and_attribute_syntax() -> None:
    document = _compile(
        "~~~{.neato}\ngraph { a -- b }\n~~~\n\n"
        "```circuitikz\n\\draw (0,0) to[R] (2,0);\n```\n"
    )

    assert [(entry.notation, entry.variant) for entry in document.placeholders] == [
        ("graphviz", "neato"),
        ("tikz", "circuitikz"),
    ]


def test_ordinary_code_fences_are_highlighted() -> None:
    document = _compile("```python\nprint('$x$')\n```\n")

    assert document.placeholders == []
    assert 'class="highlight"' in document.markup
    assert "math-inline" not in document.markup


def test_highlighting_can_be_disabled() -> None:
    document = _compile("```python\nprint('hi')\n```\n", highlight=False)

    assert '<code class="language-python">' in document.markup


def test_unknown_fence_language_is_left_alone() -> None:
    document = _compile("```brainfuck\n++[>+<-]\n```\n", highlight=False)

    assert document.placeholders == []
    assert "++[&gt;+&lt;-]" in document.markup


def test_unclosed_notation_fence_stays_literal() -> None:
    document = _compile("Intro\n\n```mermaid\nA-->B\n\ntrailing text\n")

    assert document.placeholders == []
    assert "trailing text</p>" in document.markup


@pytest.mark.parametrize(
    ("text", "payload"),
    [
        ("$$\nE = mc^2\n$$\n", "E = mc^2"),
        ("$$x^2 + y^2$$\n", "x^2 + y^2"),
        ("$$ \\sum_{i=1}^n i\n= \\frac{n(n+1)}{2} $$\n", "\\sum_{i=1}^n i\n= \\frac{n(n+1)}{2}"),
        ("```math\n\\frac{1}{2}\n```\n", "\\frac{1}{2}"),
    ],
)
def test_display_math_blocks(text: str, payload: str) -> None:
    document = _compile(text)

    assert len(document.placeholders) == 1
    placeholder = document.placeholders[0]
    assert (placeholder.notation, placeholder.variant) == ("math", "display")
    assert placeholder.payload == payload


def test_unterminated_display_math_stays_literal() -> None:
    document = _compile("$$ never closed\n\nNext paragraph.\n")

    assert document.placeholders == []
    assert "$$ never closed" in document.markup


def test_inline_math_uses_renderer_in_place() -> None:
    document = _compile(
        "Energy $E=mc^2$ and \\(a+b\\) inline.\n",
        inline_renderer=lambda tex: f"<math>{tex}</math>",
    )

    assert document.placeholders == []
    assert "<p>Energy <math>E=mc^2</math> and <math>a+b</math> inline.</p>" in document.markup


def test_inline_math_falls_back_to_escaped_tex() -> None:
    document = _compile("Compare $a<b$ here.\n", inline_renderer=lambda tex: None)

    assert '<span class="math-inline">a&lt;b</span>' in document.markup


def test_dollar_amounts_and_code_spans_are_not_math() -> None:
    document = _compile("It costs $5 and $6 today, see `$x$`.\n")

    assert "math-inline" not in document.markup
    assert "<code>$x$</code>" in document.markup


def test_inline_math_can_be_disabled() -> None:
    document = _compile("Keep $x$ literal.\n", inline_math=False)

    assert "<p>Keep $x$ literal.</p>" in document.markup


def test_front_matter_is_split_off() -> None:
    document = _compile("---\ntitle: Demo\nlang: fr\n---\n# Body\n")

    assert document.front_matter == {"title": "Demo", "lang": "fr"}
    assert '<h1 id="body">Body</h1>' in document.markup
    assert "title:" not in document.markup


def test_split_front_matter_ignores_invalid_yaml() -> None:
    text = "---\n: [broken\n---\nbody\n"
    assert split_front_matter(text) == ({}, text)


def test_fence_aliases() -> None:
    assert fence_info("vega-lite") is not None
    assert fence_info("Mermaid").notation == "flowchart"  # type: ignore[union-attr]
    assert fence_info("puml").notation == "uml"  # type: ignore[union-attr]
    assert fence_info("python") is None


def test_notation_fences_nested_in_lists_and_quotes() -> None:
    document = _compile(
        "- item\n\n    ```dot\n    digraph { a -> b }\n    ```\n\n"
        "> ```mermaid\n> graph TD\n> ```\n"
    )

    assert [entry.notation for entry in document.placeholders] == ["graphviz", "flowchart"]
    assert document.placeholders[0].payload == "digraph { a -> b }"
    assert document.placeholders[1].payload.strip() == "graph TD"
    for placeholder in document.placeholders:
        assert placeholder.marker in document.markup
    assert document.markup.index("<blockquote>") < document.markup.index('id="ph-2"')


def test_bracket_display_math_and_escaped_dollars() -> None:
    document = _compile("\\[\na^2\n\\]\n\nPrice is \\$5 and \\$6.\n")

    assert [(entry.notation, entry.payload) for entry in document.placeholders] == [
        ("math", "a^2")
    ]
    assert "<p>Price is $5 and $6.</p>" in document.markup
    assert "math-inline" not in document.markup


def test_display_math_is_deferred_when_inline_math_is_disabled() -> None:
    document = _compile("$$\nx\n$$\n\nKeep $y$.\n", inline_math=False)

    assert [entry.payload for entry in document.placeholders] == ["x"]
    assert "<p>Keep $y$.</p>" in document.markup


def test_task_lists_keep_static_checkboxes() -> None:
    document = _compile("- [x] done\n- [ ] todo\n")

    assert document.markup.count('type="checkbox"') == 2
    assert "task-list-item" in document.markup
    assert "disabled" in document.markup
    assert "[ ]" not in document.markup


@pytest.mark.parametrize(
    ("text", "fragment"),
    [
        ("~~gone~~", "<del>gone</del>"),
        ("H~2~O", "H<sub>2</sub>O"),
        ("x^2^", "x<sup>2</sup>"),
        ("^^added^^", "<ins>added</ins>"),
        ("==hot==", "<mark>hot</mark>"),
        ("++ctrl+c++", '<kbd class="key-control">Ctrl</kbd>'),
    ],
)
def test_inline_formatting_extensions(text: str, fragment: str) -> None:
    document = _compile(f"{text}\n")

    assert fragment in document.markup


def test_admonitions_and_collapsible_details() -> None:
    document = _compile(
        '!!! note "Heads up"\n    Admonition body.\n\n??? tip "More"\n    Hidden body.\n'
    )

    assert '<div class="admonition note">' in document.markup
    assert '<p class="admonition-title">Heads up</p>' in document.markup
    assert '<details class="tip">' in document.markup
    assert "<summary>More</summary>" in document.markup


def test_toc_marker_lists_headings() -> None:
    document = _compile("[TOC]\n\n# One\n\n## Two\n")

    assert '<div class="table-of-contents">' in document.markup
    assert '<a href="#two">Two</a>' in document.markup
    assert '<h2 id="two">Two</h2>' in document.markup


def test_colon_containers_become_admonitions() -> None:
    document = _compile(
        ":::warning Mind the gap\nBody with **bold**.\n\n```dot\ndigraph { a }\n```\n:::\n\nAfter.\n"
    )

    assert '<div class="admonition warning custom-container">' in document.markup
    assert '<p class="admonition-title">Mind the gap</p>' in document.markup
    assert "<strong>bold</strong>" in document.markup
    assert [entry.notation for entry in document.placeholders] == ["graphviz"]
    assert document.placeholders[0].marker in document.markup
    assert "<p>After.</p>" in document.markup
    assert ":::" not in document.markup


def test_untitled_and_unclosed_containers() -> None:
    titled = _compile(":::TIP\nShort.\n:::\n")
    unclosed = _compile(":::info\nnever closed\n")

    assert '<p class="admonition-title">Tip</p>' in titled.markup
    assert "admonition" not in unclosed.markup
    assert ":::info" in unclosed.markup


def test_github_callouts_become_admonitions() -> None:
    document = _compile("> [!NOTE]\n> Read *this*.\n\nPlain.\n")

    assert '<div class="admonition note callout">' in document.markup
    assert '<p class="admonition-title">Note</p>' in document.markup
    assert "<em>this</em>" in document.markup
    assert "<blockquote>" not in document.markup


def test_raw_html_is_sanitized() -> None:
    document = _compile(
        '<button onclick="steal()">Go</button>\n\n'
        'Text <img src="x.png" onerror="steal()"> <script>alert(1)</script>\n\n'
        "```mermaid\ngraph TD\n```\n"
    )

    assert "<button" not in document.markup
    assert "onerror" not in document.markup
    assert "<script" not in document.markup
    assert 'src="x.png"' in document.markup
    assert document.placeholders[0].marker in document.markup
