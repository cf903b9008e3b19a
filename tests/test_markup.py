from __future__ import annotations

import re
from html import unescape
from typing import Any

import pytest

from libmedium.models.post import MarkupKind, MarkupRange, Paragraph, ResolvedEmbed
from libmedium.services.markup import (
    apply_markups,
    render_paragraphs,
    rewrite_href,
    slice_text,
    substring,
)
from tests.fakes import gist_paragraph, markup, paragraph

TAG_PATTERN = re.compile(r"<[^>]+>")


def _ranges(*items: dict[str, Any]) -> list[MarkupRange]:
    return [MarkupRange.model_validate(item) for item in items]


def _paragraphs(*items: dict[str, Any]) -> list[Paragraph]:
    return [Paragraph.model_validate(item) for item in items]


def _strip_tags(html: str) -> str:
    return unescape(TAG_PATTERN.sub("", html))


def test_substring_counts_code_points() -> None:
    text = "héllo 🌍 wörld"
    assert substring(text, 6, 1) == "🌍"
    assert substring(text, 8, 5) == "wörld"
    assert substring(text, 0, 5) == "héllo"


def test_substring_truncates_instead_of_raising() -> None:
    text = "naïve"
    assert substring(text, 3, 10) == "ve"
    assert substring(text, 10, 2) == ""
    assert substring(text, -2, 2) == "na"
    assert substring(text, 1, -1) == ""


def test_slice_text_supports_inclusive_and_exclusive_ends() -> None:
    text = "日本語テキスト"
    assert slice_text(text, 1, 3) == "本語"
    assert slice_text(text, 1, 3, inclusive_end=True) == "本語テ"
    assert slice_text(text, 4) == "キスト"
    assert slice_text(text, None, 2) == "日本"
    assert slice_text(text, 5, 99, inclusive_end=True) == "スト"


def test_single_ranges_wrap_exact_spans() -> None:
    html = apply_markups("bold and italic", _ranges(markup("STRONG", 0, 4), markup("EM", 9, 15)))
    assert html == "<strong>bold</strong> and <em>italic</em>"


def test_text_is_escaped_once_and_code_keeps_literal_text() -> None:
    html = apply_markups("a<b & c", _ranges(markup("CODE", 0, 3)))
    assert html == "<code>a&lt;b</code> &amp; c"


def test_nested_ranges_close_innermost_first() -> None:
    html = apply_markups("abcd", _ranges(markup("EM", 0, 2), markup("STRONG", 0, 4)))
    assert html == "<strong><em>ab</em>cd</strong>"


def test_identical_spans_follow_priority_table() -> None:
    forward = apply_markups(
        "abcd",
        _ranges(markup("CODE", 0, 4), markup("STRONG", 0, 4), markup("A", 0, 4, href="https://x.dev")),
    )
    backward = apply_markups(
        "abcd",
        _ranges(markup("A", 0, 4, href="https://x.dev"), markup("STRONG", 0, 4), markup("CODE", 0, 4)),
    )
    expected = '<a href="https://x.dev"><strong><code>abcd</code></strong></a>'
    assert forward == expected
    assert backward == expected
    assert all(
        apply_markups("abcd", _ranges(markup("EM", 0, 4), markup("STRONG", 0, 4)))
        == "<strong><em>abcd</em></strong>"
        for _ in range(5)
    )


def test_partial_overlap_is_split_into_valid_nesting() -> None:
    html = apply_markups("abcdefgh", _ranges(markup("STRONG", 0, 5), markup("EM", 3, 8)))
    assert html == "<strong>abc<em>de</em></strong><em>fgh</em>"
    assert _strip_tags(html) == "abcdefgh"


@pytest.mark.parametrize(
    "bad_range",
    [
        markup("STRONG", 2, 2),
        markup("STRONG", 5, 9),
        markup("STRONG", 3, 40),
        markup("STRONG", -1, 2),
        markup("BLINK", 0, 2),
        markup("A", 0, 2),
    ],
)
def test_malformed_ranges_are_dropped_but_others_apply(bad_range: dict[str, Any]) -> None:
    html = apply_markups("hello", _ranges(bad_range, markup("EM", 0, 5)))
    assert html == "<em>hello</em>"


def test_non_overlapping_ranges_round_trip_to_original_text() -> None:
    text = "Ünïcode “quotes” & <angles> with 🌍 emoji in the middle."
    ranges = _ranges(
        markup("STRONG", 0, 7),
        markup("EM", 8, 16),
        markup("CODE", 19, 27),
        markup("A", 33, 34, href="https://example.com/?q=1&r=2"),
        markup("STRIKE", 41, 47),
    )
    html = apply_markups(text, ranges)
    assert _strip_tags(html) == text
    assert "&lt;angles&gt;" in html
    assert 'href="https://example.com/?q=1&amp;r=2"' in html


def test_user_links_and_medium_post_links_are_rewritten() -> None:
    user_link = apply_markups(
        "Tyler",
        _ranges(markup("A", 0, 5, anchorType="USER", userId="abc123")),
    )
    assert user_link == '<a href="https://medium.com/u/abc123">Tyler</a>'

    assert (
        rewrite_href("https://medium.com/@ftrain/big-data-small-effort-b62607a43a8c")
        == "/utils/post/b62607a43a8c"
    )
    assert rewrite_href("https://blog.medium.com/p/7158b1cdd50c") == "/utils/post/7158b1cdd50c"
    assert rewrite_href("https://medium.com/@tylerneely") == "https://medium.com/@tylerneely"
    assert rewrite_href("https://docs.rs/crossbeam-epoch") == "https://docs.rs/crossbeam-epoch"


def test_render_paragraphs_uses_kind_strategies() -> None:
    fragments = render_paragraphs(
        _paragraphs(
            paragraph("H3", "Title"),
            paragraph("OLI", "first"),
            paragraph("OLI", "second"),
            paragraph("P", "after"),
            paragraph("PRE", "x < y", codeBlockMetadata={"lang": "rust"}),
            paragraph("BQ", "quoted"),
            paragraph("SOMETHING_NEW", "fallback"),
        )
    )
    assert fragments == (
        "<h3>Title</h3>",
        "<ol><li>first</li>",
        "<li>second</li></ol>",
        "<p>after</p>",
        '<pre><code class="language-rust">x &lt; y</code></pre>',
        "<blockquote>quoted</blockquote>",
        "<p>fallback</p>",
    )


def test_render_image_paragraph_points_at_asset_proxy() -> None:
    (fragment,) = render_paragraphs(
        _paragraphs(
            paragraph(
                "IMG",
                "A caption",
                metadata={"id": "1*abc.png", "originalWidth": 800, "originalHeight": 600},
            )
        )
    )
    assert fragment == (
        '<figure><img src="/asset/medium/1*abc.png" alt="A caption" width="800" '
        'height="600" loading="lazy" /><figcaption>A caption</figcaption></figure>'
    )


def test_embed_paragraphs_use_resolved_content() -> None:
    url = "https://gist.github.com/someone/abc123"
    embeds = {url: ResolvedEmbed(url=url, provider="gist", html="<figure>gist</figure>")}
    other = paragraph(
        "IFRAME",
        iframe={"mediaResource": {"href": "https://www.youtube.com/watch?v=1", "iframeSrc": ""}},
    )

    fragments = render_paragraphs(_paragraphs(gist_paragraph(url), other), embeds)

    assert fragments[0] == "<figure>gist</figure>"
    assert fragments[1] == (
        '<p class="embed-link"><a href="https://www.youtube.com/watch?v=1">'
        "https://www.youtube.com/watch?v=1</a></p>"
    )


def test_mixtape_links_to_its_target_when_text_has_no_link() -> None:
    (fragment,) = render_paragraphs(
        _paragraphs(
            paragraph(
                "MIXTAPE_EMBED",
                "Another post",
                mixtapeMetadata={"href": "https://medium.com/@a/another-post-0123456789ab"},
            )
        )
    )
    assert fragment == (
        '<div class="mixtape"><a href="/utils/post/0123456789ab">Another post</a></div>'
    )


def test_paragraph_drops_markup_entries_that_fail_validation() -> None:
    (parsed,) = _paragraphs(
        paragraph(
            "P",
            "hello world",
            markups=[
                None,
                {"type": "STRONG", "start": None, "end": 3},
                {"type": "EM", "start": "later", "end": 2},
                markup("EM", 0, 5),
            ],
        )
    )

    assert [(item.kind, item.start, item.end) for item in parsed.markups] == [
        (MarkupKind.EMPHASIS, 0, 5)
    ]
    assert render_paragraphs([parsed]) == ("<p><em>hello</em> world</p>",)
