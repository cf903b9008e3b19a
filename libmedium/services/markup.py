from __future__ import annotations

import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from html import escape
from urllib.parse import urlparse

from libmedium.errors import MalformedMarkupError
from libmedium.models.post import (
    MarkupKind,
    MarkupRange,
    Paragraph,
    ParagraphKind,
    ResolvedEmbed,
)
from libmedium.services.route_resolver import asset_path, by_post_id_path

LOGGER = logging.getLogger("libmedium.markup")

# Lower opens first (outermost) when two ranges cover the exact same span.
MARKUP_PRIORITY: dict[MarkupKind, int] = {
    MarkupKind.LINK: 0,
    MarkupKind.STRONG: 1,
    MarkupKind.EMPHASIS: 2,
    MarkupKind.STRIKE: 3,
    MarkupKind.CODE: 4,
}

_SIMPLE_TAGS: dict[MarkupKind, str] = {
    MarkupKind.STRONG: "strong",
    MarkupKind.EMPHASIS: "em",
    MarkupKind.STRIKE: "s",
    MarkupKind.CODE: "code",
}

MEDIUM_USER_URL = "https://medium.com/u/{user_id}"
_MEDIUM_POST_SUFFIX = re.compile(r"-([0-9a-f]{8,16})$")
_MEDIUM_POST_ID = re.compile(r"[0-9a-f]{8,16}")


def substring(text: str, start: int, length: int) -> str:
    """Return up to ``length`` code points of ``text`` starting at ``start``.

    Out-of-range requests are truncated instead of raising.
    """
    start = max(start, 0)
    length = max(length, 0)
    return text[start : start + length]


def slice_text(
    text: str,
    start: int | None = None,
    end: int | None = None,
    *,
    inclusive_end: bool = False,
) -> str:
    begin = 0 if start is None else max(start, 0)
    if end is None:
        stop = len(text)
    else:
        stop = end + 1 if inclusive_end else end
    return substring(text, begin, stop - begin)


@dataclass(frozen=True)
class _Span:
    kind: MarkupKind
    start: int
    end: int
    open_tag: str
    close_tag: str
    order: int


def rewrite_href(href: str) -> str:
    """Point links at Medium posts back at this proxy."""
    parsed = urlparse(href)
    host = (parsed.hostname or "").lower()
    if host != "medium.com" and not host.endswith(".medium.com"):
        return href
    segments = [segment for segment in parsed.path.split("/") if segment]
    if not segments:
        return href
    if len(segments) == 2 and segments[0] == "p" and _MEDIUM_POST_ID.fullmatch(segments[1]):
        return by_post_id_path(segments[1])
    match = _MEDIUM_POST_SUFFIX.search(segments[-1])
    if match is None:
        return href
    return by_post_id_path(match.group(1))


def _link_target(markup: MarkupRange) -> str:
    if (markup.anchor_type or "").upper() == "USER" and markup.user_id:
        return MEDIUM_USER_URL.format(user_id=markup.user_id)
    if markup.href:
        return rewrite_href(markup.href)
    raise MalformedMarkupError("link range without a target")


def _tags_for(markup: MarkupRange) -> tuple[str, str]:
    if markup.kind is MarkupKind.LINK:
        href = escape(_link_target(markup), quote=True)
        return f'<a href="{href}">', "</a>"
    tag = _SIMPLE_TAGS.get(markup.kind)
    if tag is None:
        raise MalformedMarkupError(f"unsupported markup kind={markup.kind}")
    return f"<{tag}>", f"</{tag}>"


def _build_span(markup: MarkupRange, *, text_length: int, order: int) -> _Span:
    if markup.length <= 0:
        raise MalformedMarkupError(f"empty range start={markup.start} end={markup.end}")
    if markup.start < 0 or markup.end > text_length:
        raise MalformedMarkupError(
            f"range out of bounds start={markup.start} end={markup.end} length={text_length}"
        )
    open_tag, close_tag = _tags_for(markup)
    return _Span(
        kind=markup.kind,
        start=markup.start,
        end=markup.end,
        open_tag=open_tag,
        close_tag=close_tag,
        order=order,
    )


def _valid_spans(text_length: int, markups: Sequence[MarkupRange]) -> list[_Span]:
    spans: list[_Span] = []
    for order, markup in enumerate(markups):
        try:
            spans.append(_build_span(markup, text_length=text_length, order=order))
        except MalformedMarkupError as exc:
            LOGGER.debug("dropping markup range reason=%s", exc)
    spans.sort(key=lambda span: (span.start, -span.end, MARKUP_PRIORITY[span.kind], span.order))
    return spans


def apply_markups(text: str, markups: Sequence[MarkupRange]) -> str:
    """Render ``text`` as HTML with every valid markup range wrapped in its tag.

    Text is escaped exactly once. Ranges that cannot nest inside an enclosing
    range are closed before it closes and reopened right after.
    """
    spans = _valid_spans(len(text), markups)
    if not spans:
        return escape(text, quote=False)

    opening: dict[int, list[_Span]] = {}
    for span in spans:
        opening.setdefault(span.start, []).append(span)
    boundaries = sorted({span.start for span in spans} | {span.end for span in spans})

    parts: list[str] = []
    stack: list[_Span] = []
    cursor = 0
    for position in boundaries:
        parts.append(escape(slice_text(text, cursor, position), quote=False))
        cursor = position

        if any(span.end == position for span in stack):
            reopen: list[_Span] = []
            while any(span.end == position for span in stack):
                span = stack.pop()
                parts.append(span.close_tag)
                if span.end != position:
                    reopen.append(span)
            for span in reversed(reopen):
                parts.append(span.open_tag)
                stack.append(span)

        for span in opening.get(position, ()):
            parts.append(span.open_tag)
            stack.append(span)

    parts.append(escape(slice_text(text, cursor), quote=False))
    return "".join(parts)


@dataclass(frozen=True)
class _RenderContext:
    paragraphs: Sequence[Paragraph]
    index: int
    embeds: Mapping[str, ResolvedEmbed]

    @property
    def previous_kind(self) -> ParagraphKind | None:
        if self.index == 0:
            return None
        return self.paragraphs[self.index - 1].kind

    @property
    def next_kind(self) -> ParagraphKind | None:
        if self.index + 1 >= len(self.paragraphs):
            return None
        return self.paragraphs[self.index + 1].kind


ParagraphStrategy = Callable[[Paragraph, _RenderContext], str]


def _wrapped(tag: str, attributes: str = "") -> ParagraphStrategy:
    def render(paragraph: Paragraph, _: _RenderContext) -> str:
        body = apply_markups(paragraph.text, paragraph.markups)
        return f"<{tag}{attributes}>{body}</{tag}>"

    return render


def _list_item(list_tag: str) -> ParagraphStrategy:
    def render(paragraph: Paragraph, context: _RenderContext) -> str:
        item = f"<li>{apply_markups(paragraph.text, paragraph.markups)}</li>"
        if context.previous_kind != paragraph.kind:
            item = f"<{list_tag}>{item}"
        if context.next_kind != paragraph.kind:
            item = f"{item}</{list_tag}>"
        return item

    return render


def _code_block(paragraph: Paragraph, _: _RenderContext) -> str:
    body = apply_markups(paragraph.text, paragraph.markups)
    lang = paragraph.code_block_metadata.lang if paragraph.code_block_metadata else None
    if lang:
        return f'<pre><code class="language-{escape(lang, quote=True)}">{body}</code></pre>'
    return f"<pre><code>{body}</code></pre>"


def _image(paragraph: Paragraph, _: _RenderContext) -> str:
    metadata = paragraph.metadata
    if metadata is None:
        LOGGER.debug("image paragraph without metadata name=%s", paragraph.name)
        return ""
    attributes = [f'src="{escape(asset_path(metadata.id), quote=True)}"']
    attributes.append(f'alt="{escape(metadata.alt or paragraph.text, quote=True)}"')
    if metadata.original_width:
        attributes.append(f'width="{metadata.original_width}"')
    if metadata.original_height:
        attributes.append(f'height="{metadata.original_height}"')
    attributes.append('loading="lazy"')
    figure = f"<figure><img {' '.join(attributes)} />"
    if paragraph.text:
        figure += f"<figcaption>{apply_markups(paragraph.text, paragraph.markups)}</figcaption>"
    return f"{figure}</figure>"


def _iframe(paragraph: Paragraph, context: _RenderContext) -> str:
    url = paragraph.embed_url
    if url is not None and url in context.embeds:
        return context.embeds[url].html
    resource = paragraph.iframe.media_resource if paragraph.iframe else None
    if resource is not None and resource.iframe_src:
        attributes = [f'src="{escape(resource.iframe_src, quote=True)}"']
        if resource.iframe_width:
            attributes.append(f'width="{resource.iframe_width}"')
        if resource.iframe_height:
            attributes.append(f'height="{resource.iframe_height}"')
        return f'<iframe {" ".join(attributes)} frameborder="0" allowfullscreen></iframe>'
    if url:
        href = escape(url, quote=True)
        return f'<p class="embed-link"><a href="{href}">{escape(url, quote=False)}</a></p>'
    return ""


def _mixtape(paragraph: Paragraph, _: _RenderContext) -> str:
    body = apply_markups(paragraph.text, paragraph.markups)
    href = paragraph.mixtape_metadata.href if paragraph.mixtape_metadata else None
    has_link = any(markup.kind is MarkupKind.LINK for markup in paragraph.markups)
    if href and not has_link:
        body = f'<a href="{escape(rewrite_href(href), quote=True)}">{body}</a>'
    return f'<div class="mixtape">{body}</div>'


PARAGRAPH_STRATEGIES: dict[ParagraphKind, ParagraphStrategy] = {
    ParagraphKind.TEXT: _wrapped("p"),
    ParagraphKind.HEADING_2: _wrapped("h2"),
    ParagraphKind.HEADING_3: _wrapped("h3"),
    ParagraphKind.HEADING_4: _wrapped("h4"),
    ParagraphKind.BLOCKQUOTE: _wrapped("blockquote"),
    ParagraphKind.PULL_QUOTE: _wrapped("blockquote", ' class="pullquote"'),
    ParagraphKind.CODE_BLOCK: _code_block,
    ParagraphKind.UNORDERED_ITEM: _list_item("ul"),
    ParagraphKind.ORDERED_ITEM: _list_item("ol"),
    ParagraphKind.IMAGE: _image,
    ParagraphKind.IFRAME: _iframe,
    ParagraphKind.MIXTAPE: _mixtape,
    ParagraphKind.UNKNOWN: _wrapped("p"),
}


def render_paragraphs(
    paragraphs: Sequence[Paragraph],
    embeds: Mapping[str, ResolvedEmbed] | None = None,
) -> tuple[str, ...]:
    resolved = embeds if embeds is not None else {}
    fragments: list[str] = []
    for index, paragraph in enumerate(paragraphs):
        strategy = PARAGRAPH_STRATEGIES[paragraph.kind]
        context = _RenderContext(paragraphs=paragraphs, index=index, embeds=resolved)
        fragments.append(strategy(paragraph, context))
    return tuple(fragments)
