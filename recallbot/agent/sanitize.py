"""HTML-subset filtering and chunking for chat delivery."""

from __future__ import annotations

import html
import re
from html.parser import HTMLParser

ALLOWED_TAGS = frozenset({
    "b", "strong", "i", "em", "u", "ins", "s", "strike", "del",
    "span", "code", "pre", "blockquote", "a",
})
ALLOWED_CLASSES = {
    "span": frozenset({"tg-spoiler"}),
    "code": frozenset({"language-python"}),
    "pre": frozenset({"language-python"}),
}
ALLOWED_SCHEMES = ("http", "https", "tg")
DROP_CONTENT_TAGS = frozenset({"script", "style"})

MAX_MESSAGE_LENGTH = 4000

_BLANK_RUN_RE = re.compile(r"\n{2,}")


class _Sanitizer(HTMLParser):
    def __init__(self, allowed: frozenset[str]):
        super().__init__(convert_charrefs=True)
        self.allowed = allowed
        self.out: list[str] = []
        self.open_tags: list[str] = []
        self.skip_depth = 0

    def _render_attrs(self, tag: str, attrs: list[tuple[str, str | None]]) -> str | None:
        """Return the filtered attribute string, or None when the tag must be dropped."""
        rendered: list[str] = []
        for name, value in attrs:
            if name == "class" and tag in ALLOWED_CLASSES:
                classes = [c for c in (value or "").split() if c in ALLOWED_CLASSES[tag]]
                if classes:
                    rendered.append(f' class="{html.escape(" ".join(classes))}"')
            elif name == "href" and tag == "a":
                href = (value or "").strip()
                scheme = href.split(":", 1)[0].lower() if ":" in href else ""
                if scheme in ALLOWED_SCHEMES:
                    rendered.append(f' href="{html.escape(href)}"')
            elif name == "expandable" and tag == "blockquote":
                rendered.append(" expandable")

        if tag == "span" and not rendered:
            return None
        if tag == "a" and not rendered:
            return None
        return "".join(rendered)

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in DROP_CONTENT_TAGS:
            self.skip_depth += 1
            return
        if self.skip_depth or tag not in self.allowed:
            return
        rendered = self._render_attrs(tag, attrs)
        if rendered is None:
            return
        self.out.append(f"<{tag}{rendered}>")
        self.open_tags.append(tag)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        # No allowed tag is a void element.
        return

    def handle_endtag(self, tag: str) -> None:
        if tag in DROP_CONTENT_TAGS:
            self.skip_depth = max(0, self.skip_depth - 1)
            return
        if self.skip_depth or tag not in self.open_tags:
            return
        while self.open_tags:
            current = self.open_tags.pop()
            self.out.append(f"</{current}>")
            if current == tag:
                break

    def handle_data(self, data: str) -> None:
        if not self.skip_depth:
            self.out.append(html.escape(data, quote=False))

    def result(self) -> str:
        self.close()
        while self.open_tags:
            self.out.append(f"</{self.open_tags.pop()}>")
        return "".join(self.out)


def sanitize_html(text: str) -> str:
    """Keep only the chat platform's HTML subset; everything else becomes escaped text."""
    parser = _Sanitizer(ALLOWED_TAGS)
    parser.feed(text or "")
    return parser.result()


def strip_tags(text: str) -> str:
    """Drop every tag, returning escaped plain text safe to embed in an HTML reply."""
    parser = _Sanitizer(frozenset())
    parser.feed(text or "")
    return parser.result()


def collapse_blank_lines(text: str) -> str:
    return _BLANK_RUN_RE.sub("\n", text)


def split_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> list[str]:
    """Cut *text* into consecutive chunks of at most *limit* characters."""
    if limit <= 0:
        raise ValueError("limit must be positive")
    if not text:
        return []
    return [text[i:i + limit] for i in range(0, len(text), limit)]
