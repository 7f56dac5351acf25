import pytest

from recallbot.agent.sanitize import collapse_blank_lines, sanitize_html, split_message, strip_tags


@pytest.mark.parametrize("raw,expected", [
    ("<b>bold</b> and <i>it</i>", "<b>bold</b> and <i>it</i>"),
    ("<h1>Title</h1><p>text</p>", "Titletext"),
    ("1 < 2 & 3 > 2", "1 &lt; 2 &amp; 3 &gt; 2"),
    ("<b>unclosed", "<b>unclosed</b>"),
    ("<script>alert(1)</script>safe", "safe"),
    ('<span class="tg-spoiler">boo</span>', '<span class="tg-spoiler">boo</span>'),
    ('<span style="color:red">plain</span>', "plain"),
    ('<pre><code class="language-python">x = 1</code></pre>', '<pre><code class="language-python">x = 1</code></pre>'),
    ('<a href="https://example.org">link</a>', '<a href="https://example.org">link</a>'),
    ('<a href="javascript:alert(1)">link</a>', "link"),
    ("<blockquote expandable>quote</blockquote>", "<blockquote expandable>quote</blockquote>"),
])
def test_sanitize_html(raw: str, expected: str) -> None:
    assert sanitize_html(raw) == expected


def test_strip_tags_returns_escaped_text() -> None:
    assert strip_tags("<b>Ann</b> & Bob") == "Ann &amp; Bob"


def test_collapse_blank_lines() -> None:
    assert collapse_blank_lines("a\n\n\nb\nc") == "a\nb\nc"


def test_split_message_fixed_width() -> None:
    chunks = split_message("x" * 9001, limit=4000)
    assert [len(c) for c in chunks] == [4000, 4000, 1001]
    assert "".join(chunks) == "x" * 9001
    assert split_message("") == []
