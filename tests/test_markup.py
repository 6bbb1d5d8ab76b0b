"""Tests for ``migrator.markup`` — koko comment markup → vichan HTML."""

from __future__ import annotations

import html

import pytest

from migrator.markup import (
    BODY_RULES,
    MarkupContext,
    autolink,
    backlink,
    cross_board_backlink,
    escape_html,
    greentext,
    make_slug,
    plain_text,
    redtext,
    render_body,
    split_name,
    transform_post,
)
from migrator.threads import ThreadMap


def ctx(resto: int = 0, mappings: dict[int, int] | None = None, board: str = "b") -> MarkupContext:
    return MarkupContext(board=board, resto=resto, threads=ThreadMap(mappings or {}))


class TestPlainText:
    def test_breaks_become_newlines(self):
        assert plain_text("a<br />b<br/>c<BR/>d", ctx()) == "a\nb\nc\nd"

    def test_bare_break_tag_is_dropped(self):
        assert plain_text("c<BR>d", ctx()) == "cd"

    def test_bare_break_keeps_comment_on_one_line(self):
        body, plain = render_body("&gt;a<br>b", ctx())
        assert plain == ">ab"
        assert body == '<span class="quote">&gt;ab</span>'

    def test_tags_stripped_and_entities_decoded(self):
        com = '<span class="unkfunc">&gt;quoted</span> &amp; <b>bold</b>'
        assert plain_text(com, ctx()) == ">quoted & bold"

    def test_unclosed_angle_bracket_kept(self):
        assert plain_text("a < b", ctx()) == "a < b"


class TestEscape:
    def test_escapes_quotes_and_backtick(self):
        assert escape_html("<a href=\"x\">'`&") == "&lt;a href=&quot;x&quot;&gt;&#x27;&#x60;&amp;"

    @pytest.mark.parametrize("text", ["hello world", "a & b", 'say "hi"', "it's fine", "100% done"])
    def test_clean_text_is_just_escaped(self, text):
        body, plain = render_body(text, ctx())
        assert plain == text
        assert body == escape_html(text)
        assert body == escape_html(html.unescape(escape_html(text)))


class TestCrossBoardBacklink:
    def test_with_post_id(self):
        out = cross_board_backlink("&gt;&gt;&gt;/a/123 look", ctx())
        assert out == '<a href="/a/res/123.html#123">&gt;&gt;&gt;/a/123</a> look'

    def test_without_post_id_links_index(self):
        out = cross_board_backlink("&gt;&gt;&gt;/a/ board", ctx())
        assert out == '<a href="/a/index.html">&gt;&gt;&gt;/a/</a> board'

    def test_only_at_start(self):
        text = "see &gt;&gt;&gt;/a/1"
        assert cross_board_backlink(text, ctx()) == text


class TestBacklink:
    def test_resolves_current_thread(self):
        out = backlink("&gt;&gt;3 hello", ctx(resto=3, mappings={3: 40}))
        assert out == (
            "<a onclick=\"highlightReply('3', event);\" "
            'href="/b/res/40.html#3">&gt;&gt;3</a> hello'
        )

    def test_unmapped_thread_uses_literal_id(self):
        out = backlink("&gt;&gt;3 hello", ctx(resto=0, mappings={3: 40}))
        assert 'href="/b/res/3.html#3"' in out

    def test_uses_target_board_name(self):
        out = backlink("&gt;&gt;7", ctx(resto=1, mappings={1: 2}, board="vb"))
        assert 'href="/vb/res/2.html#7"' in out

    def test_only_first_reference(self):
        out = backlink("&gt;&gt;1 &gt;&gt;2", ctx())
        assert out.endswith(" &gt;&gt;2")
        assert out.count("<a ") == 1


class TestQuotes:
    def test_greentext_single_line(self):
        assert greentext("&gt;implying", ctx()) == '<span class="quote">&gt;implying</span>'

    def test_greentext_needs_whole_text_on_one_line(self):
        text = "&gt;first\nsecond"
        assert greentext(text, ctx()) == text

    @pytest.mark.parametrize("sep", ["\r", "\u2028", "\u2029"])
    def test_other_line_terminators_end_the_line(self, sep):
        text = f"&gt;a{sep}b"
        assert greentext(text, ctx()) == text
        assert redtext(f"&lt;a{sep}b", ctx()) == f"&lt;a{sep}b"

    def test_redtext(self):
        assert redtext("&lt;wow", ctx()) == '<span class="rquote">&lt;wow</span>'

    def test_quote_not_applied_after_first_line(self):
        body, _ = render_body("hi\n>no quote", ctx())
        assert body == "hi<br/>&gt;no quote"


class TestAutolink:
    def test_http_url(self):
        out = autolink("see https://example.com/x now", ctx())
        assert out == (
            'see <a href="https://example.com/x" target="_blank" '
            'rel="nofollow noreferrer">https://example.com/x</a> now'
        )

    def test_escaped_query_string_kept_intact(self):
        body, _ = render_body("http://example.com/a?b=1&c=2", ctx())
        assert body.startswith('<a href="http://example.com/a?b=1&amp;c=2"')

    def test_plain_text_untouched(self):
        assert autolink("no links here", ctx()) == "no links here"


class TestRenderBody:
    def test_rule_order(self):
        assert [name for name, _ in BODY_RULES] == [
            "escape",
            "cross_board_backlink",
            "backlink",
            "greentext",
            "redtext",
            "newlines_to_breaks",
            "autolink",
        ]

    def test_backlink_not_also_greentexted(self):
        body, plain = render_body("&gt;&gt;3 hello", ctx(resto=3, mappings={3: 40}))
        assert plain == ">>3 hello"
        assert "quote" not in body
        assert 'href="/b/res/40.html#3"' in body

    def test_multiline_koko_comment(self):
        body, plain = render_body("line one<br />line &amp; two", ctx())
        assert plain == "line one\nline & two"
        assert body == "line one<br/>line &amp; two"


class TestPosterFields:
    def test_name_and_trip(self):
        assert split_name("Anon!trip") == ("Anon", "trip")

    def test_no_trip(self):
        assert split_name("Anon") == ("Anon", None)
        assert split_name("Anon!") == ("Anon", None)

    def test_trip_markup_stripped(self):
        assert split_name('Anon <span class="postertrip">!Ab12</span>') == ("Anon", "Ab12")

    def test_split_once(self):
        assert split_name("a!b!c") == ("a", "b!c")

    def test_truncation(self):
        name, trip = split_name("n" * 50 + "!" + "t" * 20)
        assert len(name) == 35
        assert len(trip) == 15

    def test_slug(self):
        assert make_slug("Test") == "Test"
        assert make_slug("Hello World") == "Hello-World"
        assert make_slug("") is None
        assert make_slug(None) is None
        assert len(make_slug("word " * 100)) <= 256


class TestTransformPost:
    def test_scenario(self):
        text = transform_post(
            com=">>3 hello",
            name="Anon!trip",
            subject="Test",
            email="",
            password="pw",
            ip="10.0.0.1",
            ctx=ctx(resto=3, mappings={3: 40}),
        )
        assert 'href="/b/res/40.html#3"' in text.body
        assert text.body_nomarkup == ">>3 hello"
        assert text.name == "Anon"
        assert text.trip == "trip"
        assert text.subject == "Test"
        assert text.slug == "Test"
        assert text.email is None

    def test_limits_and_empty_fields(self):
        text = transform_post(
            com="",
            name="",
            subject="s" * 150,
            email="e" * 40,
            password="p" * 30,
            ip="1" * 50,
            ctx=ctx(),
        )
        assert len(text.subject) == 100
        assert len(text.email) == 30
        assert len(text.password) == 20
        assert len(text.ip) == 39
        assert text.body == ""
        assert text.name == ""

    def test_empty_password_and_ip_absent(self):
        text = transform_post(com="x", name="a", subject="", email="", password="", ip="", ctx=ctx())
        assert text.password is None
        assert text.ip is None
        assert text.subject is None
        assert text.slug is None
