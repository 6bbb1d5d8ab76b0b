"""Koko comment markup → vichan HTML.

The body is rewritten by an ordered chain of small rules.  Each rule takes the
text produced by the previous one plus a :class:`MarkupContext` and returns new
text, so any rule can be exercised on its own.  ``plain_text`` covers the first
two steps (line breaks, tag stripping + entity decoding) and yields vichan's
``body_nomarkup``; ``BODY_RULES`` turns that into ``body``.

The quote and backlink rules only look at the very start of the comment, which
is how koko comments have always been migrated.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Callable
from urllib.parse import quote

from slugify import slugify

from .threads import ThreadMap

NAME_MAX = 35
TRIP_MAX = 15
SUBJECT_MAX = 100
EMAIL_MAX = 30
PASSWORD_MAX = 20
IP_MAX = 39
SLUG_MAX = 256

_BR_RE = re.compile(r"<br ?/>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]*>")
_CROSS_BOARD_RE = re.compile(r"\A&gt;&gt;&gt;/(\w+)/(\d*)", re.IGNORECASE)
_BACKLINK_RE = re.compile(r"\A&gt;&gt;(\d+)", re.IGNORECASE)
_GREENTEXT_RE = re.compile(r"\A&gt;([^\n\r\u2028\u2029]*)\Z", re.IGNORECASE)
_REDTEXT_RE = re.compile(r"\A&lt;([^\n\r\u2028\u2029]*)\Z", re.IGNORECASE)
_URL_RE = re.compile(
    r"(\b(https?|)://[-A-Z0-9+&@#/%?=~_|!:,.;]*[-A-Z0-9+&@#/%=~_|])",
    re.IGNORECASE,
)

# Characters encodeURI leaves alone besides alphanumerics and "-_.~"
_URI_SAFE = ";,/?:@&=+$!*'()#"


@dataclass(frozen=True)
class MarkupContext:
    board: str
    """vichan board the post is written to; used in generated links."""
    resto: int
    """Source thread number of the post being rewritten."""
    threads: ThreadMap


@dataclass(frozen=True)
class PostText:
    body: str
    body_nomarkup: str
    name: str
    trip: str | None
    subject: str | None
    email: str | None
    password: str | None
    ip: str | None
    slug: str | None


# ── helpers ──────────────────────────────────────────────────────


def strip_tags(text: str) -> str:
    return _TAG_RE.sub("", text)


def escape_html(text: str) -> str:
    """Escape ``& < > " '`` and the backtick."""
    return html.escape(text, quote=True).replace("`", "&#x60;")


def truncate(value: str | None, limit: int) -> str | None:
    """Cut to *limit* characters; empty results become None."""
    return (value or "")[:limit] or None


def encode_uri(url: str) -> str:
    return quote(url, safe=_URI_SAFE)


# ── body rules ───────────────────────────────────────────────────

Rule = Callable[[str, MarkupContext], str]


def breaks_to_newlines(text: str, ctx: MarkupContext) -> str:
    return _BR_RE.sub("\n", text)


def strip_and_unescape(text: str, ctx: MarkupContext) -> str:
    return html.unescape(strip_tags(text))


def escape(text: str, ctx: MarkupContext) -> str:
    return escape_html(text)


def cross_board_backlink(text: str, ctx: MarkupContext) -> str:
    def repl(m: re.Match[str]) -> str:
        board, post = m.group(1), m.group(2)
        if post:
            return f'<a href="/{board}/res/{post}.html#{post}">&gt;&gt;&gt;/{board}/{post}</a>'
        return f'<a href="/{board}/index.html">&gt;&gt;&gt;/{board}/</a>'

    return _CROSS_BOARD_RE.sub(repl, text, count=1)


def backlink(text: str, ctx: MarkupContext) -> str:
    def repl(m: re.Match[str]) -> str:
        post = m.group(1)
        thread = ctx.threads.resolve(ctx.resto) or post
        return (
            f"<a onclick=\"highlightReply('{post}', event);\" "
            f'href="/{ctx.board}/res/{thread}.html#{post}">&gt;&gt;{post}</a>'
        )

    return _BACKLINK_RE.sub(repl, text, count=1)


def greentext(text: str, ctx: MarkupContext) -> str:
    return _GREENTEXT_RE.sub(r'<span class="quote">&gt;\1</span>', text, count=1)


def redtext(text: str, ctx: MarkupContext) -> str:
    return _REDTEXT_RE.sub(r'<span class="rquote">&lt;\1</span>', text, count=1)


def newlines_to_breaks(text: str, ctx: MarkupContext) -> str:
    return text.replace("\n", "<br/>")


def autolink(text: str, ctx: MarkupContext) -> str:
    def repl(m: re.Match[str]) -> str:
        url = m.group(1)
        return f'<a href="{encode_uri(url)}" target="_blank" rel="nofollow noreferrer">{url}</a>'

    return _URL_RE.sub(repl, text)


PLAIN_RULES: tuple[tuple[str, Rule], ...] = (
    ("breaks_to_newlines", breaks_to_newlines),
    ("strip_and_unescape", strip_and_unescape),
)

BODY_RULES: tuple[tuple[str, Rule], ...] = (
    ("escape", escape),
    ("cross_board_backlink", cross_board_backlink),
    ("backlink", backlink),
    ("greentext", greentext),
    ("redtext", redtext),
    ("newlines_to_breaks", newlines_to_breaks),
    ("autolink", autolink),
)


def apply_rules(text: str, ctx: MarkupContext, rules: tuple[tuple[str, Rule], ...]) -> str:
    for _, rule in rules:
        text = rule(text, ctx)
    return text


def plain_text(com: str, ctx: MarkupContext) -> str:
    return apply_rules(com, ctx, PLAIN_RULES)


def render_body(com: str, ctx: MarkupContext) -> tuple[str, str]:
    """Return ``(body, body_nomarkup)`` for a raw koko comment."""
    plain = plain_text(com, ctx)
    return apply_rules(plain, ctx, BODY_RULES), plain


# ── poster fields ────────────────────────────────────────────────


def split_name(raw: str) -> tuple[str, str | None]:
    """Split ``name!trip`` once, after stripping koko's trip markup."""
    name, _, trip = strip_tags(raw or "").partition("!")
    return name.strip()[:NAME_MAX], truncate(trip, TRIP_MAX)


def make_slug(subject: str | None) -> str | None:
    if not subject:
        return None
    return slugify(subject, lowercase=False)[:SLUG_MAX] or None


def transform_post(
    *,
    com: str,
    name: str,
    subject: str,
    email: str,
    password: str,
    ip: str,
    ctx: MarkupContext,
) -> PostText:
    body, body_nomarkup = render_body(com or "", ctx)
    display_name, trip = split_name(name)
    return PostText(
        body=body,
        body_nomarkup=body_nomarkup,
        name=display_name,
        trip=trip,
        subject=truncate(subject, SUBJECT_MAX),
        email=truncate(email, EMAIL_MAX),
        password=truncate(password, PASSWORD_MAX),
        ip=truncate(ip, IP_MAX),
        slug=make_slug(subject),
    )
