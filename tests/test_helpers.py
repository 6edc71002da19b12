import asyncio
import math
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest
from telegram.error import BadRequest, Forbidden

from helpers import (
    delete_quietly,
    escape_md,
    escape_md_code,
    is_not_modified,
    is_parse_error,
    list_line,
    page_capacity,
    paginate,
    shorten,
    try_ack,
    unescape_md,
)

RESERVED = "_*[]()~`>#+-=|{}.!"


def test_escape_leaves_plain_text_alone():
    assert escape_md("Hello world 123 @ ,") == "Hello world 123 @ ,"


def test_escape_prefixes_each_reserved_character():
    assert escape_md("a.b@c.com") == r"a\.b@c\.com"
    escaped = escape_md(RESERVED)
    assert escaped == "".join("\\" + ch for ch in RESERVED)


@pytest.mark.parametrize(
    "text",
    ["first_last+tag@mail-box.co.uk", RESERVED, "back\\slash (x)", "\\.", ""],
)
def test_unescape_recovers_original(text):
    assert unescape_md(escape_md(text)) == text


def test_escape_is_injective_for_backslashes():
    assert escape_md("\\.") != escape_md(".")


def test_code_escape_only_touches_backticks_and_backslashes():
    assert escape_md_code("a.b@c.com") == "a.b@c.com"
    assert escape_md_code("a`b") == "a\\`b"


def test_error_classifiers():
    assert is_parse_error(BadRequest("Can't parse entities: character '.' is reserved"))
    assert not is_parse_error(BadRequest("Message to edit not found"))
    assert is_not_modified(BadRequest("Message is not modified: specified new message content"))
    assert not is_not_modified(Forbidden("bot was blocked by the user"))


def _emails(n):
    return [f"student{i:03d}@example.com" for i in range(n)]


def test_capacity_counts_lines_that_fit():
    emails = _emails(10)
    line_len = len(list_line(1, emails[0]))
    assert page_capacity(emails, line_len * 3) == 3
    assert page_capacity(emails, line_len * 3 - 1) == 2


def test_capacity_is_at_least_one():
    assert page_capacity(["x" * 500 + "@example.com"], 10) == 1
    assert page_capacity(_emails(3), 0) == 1


@pytest.mark.parametrize("total,budget", [(1, 100), (25, 120), (57, 300), (100, 5000)])
def test_pages_cover_the_list_exactly(total, budget):
    emails = _emails(total)
    capacity = page_capacity(emails, budget)
    first = paginate(emails, emails, 0, budget)

    pages = [paginate(emails, emails, i, budget) for i in range(first.total_pages)]

    assert first.total_pages == math.ceil(total / capacity)
    assert sum(len(p.items) for p in pages) == total
    assert [item for p in pages for item in p.items] == emails


def test_page_index_is_clamped():
    emails = _emails(30)
    last = paginate(emails, emails, 999, 100)
    first = paginate(emails, emails, -5, 100)

    assert last.index == last.total_pages - 1
    assert not last.has_next and last.has_previous
    assert first.index == 0
    assert first.has_next and not first.has_previous


def test_empty_list_is_single_page():
    page = paginate([], [], 3, 100)
    assert page.total == 0
    assert page.total_pages == 1
    assert page.index == 0


def test_try_ack_swallows_bad_request():
    query = SimpleNamespace(answer=AsyncMock(side_effect=BadRequest("Query is too old")))
    assert asyncio.run(try_ack(query)) is False
    ok = SimpleNamespace(answer=AsyncMock())
    assert asyncio.run(try_ack(ok, text="hi", show_alert=True)) is True
    ok.answer.assert_awaited_once_with(text="hi", show_alert=True)


def test_delete_quietly_ignores_telegram_errors():
    bot = SimpleNamespace(delete_message=AsyncMock(side_effect=BadRequest("Message can't be deleted")))
    assert asyncio.run(delete_quietly(bot, 1, 2)) is False
    assert asyncio.run(delete_quietly(bot, 1, None)) is False


def test_shorten_marks_cut_text():
    assert shorten("a@b.com", 20) == "a@b.com"
    cut = shorten("x" * 50, 10)
    assert cut == "x" * 9 + "…"
    assert len(cut) == 10
