import logging
import math
import re
from dataclasses import dataclass
from typing import List, Sequence

from telegram.error import BadRequest, TelegramError
from telegram.helpers import escape_markdown

_UNESCAPE_RE = re.compile(r"\\([\\_*\[\]()~`>#+\-=|{}.!])")


def escape_md(text: str) -> str:
    """Escape ``text`` for interpolation into a MarkdownV2 message."""

    return escape_markdown(str(text), version=2)


def escape_md_code(text: str) -> str:
    """Escape ``text`` for use inside a MarkdownV2 inline code span."""

    return escape_markdown(str(text), version=2, entity_type="code")


def unescape_md(text: str) -> str:
    """Reverse :func:`escape_md`."""

    return _UNESCAPE_RE.sub(r"\1", text)


def bold(text: str) -> str:
    return f"*{escape_md(text)}*"


def shorten(text: str, width: int) -> str:
    """Cut ``text`` to at most ``width`` characters, marking the cut with an ellipsis."""

    text = str(text)
    if len(text) <= width:
        return text
    return text[: max(width - 1, 0)] + "…"


def is_parse_error(exc: Exception) -> bool:
    """Return whether ``exc`` is Telegram rejecting the message markup."""

    return isinstance(exc, BadRequest) and "can't parse entities" in str(exc).lower()


def is_not_modified(exc: Exception) -> bool:
    return isinstance(exc, BadRequest) and "message is not modified" in str(exc).lower()


@dataclass(frozen=True)
class Page:
    """One page of an ordered list."""

    items: List
    index: int
    total_pages: int
    capacity: int
    start: int
    total: int

    @property
    def has_previous(self) -> bool:
        return self.index > 0

    @property
    def has_next(self) -> bool:
        return self.index < self.total_pages - 1


def list_line(position: int, email: str) -> str:
    """Return the list entry for 1-based ``position``."""

    return f"{position}. {email}\n"


def page_capacity(emails: Sequence[str], budget: int) -> int:
    """Return how many leading entries fit into ``budget`` characters.

    Lines are accumulated greedily from the start of ``emails``.  The result
    is at least 1, even when a single entry is longer than the budget.
    """
    used = 0
    count = 0
    for idx, email in enumerate(emails):
        line = list_line(idx + 1, email)
        if used + len(line) > budget:
            break
        used += len(line)
        count += 1
    return max(count, 1)


def paginate(items: Sequence, emails: Sequence[str], page: int, budget: int) -> Page:
    """Slice ``items`` into the page ``page`` (clamped into range).

    ``emails`` supplies the text measured for each item.  Capacity is
    recomputed on every call, so page boundaries follow the current list.
    """
    total = len(items)
    if total == 0:
        return Page(items=[], index=0, total_pages=1, capacity=0, start=0, total=0)
    capacity = page_capacity(emails, budget)
    total_pages = math.ceil(total / capacity)
    index = max(0, min(int(page or 0), total_pages - 1))
    start = index * capacity
    end = min(start + capacity, total)
    return Page(
        items=list(items[start:end]),
        index=index,
        total_pages=total_pages,
        capacity=capacity,
        start=start,
        total=total,
    )


async def try_ack(query, *, text=None, show_alert=False) -> bool:
    """Attempt callback acknowledgment, returning whether it succeeded."""

    try:
        await query.answer(text=text, show_alert=show_alert)
        return True
    except BadRequest as exc:
        logging.info("Callback ack failed (continuing): %s", exc)
        return False


async def delete_quietly(bot, chat_id: int, message_id) -> bool:
    """Delete a message, logging instead of raising when Telegram refuses."""

    if message_id is None:
        return False
    try:
        await bot.delete_message(chat_id=chat_id, message_id=message_id)
        return True
    except TelegramError as exc:
        logging.debug("Could not delete message %s in chat %s: %s", message_id, chat_id, exc)
        return False
