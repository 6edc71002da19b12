"""Views drawn into the live message.

Each ``show_*`` coroutine renders one screen and moves the session into the
matching menu state.  MarkdownV2 views escape every piece of dynamic text;
the student list is rendered as plain text so addresses can be copied as-is.
"""

from dataclasses import dataclass
from typing import List, Optional

from telegram import InlineKeyboardMarkup

import students
from config import Settings
from helpers import bold, escape_md, escape_md_code, list_line, paginate, shorten
from keyboard_builders import (
    build_back_to_list_kb,
    build_back_to_main_kb,
    build_main_menu_kb,
    build_student_list_kb,
)
from renderer import MessageRenderer, RenderResult
from sessions import IllegalTransition, MenuState, Session

CANCEL_HINT = "Type /cancel to cancel."
LIST_TITLE = "📋 Student List"
# Worst case header used to size a page before the real counts are known.
LIST_HEADER_TEMPLATE = f"{LIST_TITLE}\n\nTotal: X students\nPage X of X\n\n"
# Display widths; stored values are never cut.
EMAIL_WIDTH = 254
ENTRY_WIDTH = 80
ERROR_WIDTH = 100
# Entries itemised per section of a bulk-add report.
SUMMARY_ITEMS = 8


@dataclass
class ChatContext:
    """Everything a handler needs to act on one chat."""

    session: Session
    renderer: MessageRenderer
    settings: Settings

    @property
    def chat_id(self) -> int:
        return self.session.chat_id


def error_line(message: str) -> str:
    return f"❌ {escape_md(shorten(message, ERROR_WIDTH))}"


def _with_notice(body: str, notice: Optional[str]) -> str:
    return f"{notice}\n\n{body}" if notice else body


async def _show(
    chat: ChatContext,
    target: MenuState,
    text: str,
    keyboard: Optional[InlineKeyboardMarkup] = None,
    plain: bool = False,
) -> RenderResult:
    if not chat.session.can_enter(target):
        raise IllegalTransition(chat.session.current_menu, target)
    result = await chat.renderer.render(chat.session, text, keyboard, plain=plain)
    chat.session.enter(target)
    return result


async def show_notice(
    chat: ChatContext,
    text: str,
    keyboard: Optional[InlineKeyboardMarkup] = None,
    plain: bool = False,
) -> RenderResult:
    """Render a transient message without touching the menu state."""

    return await chat.renderer.render(chat.session, text, keyboard, plain=plain)


async def show_auth_prompt(chat: ChatContext, notice: Optional[str] = None) -> RenderResult:
    text = "\n\n".join(
        [
            f"🔒 {bold('Authentication Required')}",
            escape_md("Please send the authentication code to access the admin panel."),
            escape_md("Type /help for more information."),
        ]
    )
    return await chat.renderer.render(chat.session, _with_notice(text, notice))


async def show_help(chat: ChatContext) -> RenderResult:
    text = "\n\n".join(
        [
            f"📖 {bold('Help')}",
            escape_md(f"This bot manages the student whitelist for {chat.settings.title}."),
            bold("Commands:")
            + "\n"
            + escape_md(
                "/start - Start the bot\n"
                "/cancel - Cancel current operation\n"
                "/help - Show this help message"
            ),
            escape_md(
                "To authenticate, send the authentication code provided by the administrator."
            ),
        ]
    )
    keyboard = build_back_to_main_kb() if chat.session.is_authenticated else None
    return await chat.renderer.render(chat.session, text, keyboard)


async def show_main_menu(chat: ChatContext, notice: Optional[str] = None) -> RenderResult:
    text = f"🤖 {bold(chat.settings.title)}\n\n{escape_md('Select an option:')}"
    return await _show(chat, MenuState.MAIN, _with_notice(text, notice), build_main_menu_kb())


def build_student_list_text(page, notice: Optional[str] = None) -> str:
    lines = [LIST_TITLE, ""]
    if not page.total:
        lines.append("No students found.")
        return _with_notice("\n".join(lines), notice)
    lines.append(f"Total: {page.total} student{'s' if page.total != 1 else ''}")
    if page.total_pages > 1:
        lines.append(f"Page {page.index + 1} of {page.total_pages}")
    text = "\n".join(lines) + "\n\n"
    text += "".join(
        list_line(page.start + offset + 1, shorten(record.email, EMAIL_WIDTH))
        for offset, record in enumerate(page.items)
    )
    return _with_notice(text.rstrip("\n"), notice)


async def show_student_list(
    chat: ChatContext, page: int = 0, notice: Optional[str] = None
) -> RenderResult:
    """Render one page of the whitelist.

    ``notice`` is plain text placed above the list.  A store failure keeps
    the current menu and shows the error with a way back to the main menu.
    """
    if not chat.session.can_enter(MenuState.STUDENT_LIST):
        raise IllegalTransition(chat.session.current_menu, MenuState.STUDENT_LIST)
    result = students.list_students()
    if not result.ok:
        return await chat.renderer.render(
            chat.session, error_line(result.error.message), build_back_to_main_kb()
        )

    records = result.value
    budget = chat.settings.list_message_budget - len(LIST_HEADER_TEMPLATE)
    if notice:
        budget -= len(notice) + 2
    measured = [shorten(r.email, EMAIL_WIDTH) for r in records]
    listing = paginate(records, measured, page, max(budget, 0))
    text = build_student_list_text(listing, notice)
    rendered = await _show(
        chat, MenuState.STUDENT_LIST, text, build_student_list_kb(listing), plain=True
    )
    chat.session.student_list_page = listing.index
    return rendered


async def show_add_prompt(chat: ChatContext, notice: Optional[str] = None) -> RenderResult:
    text = "\n\n".join(
        [
            f"➕ {bold('Add Student')}",
            escape_md("Enter email address(es):"),
            escape_md(
                "• For single student: Enter one email\n"
                "• For bulk: Enter multiple emails separated by commas"
            ),
            "Example: `"
            + escape_md_code("student1@example.com, student2@example.com")
            + "`",
            escape_md(CANCEL_HINT),
        ]
    )
    return await _show(
        chat, MenuState.ADD_STUDENT, _with_notice(text, notice), build_back_to_list_kb()
    )


async def show_edit_prompt(chat: ChatContext, notice: Optional[str] = None) -> RenderResult:
    """Edit step 1: ask which student to change."""

    text = "\n\n".join(
        [
            f"✏️ {bold('Edit Student')}",
            escape_md("Enter the email of the student you want to edit:"),
            escape_md(CANCEL_HINT),
        ]
    )
    rendered = await _show(
        chat, MenuState.EDIT_STUDENT, _with_notice(text, notice), build_back_to_list_kb()
    )
    chat.session.editing_student_email = None
    return rendered


async def show_new_email_prompt(
    chat: ChatContext, old_email: str, notice: Optional[str] = None
) -> RenderResult:
    """Edit step 2: ask for the replacement address of ``old_email``."""

    text = "\n\n".join(
        [
            f"✏️ {bold('Edit Student')}",
            f"{escape_md('Current email:')} `{escape_md_code(shorten(old_email, ENTRY_WIDTH))}`",
            escape_md("Enter the new email address:"),
            escape_md(CANCEL_HINT),
        ]
    )
    rendered = await _show(
        chat, MenuState.EDIT_STUDENT, _with_notice(text, notice), build_back_to_list_kb()
    )
    chat.session.editing_student_email = old_email
    return rendered


async def show_delete_prompt(chat: ChatContext, notice: Optional[str] = None) -> RenderResult:
    text = "\n\n".join(
        [
            f"🗑️ {bold('Delete Student')}",
            escape_md("Enter the email of the student you want to delete:"),
            escape_md(CANCEL_HINT),
        ]
    )
    return await _show(
        chat, MenuState.DELETE_STUDENT, _with_notice(text, notice), build_back_to_list_kb()
    )


def build_add_summary(outcome: "students.BulkAddResult") -> str:
    """MarkdownV2 summary of a bulk add.

    Each section itemises at most ``SUMMARY_ITEMS`` entries.
    """

    if outcome.succeeded:
        parts = [f"✅ {bold('Student(s) Added')}"]
    else:
        parts = [f"⚠️ {bold('No Students Added')}"]
    if outcome.succeeded:
        parts.append(
            bold("Successfully added:")
            + "\n"
            + _bullets(
                [escape_md(shorten(record.email, ENTRY_WIDTH)) for record in outcome.succeeded]
            )
        )
    if outcome.failed:
        parts.append(
            bold("Errors:")
            + "\n"
            + _bullets(
                [escape_md(shorten(error.message, ERROR_WIDTH)) for _, error in outcome.failed]
            )
        )
    return "\n\n".join(parts)


def build_add_errors(outcome: "students.BulkAddResult") -> str:
    """MarkdownV2 error lines for a bulk add in which nothing was stored."""

    lines = [error_line(error.message) for _, error in outcome.failed[:SUMMARY_ITEMS]]
    hidden = len(outcome.failed) - SUMMARY_ITEMS
    if hidden > 0:
        lines.append(_more(hidden))
    return "\n".join(lines)


def build_add_notice(outcome: "students.BulkAddResult") -> str:
    """Plain text recap shown above the list after a bulk add."""

    header = f"Added {len(outcome.succeeded)}, failed {len(outcome.failed)}."
    if not outcome.failed:
        return header
    return header + "\n" + _bullets([shorten(error.message, ERROR_WIDTH) for _, error in outcome.failed])


def _more(count: int) -> str:
    return f"…and {count} more"


def _bullets(items: List[str]) -> str:
    lines = [f"• {item}" for item in items[:SUMMARY_ITEMS]]
    if len(items) > SUMMARY_ITEMS:
        lines.append(_more(len(items) - SUMMARY_ITEMS))
    return "\n".join(lines)
