"""Update routing for the whitelist bot.

Text messages are dispatched on ``(current_menu, EventKind.TEXT)``; button
presses are dispatched on their callback data.  Handlers receive a
:class:`menus.ChatContext` and the session is saved after every update.
"""

import asyncio
import functools
import logging
import re
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Tuple

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

import menus
import students
from config import Settings
from helpers import delete_quietly, escape_md, shorten, try_ack
from keyboard_builders import (
    CB_ADD_STUDENT,
    CB_DELETE_STUDENT,
    CB_EDIT_STUDENT,
    CB_MAIN_MENU,
    CB_STUDENT_LIST,
    build_back_to_main_kb,
)
from menus import ChatContext, error_line
from renderer import MessageRenderer
from sessions import IllegalTransition, MenuState, SessionStore
from students import ErrorKind

SETTINGS_KEY = "settings"
SESSIONS_KEY = "sessions"
RENDERER_KEY = "renderer"

STALE_BUTTON = "This button is out of date."
GENERIC_ERROR = "An error occurred. Please try again or contact the administrator."
AUTH_FAILED = "Authentication failed. Please check the code and try again."
PAGE_RE = re.compile(r"^students:page:(\d+)$")


class EventKind(Enum):
    TEXT = "text"
    CALLBACK = "callback"


TextHandler = Callable[[ChatContext, str], Awaitable[None]]


def open_chat(update: object, context: ContextTypes.DEFAULT_TYPE) -> Optional[ChatContext]:
    """Return the :class:`ChatContext` for ``update`` or ``None`` without a chat."""

    chat = getattr(update, "effective_chat", None)
    if chat is None:
        return None
    bot_data = context.bot_data
    session = bot_data[SESSIONS_KEY].get(chat.id)
    renderer = bot_data.get(RENDERER_KEY) or MessageRenderer(context.bot)
    return ChatContext(session=session, renderer=renderer, settings=bot_data[SETTINGS_KEY])


def chat_handler(func):
    """Load the chat's session for ``func`` and save it afterwards."""

    @functools.wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE):
        chat = open_chat(update, context)
        if chat is None:
            logging.debug("Ignoring update without a chat in %s", func.__name__)
            return None
        try:
            return await func(update, context, chat)
        finally:
            context.bot_data[SESSIONS_KEY].save(chat.session)

    return wrapper


# -----------------------------------------------------------------------------
# Text input handlers, one per prompt state
# -----------------------------------------------------------------------------


async def handle_add_input(chat: ChatContext, text: str) -> None:
    emails = students.parse_email_list(text)
    if not emails:
        await menus.show_add_prompt(
            chat, notice=error_line("No valid emails provided. Please try again.")
        )
        return

    outcome = students.add_students(emails)
    if not outcome.succeeded:
        # Nothing was stored, so stay on the prompt with the reasons.
        await menus.show_add_prompt(chat, notice=menus.build_add_errors(outcome))
        return

    await menus.show_notice(chat, menus.build_add_summary(outcome))
    await asyncio.sleep(chat.settings.success_delay)
    await menus.show_student_list(chat, page=0, notice=menus.build_add_notice(outcome))


async def handle_edit_input(chat: ChatContext, text: str) -> None:
    """Two step edit: capture the target, then its replacement."""

    session = chat.session
    if session.editing_student_email is None:
        target = students.normalize_email(text)
        if not target:
            await menus.show_edit_prompt(chat, notice=error_line("No email provided."))
            return
        await menus.show_new_email_prompt(chat, target)
        return

    old_email = session.editing_student_email
    result = students.update_student_email(old_email, text)
    if result.ok:
        await menus.show_student_list(
            chat,
            page=session.student_list_page or 0,
            notice=f"✅ Updated {shorten(old_email, menus.ENTRY_WIDTH)} → "
            f"{shorten(result.value.email, menus.ENTRY_WIDTH)}",
        )
    elif result.error.kind == ErrorKind.NOT_FOUND:
        await menus.show_edit_prompt(chat, notice=error_line(result.error.message))
    else:
        await menus.show_new_email_prompt(
            chat, old_email, notice=error_line(result.error.message)
        )


async def handle_delete_input(chat: ChatContext, text: str) -> None:
    email = students.normalize_email(text)
    result = students.delete_student(email)
    if not result.ok:
        await menus.show_delete_prompt(chat, notice=error_line(result.error.message))
        return
    shown = shorten(email, menus.ENTRY_WIDTH)
    if result.value:
        notice = f"✅ Deleted {shown}"
    else:
        notice = f"ℹ️ {shown} was not in the list."
    await menus.show_student_list(chat, page=chat.session.student_list_page or 0, notice=notice)


DISPATCH: Dict[Tuple[MenuState, EventKind], TextHandler] = {
    (MenuState.ADD_STUDENT, EventKind.TEXT): handle_add_input,
    (MenuState.EDIT_STUDENT, EventKind.TEXT): handle_edit_input,
    (MenuState.DELETE_STUDENT, EventKind.TEXT): handle_delete_input,
}

CALLBACK_ROUTES: Dict[str, Callable[[ChatContext], Awaitable[object]]] = {
    CB_MAIN_MENU: menus.show_main_menu,
    CB_STUDENT_LIST: menus.show_student_list,
    CB_ADD_STUDENT: menus.show_add_prompt,
    CB_EDIT_STUDENT: menus.show_edit_prompt,
    CB_DELETE_STUDENT: menus.show_delete_prompt,
}


def resolve_callback(data: str):
    """Return ``(view, kwargs)`` for callback ``data`` or ``(None, {})``."""

    view = CALLBACK_ROUTES.get(data)
    if view is not None:
        return view, {}
    match = PAGE_RE.match(data or "")
    if match:
        return menus.show_student_list, {"page": int(match.group(1))}
    return None, {}


async def show_current_view(chat: ChatContext) -> None:
    """Redraw whatever the session currently has on screen."""

    session = chat.session
    menu = session.current_menu
    if menu == MenuState.STUDENT_LIST:
        await menus.show_student_list(chat, page=session.student_list_page or 0)
    elif menu == MenuState.ADD_STUDENT:
        await menus.show_add_prompt(chat)
    elif menu == MenuState.EDIT_STUDENT and session.editing_student_email:
        await menus.show_new_email_prompt(chat, session.editing_student_email)
    elif menu == MenuState.EDIT_STUDENT:
        await menus.show_edit_prompt(chat)
    elif menu == MenuState.DELETE_STUDENT:
        await menus.show_delete_prompt(chat)
    else:
        await menus.show_main_menu(chat)


# -----------------------------------------------------------------------------
# Telegram handlers
# -----------------------------------------------------------------------------


async def _authenticate(update: Update, context: ContextTypes.DEFAULT_TYPE, chat: ChatContext, text: str) -> None:
    message = update.effective_message
    # The code is a secret; never leave it in the chat history.
    await delete_quietly(context.bot, chat.chat_id, getattr(message, "message_id", None))
    if not chat.session.authenticate(text, chat.settings.auth_code):
        logging.info("Rejected authentication attempt chat=%s", chat.chat_id)
        await menus.show_auth_prompt(chat, notice=error_line(AUTH_FAILED))
        return

    logging.info("Chat %s authenticated", chat.chat_id)
    await menus.show_notice(
        chat,
        "✅ "
        + escape_md(f"Authentication successful! Welcome to {chat.settings.title}."),
    )
    await asyncio.sleep(chat.settings.auth_delay)
    await menus.show_main_menu(chat)


@chat_handler
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE, chat: ChatContext) -> None:
    """Route free-form text according to the session's menu state."""

    message = update.effective_message
    text = (getattr(message, "text", None) or "").strip()
    if text.startswith("/"):
        return
    if not chat.session.is_authenticated:
        await _authenticate(update, context, chat, text)
        return

    handler = DISPATCH.get((chat.session.current_menu, EventKind.TEXT))
    if handler is None:
        await menus.show_main_menu(chat)
        return
    await delete_quietly(context.bot, chat.chat_id, getattr(message, "message_id", None))
    await handler(chat, text)


@chat_handler
async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE, chat: ChatContext) -> None:
    """Move between menus in response to inline button presses."""

    query = update.callback_query
    data = getattr(query, "data", None) or ""
    if not chat.session.is_authenticated:
        await try_ack(query, text="Please authenticate first.", show_alert=True)
        return

    view, kwargs = resolve_callback(data)
    if view is None:
        logging.warning("UNKNOWN CALLBACK data=%s chat=%s", data, chat.chat_id)
        await try_ack(query, text="Unknown action.")
        return

    ack_text = None
    try:
        await view(chat, **kwargs)
    except IllegalTransition as exc:
        logging.info("Stale button chat=%s data=%s: %s", chat.chat_id, data, exc)
        ack_text = STALE_BUTTON
    finally:
        # Answered even when the view raises.
        await try_ack(query, text=ack_text)
    if ack_text:
        await show_current_view(chat)


@chat_handler
async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE, chat: ChatContext) -> None:
    if chat.session.is_authenticated:
        await menus.show_main_menu(chat)
    else:
        await menus.show_auth_prompt(chat)


@chat_handler
async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE, chat: ChatContext) -> None:
    await menus.show_help(chat)


@chat_handler
async def cancel_command(update: Update, context: ContextTypes.DEFAULT_TYPE, chat: ChatContext) -> None:
    """Abandon the current prompt and return to the main menu."""

    message = update.effective_message
    await delete_quietly(context.bot, chat.chat_id, getattr(message, "message_id", None))
    if not chat.session.is_authenticated:
        await menus.show_auth_prompt(chat)
        return
    chat.session.cancel()
    await menus.show_main_menu(chat)


async def global_error_handler(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Log the exception and show a generic failure notice."""

    logging.error("Unhandled exception", exc_info=context.error)
    chat = open_chat(update, context)
    if chat is None:
        return
    try:
        keyboard = build_back_to_main_kb() if chat.session.is_authenticated else None
        await menus.show_notice(chat, error_line(GENERIC_ERROR), keyboard=keyboard)
    except TelegramError as exc:
        logging.warning("Failed to report error to chat %s: %s", chat.chat_id, exc)
    finally:
        context.bot_data[SESSIONS_KEY].save(chat.session)


def register_handlers(application: Application, settings: Settings, sessions: SessionStore) -> None:
    """Attach settings, session storage and handlers to ``application``."""

    application.bot_data[SETTINGS_KEY] = settings
    application.bot_data[SESSIONS_KEY] = sessions
    application.bot_data[RENDERER_KEY] = MessageRenderer(application.bot)

    application.add_handler(CommandHandler("start", start_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("cancel", cancel_command))
    application.add_handler(CallbackQueryHandler(handle_callback))
    application.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))
    application.add_error_handler(global_error_handler)
