"""Single live message rendering.

Every view in the bot is drawn into one message per chat.  The renderer
edits that message in place and only sends a new one when there is nothing
to edit or Telegram refuses the edit.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from telegram import InlineKeyboardMarkup
from telegram.constants import MessageLimit, ParseMode
from telegram.error import TelegramError

from helpers import delete_quietly, is_not_modified, is_parse_error, shorten
from sessions import Session


@dataclass(frozen=True)
class RenderResult:
    message_id: int
    edited: bool = False
    replaced: bool = False
    plain_fallback: bool = False


class MessageRenderer:
    def __init__(self, bot):
        self.bot = bot

    async def _call(self, method, parse_mode: Optional[str], **kwargs):
        """Invoke ``method``; on a markup parse failure retry once as plain text.

        Returns ``(message, used_plain_fallback)``.
        """
        try:
            return await method(parse_mode=parse_mode, **kwargs), False
        except TelegramError as exc:
            if parse_mode is None or not is_parse_error(exc):
                raise
            logging.warning(
                "markdown→plain fallback chat=%s err=%s", kwargs.get("chat_id"), exc
            )
            return await method(parse_mode=None, **kwargs), True

    async def render(
        self,
        session: Session,
        text: str,
        keyboard: Optional[InlineKeyboardMarkup] = None,
        plain: bool = False,
    ) -> RenderResult:
        """Show ``text`` and ``keyboard`` in the session's live message."""

        parse_mode = None if plain else ParseMode.MARKDOWN_V2
        chat_id = session.chat_id
        if len(text) > MessageLimit.MAX_TEXT_LENGTH:
            logging.warning("Cutting %d character message for chat %s", len(text), chat_id)
            text = shorten(text, MessageLimit.MAX_TEXT_LENGTH)
        replaced = False

        if session.last_message_id is not None:
            try:
                _, fallback = await self._call(
                    self.bot.edit_message_text,
                    parse_mode,
                    chat_id=chat_id,
                    message_id=session.last_message_id,
                    text=text,
                    reply_markup=keyboard,
                )
                return RenderResult(
                    message_id=session.last_message_id, edited=True, plain_fallback=fallback
                )
            except TelegramError as exc:
                if is_not_modified(exc):
                    return RenderResult(message_id=session.last_message_id, edited=True)
                logging.warning(
                    "edit→send fallback chat=%s message=%s err=%s",
                    chat_id,
                    session.last_message_id,
                    exc,
                )
            await delete_quietly(self.bot, chat_id, session.last_message_id)
            session.last_message_id = None
            replaced = True

        message, fallback = await self._call(
            self.bot.send_message,
            parse_mode,
            chat_id=chat_id,
            text=text,
            reply_markup=keyboard,
        )
        session.last_message_id = message.message_id
        logging.debug("Live message for chat %s is now %s", chat_id, message.message_id)
        return RenderResult(
            message_id=message.message_id, replaced=replaced, plain_fallback=fallback
        )
