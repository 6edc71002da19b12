import asyncio

import pytest
from telegram import InlineKeyboardButton, InlineKeyboardMarkup
from telegram.constants import ParseMode
from telegram.error import BadRequest, Forbidden

from fakes import FakeBot, LimitedBot
from renderer import MessageRenderer
from sessions import Session

KB = InlineKeyboardMarkup([[InlineKeyboardButton("Go", callback_data="menu:main")]])


def render(bot, session, text="*hi*", keyboard=KB, plain=False):
    return asyncio.run(MessageRenderer(bot).render(session, text, keyboard, plain=plain))


def test_first_render_sends_and_tracks_message():
    bot = FakeBot()
    session = Session(chat_id=1)

    result = render(bot, session)

    assert bot.kinds() == ["send"]
    assert bot.last_render["parse_mode"] == ParseMode.MARKDOWN_V2
    assert bot.last_render["reply_markup"] is KB
    assert session.last_message_id == result.message_id
    assert not result.edited and not result.replaced


def test_later_renders_edit_in_place():
    bot = FakeBot()
    session = Session(chat_id=1)
    render(bot, session)
    first_id = session.last_message_id

    result = render(bot, session, text="second")

    assert bot.kinds() == ["send", "edit"]
    assert result.edited
    assert session.last_message_id == first_id
    assert bot.last_render["message_id"] == first_id


def test_failed_edit_deletes_and_resends():
    bot = FakeBot()
    session = Session(chat_id=1, last_message_id=77)
    bot.edit_errors.append(BadRequest("Message to edit not found"))

    result = render(bot, session)

    assert bot.kinds() == ["edit", "delete", "send"]
    assert bot.calls[1][1]["message_id"] == 77
    assert result.replaced
    assert session.last_message_id == result.message_id != 77


def test_delete_failure_is_ignored():
    bot = FakeBot()
    session = Session(chat_id=1, last_message_id=77)
    bot.edit_errors.append(Forbidden("message can't be edited"))
    bot.delete_errors.append(BadRequest("Message can't be deleted for everyone"))

    result = render(bot, session)

    assert bot.kinds() == ["edit", "delete", "send"]
    assert session.last_message_id == result.message_id


def test_not_modified_counts_as_success():
    bot = FakeBot()
    session = Session(chat_id=1, last_message_id=77)
    bot.edit_errors.append(BadRequest("Message is not modified: specified new message content"))

    result = render(bot, session)

    assert bot.kinds() == ["edit"]
    assert result.edited
    assert session.last_message_id == 77


def test_markdown_parse_failure_retries_as_plain_text():
    bot = FakeBot()
    session = Session(chat_id=1)
    bot.send_errors.append(BadRequest("Can't parse entities: can't find end of bold entity"))

    result = render(bot, session, text="*broken")

    assert bot.kinds() == ["send", "send"]
    assert bot.calls[0][1]["parse_mode"] == ParseMode.MARKDOWN_V2
    assert bot.calls[1][1]["parse_mode"] is None
    assert bot.calls[1][1]["text"] == "*broken"
    assert result.plain_fallback
    assert session.last_message_id == result.message_id


def test_edit_parse_failure_retries_edit_not_send():
    bot = FakeBot()
    session = Session(chat_id=1, last_message_id=10)
    bot.edit_errors.append(BadRequest("Can't parse entities: character '.' is reserved"))

    result = render(bot, session)

    assert bot.kinds() == ["edit", "edit"]
    assert result.edited and result.plain_fallback
    assert session.last_message_id == 10


def test_plain_mode_never_sets_parse_mode():
    bot = FakeBot()
    session = Session(chat_id=1)
    render(bot, session, text="1. a_b@c.com", plain=True)
    assert bot.last_render["parse_mode"] is None


def test_send_failure_propagates():
    bot = FakeBot()
    session = Session(chat_id=1)
    bot.send_errors.append(Forbidden("bot was blocked by the user"))

    with pytest.raises(Forbidden):
        render(bot, session)
    assert session.last_message_id is None


def test_one_live_message_after_many_renders():
    bot = FakeBot()
    session = Session(chat_id=1)
    failures = {2: BadRequest("Message to edit not found"), 5: Forbidden("message can't be edited")}
    for step in range(8):
        if step in failures:
            bot.edit_errors.append(failures[step])
        render(bot, session, text=f"view {step}")
        assert bot.live_bot_messages() == {session.last_message_id}


def test_overlong_text_is_cut_to_message_limit():
    bot = LimitedBot()
    session = Session(chat_id=1)

    render(bot, session, text="a" * 5000, plain=True)

    assert bot.kinds() == ["send"]
    assert len(bot.last_render["text"]) == 4096
    assert bot.last_render["text"].endswith("…")
