import asyncio

import data_store
import router
from fakes import callback_update, make_context, session_of, text_update
from sessions import MenuState


def logged_in_context(menu=MenuState.STUDENT_LIST):
    context = make_context()
    session = session_of(context)
    session.is_authenticated = True
    session.current_menu = menu
    return context, session


def press(context, data):
    update = callback_update(data)
    asyncio.run(router.handle_callback(update, context))
    return update.callback_query


def send(context, text):
    update = text_update(text)
    asyncio.run(router.handle_text(update, context))
    return update


def emails():
    return [r.email for r in data_store.list_students()]


def test_edit_flow_updates_email_and_returns_to_list(students_file):
    data_store.create_student("a@b.com")
    context, session = logged_in_context()

    press(context, "students:edit")
    assert session.current_menu == MenuState.EDIT_STUDENT
    assert session.edit_step == 1

    send(context, " A@B.com ")
    assert session.edit_step == 2
    assert session.editing_student_email == "a@b.com"
    assert "a@b.com" in context.bot.last_render["text"]

    send(context, "c@d.com")
    assert emails() == ["c@d.com"]
    assert session.current_menu == MenuState.STUDENT_LIST
    assert session.editing_student_email is None
    assert "Updated a@b.com → c@d.com" in context.bot.last_render["text"]


def test_invalid_new_email_keeps_target_for_retry(students_file):
    data_store.create_student("a@b.com")
    context, session = logged_in_context()
    press(context, "students:edit")
    send(context, "a@b.com")

    send(context, "not-an-email")

    assert session.current_menu == MenuState.EDIT_STUDENT
    assert session.editing_student_email == "a@b.com"
    assert "Invalid email format" in context.bot.last_render["text"]

    send(context, "good@d.com")
    assert emails() == ["good@d.com"]


def test_conflicting_new_email_keeps_target(students_file):
    data_store.create_student("a@b.com")
    data_store.create_student("taken@b.com")
    context, session = logged_in_context()
    press(context, "students:edit")
    send(context, "a@b.com")

    send(context, "taken@b.com")

    assert session.editing_student_email == "a@b.com"
    assert "already exists" in context.bot.last_render["text"]
    assert sorted(emails()) == ["a@b.com", "taken@b.com"]


def test_unknown_target_goes_back_to_step_one(students_file):
    context, session = logged_in_context()
    press(context, "students:edit")
    send(context, "ghost@b.com")

    send(context, "new@b.com")

    assert session.current_menu == MenuState.EDIT_STUDENT
    assert session.edit_step == 1
    assert "not found" in context.bot.last_render["text"]
    assert emails() == []


def test_back_button_abandons_edit(students_file):
    context, session = logged_in_context()
    press(context, "students:edit")
    send(context, "a@b.com")

    press(context, "menu:students")

    assert session.current_menu == MenuState.STUDENT_LIST
    assert session.editing_student_email is None


def test_cancel_command_resets_and_shows_main_menu(students_file):
    context, session = logged_in_context()
    press(context, "students:edit")
    send(context, "a@b.com")

    update = text_update("/cancel")
    asyncio.run(router.cancel_command(update, context))

    assert session.current_menu == MenuState.MAIN
    assert session.editing_student_email is None
    assert ("delete", {"chat_id": session.chat_id, "message_id": update.effective_message.message_id}) in context.bot.calls
    assert "Select an option" in context.bot.last_render["text"]
