from telegram import InlineKeyboardButton, InlineKeyboardMarkup

from helpers import Page

CB_MAIN_MENU = "menu:main"
CB_STUDENT_LIST = "menu:students"
CB_ADD_STUDENT = "students:add"
CB_EDIT_STUDENT = "students:edit"
CB_DELETE_STUDENT = "students:delete"
CB_PAGE_PREFIX = "students:page:"


def page_callback(index: int) -> str:
    return f"{CB_PAGE_PREFIX}{index}"


def build_main_menu_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton("📋 Student List", callback_data=CB_STUDENT_LIST)]]
    )


def build_student_list_kb(page: Page) -> InlineKeyboardMarkup:
    """Return the list keyboard for ``page``.

    The Previous/Next row is only present when there is more than one page,
    and each arrow is hidden at its end of the list.  An empty list only
    offers adding a student.
    """
    rows = []
    if page.total_pages > 1:
        nav = []
        if page.has_previous:
            nav.append(
                InlineKeyboardButton("◀️ Previous", callback_data=page_callback(page.index - 1))
            )
        if page.has_next:
            nav.append(
                InlineKeyboardButton("Next ▶️", callback_data=page_callback(page.index + 1))
            )
        rows.append(nav)
    rows.append([InlineKeyboardButton("➕ Add Student", callback_data=CB_ADD_STUDENT)])
    if page.total:
        rows.append(
            [
                InlineKeyboardButton("✏️ Edit Student", callback_data=CB_EDIT_STUDENT),
                InlineKeyboardButton("🗑️ Delete Student", callback_data=CB_DELETE_STUDENT),
            ]
        )
    rows.append([InlineKeyboardButton("🔙 Back to Main Menu", callback_data=CB_MAIN_MENU)])
    return InlineKeyboardMarkup(rows)


def build_back_to_list_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton("🔙 Back", callback_data=CB_STUDENT_LIST)]]
    )


def build_back_to_main_kb() -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup(
        [[InlineKeyboardButton("🔙 Back to Main Menu", callback_data=CB_MAIN_MENU)]]
    )
