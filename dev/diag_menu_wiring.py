"""Diagnostic tool to verify that every menu button is routed."""
import os
import sys

sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from telegram.ext import CallbackQueryHandler, CommandHandler, MessageHandler

import keyboard_builders as kb
from config import Settings
from helpers import paginate
from router import resolve_callback
from whitelist_bot import build_application


def collect_keyboards():
    """Return ``(name, markup)`` pairs for every keyboard the bot can show."""

    emails = [f"student{i}@example.com" for i in range(30)]
    middle = paginate(emails, emails, 1, 200)
    return [
        ("main", kb.build_main_menu_kb()),
        ("list:empty", kb.build_student_list_kb(paginate([], [], 0, 200))),
        ("list:middle", kb.build_student_list_kb(middle)),
        ("back:list", kb.build_back_to_list_kb()),
        ("back:main", kb.build_back_to_main_kb()),
    ]


def find_unrouted_callbacks():
    missing = []
    for name, markup in collect_keyboards():
        for row in markup.inline_keyboard:
            for button in row:
                view, _ = resolve_callback(button.callback_data)
                if view is None:
                    missing.append((name, button.callback_data))
    return missing


def main() -> int:
    app = build_application(Settings(bot_token="123456:DIAG", auth_code="diag"))
    for group, handlers in sorted(app.handlers.items()):
        for handler in handlers:
            if isinstance(handler, CommandHandler):
                label = "command /" + ", /".join(sorted(handler.commands))
            elif isinstance(handler, CallbackQueryHandler):
                label = "callback"
            elif isinstance(handler, MessageHandler):
                label = "message"
            else:
                label = type(handler).__name__
            print(f"group {group}: {label} -> {handler.callback.__name__}")

    missing = find_unrouted_callbacks()
    for name, data in missing:
        print(f"UNROUTED {name}: {data}")
    if not missing:
        print("All keyboard callbacks are routed.")
    return 1 if missing else 0


if __name__ == "__main__":
    raise SystemExit(main())
