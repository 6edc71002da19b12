"""
Telegram bot for managing the student email whitelist.

An operator unlocks the bot by sending the shared ``AUTH_CODE`` and then
manages the whitelist through a single inline-keyboard message that is
edited in place: list students (paginated), add one or many addresses,
change an address, or remove one.

Whitelist records are kept in ``students.json`` (see ``STUDENTS_FILE``).
Per-chat sessions are held in memory unless ``SESSIONS_FILE`` is set, in
which case they survive restarts.

The bot uses the ``python-telegram-bot`` library (version 20+)::

  pip install -e .
  whitelist-bot
"""

import logging

from telegram.ext import Application, ApplicationBuilder

import data_store
from config import ConfigError, Settings, load_settings
from router import register_handlers
from sessions import JsonSessionStore, MemorySessionStore, SessionStore


def build_session_store(settings: Settings) -> SessionStore:
    if settings.sessions_file:
        return JsonSessionStore(settings.sessions_file)
    return MemorySessionStore()


def build_application(settings: Settings) -> Application:
    """Return an application with every handler registered.

    Used by tests and ``dev/diag_menu_wiring.py`` to inspect the wiring
    without starting the bot.
    """
    data_store.STUDENTS_FILE = settings.students_file
    application = ApplicationBuilder().token(settings.bot_token).build()
    register_handlers(application, settings, build_session_store(settings))
    return application


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=logging.DEBUG if debug else logging.INFO,
    )
    # Every poll is an HTTP request; keep those out of the INFO log.
    logging.getLogger("httpx").setLevel(logging.WARNING)


def main() -> None:
    """Load settings, build the application and poll until interrupted."""

    try:
        settings = load_settings()
    except ConfigError as exc:
        configure_logging()
        logging.error("Cannot start: %s", exc)
        raise SystemExit(1) from exc

    configure_logging(settings.debug)
    logging.info(
        "Starting with students_file=%s sessions=%s list_budget=%s",
        settings.students_file,
        settings.sessions_file or "memory",
        settings.list_message_budget,
    )
    application = build_application(settings)
    application.run_polling()
    logging.info("Bot stopped")


if __name__ == "__main__":
    main()
