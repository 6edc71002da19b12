"""Runtime settings read from the environment.

A ``.env`` file in the working directory is loaded first, so local
deployments can keep the token and auth code out of the shell history::

  TELEGRAM_BOT_TOKEN=123456:ABC...
  AUTH_CODE=some-long-secret
  STUDENTS_FILE=students.json
  SESSIONS_FILE=sessions.json
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_LIST_MESSAGE_BUDGET = 3500  # below Telegram's 4096 character limit
DEFAULT_SUCCESS_DELAY = 0.5
DEFAULT_AUTH_DELAY = 0.8
DEFAULT_TITLE = "Student Admin"


class ConfigError(Exception):
    """Raised when a required setting is missing."""


@dataclass(frozen=True)
class Settings:
    bot_token: str
    auth_code: str
    students_file: str = "students.json"
    sessions_file: Optional[str] = None
    list_message_budget: int = DEFAULT_LIST_MESSAGE_BUDGET
    success_delay: float = DEFAULT_SUCCESS_DELAY
    auth_delay: float = DEFAULT_AUTH_DELAY
    title: str = DEFAULT_TITLE
    debug: bool = False


def _number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        logging.warning("Invalid %s=%r; falling back to %s.", name, raw, default)
        return default
    if value < 0:
        logging.warning("Negative %s=%r; falling back to %s.", name, raw, default)
        return default
    return value


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from ``env`` (``os.environ`` by default)."""

    if env is None:
        load_dotenv()
        env = os.environ

    token = (env.get("TELEGRAM_BOT_TOKEN") or "").strip()
    if not token:
        raise ConfigError("TELEGRAM_BOT_TOKEN is required")
    auth_code = (env.get("AUTH_CODE") or "").strip()
    if not auth_code:
        raise ConfigError("AUTH_CODE is required")

    budget = _number(env, "LIST_MESSAGE_BUDGET", DEFAULT_LIST_MESSAGE_BUDGET, int)
    if budget == 0:
        budget = DEFAULT_LIST_MESSAGE_BUDGET

    return Settings(
        bot_token=token,
        auth_code=auth_code,
        students_file=(env.get("STUDENTS_FILE") or "students.json").strip(),
        sessions_file=(env.get("SESSIONS_FILE") or "").strip() or None,
        list_message_budget=budget,
        success_delay=_number(env, "SUCCESS_DELAY", DEFAULT_SUCCESS_DELAY, float),
        auth_delay=_number(env, "AUTH_DELAY", DEFAULT_AUTH_DELAY, float),
        title=(env.get("BOT_TITLE") or DEFAULT_TITLE).strip() or DEFAULT_TITLE,
        debug=env.get("WHITELIST_DEBUG", "0") == "1",
    )
