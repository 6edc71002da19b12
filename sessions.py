"""Per-chat conversation state and the stores that keep it."""

import json
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class MenuState(str, Enum):
    """Which view is on screen and how the next text message is read."""

    NONE = "none"
    MAIN = "main"
    STUDENT_LIST = "studentList"
    ADD_STUDENT = "addStudent"
    EDIT_STUDENT = "editStudent"
    DELETE_STUDENT = "deleteStudent"


PROMPT_STATES: FrozenSet[MenuState] = frozenset(
    {MenuState.ADD_STUDENT, MenuState.EDIT_STUDENT, MenuState.DELETE_STUDENT}
)

ALLOWED_TRANSITIONS: Dict[MenuState, FrozenSet[MenuState]] = {
    MenuState.NONE: frozenset({MenuState.MAIN}),
    MenuState.MAIN: frozenset({MenuState.MAIN, MenuState.STUDENT_LIST}),
    MenuState.STUDENT_LIST: frozenset({MenuState.MAIN, MenuState.STUDENT_LIST}) | PROMPT_STATES,
    MenuState.ADD_STUDENT: frozenset(
        {MenuState.MAIN, MenuState.STUDENT_LIST, MenuState.ADD_STUDENT}
    ),
    MenuState.EDIT_STUDENT: frozenset(
        {MenuState.MAIN, MenuState.STUDENT_LIST, MenuState.EDIT_STUDENT}
    ),
    MenuState.DELETE_STUDENT: frozenset(
        {MenuState.MAIN, MenuState.STUDENT_LIST, MenuState.DELETE_STUDENT}
    ),
}


class IllegalTransition(Exception):
    """Raised when a session is asked to move to a menu it cannot reach."""

    def __init__(self, current: MenuState, target: MenuState):
        super().__init__(f"Cannot move from {current.value} to {target.value}")
        self.current = current
        self.target = target


@dataclass
class Session:
    chat_id: int
    is_authenticated: bool = False
    current_menu: MenuState = MenuState.NONE
    editing_student_email: Optional[str] = None
    last_message_id: Optional[int] = None
    student_list_page: Optional[int] = None

    def can_enter(self, target: MenuState) -> bool:
        if not self.is_authenticated:
            return target == MenuState.NONE
        return target in ALLOWED_TRANSITIONS[self.current_menu]

    def enter(self, target: MenuState) -> None:
        """Move to ``target`` or raise :class:`IllegalTransition`.

        Leaving the edit prompt always drops the pending edit target so a
        later edit starts again from step 1.
        """
        if not self.can_enter(target):
            raise IllegalTransition(self.current_menu, target)
        if target != MenuState.EDIT_STUDENT:
            self.editing_student_email = None
        self.current_menu = target

    def authenticate(self, code: str, expected: str) -> bool:
        if self.is_authenticated:
            return True
        if expected and code == expected:
            self.is_authenticated = True
            return True
        return False

    def cancel(self) -> None:
        """Abandon the current prompt; the caller shows the main menu next."""
        self.current_menu = MenuState.NONE
        self.editing_student_email = None

    @property
    def edit_step(self) -> Optional[int]:
        if self.current_menu != MenuState.EDIT_STUDENT:
            return None
        return 2 if self.editing_student_email else 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chat_id": self.chat_id,
            "is_authenticated": self.is_authenticated,
            "current_menu": self.current_menu.value,
            "editing_student_email": self.editing_student_email,
            "last_message_id": self.last_message_id,
            "student_list_page": self.student_list_page,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        try:
            menu = MenuState(data.get("current_menu") or MenuState.NONE.value)
        except ValueError:
            menu = MenuState.NONE
        return cls(
            chat_id=int(data["chat_id"]),
            is_authenticated=bool(data.get("is_authenticated", False)),
            current_menu=menu,
            editing_student_email=data.get("editing_student_email"),
            last_message_id=data.get("last_message_id"),
            student_list_page=data.get("student_list_page"),
        )


class SessionStore:
    """Keyed storage for :class:`Session` objects.

    ``get`` always returns a session, creating a fresh unauthenticated one for
    chats it has not seen.  ``save`` must be called after a handler mutates
    the session.
    """

    def get(self, chat_id: int) -> Session:
        raise NotImplementedError

    def save(self, session: Session) -> None:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    def __init__(self) -> None:
        self._sessions: Dict[int, Session] = {}

    def get(self, chat_id: int) -> Session:
        session = self._sessions.get(chat_id)
        if session is None:
            session = Session(chat_id=chat_id)
            self._sessions[chat_id] = session
        return session

    def save(self, session: Session) -> None:
        self._sessions[session.chat_id] = session


class JsonSessionStore(SessionStore):
    """Sessions persisted to a JSON file so they survive restarts."""

    def __init__(self, path: str) -> None:
        self.path = path
        self._sessions: Dict[int, Session] = self._load()

    def _load(self) -> Dict[int, Session]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as exc:
            logging.warning("Failed to read %s; starting with no sessions: %s", self.path, exc)
            return {}
        if not isinstance(raw, dict):
            logging.warning("Ignoring %s: expected a JSON object", self.path)
            return {}
        sessions: Dict[int, Session] = {}
        for key, entry in raw.items():
            try:
                entry.setdefault("chat_id", key)
                session = Session.from_dict(entry)
            except (AttributeError, KeyError, TypeError, ValueError):
                logging.warning("Dropping malformed session entry %s", key)
                continue
            sessions[session.chat_id] = session
        return sessions

    def _flush(self) -> None:
        data = {str(cid): s.to_dict() for cid, s in self._sessions.items()}
        tmp_path = f"{self.path}.tmp"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
                try:
                    f.flush()
                    os.fsync(f.fileno())
                except OSError:
                    pass
            os.replace(tmp_path, self.path)
        except OSError as exc:
            # Sessions are still held in memory; only persistence is lost.
            logging.error("Failed to persist sessions to %s: %s", self.path, exc)

    def get(self, chat_id: int) -> Session:
        session = self._sessions.get(chat_id)
        if session is None:
            session = Session(chat_id=chat_id)
            self._sessions[chat_id] = session
        return session

    def save(self, session: Session) -> None:
        self._sessions[session.chat_id] = session
        self._flush()
