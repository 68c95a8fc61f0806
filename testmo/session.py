"""Process-wide session context: who is logged in, the theme, the selected case."""
from __future__ import annotations

from typing import TYPE_CHECKING

from testmo.types import User

if TYPE_CHECKING:
    from testmo.store.state import StateManager

THEMES = ("light", "dark")
ANONYMOUS = "User"


class AppContext:
    """Read from the store once at startup, changed only through the setters below."""

    def __init__(self, store: StateManager | None = None, *, user: User | None = None,
                 theme: str = "light", selected_case_id: str | None = None):
        self.store = store
        self._user = user
        self._theme = theme if theme in THEMES else "light"
        self._selected_case_id = selected_case_id

    @classmethod
    def load(cls, store: StateManager) -> AppContext:
        data = store.load_session()
        user = User.from_dict(data["user"]) if data.get("user") else None
        return cls(store, user=user, theme=data.get("theme", "light"),
                   selected_case_id=data.get("selected_case_id"))

    # ─── Reads ───

    @property
    def user(self) -> User | None:
        return self._user

    @property
    def theme(self) -> str:
        return self._theme

    @property
    def selected_case_id(self) -> str | None:
        return self._selected_case_id

    @property
    def actor(self) -> str:
        """Name written into activity entries."""
        return self._user.name if self._user else ANONYMOUS

    # ─── Setters ───

    def set_user(self, user: User | None) -> None:
        self._user = user
        self._persist()

    def toggle_theme(self) -> str:
        self._theme = "dark" if self._theme == "light" else "light"
        self._persist()
        return self._theme

    def select(self, case_id: str | None) -> None:
        self._selected_case_id = case_id
        self._persist()

    def to_dict(self) -> dict:
        return {
            "user": self._user.__dict__ if self._user else None,
            "theme": self._theme,
            "selected_case_id": self._selected_case_id,
        }

    def _persist(self) -> None:
        if self.store:
            self.store.save_session(self.to_dict())
