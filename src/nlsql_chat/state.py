from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager

from loguru import logger

from nlsql_chat.logging_config import bind_session
from nlsql_chat.models import SessionPhase, WorkspaceStatus
from nlsql_chat.transcript import TranscriptManager


class ChatState:
    """The one mutable object shared by dispatcher, paginator and lifecycle controller."""

    def __init__(self, transcript: TranscriptManager | None = None):
        self.transcript = transcript or TranscriptManager()
        self._processing = False
        self._session_id: str | None = None
        self._phase = SessionPhase.NO_SESSION
        self._session_info: dict | None = None
        self._workspace: WorkspaceStatus | None = None
        self._processing_listeners: list[Callable[[bool], None]] = []
        self._settled_listeners: list[Callable[[], None]] = []

    @property
    def processing(self) -> bool:
        return self._processing

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    @property
    def session_info(self) -> dict | None:
        return self._session_info

    @property
    def workspace_id(self) -> str | None:
        return self._workspace.workspace_id if self._workspace else None

    @property
    def workspace_connected(self) -> bool:
        return self._workspace is not None and self._workspace.connected

    def add_processing_listener(self, listener: Callable[[bool], None]) -> None:
        self._processing_listeners.append(listener)

    def add_settled_listener(self, listener: Callable[[], None]) -> None:
        self._settled_listeners.append(listener)

    @contextmanager
    def busy(self) -> Iterator[None]:
        self._set_processing(True)
        try:
            yield
        finally:
            self._set_processing(False)
            for listener in self._settled_listeners:
                listener()

    def activate_session(self, session_id: str) -> None:
        if session_id != self._session_id:
            self._session_info = None
        self._session_id = session_id
        self._phase = SessionPhase.SESSION_ACTIVE
        bind_session(session_id)
        logger.info(f"Active session: {session_id}")

    def begin_loading(self, session_id: str) -> None:
        self._session_id = session_id
        self._session_info = None
        self._phase = SessionPhase.SESSION_LOADING
        bind_session(session_id)

    def clear_session(self) -> None:
        if self._session_id is not None:
            logger.info(f"Session {self._session_id} cleared")
        self._session_id = None
        self._session_info = None
        self._phase = SessionPhase.NO_SESSION
        bind_session(None)

    def set_session_info(self, info: dict | None) -> None:
        self._session_info = info

    def set_workspace(self, workspace_id: str, *, connected: bool) -> None:
        if self._workspace is None or self._workspace.workspace_id != workspace_id:
            self._workspace = WorkspaceStatus(workspace_id=workspace_id, connected=connected)
        else:
            self._workspace.connected = connected

    def is_current(self, session_id: str | None) -> bool:
        """True when a response tagged with ``session_id`` may still be applied."""
        return session_id == self._session_id

    def _set_processing(self, value: bool) -> None:
        if self._processing == value:
            return
        self._processing = value
        for listener in self._processing_listeners:
            listener(value)
