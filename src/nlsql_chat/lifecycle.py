from __future__ import annotations

import httpx
from loguru import logger

from nlsql_chat.backend import SessionStore, WorkspaceService
from nlsql_chat.dispatcher import default_session_name
from nlsql_chat.errors import ChatError, ResponseFormatError, describe_error
from nlsql_chat.models import Session, Turn
from nlsql_chat.result_parser import parse_persisted_message
from nlsql_chat.state import ChatState
from nlsql_chat.table_ids import TableIdFactory

LOADING_TEXT = "Loading session messages..."
LOAD_FAILED_TEXT = "Failed to load session messages. Starting with a fresh chat."

_BOUNDARY_ERRORS = (ChatError, httpx.HTTPError)


class SessionLifecycleController:
    """Moves the chat between no-session, session-loading and session-active."""

    def __init__(
        self,
        *,
        state: ChatState,
        sessions: SessionStore,
        workspaces: WorkspaceService,
        table_ids: TableIdFactory | None = None,
    ) -> None:
        self._state = state
        self._sessions = sessions
        self._workspaces = workspaces
        self._table_ids = table_ids or TableIdFactory()

    async def create_session(self, name: str | None = None, description: str = "New chat session") -> Session | None:
        workspace_id = self._state.workspace_id
        if not workspace_id:
            self._notify("Connect to a workspace before starting a new chat.", prefix="error")
            return None
        try:
            session = await self._sessions.create_session(workspace_id, name or default_session_name(), description)
        except _BOUNDARY_ERRORS as ex:
            logger.error(f"Creating session in workspace {workspace_id} failed: {ex}")
            self._notify(f"Failed to create a new chat session: {describe_error(ex)}", prefix="error")
            return None

        self._state.activate_session(session.id)
        self._state.transcript.replace_all([])
        self._notify(f"Started new chat session: {session.name}")
        return session

    async def select_session(self, session_id: str) -> bool:
        """Load ``session_id`` and make it active.

        Never raises for backend failures: a session that cannot be loaded
        leaves the chat with no active session and a notice in the transcript.
        """
        transcript = self._state.transcript
        self._state.begin_loading(session_id)
        transcript.show_placeholder(LOADING_TEXT)

        try:
            messages = await self._sessions.get_session_messages(session_id)
            if not isinstance(messages, list):
                raise ResponseFormatError(f"Session messages must be a list, got {type(messages).__name__}")
            turns = [parse_persisted_message(m, self._table_ids) for m in messages]
        except _BOUNDARY_ERRORS as ex:
            if self._state.session_id != session_id:
                logger.warning(f"Ignoring failed load of session {session_id}; selection moved on")
                return False
            logger.error(f"Loading session {session_id} failed: {ex}")
            self._state.clear_session()
            transcript.replace_all([Turn.notice(LOAD_FAILED_TEXT, prefix="error-loading")])
            return False

        if self._state.session_id != session_id:
            logger.warning(f"Dropping messages of session {session_id}; selection moved on")
            return False

        transcript.replace_all(turns)
        if turns:
            self._notify(f"Loaded {len(turns)} messages from session")
        else:
            self._notify("Session loaded (no previous messages)")
        self._state.activate_session(session_id)
        logger.info(f"Loaded session {session_id} with {len(turns)} messages")

        await self.refresh_session_info()
        return self._state.session_id == session_id

    async def auto_resume(self, session_id: str | None) -> bool:
        if not session_id or session_id == self._state.session_id:
            return False
        return await self.select_session(session_id)

    async def refresh_session_info(self) -> dict | None:
        session_id = self._state.session_id
        if not session_id:
            return None
        try:
            info = await self._sessions.get_session_info(session_id)
        except _BOUNDARY_ERRORS as ex:
            logger.error(f"Fetching info for session {session_id} failed: {ex}")
            if self._state.session_id == session_id:
                self._state.clear_session()
                self._notify(f"Session {session_id} is no longer available: {describe_error(ex)}", prefix="session-error")
            return None

        if self._state.session_id != session_id:
            return None
        self._state.set_session_info(info)
        if isinstance(info, dict) and info.get("error"):
            self._notify(f"Warning: {info.get('description') or info['error']}", prefix="session-error")
        return info

    async def connect_workspace(self, workspace_id: str, resume_session_id: str | None = None) -> bool:
        """Activate ``workspace_id`` and resume one session in it.

        ``resume_session_id`` names the session to load; without it the most
        recently updated session of the workspace is resumed, if there is one.
        """
        try:
            await self._workspaces.activate_workspace(workspace_id)
        except _BOUNDARY_ERRORS as ex:
            logger.error(f"Activating workspace {workspace_id} failed: {ex}")
            self._state.set_workspace(workspace_id, connected=False)
            self._notify(
                "Failed to connect to database. Please check your connection settings.",
                prefix="error",
            )
            return False

        self._state.set_workspace(workspace_id, connected=True)
        logger.info(f"Workspace {workspace_id} activated")

        if resume_session_id:
            await self.auto_resume(resume_session_id)
            return True

        sessions = await self.list_sessions(workspace_id)
        if sessions:
            await self.auto_resume(sessions[0].id)
        else:
            self._notify("Connected to database successfully.")
        return True

    async def refresh_connection(self) -> bool:
        workspace_id = self._state.workspace_id
        if not workspace_id:
            return False
        try:
            await self._workspaces.activate_workspace(workspace_id)
        except _BOUNDARY_ERRORS as ex:
            logger.error(f"Refreshing workspace {workspace_id} failed: {ex}")
            self._state.set_workspace(workspace_id, connected=False)
            self._notify(
                "Failed to refresh database connection. Please check your connection settings.",
                prefix="error",
            )
            return False
        self._state.set_workspace(workspace_id, connected=True)
        self._notify("Database connection refreshed successfully!")
        return True

    async def list_sessions(self, workspace_id: str | None = None) -> list[Session]:
        wid = workspace_id or self._state.workspace_id
        if not wid:
            return []
        try:
            sessions = await self._sessions.list_sessions(wid)
        except _BOUNDARY_ERRORS as ex:
            logger.warning(f"Could not list sessions for workspace {wid}: {ex}")
            return []
        return sorted(sessions, key=lambda s: s.updated_at, reverse=True)

    async def delete_session(self, session_id: str) -> bool:
        try:
            await self._sessions.delete_session(session_id)
        except _BOUNDARY_ERRORS as ex:
            logger.error(f"Deleting session {session_id} failed: {ex}")
            self._notify(f"Failed to delete session: {describe_error(ex)}", prefix="error")
            return False

        logger.info(f"Deleted session {session_id}")
        if self._state.session_id == session_id:
            self._state.clear_session()
            self._state.transcript.replace_all([])
        return True

    def _notify(self, text: str, prefix: str = "system") -> None:
        self._state.transcript.append(Turn.notice(text, prefix=prefix))
