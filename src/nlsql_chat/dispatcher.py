from __future__ import annotations

from datetime import datetime

import httpx
from loguru import logger

from nlsql_chat.backend import QueryResolver, SessionStore
from nlsql_chat.errors import ChatError, describe_error
from nlsql_chat.models import Turn
from nlsql_chat.result_parser import build_assistant_turn, parse_query_response
from nlsql_chat.state import ChatState
from nlsql_chat.table_ids import TableIdFactory


def default_session_name(now: datetime | None = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%d %H:%M:%S")
    return f"Chat Session {stamp}"


class QueryDispatcher:
    def __init__(
        self,
        *,
        state: ChatState,
        resolver: QueryResolver,
        sessions: SessionStore,
        table_ids: TableIdFactory | None = None,
    ) -> None:
        self._state = state
        self._resolver = resolver
        self._sessions = sessions
        self._table_ids = table_ids or TableIdFactory()

    async def submit(
        self,
        utterance: str,
        session_id: str | None = None,
        workspace_id: str | None = None,
    ) -> Turn | None:
        """Send one utterance and append the resulting turns.

        Returns the assistant turn that was appended, or None when nothing was
        sent (blank input) or the response arrived for a session that is no
        longer active.
        """
        text = utterance.strip()
        if not text:
            return None

        sid = session_id or self._state.session_id
        wid = workspace_id or self._state.workspace_id
        transcript = self._state.transcript

        transcript.append(Turn.user(utterance))

        with self._state.busy():
            if not sid and wid:
                sid = await self._provision_session(wid)
                if sid is None:
                    return transcript.append(
                        Turn.notice(
                            "Failed to create session. Please try connecting to the workspace again.",
                            prefix="error",
                        )
                    )

            dispatched_for = self._state.session_id
            logger.debug(f"Dispatching query for session {dispatched_for}: {text[:80]!r}")
            try:
                payload = await self._resolver.execute_query(text, sid)
                parsed = parse_query_response(payload, self._table_ids)
            except (ChatError, httpx.HTTPError) as ex:
                logger.error(f"Query failed for session {dispatched_for}: {ex}")
                if not self._state.is_current(dispatched_for):
                    return None
                return transcript.append(
                    Turn.notice(f"Error: {describe_error(ex) or 'Failed to execute query'}", prefix="error")
                )

            if not self._state.is_current(dispatched_for):
                logger.warning(
                    f"Dropping query response for session {dispatched_for}; "
                    f"active session is now {self._state.session_id}"
                )
                return None

            logger.info(f"Query resolved as {parsed.kind.value} for session {dispatched_for}")
            return transcript.append(build_assistant_turn(parsed))

    async def _provision_session(self, workspace_id: str) -> str | None:
        try:
            session = await self._sessions.create_session(
                workspace_id,
                default_session_name(),
                "Auto-created session",
            )
        except (ChatError, httpx.HTTPError) as ex:
            logger.error(f"Auto-creating session for workspace {workspace_id} failed: {ex}")
            return None
        logger.info(f"Auto-created session {session.id} ({session.name}) in workspace {workspace_id}")
        self._state.activate_session(session.id)
        return session.id
