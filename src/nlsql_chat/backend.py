from typing import Protocol, runtime_checkable

from nlsql_chat.models import Session


@runtime_checkable
class QueryResolver(Protocol):
    async def execute_query(self, utterance: str, session_id: str | None = None) -> dict:
        """Resolve a natural-language utterance.

        Returns the raw tagged payload: ``query_type`` plus whichever of
        ``text``, ``sql``, ``data``, ``error``, ``pagination``, ``table_id``,
        ``tables`` and ``analysis_type`` apply.
        """
        ...


@runtime_checkable
class PaginationCursorService(Protocol):
    async def get_paginated_results(self, session_id: str, table_id: str, page: int) -> dict:
        """Return ``{"data": [...], "pagination": {...}}`` for one page of a stored result."""
        ...


@runtime_checkable
class SessionStore(Protocol):
    async def create_session(self, workspace_id: str, name: str, description: str = "") -> Session: ...

    async def list_sessions(self, workspace_id: str) -> list[Session]: ...

    async def get_session_info(self, session_id: str) -> dict: ...

    async def get_session_messages(self, session_id: str) -> list[dict]: ...

    async def delete_session(self, session_id: str) -> None: ...


@runtime_checkable
class WorkspaceService(Protocol):
    async def activate_workspace(self, workspace_id: str) -> dict: ...

    async def list_workspaces(self) -> list[dict]: ...
