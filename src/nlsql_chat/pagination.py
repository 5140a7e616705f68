from __future__ import annotations

import httpx
from loguru import logger

from nlsql_chat.backend import PaginationCursorService
from nlsql_chat.errors import ChatError, PaginationRequestError, ResponseFormatError, describe_error
from nlsql_chat.models import PageInfo, Turn
from nlsql_chat.result_parser import parse_pagination, parse_rows
from nlsql_chat.state import ChatState
from nlsql_chat.table_ids import is_local_table_id


class PaginationCoordinator:
    def __init__(self, *, state: ChatState, cursor_service: PaginationCursorService) -> None:
        self._state = state
        self._cursor_service = cursor_service

    async def change_page(self, turn_id: str, table_id: str, page: int) -> bool:
        """Load ``page`` of one table and merge it into the turn that owns it.

        Raises PaginationRequestError for requests that cannot be served at all.
        Returns True when the table was updated, False when the backend call
        failed (an error turn is appended) or the answer arrived too late.
        """
        session_id = self._state.session_id
        self._validate(session_id, turn_id, table_id, page)

        logger.debug(f"Fetching page {page} for table {table_id} in session {session_id}")
        with self._state.busy():
            try:
                payload = await self._cursor_service.get_paginated_results(session_id, table_id, page)
                rows, pagination = self._parse_page(payload)
            except (ChatError, httpx.HTTPError) as ex:
                logger.error(f"Loading page {page} of table {table_id} failed: {ex}")
                if self._state.is_current(session_id):
                    self._state.transcript.append(
                        Turn.notice(f"Error loading page {page}: {describe_error(ex)}", prefix="pagination-error")
                    )
                return False

            if not self._state.is_current(session_id):
                logger.warning(
                    f"Dropping page {page} of table {table_id} for session {session_id}; "
                    f"active session is now {self._state.session_id}"
                )
                return False

            new_table_id = (pagination.table_id if pagination else "") or table_id
            if new_table_id != table_id:
                logger.info(f"Backend rotated table id {table_id} -> {new_table_id}")
            return self._state.transcript.update_turn_result(turn_id, table_id, rows, pagination, new_table_id)

    def _validate(self, session_id: str | None, turn_id: str, table_id: str, page: int) -> None:
        if not session_id:
            raise PaginationRequestError("No active session; connect to a workspace first")
        if not table_id:
            raise PaginationRequestError("Missing table id for pagination")
        if is_local_table_id(table_id):
            raise PaginationRequestError(
                f"Table {table_id} was not issued by the server and is not a resolvable table"
            )
        if page < 1:
            raise PaginationRequestError(f"Page must be 1 or greater, got {page}")

        turn = self._state.transcript.find(turn_id)
        if turn is None:
            return
        known = self._known_pagination(turn, table_id)
        if known is not None and known.total_pages > 0 and page > known.total_pages:
            raise PaginationRequestError(f"Page {page} is beyond the last page ({known.total_pages})")

    def _known_pagination(self, turn: Turn, table_id: str) -> PageInfo | None:
        if turn.sql_result is not None and turn.sql_result.table_id == table_id:
            return turn.sql_result.pagination
        if turn.analysis_result is not None:
            table = turn.analysis_result.find_table(table_id)
            if table is not None:
                return table.pagination
        return None

    def _parse_page(self, payload: object) -> tuple:
        if not isinstance(payload, dict):
            raise ResponseFormatError(f"Page response must be an object, got {type(payload).__name__}")
        return parse_rows(payload.get("data")), parse_pagination(payload.get("pagination"))
