from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from dataclasses import replace

from loguru import logger

from nlsql_chat.models import Origin, PageInfo, ResultKind, Row, Turn

DEFAULT_WELCOME_TEXT = (
    "Hello! I can help you query your database using natural language. "
    "How can I help you today?"
)
WELCOME_TURN_ID = "welcome"
LOADING_TURN_ID = "loading"


class TranscriptManager:
    def __init__(self, *, welcome_text: str = DEFAULT_WELCOME_TEXT):
        self._welcome_text = welcome_text
        self._turns: list[Turn] = []
        self._append_listeners: list[Callable[[Turn], None]] = []
        self._turns.append(self.welcome_turn())

    def welcome_turn(self) -> Turn:
        return Turn(id=WELCOME_TURN_ID, origin=Origin.ASSISTANT, text=self._welcome_text)

    def add_append_listener(self, listener: Callable[[Turn], None]) -> None:
        self._append_listeners.append(listener)

    @property
    def turns(self) -> tuple[Turn, ...]:
        return tuple(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(tuple(self._turns))

    def last(self) -> Turn | None:
        return self._turns[-1] if self._turns else None

    def find(self, turn_id: str) -> Turn | None:
        index = self._index_of(turn_id)
        return None if index is None else self._turns[index]

    def append(self, turn: Turn) -> Turn:
        previous = self.last()
        if previous is not None and turn.created_at < previous.created_at:
            turn = replace(turn, created_at=previous.created_at)
        self._turns.append(turn)
        for listener in self._append_listeners:
            listener(turn)
        return turn

    def replace_all(self, turns: Iterable[Turn]) -> None:
        new_turns = list(turns)
        if not new_turns:
            new_turns = [self.welcome_turn()]
        for i in range(1, len(new_turns)):
            if new_turns[i].created_at < new_turns[i - 1].created_at:
                new_turns[i] = replace(new_turns[i], created_at=new_turns[i - 1].created_at)
        self._turns = new_turns

    def show_placeholder(self, text: str) -> None:
        self._turns = [Turn(id=LOADING_TURN_ID, origin=Origin.ASSISTANT, text=text)]

    def update_turn_result(
        self,
        turn_id: str,
        table_id: str,
        rows: tuple[Row, ...] | None,
        pagination: PageInfo | None,
        new_table_id: str | None = None,
    ) -> bool:
        """Overwrite one table's page data inside one turn.

        ``table_id`` addresses the table as it is currently known; ``new_table_id``
        (defaulting to ``table_id``) is what the table is known as afterwards.
        Returns False without touching anything when the turn or table is gone,
        e.g. because a session switch replaced the transcript meanwhile.
        """
        index = self._index_of(turn_id)
        if index is None:
            logger.debug(f"update_turn_result: turn {turn_id} not in transcript; ignoring")
            return False

        target_id = new_table_id or table_id
        turn = self._turns[index]

        if turn.result_kind is ResultKind.SQL and turn.sql_result is not None:
            updated = replace(
                turn,
                sql_result=replace(turn.sql_result, rows=rows, pagination=pagination, table_id=target_id),
            )
        elif turn.result_kind is ResultKind.ANALYSIS and turn.analysis_result is not None:
            tables = turn.analysis_result.tables
            position = next((i for i, t in enumerate(tables) if t.table_id == table_id), None)
            if position is None:
                logger.debug(f"update_turn_result: table {table_id} not in turn {turn_id}; ignoring")
                return False
            table = replace(tables[position], rows=rows, pagination=pagination, table_id=target_id)
            updated = replace(
                turn,
                analysis_result=replace(
                    turn.analysis_result,
                    tables=tables[:position] + (table,) + tables[position + 1 :],
                ),
            )
        else:
            logger.debug(f"update_turn_result: turn {turn_id} holds no table; ignoring")
            return False

        self._turns[index] = updated
        return True

    def _index_of(self, turn_id: str) -> int | None:
        for i, turn in enumerate(self._turns):
            if turn.id == turn_id:
                return i
        return None
