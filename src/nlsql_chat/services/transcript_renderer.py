from __future__ import annotations

from typing import Any

from nlsql_chat.models import NamedTable, PageInfo, SqlResult, Turn


class TranscriptRenderer:
    """Plain-text rendering of turns and their result tables for the terminal."""

    def __init__(self, *, line_prefix: str, max_rows: int = 20, max_cell_chars: int = 30):
        self._line_prefix = line_prefix
        self._max_rows = max_rows
        self._max_cell_chars = max_cell_chars

    def render_turn(self, turn: Turn) -> list[str]:
        if turn.is_user:
            return []
        lines = [f"{self._line_prefix}{line}" for line in turn.text.splitlines() or [""]]
        if turn.sql_result is not None:
            lines.extend(self._render_sql(turn.id, turn.sql_result))
        elif turn.analysis_result is not None:
            lines.append(f"{self._line_prefix}[{turn.analysis_result.kind.value} analysis]")
            for table in turn.analysis_result.tables:
                lines.extend(self._render_named(turn.id, table))
        return lines

    def _render_sql(self, turn_id: str, result: SqlResult) -> list[str]:
        lines: list[str] = []
        if result.sql_text:
            lines.append(f"{self._line_prefix}SQL: {result.sql_text}")
        if result.error:
            lines.append(f"{self._line_prefix}Error: {result.error}")
        lines.extend(self.render_rows(result.rows))
        lines.extend(self._render_footer(turn_id, result.table_id, result.pagination))
        return lines

    def _render_named(self, turn_id: str, table: NamedTable) -> list[str]:
        lines = [f"{self._line_prefix}== {table.name or table.table_id} =="]
        if table.description:
            lines.append(f"{self._line_prefix}{table.description}")
        if table.sql_text:
            lines.append(f"{self._line_prefix}SQL: {table.sql_text}")
        if table.error:
            lines.append(f"{self._line_prefix}Error: {table.error}")
        lines.extend(self.render_rows(table.rows))
        lines.extend(self._render_footer(turn_id, table.table_id, table.pagination))
        return lines

    def render_rows(self, rows: tuple[dict[str, Any], ...] | None) -> list[str]:
        if rows is None:
            return []
        if not rows:
            return [f"{self._line_prefix}(no rows)"]

        columns: list[str] = []
        for row in rows:
            for key in row:
                if key not in columns:
                    columns.append(key)

        shown = rows[: self._max_rows]
        cells = [[self._cell(row.get(c)) for c in columns] for row in shown]
        widths = [max([len(c)] + [len(r[i]) for r in cells]) for i, c in enumerate(columns)]

        def fmt(values: list[str]) -> str:
            return " | ".join(v.ljust(w) for v, w in zip(values, widths)).rstrip()

        lines = [self._line_prefix + fmt(columns), self._line_prefix + "-+-".join("-" * w for w in widths)]
        lines.extend(self._line_prefix + fmt(r) for r in cells)
        if len(rows) > len(shown):
            lines.append(f"{self._line_prefix}... {len(rows) - len(shown)} more row(s) on this page")
        return lines

    def _render_footer(self, turn_id: str, table_id: str, pagination: PageInfo | None) -> list[str]:
        if pagination is None or pagination.total_pages <= 1:
            return []
        footer = (
            f"{self._line_prefix}Page {pagination.current_page}/{pagination.total_pages} "
            f"({pagination.total_rows} rows, {pagination.page_size} per page)"
        )
        return [footer, f"{self._line_prefix}  /page {turn_id} {table_id} <n>"]

    def _cell(self, value: Any) -> str:
        text = "NULL" if value is None else str(value)
        text = " ".join(text.split())
        if len(text) <= self._max_cell_chars:
            return text
        return text[: self._max_cell_chars - 3] + "..."
