from __future__ import annotations

from nlsql_chat.models import Session


class SessionFormatter:
    def __init__(self, *, line_prefix: str, short_id_len: int = 8):
        self._line_prefix = line_prefix
        self._short_id_len = short_id_len

    def short_id(self, value: str) -> str:
        if len(value) <= self._short_id_len:
            return value
        return value[: self._short_id_len]

    def format_session_list_entry(self, session: Session, *, active_session_id: str | None) -> str:
        marker = "*" if session.id == active_session_id else " "
        description = f" - {session.description}" if session.description else ""
        return (
            f"{self._line_prefix}{marker} {session.name} [{self.short_id(session.id)}] (id={session.id}) "
            f"(messages={session.message_count}, created={session.created_at or '-'}, "
            f"updated={session.updated_at or '-'}){description}"
        )

    def format_current_session_lines(
        self,
        session_id: str | None,
        info: dict | None,
        *,
        workspace_id: str | None,
        connected: bool,
    ) -> list[str]:
        status = "connected" if connected else "not connected"
        lines = [f"{self._line_prefix}Workspace: {workspace_id or 'none'} ({status})"]
        if session_id is None:
            lines.append(f"{self._line_prefix}Current session: none")
            return lines

        name = (info or {}).get("name") or session_id
        lines.append(f"{self._line_prefix}Current session: {name} [{self.short_id(session_id)}] (id={session_id})")
        db_info = (info or {}).get("db_info")
        if isinstance(db_info, dict) and db_info.get("db_name"):
            lines.append(f"{self._line_prefix}- Database: {db_info['db_name']}")
        if info and info.get("message_count") is not None:
            lines.append(f"{self._line_prefix}- Messages: {info['message_count']}")
        return lines
