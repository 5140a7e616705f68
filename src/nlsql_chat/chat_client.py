from __future__ import annotations

from collections.abc import Awaitable
from typing import TypeVar

import httpx
from loguru import logger

from nlsql_chat.chat_config import ChatConfig
from nlsql_chat.commands.router import CommandRouter
from nlsql_chat.dispatcher import QueryDispatcher
from nlsql_chat.errors import ChatError, ChatValidationError, describe_error
from nlsql_chat.lifecycle import SessionLifecycleController
from nlsql_chat.models import Turn
from nlsql_chat.pagination import PaginationCoordinator
from nlsql_chat.services.session_formatter import SessionFormatter
from nlsql_chat.services.transcript_renderer import TranscriptRenderer
from nlsql_chat.state import ChatState
from nlsql_chat.table_ids import TableIdFactory
from nlsql_chat.transcript import TranscriptManager

T = TypeVar("T")


class ChatClient:
    _LINE_PREFIX = "assistant> "

    def __init__(self, config: ChatConfig):
        self._backend = config.backend
        self._echo = config.echo
        self._state = ChatState(TranscriptManager(welcome_text=config.welcome_text))
        table_ids = TableIdFactory()

        self._dispatcher = QueryDispatcher(
            state=self._state,
            resolver=self._backend,
            sessions=self._backend,
            table_ids=table_ids,
        )
        self._paginator = PaginationCoordinator(state=self._state, cursor_service=self._backend)
        self._lifecycle = SessionLifecycleController(
            state=self._state,
            sessions=self._backend,
            workspaces=self._backend,
            table_ids=table_ids,
        )

        self._renderer = TranscriptRenderer(line_prefix=self._LINE_PREFIX, max_rows=config.max_rendered_rows)
        self._session_formatter = SessionFormatter(line_prefix=self._LINE_PREFIX)
        self._state.transcript.add_append_listener(self._on_turn_appended)

        self._command_router = CommandRouter(
            on_help=self._on_help,
            on_session=self._handle_session_command,
            on_page=self._handle_page_command,
            on_workspace=self._handle_workspace_command,
            on_unknown=self._on_unknown_command,
        )

    @property
    def state(self) -> ChatState:
        return self._state

    @property
    def lifecycle(self) -> SessionLifecycleController:
        return self._lifecycle

    @property
    def active_session_id(self) -> str | None:
        return self._state.session_id

    async def run(self, user_message: str) -> None:
        if await self._command_router.try_handle(user_message):
            return
        if self._state.processing:
            self._print("Still working on the previous request; please wait.")
            return
        await self._dispatcher.submit(user_message)

    async def submit(self, utterance: str) -> Turn | None:
        return await self._dispatcher.submit(utterance)

    async def change_page(self, turn_id: str, table_id: str, page: int) -> bool:
        return await self._paginator.change_page(turn_id, table_id, page)

    async def connect(self, workspace_id: str, session_id: str | None = None) -> bool:
        return await self._replacing_transcript(self._lifecycle.connect_workspace(workspace_id, session_id))

    async def _replacing_transcript(self, operation: Awaitable[T]) -> T:
        # Lifecycle operations may swap the whole transcript; print the final
        # state once instead of echoing each notice as it is appended.
        echo, self._echo = self._echo, False
        try:
            result = await operation
        finally:
            self._echo = echo
        if echo:
            self.render_transcript()
        return result

    def render_transcript(self) -> None:
        for turn in self._state.transcript:
            self._print_turn(turn)

    def _on_turn_appended(self, turn: Turn) -> None:
        if self._echo:
            self._print_turn(turn)

    def _print_turn(self, turn: Turn) -> None:
        for line in self._renderer.render_turn(turn):
            print(line)

    def _print(self, text: str) -> None:
        print(f"{self._LINE_PREFIX}{text}")

    async def _on_help(self) -> None:
        self._print("Available commands:")
        self._print("- /help")
        self._print("- /session")
        self._print("- /session new [name]")
        self._print("- /session list")
        self._print("- /session load <id>")
        self._print("- /session delete <id>")
        self._print("- /page <turn-id> <table-id> <page>")
        self._print("- /workspaces")
        self._print("- /workspace connect <id>")
        self._print("- /workspace refresh")
        self._print("Anything else is sent to the database assistant as a question.")

    def _on_unknown_command(self, trimmed: str) -> None:
        self._print(f"Unknown local command: {trimmed}")

    async def _handle_session_command(self, command: str) -> None:
        parts = command.split()
        if len(parts) == 1:
            lines = self._session_formatter.format_current_session_lines(
                self._state.session_id,
                self._state.session_info,
                workspace_id=self._state.workspace_id,
                connected=self._state.workspace_connected,
            )
            for line in lines:
                print(line)
            return

        action = parts[1]
        if action == "new":
            name = command.partition("new")[2].strip()
            session = await self._replacing_transcript(self._lifecycle.create_session(name or None))
            if session is not None:
                logger.info(f"New chat session {session.id}")
            return

        if action == "list":
            if not self._state.workspace_id:
                self._print("Connect to a workspace first: /workspace connect <id>")
                return
            sessions = await self._lifecycle.list_sessions()
            if not sessions:
                self._print("No sessions found.")
                return
            self._print("Sessions:")
            for s in sessions:
                print(self._session_formatter.format_session_list_entry(s, active_session_id=self._state.session_id))
            return

        if action in ("load", "resume") and len(parts) == 3:
            await self._replacing_transcript(self._lifecycle.select_session(parts[2]))
            return

        if action == "delete" and len(parts) == 3:
            if await self._lifecycle.delete_session(parts[2]):
                self._print(f"Deleted session {parts[2]}")
            return

        self._print(
            "Usage: /session | /session new [name] | /session list | "
            "/session load <id> | /session delete <id>"
        )

    async def _handle_page_command(self, command: str) -> None:
        parts = command.split()
        if len(parts) != 4:
            self._print("Usage: /page <turn-id> <table-id> <page>")
            return
        try:
            page = int(parts[3])
        except ValueError:
            self._print("Usage: /page <turn-id> <table-id> <page>")
            return

        turn_id, table_id = parts[1], parts[2]
        try:
            updated = await self._paginator.change_page(turn_id, table_id, page)
        except ChatValidationError as ex:
            self._print(f"Cannot change page: {ex}")
            return
        if updated:
            turn = self._state.transcript.find(turn_id)
            if turn is not None:
                self._print_turn(turn)

    async def _handle_workspace_command(self, command: str) -> None:
        parts = command.split()
        if parts[0] == "/workspaces" or (len(parts) == 2 and parts[1] == "list"):
            await self._print_workspaces()
            return

        if len(parts) == 3 and parts[1] == "connect":
            if await self._replacing_transcript(self._lifecycle.connect_workspace(parts[2])):
                self._print(f"Connected to workspace {parts[2]}")
            return

        if len(parts) == 2 and parts[1] == "refresh":
            if not self._state.workspace_id:
                self._print("No workspace connected")
                return
            await self._lifecycle.refresh_connection()
            return

        self._print("Usage: /workspaces | /workspace connect <id> | /workspace refresh")

    async def _print_workspaces(self) -> None:
        try:
            workspaces = await self._backend.list_workspaces()
        except (ChatError, httpx.HTTPError) as ex:
            self._print(f"Could not list workspaces: {describe_error(ex)}")
            return
        if not workspaces:
            self._print("No workspaces found.")
            return
        self._print("Workspaces:")
        for ws in workspaces:
            ws_id = ws.get("_id") or ws.get("id") or "?"
            marker = "*" if ws_id == self._state.workspace_id else " "
            db = ws.get("db_connection") or {}
            db_text = f" ({db.get('db_type', '?')}:{db.get('db_name', '?')})" if db else ""
            print(f"{self._LINE_PREFIX}{marker} {ws.get('name', ws_id)} [{ws_id}]{db_text}")
