import asyncio
import unittest

from nlsql_chat.errors import ApiError, ResponseFormatError
from nlsql_chat.lifecycle import LOAD_FAILED_TEXT, LOADING_TEXT, SessionLifecycleController
from nlsql_chat.models import ResultKind, SessionPhase
from nlsql_chat.state import ChatState
from nlsql_chat.transcript import WELCOME_TURN_ID
from tests.fakes import FakeBackend

_MESSAGES = [
    {"_id": "m1", "role": "user", "content": "show revenue", "created_at": "2026-02-19T10:00:00Z"},
    {
        "_id": "m2",
        "role": "assistant",
        "content": "Here you go",
        "created_at": "2026-02-19T10:00:02Z",
        "query_result": {
            "sql": "SELECT 1",
            "results": [{"x": 1}],
            "pagination": {"table_id": "t9", "current_page": 1, "total_pages": 2},
        },
    },
]


class SessionLifecycleTests(unittest.TestCase):
    def setUp(self) -> None:
        self.backend = FakeBackend()
        self.state = ChatState()
        self.controller = SessionLifecycleController(
            state=self.state, sessions=self.backend, workspaces=self.backend
        )

    def test_select_session_loads_messages(self) -> None:
        self.backend.add_session("s1", messages=_MESSAGES)

        loaded = asyncio.run(self.controller.select_session("s1"))

        self.assertTrue(loaded)
        self.assertEqual("s1", self.state.session_id)
        self.assertIs(SessionPhase.SESSION_ACTIVE, self.state.phase)
        turns = self.state.transcript.turns
        self.assertEqual(["m1", "m2"], [t.id for t in turns[:2]])
        self.assertIs(ResultKind.SQL, turns[1].result_kind)
        self.assertEqual("Loaded 2 messages from session", turns[2].text)
        self.assertEqual({"db_name": "shop"}, self.state.session_info["db_info"])

    def test_select_empty_session(self) -> None:
        self.backend.add_session("s1")

        asyncio.run(self.controller.select_session("s1"))

        self.assertEqual("Session loaded (no previous messages)", self.state.transcript.last().text)

    def test_select_missing_session_falls_back_to_no_session(self) -> None:
        loaded = asyncio.run(self.controller.select_session("gone"))

        self.assertFalse(loaded)
        self.assertIsNone(self.state.session_id)
        self.assertIs(SessionPhase.NO_SESSION, self.state.phase)
        self.assertEqual([LOAD_FAILED_TEXT], [t.text for t in self.state.transcript])

    def test_phase_is_loading_while_messages_are_fetched(self) -> None:
        self.backend.add_session("s1", messages=_MESSAGES)
        seen: list[tuple] = []

        async def observe(session_id: str) -> None:
            seen.append((self.state.phase, self.state.session_id, [t.text for t in self.state.transcript]))

        self.backend.during_messages = observe

        asyncio.run(self.controller.select_session("s1"))

        self.assertEqual([(SessionPhase.SESSION_LOADING, "s1", [LOADING_TEXT])], seen)
        self.assertIs(SessionPhase.SESSION_ACTIVE, self.state.phase)

    def _select_b_while_a_loads(self) -> bool:
        self.backend.add_session("b", messages=_MESSAGES)

        async def switch(session_id: str) -> None:
            if session_id == "a":
                await self.controller.select_session("b")

        self.backend.during_messages = switch
        return asyncio.run(self.controller.select_session("a"))

    def test_late_messages_of_abandoned_session_are_dropped(self) -> None:
        self.backend.add_session(
            "a", messages=[{"_id": "a1", "role": "user", "content": "from a", "created_at": "2026-02-19T09:00:00Z"}]
        )

        loaded = self._select_b_while_a_loads()

        self.assertFalse(loaded)
        self.assertEqual("b", self.state.session_id)
        self.assertIs(SessionPhase.SESSION_ACTIVE, self.state.phase)
        texts = [t.text for t in self.state.transcript]
        self.assertEqual(["show revenue", "Here you go", "Loaded 2 messages from session"], texts)
        self.assertEqual(["a", "b"], self.backend.message_calls)

    def test_late_failure_of_abandoned_session_is_ignored(self) -> None:
        loaded = self._select_b_while_a_loads()

        self.assertFalse(loaded)
        self.assertEqual("b", self.state.session_id)
        texts = [t.text for t in self.state.transcript]
        self.assertNotIn(LOAD_FAILED_TEXT, texts)
        self.assertEqual("Loaded 2 messages from session", texts[-1])

    def test_auto_resume_skips_active_session(self) -> None:
        self.backend.add_session("s1")
        self.state.activate_session("s1")

        self.assertFalse(asyncio.run(self.controller.auto_resume("s1")))
        self.assertFalse(asyncio.run(self.controller.auto_resume(None)))
        self.assertEqual(1, len(self.state.transcript))

    def test_create_session_requires_workspace(self) -> None:
        session = asyncio.run(self.controller.create_session())

        self.assertIsNone(session)
        self.assertEqual([], self.backend.created)
        self.assertIn("Connect to a workspace", self.state.transcript.last().text)

    def test_create_session_resets_transcript(self) -> None:
        self.state.set_workspace("ws-1", connected=True)
        self.backend.add_session("s1")
        self.state.activate_session("s1")

        session = asyncio.run(self.controller.create_session("Quarterly"))

        self.assertEqual("new-1", session.id)
        self.assertEqual(("ws-1", "Quarterly", "New chat session"), self.backend.created[0])
        self.assertEqual("new-1", self.state.session_id)
        self.assertEqual(2, len(self.state.transcript))
        self.assertEqual(WELCOME_TURN_ID, self.state.transcript.turns[0].id)
        self.assertIn("Started new chat session", self.state.transcript.last().text)

    def test_create_session_failure_keeps_current_session(self) -> None:
        self.state.set_workspace("ws-1", connected=True)
        self.state.activate_session("s1")
        self.backend.fail_create = ApiError(500, "quota exceeded")

        self.assertIsNone(asyncio.run(self.controller.create_session()))

        self.assertEqual("s1", self.state.session_id)
        self.assertIn("quota exceeded", self.state.transcript.last().text)

    def test_connect_workspace_resumes_most_recent_session(self) -> None:
        self.backend.add_session("old", updated_at="2026-01-01T00:00:00")
        self.backend.add_session("recent", updated_at="2026-02-01T00:00:00", messages=_MESSAGES)

        connected = asyncio.run(self.controller.connect_workspace("ws-1"))

        self.assertTrue(connected)
        self.assertEqual(["ws-1"], self.backend.activated)
        self.assertTrue(self.state.workspace_connected)
        self.assertEqual("recent", self.state.session_id)

    def test_connect_workspace_loads_only_the_requested_session(self) -> None:
        self.backend.add_session("old", updated_at="2026-01-01T00:00:00", messages=_MESSAGES)
        self.backend.add_session("recent", updated_at="2026-02-01T00:00:00")

        asyncio.run(self.controller.connect_workspace("ws-1", resume_session_id="old"))

        self.assertEqual("old", self.state.session_id)
        self.assertEqual(["old"], self.backend.message_calls)

    def test_connect_workspace_with_malformed_session_listing(self) -> None:
        self.backend.fail_list = ResponseFormatError("Field 'message_count' is not an integer: 'many'")

        connected = asyncio.run(self.controller.connect_workspace("ws-1"))

        self.assertTrue(connected)
        self.assertIsNone(self.state.session_id)
        self.assertEqual("Connected to database successfully.", self.state.transcript.last().text)

    def test_connect_workspace_without_sessions(self) -> None:
        asyncio.run(self.controller.connect_workspace("ws-1"))

        self.assertIsNone(self.state.session_id)
        self.assertEqual("Connected to database successfully.", self.state.transcript.last().text)

    def test_connect_workspace_failure(self) -> None:
        self.backend.fail_activate = ApiError(502, "database unreachable")

        connected = asyncio.run(self.controller.connect_workspace("ws-1"))

        self.assertFalse(connected)
        self.assertEqual("ws-1", self.state.workspace_id)
        self.assertFalse(self.state.workspace_connected)
        self.assertIn("Failed to connect to database", self.state.transcript.last().text)

    def test_refresh_connection(self) -> None:
        self.assertFalse(asyncio.run(self.controller.refresh_connection()))

        self.state.set_workspace("ws-1", connected=False)
        self.assertTrue(asyncio.run(self.controller.refresh_connection()))
        self.assertTrue(self.state.workspace_connected)
        self.assertEqual("Database connection refreshed successfully!", self.state.transcript.last().text)

    def test_list_sessions_swallows_failures(self) -> None:
        self.state.set_workspace("ws-1", connected=True)
        self.backend.fail_list = ApiError(500, "boom")

        self.assertEqual([], asyncio.run(self.controller.list_sessions()))

    def test_deleting_active_session_resets_chat(self) -> None:
        self.backend.add_session("s1", messages=_MESSAGES)
        asyncio.run(self.controller.select_session("s1"))

        deleted = asyncio.run(self.controller.delete_session("s1"))

        self.assertTrue(deleted)
        self.assertEqual(["s1"], self.backend.deleted)
        self.assertIsNone(self.state.session_id)
        self.assertEqual([WELCOME_TURN_ID], [t.id for t in self.state.transcript])

    def test_deleting_other_session_keeps_active(self) -> None:
        self.backend.add_session("s1")
        self.backend.add_session("s2")
        self.state.activate_session("s1")

        asyncio.run(self.controller.delete_session("s2"))

        self.assertEqual("s1", self.state.session_id)

    def test_vanished_session_info_clears_session(self) -> None:
        self.state.activate_session("ghost")

        info = asyncio.run(self.controller.refresh_session_info())

        self.assertIsNone(info)
        self.assertIsNone(self.state.session_id)
        self.assertIn("no longer available", self.state.transcript.last().text)

    def test_session_info_error_is_reported(self) -> None:
        self.backend.add_session("s1")
        self.backend.session_info["s1"] = {"error": "db_unavailable", "description": "Database is down"}
        self.state.activate_session("s1")

        asyncio.run(self.controller.refresh_session_info())

        self.assertEqual("s1", self.state.session_id)
        self.assertEqual("Warning: Database is down", self.state.transcript.last().text)


if __name__ == "__main__":
    unittest.main()
