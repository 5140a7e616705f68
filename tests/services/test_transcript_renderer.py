import unittest

from nlsql_chat.models import (
    AnalysisKind,
    AnalysisResult,
    NamedTable,
    PageInfo,
    ResultKind,
    Session,
    SqlResult,
    Turn,
)
from nlsql_chat.services import SessionFormatter, TranscriptRenderer


class TranscriptRendererTests(unittest.TestCase):
    def setUp(self) -> None:
        self.renderer = TranscriptRenderer(line_prefix="> ", max_rows=2, max_cell_chars=8)

    def test_user_turns_are_not_echoed(self) -> None:
        self.assertEqual([], self.renderer.render_turn(Turn.user("hello")))

    def test_sql_turn_with_rows_and_footer(self) -> None:
        turn = Turn.assistant(
            "Revenue",
            result_kind=ResultKind.SQL,
            turn_id="r1",
            sql_result=SqlResult(
                sql_text="SELECT 1",
                rows=({"month": "Jan", "note": "a very long note"}, {"month": "Feb", "note": None}, {"month": "Mar"}),
                pagination=PageInfo("t1", 1, 3, 57, 20),
                table_id="t1",
            ),
        )
        lines = self.renderer.render_turn(turn)
        self.assertEqual("> Revenue", lines[0])
        self.assertEqual("> SQL: SELECT 1", lines[1])
        self.assertEqual("> month | note", lines[2])
        self.assertIn("a ver...", lines[4])
        self.assertIn("NULL", lines[5])
        self.assertEqual("> ... 1 more row(s) on this page", lines[6])
        self.assertEqual("> Page 1/3 (57 rows, 20 per page)", lines[7])
        self.assertEqual(">   /page r1 t1 <n>", lines[8])

    def test_single_page_has_no_footer(self) -> None:
        turn = Turn.assistant(
            "Done",
            result_kind=ResultKind.SQL,
            sql_result=SqlResult(rows=(), pagination=PageInfo("t1", 1, 1, 0, 20), table_id="t1"),
        )
        self.assertEqual(["> Done", "> (no rows)"], self.renderer.render_turn(turn))

    def test_analysis_tables_are_labelled(self) -> None:
        turn = Turn.assistant(
            "Why sales dropped",
            result_kind=ResultKind.ANALYSIS,
            analysis_result=AnalysisResult(
                kind=AnalysisKind.CAUSAL,
                tables=(NamedTable(name="drivers", error="timeout", table_id="local:table-1-ab"),),
            ),
        )
        lines = self.renderer.render_turn(turn)
        self.assertIn("> [causal analysis]", lines)
        self.assertIn("> == drivers ==", lines)
        self.assertIn("> Error: timeout", lines)


class SessionFormatterTests(unittest.TestCase):
    def test_list_entry_marks_active_session(self) -> None:
        formatter = SessionFormatter(line_prefix="> ")
        session = Session(id="0123456789", workspace_id="ws", name="Daily", message_count=3)
        entry = formatter.format_session_list_entry(session, active_session_id="0123456789")
        self.assertTrue(entry.startswith("> * Daily [01234567] (id=0123456789)"))
        self.assertIn("messages=3", entry)

    def test_current_session_lines(self) -> None:
        formatter = SessionFormatter(line_prefix="")
        lines = formatter.format_current_session_lines(
            "s1",
            {"name": "Daily", "db_info": {"db_name": "shop"}, "message_count": 4},
            workspace_id="ws-1",
            connected=True,
        )
        self.assertEqual(
            ["Workspace: ws-1 (connected)", "Current session: Daily [s1] (id=s1)", "- Database: shop", "- Messages: 4"],
            lines,
        )


if __name__ == "__main__":
    unittest.main()
