import json
import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from nlsql_chat.app_config import load_json_config, parse_app_config, resolve_runtime_env
from nlsql_chat.transcript import DEFAULT_WELCOME_TEXT


class AppConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        app = parse_app_config({})
        self.assertEqual("http://localhost:8000/api", app.api_base_url)
        self.assertEqual(30.0, app.request_timeout_seconds)
        self.assertIsNone(app.workspace_id)
        self.assertIsNone(app.session_id)
        self.assertTrue(app.auto_connect)
        self.assertEqual(DEFAULT_WELCOME_TEXT, app.welcome_message)
        self.assertEqual("INFO", app.log_level)
        self.assertIsNone(app.log_consumers)

    def test_values_are_read(self) -> None:
        app = parse_app_config(
            {
                "ApiBaseUrl": " https://chat.example.com/api ",
                "RequestTimeoutSeconds": "12.5",
                "WorkspaceId": "ws-1",
                "SessionId": "  ",
                "AutoConnect": "false",
                "LogLevel": "DEBUG",
                "LogConsumers": [{"type": "console"}],
            }
        )
        self.assertEqual("https://chat.example.com/api", app.api_base_url)
        self.assertEqual(12.5, app.request_timeout_seconds)
        self.assertEqual("ws-1", app.workspace_id)
        self.assertIsNone(app.session_id)
        self.assertFalse(app.auto_connect)
        self.assertEqual("DEBUG", app.log_level)
        self.assertEqual([{"type": "console"}], app.log_consumers)

    def test_load_json_config(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            self.assertEqual({}, load_json_config(path))
            path.write_text(json.dumps({"WorkspaceId": "ws-9"}), encoding="utf-8")
            self.assertEqual({"WorkspaceId": "ws-9"}, load_json_config(path))

    def test_runtime_env_treats_empty_as_missing(self) -> None:
        env = {"NLSQL_API_TOKEN": "", "NLSQL_USERNAME": "ana", "NLSQL_PASSWORD": "pw"}
        with patch.dict(os.environ, env, clear=False):
            runtime = resolve_runtime_env()
        self.assertIsNone(runtime.api_token)
        self.assertEqual("ana", runtime.username)
        self.assertEqual("pw", runtime.password)


if __name__ == "__main__":
    unittest.main()
