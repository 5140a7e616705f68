from dataclasses import dataclass
from typing import Any

from nlsql_chat.transcript import DEFAULT_WELCOME_TEXT


@dataclass
class ChatConfig:
    # Anything implementing QueryResolver, PaginationCursorService,
    # SessionStore and WorkspaceService; ApiClient in production.
    backend: Any
    welcome_text: str = DEFAULT_WELCOME_TEXT
    echo: bool = True
    max_rendered_rows: int = 20
