from nlsql_chat.services.session_formatter import SessionFormatter
from nlsql_chat.services.transcript_renderer import TranscriptRenderer

__all__ = [
    "SessionFormatter",
    "TranscriptRenderer",
]
