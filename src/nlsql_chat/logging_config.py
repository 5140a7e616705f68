import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from loguru import logger

NO_SESSION_TAG = "-"

# Every record carries the chat session it was logged under.
_CONSOLE_FORMAT = (
    "<level>{level:<8}</level> | <magenta>{extra[session]}</magenta> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"
)
_FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<8} | session={extra[session]} | {name}:{function}:{line} - {message}"

_SECRET_PATTERNS = (
    re.compile(r"(Bearer\s+)[^\s'\"]+", re.IGNORECASE),
    re.compile(r"((?:password|access_token|api_token)['\"]?\s*[=:]\s*['\"]?)[^\s'\",}]+", re.IGNORECASE),
)


def redact_secrets(record: dict) -> None:
    """Mask bearer tokens and credentials in a record's message before any sink sees it."""
    message = record["message"]
    for pattern in _SECRET_PATTERNS:
        message = pattern.sub(r"\1***", message)
    record["message"] = message


@dataclass(frozen=True)
class SinkSpec:
    kind: str
    level: str
    path: str = "nlsql_chat.log"
    rotation: str = "5 MB"
    retention: int = 5
    serialize: bool = False

    @classmethod
    def from_config(cls, config: dict[str, Any], default_level: str) -> "SinkSpec | None":
        kind = config.get("type", "")
        if kind not in ("console", "file"):
            logger.warning(f"Unknown log consumer type: {kind!r}")
            return None
        options = {k: v for k, v in config.items() if k in ("path", "rotation", "retention", "serialize")}
        return cls(kind=kind, level=config.get("level", default_level), **options)

    def register(self) -> str:
        """Add the sink to loguru and return a one-line description of it."""
        if self.kind == "console":
            # The REPL owns stdout.
            logger.add(sys.stderr, level=self.level, format=_CONSOLE_FORMAT)
            return f"console (stderr, {self.level})"

        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            self.path,
            level=self.level,
            format=_FILE_FORMAT,
            rotation=self.rotation,
            retention=self.retention,
            serialize=self.serialize,
        )
        return f"file ({self.path}, {'json lines' if self.serialize else 'text'}, {self.level})"


# Interactive use: only warnings reach the terminal, everything else goes to the file.
_DEFAULT_CONSUMERS = [
    {"type": "console", "level": "WARNING"},
    {"type": "file", "path": "nlsql_chat.log"},
]


def setup_logging(
    level: str = "INFO",
    consumers: list[dict[str, Any]] | None = None,
) -> list[str]:
    logger.remove()
    logger.configure(extra={"session": NO_SESSION_TAG}, patcher=redact_secrets)

    specs = [SinkSpec.from_config(c, level) for c in (consumers if consumers is not None else _DEFAULT_CONSUMERS)]
    return [spec.register() for spec in specs if spec is not None]


def bind_session(session_id: str | None) -> None:
    """Tag subsequent log records with ``session_id``."""
    logger.configure(extra={"session": session_id or NO_SESSION_TAG})
