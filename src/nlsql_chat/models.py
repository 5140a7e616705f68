from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from loguru import logger

from nlsql_chat.errors import ResponseFormatError

Row = dict[str, Any]


def utc_now() -> datetime:
    return datetime.now(UTC)


def new_turn_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex}"


class Origin(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class ResultKind(str, Enum):
    NONE = "none"
    CONVERSATIONAL = "conversational"
    SQL = "sql"
    ANALYSIS = "analysis"


class AnalysisKind(str, Enum):
    CAUSAL = "causal"
    COMPARATIVE = "comparative"


class SessionPhase(str, Enum):
    NO_SESSION = "no-session"
    SESSION_ACTIVE = "session-active"
    SESSION_LOADING = "session-loading"


def payload_int(payload: dict, key: str, default: int = 0) -> int:
    value = payload.get(key, default)
    if value is None:
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as ex:
        raise ResponseFormatError(f"Field {key!r} is not an integer: {value!r}") from ex


@dataclass(frozen=True)
class PageInfo:
    table_id: str
    current_page: int
    total_pages: int
    total_rows: int
    page_size: int
    has_next: bool | None = None
    has_prev: bool | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> PageInfo:
        if not isinstance(payload, dict):
            raise ResponseFormatError(f"Pagination must be an object, got {type(payload).__name__}")

        current_page = payload_int(payload, "current_page", 1)
        total_pages = payload_int(payload, "total_pages", 0)
        if total_pages > 0 and not 1 <= current_page <= total_pages:
            raise ResponseFormatError(
                f"current_page {current_page} is outside [1, {total_pages}]"
            )

        has_next = payload.get("has_next")
        has_prev = payload.get("has_prev")
        expected_next = current_page < total_pages
        expected_prev = current_page > 1
        if has_next is not None and bool(has_next) != expected_next:
            logger.warning(
                f"has_next={has_next} disagrees with page {current_page}/{total_pages}; correcting"
            )
            has_next = expected_next
        if has_prev is not None and bool(has_prev) != expected_prev:
            logger.warning(
                f"has_prev={has_prev} disagrees with page {current_page}/{total_pages}; correcting"
            )
            has_prev = expected_prev

        return cls(
            table_id=str(payload.get("table_id") or ""),
            current_page=current_page,
            total_pages=total_pages,
            total_rows=payload_int(payload, "total_rows", 0),
            page_size=payload_int(payload, "page_size", 0),
            has_next=None if has_next is None else bool(has_next),
            has_prev=None if has_prev is None else bool(has_prev),
        )


@dataclass(frozen=True)
class SqlResult:
    sql_text: str = ""
    rows: tuple[Row, ...] | None = None
    error: str | None = None
    pagination: PageInfo | None = None
    table_id: str = ""


@dataclass(frozen=True)
class NamedTable:
    name: str
    description: str = ""
    sql_text: str = ""
    rows: tuple[Row, ...] | None = None
    error: str | None = None
    pagination: PageInfo | None = None
    table_id: str = ""
    row_count: int = 0


@dataclass(frozen=True)
class AnalysisResult:
    kind: AnalysisKind
    tables: tuple[NamedTable, ...] = ()

    def find_table(self, table_id: str) -> NamedTable | None:
        for table in self.tables:
            if table.table_id == table_id:
                return table
        return None


@dataclass(frozen=True)
class Turn:
    id: str
    origin: Origin
    text: str
    created_at: datetime = field(default_factory=utc_now)
    result_kind: ResultKind = ResultKind.NONE
    sql_result: SqlResult | None = None
    analysis_result: AnalysisResult | None = None

    def __post_init__(self) -> None:
        if self.sql_result is not None and self.analysis_result is not None:
            raise ValueError(f"Turn {self.id} carries both a sql and an analysis result")
        if (self.sql_result is not None) != (self.result_kind is ResultKind.SQL):
            raise ValueError(f"Turn {self.id}: sql_result must be present iff result_kind is sql")
        if (self.analysis_result is not None) != (self.result_kind is ResultKind.ANALYSIS):
            raise ValueError(f"Turn {self.id}: analysis_result must be present iff result_kind is analysis")
        if self.origin is Origin.USER and self.result_kind is not ResultKind.NONE:
            raise ValueError(f"Turn {self.id}: user turns cannot carry a result")

    @property
    def is_user(self) -> bool:
        return self.origin is Origin.USER

    def table_ids(self) -> list[str]:
        if self.sql_result is not None:
            return [self.sql_result.table_id] if self.sql_result.table_id else []
        if self.analysis_result is not None:
            return [t.table_id for t in self.analysis_result.tables if t.table_id]
        return []

    @classmethod
    def user(cls, text: str) -> Turn:
        return cls(id=new_turn_id("user"), origin=Origin.USER, text=text)

    @classmethod
    def assistant(
        cls,
        text: str,
        *,
        result_kind: ResultKind = ResultKind.CONVERSATIONAL,
        sql_result: SqlResult | None = None,
        analysis_result: AnalysisResult | None = None,
        turn_id: str | None = None,
    ) -> Turn:
        return cls(
            id=turn_id or new_turn_id("response"),
            origin=Origin.ASSISTANT,
            text=text,
            result_kind=result_kind,
            sql_result=sql_result,
            analysis_result=analysis_result,
        )

    @classmethod
    def notice(cls, text: str, prefix: str = "system") -> Turn:
        return cls(id=new_turn_id(prefix), origin=Origin.ASSISTANT, text=text)


@dataclass(frozen=True)
class Session:
    id: str
    workspace_id: str
    name: str
    description: str = ""
    created_at: str = ""
    updated_at: str = ""
    message_count: int = 0

    @classmethod
    def from_payload(cls, payload: dict) -> Session:
        if not isinstance(payload, dict):
            raise ResponseFormatError(f"Session must be an object, got {type(payload).__name__}")
        session_id = payload.get("_id") or payload.get("id")
        if not session_id:
            raise ResponseFormatError("Session payload has no id")
        return cls(
            id=str(session_id),
            workspace_id=str(payload.get("workspace_id") or ""),
            name=str(payload.get("name") or session_id),
            description=str(payload.get("description") or ""),
            created_at=str(payload.get("created_at") or ""),
            updated_at=str(payload.get("updated_at") or ""),
            message_count=payload_int(payload, "message_count"),
        )


@dataclass
class WorkspaceStatus:
    workspace_id: str
    connected: bool = False
