"""Turn backend payloads into transcript turns.

Two payload families reach the client:

* live ``executeQuery`` responses, discriminated by ``query_type``;
* persisted session messages, whose ``query_result`` only carries flags
  (``is_conversational``, ``is_multi_query``, ``is_why_analysis``) and
  field presence.

Both are reduced to the same tagged result before a ``Turn`` is built.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, assert_never

from loguru import logger

from nlsql_chat.errors import ResponseFormatError
from nlsql_chat.models import (
    AnalysisKind,
    AnalysisResult,
    NamedTable,
    Origin,
    PageInfo,
    ResultKind,
    Row,
    SqlResult,
    Turn,
    new_turn_id,
    payload_int,
    utc_now,
)
from nlsql_chat.table_ids import TableIdFactory

DEFAULT_SQL_TEXT = "Query executed successfully."


@dataclass(frozen=True)
class ParsedResult:
    text: str
    kind: ResultKind
    sql_result: SqlResult | None = None
    analysis_result: AnalysisResult | None = None


def resolve_kind(payload: dict) -> ResultKind:
    raw = payload.get("query_type")
    if raw == "sql":
        return ResultKind.SQL
    if raw == "analysis":
        return ResultKind.ANALYSIS
    if raw != "conversational":
        logger.debug(f"Unknown query_type {raw!r}; treating response as conversational")
    return ResultKind.CONVERSATIONAL


def parse_rows(value: Any) -> tuple[Row, ...] | None:
    if value is None:
        return None
    if not isinstance(value, list):
        raise ResponseFormatError(f"Result rows must be a list, got {type(value).__name__}")
    rows: list[Row] = []
    for item in value:
        if not isinstance(item, dict):
            raise ResponseFormatError(f"Result row must be an object, got {type(item).__name__}")
        rows.append(dict(item))
    return tuple(rows)


def parse_pagination(value: Any) -> PageInfo | None:
    if value is None:
        return None
    return PageInfo.from_payload(value)


def parse_analysis_kind(value: Any) -> AnalysisKind:
    if value == AnalysisKind.CAUSAL.value:
        return AnalysisKind.CAUSAL
    if value != AnalysisKind.COMPARATIVE.value:
        logger.warning(f"Unknown analysis_type {value!r}; defaulting to comparative")
    return AnalysisKind.COMPARATIVE


def parse_table(payload: Any, id_factory: TableIdFactory) -> NamedTable:
    if not isinstance(payload, dict):
        raise ResponseFormatError(f"Analysis table must be an object, got {type(payload).__name__}")
    pagination = parse_pagination(payload.get("pagination"))
    table_id = str(payload.get("table_id") or "") or (pagination.table_id if pagination else "")
    if not table_id:
        table_id = id_factory.new_id()
        logger.debug(f"Analysis table {payload.get('name')!r} has no table_id; assigned {table_id}")
    rows = parse_rows(payload.get("results", payload.get("data")))
    return NamedTable(
        name=str(payload.get("name") or ""),
        description=str(payload.get("description") or ""),
        sql_text=str(payload.get("sql") or ""),
        rows=rows,
        error=payload.get("error"),
        pagination=pagination,
        table_id=table_id,
        row_count=payload_int(payload, "row_count", len(rows or ())),
    )


def _parse_tables(tables: Any, id_factory: TableIdFactory) -> tuple[NamedTable, ...]:
    if tables is None:
        return ()
    if not isinstance(tables, list):
        raise ResponseFormatError(f"Analysis tables must be a list, got {type(tables).__name__}")
    return tuple(parse_table(t, id_factory) for t in tables)


def _raw_text(payload: dict) -> str:
    return json.dumps(payload, ensure_ascii=False, default=str)


def parse_query_response(payload: Any, id_factory: TableIdFactory) -> ParsedResult:
    if not isinstance(payload, dict):
        raise ResponseFormatError(f"Query response must be an object, got {type(payload).__name__}")

    kind = resolve_kind(payload)
    raw_text = payload.get("text") or payload.get("message")
    text = str(raw_text) if raw_text else ""

    match kind:
        case ResultKind.SQL:
            pagination = parse_pagination(payload.get("pagination"))
            table_id = str(payload.get("table_id") or "") or (pagination.table_id if pagination else "")
            sql_result = SqlResult(
                sql_text=str(payload.get("sql") or ""),
                rows=parse_rows(payload.get("data")),
                error=payload.get("error"),
                pagination=pagination,
                table_id=table_id,
            )
            return ParsedResult(text or DEFAULT_SQL_TEXT, kind, sql_result=sql_result)
        case ResultKind.ANALYSIS:
            analysis = AnalysisResult(
                kind=parse_analysis_kind(payload.get("analysis_type")),
                tables=_parse_tables(payload.get("tables"), id_factory),
            )
            return ParsedResult(text or DEFAULT_SQL_TEXT, kind, analysis_result=analysis)
        case ResultKind.CONVERSATIONAL:
            return ParsedResult(text or _raw_text(payload), kind)
        case ResultKind.NONE:
            raise ResponseFormatError("Query responses always carry a result kind")
        case _:
            assert_never(kind)


def _parse_timestamp(value: Any) -> datetime:
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable message timestamp {value!r}; using now")
            return utc_now()
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return utc_now()


def parse_persisted_message(payload: Any, id_factory: TableIdFactory) -> Turn:
    if not isinstance(payload, dict):
        raise ResponseFormatError(f"Session message must be an object, got {type(payload).__name__}")

    turn_id = str(payload.get("_id") or payload.get("id") or new_turn_id("msg"))
    text = str(payload.get("content") or "")
    created_at = _parse_timestamp(payload.get("created_at"))

    if payload.get("role") == Origin.USER.value:
        return Turn(id=turn_id, origin=Origin.USER, text=text, created_at=created_at)

    query_result = payload.get("query_result")
    if not isinstance(query_result, dict):
        return Turn(id=turn_id, origin=Origin.ASSISTANT, text=text, created_at=created_at)

    if query_result.get("is_conversational"):
        return Turn(
            id=turn_id,
            origin=Origin.ASSISTANT,
            text=text,
            created_at=created_at,
            result_kind=ResultKind.CONVERSATIONAL,
        )

    if query_result.get("tables") is not None or query_result.get("is_multi_query") or query_result.get("is_why_analysis"):
        kind_value = query_result.get("analysis_type")
        if kind_value is None and query_result.get("is_why_analysis"):
            kind_value = AnalysisKind.CAUSAL.value
        analysis = AnalysisResult(
            kind=parse_analysis_kind(kind_value),
            tables=_parse_tables(query_result.get("tables"), id_factory),
        )
        return Turn(
            id=turn_id,
            origin=Origin.ASSISTANT,
            text=text,
            created_at=created_at,
            result_kind=ResultKind.ANALYSIS,
            analysis_result=analysis,
        )

    if query_result.get("sql"):
        pagination = parse_pagination(query_result.get("pagination"))
        sql_result = SqlResult(
            sql_text=str(query_result.get("sql") or ""),
            rows=parse_rows(query_result.get("results")),
            error=query_result.get("error"),
            pagination=pagination,
            table_id=pagination.table_id if pagination else "",
        )
        return Turn(
            id=turn_id,
            origin=Origin.ASSISTANT,
            text=text,
            created_at=created_at,
            result_kind=ResultKind.SQL,
            sql_result=sql_result,
        )

    return Turn(id=turn_id, origin=Origin.ASSISTANT, text=text, created_at=created_at)


def build_assistant_turn(parsed: ParsedResult) -> Turn:
    return Turn.assistant(
        parsed.text,
        result_kind=parsed.kind,
        sql_result=parsed.sql_result,
        analysis_result=parsed.analysis_result,
    )
