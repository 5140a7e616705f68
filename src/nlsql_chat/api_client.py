from __future__ import annotations

from typing import Any

import httpx
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from nlsql_chat.errors import ApiError, ResponseFormatError
from nlsql_chat.models import Session

_MAX_READ_ATTEMPTS = 3


def _on_retry(retry_state):
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"{reason}. Retrying in {wait:.1f}s (attempt {attempt}/{_MAX_READ_ATTEMPTS})...")


def _error_detail(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(body, dict):
        detail = body.get("detail") or body.get("message") or body.get("error")
        if isinstance(detail, str):
            return detail
        if detail is not None:
            return str(detail)
    return resp.text or resp.reason_phrase


class ApiClient:
    """HTTP client for the chat backend: auth, workspaces, sessions, queries and result pages."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )
        self._token = token

    @property
    def token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token

    async def close(self) -> None:
        await self._client.aclose()

    # -- auth --

    async def login(self, identity: str, secret: str) -> str:
        body = await self._request("POST", "/auth/login", data={"username": identity, "password": secret})
        token = body.get("access_token") if isinstance(body, dict) else None
        if not token:
            raise ResponseFormatError("Login response has no access_token")
        self._token = str(token)
        logger.info(f"Authenticated as {identity}")
        return self._token

    async def get_current_user(self) -> dict:
        return await self._get("/auth/me")

    # -- workspaces --

    async def list_workspaces(self) -> list[dict]:
        body = await self._get("/workspaces")
        return self._expect_list(body, "workspaces")

    async def activate_workspace(self, workspace_id: str) -> dict:
        return await self._request("POST", f"/workspaces/{workspace_id}/activate") or {}

    # -- sessions --

    async def create_session(self, workspace_id: str, name: str, description: str = "") -> Session:
        body = await self._request(
            "POST",
            "/sessions",
            json={"workspace_id": workspace_id, "name": name, "description": description},
        )
        return Session.from_payload(body)

    async def list_sessions(self, workspace_id: str) -> list[Session]:
        body = await self._get(f"/workspaces/{workspace_id}/sessions")
        return [Session.from_payload(item) for item in self._expect_list(body, "sessions")]

    async def get_session_info(self, session_id: str) -> dict:
        return await self._get(f"/sessions/{session_id}")

    async def get_session_messages(self, session_id: str) -> list[dict]:
        body = await self._get(f"/sessions/{session_id}/messages")
        return self._expect_list(body, "messages")

    async def delete_session(self, session_id: str) -> None:
        await self._request("DELETE", f"/sessions/{session_id}")

    # -- queries --

    async def execute_query(self, utterance: str, session_id: str | None = None) -> dict:
        payload: dict[str, Any] = {"query": utterance}
        if session_id:
            payload["session_id"] = session_id
        return await self._request("POST", "/query", json=payload)

    async def get_paginated_results(self, session_id: str, table_id: str, page: int) -> dict:
        return await self._get(f"/sessions/{session_id}/results/{table_id}", params={"page": page})

    # -- transport --

    @retry(
        retry=retry_if_exception_type((httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError)),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
        stop=stop_after_attempt(_MAX_READ_ATTEMPTS),
        before_sleep=_on_retry,
        reraise=True,
    )
    async def _get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self._request("GET", path, params=params)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        logger.debug(f"API request: {method} {path}")
        resp = await self._client.request(method, path, headers=headers, **kwargs)
        logger.debug(f"API response: {method} {path} -> {resp.status_code}")
        if resp.status_code >= 400:
            raise ApiError(resp.status_code, _error_detail(resp))
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as ex:
            raise ResponseFormatError(f"{method} {path} returned non-JSON body") from ex

    def _expect_list(self, body: Any, key: str) -> list:
        if isinstance(body, dict) and isinstance(body.get(key), list):
            return body[key]
        if isinstance(body, list):
            return body
        raise ResponseFormatError(f"Expected a list of {key}, got {type(body).__name__}")
