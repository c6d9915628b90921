from __future__ import annotations

from typing import Any

import httpx
from loguru import logger
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from miniopencode.errors import CatalogError
from miniopencode.models import MessageSummary, ModelRef, SessionSummary, TokenUsage

_RETRY_ATTEMPTS = 3


def _on_retry(retry_state) -> None:
    attempt = retry_state.attempt_number
    wait = retry_state.next_action.sleep if retry_state.next_action else 0
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    reason = type(exc).__name__ if exc else "Unknown"
    logger.warning(f"{reason}. Retrying in {wait:.1f}s (attempt {attempt}/{_RETRY_ATTEMPTS})...")


def default_retry_kwargs(exception_types: tuple[type[Exception], ...]) -> dict:
    return {
        "retry": retry_if_exception_type(exception_types),
        "wait": wait_exponential(multiplier=0.5, min=0.5, max=4),
        "stop": stop_after_attempt(_RETRY_ATTEMPTS),
        "before_sleep": _on_retry,
        "reraise": True,
    }


_READ_RETRY = default_retry_kwargs((httpx.ConnectError, httpx.TimeoutException))


class CatalogClient:
    """Session catalog and prompt endpoints of the agent server."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self._base_url, timeout=timeout, transport=transport)

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> CatalogClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    @retry(**_READ_RETRY)
    async def list_sessions(self) -> list[SessionSummary]:
        resp = await self._client.get("/session")
        payload = self._json_or_raise(resp, "list sessions", (200,))
        if not isinstance(payload, list):
            raise CatalogError("list sessions failed: expected a JSON array", status_code=resp.status_code)
        sessions: list[SessionSummary] = []
        for item in payload:
            if not isinstance(item, dict) or not isinstance(item.get("id"), str):
                continue
            sessions.append(SessionSummary(id=item["id"], title=str(item.get("title") or "")))
        logger.debug(f"catalog: listed {len(sessions)} session(s)")
        return sessions

    @retry(**_READ_RETRY)
    async def list_messages(self, session_id: str) -> list[MessageSummary]:
        resp = await self._client.get(f"/session/{session_id}/message")
        payload = self._json_or_raise(resp, "list messages", (200,))
        if not isinstance(payload, list):
            raise CatalogError("list messages failed: expected a JSON array", status_code=resp.status_code)
        messages: list[MessageSummary] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            # Messages come either flat or wrapped as {"info": {...}, "parts": [...]}.
            info = item.get("info") if isinstance(item.get("info"), dict) else item
            messages.append(
                MessageSummary(
                    id=str(info.get("id") or ""),
                    tokens=TokenUsage.from_payload(info.get("tokens")),
                )
            )
        return messages

    async def create_session(self, title: str) -> str:
        logger.info(f"catalog: creating session title={title!r}")
        resp = await self._client.post("/session", json={"title": title})
        payload = self._json_or_raise(resp, "create session", (200, 201, 202))
        if isinstance(payload, dict):
            for key in ("id", "ID"):
                value = payload.get(key)
                if isinstance(value, str) and value:
                    return value
        raise CatalogError("no session id in response", status_code=resp.status_code, body=resp.text)

    async def send_prompt(
        self,
        session_id: str,
        text: str,
        *,
        model: ModelRef | None = None,
        agent: str | None = None,
    ) -> None:
        body: dict[str, Any] = {"parts": [{"type": "text", "text": text}]}
        if model is not None:
            body["model"] = {"providerID": model.provider_id, "modelID": model.model_id}
        if agent:
            body["agent"] = agent

        logger.info(f"catalog: prompt_async POST start session={session_id} len={len(text)}")
        resp = await self._client.post(f"/session/{session_id}/prompt_async", json=body)
        logger.info(f"catalog: prompt_async POST done session={session_id} status={resp.status_code}")
        if resp.status_code not in (200, 202, 204):
            logger.warning(f"catalog: prompt_async failed session={session_id} body={resp.text}")
            raise CatalogError(
                f"prompt POST failed: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )

    async def check_health(self) -> bool:
        try:
            resp = await self._client.get("/global/health")
        except httpx.HTTPError as ex:
            logger.debug(f"catalog: health check failed: {ex}")
            return False
        return resp.status_code == 200

    @staticmethod
    def _json_or_raise(resp: httpx.Response, action: str, ok_statuses: tuple[int, ...]) -> Any:
        if resp.status_code not in ok_statuses:
            raise CatalogError(
                f"{action} failed: {resp.text}",
                status_code=resp.status_code,
                body=resp.text,
            )
        try:
            return resp.json()
        except ValueError as ex:
            raise CatalogError(f"{action} failed: invalid JSON body", status_code=resp.status_code) from ex
