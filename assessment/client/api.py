import base64
from datetime import datetime
from typing import Optional

import httpx

from ..models import IntegrityEventType
from ..schemas import (
    IntegrityEventResponse,
    SessionView,
    SnapshotResponse,
    SubmitResponse,
)


class SessionNotFound(Exception):
    pass


class SubmissionConflict(Exception):
    """The session was already completed by an earlier submission."""


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json().get("error", response.text)
    except ValueError:
        return response.text


class SessionApi:
    """HTTP client for the test-session endpoints."""

    def __init__(
        self,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ) -> None:
        self.client = client or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def __aenter__(self) -> "SessionApi":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def _check(self, response: httpx.Response) -> None:
        if response.status_code == 404:
            raise SessionNotFound(_error_message(response))
        if response.status_code == 409:
            raise SubmissionConflict(_error_message(response))
        response.raise_for_status()

    async def fetch_session(self, session_id: str) -> SessionView:
        response = await self.client.get(f"/session/{session_id}")
        self._check(response)
        return SessionView.model_validate(response.json())

    async def submit(self, session_id: str, code: str) -> SubmitResponse:
        response = await self.client.post(f"/session/{session_id}/submit", json={"code": code})
        self._check(response)
        return SubmitResponse.model_validate(response.json())

    async def report_event(
        self, session_id: str, kind: IntegrityEventType, timestamp: datetime
    ) -> str:
        response = await self.client.post("/integrity-event", json={
            "sessionId": session_id,
            "type": IntegrityEventType(kind).value,
            "timestamp": timestamp.isoformat(),
        })
        self._check(response)
        return IntegrityEventResponse.model_validate(response.json()).log_id

    async def upload_snapshot(
        self, session_id: str, jpeg: bytes, timestamp: datetime
    ) -> SnapshotResponse:
        image = "data:image/jpeg;base64," + base64.b64encode(jpeg).decode("ascii")
        response = await self.client.post("/snapshot", json={
            "sessionId": session_id,
            "image": image,
            "timestamp": timestamp.isoformat(),
        })
        self._check(response)
        return SnapshotResponse.model_validate(response.json())
