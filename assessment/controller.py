import base64
import binascii
import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from fastapi import BackgroundTasks
from starlette.concurrency import run_in_threadpool

from .config import SUBMISSION_GRACE_SECONDS
from .errors import ConflictError, NotFoundError, UpstreamStorageError, ValidationError
from .models import IntegrityEvent, IntegrityEventType, Problem, Snapshot, TestSession, utcnow
from .oracle import ScoringOracle
from .report import build_html_report_content, build_report
from .schemas import ReportResponse, SessionView, SubmitResponse
from .storage import BaseStorage
from .store import SessionStore

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = re.compile(r"^data:image/\w+;base64,")


def decode_image(image: str) -> bytes:
    """Decode a base64 payload, with or without a ``data:image/...;base64,`` prefix."""
    payload = DATA_URL_PREFIX.sub("", image.strip(), count=1)
    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Image is not valid base64")
    if not data:
        raise ValidationError("Image is empty")
    return data


class SessionController:
    """Server side of a timed test session: view, submission and monitoring logs."""

    def __init__(
        self,
        store: SessionStore,
        storage: BaseStorage,
        clock: Callable[[], datetime] = utcnow,
        oracle: Optional[ScoringOracle] = None,
        grace_seconds: int = SUBMISSION_GRACE_SECONDS,
    ) -> None:
        self.store = store
        self.storage = storage
        self.clock = clock
        self.oracle = oracle
        self.grace = timedelta(seconds=grace_seconds)

    async def _load(self, session_id: str) -> TestSession:
        session = await self.store.get_session(session_id)
        if session is None:
            raise NotFoundError("Test session not found")
        return session

    async def _problem_for(self, session: TestSession) -> Problem:
        problem = await self.store.get_problem(session.problem_id)
        if problem is None:
            raise NotFoundError("Problem not found for test session")
        return problem

    async def get_session_view(self, session_id: str) -> SessionView:
        session = await self._load(session_id)
        problem = await self._problem_for(session)
        return SessionView(
            id=session.id,
            title=problem.title,
            description=problem.description,
            starter_code=problem.starter_code or "",
            duration=problem.time_limit,
            started_at=session.start_time,
        )

    async def submit(self, session_id: str, code: Optional[str]) -> SubmitResponse:
        if not isinstance(code, str) or not code.strip():
            raise ValidationError("Code is required")

        session = await self._load(session_id)
        if session.completed:
            raise ConflictError("Test already submitted")

        problem = await self._problem_for(session)
        now = self.clock()
        late = now > session.deadline(problem) + self.grace

        if not await self.store.complete_session(session_id, code, now, late):
            # Lost the race against a concurrent submission
            raise ConflictError("Test already submitted")

        if late:
            logger.warning("Session %s submitted %s after its deadline",
                           session_id, now - session.deadline(problem))
        logger.info("Session %s submitted (%d chars)", session_id, len(code))
        return SubmitResponse(submitted_at=now, late=late)

    async def record_integrity_event(
        self, session_id: str, kind: str, timestamp: datetime
    ) -> IntegrityEvent:
        try:
            event_type = IntegrityEventType(kind)
        except ValueError:
            raise ValidationError("Invalid integrity event type")

        await self._load(session_id)
        return await self.store.add_integrity_event(IntegrityEvent(
            session_id=session_id,
            event_type=event_type,
            timestamp=timestamp,
        ))

    async def record_snapshot(
        self,
        session_id: str,
        image: str,
        timestamp: datetime,
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> Snapshot:
        await self._load(session_id)
        data = decode_image(image)

        stamp = int(self.clock().timestamp() * 1000)
        key = f"snapshots/{session_id}_{stamp}_{uuid.uuid4().hex[:8]}.jpg"
        try:
            image_url = await run_in_threadpool(self.storage.put, key, data, "image/jpeg")
        except UpstreamStorageError:
            raise
        except Exception as exc:
            logger.error("Snapshot upload for session %s failed: %s", session_id, exc)
            raise UpstreamStorageError("Failed to save snapshot") from exc

        snapshot = await self.store.add_snapshot(Snapshot(
            session_id=session_id,
            image_url=image_url,
            timestamp=timestamp,
        ))
        if self.oracle is not None and background_tasks is not None:
            background_tasks.add_task(self.review_snapshot, snapshot.id, data)
        return snapshot

    async def review_snapshot(self, snapshot_id: str, data: bytes) -> None:
        if self.oracle is None:
            return
        try:
            observation = await self.oracle.observe_snapshot(data)
        except Exception as exc:
            logger.warning("Snapshot review for %s failed: %s", snapshot_id, exc)
            return
        await self.store.annotate_snapshot(snapshot_id, observation)

    async def build_report(self, session_id: str) -> ReportResponse:
        session = await self._load(session_id)
        problem = await self._problem_for(session)
        events = await self.store.list_integrity_events(session_id)
        snapshots = await self.store.list_snapshots(session_id)
        return ReportResponse(**build_report(session, problem, events, snapshots))

    async def archive_report(self, report: ReportResponse) -> str:
        """Render the HTML report and keep a copy in the blob store."""
        snapshots = await self.store.list_snapshots(report.session_id)
        html = build_html_report_content(report.model_dump(), snapshots)
        return await run_in_threadpool(
            self.storage.put,
            f"reports/report_{report.session_id}.html",
            html.encode("utf-8"),
            "text/html",
        )
