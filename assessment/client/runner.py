import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Set, Union

from ..config import SNAPSHOT_INTERVAL_SECONDS, TICK_SECONDS
from ..models import IntegrityEventType
from .api import SessionApi, SubmissionConflict
from .clock import SystemClock
from .machine import (
    SUBMIT_FAILED_MESSAGE,
    BeginSubmit,
    Effect,
    Phase,
    ReportIntegrity,
    SessionMachine,
    ShowAdvisory,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class CaptureDue:
    pass


@dataclass(frozen=True)
class Signal:
    kind: IntegrityEventType


@dataclass(frozen=True)
class Edit:
    code: str


@dataclass(frozen=True)
class SubmitRequested:
    pass


@dataclass(frozen=True)
class SubmitFinished:
    submitted_at: Optional[datetime]


@dataclass(frozen=True)
class SubmitConflicted:
    pass


@dataclass(frozen=True)
class SubmitFailed:
    message: str


@dataclass(frozen=True)
class Dismiss:
    advisory_id: int


@dataclass(frozen=True)
class Close:
    pass


Message = Union[Tick, CaptureDue, Signal, Edit, SubmitRequested, SubmitFinished,
                SubmitConflicted, SubmitFailed, Dismiss, Close]


class SessionClient:
    """Drives a :class:`SessionMachine` from a tick source, a capture source and UI signals.

    All producers post messages to one queue; a single dispatch loop feeds them
    to the machine and carries out the returned effects. Reporting and uploads
    are fire-and-forget: their failures are logged and never reach the loop.
    """

    def __init__(
        self,
        session_id: str,
        api: SessionApi,
        camera=None,
        clock=None,
        machine: Optional[SessionMachine] = None,
        snapshot_interval: float = SNAPSHOT_INTERVAL_SECONDS,
        tick_seconds: float = TICK_SECONDS,
        on_advisory: Optional[Callable[[str], None]] = None,
        on_change: Optional[Callable[[SessionMachine], None]] = None,
    ) -> None:
        self.session_id = session_id
        self.api = api
        self.camera = camera
        self.clock = clock or SystemClock()
        self.machine = machine or SessionMachine()
        self.snapshot_interval = snapshot_interval
        self.tick_seconds = tick_seconds
        self.on_advisory = on_advisory
        self.on_change = on_change

        self._queue: "asyncio.Queue[Message]" = asyncio.Queue()
        self._loops: Set[asyncio.Task] = set()
        self._background: Set[asyncio.Task] = set()
        self._camera_held = False

    # UI-facing inputs

    def signal(self, kind) -> bool:
        """Record a monitored browser event. Returns True if its default action must be prevented."""
        kind = IntegrityEventType(kind)
        self._queue.put_nowait(Signal(kind))
        return kind.suppressible

    def edit(self, code: str) -> None:
        self._queue.put_nowait(Edit(code))

    def submit(self) -> None:
        self._queue.put_nowait(SubmitRequested())

    def close(self) -> None:
        """Navigation away: stop local activity. A pending submission keeps running."""
        self._queue.put_nowait(Close())

    # Lifecycle

    async def run(self) -> Phase:
        try:
            await self._acquire_camera()
            try:
                view = await self.api.fetch_session(self.session_id)
            except Exception as exc:
                logger.error("Failed to load test session %s: %s", self.session_id, exc)
                self.machine.load_failed("Failed to load test session")
                self._changed()
                return self.machine.phase

            self._apply(self.machine.loaded(view, self.clock.now()))
            self._changed()
            self._start(self._ticker())
            if self._camera_held:
                self._start(self._capture_loop())
            await self._dispatch()
            return self.machine.phase
        finally:
            self._teardown()

    async def wait_background(self) -> None:
        """Wait for outstanding fire-and-forget work (reports, uploads, submission)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _acquire_camera(self) -> None:
        if self.camera is None:
            self._apply(self.machine.camera_denied())
            return
        try:
            await self.camera.acquire()
        except Exception as exc:
            logger.warning("Camera unavailable, continuing without proctoring: %s", exc)
            self._apply(self.machine.camera_denied())
            return
        self._camera_held = True
        self._apply(self.machine.camera_granted())

    def _teardown(self) -> None:
        for task in list(self._loops):
            task.cancel()
        self._loops.clear()
        if self._camera_held:
            self._camera_held = False
            self.camera.release()

    # Producers

    async def _ticker(self) -> None:
        while True:
            await self.clock.sleep(self.tick_seconds)
            self._queue.put_nowait(Tick())

    async def _capture_loop(self) -> None:
        while True:
            self._queue.put_nowait(CaptureDue())
            await self.clock.sleep(self.snapshot_interval)

    async def _dismiss_later(self, advisory: ShowAdvisory) -> None:
        await self.clock.sleep(advisory.dismiss_after)
        self._queue.put_nowait(Dismiss(advisory.advisory_id))

    # Dispatch

    async def _dispatch(self) -> None:
        while not self.machine.terminal:
            message = await self._queue.get()
            if isinstance(message, Close):
                return
            self._apply(self._handle(message))
            self._changed()

    def _handle(self, message: Message) -> list:
        machine = self.machine
        if isinstance(message, Tick):
            return machine.tick()
        if isinstance(message, Signal):
            return machine.signal(message.kind)
        if isinstance(message, Edit):
            return machine.edit(message.code)
        if isinstance(message, SubmitRequested):
            return machine.request_submit()
        if isinstance(message, SubmitFinished):
            return machine.submit_succeeded(message.submitted_at)
        if isinstance(message, SubmitConflicted):
            return machine.submit_conflicted()
        if isinstance(message, SubmitFailed):
            return machine.submit_failed(message.message)
        if isinstance(message, Dismiss):
            return machine.dismiss(message.advisory_id)
        if isinstance(message, CaptureDue):
            if machine.phase in (Phase.ACTIVE, Phase.SUBMITTING):
                self._fire(self._capture())
            return []
        raise TypeError(f"Unknown message: {message!r}")

    def _apply(self, effects: "list[Effect]") -> None:
        for effect in effects:
            if isinstance(effect, ShowAdvisory):
                if self.on_advisory is not None:
                    self.on_advisory(effect.message)
                self._start(self._dismiss_later(effect))
            elif isinstance(effect, ReportIntegrity):
                self._fire(self._report(effect.kind, self.clock.now()))
            elif isinstance(effect, BeginSubmit):
                self._fire(self._submit(effect.code))

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self.machine)

    def _start(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._loops.add(task)
        task.add_done_callback(self._loops.discard)

    def _fire(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # Fire-and-forget work

    async def _report(self, kind: IntegrityEventType, timestamp: datetime) -> None:
        try:
            await self.api.report_event(self.session_id, kind, timestamp)
        except Exception as exc:
            logger.warning("Failed to report %s event: %s", kind.value, exc)

    async def _capture(self) -> None:
        try:
            image = await self.camera.capture()
            await self.api.upload_snapshot(self.session_id, image, self.clock.now())
        except Exception as exc:
            logger.warning("Snapshot capture/upload failed: %s", exc)

    async def _submit(self, code: str) -> None:
        try:
            result = await self.api.submit(self.session_id, code)
        except SubmissionConflict:
            self._queue.put_nowait(SubmitConflicted())
        except Exception as exc:
            logger.error("Submission error: %s", exc)
            self._queue.put_nowait(SubmitFailed(SUBMIT_FAILED_MESSAGE))
        else:
            self._queue.put_nowait(SubmitFinished(result.submitted_at))
