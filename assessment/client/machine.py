"""State machine for one candidate's timed, proctored test session.

The machine is pure: every input returns a list of effects for the caller
to carry out, and it never touches the network, the camera or a clock.
"""
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence, Union

from ..config import INTEGRITY_ADVISORY_SECONDS, WARNING_ADVISORY_SECONDS, WARNING_THRESHOLDS
from ..models import IntegrityEventType
from ..schemas import SessionView


class Phase(str, Enum):
    LOADING = "loading"
    ACTIVE = "active"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    FAILED = "failed"


TERMINAL_PHASES = (Phase.SUBMITTED, Phase.FAILED)

INTEGRITY_MESSAGES = {
    IntegrityEventType.COPY: "Copying is disabled during the test",
    IntegrityEventType.PASTE: "Pasting is disabled during the test",
    IntegrityEventType.CUT: "Cutting is disabled during the test",
    IntegrityEventType.TAB_SWITCH: "Tab switching detected. This will be reported.",
    IntegrityEventType.WINDOW_BLUR: "Tab switching detected. This will be reported.",
}

CAMERA_DENIED_MESSAGE = "Camera access is required for this test"
SUBMIT_FAILED_MESSAGE = "Failed to submit code. Please try again."


@dataclass(frozen=True)
class ShowAdvisory:
    advisory_id: int
    message: str
    dismiss_after: float


@dataclass(frozen=True)
class ReportIntegrity:
    kind: IntegrityEventType


@dataclass(frozen=True)
class BeginSubmit:
    code: str
    automatic: bool


Effect = Union[ShowAdvisory, ReportIntegrity, BeginSubmit]


def remaining_seconds(duration_minutes: int, started_at: datetime, now: datetime) -> int:
    elapsed = math.floor((now - started_at).total_seconds())
    return max(0, duration_minutes * 60 - elapsed)


def warning_message(threshold: int) -> str:
    if threshold % 60 == 0:
        minutes = threshold // 60
        return f"{minutes} minute{'s' if minutes != 1 else ''} remaining!"
    return f"{threshold} seconds remaining!"


class SessionMachine:
    def __init__(
        self,
        thresholds: Sequence[int] = WARNING_THRESHOLDS,
        warning_ttl: float = WARNING_ADVISORY_SECONDS,
        integrity_ttl: float = INTEGRITY_ADVISORY_SECONDS,
    ) -> None:
        self.thresholds = tuple(sorted(thresholds, reverse=True))
        self.warning_ttl = warning_ttl
        self.integrity_ttl = integrity_ttl

        self.phase = Phase.LOADING
        self.view: Optional[SessionView] = None
        self.code = ""
        self.remaining = 0

        self.advisory: Optional[str] = None
        self.notice: Optional[str] = None
        self.error: Optional[str] = None
        self.submitted_at: Optional[datetime] = None
        self.proctored = False

        self._advisory_id = 0
        self._fired: set = set()
        self._expired = False

    @property
    def terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def in_flight(self) -> bool:
        return self.phase is Phase.SUBMITTING

    def _show(self, message: str, ttl: float) -> ShowAdvisory:
        self._advisory_id += 1
        self.advisory = message
        return ShowAdvisory(self._advisory_id, message, ttl)

    def dismiss(self, advisory_id: int) -> List[Effect]:
        # A newer advisory keeps the slot until its own dismissal
        if advisory_id == self._advisory_id:
            self.advisory = None
        return []

    def _check_thresholds(self) -> List[Effect]:
        # Thresholds already behind us at load were latched silently
        if self.remaining in self.thresholds and self.remaining not in self._fired:
            self._fired.add(self.remaining)
            return [self._show(warning_message(self.remaining), self.warning_ttl)]
        return []

    def loaded(self, view: SessionView, now: datetime) -> List[Effect]:
        if self.phase is not Phase.LOADING:
            return []
        self.view = view
        self.code = view.starter_code or ""
        self.remaining = remaining_seconds(view.duration, view.started_at, now)
        self.phase = Phase.ACTIVE
        if self.remaining <= 0:
            self._expired = True
            return self.request_submit(automatic=True)
        self._fired.update(t for t in self.thresholds if t > self.remaining)
        return self._check_thresholds()

    def load_failed(self, message: str) -> List[Effect]:
        self.phase = Phase.FAILED
        self.error = message
        return []

    def camera_granted(self) -> List[Effect]:
        self.proctored = True
        return []

    def camera_denied(self) -> List[Effect]:
        self.proctored = False
        self.notice = CAMERA_DENIED_MESSAGE
        return []

    def tick(self) -> List[Effect]:
        if self.phase not in (Phase.ACTIVE, Phase.SUBMITTING) or self.remaining <= 0:
            return []
        self.remaining -= 1
        if self.remaining > 0:
            return self._check_thresholds()
        if self._expired:
            return []
        self._expired = True
        return self.request_submit(automatic=True)

    def edit(self, code: str) -> List[Effect]:
        if self.phase is Phase.ACTIVE:
            self.code = code
        return []

    def signal(self, kind: IntegrityEventType) -> List[Effect]:
        if self.phase not in (Phase.ACTIVE, Phase.SUBMITTING):
            return []
        kind = IntegrityEventType(kind)
        return [ReportIntegrity(kind), self._show(INTEGRITY_MESSAGES[kind], self.integrity_ttl)]

    def request_submit(self, automatic: bool = False) -> List[Effect]:
        if self.phase is not Phase.ACTIVE:
            return []
        self.phase = Phase.SUBMITTING
        self.error = None
        return [BeginSubmit(self.code, automatic)]

    def submit_succeeded(self, submitted_at: Optional[datetime]) -> List[Effect]:
        if self.phase is Phase.SUBMITTING:
            self.phase = Phase.SUBMITTED
            self.submitted_at = submitted_at
        return []

    def submit_conflicted(self) -> List[Effect]:
        # Someone else finished the session first; that still ends ours
        if self.phase is Phase.SUBMITTING:
            self.phase = Phase.SUBMITTED
        return []

    def submit_failed(self, message: str = SUBMIT_FAILED_MESSAGE) -> List[Effect]:
        if self.phase is Phase.SUBMITTING:
            self.phase = Phase.ACTIVE
            self.error = message
        return []
