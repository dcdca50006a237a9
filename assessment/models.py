from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class IntegrityEventType(str, Enum):
    COPY = "copy"
    PASTE = "paste"
    CUT = "cut"
    TAB_SWITCH = "tab_switch"
    WINDOW_BLUR = "window_blur"

    @property
    def suppressible(self) -> bool:
        """Clipboard actions can be blocked; focus changes can only be observed."""
        return self in (IntegrityEventType.COPY, IntegrityEventType.PASTE, IntegrityEventType.CUT)


class Problem(BaseModel):
    id: Optional[str] = None
    title: str
    description: str
    starter_code: str = ""
    time_limit: int  # minutes


class TestSession(BaseModel):
    __test__ = False

    id: Optional[str] = None
    problem_id: str
    start_time: datetime = Field(default_factory=utcnow)
    end_time: Optional[datetime] = None
    submitted_code: Optional[str] = None
    status: SessionStatus = SessionStatus.IN_PROGRESS
    late: bool = False

    @property
    def completed(self) -> bool:
        return self.end_time is not None

    def deadline(self, problem: Problem) -> datetime:
        return self.start_time + timedelta(minutes=problem.time_limit)


class IntegrityEvent(BaseModel):
    id: Optional[str] = None
    session_id: str
    event_type: IntegrityEventType
    timestamp: datetime = Field(default_factory=utcnow)


class Snapshot(BaseModel):
    id: Optional[str] = None
    session_id: str
    image_url: str
    timestamp: datetime = Field(default_factory=utcnow)
    observation: Optional[Dict[str, Any]] = None
