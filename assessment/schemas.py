from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SessionView(CamelModel):
    id: str
    title: str
    description: str
    starter_code: str = ""
    duration: int  # minutes
    started_at: datetime


class SubmitRequest(CamelModel):
    code: Optional[str] = None


class SubmitResponse(CamelModel):
    success: bool = True
    submitted_at: datetime
    late: bool = False


class IntegrityEventRequest(CamelModel):
    session_id: str
    type: str
    timestamp: datetime


class IntegrityEventResponse(CamelModel):
    success: bool = True
    log_id: str


class SnapshotRequest(CamelModel):
    session_id: str
    image: str
    timestamp: datetime


class SnapshotResponse(CamelModel):
    success: bool = True
    snapshot_id: str
    image_url: str


class ReportResponse(CamelModel):
    session_id: str
    title: str
    status: str
    started_at: datetime
    submitted_at: Optional[datetime] = None
    duration_seconds: int
    late: bool
    event_counts: Dict[str, int]
    total_events: int
    snapshot_count: int
    flagged_snapshots: int
    integrity_score: int
