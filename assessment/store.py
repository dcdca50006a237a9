import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel

from .models import IntegrityEvent, Problem, SessionStatus, Snapshot, TestSession

M = TypeVar("M", bound=BaseModel)


def to_document(model: BaseModel) -> Dict[str, Any]:
    """Serialize a record for Mongo, storing our string id as ``_id``."""
    doc = {
        key: value.value if isinstance(value, Enum) else value
        for key, value in model.model_dump().items()
    }
    doc["_id"] = doc.pop("id") or str(uuid.uuid4())
    return doc


def from_document(model: Type[M], doc: Dict[str, Any]) -> M:
    data = dict(doc)
    data["id"] = str(data.pop("_id"))
    return model(**data)


class SessionStore:
    """Durable test-session state backed by MongoDB collections."""

    def __init__(self, problems, sessions, integrity_events, snapshots) -> None:
        self.problems = problems
        self.sessions = sessions
        self.integrity_events = integrity_events
        self.snapshots = snapshots

    @classmethod
    def default(cls) -> "SessionStore":
        from .database import (
            integrity_events_collection,
            problems_collection,
            sessions_collection,
            snapshots_collection,
        )

        return cls(
            problems_collection,
            sessions_collection,
            integrity_events_collection,
            snapshots_collection,
        )

    async def get_session(self, session_id: str) -> Optional[TestSession]:
        doc = await self.sessions.find_one({"_id": session_id})
        return from_document(TestSession, doc) if doc else None

    async def get_problem(self, problem_id: str) -> Optional[Problem]:
        doc = await self.problems.find_one({"_id": problem_id})
        return from_document(Problem, doc) if doc else None

    async def complete_session(
        self, session_id: str, code: str, end_time: datetime, late: bool
    ) -> bool:
        """Compare-and-set completion: only applies while ``end_time`` is still null.

        Returns False when another submission already completed the session.
        """
        result = await self.sessions.update_one(
            {"_id": session_id, "end_time": None},
            {"$set": {
                "end_time": end_time,
                "submitted_code": code,
                "status": SessionStatus.COMPLETED.value,
                "late": late,
            }},
        )
        return result.modified_count == 1

    async def add_integrity_event(self, event: IntegrityEvent) -> IntegrityEvent:
        doc = to_document(event)
        await self.integrity_events.insert_one(doc)
        return from_document(IntegrityEvent, doc)

    async def list_integrity_events(self, session_id: str) -> List[IntegrityEvent]:
        cursor = self.integrity_events.find({"session_id": session_id}).sort("timestamp", 1)
        return [from_document(IntegrityEvent, doc) async for doc in cursor]

    async def add_snapshot(self, snapshot: Snapshot) -> Snapshot:
        doc = to_document(snapshot)
        await self.snapshots.insert_one(doc)
        return from_document(Snapshot, doc)

    async def list_snapshots(self, session_id: str) -> List[Snapshot]:
        cursor = self.snapshots.find({"session_id": session_id}).sort("timestamp", 1)
        return [from_document(Snapshot, doc) async for doc in cursor]

    async def annotate_snapshot(self, snapshot_id: str, observation: Dict[str, Any]) -> None:
        await self.snapshots.update_one(
            {"_id": snapshot_id},
            {"$set": {"observation": observation}},
        )
