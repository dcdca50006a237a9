from motor.motor_asyncio import AsyncIOMotorClient  # type: ignore
from pymongo import MongoClient  # type: ignore

from .config import MONGODB_URL, DATABASE_NAME


# Async client for FastAPI
client = AsyncIOMotorClient(MONGODB_URL, tz_aware=True)
database = client[DATABASE_NAME]

# Sync client for command-line tooling (seeding)
sync_client = MongoClient(MONGODB_URL, tz_aware=True)
sync_database = sync_client[DATABASE_NAME]

# Collections
problems_collection = database.problems
sessions_collection = database.sessions
integrity_events_collection = database.integrity_events
snapshots_collection = database.snapshots
