"""MongoDB Client - Connection, collections and index definitions"""
from typing import Any, Dict, List, Optional, Tuple, Union

from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

_client: Optional[MongoClient] = None
_database: Optional[Database] = None

IndexKeys = Union[str, List[Tuple[str, int]]]

# collection -> [(keys, create_index options)]
INDEXES: Dict[str, List[Tuple[IndexKeys, Dict[str, Any]]]] = {
    "workflows": [
        ("workflow_id", {"unique": True}),
        ("code", {"unique": True}),
        ([("record_type", ASCENDING), ("is_default", ASCENDING)], {}),
        ("deleted_at", {}),
    ],
    "workflow_states": [
        ("state_id", {"unique": True}),
        ([("workflow_id", ASCENDING), ("sort_order", ASCENDING)], {}),
        ("state_type", {}),
    ],
    "workflow_transitions": [
        ("transition_id", {"unique": True}),
        ([("workflow_id", ASCENDING), ("from_state_id", ASCENDING)], {}),
    ],
    "incidents": [
        ("incident_id", {"unique": True}),
        ("incident_number", {"unique": True}),
        ([("workflow_id", ASCENDING), ("current_state_id", ASCENDING)], {}),
        ("assignee_id", {}),
        ("assignee_ids", {}),
        ([("sla_breached", ASCENDING), ("sla_deadline", ASCENDING)], {}),
        ([("created_at", DESCENDING)], {}),
    ],
    "transition_history": [
        ("history_id", {"unique": True}),
        ([("incident_id", ASCENDING), ("transitioned_at", DESCENDING)], {}),
    ],
    "incident_comments": [
        ("comment_id", {"unique": True}),
        ([("incident_id", ASCENDING), ("created_at", ASCENDING)], {}),
    ],
    "incident_attachments": [
        ("attachment_id", {"unique": True}),
        ("incident_id", {}),
    ],
    "incident_feedback": [
        ("feedback_id", {"unique": True}),
        ("incident_id", {}),
    ],
    "incident_revisions": [
        ("revision_id", {"unique": True}),
        # Backstop against duplicate revision numbers
        ([("incident_id", ASCENDING), ("revision_number", ASCENDING)], {"unique": True}),
    ],
    "users": [
        ("user_id", {"unique": True}),
        ("role_ids", {}),
        ("role_codes", {}),
    ],
    "notifications": [
        ("notification_id", {"unique": True}),
        ([("recipient_user_id", ASCENDING), ("is_read", ASCENDING)], {}),
    ],
    "email_outbox": [
        ("notification_id", {"unique": True}),
        ([("status", ASCENDING), ("created_at", ASCENDING)], {}),
    ],
}


def get_client() -> MongoClient:
    """Get or create the shared client; the first call pings the server"""
    global _client
    if _client is None:
        client = MongoClient(
            settings.mongo_uri,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
            tz_aware=True,
        )
        try:
            client.admin.command("ping")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            client.close()
            raise
        logger.info(f"Connected to MongoDB database {settings.mongo_db}")
        _client = client
    return _client


def get_database() -> Database:
    global _database
    if _database is None:
        _database = get_client()[settings.mongo_db]
    return _database


def get_collection(name: str) -> Collection:
    """Get a collection from the application database"""
    return get_database()[name]


def close_connection() -> None:
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def create_indexes() -> None:
    """Create every index in INDEXES; existing indexes are left as they are"""
    db = get_database()
    for collection, indexes in INDEXES.items():
        for keys, options in indexes:
            db[collection].create_index(keys, **options)
    logger.info(f"MongoDB indexes ensured for {len(INDEXES)} collections")


def health_check() -> Dict[str, Any]:
    """Ping the server; never raises"""
    try:
        get_client().admin.command("ping")
        return {"status": "healthy", "database": settings.mongo_db}
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {"status": "unhealthy", "database": settings.mongo_db, "error": str(e)}
