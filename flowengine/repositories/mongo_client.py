"""MongoDB Client - Connection and Collection Management"""
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel
from pymongo import MongoClient as PyMongoClient
from pymongo.database import Database
from pymongo.collection import Collection
from pymongo import ASCENDING
from pymongo.errors import ConnectionFailure, PyMongoError

from ..config.settings import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

# Global client instance
_client: Optional[PyMongoClient] = None
_database: Optional[Database] = None


def get_client() -> PyMongoClient:
    """Get or create MongoDB client"""
    global _client
    if _client is None:
        logger.info(f"Connecting to MongoDB: {settings.mongo_uri}")
        _client = PyMongoClient(
            settings.mongo_uri,
            tz_aware=True,
            serverSelectionTimeoutMS=5000,
            connectTimeoutMS=5000,
            socketTimeoutMS=30000,
        )
        # Test connection
        try:
            _client.admin.command("ping")
            logger.info("MongoDB connection successful")
        except ConnectionFailure as e:
            logger.error(f"MongoDB connection failed: {e}")
            raise
    return _client


def get_database() -> Database:
    """Get the application database"""
    global _database
    if _database is None:
        client = get_client()
        _database = client[settings.mongo_db]
        logger.info(f"Using database: {settings.mongo_db}")
    return _database


def get_collection(name: str) -> Collection:
    """Get a collection from the database"""
    db = get_database()
    return db[name]


def close_connection() -> None:
    """Close MongoDB connection"""
    global _client, _database
    if _client is not None:
        _client.close()
        _client = None
        _database = None
        logger.info("MongoDB connection closed")


def to_document(model: BaseModel) -> Dict[str, Any]:
    """
    Dump a model for storage

    JSON mode flattens enums; top-level datetimes are kept native so that
    deadline and resume_at range queries compare dates, not strings.
    """
    doc = model.model_dump(mode="json")
    for name, value in model:
        if isinstance(value, datetime):
            doc[name] = value
    return doc


def create_indexes() -> None:
    """Create all required indexes"""
    db = get_database()
    logger.info("Creating MongoDB indexes...")

    # Workflow definitions
    definitions = db["workflow_definitions"]
    definitions.create_index("workflow_id", unique=True)
    definitions.create_index([("trigger_type", ASCENDING), ("is_active", ASCENDING)])

    # Executions
    executions = db["workflow_executions"]
    executions.create_index("execution_id", unique=True)
    executions.create_index("workflow_id")
    executions.create_index([("status", ASCENDING), ("waiting_on", ASCENDING), ("resume_at", ASCENDING)])
    executions.create_index("locked_until")

    # Tasks - one pending task per (execution, node)
    tasks = db["workflow_tasks"]
    tasks.create_index("task_id", unique=True)
    tasks.create_index(
        [("execution_id", ASCENDING), ("node_id", ASCENDING)],
        unique=True,
        partialFilterExpression={"status": "pending"},
        name="one_pending_task_per_node"
    )
    tasks.create_index([("status", ASCENDING), ("sla_deadline", ASCENDING)])
    tasks.create_index("assignee_id")

    # History (append-only)
    history = db["workflow_history"]
    history.create_index("history_id", unique=True)
    history.create_index([("execution_id", ASCENDING), ("timestamp", ASCENDING)])
    history.create_index("correlation_id")

    # Notification outboxes
    db["notification_outbox"].create_index("notification_id", unique=True)
    db["notification_outbox"].create_index("execution_id")
    db["in_app_notifications"].create_index([("recipient", ASCENDING), ("is_read", ASCENDING)])

    logger.info("MongoDB indexes created successfully")


def health_check() -> Dict[str, Any]:
    """Check MongoDB health"""
    try:
        client = get_client()
        client.admin.command("ping")
        return {
            "status": "healthy",
            "database": settings.mongo_db,
            "connection": "ok"
        }
    except PyMongoError as e:
        logger.error(f"MongoDB health check failed: {e}")
        return {
            "status": "unhealthy",
            "database": settings.mongo_db,
            "error": str(e)
        }
