"""Directory Service - User and role lookup for task assignment"""
from typing import Any, Dict, Optional, Protocol
from pymongo.collection import Collection

from ..repositories.mongo_client import get_collection
from ..utils.logger import get_logger

logger = get_logger(__name__)


class DirectoryLookup(Protocol):
    """Resolves assignment targets to users"""

    def resolve_role_assignee(self, role: str, site_id: Optional[str] = None) -> Optional[str]:
        """User id holding the role (scoped to a site when given), or None"""

    def resolve_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """User record, or None when unknown or inactive"""


class DirectoryService:
    """
    MongoDB-backed directory

    users:       {user_id, email, display_name, phone, is_active}
    user_roles:  {user_id, role_id, role_name, site_id}
    """

    def __init__(self):
        self._users: Collection = get_collection("users")
        self._user_roles: Collection = get_collection("user_roles")

    def resolve_role_assignee(self, role: str, site_id: Optional[str] = None) -> Optional[str]:
        """
        Find a user holding a role

        The role may be given by id or by name. With a site id only
        assignments at that site are considered.
        """
        query: Dict[str, Any] = {"$or": [{"role_id": role}, {"role_name": role}]}
        if site_id is not None:
            query["site_id"] = site_id

        for assignment in self._user_roles.find(query).sort("user_id", 1):
            user = self.resolve_user(assignment["user_id"])
            if user is not None:
                return user["user_id"]

        logger.warning(f"No active user found for role '{role}' (site: {site_id})")
        return None

    def resolve_user(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Get an active user by ID"""
        doc = self._users.find_one({"user_id": user_id, "is_active": {"$ne": False}})
        if doc is None:
            return None
        doc.pop("_id", None)
        return doc
