"""User Repository - Read access to the user directory"""
from typing import Any, Dict, List, Optional
from pymongo.collection import Collection
from pymongo import ASCENDING

from .mongo_client import get_collection
from ..domain.models import User
from ..domain.errors import UserNotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class UserRepository:
    """Repository for user directory lookups"""

    def __init__(self):
        self._users: Collection = get_collection("users")

    def create_user(self, user: User) -> User:
        """Insert a user (used by seeding and tests)"""
        doc = user.model_dump()
        doc["_id"] = user.user_id
        self._users.insert_one(doc)
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        """Get user by ID"""
        doc = self._users.find_one({"user_id": user_id})
        if doc:
            doc.pop("_id", None)
            return User.model_validate(doc)
        return None

    find_by_id = get_user

    def get_user_or_raise(self, user_id: str) -> User:
        """Get user by ID or raise error"""
        user = self.get_user(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    def get_users(self, user_ids: List[str]) -> List[User]:
        """Get several users, in ascending user_id order"""
        if not user_ids:
            return []
        cursor = self._users.find({"user_id": {"$in": list(user_ids)}}).sort("user_id", ASCENDING)
        return [User.model_validate({k: v for k, v in doc.items() if k != "_id"}) for doc in cursor]

    def find_matching(
        self,
        role_id: Optional[str] = None,
        classification_id: Optional[str] = None,
        location_id: Optional[str] = None,
        department_id: Optional[str] = None,
        exclude_user_id: Optional[str] = None
    ) -> List[User]:
        """
        Active users satisfying every given criterion.

        Department matches either the primary department or any assigned
        department. Results are ordered by ascending user_id so the first
        match is stable across calls.
        """
        query: Dict[str, Any] = {"is_active": True}
        if exclude_user_id:
            query["user_id"] = {"$ne": exclude_user_id}
        if role_id:
            query["role_ids"] = role_id
        if classification_id:
            query["classification_ids"] = classification_id
        if location_id:
            query["location_ids"] = location_id
        if department_id:
            query["$or"] = [
                {"department_id": department_id},
                {"department_ids": department_id},
            ]

        cursor = self._users.find(query).sort("user_id", ASCENDING)
        return [User.model_validate({k: v for k, v in doc.items() if k != "_id"}) for doc in cursor]

    def find_by_role_code(self, role_code: str) -> List[User]:
        """Active users holding a role, addressed by role code"""
        cursor = self._users.find({"is_active": True, "role_codes": role_code}).sort("user_id", ASCENDING)
        return [User.model_validate({k: v for k, v in doc.items() if k != "_id"}) for doc in cursor]
