"""
User directory service.
Resolves acting users and role membership for notification fan-out.
"""

from collections.abc import Iterable

from intake.db.helpers import fetch_all, fetch_one, with_db_retry
from intake.infrastructure.observability.logging import get_logger
from intake.models.domain.task_domain import User, UserRole

logger = get_logger(__name__)

_COLUMNS = "id, username, email, role, first_name, last_name, created_at, updated_at"


class UserDirectory:
    """Read-only view of the users table."""

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get_user(self, user_id: str) -> User | None:
        """
        Fetch a user by id.

        Args:
            user_id: User id (subject of the bearer token)

        Returns:
            User domain model, None if not found
        """
        row = await fetch_one(f"SELECT {_COLUMNS} FROM users WHERE id = %s", (user_id,))
        if not row:
            logger.info("User not found", user_id=user_id)
            return None
        return User.model_validate(row)

    @with_db_retry(max_retries=3, base_delay=0.1)
    async def get_user_ids_by_role(self, role: UserRole) -> list[str]:
        rows = await fetch_all(
            "SELECT id FROM users WHERE role = %s ORDER BY created_at", (role.value,)
        )
        return [row["id"] for row in rows]

    async def get_role_members(self, roles: Iterable[UserRole]) -> dict[UserRole, list[str]]:
        """Map each requested role to the ids of users holding it."""
        return {role: await self.get_user_ids_by_role(role) for role in roles}


# Global singleton instance
user_directory = UserDirectory()
