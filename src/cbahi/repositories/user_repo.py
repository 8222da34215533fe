"""Repositories for users and the privilege catalog."""

from sqlalchemy import select

from cbahi.db.models.user import PrivilegeRow, UserRow
from cbahi.repositories.base import BaseRepository


class UserRepository(BaseRepository[UserRow]):
    model = UserRow
    pk_field = "user_id"

    async def first_active_with_role(
        self,
        role: str,
        department_id: str | None = None,
        exclude_user_id: str | None = None,
    ) -> UserRow | None:
        """Return the first active user holding ``role``.

        When ``department_id`` is given the lookup is scoped to that
        department; ``exclude_user_id`` skips one user (the applicant).
        Ordering is by user id so the pick is stable.
        """
        stmt = select(UserRow).where(
            UserRow.role == role,
            UserRow.is_active.is_(True),
        )
        if department_id is not None:
            stmt = stmt.where(UserRow.department_id == department_id)
        if exclude_user_id is not None:
            stmt = stmt.where(UserRow.user_id != exclude_user_id)
        stmt = stmt.order_by(UserRow.user_id).limit(1)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class PrivilegeRepository(BaseRepository[PrivilegeRow]):
    model = PrivilegeRow
    pk_field = "privilege_id"

    async def list_by_ids(self, privilege_ids: list[str]) -> list[PrivilegeRow]:
        if not privilege_ids:
            return []
        stmt = select(PrivilegeRow).where(PrivilegeRow.privilege_id.in_(privilege_ids))
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
