"""Privilege request repositories."""

from sqlalchemy import delete, select, update

from cbahi.db.models.request import PrivilegeRequestRow, RequestedPrivilegeRow
from cbahi.models.enums import ACTIVE_REQUEST_STATUSES, PrivilegeStatus
from cbahi.repositories.base import BaseRepository


class PrivilegeRequestRepository(BaseRepository[PrivilegeRequestRow]):
    model = PrivilegeRequestRow
    pk_field = "request_id"

    async def find_active_for_applicant(self, applicant_id: str) -> PrivilegeRequestRow | None:
        stmt = (
            select(PrivilegeRequestRow)
            .where(
                PrivilegeRequestRow.applicant_id == applicant_id,
                PrivilegeRequestRow.status.in_([s.value for s in ACTIVE_REQUEST_STATUSES]),
            )
            .limit(1)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


class RequestedPrivilegeRepository(BaseRepository[RequestedPrivilegeRow]):
    model = RequestedPrivilegeRow
    pk_field = "id"

    async def list_for_request(self, request_id: str) -> list[RequestedPrivilegeRow]:
        stmt = (
            select(RequestedPrivilegeRow)
            .where(RequestedPrivilegeRow.request_id == request_id)
            .order_by(RequestedPrivilegeRow.id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def replace(self, request_id: str, privilege_ids: list[str]) -> None:
        """Replace the requested privilege list of a request."""
        await self.session.execute(
            delete(RequestedPrivilegeRow)
            .where(RequestedPrivilegeRow.request_id == request_id)
            .execution_options(synchronize_session="fetch")
        )
        for privilege_id in dict.fromkeys(privilege_ids):
            self.session.add(RequestedPrivilegeRow(
                request_id=request_id,
                privilege_id=privilege_id,
                status=PrivilegeStatus.PENDING,
            ))
        await self.session.flush()

    async def apply_decision(
        self, request_id: str, privilege_id: str, status: str, comments: str | None = None
    ) -> int:
        stmt = (
            update(RequestedPrivilegeRow)
            .where(
                RequestedPrivilegeRow.request_id == request_id,
                RequestedPrivilegeRow.privilege_id == privilege_id,
            )
            .values(status=status, comments=comments)
        )
        return await self._execute_update(stmt)

    async def settle_pending(self, request_id: str, status: str) -> int:
        """Move every still-pending requested privilege to ``status``."""
        stmt = (
            update(RequestedPrivilegeRow)
            .where(
                RequestedPrivilegeRow.request_id == request_id,
                RequestedPrivilegeRow.status == PrivilegeStatus.PENDING,
            )
            .values(status=status)
        )
        return await self._execute_update(stmt)

    async def reset_decisions(self, request_id: str) -> int:
        """Put every requested privilege back to pending before a resubmission."""
        stmt = (
            update(RequestedPrivilegeRow)
            .where(RequestedPrivilegeRow.request_id == request_id)
            .values(status=PrivilegeStatus.PENDING, comments=None)
        )
        return await self._execute_update(stmt)
