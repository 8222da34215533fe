"""Approval step and approval requirement repositories."""

from typing import Any

from sqlalchemy import select, update

from cbahi.db.models.approval import ApprovalRequirementRow, ApprovalStepRow
from cbahi.models.enums import ApprovalStepStatus
from cbahi.repositories.base import BaseRepository


class ApprovalStepRepository(BaseRepository[ApprovalStepRow]):
    model = ApprovalStepRow
    pk_field = "step_id"

    async def list_for_round(self, request_id: str, chain_round: int) -> list[ApprovalStepRow]:
        """Steps of one chain round in approval order."""
        stmt = (
            select(ApprovalStepRow)
            .where(
                ApprovalStepRow.request_id == request_id,
                ApprovalStepRow.chain_round == chain_round,
            )
            .order_by(ApprovalStepRow.level_order)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_for_request(self, request_id: str) -> list[ApprovalStepRow]:
        stmt = (
            select(ApprovalStepRow)
            .where(ApprovalStepRow.request_id == request_id)
            .order_by(ApprovalStepRow.chain_round, ApprovalStepRow.level_order)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_pending_for_approver(self, approver_id: str) -> list[ApprovalStepRow]:
        stmt = (
            select(ApprovalStepRow)
            .where(
                ApprovalStepRow.approver_id == approver_id,
                ApprovalStepRow.status == ApprovalStepStatus.PENDING,
            )
            .order_by(ApprovalStepRow.created_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def transition(self, step_id: str, expected_status: str, **values: Any) -> bool:
        """Conditionally update a step; returns False if its status moved on.

        The WHERE clause on the prior status makes concurrent decisions on the
        same step single-winner.
        """
        stmt = (
            update(ApprovalStepRow)
            .where(
                ApprovalStepRow.step_id == step_id,
                ApprovalStepRow.status == expected_status,
            )
            .values(**values)
        )
        return await self._execute_update(stmt) == 1

    async def skip_pending(
        self,
        request_id: str,
        chain_round: int | None = None,
        exclude_step_id: str | None = None,
    ) -> int:
        """Mark still-pending steps skipped; returns the count."""
        stmt = update(ApprovalStepRow).where(
            ApprovalStepRow.request_id == request_id,
            ApprovalStepRow.status == ApprovalStepStatus.PENDING,
        )
        if chain_round is not None:
            stmt = stmt.where(ApprovalStepRow.chain_round == chain_round)
        if exclude_step_id is not None:
            stmt = stmt.where(ApprovalStepRow.step_id != exclude_step_id)
        return await self._execute_update(stmt.values(status=ApprovalStepStatus.SKIPPED))


class ApprovalRequirementRepository(BaseRepository[ApprovalRequirementRow]):
    model = ApprovalRequirementRow
    pk_field = "id"

    async def find(
        self, privilege_type: str, practitioner_type: str, same_specialty: bool
    ) -> ApprovalRequirementRow | None:
        stmt = select(ApprovalRequirementRow).where(
            ApprovalRequirementRow.privilege_type == privilege_type,
            ApprovalRequirementRow.practitioner_type == practitioner_type,
            ApprovalRequirementRow.same_specialty == same_specialty,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
