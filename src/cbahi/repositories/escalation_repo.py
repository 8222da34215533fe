"""Escalation repository."""

from datetime import datetime
from typing import Any

from sqlalchemy import select, update

from cbahi.db.models.escalation import EscalationRow
from cbahi.models.enums import EscalationStatus, EscalationTier
from cbahi.repositories.base import BaseRepository

_TIER_COLUMNS = {
    EscalationTier.REMINDER: ("level1_sent", "level1_sent_at"),
    EscalationTier.MANAGER: ("level2_sent", "level2_sent_at"),
    EscalationTier.HR: ("level3_sent", "level3_sent_at"),
}


class EscalationRepository(BaseRepository[EscalationRow]):
    model = EscalationRow
    pk_field = "escalation_id"

    async def list_for_request(self, request_id: str) -> list[EscalationRow]:
        stmt = (
            select(EscalationRow)
            .where(EscalationRow.request_id == request_id)
            .order_by(EscalationRow.received_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_active(self) -> list[EscalationRow]:
        stmt = (
            select(EscalationRow)
            .where(EscalationRow.status == EscalationStatus.ACTIVE)
            .order_by(EscalationRow.received_at)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def get_active_for_step(self, step_id: str) -> EscalationRow | None:
        stmt = select(EscalationRow).where(
            EscalationRow.step_id == step_id,
            EscalationRow.status == EscalationStatus.ACTIVE,
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def close_for_step(
        self, step_id: str, status: str, now: datetime, notes: str | None = None
    ) -> int:
        """Resolve or cancel the active escalation(s) of one step."""
        return await self._close(EscalationRow.step_id == step_id, status, now, notes)

    async def close_for_request(
        self, request_id: str, status: str, now: datetime, notes: str | None = None
    ) -> int:
        """Resolve or cancel every active escalation of a request."""
        return await self._close(EscalationRow.request_id == request_id, status, now, notes)

    async def close(
        self, escalation_id: str, status: str, now: datetime, notes: str | None = None
    ) -> int:
        return await self._close(EscalationRow.escalation_id == escalation_id, status, now, notes)

    async def _close(self, criterion, status: str, now: datetime, notes: str | None) -> int:
        values: dict[str, Any] = {"status": status, "resolved_at": now}
        if notes is not None:
            values["notes"] = notes
        stmt = (
            update(EscalationRow)
            .where(criterion, EscalationRow.status == EscalationStatus.ACTIVE)
            .values(**values)
        )
        return await self._execute_update(stmt)

    async def mark_tier_sent(
        self, escalation_id: str, tier: EscalationTier, now: datetime, **extra: Any
    ) -> bool:
        """Set a tier's sent flag if it is still unset and the row still active.

        Returns False when another writer got there first.
        """
        sent_col, sent_at_col = _TIER_COLUMNS[tier]
        stmt = (
            update(EscalationRow)
            .where(
                EscalationRow.escalation_id == escalation_id,
                EscalationRow.status == EscalationStatus.ACTIVE,
                getattr(EscalationRow, sent_col).is_(False),
            )
            .values({sent_col: True, sent_at_col: now, **extra})
        )
        return await self._execute_update(stmt) == 1
