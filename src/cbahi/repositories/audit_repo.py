"""System settings repository."""

from cbahi.db.models.audit import SystemSettingsRow
from cbahi.repositories.base import BaseRepository

DEFAULT_SETTINGS_ID = "default"


class SystemSettingsRepository(BaseRepository[SystemSettingsRow]):
    model = SystemSettingsRow
    pk_field = "id"

    async def get_default(self) -> SystemSettingsRow | None:
        return await self.get(DEFAULT_SETTINGS_ID)

    async def ensure_default(self) -> tuple[SystemSettingsRow, bool]:
        """Return the settings row, creating it with defaults if missing."""
        existing = await self.get_default()
        if existing:
            return existing, False
        row = await self.create(id=DEFAULT_SETTINGS_ID, escalation_enabled=True)
        return row, True
