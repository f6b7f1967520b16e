"""Audit trail recording."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payrun_engine.models import AuditEvent


class AuditService:
    """Writes and reads audit_event rows within the caller's transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        entity_type: str,
        entity_id: UUID,
        action: str,
        details: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """Record an audit event."""
        event = AuditEvent(
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            details_json=details,
        )
        self.session.add(event)
        return event

    async def list_for_entity(self, entity_type: str, entity_id: UUID) -> list[AuditEvent]:
        result = await self.session.execute(
            select(AuditEvent)
            .where(AuditEvent.entity_type == entity_type, AuditEvent.entity_id == entity_id)
            .order_by(AuditEvent.created_at)
        )
        return list(result.scalars().all())
