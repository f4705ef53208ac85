"""Status-event audit helper shared by the lifecycle services."""

from sqlalchemy.ext.asyncio import AsyncSession

from models.status_event import StatusEvent


def record_event(
    db: AsyncSession,
    entity_type: str,
    entity_id,
    to_status: str,
    from_status: str | None = None,
    actor_id: str | None = None,
    notes: str | None = None,
) -> StatusEvent:
    """Stage an audit row in the caller's transaction. Does not commit."""
    event = StatusEvent(
        entity_type=entity_type,
        entity_id=str(entity_id),
        from_status=from_status,
        to_status=to_status,
        actor_id=actor_id,
        notes=notes,
    )
    db.add(event)
    return event
