"""Celery tasks for the assets app."""

from celery import shared_task


@shared_task
def write_audit_log(
    action: str,
    entity: str,
    entity_id: int,
    actor_id: int | None,
    payload: dict | None = None,
):
    """Persist one audit entry for a transfer workflow action."""
    from .models import AuditLog

    entry = AuditLog.objects.create(
        action=action,
        entity=entity,
        entity_id=entity_id,
        actor_id=actor_id,
        payload=payload or {},
    )
    return entry.pk
