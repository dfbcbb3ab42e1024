from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_audit_logger
from app.models.audit_log import AuditLog


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: lambda v: str(v),
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
        },
    )


def _diff_values(old: Any, new: Any, prefix: str = "") -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    if isinstance(old, dict) and isinstance(new, dict):
        keys = set(old.keys()) | set(new.keys())
        for key in keys:
            path = f"{prefix}.{key}" if prefix else str(key)
            changes.update(_diff_values(old.get(key), new.get(key), path))
        return changes
    if old != new:
        changes[prefix or "value"] = {"from": old, "to": new}
    return changes


def record_audit_log(
    db: AsyncSession,
    *,
    actor_id,
    action: str,
    entity_type: str,
    entity_id: str,
    old_value: Any | None = None,
    new_value: Any | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditLog:
    serialized_old = serialize_for_audit(old_value) if old_value is not None else None
    serialized_new = serialize_for_audit(new_value) if new_value is not None else None
    activity_metadata = serialize_for_audit(metadata or {})
    if serialized_old is not None or serialized_new is not None:
        changes = _diff_values(serialized_old or {}, serialized_new or {})
        if changes:
            activity_metadata["changes"] = changes
    entry = AuditLog(
        user_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        old_values=serialized_old,
        new_values=serialized_new,
        activity_metadata=activity_metadata,
    )
    db.add(entry)
    get_audit_logger().info(
        "%s %s/%s",
        action,
        entity_type,
        entity_id,
        extra={"step": "audit"},
    )
    return entry


def record_status_change(
    db: AsyncSession,
    *,
    actor_id,
    application_id,
    old_status: str | None,
    new_status: str,
    carrier_slug: str | None = None,
    reason: str | None = None,
) -> AuditLog:
    metadata: dict[str, Any] = {"carrier": carrier_slug}
    if reason:
        metadata["reason"] = reason
    return record_audit_log(
        db,
        actor_id=actor_id,
        action="application.status_changed",
        entity_type="application",
        entity_id=str(application_id),
        old_value={"status": old_status},
        new_value={"status": new_status},
        metadata=metadata,
    )
