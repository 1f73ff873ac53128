"""Audit log sink (action_history).

Append-only: records are added to the caller's session and committed with the
primary write they describe. The read path filters by subject, voided flag and
time range.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy.orm import Session

from residuals.models.db import ActionHistory


def record_action(
    session: Session,
    *,
    action_type: str,
    entity_type: str,
    entity_id: Any,
    description: str,
    entity_name: Optional[str] = None,
    previous_data: Optional[dict[str, Any]] = None,
    new_data: Optional[dict[str, Any]] = None,
    request_id: Optional[str] = None,
) -> ActionHistory:
    row = ActionHistory(
        action_type=action_type,
        entity_type=entity_type,
        entity_id=None if entity_id is None else str(entity_id),
        entity_name=entity_name,
        description=description,
        previous_data=previous_data,
        new_data=new_data,
        is_undone=False,
        request_id=request_id,
    )
    session.add(row)
    return row


def query_actions(
    session: Session,
    *,
    entity_types: Optional[Sequence[str]] = None,
    entity_id: Optional[str] = None,
    include_undone: bool = False,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None,
) -> list[ActionHistory]:
    query = session.query(ActionHistory)
    if entity_types:
        query = query.filter(ActionHistory.entity_type.in_(list(entity_types)))
    if entity_id is not None:
        query = query.filter(ActionHistory.entity_id == str(entity_id))
    if not include_undone:
        query = query.filter(ActionHistory.is_undone.is_(False))
    if since is not None:
        query = query.filter(ActionHistory.created_at >= since)
    if until is not None:
        query = query.filter(ActionHistory.created_at < until)
    return query.order_by(ActionHistory.created_at, ActionHistory.id).all()


__all__ = ["record_action", "query_actions"]
