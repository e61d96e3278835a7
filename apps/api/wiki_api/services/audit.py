from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from wiki_api.models.audit import AuditEvent

# Never persisted, even if a caller passes them along.
REDACTED_KEYS = frozenset({"password", "client_secret", "token", "access_token", "code"})


def record_event(
    session: Session,
    event_type: str,
    *,
    workspace_id: UUID,
    actor_user_id: UUID | None = None,
    **data: object,
) -> AuditEvent:
    event = AuditEvent(
        workspace_id=workspace_id,
        actor_user_id=actor_user_id,
        event_type=event_type,
        event_data={k: v for k, v in data.items() if k not in REDACTED_KEYS},
    )
    session.add(event)
    session.flush()
    return event
