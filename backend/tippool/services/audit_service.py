"""Audit logging service.

Writes audit log entries for state-changing engine operations. The entry is
added to the caller's session and only flushed, so it commits or rolls back
together with the operation it describes.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from tippool.core.rbac import RequestContext
from tippool.models.audit import AuditLogEntry

logger = logging.getLogger("audit")


def log_action(
    db: Session,
    ctx: RequestContext,
    action: str,
    entity_type: str,
    entity_id: Any = "",
    details: Optional[dict[str, Any]] = None,
) -> AuditLogEntry:
    """Add an audit log entry to the current transaction.

    Args:
        db: The session running the audited operation.
        ctx: Caller identity; supplies company and user.
        action: The action performed (create, update, delete, aggregate, allocate...)
        entity_type: Type of entity affected (department, category, pool...)
        entity_id: ID of the affected entity
        details: Additional JSON-serializable details
    """
    entry = AuditLogEntry(
        company_id=ctx.company_id,
        user_id=ctx.user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id else "",
        details=details or {},
        created_at=datetime.now(timezone.utc),
    )
    db.add(entry)
    db.flush()
    logger.debug(f"audit company={ctx.company_id} user={ctx.user_id} {action} {entity_type}:{entity_id}")
    return entry
