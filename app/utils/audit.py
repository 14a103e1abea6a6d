"""
Audit trail for appointment transitions and account provisioning.
Entries are written after the primary change has committed, so a failed
audit write never undoes a transition.
"""
import json
import logging
from typing import List, Optional

from app.extensions import db
from app.models import AuditLog

logger = logging.getLogger(__name__)


def log_audit(
    entity_type: str,
    action: str,
    user_id: Optional[int] = None,
    entity_id=None,
    details: Optional[dict] = None,
) -> None:
    """Append and commit an audit entry. Failures are logged, not raised."""
    try:
        db.session.add(AuditLog(
            entity_type=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            action=action,
            user_id=user_id,
            details=json.dumps(details, default=str) if details else None,
        ))
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.warning("Audit entry %s %s/%s not written: %s", action, entity_type, entity_id, e)


def audit_history(entity_type: str, entity_id) -> List[AuditLog]:
    """Entries for one record, oldest first"""
    return (
        AuditLog.query.filter_by(entity_type=entity_type, entity_id=str(entity_id))
        .order_by(AuditLog.created_at.asc(), AuditLog.id.asc())
        .all()
    )
