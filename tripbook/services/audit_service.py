import uuid, json
import logging
from sqlalchemy.orm import Session
from tripbook.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


def log_audit(db: Session, actor_user_id: str, action: str, entity_type: str, entity_id: str,
              details: dict | None = None, source: str = "api"):
    """Record a business event in audit_logs (committed with the caller's transaction) and echo it to the log."""
    details = details or {}
    db.add(AuditLog(
        id=str(uuid.uuid4()),
        actor_user_id=actor_user_id or "system",
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        source=source,
        details_json=json.dumps(details, ensure_ascii=False, default=str),
    ))
    logger.info("%s %s=%s by %s (%s) %s", action, entity_type, entity_id, actor_user_id, source, details)
