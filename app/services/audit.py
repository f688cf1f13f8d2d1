import logging
from sqlalchemy.exc import SQLAlchemyError
from app.extensions import db
from app.models import AuditLog

logger = logging.getLogger(__name__)


def record(action, entity_type, entity_id=None, user_id=None, actor_id=None,
           previous_status=None, new_status=None, details=None):
    """Write an audit entry inside a savepoint.

    A failed audit write is logged and dropped; it never fails the caller.
    """
    entry = AuditLog(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else None,
        user_id=user_id,
        actor_id=actor_id,
        previous_status=previous_status,
        new_status=new_status,
        details=details or {},
    )
    try:
        with db.session.begin_nested():
            db.session.add(entry)
    except SQLAlchemyError:
        logger.exception(f"Failed to write audit log entry '{action}' for {entity_type} {entity_id}")
        return None
    return entry


def list_entries(user_id=None, action=None, entity_type=None, entity_id=None, limit=100):
    query = AuditLog.query
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    if action:
        query = query.filter_by(action=action)
    if entity_type:
        query = query.filter_by(entity_type=entity_type)
    if entity_id is not None:
        query = query.filter_by(entity_id=str(entity_id))
    return query.order_by(AuditLog.created_at.desc()).limit(limit).all()
