"""
Best-effort audit logging for lock, unlock and revalidation events
"""
from django.db import transaction
from .models import AuditLog
import logging

logger = logging.getLogger(__name__)


def record_audit(action_type, entity_type=None, entity_id=None, user=None, details=None):
    """Write an audit row inside a savepoint; failures are logged, never raised"""
    try:
        with transaction.atomic():
            return AuditLog.objects.create(
                user=user,
                action_type=action_type,
                entity_type=entity_type,
                entity_id=entity_id,
                details=details or {},
            )
    except Exception as e:
        logger.error(f"[AUDIT] Failed to record {action_type} for {entity_type} {entity_id}: {str(e)}")
        return None
