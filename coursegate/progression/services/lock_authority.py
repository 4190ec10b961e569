"""
Quiz Lock/Unlock Authority
Tracks failure history per (student, quiz pool) and multi-tier unlock grants.

A lock record is soft: it only blocks a student once completed attempts reach
base limit + extra attempts + tier grants, or while a security violation hold
is in place. Grants never clear ``is_locked`` directly; the lock lapses on the
next evaluation once attempts fall below the raised limit.
"""
from django.db import transaction
from django.utils import timezone
from ..audit import record_audit
from ..conf import progression_setting
from ..exceptions import ConflictError, NotAuthorizedError, NotFoundError
from ..models import QuizAttempt, QuizLock, UnitProgress, UnlockGrant
from .quiz_config import resolve_quiz_settings
import logging

logger = logging.getLogger(__name__)

TIER_ORDER = ['TEACHER', 'HOD', 'DEAN', 'ADMIN']

ROLE_TIERS = {
    'teacher': 'TEACHER',
    'hod': 'HOD',
    'dean': 'DEAN',
    'admin': 'ADMIN',
}

TECHNICAL_VIOLATION_MARKERS = [
    'fullscreen-error',
    'Permissions check failed',
    'browser compatibility',
]


def tier_rank(tier):
    return TIER_ORDER.index(tier)


def classify_severity(violation_type, count=1):
    """Severity used for audit records only; it never affects grading"""
    violation_type = (violation_type or '').upper()
    if violation_type == 'TAB_SWITCH':
        if count > 5:
            return 'HIGH'
        if count > 3:
            return 'MEDIUM'
        return 'LOW'
    if violation_type in ('FULLSCREEN_EXIT', 'KEYBOARD_SHORTCUT'):
        return 'MEDIUM'
    if violation_type in ('DEVELOPER_TOOLS', 'COPY_PASTE_ATTEMPT'):
        return 'HIGH'
    if violation_type in ('CONTEXT_MENU', 'RIGHT_CLICK'):
        return 'LOW'
    if violation_type in ('TIME_MANIPULATION', 'CLOCK_TAMPERING'):
        return 'CRITICAL'
    return 'MEDIUM'


def filter_violations(violations):
    """Drop browser noise that is not a student action"""
    kept = []
    for violation in violations or []:
        if isinstance(violation, str):
            violation = {'type': violation}
        text = ' '.join(str(value) for value in violation.values())
        if any(marker in text for marker in TECHNICAL_VIOLATION_MARKERS):
            continue
        kept.append(violation)
    return kept


class LockAuthority:
    """Service owning quiz lock records"""

    @staticmethod
    def get_lock(student, quiz_pool):
        return QuizLock.objects.filter(student=student, quiz_pool=quiz_pool).first()

    @staticmethod
    def attempts_taken(student, quiz_pool):
        return QuizAttempt.objects.filter(
            student=student,
            quiz_pool=quiz_pool,
            completed_at__isnull=False,
        ).count()

    @staticmethod
    def attempt_limit(base_limit, extra_attempts=0, lock=None):
        grants = lock.total_unlock_grants if lock is not None else 0
        return base_limit + (extra_attempts or 0) + grants

    @staticmethod
    def extra_attempts(student, unit_id):
        """Administrative extra attempts recorded on the student's unit progress"""
        extra = UnitProgress.objects.filter(
            progress__student=student,
            unit_id=unit_id,
        ).values_list('extra_attempts', flat=True).first()
        return extra or 0

    @staticmethod
    def effective_limit(student, quiz_pool, lock=None):
        quiz_settings = resolve_quiz_settings(student, quiz_pool.unit)
        return LockAuthority.attempt_limit(
            quiz_settings.max_attempts,
            LockAuthority.extra_attempts(student, quiz_pool.unit_id),
            lock,
        )

    @staticmethod
    def is_binding(lock, attempts_taken, limit):
        """A lock blocks only when attempts are exhausted or a violation hold is active"""
        if lock is None or not lock.is_locked:
            return False
        return lock.violation_hold or attempts_taken >= limit

    @staticmethod
    def lock_info(lock, attempts_taken, limit):
        if lock is None:
            return None
        return {
            'is_locked': lock.is_locked,
            'is_binding': LockAuthority.is_binding(lock, attempts_taken, limit),
            'failure_reason': lock.failure_reason,
            'violation_hold': lock.violation_hold,
            'failed_score': lock.failed_score,
            'passing_score': lock.passing_score,
            'lock_timestamp': lock.lock_timestamp.isoformat() if lock.lock_timestamp else None,
            'unlock_authorization_level': lock.unlock_authorization_level,
            'unlock_counts': {
                'teacher': lock.teacher_unlock_count,
                'hod': lock.hod_unlock_count,
                'dean': lock.dean_unlock_count,
                'admin': lock.admin_unlock_count,
            },
            'total_unlock_grants': lock.total_unlock_grants,
        }

    @staticmethod
    def refresh(lock, attempts_taken, limit):
        """Clear a lock whose attempts are no longer exhausted. Returns True when cleared."""
        if lock is None or not lock.is_locked or lock.violation_hold:
            return False
        if attempts_taken >= limit:
            return False

        lock.is_locked = False
        lock.last_unlocked_at = timezone.now()
        lock.save(update_fields=['is_locked', 'last_unlocked_at', 'updated_at'])
        logger.info(
            f"[LOCK] Lock {lock.id} lapsed for student {lock.student_id}: "
            f"{attempts_taken} attempts taken, limit {limit}"
        )
        record_audit('QUIZ_LOCK_CLEARED', 'quiz_lock', lock.id, details={
            'attempts_taken': attempts_taken,
            'attempt_limit': limit,
        })
        return True

    @staticmethod
    def record_failed_attempt(attempt, base_limit, extra_attempts=0, violations=None):
        """
        Evaluate the lock after a failing submission. Must run inside the
        submission transaction.
        """
        violations = violations or []
        lock, created = QuizLock.objects.select_for_update().get_or_create(
            student=attempt.student,
            quiz_pool=attempt.quiz_pool,
            defaults={'course': attempt.course},
        )

        lock.attempt_scores = lock.attempt_scores + [{
            'attempt_id': str(attempt.id),
            'attempt_number': attempt.attempt_number,
            'percentage': attempt.percentage,
            'passed': attempt.passed,
            'at': (attempt.completed_at or timezone.now()).isoformat(),
        }]

        taken = LockAuthority.attempts_taken(attempt.student, attempt.quiz_pool)
        limit = LockAuthority.attempt_limit(base_limit, extra_attempts, lock)
        violation_count = max(len(violations), attempt.tab_switch_count or 0)
        threshold = progression_setting('SECURITY_VIOLATION_LOCK_THRESHOLD')

        if violations or attempt.tab_switch_count:
            lock.security_violation_details = lock.security_violation_details + [{
                'attempt_id': str(attempt.id),
                'violation_count': violation_count,
                'tab_switch_count': attempt.tab_switch_count,
                'types': sorted({str(v.get('type', 'UNKNOWN')) for v in violations}),
            }]

        engaged = None
        if violation_count >= threshold:
            engaged = 'SECURITY_VIOLATION'
            lock.violation_hold = True
        elif taken >= limit:
            engaged = 'SECURITY_VIOLATION' if violations else 'BELOW_PASSING_SCORE'

        if engaged:
            lock.is_locked = True
            lock.failure_reason = engaged
            lock.failed_score = attempt.percentage
            lock.passing_score = attempt.passing_percentage
            lock.lock_timestamp = timezone.now()

        lock.save()

        if engaged:
            logger.warning(
                f"[LOCK] Quiz pool {attempt.quiz_pool_id} locked for student {attempt.student_id}: "
                f"{engaged} ({taken}/{limit} attempts, {violation_count} violations)"
            )
            record_audit('QUIZ_LOCKED', 'quiz_lock', lock.id, user=attempt.student, details={
                'reason': engaged,
                'attempt_id': str(attempt.id),
                'attempts_taken': taken,
                'attempt_limit': limit,
                'violation_count': violation_count,
            })
        return lock

    @staticmethod
    def grant_unlock(student, quiz_pool, tier, actor, reason='', expected_grants=None):
        """
        Grant one extra attempt from ``tier``. The actor's role must match the
        tier and the tier must be at or above the lock's required level.
        """
        tier = (tier or '').upper()
        if tier not in TIER_ORDER:
            raise NotAuthorizedError(f"Unknown unlock tier '{tier}'")

        actor_tier = ROLE_TIERS.get(getattr(actor, 'role', None))
        if actor_tier != tier:
            raise NotAuthorizedError(
                f"Role '{getattr(actor, 'role', None)}' cannot grant {tier} unlocks",
                details={'tier': tier},
            )

        with transaction.atomic():
            lock = QuizLock.objects.select_for_update().filter(student=student, quiz_pool=quiz_pool).first()
            if lock is None:
                raise NotFoundError(f"No lock record for student {student.id} on quiz pool {quiz_pool.id}")

            if expected_grants is not None and int(expected_grants) != lock.total_unlock_grants:
                raise ConflictError(
                    'Lock was changed by another grant',
                    reason='STALE_UNLOCK_GRANT',
                    details={'expected_grants': int(expected_grants), 'actual_grants': lock.total_unlock_grants},
                )

            required = lock.unlock_authorization_level
            if tier_rank(tier) < tier_rank(required):
                raise NotAuthorizedError(
                    f"{required} authorization required to grant further unlocks",
                    reason='AUTHORIZATION_LEVEL',
                    details={'required_level': required, 'tier': tier},
                )

            field = f"{tier.lower()}_unlock_count"
            setattr(lock, field, getattr(lock, field) + 1)
            lock.violation_hold = False
            lock.unlock_authorization_level = LockAuthority._required_level(lock)
            lock.save()

            taken = LockAuthority.attempts_taken(student, quiz_pool)
            limit = LockAuthority.effective_limit(student, quiz_pool, lock)
            UnlockGrant.objects.create(
                lock=lock,
                tier=tier,
                granted_by=actor,
                reason=reason or '',
                attempts_taken=taken,
                attempt_limit=limit,
            )

        logger.info(
            f"[UNLOCK] {tier} grant by {actor.id} for student {student.id} on quiz pool {quiz_pool.id} "
            f"(total grants {lock.total_unlock_grants}, next level {lock.unlock_authorization_level})"
        )
        record_audit('QUIZ_UNLOCK_GRANTED', 'quiz_lock', lock.id, user=actor, details={
            'tier': tier,
            'student_id': str(student.id),
            'total_unlock_grants': lock.total_unlock_grants,
            'unlock_authorization_level': lock.unlock_authorization_level,
            'reason': reason or '',
        })
        return lock

    @staticmethod
    def _required_level(lock):
        """Lowest tier at or above the current level whose quota is not used up"""
        quotas = progression_setting('UNLOCK_TIER_QUOTAS')
        start = tier_rank(lock.unlock_authorization_level)
        for tier in TIER_ORDER[start:]:
            quota = quotas.get(tier)
            if quota is None or lock.unlock_count_for(tier) < quota:
                return tier
        return TIER_ORDER[-1]
