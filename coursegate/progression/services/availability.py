"""
Quiz Availability Gate
One precondition evaluation shared by the read-only availability check and
the attempt generator, so the two can never disagree.
"""
from django.db import transaction
from courses.models import QuizPool
from ..exceptions import NotFoundError, PreconditionFailed, Reason
from .arrangement import ArrangementResolver
from .lock_authority import LockAuthority
from .progress_tracker import ProgressTracker
from .quiz_config import resolve_quiz_settings
from .unlock_sequencer import pending_items, unit_complete, unit_content_complete
import logging

logger = logging.getLogger(__name__)

MESSAGES = {
    Reason.NO_QUIZ: 'No quiz is available for this unit.',
    Reason.NO_APPROVED_QUESTIONS: 'The quiz for this unit has no approved questions yet.',
    Reason.PREVIOUS_UNITS_INCOMPLETE: 'Complete all previous units and pass their quizzes first.',
    Reason.CONTENT_INCOMPLETE: 'Complete all videos and documents in this unit first.',
    Reason.ALREADY_PASSED: 'You have already passed this quiz.',
    Reason.QUIZ_LOCKED: 'Quiz is locked due to security violations. Contact your teacher for unlock.',
    Reason.ATTEMPTS_EXHAUSTED: 'All attempts exhausted. Contact your teacher for unlock.',
}


class QuizAvailability:
    """Availability descriptor: allow/deny, first failing reason and attempt accounting"""

    def __init__(self, unit_id, available=False, reason=None, attempts_taken=0, attempt_limit=0,
                 lock=None, lock_info=None, quiz_pool=None, quiz_settings=None,
                 approved_question_count=0, details=None):
        self.unit_id = str(unit_id)
        self.available = available
        self.reason = reason
        self.attempts_taken = attempts_taken
        self.attempt_limit = attempt_limit
        self.lock = lock
        self.lock_info = lock_info
        self.quiz_pool = quiz_pool
        self.quiz_settings = quiz_settings
        self.approved_question_count = approved_question_count
        self.details = details or {}

    @property
    def remaining_attempts(self):
        return max(0, self.attempt_limit - self.attempts_taken)

    @property
    def message(self):
        if self.available:
            return 'Quiz is available.'
        return MESSAGES.get(self.reason, 'Quiz is not available.')

    def deny(self, reason, **details):
        self.available = False
        self.reason = reason
        self.details.update(details)
        return self

    def to_dict(self):
        return {
            'unit_id': self.unit_id,
            'available': self.available,
            'reason': self.reason,
            'message': self.message,
            'attempts_taken': self.attempts_taken,
            'attempt_limit': self.attempt_limit,
            'remaining_attempts': self.remaining_attempts,
            'is_locked': bool(self.lock_info and self.lock_info['is_binding']),
            'lock_info': self.lock_info,
            'quiz_pool_id': str(self.quiz_pool.id) if self.quiz_pool else None,
            'approved_question_count': self.approved_question_count,
            'quiz_settings': self.quiz_settings.to_dict() if self.quiz_settings else None,
            'details': self.details,
        }

    def raise_if_unavailable(self):
        if not self.available:
            raise PreconditionFailed(self.message, reason=self.reason, details=self.to_dict())
        return self


def evaluate_quiz_preconditions(student, unit, refresh_lock=False):
    """
    Evaluate in order, reporting the first failure:
    quiz with approved questions, previous units complete, unit content complete,
    not already passed, not locked, attempts remaining.

    ``refresh_lock`` lets the mutating caller clear a lapsed lock first.
    """
    course = unit.course
    order = ArrangementResolver.resolve_effective_order(course)
    ordered_unit = order.get_unit(unit.id)
    if ordered_unit is None:
        raise NotFoundError(f"Unit {unit.id} is not part of course {course.id}")

    with transaction.atomic():
        progress = ProgressTracker.lock_progress(student, course, order)
        entries = ProgressTracker.unit_entries(progress, order)
        ProgressTracker.reconcile(progress, order, entries)
        snapshot = ProgressTracker.build_snapshot(progress, entries)
    entry = entries[ordered_unit.unit_id]

    quiz_settings = resolve_quiz_settings(student, unit)
    result = QuizAvailability(unit.id, quiz_settings=quiz_settings)

    quiz_pool = QuizPool.objects.filter(unit=unit, is_active=True).first()
    if quiz_pool is None:
        return result.deny(Reason.NO_QUIZ)
    result.quiz_pool = quiz_pool

    result.approved_question_count = quiz_pool.approved_questions().count()
    if result.approved_question_count == 0:
        return result.deny(Reason.NO_APPROVED_QUESTIONS)

    lock = LockAuthority.get_lock(student, quiz_pool)
    taken = LockAuthority.attempts_taken(student, quiz_pool)
    limit = LockAuthority.attempt_limit(quiz_settings.max_attempts, entry.extra_attempts, lock)
    if refresh_lock:
        LockAuthority.refresh(lock, taken, limit)

    result.lock = lock
    result.attempts_taken = taken
    result.attempt_limit = limit
    result.lock_info = LockAuthority.lock_info(lock, taken, limit)

    unit_index = order.unit_index(unit.id)
    incomplete_previous = [u for u in order.units[:unit_index] if not unit_complete(u, snapshot)]
    if incomplete_previous:
        return result.deny(
            Reason.PREVIOUS_UNITS_INCOMPLETE,
            incomplete_units=[{'unit_id': u.unit_id, 'title': u.title} for u in incomplete_previous],
        )

    in_review = ordered_unit.unit_id in snapshot.review_units
    if in_review or not unit_content_complete(ordered_unit, snapshot):
        remaining = pending_items(ordered_unit, snapshot)
        return result.deny(
            Reason.CONTENT_INCOMPLETE,
            remaining_items=remaining,
            completed_items=len(ordered_unit.items) - len(remaining),
            total_items=len(ordered_unit.items),
            needs_review=in_review,
        )

    if entry.unit_quiz_passed:
        return result.deny(Reason.ALREADY_PASSED)

    if lock is not None and lock.is_locked and lock.violation_hold:
        return result.deny(Reason.QUIZ_LOCKED)

    if taken >= limit:
        return result.deny(Reason.ATTEMPTS_EXHAUSTED)

    result.available = True
    return result
