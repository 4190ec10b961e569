"""
Quiz Attempt Engine
Generates attempts from approved question pools, grades submissions exactly
once, records security telemetry and hands failures to the lock authority.
"""
from datetime import timedelta
from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone
from django.utils.module_loading import import_string
from ..conf import progression_setting
from ..exceptions import (
    AttemptAlreadySubmitted, ConflictError, NotAuthorizedError, NotFoundError,
    PreconditionFailed, Reason,
)
from ..models import QuizAttempt, QuizSecurityAudit
from .availability import evaluate_quiz_preconditions
from .lock_authority import LockAuthority, classify_severity, filter_violations
from .progress_tracker import ProgressTracker
from .quiz_config import resolve_quiz_settings
from .scoring import grade_questions, percentage
import random
import logging

logger = logging.getLogger(__name__)


class QuizAttemptEngine:
    """Service for quiz attempt generation, submission and results"""

    @staticmethod
    def get_availability(student, unit):
        return evaluate_quiz_preconditions(student, unit).to_dict()

    @staticmethod
    def generate_attempt(student, unit, destroy_incomplete=False, rng=None):
        """
        Draw the configured number of approved questions. An incomplete
        attempt is handed back unless ``destroy_incomplete`` is set.
        """
        with transaction.atomic():
            availability = evaluate_quiz_preconditions(student, unit, refresh_lock=True)
            if not availability.available:
                logger.info(f"[START_QUIZ] Student {student.id} denied quiz for unit {unit.id}: {availability.reason}")
            availability.raise_if_unavailable()

            quiz_pool = availability.quiz_pool
            quiz_settings = availability.quiz_settings

            existing = (
                QuizAttempt.objects.select_for_update()
                .filter(student=student, quiz_pool=quiz_pool, completed_at__isnull=True)
                .order_by('-started_at')
                .first()
            )
            if existing is not None and not destroy_incomplete:
                logger.info(f"[START_QUIZ] Reusing incomplete attempt {existing.id} for student {student.id}")
                return QuizAttemptEngine.describe_attempt(existing, reused=True)

            approved = list(quiz_pool.approved_questions())
            required = quiz_settings.number_of_questions
            if len(approved) < required:
                raise PreconditionFailed(
                    f"Not enough approved questions: {len(approved)} available, {required} required",
                    reason=Reason.INSUFFICIENT_APPROVED_QUESTIONS,
                    details={'available': len(approved), 'required': required},
                )

            if quiz_settings.shuffle_questions:
                chosen = (rng or random).sample(approved, required)
            else:
                chosen = approved[:required]

            if existing is not None:
                deleted, _ = QuizAttempt.objects.filter(
                    student=student, quiz_pool=quiz_pool, completed_at__isnull=True,
                ).delete()
                logger.info(f"[START_QUIZ] Destroyed {deleted} stale attempt(s) for student {student.id}")

            attempt = QuizAttempt.objects.create(
                student=student,
                course=unit.course,
                unit=unit,
                quiz_pool=quiz_pool,
                attempt_number=availability.attempts_taken + 1,
                questions=[QuizAttemptEngine._snapshot_question(q) for q in chosen],
                passing_percentage=quiz_settings.passing_percentage,
                time_limit_minutes=quiz_settings.time_limit_minutes,
            )

        logger.info(
            f"[START_QUIZ] Attempt {attempt.id} #{attempt.attempt_number} created for student {student.id} "
            f"with {len(chosen)} questions"
        )
        return QuizAttemptEngine.describe_attempt(attempt)

    @staticmethod
    def submit_attempt(attempt_id, student, answers=None, telemetry=None):
        """
        Grade an attempt once. Auto-submitted attempts with partial or no
        answers are graded the same way. A second submission raises
        AttemptAlreadySubmitted carrying the original result.
        """
        telemetry = telemetry or {}
        now = timezone.now()

        with transaction.atomic():
            attempt = QuizAttemptEngine._load_owned_attempt(attempt_id, student, for_update=True)
            if attempt.completed_at is not None:
                logger.warning(f"[SUBMIT_QUIZ] Duplicate submission for attempt {attempt.id}")
                raise AttemptAlreadySubmitted(QuizAttemptEngine.result_payload(attempt))

            score, max_score, graded = grade_questions(attempt.questions, answers)
            violations = filter_violations(telemetry.get('security_violations'))

            attempt.answers = graded
            attempt.score = score
            attempt.max_score = max_score
            attempt.percentage = percentage(score, max_score)
            attempt.passed = attempt.percentage >= attempt.passing_percentage
            attempt.security_violations = violations
            attempt.tab_switch_count = int(telemetry.get('tab_switch_count') or 0)
            attempt.is_auto_submit = bool(telemetry.get('is_auto_submit', False))
            attempt.time_spent = int(telemetry.get('time_spent') or (now - attempt.started_at).total_seconds())
            attempt.completed_at = now
            attempt.save()

            QuizAttemptEngine._record_security_audits(attempt, violations)
            progress = ProgressTracker.record_quiz_result(student, attempt)

            quiz_settings = resolve_quiz_settings(student, attempt.unit)
            extra = LockAuthority.extra_attempts(student, attempt.unit_id)
            if attempt.passed:
                lock = LockAuthority.get_lock(student, attempt.quiz_pool)
                course = attempt.course
                transaction.on_commit(lambda: QuizAttemptEngine._regenerate_certificate(student, course))
            else:
                lock = LockAuthority.record_failed_attempt(attempt, quiz_settings.max_attempts, extra, violations)

            taken = LockAuthority.attempts_taken(student, attempt.quiz_pool)
            limit = LockAuthority.attempt_limit(quiz_settings.max_attempts, extra, lock)

        logger.info(
            f"[SUBMIT_QUIZ] Attempt {attempt.id} graded {attempt.score}/{attempt.max_score} "
            f"({attempt.percentage}%, {'passed' if attempt.passed else 'failed'}, "
            f"auto_submit={attempt.is_auto_submit}, violations={len(violations)})"
        )

        result = QuizAttemptEngine.result_payload(attempt)
        result.update({
            'attempts_taken': taken,
            'attempt_limit': limit,
            'remaining_attempts': max(0, limit - taken),
            'lock_info': LockAuthority.lock_info(lock, taken, limit),
            'progress': progress,
        })
        return result

    @staticmethod
    def get_attempt(attempt_id, student):
        """Resume an incomplete attempt; correct answers are never included"""
        attempt = QuizAttemptEngine._load_owned_attempt(attempt_id, student)
        if attempt.completed_at is not None:
            raise ConflictError(
                'Quiz attempt has already been submitted',
                reason='ATTEMPT_ALREADY_SUBMITTED',
                details={'attempt_id': str(attempt.id)},
            )
        return QuizAttemptEngine.describe_attempt(attempt, reused=True)

    @staticmethod
    def get_results(attempt_id, student):
        attempt = QuizAttemptEngine._load_owned_attempt(attempt_id, student)
        if attempt.completed_at is None:
            raise PreconditionFailed(
                'Quiz attempt has not been submitted yet',
                reason=Reason.ATTEMPT_NOT_SUBMITTED,
                details={'attempt_id': str(attempt.id)},
            )

        graded = {row['question_id']: row for row in attempt.answers}
        questions = []
        for question in attempt.questions:
            row = graded.get(str(question['question_id']), {})
            questions.append({
                'question_id': str(question['question_id']),
                'text': question.get('text'),
                'options': question.get('options', []),
                'points': question.get('points', 1),
                'correct_option': question.get('correct_option'),
                'selected_option': row.get('selected_option'),
                'is_correct': row.get('is_correct', False),
            })

        result = QuizAttemptEngine.result_payload(attempt)
        result['questions'] = questions
        result['security_violations'] = attempt.security_violations
        return result

    @staticmethod
    def describe_attempt(attempt, reused=False):
        expires_at = attempt.started_at + timedelta(minutes=attempt.time_limit_minutes)
        return {
            'attempt_id': str(attempt.id),
            'unit_id': str(attempt.unit_id),
            'quiz_pool_id': str(attempt.quiz_pool_id),
            'attempt_number': attempt.attempt_number,
            'time_limit_minutes': attempt.time_limit_minutes,
            'passing_percentage': attempt.passing_percentage,
            'started_at': attempt.started_at.isoformat(),
            'expires_at': expires_at.isoformat(),
            'remaining_seconds': max(0, int((expires_at - timezone.now()).total_seconds())),
            'reused': reused,
            'questions': [
                {
                    'question_id': question['question_id'],
                    'text': question['text'],
                    'options': question['options'],
                    'points': question['points'],
                }
                for question in attempt.questions
            ],
        }

    @staticmethod
    def result_payload(attempt):
        """Result as recorded on the attempt; identical on every read"""
        return {
            'attempt_id': str(attempt.id),
            'unit_id': str(attempt.unit_id),
            'quiz_pool_id': str(attempt.quiz_pool_id),
            'attempt_number': attempt.attempt_number,
            'score': attempt.score,
            'max_score': attempt.max_score,
            'percentage': attempt.percentage,
            'passed': attempt.passed,
            'passing_percentage': attempt.passing_percentage,
            'correct_count': sum(1 for row in attempt.answers if row.get('is_correct')),
            'total_questions': len(attempt.questions),
            'is_auto_submit': attempt.is_auto_submit,
            'tab_switch_count': attempt.tab_switch_count,
            'security_violation_count': len(attempt.security_violations),
            'time_spent': attempt.time_spent,
            'completed_at': attempt.completed_at.isoformat() if attempt.completed_at else None,
        }

    @staticmethod
    def _snapshot_question(question):
        return {
            'question_id': str(question.id),
            'text': question.text,
            'options': list(question.options or []),
            'correct_option': question.correct_option,
            'points': question.points,
        }

    @staticmethod
    def _load_owned_attempt(attempt_id, student, for_update=False):
        queryset = QuizAttempt.objects.select_related('unit', 'course', 'quiz_pool')
        if for_update:
            queryset = queryset.select_for_update(of=('self',))
        try:
            attempt = queryset.get(id=attempt_id)
        except (QuizAttempt.DoesNotExist, ValidationError, ValueError):
            raise NotFoundError(f"Quiz attempt {attempt_id} not found")

        if attempt.student_id != student.id:
            logger.warning(f"[QUIZ_ACCESS] Student {student.id} denied access to attempt {attempt.id}")
            raise NotAuthorizedError('You do not have access to this quiz attempt')
        return attempt

    @staticmethod
    def _record_security_audits(attempt, violations):
        try:
            with transaction.atomic():
                action = 'AUTO_SUBMIT' if attempt.is_auto_submit else 'PENALTY'
                rows = []
                for violation in violations:
                    violation_type = str(violation.get('type', 'UNKNOWN')).upper()
                    rows.append(QuizSecurityAudit(
                        attempt=attempt,
                        student_id=attempt.student_id,
                        violation_type=violation_type,
                        severity=classify_severity(violation_type, attempt.tab_switch_count),
                        action_taken=action,
                        details=violation,
                    ))
                if attempt.tab_switch_count > 3:
                    rows.append(QuizSecurityAudit(
                        attempt=attempt,
                        student_id=attempt.student_id,
                        violation_type='TAB_SWITCH',
                        severity=classify_severity('TAB_SWITCH', attempt.tab_switch_count),
                        action_taken=action,
                        details={'count': attempt.tab_switch_count},
                    ))
                QuizSecurityAudit.objects.bulk_create(rows)
        except Exception as e:
            logger.error(f"[SECURITY_AUDIT] Failed to record audits for attempt {attempt.id}: {str(e)}")

    @staticmethod
    def _regenerate_certificate(student, course):
        try:
            regenerate = import_string(progression_setting('CERTIFICATE_REGENERATOR'))
            regenerate(student, course)
        except Exception as e:
            logger.error(f"[CERTIFICATE] Regeneration failed for student {student.id} course {course.id}: {str(e)}")
