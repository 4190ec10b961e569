"""
Tests for quiz locks, multi-tier unlock grants and security violation holds
"""
from django.test import TestCase
from .exceptions import ConflictError, NotAuthorizedError, NotFoundError, PreconditionFailed, Reason
from .models import AuditLog, QuizLock, UnitProgress, UnlockGrant
from .services.lock_authority import LockAuthority, classify_severity, filter_violations
from .services.quiz_engine import QuizAttemptEngine
from .testing import ProgressionFixtures


class SeverityClassificationTest(TestCase):

    def test_tab_switch_severity_scales_with_count(self):
        """Test that tab switches escalate from LOW to HIGH"""
        self.assertEqual(classify_severity('TAB_SWITCH', 2), 'LOW')
        self.assertEqual(classify_severity('TAB_SWITCH', 4), 'MEDIUM')
        self.assertEqual(classify_severity('TAB_SWITCH', 6), 'HIGH')

    def test_fixed_severities(self):
        """Test the fixed severity per violation type"""
        self.assertEqual(classify_severity('FULLSCREEN_EXIT'), 'MEDIUM')
        self.assertEqual(classify_severity('copy_paste_attempt'), 'HIGH')
        self.assertEqual(classify_severity('RIGHT_CLICK'), 'LOW')
        self.assertEqual(classify_severity('CLOCK_TAMPERING'), 'CRITICAL')
        self.assertEqual(classify_severity('SOMETHING_ELSE'), 'MEDIUM')

    def test_technical_noise_is_filtered(self):
        """Test that browser errors are not counted as violations"""
        kept = filter_violations([
            'TAB_SWITCH',
            {'type': 'FULLSCREEN_EXIT', 'details': 'Permissions check failed'},
        ])
        self.assertEqual(kept, [{'type': 'TAB_SWITCH'}])


class LockAuthorityTest(ProgressionFixtures, TestCase):

    def setUp(self):
        """Set up test data"""
        super().setUp()
        self.student = self.make_user('student')
        self.teacher = self.make_user('teacher')
        self.hod = self.make_user('hod')
        self.dean = self.make_user('dean')
        self.admin = self.make_user('admin')
        self.course = self.make_course()
        self.unit = self.make_unit(self.course, 1, videos=1)
        self.pool = self.make_pool(self.unit, questions=5)
        self.configure_quiz(self.course, number_of_questions=5, max_attempts=3, passing_percentage=70)
        self.complete_content(self.student, self.unit)

    def take_attempt(self, correct=0, telemetry=None):
        attempt = QuizAttemptEngine.generate_attempt(self.student, self.unit)
        return QuizAttemptEngine.submit_attempt(
            attempt['attempt_id'], self.student, self.answers_for(attempt, correct), telemetry=telemetry,
        )

    def exhaust(self):
        for _ in range(3):
            result = self.take_attempt()
        return result

    def grant(self, actor, tier=None, **kwargs):
        return LockAuthority.grant_unlock(self.student, self.pool, tier or actor.role.upper(), actor, **kwargs)

    def test_third_failure_locks_and_fourth_attempt_rejected(self):
        """Test that exhausting the base limit locks the quiz below passing score"""
        result = self.exhaust()

        self.assertEqual(result['remaining_attempts'], 0)
        self.assertTrue(result['lock_info']['is_binding'])
        lock = QuizLock.objects.get(student=self.student, quiz_pool=self.pool)
        self.assertTrue(lock.is_locked)
        self.assertEqual(lock.failure_reason, 'BELOW_PASSING_SCORE')
        self.assertEqual(len(lock.attempt_scores), 3)

        with self.assertRaises(PreconditionFailed) as ctx:
            QuizAttemptEngine.generate_attempt(self.student, self.unit)
        self.assertEqual(ctx.exception.reason, Reason.ATTEMPTS_EXHAUSTED)
        self.assertTrue(AuditLog.objects.filter(action_type='QUIZ_LOCKED').exists())

    def test_teacher_unlock_permits_fourth_attempt(self):
        """Test that one teacher grant raises the limit to four"""
        self.exhaust()
        self.grant(self.teacher, reason='Retake approved')

        availability = QuizAttemptEngine.get_availability(self.student, self.unit)
        self.assertTrue(availability['available'])
        self.assertEqual(availability['attempt_limit'], 4)

        attempt = QuizAttemptEngine.generate_attempt(self.student, self.unit)
        self.assertEqual(attempt['attempt_number'], 4)
        lock = QuizLock.objects.get(student=self.student, quiz_pool=self.pool)
        self.assertFalse(lock.is_locked)
        self.assertEqual(lock.teacher_unlock_count, 1)

        grant = UnlockGrant.objects.get(lock=lock)
        self.assertEqual(grant.tier, 'TEACHER')
        self.assertEqual(grant.granted_by, self.teacher)
        self.assertEqual(grant.attempt_limit, 4)

    def test_lock_reengages_after_granted_attempt_fails(self):
        """Test that failing the granted attempt exhausts the raised limit"""
        self.exhaust()
        self.grant(self.teacher)
        result = self.take_attempt()

        self.assertEqual(result['attempts_taken'], 4)
        self.assertEqual(result['attempt_limit'], 4)
        self.assertTrue(result['lock_info']['is_binding'])

    def test_mixed_tier_grants_add_up(self):
        """Test that each grant adds one attempt regardless of tier"""
        self.exhaust()
        self.grant(self.teacher)
        self.grant(self.dean)
        self.grant(self.admin)

        self.assertEqual(LockAuthority.effective_limit(self.student, self.pool, LockAuthority.get_lock(self.student, self.pool)), 6)

    def test_authorization_level_escalates_with_quota(self):
        """Test that teacher grants escalate the required level to HOD and then DEAN"""
        self.exhaust()
        for _ in range(3):
            lock = self.grant(self.teacher)
        self.assertEqual(lock.unlock_authorization_level, 'HOD')

        with self.assertRaises(NotAuthorizedError) as ctx:
            self.grant(self.teacher)
        self.assertEqual(ctx.exception.reason, 'AUTHORIZATION_LEVEL')

        self.grant(self.hod)
        lock = self.grant(self.hod)
        self.assertEqual(lock.unlock_authorization_level, 'DEAN')
        lock = self.grant(self.dean)
        self.assertEqual(lock.unlock_authorization_level, 'ADMIN')
        lock = self.grant(self.admin)
        lock = self.grant(self.admin)
        self.assertEqual(lock.unlock_authorization_level, 'ADMIN')
        self.assertEqual(lock.total_unlock_grants, 8)

    def test_role_must_match_tier(self):
        """Test that an actor cannot grant on behalf of another tier"""
        self.exhaust()
        with self.assertRaises(NotAuthorizedError):
            self.grant(self.teacher, tier='HOD')
        with self.assertRaises(NotAuthorizedError):
            self.grant(self.student, tier='TEACHER')
        with self.assertRaises(NotAuthorizedError):
            self.grant(self.teacher, tier='PRINCIPAL')

    def test_grant_without_lock_record(self):
        """Test that granting before any failure reports a missing lock"""
        with self.assertRaises(NotFoundError):
            self.grant(self.teacher)

    def test_stale_grant_is_rejected(self):
        """Test that a grant based on an outdated grant count conflicts"""
        self.exhaust()
        self.grant(self.teacher, expected_grants=0)

        with self.assertRaises(ConflictError) as ctx:
            self.grant(self.teacher, expected_grants=0)
        self.assertEqual(ctx.exception.reason, 'STALE_UNLOCK_GRANT')
        self.assertEqual(UnlockGrant.objects.count(), 1)

    def test_extra_attempts_raise_limit(self):
        """Test that administrative extra attempts count toward the limit"""
        self.exhaust()
        UnitProgress.objects.filter(unit=self.unit, progress__student=self.student).update(extra_attempts=1)

        availability = QuizAttemptEngine.get_availability(self.student, self.unit)
        self.assertTrue(availability['available'])
        self.assertEqual(availability['attempt_limit'], 4)

    def test_violation_threshold_locks_immediately(self):
        """Test that three violations in one failed attempt lock before attempts run out"""
        result = self.take_attempt(telemetry={'tab_switch_count': 3})

        self.assertEqual(result['attempts_taken'], 1)
        lock = QuizLock.objects.get(student=self.student, quiz_pool=self.pool)
        self.assertTrue(lock.violation_hold)
        self.assertEqual(lock.failure_reason, 'SECURITY_VIOLATION')

        availability = QuizAttemptEngine.get_availability(self.student, self.unit)
        self.assertEqual(availability['reason'], Reason.QUIZ_LOCKED)
        self.assertTrue(availability['is_locked'])

        self.grant(self.teacher)
        availability = QuizAttemptEngine.get_availability(self.student, self.unit)
        self.assertTrue(availability['available'])
        self.assertEqual(availability['remaining_attempts'], 3)

    def test_violations_on_passing_attempt_do_not_lock(self):
        """Test that a passing attempt is never locked for violations"""
        self.take_attempt(correct=5, telemetry={
            'security_violations': [{'type': 'TAB_SWITCH'}] * 4,
            'tab_switch_count': 4,
        })
        self.assertIsNone(LockAuthority.get_lock(self.student, self.pool))

    def test_exhaustion_with_violations_records_security_reason(self):
        """Test that the final failure carries the security reason when it had violations"""
        self.take_attempt()
        self.take_attempt()
        self.take_attempt(telemetry={'security_violations': [{'type': 'RIGHT_CLICK'}]})

        lock = QuizLock.objects.get(student=self.student, quiz_pool=self.pool)
        self.assertTrue(lock.is_locked)
        self.assertFalse(lock.violation_hold)
        self.assertEqual(lock.failure_reason, 'SECURITY_VIOLATION')
