"""
Tests for revalidation when content is added to launched courses
"""
from django.test import TestCase
from courses.models import Video
from .exceptions import Reason, RevalidationRequired
from .models import AuditLog, UnitProgress
from .services.progress_tracker import ProgressTracker
from .services.quiz_engine import QuizAttemptEngine
from .services.revalidation import RevalidationService
from .testing import ProgressionFixtures


class RevalidationTest(ProgressionFixtures, TestCase):

    def setUp(self):
        """Set up test data"""
        super().setUp()
        self.student = self.make_user('student')
        self.newcomer = self.make_user('student')
        self.course = self.make_course()
        self.unit1 = self.make_unit(self.course, 1, videos=2)
        self.unit2 = self.make_unit(self.course, 2, videos=2)
        self.launch(self.course)

        self.complete_content(self.student, self.unit1)
        self.unit2_first = self.videos(self.unit2)[0]
        self.watch(self.student, self.unit2_first)

    def add_video(self, title='Late addition', sequence_order=10):
        with self.captureOnCommitCallbacks(execute=True):
            return Video.objects.create(unit=self.unit1, title=title, duration=100, sequence_order=sequence_order)

    def unit1_entry(self, student=None):
        return UnitProgress.objects.get(unit=self.unit1, progress__student=student or self.student)

    def test_new_content_moves_completed_unit_to_needs_review(self):
        """Test that a student who completed the unit must review the new video"""
        video = self.add_video()

        entry = self.unit1_entry()
        self.assertEqual(entry.status, 'needs-review')
        self.assertEqual(entry.pending_review_items, [str(video.id)])
        self.assertTrue(AuditLog.objects.filter(action_type='UNIT_NEEDS_REVIEW').exists())

        progress = ProgressTracker.get_progress(self.student, self.course)
        self.assertIn(str(video.id), progress['unlocked_items'])
        self.assertNotIn(str(self.unit2_first.id), progress['unlocked_items'])

    def test_next_unit_blocked_until_review_consumed(self):
        """Test that later units stay closed until the new video is completed"""
        video = self.add_video()
        second = self.videos(self.unit2)[1]

        with self.assertRaises(RevalidationRequired) as ctx:
            self.watch(self.student, second)
        self.assertEqual(ctx.exception.reason, Reason.REVALIDATION_REQUIRED)
        self.assertEqual(ctx.exception.details['pending_items'], [str(video.id)])

        status = ProgressTracker.get_progression_status(self.student, self.course)
        self.assertEqual(status['blocked_units'][0]['reason'], Reason.REVALIDATION_REQUIRED)

        progress = self.watch(self.student, video)
        self.assertEqual(self.unit1_entry().status, 'completed')
        self.assertEqual(self.unit1_entry().pending_review_items, [])
        self.assertIn(str(self.unit2_first.id), progress['unlocked_items'])
        self.assertIn(str(second.id), progress['unlocked_items'])

    def test_students_who_had_not_completed_are_unaffected(self):
        """Test that in-progress students simply see the new item in order"""
        first = self.videos(self.unit1)[0]
        self.watch(self.newcomer, first)

        self.add_video()

        self.assertEqual(self.unit1_entry(self.newcomer).status, 'in-progress')

    def test_unlaunched_course_is_not_revalidated(self):
        """Test that edits before launch only refresh the order"""
        course = self.make_course('Draft course')
        unit = self.make_unit(course, 1, videos=1)
        self.complete_content(self.student, unit)

        Video.objects.create(unit=unit, title='Draft addition', duration=100, sequence_order=5)

        entry = UnitProgress.objects.get(unit=unit, progress__student=self.student)
        self.assertNotEqual(entry.status, 'needs-review')
        summary = RevalidationService.handle_content_added(unit)
        self.assertFalse(summary['revalidated'])

    def test_review_blocks_next_unit_quiz(self):
        """Test that the next unit's quiz reports the unit under review"""
        self.make_pool(self.unit2, questions=3)
        self.add_video()

        availability = QuizAttemptEngine.get_availability(self.student, self.unit2)
        self.assertEqual(availability['reason'], Reason.PREVIOUS_UNITS_INCOMPLETE)

    def test_review_marks_own_quiz_content_incomplete(self):
        """Test that the reviewed unit's quiz needs the new content first"""
        self.make_pool(self.unit1, questions=3)
        self.add_video()

        availability = QuizAttemptEngine.get_availability(self.student, self.unit1)
        self.assertEqual(availability['reason'], Reason.CONTENT_INCOMPLETE)

    def test_revalidation_runs_after_commit(self):
        """Test that students are flagged only once the new content has committed"""
        with self.captureOnCommitCallbacks(execute=False) as callbacks:
            Video.objects.create(unit=self.unit1, title='Late addition', duration=100, sequence_order=10)

        self.assertEqual(self.unit1_entry().status, 'completed')
        self.assertEqual(len(callbacks), 1)

        callbacks[0]()
        self.assertEqual(self.unit1_entry().status, 'needs-review')

    def test_second_addition_extends_pending_review(self):
        """Test that content added to a unit already under review must also be consumed"""
        first = self.add_video('First late addition', 10)
        second = self.add_video('Second late addition', 11)

        entry = self.unit1_entry()
        self.assertEqual(entry.status, 'needs-review')
        self.assertEqual(entry.pending_review_items, [str(first.id), str(second.id)])
        self.assertEqual(AuditLog.objects.filter(action_type='UNIT_NEEDS_REVIEW').count(), 2)

        self.watch(self.student, first)
        entry = self.unit1_entry()
        self.assertEqual(entry.status, 'needs-review')
        self.assertEqual(entry.pending_review_items, [str(second.id)])

        with self.assertRaises(RevalidationRequired) as ctx:
            self.watch(self.student, self.videos(self.unit2)[1])
        self.assertEqual(ctx.exception.details['pending_items'], [str(second.id)])

        status = ProgressTracker.get_progression_status(self.student, self.course)
        self.assertEqual(status['blocked_units'][0]['reason'], Reason.REVALIDATION_REQUIRED)

        progress = self.watch(self.student, second)
        self.assertEqual(self.unit1_entry().status, 'completed')
        self.assertIn(str(self.videos(self.unit2)[1].id), progress['unlocked_items'])
