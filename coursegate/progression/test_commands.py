"""
Tests for the progression management commands
"""
import json
import os
import tempfile
from io import StringIO
from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import TestCase
from .models import StudentProgress, VideoWatch
from .services.progress_tracker import ProgressTracker
from .testing import ProgressionFixtures


class BackfillVideoCompletionCommandTest(ProgressionFixtures, TestCase):

    def setUp(self):
        """Set up test data"""
        super().setUp()
        self.student = self.make_user('student')
        self.course = self.make_course()
        self.unit = self.make_unit(self.course, 1, videos=2)
        self.v1, self.v2 = self.videos(self.unit)

    def run_backfill(self, records, *args):
        handle, path = tempfile.mkstemp(suffix='.json')
        with os.fdopen(handle, 'w') as export:
            json.dump(records, export)
        self.addCleanup(os.remove, path)
        out = StringIO()
        call_command('backfill_video_completion', path, *args, stdout=out)
        return out.getvalue()

    def test_imports_completed_records(self):
        """Test that completed legacy records set the completed flag"""
        output = self.run_backfill([
            {'student_id': str(self.student.id), 'video_id': str(self.v1.id), 'time_spent': 300, 'completed': True},
            {'student_id': str(self.student.id), 'video_id': str(self.v2.id), 'completed': False},
        ])

        self.assertIn('1 imported, 1 skipped', output)
        self.assertTrue(VideoWatch.objects.get(video=self.v1).completed)
        self.assertFalse(VideoWatch.objects.filter(video=self.v2).exists())

    def test_dry_run_changes_nothing(self):
        """Test that dry runs only validate"""
        self.run_backfill([
            {'student_id': str(self.student.id), 'video_id': str(self.v1.id), 'completed': True},
        ], '--dry-run')
        self.assertFalse(VideoWatch.objects.exists())

    def test_rejects_non_list_export(self):
        """Test that a malformed export fails the command"""
        with self.assertRaises(CommandError):
            self.run_backfill({'student_id': str(self.student.id)})


class ReconcileProgressCommandTest(ProgressionFixtures, TestCase):

    def setUp(self):
        """Set up test data"""
        super().setUp()
        self.student = self.make_user('student')
        self.course = self.make_course()
        self.unit = self.make_unit(self.course, 1, videos=2)
        self.v1, self.v2 = self.videos(self.unit)

    def test_pending_records_are_reconciled(self):
        """Test that deferred propagation is applied by the command"""
        self.watch(self.student, self.v1)
        StudentProgress.objects.filter(student=self.student).update(
            unlocked_items=[str(self.v1.id)], propagation_pending=True,
        )

        out = StringIO()
        call_command('reconcile_progress', '--course', str(self.course.id), stdout=out)

        record = StudentProgress.objects.get(student=self.student)
        self.assertFalse(record.propagation_pending)
        self.assertEqual(record.unlocked_items, [str(self.v1.id), str(self.v2.id)])
        self.assertIn('Reconciled 1 of 1', out.getvalue())

    def test_current_records_are_left_alone(self):
        """Test that up to date records are skipped unless forced"""
        ProgressTracker.get_progress(self.student, self.course)

        out = StringIO()
        call_command('reconcile_progress', stdout=out)
        self.assertIn('Reconciled 0 of 1', out.getvalue())

        out = StringIO()
        call_command('reconcile_progress', '--force', stdout=out)
        self.assertIn('Reconciled 1 of 1', out.getvalue())
