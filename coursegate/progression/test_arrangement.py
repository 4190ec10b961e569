"""
Tests for effective order resolution and the arrangement lifecycle
"""
import uuid
from django.test import TestCase
from courses.models import Course, Document, Video
from .exceptions import PreconditionFailed, Reason
from .services.arrangement import ArrangementResolver, ArrangementWorkflow
from .services.progress_tracker import ProgressTracker
from .testing import ProgressionFixtures


class ArrangementResolverTest(ProgressionFixtures, TestCase):

    def setUp(self):
        """Set up test data"""
        super().setUp()
        self.coordinator = self.make_user('coordinator')
        self.admin = self.make_user('admin')
        self.course = self.make_course()
        self.unit1 = self.make_unit(self.course, 1, videos=2, documents=1)
        self.unit2 = self.make_unit(self.course, 2, videos=1)
        self.v1, self.v2 = self.videos(self.unit1)
        self.doc = self.documents(self.unit1)[0]
        self.v3 = self.videos(self.unit2)[0]

    def ids(self, order):
        return [item.item_id for item in order.items]

    def approved_arrangement(self, items):
        arrangement = ArrangementWorkflow.create_arrangement(self.course, self.coordinator, items=items)
        ArrangementWorkflow.submit(arrangement, self.coordinator)
        return ArrangementWorkflow.approve(arrangement, self.admin)

    def reversed_unit1(self):
        return [
            {'content_type': 'document', 'content_id': self.doc.id},
            {'content_type': 'video', 'content_id': self.v2.id},
            {'content_type': 'video', 'content_id': self.v1.id},
            {'content_type': 'video', 'content_id': self.v3.id},
        ]

    def test_catalog_order_puts_videos_before_documents(self):
        """Test the raw catalog order used before any arrangement"""
        order = ArrangementResolver.resolve_effective_order(self.course)

        self.assertEqual(order.source, 'catalog')
        self.assertEqual(self.ids(order), [str(self.v1.id), str(self.v2.id), str(self.doc.id), str(self.v3.id)])
        self.assertEqual(order.first_item().item_id, str(self.v1.id))

    def test_arrangement_ignored_until_launch(self):
        """Test that an approved arrangement is authoritative only for launched courses"""
        self.approved_arrangement(self.reversed_unit1())

        self.assertEqual(ArrangementResolver.resolve_effective_order(self.course).source, 'catalog')

        self.launch(self.course)
        order = ArrangementResolver.resolve_effective_order(self.course)
        self.assertEqual(order.source, 'arrangement')
        self.assertEqual(order.version, 1)
        self.assertEqual(self.ids(order), [str(self.doc.id), str(self.v2.id), str(self.v1.id), str(self.v3.id)])

    def test_latest_approved_version_wins(self):
        """Test that a newer approval replaces the previous arrangement"""
        self.launch(self.course)
        self.approved_arrangement(self.reversed_unit1())
        second = self.approved_arrangement([
            {'content_type': 'video', 'content_id': self.v2.id},
            {'content_type': 'video', 'content_id': self.v1.id},
            {'content_type': 'document', 'content_id': self.doc.id},
            {'content_type': 'video', 'content_id': self.v3.id},
        ])

        self.assertEqual(second.version, 2)
        order = ArrangementResolver.resolve_effective_order(self.course)
        self.assertEqual(order.version, 2)
        self.assertEqual(self.ids(order)[0], str(self.v2.id))

    def test_deleted_content_is_skipped_and_new_content_appended(self):
        """Test that the arrangement tolerates catalog changes after approval"""
        self.launch(self.course)
        self.approved_arrangement(self.reversed_unit1())

        self.v2.delete()
        late = Document.objects.create(unit=self.unit1, title='Late notes', sequence_order=0)

        order = ArrangementResolver.resolve_effective_order(self.course)
        unit1 = order.get_unit(self.unit1.id)
        self.assertEqual(unit1.item_ids, [str(self.doc.id), str(self.v1.id), str(late.id)])

    def test_item_can_move_between_units(self):
        """Test that an arrangement may place content in another unit"""
        self.launch(self.course)
        self.approved_arrangement([
            {'content_type': 'video', 'content_id': self.v1.id},
            {'content_type': 'video', 'content_id': self.v2.id},
            {'content_type': 'video', 'content_id': self.v3.id, 'unit_id': self.unit1.id},
            {'content_type': 'document', 'content_id': self.doc.id, 'unit_id': self.unit2.id},
        ])

        order = ArrangementResolver.resolve_effective_order(self.course)
        self.assertEqual(order.get_unit(self.unit1.id).item_ids, [str(self.v1.id), str(self.v2.id), str(self.v3.id)])
        self.assertEqual(order.get_unit(self.unit2.id).item_ids, [str(self.doc.id)])

    def test_resolution_is_cached_until_invalidated(self):
        """Test that the effective order is served from the scoped store"""
        first = ArrangementResolver.resolve_effective_order(self.course)
        Video.objects.filter(id=self.v2.id).update(sequence_order=-5)

        self.assertEqual(ArrangementResolver.resolve_effective_order(self.course).token, first.token)

        ArrangementResolver.invalidate(self.course.id)
        self.assertNotEqual(ArrangementResolver.resolve_effective_order(self.course).token, first.token)

    def test_cached_order_is_not_trusted_after_revision_changes(self):
        """Test that a catalog change committed elsewhere bypasses the cached order"""
        first = ArrangementResolver.resolve_effective_order(self.course)
        Video.objects.filter(id=self.v2.id).update(sequence_order=-5)
        Course.objects.filter(id=self.course.id).update(order_revision=uuid.uuid4())

        order = ArrangementResolver.resolve_effective_order(self.course)
        self.assertNotEqual(order.token, first.token)
        self.assertEqual(self.ids(order)[0], str(self.v2.id))

    def test_content_save_moves_course_to_new_revision(self):
        """Test that saving content replaces the stored content revision"""
        before = ArrangementResolver.content_revision(self.course.id)
        self.v1.title = 'Renamed'
        self.v1.save()
        self.assertNotEqual(ArrangementResolver.content_revision(self.course.id), before)

    def test_progress_reconciles_against_new_arrangement(self):
        """Test that approval of a new order re-derives unlocks for existing students"""
        student = self.make_user('student')
        self.launch(self.course)
        self.watch(student, self.v1)

        self.approved_arrangement(self.reversed_unit1())

        progress = ProgressTracker.get_progress(student, self.course)
        self.assertTrue(progress['arrangement_version'].startswith('arrangement-v1:'))
        self.assertEqual(
            progress['unlocked_items'],
            [str(self.doc.id), str(self.v1.id)],
        )


class ArrangementWorkflowTest(ProgressionFixtures, TestCase):

    def setUp(self):
        """Set up test data"""
        super().setUp()
        self.coordinator = self.make_user('coordinator')
        self.course = self.make_course()
        self.unit = self.make_unit(self.course, 1, videos=2)

    def test_new_arrangement_snapshots_current_order(self):
        """Test that a draft starts from the effective order"""
        arrangement = ArrangementWorkflow.create_arrangement(self.course, self.coordinator)

        self.assertEqual(arrangement.status, 'open')
        self.assertEqual(arrangement.items.count(), 2)
        self.assertEqual(
            [str(item.content_id) for item in arrangement.items.all()],
            [str(v.id) for v in self.videos(self.unit)],
        )

    def test_approve_requires_submission(self):
        """Test that only submitted arrangements can be approved or rejected"""
        arrangement = ArrangementWorkflow.create_arrangement(self.course, self.coordinator)

        with self.assertRaises(PreconditionFailed) as ctx:
            ArrangementWorkflow.approve(arrangement, self.coordinator)
        self.assertEqual(ctx.exception.reason, Reason.INVALID_ARRANGEMENT_STATE)

        with self.assertRaises(PreconditionFailed):
            ArrangementWorkflow.reject(arrangement, self.coordinator, reason='No')

    def test_rejected_arrangement_can_be_reworked(self):
        """Test the reject, edit and resubmit cycle"""
        arrangement = ArrangementWorkflow.create_arrangement(self.course, self.coordinator)
        ArrangementWorkflow.submit(arrangement, self.coordinator)
        ArrangementWorkflow.reject(arrangement, self.coordinator, reason='Wrong order')
        self.assertEqual(arrangement.rejection_reason, 'Wrong order')

        first, second = self.videos(self.unit)
        ArrangementWorkflow.replace_items(arrangement, [
            {'content_type': 'video', 'content_id': second.id},
            {'content_type': 'video', 'content_id': first.id},
        ])
        self.assertEqual(arrangement.status, 'open')

        ArrangementWorkflow.submit(arrangement, self.coordinator)
        approved = ArrangementWorkflow.approve(arrangement, self.coordinator, comments='ok')
        self.assertEqual(approved.status, 'approved')
        self.assertEqual(approved.version, 1)

    def test_invalid_items_are_rejected(self):
        """Test that unknown or duplicated content cannot be arranged"""
        other_course = self.make_course('Other')
        foreign = self.make_unit(other_course, 1, videos=1)
        first = self.videos(self.unit)[0]

        with self.assertRaises(PreconditionFailed) as ctx:
            ArrangementWorkflow.create_arrangement(self.course, self.coordinator, items=[
                {'content_type': 'video', 'content_id': self.videos(foreign)[0].id},
            ])
        self.assertEqual(ctx.exception.reason, Reason.INVALID_ARRANGEMENT_ITEMS)

        with self.assertRaises(PreconditionFailed):
            ArrangementWorkflow.create_arrangement(self.course, self.coordinator, items=[
                {'content_type': 'video', 'content_id': first.id},
                {'content_type': 'video', 'content_id': first.id},
            ])

    def test_empty_arrangement_cannot_be_submitted(self):
        """Test that an arrangement needs items before submission"""
        arrangement = ArrangementWorkflow.create_arrangement(self.course, self.coordinator, items=[])

        with self.assertRaises(PreconditionFailed) as ctx:
            ArrangementWorkflow.submit(arrangement, self.coordinator)
        self.assertEqual(ctx.exception.reason, Reason.INVALID_ARRANGEMENT_ITEMS)

    def test_launch_is_idempotent(self):
        """Test that launching twice keeps the first launch time"""
        ArrangementWorkflow.launch_course(self.course)
        launched_at = self.course.launched_at
        ArrangementWorkflow.launch_course(self.course)

        self.assertTrue(self.course.is_launched)
        self.assertEqual(self.course.launched_at, launched_at)
