"""
Content Integrity / Revalidation Service
When content lands in a unit of a launched course, students who had already
completed that unit are moved to needs-review until they consume the new
items. Later units stay blocked meanwhile.
"""
from django.db import transaction
from ..audit import record_audit
from ..models import StudentProgress, UnitProgress
from .arrangement import ArrangementResolver
from .progress_tracker import ProgressTracker
from .unlock_sequencer import pending_items
import logging

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = ('completed', 'needs-review')


class RevalidationService:

    @staticmethod
    def handle_content_added(unit, actor=None):
        """
        Flag completed unit progress entries for review. Returns a summary of
        the affected students.
        """
        course = unit.course
        ArrangementResolver.invalidate(course.id)

        summary = {
            'course_id': str(course.id),
            'unit_id': str(unit.id),
            'revalidated': False,
            'affected_students': [],
        }

        if not course.is_launched:
            logger.info(f"[REVALIDATE] Course {course.id} not launched; no revalidation for unit {unit.id}")
            return summary

        order = ArrangementResolver.resolve_effective_order(course)
        ordered_unit = order.get_unit(unit.id)
        if ordered_unit is None:
            return summary

        progress_ids = list(
            UnitProgress.objects.filter(unit=unit, status__in=REVIEWABLE_STATUSES)
            .values_list('progress_id', flat=True)
        )

        for progress_id in progress_ids:
            with transaction.atomic():
                progress = StudentProgress.objects.select_for_update().get(id=progress_id)
                entries = ProgressTracker.unit_entries(progress, order)
                entry = entries[ordered_unit.unit_id]
                if entry.status not in REVIEWABLE_STATUSES:
                    continue

                snapshot = ProgressTracker.build_snapshot(progress, entries)
                # Additions to a unit already under review extend its pending list
                delta = pending_items(ordered_unit, snapshot)
                new_items = [item_id for item_id in delta if item_id not in entry.pending_review_items]
                if not new_items:
                    continue

                entry.status = 'needs-review'
                entry.pending_review_items = delta
                entry.save(update_fields=['status', 'pending_review_items'])

                ProgressTracker.reconcile(progress, order, entries, force=True)

            summary['affected_students'].append(str(progress.student_id))
            record_audit('UNIT_NEEDS_REVIEW', 'unit_progress', entry.id, user=actor, details={
                'student_id': str(progress.student_id),
                'unit_id': str(unit.id),
                'new_items': new_items,
                'pending_items': delta,
            })

        summary['revalidated'] = True
        logger.info(
            f"[REVALIDATE] Unit {unit.id}: {len(summary['affected_students'])} student(s) moved to needs-review"
        )
        return summary
