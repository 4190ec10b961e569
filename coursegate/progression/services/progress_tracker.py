"""
Progress Tracker
Owns per-student course progress: video watch entries, document reads,
quiz results, unit statuses and the unlocked item set.

Every write locks the (student, course) progress row, records the event and
its unlock propagation in one transaction. If propagation cannot be computed
the event is still stored and the record is flagged for reconciliation on
the next read.
"""
from django.db import transaction
from django.utils import timezone
from ..conf import progression_setting
from ..exceptions import NotFoundError, PreconditionFailed, RevalidationRequired, Reason
from ..models import StudentProgress, UnitProgress, VideoWatch
from .arrangement import ArrangementResolver, quiz_item_id
from .scoring import percentage
from .unlock_sequencer import (
    ProgressSnapshot, derive_unlocked, entry_item, next_unlocks, open_units, pending_items,
    unit_complete, unit_content_complete,
)
import logging

logger = logging.getLogger(__name__)


class ProgressTracker:
    """Service for recording content interactions and keeping unlocks consistent"""

    # ------------------------------------------------------------------
    # Record access
    # ------------------------------------------------------------------

    @staticmethod
    def lock_progress(student, course, order):
        """
        Fetch the progress row for update, creating it lazily with the entry
        item of the first open unit unlocked. Must run inside transaction.atomic().
        """
        progress, created = StudentProgress.objects.select_for_update().get_or_create(
            student=student,
            course=course,
        )
        if created:
            first = entry_item(order, ProgressSnapshot())
            progress.unlocked_items = [first] if first else []
            progress.arrangement_version = order.token
            progress.last_activity = timezone.now()
            progress.save()
            entries = ProgressTracker.unit_entries(progress, order)
            ProgressTracker._refresh_unit_statuses(
                order, entries, ProgressTracker.build_snapshot(progress, entries)
            )
            logger.info(f"[PROGRESS] Created progress for student {student.id} in course {course.id}")
        return progress

    @staticmethod
    def unit_entries(progress, order):
        """Unit progress entries keyed by unit id, creating missing ones"""
        entries = {str(entry.unit_id): entry for entry in progress.units.all()}
        for unit in order.units:
            if unit.unit_id not in entries:
                entries[unit.unit_id] = UnitProgress.objects.create(progress=progress, unit_id=unit.unit_id)
        return entries

    @staticmethod
    def build_snapshot(progress, entries):
        completed_videos = VideoWatch.objects.filter(
            unit_progress__progress=progress,
            completed=True,
        ).values_list('video_id', flat=True)

        completed = {str(video_id) for video_id in completed_videos}
        completed |= {str(document_id) for document_id in progress.completed_documents}

        return ProgressSnapshot(
            completed=completed,
            passed_quiz_units=[unit_id for unit_id, entry in entries.items() if entry.unit_quiz_passed],
            review_units=[unit_id for unit_id, entry in entries.items() if entry.status == 'needs-review'],
        )

    # ------------------------------------------------------------------
    # Content interaction events
    # ------------------------------------------------------------------

    @staticmethod
    def is_video_complete(duration, time_spent, position, explicit_completed=False):
        """
        Explicit completion, or both watch time and playback position at or
        beyond the completion ratio of the video's duration
        """
        if explicit_completed:
            return True
        if not duration or duration <= 0:
            return False
        threshold = duration * progression_setting('VIDEO_COMPLETION_RATIO')
        return (time_spent or 0) >= threshold and (position or 0) >= threshold

    @staticmethod
    def record_video_progress(student, video, time_spent=0, position=0, explicit_completed=False):
        course = video.unit.course
        order = ArrangementResolver.resolve_effective_order(course)
        item_id = str(video.id)

        if not order.contains(item_id):
            raise NotFoundError(f"Video {video.id} is not part of course {course.id}")

        now = timezone.now()
        with transaction.atomic():
            progress = ProgressTracker.lock_progress(student, course, order)
            entries = ProgressTracker.unit_entries(progress, order)
            ProgressTracker.reconcile(progress, order, entries)
            ProgressTracker._ensure_accessible(progress, order, entries, item_id)

            entry = entries[order.unit_of(item_id).unit_id]
            watch = VideoWatch.objects.filter(unit_progress__progress=progress, video=video).first()
            if watch is None:
                watch = VideoWatch(unit_progress=entry, video=video)

            watch.time_spent = float(time_spent or 0)
            watch.last_position = float(position or 0)
            watch.last_watched_at = now

            newly_completed = False
            if not watch.completed and ProgressTracker.is_video_complete(
                video.duration, watch.time_spent, watch.last_position, explicit_completed
            ):
                watch.completed = True
                watch.completed_at = now
                newly_completed = True
            watch.save()

            progress.last_activity = now
            ProgressTracker._propagate(progress, order, entries, item_id if newly_completed else None)
            progress.save()

            if newly_completed:
                logger.info(f"[VIDEO_PROGRESS] Video {video.id} completed by student {student.id}")

            return ProgressTracker.summarize(progress, order, entries)

    @staticmethod
    def record_document_read(student, document):
        course = document.unit.course
        order = ArrangementResolver.resolve_effective_order(course)
        item_id = str(document.id)

        if not order.contains(item_id):
            raise NotFoundError(f"Document {document.id} is not part of course {course.id}")

        with transaction.atomic():
            progress = ProgressTracker.lock_progress(student, course, order)
            entries = ProgressTracker.unit_entries(progress, order)
            ProgressTracker.reconcile(progress, order, entries)
            ProgressTracker._ensure_accessible(progress, order, entries, item_id)

            newly_completed = item_id not in progress.completed_documents
            if newly_completed:
                progress.completed_documents = progress.completed_documents + [item_id]

            progress.last_activity = timezone.now()
            ProgressTracker._propagate(progress, order, entries, item_id if newly_completed else None)
            progress.save()

            if newly_completed:
                logger.info(f"[DOCUMENT_READ] Document {document.id} read by student {student.id}")

            return ProgressTracker.summarize(progress, order, entries)

    @staticmethod
    def record_quiz_result(student, attempt):
        """Store a graded attempt summary on the unit entry and propagate a pass"""
        course = attempt.course
        order = ArrangementResolver.resolve_effective_order(course)
        unit_id = str(attempt.unit_id)

        with transaction.atomic():
            progress = ProgressTracker.lock_progress(student, course, order)
            entries = ProgressTracker.unit_entries(progress, order)
            entry = entries.get(unit_id)
            if entry is None:
                raise NotFoundError(f"Unit {unit_id} is not part of course {course.id}")

            entry.quiz_attempts = entry.quiz_attempts + [{
                'attempt_id': str(attempt.id),
                'attempt_number': attempt.attempt_number,
                'score': attempt.score,
                'max_score': attempt.max_score,
                'percentage': attempt.percentage,
                'passed': attempt.passed,
                'is_auto_submit': attempt.is_auto_submit,
                'completed_at': attempt.completed_at.isoformat() if attempt.completed_at else None,
            }]
            entry.unit_quiz_completed = True
            if attempt.passed:
                entry.unit_quiz_passed = True
            entry.save()

            progress.last_activity = timezone.now()
            ProgressTracker._propagate(progress, order, entries, quiz_item_id(unit_id) if attempt.passed else None)
            progress.save()

            logger.info(
                f"[QUIZ_RESULT] Student {student.id} unit {unit_id}: "
                f"{attempt.percentage}% ({'passed' if attempt.passed else 'failed'})"
            )
            return ProgressTracker.summarize(progress, order, entries)

    @staticmethod
    def backfill_video_completion(student, video, time_spent=0):
        """Import a legacy completion signal as the monotonic completed flag"""
        course = video.unit.course
        order = ArrangementResolver.resolve_effective_order(course)
        unit = order.unit_of(video.id)
        if unit is None:
            return False

        with transaction.atomic():
            progress = ProgressTracker.lock_progress(student, course, order)
            entries = ProgressTracker.unit_entries(progress, order)
            watch = VideoWatch.objects.filter(unit_progress__progress=progress, video=video).first()
            if watch is None:
                watch = VideoWatch(unit_progress=entries[unit.unit_id], video=video)
            if watch.completed:
                return False

            watch.completed = True
            watch.completed_at = timezone.now()
            watch.time_spent = max(watch.time_spent, float(time_spent or 0))
            watch.save()
            ProgressTracker.reconcile(progress, order, entries, force=True)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    def get_progress(student, course):
        order = ArrangementResolver.resolve_effective_order(course)
        with transaction.atomic():
            progress = ProgressTracker.lock_progress(student, course, order)
            entries = ProgressTracker.unit_entries(progress, order)
            ProgressTracker.reconcile(progress, order, entries)
            return ProgressTracker.summarize(progress, order, entries)

    @staticmethod
    def get_progression_status(student, course):
        """Blocked units, the next available unit and the next item to work on"""
        order = ArrangementResolver.resolve_effective_order(course)
        with transaction.atomic():
            progress = ProgressTracker.lock_progress(student, course, order)
            entries = ProgressTracker.unit_entries(progress, order)
            ProgressTracker.reconcile(progress, order, entries)
            snapshot = ProgressTracker.build_snapshot(progress, entries)

        opened = open_units(order, snapshot)
        frontier = opened[-1] if opened else None
        frontier_complete = frontier is not None and unit_complete(frontier, snapshot)

        blocked_units = []
        if frontier is not None and not frontier_complete:
            blocking_reason = (
                Reason.REVALIDATION_REQUIRED
                if frontier.unit_id in snapshot.review_units
                else Reason.PREVIOUS_UNITS_INCOMPLETE
            )
            for unit in order.units[len(opened):]:
                blocked_units.append({
                    'unit_id': unit.unit_id,
                    'title': unit.title,
                    'reason': blocking_reason,
                    'blocked_by': frontier.unit_id,
                })

        next_available_unit = None
        if frontier is not None and not frontier_complete:
            next_available_unit = {
                'unit_id': frontier.unit_id,
                'title': frontier.title,
                'status': entries[frontier.unit_id].status,
                'quiz_eligible': frontier.has_quiz and unit_content_complete(frontier, snapshot)
                and frontier.unit_id not in snapshot.review_units,
            }

        next_item = None
        for item_id in progress.unlocked_items:
            if item_id not in snapshot.completed:
                next_item = order.item(item_id).to_dict()
                break

        status = ProgressTracker.summarize(progress, order, entries, snapshot)
        status.update({
            'blocked_units': blocked_units,
            'next_available_unit': next_available_unit,
            'next_item': next_item,
            'course_completed': bool(order.units) and all(unit_complete(u, snapshot) for u in order.units),
        })
        return status

    @staticmethod
    def summarize(progress, order, entries, snapshot=None):
        snapshot = snapshot or ProgressTracker.build_snapshot(progress, entries)
        return {
            'course_id': str(progress.course_id),
            'student_id': str(progress.student_id),
            'overall_progress': progress.overall_progress,
            'unlocked_items': list(progress.unlocked_items),
            'completed_videos': [i.item_id for i in order.items if i.content_type == 'video' and i.item_id in snapshot.completed],
            'completed_documents': order.sort_items(progress.completed_documents),
            'arrangement_version': progress.arrangement_version,
            'propagation_pending': progress.propagation_pending,
            'units': [
                {
                    'unit_id': unit.unit_id,
                    'title': unit.title,
                    'status': entries[unit.unit_id].status,
                    'unlocked': entries[unit.unit_id].unlocked,
                    'has_quiz': unit.has_quiz,
                    'quiz_passed': entries[unit.unit_id].unit_quiz_passed,
                    'pending_review_items': list(entries[unit.unit_id].pending_review_items),
                }
                for unit in order.units
            ],
        }

    # ------------------------------------------------------------------
    # Propagation and reconciliation
    # ------------------------------------------------------------------

    @staticmethod
    def reconcile(progress, order, entries=None, force=False):
        """
        Re-derive unit statuses and the unlocked set when the record was built
        against another effective order or has deferred propagation.
        Returns True when the record was rewritten.
        """
        if not force and progress.arrangement_version == order.token and not progress.propagation_pending:
            return False

        entries = entries if entries is not None else ProgressTracker.unit_entries(progress, order)
        snapshot = ProgressTracker.build_snapshot(progress, entries)
        ProgressTracker._refresh_unit_statuses(order, entries, snapshot)

        previous_version = progress.arrangement_version
        progress.unlocked_items = order.sort_items(derive_unlocked(order, snapshot))
        progress.overall_progress = ProgressTracker.compute_overall(order, snapshot)
        progress.arrangement_version = order.token
        progress.propagation_pending = False
        progress.save()

        logger.info(
            f"[RECONCILE] Progress {progress.id} reconciled "
            f"({previous_version or 'new'} -> {order.token})"
        )
        return True

    @staticmethod
    def compute_overall(order, snapshot):
        """Completed videos, documents and passed quizzes over the current total, capped at 100"""
        done = sum(1 for item in order.items if item.item_id in snapshot.completed)
        done += sum(1 for unit in order.quiz_units if unit.unit_id in snapshot.passed_quiz_units)
        return min(100, percentage(done, order.total_items))

    @staticmethod
    def _propagate(progress, order, entries, trigger):
        """Apply unlocks for ``trigger`` (None for a non-completing event) and refresh statuses"""
        previous_unlocked = list(progress.unlocked_items)
        try:
            with transaction.atomic():
                snapshot = ProgressTracker.build_snapshot(progress, entries)
                released = ProgressTracker._refresh_unit_statuses(order, entries, snapshot)

                unlocked = set(progress.unlocked_items)
                if trigger is not None:
                    unlocked |= next_unlocks(order, snapshot, trigger)
                if released or progress.propagation_pending:
                    unlocked |= derive_unlocked(order, snapshot)

                progress.unlocked_items = order.sort_items(unlocked)
                progress.overall_progress = ProgressTracker.compute_overall(order, snapshot)
                progress.propagation_pending = False

                new_items = set(progress.unlocked_items) - set(previous_unlocked)
                if new_items:
                    logger.info(f"[UNLOCK] Progress {progress.id} unlocked {sorted(new_items)}")
        except Exception as e:
            logger.exception(f"[UNLOCK] Propagation failed for progress {progress.id}, deferring: {str(e)}")
            progress.unlocked_items = previous_unlocked
            progress.propagation_pending = True

    @staticmethod
    def _refresh_unit_statuses(order, entries, snapshot):
        """
        Recompute unit lifecycle statuses. A needs-review unit only leaves
        that state once all of its pending items are completed.
        Returns ids of units released from review.
        """
        now = timezone.now()
        released = []

        for unit in order.units:
            entry = entries[unit.unit_id]
            if entry.status == 'needs-review':
                remaining = [
                    item_id for item_id in entry.pending_review_items
                    if item_id not in snapshot.completed and order.contains(item_id)
                ]
                # Review also covers unit content that arrived after it was flagged
                remaining += [item_id for item_id in pending_items(unit, snapshot) if item_id not in remaining]
                if remaining:
                    if remaining != entry.pending_review_items:
                        entry.pending_review_items = remaining
                        entry.save(update_fields=['pending_review_items'])
                    continue
                entry.pending_review_items = []
                entry.status = 'completed'
                snapshot.review_units.discard(unit.unit_id)
                released.append(unit.unit_id)
                logger.info(f"[REVALIDATE] Unit {unit.unit_id} review consumed for progress {entry.progress_id}")

        opened = {unit.unit_id for unit in open_units(order, snapshot)}

        for unit in order.units:
            entry = entries[unit.unit_id]
            if entry.status == 'needs-review':
                continue

            before = (entry.status, entry.unlocked, entry.unlocked_at, entry.completed_at, list(entry.pending_review_items))

            if unit_complete(unit, snapshot):
                entry.status = 'completed'
                entry.unlocked = True
                entry.completed_at = entry.completed_at or now
            elif unit.unit_id in opened:
                entry.status = 'in-progress'
                entry.unlocked = True
            else:
                entry.status = 'locked'
                entry.unlocked = False

            if entry.unlocked and entry.unlocked_at is None:
                entry.unlocked_at = now

            after = (entry.status, entry.unlocked, entry.unlocked_at, entry.completed_at, list(entry.pending_review_items))
            if before != after or unit.unit_id in released:
                entry.save()

        return released

    @staticmethod
    def _ensure_accessible(progress, order, entries, item_id):
        if item_id in progress.unlocked_items:
            return

        unit = order.unit_of(item_id)
        unit_index = order.unit_index(unit.unit_id)
        for earlier in order.units[:unit_index]:
            entry = entries.get(earlier.unit_id)
            if entry is not None and entry.status == 'needs-review':
                raise RevalidationRequired(details={
                    'unit_id': earlier.unit_id,
                    'pending_items': list(entry.pending_review_items),
                    'content_id': item_id,
                })

        raise PreconditionFailed(
            'Content is locked. Complete the previous content first.',
            reason=Reason.ITEM_LOCKED,
            details={'content_id': item_id, 'unit_id': unit.unit_id},
        )
