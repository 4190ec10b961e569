"""
Django management command to reconcile student progress records against the
current effective order. Records with deferred unlock propagation or a stale
arrangement token are rewritten; ``--force`` rewrites every record.
"""
from django.core.management.base import BaseCommand
from django.db import transaction
from courses.models import Course
from progression.models import StudentProgress
from progression.services.arrangement import ArrangementResolver
from progression.services.progress_tracker import ProgressTracker


class Command(BaseCommand):
    help = 'Re-derive unlocked items and unit statuses for student progress records'

    def add_arguments(self, parser):
        parser.add_argument('--course', help='Only reconcile progress for this course id')
        parser.add_argument(
            '--force',
            action='store_true',
            help='Reconcile every record, not only stale or pending ones',
        )

    def handle(self, *args, **options):
        courses = Course.objects.all()
        if options.get('course'):
            courses = courses.filter(id=options['course'])

        rewritten = checked = 0
        for course in courses:
            ArrangementResolver.invalidate(course.id)
            order = ArrangementResolver.resolve_effective_order(course)
            progress_ids = list(StudentProgress.objects.filter(course=course).values_list('id', flat=True))

            for progress_id in progress_ids:
                with transaction.atomic():
                    progress = StudentProgress.objects.select_for_update().get(id=progress_id)
                    if ProgressTracker.reconcile(progress, order, force=options.get('force', False)):
                        rewritten += 1
                checked += 1

            self.stdout.write(f"  {course.title}: {len(progress_ids)} record(s) checked")

        self.stdout.write(self.style.SUCCESS(f"Reconciled {rewritten} of {checked} progress record(s)"))
