"""
Django management command to import legacy video completion signals.
Each record in the JSON file looks like:
    {"student_id": "...", "video_id": "...", "time_spent": 1234, "completed": true}

Only records marked completed are imported; existing completions are left as
they are, so the command can be re-run safely.
"""
from django.core.management.base import BaseCommand, CommandError
from accounts.models import UserProfile
from courses.models import Video
from progression.services.progress_tracker import ProgressTracker
import json


class Command(BaseCommand):
    help = 'Backfill monotonic video completion flags from a legacy export'

    def add_arguments(self, parser):
        parser.add_argument('path', help='JSON file with a list of completion records')
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Validate the records without making any database changes',
        )

    def handle(self, *args, **options):
        dry_run = options.get('dry_run', False)

        try:
            with open(options['path'], encoding='utf-8') as handle:
                records = json.load(handle)
        except (OSError, ValueError) as e:
            raise CommandError(f"Could not read {options['path']}: {e}")

        if not isinstance(records, list):
            raise CommandError('Expected a JSON list of completion records')

        if dry_run:
            self.stdout.write(self.style.WARNING('DRY RUN MODE - No changes will be saved'))

        imported = skipped = missing = 0
        for record in records:
            if not record.get('completed'):
                skipped += 1
                continue

            student = UserProfile.objects.filter(id=record.get('student_id')).first()
            video = Video.objects.select_related('unit__course').filter(id=record.get('video_id')).first()
            if student is None or video is None:
                missing += 1
                self.stdout.write(self.style.WARNING(
                    f"  Unknown student or video: {record.get('student_id')} / {record.get('video_id')}"
                ))
                continue

            if dry_run:
                imported += 1
                continue

            if ProgressTracker.backfill_video_completion(student, video, record.get('time_spent') or 0):
                imported += 1
            else:
                skipped += 1

        self.stdout.write(self.style.SUCCESS(
            f"Backfill finished: {imported} imported, {skipped} skipped, {missing} unresolved"
        ))
