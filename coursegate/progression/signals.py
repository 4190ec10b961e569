"""
Catalog change hooks
Move the course to a new content revision inside the writing transaction,
and revalidate launched courses once new content has committed.
"""
from django.db import transaction
from django.db.models.signals import post_delete, post_save
from django.dispatch import receiver
from courses.models import Document, QuizPool, Unit, Video
from .services.arrangement import ArrangementResolver
from .services.revalidation import RevalidationService
import logging

logger = logging.getLogger(__name__)


def _invalidate_for_unit(unit_id):
    course_id = Unit.objects.filter(id=unit_id).values_list('course_id', flat=True).first()
    if course_id is not None:
        ArrangementResolver.invalidate(course_id)


@receiver(post_save, sender=Video)
@receiver(post_save, sender=Document)
def content_saved(sender, instance, created, raw=False, **kwargs):
    if raw:
        return
    unit = instance.unit
    ArrangementResolver.invalidate(unit.course_id)
    if created and unit.course.is_launched:
        logger.info(f"[CONTENT_ADDED] {sender.__name__} {instance.id} added to launched unit {unit.id}")
        transaction.on_commit(lambda: RevalidationService.handle_content_added(unit))


@receiver(post_delete, sender=Video)
@receiver(post_delete, sender=Document)
@receiver(post_save, sender=QuizPool)
@receiver(post_delete, sender=QuizPool)
def unit_content_changed(sender, instance, **kwargs):
    _invalidate_for_unit(instance.unit_id)


@receiver(post_save, sender=Unit)
@receiver(post_delete, sender=Unit)
def unit_changed(sender, instance, **kwargs):
    ArrangementResolver.invalidate(instance.course_id)
