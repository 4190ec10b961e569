"""
Arrangement Resolver
Resolves the effective ordered content of a course and runs the coordinator
arrangement lifecycle (open -> submitted -> approved | rejected)
"""
from django.db import transaction
from django.db.models import Max
from django.utils import timezone
from courses.models import (
    Course, Unit, Video, Document, QuizPool, ContentArrangement, ArrangementItem
)
from ..audit import record_audit
from ..conf import progression_setting
from ..exceptions import PreconditionFailed, Reason
from .store import ScopedStore
import hashlib
import logging
import uuid

logger = logging.getLogger(__name__)

_order_store = ScopedStore('effective-order')

EDITABLE_STATUSES = ('open', 'rejected')


def quiz_item_id(unit_id):
    """Pseudo item id used to signal a passed unit quiz to the sequencer"""
    return f"quiz:{unit_id}"


class OrderedItem:
    def __init__(self, item_id, content_type, unit_id, title=''):
        self.item_id = str(item_id)
        self.content_type = content_type
        self.unit_id = str(unit_id)
        self.title = title

    def to_dict(self):
        return {
            'id': self.item_id,
            'type': self.content_type,
            'unit_id': self.unit_id,
            'title': self.title,
        }

    def __repr__(self):
        return f"<OrderedItem {self.content_type}:{self.item_id}>"


class OrderedUnit:
    def __init__(self, unit_id, title, sequence_order, items, quiz_pool_id=None):
        self.unit_id = str(unit_id)
        self.title = title
        self.sequence_order = sequence_order
        self.items = list(items)
        self.quiz_pool_id = str(quiz_pool_id) if quiz_pool_id else None

    @property
    def has_quiz(self):
        return self.quiz_pool_id is not None

    @property
    def item_ids(self):
        return [item.item_id for item in self.items]

    def __repr__(self):
        return f"<OrderedUnit {self.title} items={len(self.items)} quiz={self.has_quiz}>"


class EffectiveOrder:
    """
    Resolved course structure consumed by every progression decision.

    ``token`` changes whenever the unit list, the item order or the quiz
    attachment changes, so progress records can detect they are stale.
    """

    def __init__(self, course_id, units, source='catalog', version=None):
        self.course_id = str(course_id)
        self.units = list(units)
        self.source = source
        self.version = version
        self.items = [item for unit in self.units for item in unit.items]
        self._positions = {}
        self._flat = {}
        for unit_index, unit in enumerate(self.units):
            for position, item in enumerate(unit.items):
                self._positions[item.item_id] = (unit_index, position)
                self._flat[item.item_id] = len(self._flat)
        self._unit_indexes = {unit.unit_id: index for index, unit in enumerate(self.units)}
        self.token = self._compute_token()

    def _compute_token(self):
        digest = hashlib.sha256()
        for unit in self.units:
            digest.update(f"{unit.unit_id}:{unit.quiz_pool_id or '-'};".encode())
            for item in unit.items:
                digest.update(f"{item.item_id},".encode())
        prefix = self.source if self.version is None else f"{self.source}-v{self.version}"
        return f"{prefix}:{digest.hexdigest()[:20]}"

    def first_item(self):
        return self.items[0] if self.items else None

    def contains(self, item_id):
        return str(item_id) in self._positions

    def locate(self, item_id):
        """(unit index, position within unit) or None"""
        return self._positions.get(str(item_id))

    def unit_index(self, unit_id):
        return self._unit_indexes.get(str(unit_id))

    def get_unit(self, unit_id):
        index = self.unit_index(unit_id)
        return self.units[index] if index is not None else None

    def unit_of(self, item_id):
        located = self.locate(item_id)
        return self.units[located[0]] if located else None

    def item(self, item_id):
        located = self.locate(item_id)
        if not located:
            return None
        unit_index, position = located
        return self.units[unit_index].items[position]

    def sort_items(self, item_ids):
        """Order ids by effective position, dropping ids no longer in the course"""
        known = {str(item_id) for item_id in item_ids if str(item_id) in self._flat}
        return sorted(known, key=lambda item_id: self._flat[item_id])

    @property
    def quiz_units(self):
        return [unit for unit in self.units if unit.has_quiz]

    @property
    def total_items(self):
        return len(self.items) + len(self.quiz_units)

    def to_dict(self):
        return {
            'course_id': self.course_id,
            'source': self.source,
            'version': self.version,
            'token': self.token,
            'units': [
                {
                    'unit_id': unit.unit_id,
                    'title': unit.title,
                    'has_quiz': unit.has_quiz,
                    'quiz_pool_id': unit.quiz_pool_id,
                    'items': [item.to_dict() for item in unit.items],
                }
                for unit in self.units
            ],
        }


class ArrangementResolver:
    """Resolves and caches the effective content order per course"""

    @staticmethod
    def resolve_effective_order(course):
        """
        Cached per course content revision. The revision is read from the
        database on every call so entries cached by other processes are
        never trusted after a catalog change commits.
        """
        revision = ArrangementResolver.content_revision(course.pk)
        key = f"{course.pk}:{revision}"
        order = _order_store.get(key)
        if order is not None:
            return order

        order = ArrangementResolver.build_effective_order(course)
        _order_store.set(key, order, timeout=progression_setting('ARRANGEMENT_CACHE_TIMEOUT'))
        return order

    @staticmethod
    def content_revision(course_id):
        return Course.objects.filter(pk=course_id).values_list('order_revision', flat=True).first()

    @staticmethod
    def invalidate(course_id):
        """Move the course to a fresh revision; visible to other readers when the transaction commits"""
        Course.objects.filter(pk=course_id).update(order_revision=uuid.uuid4())
        logger.debug(f"[ARRANGEMENT] Bumped content revision for course {course_id}")

    @staticmethod
    def latest_approved(course):
        return course.arrangements.filter(status='approved').order_by('-version').first()

    @staticmethod
    def catalog_items(unit):
        """Raw catalog order: sequence, videos before documents on ties, then creation time"""
        entries = []
        for video in unit.videos.all():
            entries.append(((video.sequence_order, 0, video.created_at), OrderedItem(video.id, 'video', unit.id, video.title)))
        for document in unit.documents.all():
            entries.append(((document.sequence_order, 1, document.created_at), OrderedItem(document.id, 'document', unit.id, document.title)))
        entries.sort(key=lambda entry: entry[0])
        return [item for _, item in entries]

    @staticmethod
    def build_effective_order(course):
        units = list(
            Unit.objects.filter(course=course)
            .order_by('sequence_order', 'created_at')
            .prefetch_related('videos', 'documents')
        )
        pools = {
            pool.unit_id: pool.id
            for pool in QuizPool.objects.filter(unit__course=course, is_active=True)
        }
        catalog = {unit.id: ArrangementResolver.catalog_items(unit) for unit in units}

        arrangement = ArrangementResolver.latest_approved(course) if course.is_launched else None

        if arrangement is None:
            per_unit = catalog
            source, version = 'catalog', None
        else:
            per_unit = {unit.id: [] for unit in units}
            known = {item.item_id: item for items in catalog.values() for item in items}
            placed = set()

            for entry in arrangement.items.order_by('order'):
                content_id = str(entry.content_id)
                # Content deleted after approval is skipped
                if content_id not in known or content_id in placed or entry.unit_id not in per_unit:
                    continue
                base = known[content_id]
                per_unit[entry.unit_id].append(
                    OrderedItem(content_id, base.content_type, entry.unit_id, base.title)
                )
                placed.add(content_id)

            # Content added after approval goes to the end of its own unit
            for unit in units:
                for item in catalog[unit.id]:
                    if item.item_id not in placed:
                        per_unit[unit.id].append(item)

            source, version = 'arrangement', arrangement.version

        ordered_units = [
            OrderedUnit(unit.id, unit.title, unit.sequence_order, per_unit[unit.id], pools.get(unit.id))
            for unit in units
        ]
        order = EffectiveOrder(course.id, ordered_units, source=source, version=version)
        logger.info(f"[ARRANGEMENT] Resolved course {course.id} from {source} (token {order.token})")
        return order


class ArrangementWorkflow:
    """Coordinator arrangement lifecycle"""

    @staticmethod
    def create_arrangement(course, coordinator, items=None):
        """
        Open a new draft arrangement. Without explicit items the current
        effective order is used as the starting point.
        """
        if items is None:
            order = ArrangementResolver.build_effective_order(course)
            items = [
                {'content_type': item.content_type, 'content_id': item.item_id, 'unit_id': item.unit_id}
                for item in order.items
            ]

        with transaction.atomic():
            arrangement = ContentArrangement.objects.create(
                course=course,
                coordinator=coordinator,
                status='open',
            )
            ArrangementWorkflow._write_items(arrangement, items)

        logger.info(f"[ARRANGEMENT] Opened arrangement {arrangement.id} for course {course.id} with {len(items)} items")
        return arrangement

    @staticmethod
    def replace_items(arrangement, items):
        if arrangement.status not in EDITABLE_STATUSES:
            raise PreconditionFailed(
                f"Arrangement in status '{arrangement.status}' cannot be edited",
                reason=Reason.INVALID_ARRANGEMENT_STATE,
            )

        with transaction.atomic():
            arrangement.items.all().delete()
            ArrangementWorkflow._write_items(arrangement, items)
            if arrangement.status == 'rejected':
                arrangement.status = 'open'
                arrangement.save(update_fields=['status', 'updated_at'])
        return arrangement

    @staticmethod
    def _write_items(arrangement, items):
        course = arrangement.course
        lookups = {
            'video': {str(v.id): v for v in Video.objects.filter(unit__course=course)},
            'document': {str(d.id): d for d in Document.objects.filter(unit__course=course)},
        }
        units = {str(u.id): u for u in Unit.objects.filter(course=course)}

        rows = []
        seen = set()
        for index, entry in enumerate(items):
            content_type = entry.get('content_type') or entry.get('type')
            content_id = str(entry.get('content_id') or entry.get('id'))
            content = lookups.get(content_type, {}).get(content_id)

            if content is None:
                raise PreconditionFailed(
                    f"Unknown {content_type} {content_id} for this course",
                    reason=Reason.INVALID_ARRANGEMENT_ITEMS,
                )
            if content_id in seen:
                raise PreconditionFailed(
                    f"Content {content_id} appears more than once",
                    reason=Reason.INVALID_ARRANGEMENT_ITEMS,
                )
            seen.add(content_id)

            unit_id = str(entry.get('unit_id') or content.unit_id)
            if unit_id not in units:
                raise PreconditionFailed(
                    f"Unit {unit_id} does not belong to this course",
                    reason=Reason.INVALID_ARRANGEMENT_ITEMS,
                )

            rows.append(ArrangementItem(
                arrangement=arrangement,
                content_type=content_type,
                content_id=content.id,
                title=content.title,
                unit=units[unit_id],
                order=entry.get('order', index),
                original_unit_id=content.unit_id,
                original_order=content.sequence_order,
            ))

        ArrangementItem.objects.bulk_create(rows)

    @staticmethod
    def submit(arrangement, actor=None):
        if arrangement.status not in EDITABLE_STATUSES:
            raise PreconditionFailed(
                f"Arrangement in status '{arrangement.status}' cannot be submitted",
                reason=Reason.INVALID_ARRANGEMENT_STATE,
            )
        if not arrangement.items.exists():
            raise PreconditionFailed(
                'Arrangement has no items',
                reason=Reason.INVALID_ARRANGEMENT_ITEMS,
            )

        arrangement.status = 'submitted'
        arrangement.submitted_at = timezone.now()
        arrangement.save(update_fields=['status', 'submitted_at', 'updated_at'])
        logger.info(f"[ARRANGEMENT] Arrangement {arrangement.id} submitted by {getattr(actor, 'id', None)}")
        return arrangement

    @staticmethod
    def approve(arrangement, actor, comments=''):
        with transaction.atomic():
            arrangement = ContentArrangement.objects.select_for_update().get(pk=arrangement.pk)
            if arrangement.status != 'submitted':
                raise PreconditionFailed(
                    f"Only submitted arrangements can be approved (status '{arrangement.status}')",
                    reason=Reason.INVALID_ARRANGEMENT_STATE,
                )

            latest = (
                ContentArrangement.objects
                .filter(course_id=arrangement.course_id, status='approved')
                .aggregate(latest=Max('version'))['latest']
            ) or 0

            arrangement.status = 'approved'
            arrangement.version = latest + 1
            arrangement.approved_by = actor
            arrangement.approved_at = timezone.now()
            arrangement.comments = comments or arrangement.comments
            arrangement.save()
            ArrangementResolver.invalidate(arrangement.course_id)

        record_audit(
            'ARRANGEMENT_APPROVED', 'content_arrangement', arrangement.id,
            user=actor, details={'version': arrangement.version, 'course_id': str(arrangement.course_id)},
        )
        logger.info(f"[ARRANGEMENT] Arrangement {arrangement.id} approved as version {arrangement.version}")
        return arrangement

    @staticmethod
    def reject(arrangement, actor, reason=''):
        if arrangement.status != 'submitted':
            raise PreconditionFailed(
                f"Only submitted arrangements can be rejected (status '{arrangement.status}')",
                reason=Reason.INVALID_ARRANGEMENT_STATE,
            )

        arrangement.status = 'rejected'
        arrangement.rejected_by = actor
        arrangement.rejected_at = timezone.now()
        arrangement.rejection_reason = reason or ''
        arrangement.save()
        logger.info(f"[ARRANGEMENT] Arrangement {arrangement.id} rejected: {reason}")
        return arrangement

    @staticmethod
    def launch_course(course, actor=None):
        """Mark the course launched; the latest approved arrangement becomes authoritative"""
        if not course.is_launched:
            course.is_launched = True
            course.launched_at = timezone.now()
            course.save(update_fields=['is_launched', 'launched_at', 'updated_at'])
            record_audit('COURSE_LAUNCHED', 'course', course.id, user=actor)
            logger.info(f"[ARRANGEMENT] Course {course.id} launched")

        ArrangementResolver.invalidate(course.id)
        return course
