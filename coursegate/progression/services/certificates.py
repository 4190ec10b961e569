"""
Certificate regeneration
Refreshes marks and the verification hash of an existing certificate after a
new quiz result. Missing certificates are left alone.
"""
from django.utils import timezone
from courses.models import QuizPool
from ..models import Certificate, QuizAttempt
from .scoring import round_half_up
import hashlib
import logging

logger = logging.getLogger(__name__)


def verification_hash(certificate):
    payload = '|'.join([
        certificate.certificate_number,
        str(certificate.student_id),
        str(certificate.course_id),
        str(certificate.marks),
        certificate.issue_date.isoformat(),
    ])
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


def course_marks(student, course):
    """Average of the best passed percentage per unit quiz"""
    best_scores = []
    for pool in QuizPool.objects.filter(unit__course=course, is_active=True):
        best = (
            QuizAttempt.objects
            .filter(student=student, quiz_pool=pool, passed=True, completed_at__isnull=False)
            .order_by('-percentage')
            .values_list('percentage', flat=True)
            .first()
        )
        if best is not None:
            best_scores.append(best)
    if not best_scores:
        return 0
    return round_half_up(sum(best_scores) / len(best_scores))


def regenerate_if_exists(student, course):
    """Returns the refreshed certificate, or None when the student has none"""
    certificate = Certificate.objects.filter(student=student, course=course, is_active=True).first()
    if certificate is None:
        return None

    certificate.marks = course_marks(student, course)
    certificate.issue_date = timezone.now()
    certificate.verification_hash = verification_hash(certificate)
    certificate.save(update_fields=['marks', 'issue_date', 'verification_hash', 'updated_at'])
    logger.info(f"[CERTIFICATE] Regenerated {certificate.certificate_number} with marks {certificate.marks}")
    return certificate
