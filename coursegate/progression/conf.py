"""
Progression settings with project-level overrides from ``settings.PROGRESSION``
"""
from django.conf import settings

DEFAULTS = {
    'DEFAULT_MAX_ATTEMPTS': 3,
    'DEFAULT_PASSING_PERCENTAGE': 70,
    'DEFAULT_QUESTION_COUNT': 10,
    'DEFAULT_TIME_LIMIT_MINUTES': 30,
    'DEFAULT_SHUFFLE': True,
    'VIDEO_COMPLETION_RATIO': 0.85,
    'SECURITY_VIOLATION_LOCK_THRESHOLD': 3,
    'UNLOCK_TIER_QUOTAS': {'TEACHER': 3, 'HOD': 2, 'DEAN': 1, 'ADMIN': None},
    'ARRANGEMENT_CACHE_TIMEOUT': 300,
    'CERTIFICATE_REGENERATOR': 'progression.services.certificates.regenerate_if_exists',
}


def progression_setting(name):
    overrides = getattr(settings, 'PROGRESSION', None) or {}
    if name in overrides:
        return overrides[name]
    return DEFAULTS[name]
