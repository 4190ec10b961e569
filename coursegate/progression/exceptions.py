"""
Progression error taxonomy

Every error carries a machine readable ``code`` and, for precondition
failures, a ``reason`` the caller uses to decide its next action.
"""


class Reason:
    NO_QUIZ = 'NO_QUIZ'
    NO_APPROVED_QUESTIONS = 'NO_APPROVED_QUESTIONS'
    PREVIOUS_UNITS_INCOMPLETE = 'PREVIOUS_UNITS_INCOMPLETE'
    CONTENT_INCOMPLETE = 'CONTENT_INCOMPLETE'
    ALREADY_PASSED = 'ALREADY_PASSED'
    QUIZ_LOCKED = 'QUIZ_LOCKED'
    ATTEMPTS_EXHAUSTED = 'ATTEMPTS_EXHAUSTED'
    INSUFFICIENT_APPROVED_QUESTIONS = 'INSUFFICIENT_APPROVED_QUESTIONS'
    ITEM_LOCKED = 'ITEM_LOCKED'
    ATTEMPT_NOT_SUBMITTED = 'ATTEMPT_NOT_SUBMITTED'
    COURSE_NOT_LAUNCHED = 'COURSE_NOT_LAUNCHED'
    INVALID_ARRANGEMENT_STATE = 'INVALID_ARRANGEMENT_STATE'
    INVALID_ARRANGEMENT_ITEMS = 'INVALID_ARRANGEMENT_ITEMS'
    REVALIDATION_REQUIRED = 'REVALIDATION_REQUIRED'


class ProgressionError(Exception):
    code = 'PROGRESSION_ERROR'
    http_status = 400

    def __init__(self, message='', reason=None, details=None):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.details = details or {}

    def to_dict(self):
        payload = {
            'success': False,
            'error': self.message,
            'code': self.code,
        }
        if self.reason:
            payload['reason'] = self.reason
        if self.details:
            payload['details'] = self.details
        return payload


class NotFoundError(ProgressionError):
    code = 'NOT_FOUND'
    http_status = 404


class NotAuthorizedError(ProgressionError):
    code = 'NOT_AUTHORIZED'
    http_status = 403


class PreconditionFailed(ProgressionError):
    code = 'PRECONDITION_FAILED'
    http_status = 412


class ConflictError(ProgressionError):
    code = 'CONFLICT'
    http_status = 409


class AttemptAlreadySubmitted(ConflictError):
    """Raised for a second submission; ``result`` is the originally recorded grading"""

    def __init__(self, result):
        super().__init__(
            'Quiz attempt has already been submitted',
            reason='ATTEMPT_ALREADY_SUBMITTED',
            details={'result': result},
        )
        self.result = result


class RevalidationRequired(ProgressionError):
    code = 'INTEGRITY'
    http_status = 409

    def __init__(self, message='New content must be reviewed before progressing', details=None):
        super().__init__(message, reason=Reason.REVALIDATION_REQUIRED, details=details)
