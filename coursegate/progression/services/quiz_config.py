"""
Quiz configuration resolution
Section and unit specific settings with project defaults as the fallback
"""
from courses.models import QuizConfiguration, Section
from ..conf import progression_setting
import logging

logger = logging.getLogger(__name__)


class QuizSettings:
    def __init__(self, time_limit_minutes, number_of_questions, passing_percentage,
                 max_attempts, shuffle_questions, source='default'):
        self.time_limit_minutes = time_limit_minutes
        self.number_of_questions = number_of_questions
        self.passing_percentage = passing_percentage
        self.max_attempts = max_attempts
        self.shuffle_questions = shuffle_questions
        self.source = source

    @classmethod
    def defaults(cls):
        return cls(
            time_limit_minutes=progression_setting('DEFAULT_TIME_LIMIT_MINUTES'),
            number_of_questions=progression_setting('DEFAULT_QUESTION_COUNT'),
            passing_percentage=progression_setting('DEFAULT_PASSING_PERCENTAGE'),
            max_attempts=progression_setting('DEFAULT_MAX_ATTEMPTS'),
            shuffle_questions=progression_setting('DEFAULT_SHUFFLE'),
        )

    @classmethod
    def from_model(cls, config):
        return cls(
            time_limit_minutes=config.time_limit_minutes,
            number_of_questions=config.number_of_questions,
            passing_percentage=config.passing_percentage,
            max_attempts=config.max_attempts,
            shuffle_questions=config.shuffle_questions,
            source=str(config.id),
        )

    def to_dict(self):
        return {
            'time_limit_minutes': self.time_limit_minutes,
            'number_of_questions': self.number_of_questions,
            'passing_percentage': self.passing_percentage,
            'max_attempts': self.max_attempts,
            'shuffle_questions': self.shuffle_questions,
        }


def resolve_quiz_settings(student, unit):
    """
    Most specific active configuration wins:
    (student section, unit) > (student section) > (course, unit) > (course) > defaults
    """
    course_id = unit.course_id
    section_ids = list(
        Section.objects.filter(course_id=course_id, students=student).values_list('id', flat=True)
    )
    configs = list(QuizConfiguration.objects.filter(course_id=course_id, is_active=True))

    candidates = [
        lambda c: c.section_id in section_ids and c.unit_id == unit.id,
        lambda c: c.section_id in section_ids and c.unit_id is None,
        lambda c: c.section_id is None and c.unit_id == unit.id,
        lambda c: c.section_id is None and c.unit_id is None,
    ]
    for matches in candidates:
        for config in configs:
            if matches(config):
                return QuizSettings.from_model(config)

    return QuizSettings.defaults()
