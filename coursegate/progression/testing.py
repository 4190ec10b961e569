"""
Shared builders for progression tests
"""
from django.core.cache import cache
from accounts.models import UserProfile
from courses.models import (
    Course, Document, Question, QuestionReview, Quiz, QuizConfiguration, QuizPool,
    Section, Unit, Video,
)
from .services.arrangement import ArrangementWorkflow
from .services.progress_tracker import ProgressTracker
import itertools

_sequence = itertools.count(1)

OPTIONS = ['A', 'B', 'C', 'D']


class ProgressionFixtures:
    """Mixin for TestCase classes building courses, quizzes and users"""

    def setUp(self):
        super().setUp()
        cache.clear()

    def make_user(self, role='student', **kwargs):
        number = next(_sequence)
        defaults = {
            'first_name': role.title(),
            'last_name': str(number),
            'email': f"{role}{number}@example.com",
            'role': role,
        }
        defaults.update(kwargs)
        return UserProfile.objects.create(**defaults)

    def make_course(self, title='Course'):
        return Course.objects.create(title=title)

    def make_unit(self, course, order, videos=1, documents=0, duration=100):
        unit = Unit.objects.create(course=course, title=f"Unit {order}", sequence_order=order)
        for index in range(videos):
            Video.objects.create(unit=unit, title=f"Unit {order} video {index + 1}", duration=duration, sequence_order=index)
        for index in range(documents):
            Document.objects.create(unit=unit, title=f"Unit {order} document {index + 1}", sequence_order=videos + index)
        return unit

    def make_pool(self, unit, questions=5, approved=None, points=1):
        """Pool with ``questions`` questions, the first ``approved`` of them approved (all by default)"""
        pool = QuizPool.objects.create(unit=unit, title=f"{unit.title} quiz")
        quiz = Quiz.objects.create(pool=pool, title=f"{unit.title} quiz 1")
        approved = questions if approved is None else approved
        for index in range(questions):
            question = Question.objects.create(
                quiz=quiz,
                text=f"{unit.title} question {index + 1}",
                options=list(OPTIONS),
                correct_option='A',
                points=points,
                order=index,
            )
            QuestionReview.objects.create(question=question, status='approved' if index < approved else 'pending')
        return pool

    def configure_quiz(self, course, section=None, unit=None, **kwargs):
        defaults = {
            'time_limit_minutes': 30,
            'number_of_questions': 5,
            'passing_percentage': 70,
            'max_attempts': 3,
            'shuffle_questions': False,
        }
        defaults.update(kwargs)
        return QuizConfiguration.objects.create(course=course, section=section, unit=unit, **defaults)

    def make_section(self, course, students=()):
        section = Section.objects.create(course=course, name=f"Section {next(_sequence)}")
        section.students.add(*students)
        return section

    def launch(self, course):
        return ArrangementWorkflow.launch_course(course)

    def videos(self, unit):
        return list(unit.videos.order_by('sequence_order', 'created_at'))

    def documents(self, unit):
        return list(unit.documents.order_by('sequence_order', 'created_at'))

    def watch(self, student, video):
        return ProgressTracker.record_video_progress(student, video, explicit_completed=True)

    def complete_content(self, student, unit):
        """Complete every video and then every document of a unit, in catalog order"""
        progress = None
        for video in self.videos(unit):
            progress = self.watch(student, video)
        for document in self.documents(unit):
            progress = ProgressTracker.record_document_read(student, document)
        return progress

    def answers_for(self, attempt, correct):
        """Answer the first ``correct`` questions right and the rest wrong"""
        answers = {}
        for index, question in enumerate(attempt['questions']):
            answers[question['question_id']] = 'A' if index < correct else 'B'
        return answers
