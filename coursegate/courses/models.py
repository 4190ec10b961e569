"""
Content catalog models - courses, units, videos, documents, quiz pools and
coordinator-approved content arrangements
"""
from django.db import models
from django.utils import timezone
from accounts.models import UserProfile
import uuid


class Course(models.Model):
    """A course; once launched, its approved arrangement drives progression"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='course_id')
    title = models.CharField(max_length=500, db_column='title')
    description = models.TextField(blank=True, null=True, db_column='description')
    is_launched = models.BooleanField(default=False, db_column='is_launched')
    launched_at = models.DateTimeField(blank=True, null=True, db_column='launched_at')
    # Replaced whenever units, content or the approved arrangement change
    order_revision = models.UUIDField(default=uuid.uuid4, editable=False, db_column='order_revision')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'courses'
        ordering = ['-created_at']

    def __str__(self):
        return self.title


class Section(models.Model):
    """Student group within a course; quiz configuration can be section specific"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='section_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='sections', db_column='course_id')
    name = models.CharField(max_length=255, db_column='name')
    teacher = models.ForeignKey(
        UserProfile, on_delete=models.SET_NULL, blank=True, null=True,
        related_name='taught_sections', db_column='teacher_id'
    )
    students = models.ManyToManyField(UserProfile, blank=True, related_name='sections')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')

    class Meta:
        db_table = 'sections'

    def __str__(self):
        return f"{self.course.title} - {self.name}"


class Unit(models.Model):
    """Ordered grouping of videos, documents and at most one quiz pool"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='unit_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='units', db_column='course_id')
    title = models.CharField(max_length=500, db_column='title')
    description = models.TextField(blank=True, null=True, db_column='description')
    sequence_order = models.IntegerField(default=0, db_column='sequence_order')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')

    class Meta:
        db_table = 'units'
        ordering = ['sequence_order', 'created_at']
        indexes = [
            models.Index(fields=['course', 'sequence_order']),
        ]

    def __str__(self):
        return f"{self.course.title} - {self.title}"


class Video(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='video_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='videos', db_column='unit_id')
    title = models.CharField(max_length=500, db_column='title')
    duration = models.FloatField(default=0, db_column='duration_seconds')
    sequence_order = models.IntegerField(default=0, db_column='sequence_order')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')

    class Meta:
        db_table = 'videos'
        ordering = ['sequence_order', 'created_at']

    @property
    def course(self):
        return self.unit.course

    def __str__(self):
        return self.title


class Document(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='document_id')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='documents', db_column='unit_id')
    title = models.CharField(max_length=500, db_column='title')
    sequence_order = models.IntegerField(default=0, db_column='sequence_order')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')

    class Meta:
        db_table = 'documents'
        ordering = ['sequence_order', 'created_at']

    @property
    def course(self):
        return self.unit.course

    def __str__(self):
        return self.title


class QuizPool(models.Model):
    """Unit quiz: questions are drawn from every quiz attached to the pool"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='quiz_pool_id')
    unit = models.OneToOneField(Unit, on_delete=models.CASCADE, related_name='quiz_pool', db_column='unit_id')
    title = models.CharField(max_length=500, db_column='title')
    is_active = models.BooleanField(default=True, db_column='is_active')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')

    class Meta:
        db_table = 'quiz_pools'

    @property
    def course(self):
        return self.unit.course

    def approved_questions(self):
        """Questions that passed course-coordinator review, in document order"""
        return Question.objects.filter(
            quiz__pool=self,
            review__status='approved',
        ).order_by('quiz__created_at', 'order', 'created_at')

    def __str__(self):
        return self.title


class Quiz(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='quiz_id')
    pool = models.ForeignKey(QuizPool, on_delete=models.CASCADE, related_name='quizzes', db_column='quiz_pool_id')
    title = models.CharField(max_length=500, db_column='title')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')

    class Meta:
        db_table = 'quizzes'

    def __str__(self):
        return self.title


class Question(models.Model):
    """Multiple choice question; options is a list of option strings"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='question_id')
    quiz = models.ForeignKey(Quiz, on_delete=models.CASCADE, related_name='questions', db_column='quiz_id')
    text = models.TextField(db_column='question_text')
    options = models.JSONField(default=list, db_column='options')
    correct_option = models.CharField(max_length=500, db_column='correct_option')
    points = models.IntegerField(default=1, db_column='points')
    order = models.IntegerField(default=0, db_column='question_order')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')

    class Meta:
        db_table = 'questions'
        ordering = ['order', 'created_at']

    def __str__(self):
        return self.text[:80]


class QuestionReview(models.Model):
    """Course-coordinator approval of a question; only approved questions are drawn"""
    STATUS_CHOICES = [
        ('pending', 'Pending'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='review_id')
    question = models.OneToOneField(Question, on_delete=models.CASCADE, related_name='review', db_column='question_id')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='pending', db_column='status')
    reviewed_by = models.ForeignKey(
        UserProfile, on_delete=models.SET_NULL, blank=True, null=True,
        related_name='question_reviews', db_column='reviewed_by'
    )
    reviewed_at = models.DateTimeField(blank=True, null=True, db_column='reviewed_at')
    comments = models.TextField(blank=True, default='', db_column='comments')

    class Meta:
        db_table = 'question_reviews'
        indexes = [
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f"{self.question_id} - {self.status}"


class QuizConfiguration(models.Model):
    """
    Section/unit specific quiz settings. Lookup falls back from
    (section, unit) to (section, any unit) to course wide to project defaults.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='config_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='quiz_configurations', db_column='course_id')
    section = models.ForeignKey(
        Section, on_delete=models.CASCADE, blank=True, null=True,
        related_name='quiz_configurations', db_column='section_id'
    )
    unit = models.ForeignKey(
        Unit, on_delete=models.CASCADE, blank=True, null=True,
        related_name='quiz_configurations', db_column='unit_id'
    )
    time_limit_minutes = models.IntegerField(default=30, db_column='time_limit_minutes')
    number_of_questions = models.IntegerField(default=10, db_column='number_of_questions')
    passing_percentage = models.IntegerField(default=70, db_column='passing_percentage')
    max_attempts = models.IntegerField(default=3, db_column='max_attempts')
    shuffle_questions = models.BooleanField(default=True, db_column='shuffle_questions')
    is_active = models.BooleanField(default=True, db_column='is_active')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')

    class Meta:
        db_table = 'quiz_configurations'
        ordering = ['-created_at']


class ContentArrangement(models.Model):
    """Versioned coordinator reordering of a course's videos and documents"""
    STATUS_CHOICES = [
        ('open', 'Open'),
        ('submitted', 'Submitted'),
        ('approved', 'Approved'),
        ('rejected', 'Rejected'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='arrangement_id')
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name='arrangements', db_column='course_id')
    coordinator = models.ForeignKey(
        UserProfile, on_delete=models.SET_NULL, blank=True, null=True,
        related_name='arrangements', db_column='coordinator_id'
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='open', db_column='status')
    version = models.IntegerField(blank=True, null=True, db_column='version')
    submitted_at = models.DateTimeField(blank=True, null=True, db_column='submitted_at')
    approved_by = models.ForeignKey(
        UserProfile, on_delete=models.SET_NULL, blank=True, null=True,
        related_name='approved_arrangements', db_column='approved_by'
    )
    approved_at = models.DateTimeField(blank=True, null=True, db_column='approved_at')
    rejected_by = models.ForeignKey(
        UserProfile, on_delete=models.SET_NULL, blank=True, null=True,
        related_name='rejected_arrangements', db_column='rejected_by'
    )
    rejected_at = models.DateTimeField(blank=True, null=True, db_column='rejected_at')
    rejection_reason = models.TextField(blank=True, default='', db_column='rejection_reason')
    comments = models.TextField(blank=True, default='', db_column='comments')
    created_at = models.DateTimeField(default=timezone.now, db_column='created_at')
    updated_at = models.DateTimeField(auto_now=True, db_column='updated_at')

    class Meta:
        db_table = 'content_arrangements'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['course', 'status', 'version']),
        ]

    def __str__(self):
        return f"{self.course.title} arrangement ({self.status}, v{self.version})"


class ArrangementItem(models.Model):
    CONTENT_TYPE_CHOICES = [
        ('video', 'Video'),
        ('document', 'Document'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False, db_column='item_id')
    arrangement = models.ForeignKey(ContentArrangement, on_delete=models.CASCADE, related_name='items', db_column='arrangement_id')
    content_type = models.CharField(max_length=20, choices=CONTENT_TYPE_CHOICES, db_column='content_type')
    content_id = models.UUIDField(db_column='content_id')
    title = models.CharField(max_length=500, blank=True, default='', db_column='title')
    unit = models.ForeignKey(Unit, on_delete=models.CASCADE, related_name='arranged_items', db_column='unit_id')
    order = models.IntegerField(default=0, db_column='item_order')
    original_unit = models.ForeignKey(
        Unit, on_delete=models.SET_NULL, blank=True, null=True,
        related_name='+', db_column='original_unit_id'
    )
    original_order = models.IntegerField(blank=True, null=True, db_column='original_order')

    class Meta:
        db_table = 'arrangement_items'
        ordering = ['order']
        unique_together = ['arrangement', 'content_id']

    def __str__(self):
        return f"{self.content_type}:{self.title}"
